"""
Primary filter stage for repocurate.

Each filter looks only at immutable record fields, so the filters can run
in any order and still produce the same removal set:

- allow-list: records of a listed name must match one of its specs
- supersession: older build numbers of the same build variant go
- pre-release: dev/alpha/beta/rc versions go (when enabled)
- banned features: records tracking a banned feature go
- architecture: records needing a virtual package the platform lacks go
"""

import logging
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from rapidfuzz import fuzz, process

from ..domain import Diagnostic, PackageRecord, Policy, RemovalEntry, RemovalReason, RemovalSet
from ..domain.matchspec import dependency_name
from ..domain.version import prerelease_token
from .index_service import RepositoryIndex

logger = logging.getLogger(__name__)

# Below this many records a thread pool costs more than it saves
PARALLEL_THRESHOLD = 2048

# Virtual packages that cannot exist on a platform, keyed by OS
VIRTUAL_PACKAGE_BANS: Dict[str, Tuple[str, ...]] = {
    'linux': ('__osx', '__win'),
    'osx': ('__linux', '__win', '__glibc'),
    'freebsd': ('__linux', '__win', '__glibc'),
    'win': ('__linux', '__unix', '__glibc', '__osx'),
}

Predicate = Callable[[PackageRecord], Optional[str]]


def virtual_package_bans(platform: str) -> Tuple[str, ...]:
    """Virtual packages unavailable on a platform such as ``linux-64``."""
    os_name = platform.split('-', 1)[0]
    bans = VIRTUAL_PACKAGE_BANS.get(os_name)
    if bans is None:
        logger.warning(f"Virtual package bans for platform {platform!r} not known")
        return ()
    return bans


class FilterService:
    """
    Applies the primary filters to a RepositoryIndex.

    Every ``apply_*`` method adds to the RemovalSet and returns the
    entries that were newly added.

    Example:
        service = FilterService(policy)
        removals = RemovalSet()
        service.apply_supersession(index, removals)
    """

    STAGES = ('allow-list', 'supersession', 'prerelease', 'banned-features', 'architecture')

    def __init__(self, policy: Policy, max_workers: int = 4, target_platform: str = 'linux-64'):
        self.policy = policy
        self.max_workers = max_workers
        self.target_platform = target_platform
        self.diagnostics: List[Diagnostic] = []

    def run(self, index: RepositoryIndex, removals: RemovalSet) -> Dict[str, List[RemovalEntry]]:
        """Apply every primary filter. Returns newly removed entries per stage."""
        return {stage: self.apply(stage, index, removals) for stage in self.STAGES}

    def apply(self, stage: str, index: RepositoryIndex, removals: RemovalSet) -> List[RemovalEntry]:
        """Apply one primary filter by stage name."""
        handlers = {
            'allow-list': self.apply_allow_list,
            'supersession': self.apply_supersession,
            'prerelease': self.apply_prerelease,
            'banned-features': self.apply_banned_features,
            'architecture': self.apply_architecture,
        }
        try:
            handler = handlers[stage]
        except KeyError:
            raise ValueError(f"unknown filter stage {stage!r}") from None
        added = handler(index, removals)
        logger.info(f"{stage}: removed {len(added)} records")
        return added

    def _evaluate(self, records: Sequence[PackageRecord], predicate: Predicate) -> List[Optional[str]]:
        """Run a predicate over records, in a thread pool for large inputs. Order is preserved."""
        if self.max_workers <= 1 or len(records) < PARALLEL_THRESHOLD:
            return [predicate(record) for record in records]
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            return list(executor.map(predicate, records))

    def _remove_matching(
        self,
        records: Iterable[PackageRecord],
        predicate: Predicate,
        reason: RemovalReason,
        removals: RemovalSet
    ) -> List[RemovalEntry]:
        records = list(records)
        found = [
            RemovalEntry.for_record(record, reason, detail)
            for record, detail in zip(records, self._evaluate(records, predicate))
            if detail is not None
        ]
        return removals.merge(found)

    def apply_allow_list(self, index: RepositoryIndex, removals: RemovalSet) -> List[RemovalEntry]:
        """Remove records of allow-listed names that match none of their specs."""
        added = []
        for name, specs in sorted(self.policy.allow_list.items()):
            candidates = index.candidates(name)
            if not candidates:
                self._report_unknown_name(name, index)
                continue

            def outside_allow_list(record: PackageRecord, specs=specs) -> Optional[str]:
                if any(spec.match(record) for spec in specs):
                    return None
                return ""

            added.extend(self._remove_matching(candidates, outside_allow_list,
                                               RemovalReason.POLICY_MISMATCH, removals))
        return added

    def _report_unknown_name(self, name: str, index: RepositoryIndex) -> None:
        message = "allow-list names a package that is not in the index"
        suggestion = process.extractOne(name, index.names(), scorer=fuzz.ratio, score_cutoff=80)
        if suggestion:
            message += f" (did you mean {suggestion[0]!r}?)"
        logger.warning(f"{name}: {message}")
        self.diagnostics.append(Diagnostic('unknown-name', name, message))

    def apply_supersession(self, index: RepositoryIndex, removals: RemovalSet) -> List[RemovalEntry]:
        """
        Keep only the highest build number of each build variant.

        Records group by (name, version, build string without its build
        number suffix). Grouping covers every record, removed or not, so
        the result does not depend on which filters ran first.
        """
        groups: Dict[tuple, List[PackageRecord]] = defaultdict(list)
        for record in index:
            groups[(record.name, record.version, record.build_prefix)].append(record)

        found = []
        for group in groups.values():
            if len(group) < 2:
                continue
            newest = max(record.build_number for record in group)
            for record in group:
                if record.build_number < newest:
                    found.append(RemovalEntry.for_record(
                        record, RemovalReason.SUPERSEDED, f"superseded by build {newest}"
                    ))
        return removals.merge(found)

    def apply_prerelease(self, index: RepositoryIndex, removals: RemovalSet) -> List[RemovalEntry]:
        """Remove pre-release versions when the policy excludes them."""
        if not self.policy.exclude_prerelease:
            return []
        tokens = self.policy.prerelease_tokens

        def prerelease(record: PackageRecord) -> Optional[str]:
            token = prerelease_token(record.version, tokens)
            return f"pre-release token '{token}'" if token else None

        return self._remove_matching(index, prerelease, RemovalReason.PRERELEASE, removals)

    def apply_banned_features(self, index: RepositoryIndex, removals: RemovalSet) -> List[RemovalEntry]:
        """Remove records whose track_features (or legacy features) are banned."""
        banned = self.policy.banned_features
        if not banned:
            return []

        def has_banned_feature(record: PackageRecord) -> Optional[str]:
            hits = (record.track_features | record.features) & banned
            return f"feature {sorted(hits)[0]}" if hits else None

        return self._remove_matching(index, has_banned_feature, RemovalReason.BANNED_FEATURE, removals)

    def apply_architecture(self, index: RepositoryIndex, removals: RemovalSet) -> List[RemovalEntry]:
        """Remove records depending on a virtual package the target platform cannot provide."""
        bans = frozenset(virtual_package_bans(self.target_platform))
        if not bans:
            return []
        platform = self.target_platform

        def needs_foreign_platform(record: PackageRecord) -> Optional[str]:
            for dependency in record.depends:
                name = dependency_name(dependency)
                if name in bans:
                    return f"depends on {name}, unavailable on {platform}"
            return None

        return self._remove_matching(index, needs_foreign_platform, RemovalReason.ARCHITECTURE, removals)
