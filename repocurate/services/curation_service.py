"""
Curation pipeline for repocurate.

Runs every stage in order against one RepositoryIndex and one RemovalSet:

    load -> primary filters -> closure -> compatibility -> closure -> render

Nothing is written here. Rendering happens in memory, so a fatal error in
any stage leaves no partial output behind.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Generator, List, Mapping, Optional, Union

from ..config import load_config
from ..domain import CompatibilityOracle, Diagnostic, Policy, RemovalEntry, RemovalSet, Subdir
from ..infra.solver import ResolvelibOracle
from .closure_service import ClosureService
from .compat_service import CompatibilityService
from .filter_service import FilterService
from .index_service import RawDocument, RepositoryIndex, load
from .render_service import RenderService

logger = logging.getLogger(__name__)


@dataclass
class StageStats:
    """What one stage removed and how long it took."""
    name: str
    removed: int = 0
    seconds: float = 0.0
    passes: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'stage': self.name,
            'removed': self.removed,
            'seconds': round(self.seconds, 3),
        }
        if self.passes is not None:
            data['passes'] = self.passes
        return data


@dataclass
class CurationResult:
    """Everything a curation run produced."""
    index: RepositoryIndex
    removals: RemovalSet
    stages: List[StageStats] = field(default_factory=list)
    documents: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def loaded(self) -> int:
        return len(self.index)

    @property
    def remaining(self) -> int:
        return self.loaded - len(self.removals)

    @property
    def percent_kept(self) -> float:
        if not self.loaded:
            return 0.0
        return 100.0 * self.remaining / self.loaded

    @property
    def closure_passes(self) -> List[int]:
        return [stage.passes for stage in self.stages if stage.passes is not None]

    def explanations(self) -> List[RemovalEntry]:
        return self.removals.entries()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'loaded': self.loaded,
            'remaining': self.remaining,
            'percent_kept': round(self.percent_kept, 2),
            'stages': [stage.to_dict() for stage in self.stages],
            'removed_by_reason': {
                reason.value: count for reason, count in sorted(
                    self.removals.counts().items(), key=lambda item: item[0].value
                )
            },
            'diagnostics': [d.to_dict() for d in self.diagnostics],
        }


class CurationService:
    """
    Service for curating conda repodata against a Policy.

    Example:
        service = CurationService(policy)

        for progress in service.curate({"noarch": noarch, "linux-64": linux}):
            print(progress)  # "supersession: removed 1204 records"

        result = service.last_result
        print(f"Kept {result.remaining} of {result.loaded} records")
    """

    def __init__(
        self,
        policy: Policy,
        config: Optional[Dict[str, Any]] = None,
        oracle: Optional[CompatibilityOracle] = None,
        max_closure_passes: Optional[int] = None
    ):
        """
        Initialize CurationService.

        Args:
            policy: Curation policy
            config: Configuration dict (loads default if None)
            oracle: Compatibility oracle (ResolvelibOracle if None)
            max_closure_passes: Overrides curation.max_closure_passes
        """
        self.policy = policy
        self.config = config if config is not None else load_config()
        curation = self.config.get('curation', {})
        oracle_config = self.config.get('oracle', {})

        self.oracle = oracle or ResolvelibOracle(max_rounds=oracle_config.get('max_rounds', 100000))
        self.max_workers = self.config.get('workers', {}).get('max_workers', 4)
        self.oracle_workers = oracle_config.get('max_workers', 8)
        self.max_closure_passes = max_closure_passes or curation.get('max_closure_passes', 1000)
        self.last_result: Optional[CurationResult] = None

    def curate(
        self,
        raw_metadata_per_subdir: Mapping[Union[str, Subdir], RawDocument]
    ) -> Generator[str, None, None]:
        """
        Run the full pipeline, yielding progress messages.

        The result is available as ``last_result`` once the generator is
        exhausted.

        Raises:
            LoadError, OracleError, ClosureNonConvergenceError
        """
        self.last_result = None

        started = time.monotonic()
        index = load(raw_metadata_per_subdir, self.policy, max_workers=self.max_workers)
        removals = RemovalSet()
        result = CurationResult(index=index, removals=removals)
        result.diagnostics.extend(index.diagnostics)
        result.stages.append(StageStats('load', 0, time.monotonic() - started))
        yield f"Loaded {len(index)} records from {', '.join(s.value for s in index.subdirs())}"

        filters = FilterService(self.policy, max_workers=self.max_workers)
        for stage in filters.STAGES:
            started = time.monotonic()
            added = filters.apply(stage, index, removals)
            result.stages.append(StageStats(stage, len(added), time.monotonic() - started))
            yield f"{stage}: removed {len(added)} records"
        result.diagnostics.extend(filters.diagnostics)

        closure = ClosureService(max_passes=self.max_closure_passes)
        yield from self._close(closure, index, removals, result)

        if self.policy.anchors:
            compat = CompatibilityService(self.oracle, max_workers=self.oracle_workers)
            started = time.monotonic()
            added = compat.run(index, removals, self.policy.anchors)
            result.stages.append(StageStats('compatibility', len(added), time.monotonic() - started))
            result.diagnostics.extend(compat.diagnostics)
            yield (f"compatibility: removed {len(added)} records "
                   f"({compat.queries} oracle queries, {compat.cache_hits} memoized)")
            yield from self._close(closure, index, removals, result)

        started = time.monotonic()
        result.documents = RenderService().render(index, removals)
        result.stages.append(StageStats('render', 0, time.monotonic() - started))

        self.last_result = result
        yield f"Kept {result.remaining} of {result.loaded} records ({result.percent_kept:.1f}%)"

    def _close(
        self,
        closure: ClosureService,
        index: RepositoryIndex,
        removals: RemovalSet,
        result: CurationResult
    ) -> Generator[str, None, None]:
        started = time.monotonic()
        outcome = closure.run(index, removals)
        result.stages.append(StageStats('closure', len(outcome.removed),
                                        time.monotonic() - started, outcome.passes))
        yield f"closure: removed {len(outcome.removed)} records in {outcome.passes} passes"

    def run(self, raw_metadata_per_subdir: Mapping[Union[str, Subdir], RawDocument]) -> CurationResult:
        """Run the pipeline to completion, logging progress, and return the result."""
        for message in self.curate(raw_metadata_per_subdir):
            logger.debug(message)
        return self.last_result


def curate(
    raw_metadata_per_subdir: Mapping[Union[str, Subdir], RawDocument],
    policy: Policy,
    oracle: Optional[CompatibilityOracle] = None,
    config: Optional[Dict[str, Any]] = None
) -> CurationResult:
    """Convenience wrapper: curate with a one-off CurationService."""
    return CurationService(policy, config=config, oracle=oracle).run(raw_metadata_per_subdir)
