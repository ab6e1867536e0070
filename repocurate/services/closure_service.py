"""
Closure engine for repocurate.

Repeats full scans of the surviving records, removing every record with
a dependency that no surviving record satisfies, until a pass removes
nothing. Each pass reads a frozen snapshot of the RemovalSet and merges
its findings at the end, so the outcome of a pass does not depend on the
order records are scanned in.

Dependency cycles need no special handling: a cycle either survives a
pass intact or loses a member and collapses over the following passes.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Tuple

from ..domain import PackageRecord, RemovalEntry, RemovalReason, RemovalSet, parse_dependency
from ..domain.package import RecordKey
from ..errors import ClosureNonConvergenceError
from .index_service import RepositoryIndex

logger = logging.getLogger(__name__)

VIRTUAL_PREFIX = '__'


@dataclass
class ClosureResult:
    """Outcome of one closure run."""
    passes: int = 0
    removed: List[RemovalEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            'passes': self.passes,
            'removed': len(self.removed),
        }


class ClosureService:
    """
    Fixpoint loop over dependency satisfiability.

    A dependency is satisfied when a surviving record matches it, when it
    names a package absent from the index, or when it names a virtual
    package (``__glibc`` and friends never appear in repodata). An
    unparsable dependency is never satisfied.

    Example:
        service = ClosureService(max_passes=100)
        result = service.run(index, removals)
        print(f"converged after {result.passes} passes")
    """

    def __init__(self, max_passes: int = 1000):
        if max_passes < 1:
            raise ValueError("max_passes must be at least 1")
        self.max_passes = max_passes
        # dependency string -> key of the last record found to satisfy it
        self._satisfiers: Dict[str, RecordKey] = {}

    def run(self, index: RepositoryIndex, removals: RemovalSet) -> ClosureResult:
        """
        Remove orphaned records until nothing changes.

        Raises:
            ClosureNonConvergenceError: if a pass still removes records
                once ``max_passes`` passes have run
        """
        self._satisfiers.clear()
        result = ClosureResult()
        while True:
            result.passes += 1
            snapshot = removals.snapshot()
            found = self.scan(index, snapshot)
            added = removals.merge(found)
            result.removed.extend(added)
            logger.debug(f"Closure pass {result.passes}: {len(added)} orphaned")
            if not added:
                break
            if result.passes >= self.max_passes:
                raise ClosureNonConvergenceError(result.passes, len(added))

        logger.info(f"closure: removed {len(result.removed)} records in {result.passes} passes")
        return result

    def scan(self, index: RepositoryIndex, removed: FrozenSet[RecordKey]) -> List[RemovalEntry]:
        """One pass: orphaned records among the survivors of ``removed``. Read-only."""
        verdicts: Dict[str, Optional[str]] = {}
        found = []
        for record in index:
            if record.key in removed:
                continue
            for dependency in record.depends:
                if dependency not in verdicts:
                    verdicts[dependency] = self.check_dependency(dependency, index, removed)
                detail = verdicts[dependency]
                if detail is not None:
                    found.append(RemovalEntry.for_record(record, RemovalReason.ORPHANED, detail))
                    break
        return found

    def check_dependency(
        self,
        dependency: str,
        index: RepositoryIndex,
        removed: FrozenSet[RecordKey]
    ) -> Optional[str]:
        """None if the dependency is satisfied, otherwise an explanation."""
        spec = parse_dependency(dependency)
        if spec is None:
            return f"dependency {dependency} unparsable"
        if spec.name.startswith(VIRTUAL_PREFIX) or spec.name not in index:
            return None

        cached = self._satisfiers.get(dependency)
        if cached is not None and cached not in removed:
            return None

        lost: Optional[PackageRecord] = None
        for candidate in reversed(index.candidates(spec.name)):
            if not spec.match(candidate):
                continue
            if candidate.key not in removed:
                self._satisfiers[dependency] = candidate.key
                return None
            if lost is None:
                lost = candidate

        if lost is not None:
            return f"dependency {dependency} unsatisfiable after removal of {lost.filename}"
        return f"dependency {dependency} unsatisfiable"


def unsatisfied_dependencies(
    index: RepositoryIndex,
    removed: FrozenSet[RecordKey]
) -> List[Tuple[RecordKey, str]]:
    """
    Every (surviving record, dependency) pair left unsatisfied.

    Empty after a converged closure run; used to verify the result.
    """
    checker = ClosureService()
    problems = []
    for record in index:
        if record.key in removed:
            continue
        for dependency in record.depends:
            if checker.check_dependency(dependency, index, removed) is not None:
                problems.append((record.key, dependency))
    return problems
