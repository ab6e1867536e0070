"""
Compatibility oracle contract for repocurate.

The compatibility stage never solves anything itself. It asks an oracle:
given these requested constraints and this candidate pool, is there a
selection of records (one per name) that satisfies them all? Any object
with a conforming ``solve`` method can be injected.
"""

from dataclasses import dataclass, field
from typing import Collection, Dict, Mapping, Protocol, Sequence, Tuple, Union, runtime_checkable

from .matchspec import MatchSpec
from .package import PackageRecord


@dataclass(frozen=True)
class Selection:
    """A satisfying assignment: one chosen record per package name."""
    records: Mapping[str, PackageRecord] = field(default_factory=dict)

    def __contains__(self, name: object) -> bool:
        return name in self.records

    def to_dict(self) -> Dict[str, str]:
        return {name: record.filename for name, record in sorted(self.records.items())}


@dataclass(frozen=True)
class Unsatisfiable:
    """Proof (or at least an account) that no satisfying selection exists."""
    reason: str
    conflicts: Tuple[str, ...] = ()


SolveResult = Union[Selection, Unsatisfiable]


@runtime_checkable
class CompatibilityOracle(Protocol):
    """Anything that can answer satisfiability queries over a candidate pool."""

    def solve(
        self,
        requested: Sequence[MatchSpec],
        candidate_pool: Collection[PackageRecord]
    ) -> SolveResult:
        """
        Find a selection satisfying every requested constraint.

        Returns:
            Selection if one exists, Unsatisfiable otherwise

        Raises:
            OracleError: if the oracle fails or gives up
        """
        ...
