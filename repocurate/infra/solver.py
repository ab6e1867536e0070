"""
Default compatibility oracle for repocurate.

ResolvelibOracle answers CompatibilityOracle queries with resolvelib, the
backtracking resolver pip is built on. The candidate pool handed in by
the compatibility stage is the whole universe: one provider is built
per query over exactly those records.

- ``depends`` of a selected record are hard requirements, for names
  present in the pool
- ``constrains`` only apply when the constrained name ends up selected
  too; a name that is only ever constrained may be left out

Dependencies on names outside the pool are ignored; the caller restricts
the pool to the names that matter for the question being asked.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Collection, Dict, Iterable, Iterator, List, Mapping, Sequence, Union

from resolvelib import (
    AbstractProvider,
    BaseReporter,
    InconsistentCandidate,
    ResolutionImpossible,
    ResolutionTooDeep,
    Resolver,
)

from ..domain import MatchSpec, PackageRecord, Selection, SolveResult, Unsatisfiable, parse_dependency
from ..domain.matchspec import dependency_name
from ..errors import OracleError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Requirement:
    """A MatchSpec handed to resolvelib; ``optional`` for constrains."""
    spec: MatchSpec
    optional: bool = False

    @property
    def name(self) -> str:
        return self.spec.name

    def __str__(self) -> str:
        return str(self.spec)


@dataclass(frozen=True)
class Absent:
    """Candidate standing for "this name is not installed"."""
    name: str


Candidate = Union[PackageRecord, Absent]


class PoolProvider(AbstractProvider):
    """resolvelib provider over a fixed candidate pool, newest records first."""

    def __init__(self, candidate_pool: Collection[PackageRecord]):
        self.by_name: Dict[str, List[PackageRecord]] = defaultdict(list)
        for record in candidate_pool:
            self.by_name[record.name].append(record)
        for records in self.by_name.values():
            records.sort(key=lambda r: r.sort_key, reverse=True)
        self._dependencies: Dict[PackageRecord, List[Requirement]] = {}
        self._broken = set()
        for records in self.by_name.values():
            for record in records:
                requirements = self._requirements(record)
                if requirements is None:
                    self._broken.add(record)
                else:
                    self._dependencies[record] = requirements

    def _requirements(self, record: PackageRecord):
        """Requirements inside the pool; None if an in-pool dependency is unparsable."""
        requirements = []
        for dependency in record.depends:
            spec = parse_dependency(dependency)
            if spec is None:
                if dependency_name(dependency) in self.by_name:
                    return None
                continue
            if spec.name in self.by_name:
                requirements.append(Requirement(spec))
        for constraint in record.constrains:
            spec = parse_dependency(constraint)
            if spec is not None and spec.name in self.by_name:
                requirements.append(Requirement(spec, optional=True))
        return requirements

    def identify(self, requirement_or_candidate) -> str:
        return requirement_or_candidate.name

    def get_preference(self, identifier, resolutions, candidates, information, backtrack_causes):
        # Pin hard requirements with the fewest candidates first
        hard = any(not info.requirement.optional for info in information[identifier])
        return (not hard, sum(1 for _ in candidates[identifier]))

    def find_matches(self, identifier, requirements, incompatibilities) -> List[Candidate]:
        wanted = list(requirements[identifier])
        excluded = set(incompatibilities[identifier])
        matches = [
            record for record in self.by_name.get(identifier, ())
            if record not in excluded
            and record not in self._broken
            and all(requirement.spec.match(record) for requirement in wanted)
        ]
        if all(requirement.optional for requirement in wanted):
            absent = Absent(identifier)
            if absent not in excluded:
                matches.insert(0, absent)
        return matches

    def is_satisfied_by(self, requirement: Requirement, candidate: Candidate) -> bool:
        if isinstance(candidate, Absent):
            return requirement.optional
        return requirement.spec.match(candidate)

    def get_dependencies(self, candidate: Candidate) -> Iterable[Requirement]:
        if isinstance(candidate, Absent):
            return []
        return self._dependencies[candidate]


class ResolvelibOracle:
    """
    resolvelib-backed solver implementing the CompatibilityOracle contract.

    Example:
        oracle = ResolvelibOracle(max_rounds=10000)
        result = oracle.solve([MatchSpec.parse("python >=3.9")], pool)
        if isinstance(result, Selection):
            print(result.to_dict())
    """

    def __init__(self, max_rounds: int = 100000):
        self.max_rounds = max_rounds

    def solve(
        self,
        requested: Sequence[MatchSpec],
        candidate_pool: Collection[PackageRecord]
    ) -> SolveResult:
        provider = PoolProvider(candidate_pool)

        missing = [str(spec) for spec in requested if spec.name not in provider.by_name]
        if missing:
            return Unsatisfiable(f"no candidates for {', '.join(missing)}", tuple(missing))

        resolver = Resolver(provider, BaseReporter())
        try:
            result = resolver.resolve([Requirement(spec) for spec in requested], max_rounds=self.max_rounds)
        except ResolutionImpossible as e:
            requested_text = ', '.join(str(spec) for spec in requested)
            conflicts = tuple(sorted({str(cause.requirement) for cause in e.causes}))
            logger.debug(f"Unsatisfiable: {requested_text} ({'; '.join(conflicts)})")
            return Unsatisfiable(f"no selection satisfies {requested_text}", conflicts)
        except ResolutionTooDeep as e:
            raise OracleError(f"solver gave up after {self.max_rounds} rounds") from e
        except InconsistentCandidate as e:
            raise OracleError(f"solver returned an inconsistent candidate: {e}") from e

        return Selection(dict(_installed(result.mapping)))


def _installed(mapping: Mapping[str, Candidate]) -> Iterator:
    for name, candidate in mapping.items():
        if not isinstance(candidate, Absent):
            yield name, candidate
