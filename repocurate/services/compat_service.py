"""
Compatibility filter stage for repocurate.

For every surviving record C that touches an anchor package, ask the
oracle whether C can be installed next to at least one surviving
candidate of every anchor. Records for which the oracle proves no such
selection exists are removed as ``incompatible``.

The stage runs once. Anything that becomes uninstallable because of
these removals is left to the closure engine.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

from ..domain import (
    CompatibilityOracle,
    Diagnostic,
    MatchSpec,
    PackageRecord,
    RemovalEntry,
    RemovalReason,
    RemovalSet,
    SolveResult,
    Unsatisfiable,
)
from ..domain.matchspec import dependency_name
from ..errors import OracleError
from .index_service import RepositoryIndex

logger = logging.getLogger(__name__)

Signature = Tuple


def _names(constraints: Sequence[str]) -> FrozenSet[str]:
    return frozenset(dependency_name(c) for c in constraints)


class CompatibilityService:
    """
    Drives a CompatibilityOracle over the surviving records.

    Queries are restricted to the record under test plus the surviving
    anchor candidates, memoized by the parts of the record that can
    influence the verdict, and dispatched on a bounded thread pool.

    Example:
        service = CompatibilityService(ResolvelibOracle(), max_workers=8)
        removed = service.run(index, removals, ("python",))
        print(f"{service.queries} oracle calls, {service.cache_hits} cached")
    """

    def __init__(self, oracle: CompatibilityOracle, max_workers: int = 8):
        self.oracle = oracle
        self.max_workers = max(1, max_workers)
        self.diagnostics: List[Diagnostic] = []
        self.queries = 0
        self.cache_hits = 0
        self._lock = threading.Lock()

    def run(
        self,
        index: RepositoryIndex,
        removals: RemovalSet,
        anchors: Sequence[str]
    ) -> List[RemovalEntry]:
        """
        Remove records that cannot co-install with the anchors.

        Args:
            index: Repository index
            removals: Removal set; read for survivors, then extended
            anchors: Anchor package names

        Returns:
            Entries newly added to the removal set

        Raises:
            OracleError: if the oracle fails for any query
        """
        removed = removals.snapshot()
        anchor_pool = self._anchor_pool(index, removed, anchors)
        if not anchor_pool:
            return []

        live_anchors = tuple(sorted(anchor_pool))
        pool = tuple(record for name in live_anchors for record in anchor_pool[name])
        anchor_specs = [MatchSpec(name=name) for name in live_anchors]

        verdict = self._ask(anchor_specs, pool)
        if isinstance(verdict, Unsatisfiable):
            message = f"anchors are not jointly installable ({verdict.reason}); stage skipped"
            logger.warning(message)
            self.diagnostics.append(Diagnostic('anchors-unsatisfiable', ', '.join(live_anchors), message))
            return []

        constrained = self._names_constrained_by(pool)
        jobs: Dict[Signature, PackageRecord] = {}
        owners: List[Tuple[PackageRecord, Signature]] = []
        for record in index:
            if record.key in removed or record.name in anchor_pool:
                continue
            signature = self._signature(record, anchor_pool, constrained)
            if signature is None:
                continue
            owners.append((record, signature))
            if signature in jobs:
                self.cache_hits += 1
            else:
                jobs[signature] = record

        logger.info(f"Compatibility: {len(owners)} candidates, {len(jobs)} distinct oracle queries")
        verdicts = self._solve_all(jobs, anchor_specs, pool)

        detail = f"cannot be installed with {', '.join(live_anchors)}"
        found = [
            RemovalEntry.for_record(record, RemovalReason.INCOMPATIBLE, detail)
            for record, signature in owners
            if isinstance(verdicts[signature], Unsatisfiable)
        ]
        added = removals.merge(found)
        logger.info(f"compatibility: removed {len(added)} records")
        return added

    def _anchor_pool(
        self,
        index: RepositoryIndex,
        removed: FrozenSet,
        anchors: Sequence[str]
    ) -> Dict[str, Tuple[PackageRecord, ...]]:
        pool = {}
        for name in anchors:
            survivors = tuple(r for r in index.candidates(name) if r.key not in removed)
            if survivors:
                pool[name] = survivors
                continue
            message = "anchor has no surviving candidates; ignored"
            logger.warning(f"{name}: {message}")
            self.diagnostics.append(Diagnostic('missing-anchor', name, message))
        return pool

    @staticmethod
    def _names_constrained_by(pool: Sequence[PackageRecord]) -> FrozenSet[str]:
        """Names the anchor records themselves depend on or constrain."""
        names = set()
        for record in pool:
            names |= _names(record.depends)
            names |= _names(record.constrains)
        return frozenset(names)

    @staticmethod
    def _signature(
        record: PackageRecord,
        anchor_pool: Dict[str, Tuple[PackageRecord, ...]],
        constrained: FrozenSet[str]
    ) -> Optional[Signature]:
        """
        Memo key for a record's query, or None if no anchor is involved.

        Two records with the same name and the same anchor-related
        constraints get the same verdict. Version and build only matter
        when an anchor record itself refers to the name.
        """
        depends = tuple(sorted(d for d in record.depends if dependency_name(d) in anchor_pool))
        constrains = tuple(sorted(c for c in record.constrains if dependency_name(c) in anchor_pool))
        referenced = record.name in constrained
        if not depends and not constrains and not referenced:
            return None
        if referenced:
            return (record.name, depends, constrains, record.key)
        return (record.name, depends, constrains)

    def _solve_all(
        self,
        jobs: Dict[Signature, PackageRecord],
        anchor_specs: List[MatchSpec],
        pool: Tuple[PackageRecord, ...]
    ) -> Dict[Signature, SolveResult]:
        def solve_one(record: PackageRecord) -> SolveResult:
            requested = [MatchSpec(name=record.name, raw=record.name)] + anchor_specs
            return self._ask(requested, (record,) + pool)

        verdicts = {}
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {executor.submit(solve_one, record): signature for signature, record in jobs.items()}
            for future in as_completed(futures):
                verdicts[futures[future]] = future.result()
        return verdicts

    def _ask(self, requested: Sequence[MatchSpec], pool: Sequence[PackageRecord]) -> SolveResult:
        with self._lock:
            self.queries += 1
        try:
            result = self.oracle.solve(requested, pool)
        except OracleError:
            raise
        except Exception as e:
            raise OracleError(f"oracle failed: {e}") from e
        if result is None:
            raise OracleError("oracle returned no result")
        return result
