"""
Infrastructure layer for repocurate.

Contains abstractions for external systems:
- RepodataStore: reading and atomically writing repodata.json files
- ResolvelibOracle: the default compatibility solver

These provide clean interfaces that can be swapped out for testing.
"""

from .repodata_store import RepodataStore, read_repodata, REPODATA_FILENAME
from .solver import ResolvelibOracle

__all__ = [
    'RepodataStore',
    'read_repodata',
    'REPODATA_FILENAME',
    'ResolvelibOracle',
]
