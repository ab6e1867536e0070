"""
Domain layer for repocurate.

Contains pure domain objects with no I/O or side effects:
- VersionOrder: conda version ordering and pre-release detection
- MatchSpec: package constraints and the matcher
- PackageRecord: one package build from repodata
- Policy: administrator curation settings
- RemovalSet: append-only record of removed packages and why
- Diagnostic: a non-fatal problem reported next to the output
- CompatibilityOracle: the solver contract the compatibility stage drives

Records and policies are immutable; only the RemovalSet grows.
"""

from .version import VersionOrder, InvalidVersion, parse_version, is_prerelease, prerelease_token
from .matchspec import MatchSpec, matches, parse_matchspec, parse_dependency
from .package import PackageRecord, Subdir, Section, parse_record
from .policy import Policy
from .removal import RemovalReason, RemovalEntry, RemovalSet
from .diagnostic import Diagnostic
from .oracle import CompatibilityOracle, Selection, Unsatisfiable, SolveResult

__all__ = [
    'VersionOrder',
    'InvalidVersion',
    'parse_version',
    'is_prerelease',
    'prerelease_token',
    'MatchSpec',
    'matches',
    'parse_matchspec',
    'parse_dependency',
    'PackageRecord',
    'Subdir',
    'Section',
    'parse_record',
    'Policy',
    'RemovalReason',
    'RemovalEntry',
    'RemovalSet',
    'Diagnostic',
    'CompatibilityOracle',
    'Selection',
    'Unsatisfiable',
    'SolveResult',
]
