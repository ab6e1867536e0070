"""
repocurate - Curation engine for conda repodata.

repocurate takes the noarch and linux-64 repodata of a channel and
produces a smaller, self-consistent subset: every surviving package
matches the administrator's policy and every one of its dependencies
still has a surviving candidate.

Quick Start:
    import repocurate

    policy = repocurate.Policy.build(
        allow_list=repocurate.build_allow_list(specs=["python >=3.9"]),
        banned_features=["pypy"],
        anchors=["python"],
    )

    result = repocurate.curate({"noarch": noarch, "linux-64": linux64}, policy)
    print(result.remaining, "of", result.loaded, "records kept")

    for entry in result.explanations():
        print(entry.explain())

    text = repocurate.dumps(result.documents["linux-64"])

Domain Objects:
    PackageRecord - One package build from repodata
    MatchSpec - Parsed package constraint
    Policy - Curation settings
    RemovalSet - Removed records and why

Services:
    CurationService - The whole pipeline with progress reporting
    FilterService, CompatibilityService, ClosureService, RenderService

Compatibility oracles:
    ResolvelibOracle - default; any object with a matching solve() works
"""

__version__ = "0.3.0"

from .domain import (
    CompatibilityOracle,
    Diagnostic,
    MatchSpec,
    PackageRecord,
    Policy,
    RemovalEntry,
    RemovalReason,
    RemovalSet,
    Selection,
    Unsatisfiable,
    VersionOrder,
    is_prerelease,
    matches,
)
from .errors import (
    ClosureNonConvergenceError,
    ConstraintParseError,
    CurationError,
    LoadError,
    MalformedRecordError,
    OracleError,
)
from .infra import ResolvelibOracle, RepodataStore
from .matchspecs import build_allow_list
from .services import (
    CurationResult,
    CurationService,
    RepositoryIndex,
    curate,
    dumps,
    load,
)

__all__ = [
    '__version__',
    'CompatibilityOracle',
    'Diagnostic',
    'MatchSpec',
    'PackageRecord',
    'Policy',
    'RemovalEntry',
    'RemovalReason',
    'RemovalSet',
    'Selection',
    'Unsatisfiable',
    'VersionOrder',
    'is_prerelease',
    'matches',
    'ClosureNonConvergenceError',
    'ConstraintParseError',
    'CurationError',
    'LoadError',
    'MalformedRecordError',
    'OracleError',
    'ResolvelibOracle',
    'RepodataStore',
    'build_allow_list',
    'CurationResult',
    'CurationService',
    'RepositoryIndex',
    'curate',
    'dumps',
    'load',
]
