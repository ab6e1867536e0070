"""
Service layer for repocurate.

Contains the pipeline stages that operate on domain objects:
- load / RepositoryIndex: parsing repodata into records
- FilterService: primary filters
- CompatibilityService: oracle-driven pruning against anchor packages
- ClosureService: fixpoint removal of orphaned records
- RenderService: surviving records back to repodata documents
- CurationService: the whole pipeline with progress and statistics

Services are the primary API for commands to use.
"""

from .index_service import RepositoryIndex, SubdirDocument, load
from .filter_service import FilterService
from .compat_service import CompatibilityService
from .closure_service import ClosureService, ClosureResult
from .render_service import RenderService, dumps
from .curation_service import CurationService, CurationResult, StageStats, curate

__all__ = [
    'RepositoryIndex',
    'SubdirDocument',
    'load',
    'FilterService',
    'CompatibilityService',
    'ClosureService',
    'ClosureResult',
    'RenderService',
    'dumps',
    'CurationService',
    'CurationResult',
    'StageStats',
    'curate',
]
