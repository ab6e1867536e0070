"""
Renderer for repocurate.

Turns the index minus the RemovalSet back into one repodata document per
subdir. Surviving records are written exactly as they were read; only
the envelope (``info.base_url``, ``repodata_version``) is rewritten.
"""

import json
import logging
from typing import Any, Dict, FrozenSet, Optional

from ..domain import RemovalSet, Section, Subdir
from ..domain.package import RecordKey
from .index_service import RepositoryIndex

logger = logging.getLogger(__name__)

# base_url in info requires repodata v2 (CEP-15)
REPODATA_VERSION = 2


def dumps(document: Dict[str, Any], indent: Optional[int] = None) -> str:
    """Serialize a rendered document. Same input, same bytes."""
    text = json.dumps(document, indent=indent, sort_keys=True, ensure_ascii=False,
                      separators=(',', ': ') if indent is not None else (',', ':'))
    return text + '\n'


class RenderService:
    """
    Materializes surviving records into repodata documents.

    Example:
        documents = RenderService().render(index, removals)
        text = dumps(documents["linux-64"])
    """

    def render(self, index: RepositoryIndex, removals: RemovalSet) -> Dict[str, Dict[str, Any]]:
        """Render every subdir of the index. Keys are subdir names, sorted."""
        removed = removals.snapshot()
        return {subdir.value: self.render_subdir(index, removed, subdir) for subdir in index.subdirs()}

    def render_subdir(
        self,
        index: RepositoryIndex,
        removed: FrozenSet[RecordKey],
        subdir: Subdir
    ) -> Dict[str, Any]:
        envelope = index.documents[subdir]
        info = dict(envelope.info)
        info['base_url'] = envelope.base_url
        info.setdefault('subdir', subdir.value)

        sections: Dict[Section, Dict[str, Any]] = {section: {} for section in Section}
        for record in index.records(subdir):
            if record.key not in removed:
                sections[record.section][record.filename] = record.raw

        kept = sum(len(entries) for entries in sections.values())
        logger.info(f"Rendered {kept} records for {subdir.value}")
        document = {
            'info': info,
            'removed': list(envelope.removed),
            'repodata_version': REPODATA_VERSION,
        }
        for section, entries in sections.items():
            document[section.value] = entries
        return document
