"""
Repository index for repocurate.

Loads repodata documents into PackageRecords grouped by name, and keeps
the per-subdir document envelope (info, removed, repodata_version) the
renderer needs to write the curated result back out.
"""

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from ..domain import Diagnostic, PackageRecord, Policy, Section, Subdir, parse_record
from ..domain.package import RecordKey
from ..errors import LoadError, MalformedRecordError

logger = logging.getLogger(__name__)

RawDocument = Union[Mapping[str, Any], str, bytes]


@dataclass
class SubdirDocument:
    """Envelope of one subdir's repodata, minus the parsed records."""
    subdir: Subdir
    info: Dict[str, Any]
    base_url: str
    removed: List[str] = field(default_factory=list)
    repodata_version: Optional[int] = None
    declared_base_url: bool = False


class RepositoryIndex:
    """
    In-memory index of every package record across the curated subdirs.

    Records are owned here and referenced elsewhere by key. Nothing is
    deleted from the index while the pipeline runs; stages consult the
    RemovalSet instead.

    Example:
        index = load({"noarch": noarch_json, "linux-64": linux_json}, policy)
        for record in index.candidates("python"):
            print(record.filename)
    """

    def __init__(
        self,
        records: Iterable[PackageRecord] = (),
        documents: Optional[Mapping[Subdir, SubdirDocument]] = None,
        diagnostics: Iterable[Diagnostic] = ()
    ):
        self._records: Dict[RecordKey, PackageRecord] = {}
        grouped: Dict[str, List[PackageRecord]] = {}
        for record in records:
            if record.key in self._records:
                raise ValueError(f"duplicate record key {record.key}")
            self._records[record.key] = record
            grouped.setdefault(record.name, []).append(record)

        self._by_name: Dict[str, Tuple[PackageRecord, ...]] = {
            name: tuple(sorted(group, key=lambda r: r.sort_key))
            for name, group in sorted(grouped.items())
        }
        self.documents: Dict[Subdir, SubdirDocument] = dict(documents or {})
        self.diagnostics: List[Diagnostic] = list(diagnostics)

    def candidates(self, name: str, subdir: Optional[Subdir] = None) -> Tuple[PackageRecord, ...]:
        """
        All records with this name, removed or not, in version order.

        Args:
            name: Package name
            subdir: Restrict to one subdir (default: every subdir)
        """
        group = self._by_name.get(name, ())
        if subdir is None:
            return group
        return tuple(r for r in group if r.subdir == subdir)

    def get(self, key: RecordKey) -> Optional[PackageRecord]:
        return self._records.get(key)

    def names(self) -> List[str]:
        return list(self._by_name)

    def subdirs(self) -> List[Subdir]:
        return sorted(self.documents, key=lambda s: s.value)

    def base_url(self, subdir: Subdir) -> str:
        return self.documents[subdir].base_url

    def records(self, subdir: Optional[Subdir] = None) -> Iterator[PackageRecord]:
        """Every record, grouped by name and in version order within a name."""
        for group in self._by_name.values():
            for record in group:
                if subdir is None or record.subdir == subdir:
                    yield record

    def __iter__(self) -> Iterator[PackageRecord]:
        return self.records()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name


def _decode(subdir: str, document: RawDocument) -> Mapping[str, Any]:
    if isinstance(document, (str, bytes)):
        try:
            document = json.loads(document)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise LoadError(subdir, f"invalid JSON: {e}") from e
    if not isinstance(document, Mapping):
        raise LoadError(subdir, "top-level document is not an object")
    return document


def _load_subdir(
    subdir: Subdir,
    document: RawDocument,
    policy: Policy
) -> Tuple[SubdirDocument, List[PackageRecord], List[Diagnostic]]:
    data = _decode(subdir.value, document)

    info = data.get('info', {})
    if info is None:
        info = {}
    if not isinstance(info, Mapping):
        raise LoadError(subdir.value, "'info' is not an object")

    sections = {}
    for section in Section:
        entries = data.get(section.value, {})
        if entries is None:
            entries = {}
        if not isinstance(entries, Mapping):
            raise LoadError(subdir.value, f"'{section.value}' is not an object")
        sections[section] = entries

    removed = data.get('removed', [])
    if not isinstance(removed, list):
        raise LoadError(subdir.value, "'removed' is not a list")

    declared = info.get('base_url')
    has_base_url = isinstance(declared, str) and bool(declared)
    envelope = SubdirDocument(
        subdir=subdir,
        info=dict(info),
        base_url=declared if has_base_url else policy.base_url_for(subdir.value),
        removed=list(removed),
        repodata_version=data.get('repodata_version'),
        declared_base_url=has_base_url,
    )

    records = []
    diagnostics = []
    seen = set()
    for section, entries in sections.items():
        for filename, raw in entries.items():
            if filename in seen:
                diagnostics.append(Diagnostic('duplicate-record', f"{subdir.value}/{filename}",
                                              f"listed again under '{section.value}', ignored"))
                continue
            seen.add(filename)
            try:
                records.append(parse_record(subdir, filename, raw, section))
            except MalformedRecordError as e:
                logger.warning(f"Skipping malformed record {e}")
                diagnostics.append(Diagnostic('malformed-record', f"{subdir.value}/{filename}", e.reason))

    logger.info(f"Loaded {len(records)} records from {subdir.value}")
    return envelope, records, diagnostics


def load(
    raw_metadata_per_subdir: Mapping[Union[str, Subdir], RawDocument],
    policy: Optional[Policy] = None,
    max_workers: int = 2
) -> RepositoryIndex:
    """
    Parse repodata documents into a RepositoryIndex.

    Args:
        raw_metadata_per_subdir: subdir -> repodata (parsed mapping or JSON text)
        policy: Supplies the channel alias used when a document declares
            no ``info.base_url``
        max_workers: Subdirs parsed concurrently

    Returns:
        RepositoryIndex over every well-formed record

    Raises:
        LoadError: if any document is structurally invalid or the subdir
            is not one the engine curates
    """
    policy = policy or Policy()

    jobs = []
    for subdir, document in raw_metadata_per_subdir.items():
        if not isinstance(subdir, Subdir):
            try:
                subdir = Subdir.parse(subdir)
            except ValueError as e:
                raise LoadError(str(subdir), str(e)) from e
        jobs.append((subdir, document))

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        futures = [executor.submit(_load_subdir, subdir, document, policy) for subdir, document in jobs]
        results = [future.result() for future in futures]

    documents = {}
    records = []
    diagnostics = []
    for envelope, subdir_records, subdir_diagnostics in results:
        documents[envelope.subdir] = envelope
        records.extend(subdir_records)
        diagnostics.extend(subdir_diagnostics)

    return RepositoryIndex(records, documents, diagnostics)
