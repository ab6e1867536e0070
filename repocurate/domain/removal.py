"""
Removal tracking for repocurate.

The RemovalSet is the single piece of shared mutable state in the
pipeline. It only grows: stages add keys, nothing ever takes one out.
Adding a key twice is a no-op and the first recorded reason wins.
"""

import threading
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Union

from .package import PackageRecord, RecordKey


class RemovalReason(Enum):
    """Why a record was removed."""
    POLICY_MISMATCH = "policy-mismatch"
    SUPERSEDED = "superseded"
    PRERELEASE = "prerelease"
    BANNED_FEATURE = "banned-feature"
    ARCHITECTURE = "architecture"
    INCOMPATIBLE = "incompatible"
    ORPHANED = "orphaned"


@dataclass(frozen=True)
class RemovalEntry:
    """One removed record and the reason it was removed."""
    key: RecordKey
    name: str
    reason: RemovalReason
    detail: str = ""

    @classmethod
    def for_record(cls, record: PackageRecord, reason: RemovalReason, detail: str = "") -> 'RemovalEntry':
        return cls(key=record.key, name=record.name, reason=reason, detail=detail)

    @property
    def filename(self) -> str:
        return self.key[1]

    def explain(self) -> str:
        """Human-readable explanation line, e.g. for ``--explain``."""
        line = f"{self.filename} removed: {self.reason.value}"
        if self.detail:
            line += f": {self.detail}"
        return line

    def to_dict(self) -> Dict[str, str]:
        return {
            'subdir': self.key[0],
            'filename': self.key[1],
            'name': self.name,
            'reason': self.reason.value,
            'detail': self.detail,
        }


class RemovalSet:
    """
    Thread-safe, append-only set of removed record keys.

    Example:
        removals = RemovalSet()
        removals.add(RemovalEntry.for_record(record, RemovalReason.SUPERSEDED))
        record.key in removals  -> True
    """

    def __init__(self, entries: Iterable[RemovalEntry] = ()):
        self._lock = threading.Lock()
        self._entries: Dict[RecordKey, RemovalEntry] = {}
        for entry in entries:
            self.add(entry)

    def add(self, entry: RemovalEntry) -> bool:
        """Record a removal. Returns True if the key was not already removed."""
        with self._lock:
            if entry.key in self._entries:
                return False
            self._entries[entry.key] = entry
            return True

    def merge(self, entries: Iterable[RemovalEntry]) -> List[RemovalEntry]:
        """Add a batch atomically. Returns the entries whose keys were new."""
        added = []
        with self._lock:
            for entry in entries:
                if entry.key not in self._entries:
                    self._entries[entry.key] = entry
                    added.append(entry)
        return added

    def snapshot(self) -> FrozenSet[RecordKey]:
        """Frozen copy of the removed keys at this instant."""
        with self._lock:
            return frozenset(self._entries)

    def get(self, key: RecordKey) -> Optional[RemovalEntry]:
        with self._lock:
            return self._entries.get(key)

    def entries(self) -> List[RemovalEntry]:
        """All entries, sorted by key."""
        with self._lock:
            return sorted(self._entries.values(), key=lambda e: e.key)

    def counts(self) -> Counter:
        """Number of removals per reason."""
        with self._lock:
            return Counter(entry.reason for entry in self._entries.values())

    def __contains__(self, item: Union[RecordKey, PackageRecord]) -> bool:
        key = item.key if isinstance(item, PackageRecord) else item
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self) -> Iterator[RecordKey]:
        return iter(sorted(self.snapshot()))
