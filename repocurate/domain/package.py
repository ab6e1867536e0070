"""
Package record domain object for repocurate.

PackageRecord is the typed, immutable view of one entry in a repodata
``packages`` / ``packages.conda`` mapping. The raw mapping is kept
alongside so the renderer can write surviving records back unchanged.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Tuple

from ..errors import MalformedRecordError
from .version import InvalidVersion, VersionOrder, parse_version


class Subdir(Enum):
    """Repository subdirectories the engine curates."""
    NOARCH = "noarch"
    LINUX_64 = "linux-64"

    @classmethod
    def parse(cls, value: str) -> 'Subdir':
        try:
            return cls(value)
        except ValueError:
            known = ", ".join(s.value for s in cls)
            raise ValueError(f"unsupported subdir {value!r} (expected one of: {known})") from None


class Section(Enum):
    """Which repodata mapping a record was listed under."""
    TARBZ2 = "packages"
    CONDA = "packages.conda"


RecordKey = Tuple[str, str]  # (subdir, filename)


def _split_features(value: Any) -> FrozenSet[str]:
    """track_features/features may be a space/comma separated string or a list."""
    if value is None or value == "":
        return frozenset()
    if isinstance(value, str):
        return frozenset(part for part in re.split(r'[\s,]+', value) if part)
    if isinstance(value, (list, tuple)):
        return frozenset(str(part) for part in value if part)
    raise TypeError(f"expected string or list, got {type(value).__name__}")


def _string_list(value: Any, field_name: str) -> Tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise TypeError(f"{field_name} must be a list of strings")
    return tuple(value)


@dataclass(frozen=True)
class PackageRecord:
    """
    Immutable representation of one package build.

    ``(subdir, filename)`` identifies a record uniquely across the index.
    Comparison and hashing ignore the raw mapping.

    Example:
        record = parse_record("linux-64", "python-3.9.18-h2_1.conda", raw)
        record.key            -> ("linux-64", "python-3.9.18-h2_1.conda")
        record.build_prefix   -> "h2"
    """

    name: str
    version: VersionOrder
    build_string: str
    build_number: int
    subdir: Subdir
    filename: str
    depends: Tuple[str, ...] = ()
    constrains: Tuple[str, ...] = ()
    track_features: FrozenSet[str] = frozenset()
    features: FrozenSet[str] = frozenset()
    section: Section = Section.CONDA
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False, repr=False)

    @property
    def key(self) -> RecordKey:
        return (self.subdir.value, self.filename)

    @property
    def build_prefix(self) -> str:
        """
        Build string without its trailing build number.

        ``h2_1`` with build number 1 -> ``h2``; ``py39_3`` -> ``py39``.
        Builds that differ only by this suffix are successive builds of
        the same recipe variant.
        """
        number = str(self.build_number)
        build = self.build_string
        if build.endswith(number) and len(build) > len(number):
            build = build[:-len(number)]
            if build.endswith('_'):
                build = build[:-1]
        return build

    @property
    def sort_key(self) -> Tuple[VersionOrder, int, str, str]:
        return (self.version, self.build_number, self.subdir.value, self.filename)

    def __str__(self) -> str:
        return f"{self.name}-{self.version}-{self.build_string}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'version': str(self.version),
            'build': self.build_string,
            'build_number': self.build_number,
            'subdir': self.subdir.value,
            'filename': self.filename,
            'depends': list(self.depends),
            'constrains': list(self.constrains),
            'track_features': sorted(self.track_features),
        }


def parse_record(
    subdir: Subdir,
    filename: str,
    raw: Mapping[str, Any],
    section: Section = Section.CONDA
) -> PackageRecord:
    """
    Build a PackageRecord from a raw repodata entry.

    Args:
        subdir: Subdirectory the entry was loaded from
        filename: Key of the entry in the packages mapping
        raw: The entry itself
        section: Mapping the entry came from

    Returns:
        Parsed PackageRecord

    Raises:
        MalformedRecordError: if name, version or build are missing or invalid
    """
    key = (subdir.value, filename)
    if not isinstance(raw, Mapping):
        raise MalformedRecordError(key, "record is not an object")

    for required in ('name', 'version', 'build'):
        value = raw.get(required)
        if not isinstance(value, str) or not value.strip():
            raise MalformedRecordError(key, f"missing or invalid '{required}'")

    try:
        version = parse_version(raw['version'])
    except InvalidVersion as e:
        raise MalformedRecordError(key, str(e)) from e

    build_number = raw.get('build_number', 0)
    if isinstance(build_number, bool) or not isinstance(build_number, int) or build_number < 0:
        raise MalformedRecordError(key, f"invalid build_number {build_number!r}")

    try:
        depends = _string_list(raw.get('depends'), 'depends')
        constrains = _string_list(raw.get('constrains'), 'constrains')
        track_features = _split_features(raw.get('track_features'))
        features = _split_features(raw.get('features'))
    except TypeError as e:
        raise MalformedRecordError(key, str(e)) from e

    return PackageRecord(
        name=raw['name'],
        version=version,
        build_string=raw['build'],
        build_number=build_number,
        subdir=subdir,
        filename=filename,
        depends=depends,
        constrains=constrains,
        track_features=track_features,
        features=features,
        section=section,
        raw=raw,
    )
