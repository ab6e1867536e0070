"""
Version ordering for conda packages.

Conda versions are not PEP 440 versions: ``2023c``, ``1.0_rc1`` and
``9e`` are all valid. VersionOrder implements the ordering used across
the conda ecosystem:

- an optional ``N!`` epoch is compared first
- the version is split into dot-separated components (``_`` and ``-``
  count as dots), each component into runs of digits and letters
- numbers compare numerically, strings lexically, and any string sorts
  below any number, so ``1.1a1 < 1.1``
- ``dev`` sorts below every other string and ``post`` above every number
- missing components and elements are padded with ``0``, so ``1.0``
  equals ``1.0.0`` and ``1.0 < 1.0.1``
- a ``+local`` suffix is compared last, with the same rules

Examples:
    VersionOrder("1.1dev1") < VersionOrder("1.1a1") < VersionOrder("1.1rc1")
    VersionOrder("1.1rc1") < VersionOrder("1.1") < VersionOrder("1.1.post1")
"""

import re
from functools import lru_cache, total_ordering
from itertools import zip_longest
from typing import FrozenSet, Iterator, Optional, Tuple, Union

# (rank, number, text): dev < strings < numbers < post
Element = Tuple[int, int, str]
Component = Tuple[Element, ...]

_DEV = (0, 0, 'dev')
_POST = (3, 0, 'post')
_ZERO: Element = (2, 0, '')
_PAD: Component = (_ZERO,)

VERSION_RE = re.compile(r'^[.+!_0-9a-z]+$')
TOKEN_RE = re.compile(r'\d+|[^\d]+')

PRERELEASE_TOKENS: FrozenSet[str] = frozenset({'dev', 'a', 'b', 'rc', 'alpha', 'beta'})

# Single-letter tokens only mark a pre-release when a number follows them
# (1.0b2), otherwise calendar versions like tzdata's 2023b would match.
_NUMBERED_TOKENS = frozenset({'a', 'b'})


class InvalidVersion(ValueError):
    """Raised when a version string cannot be parsed."""


def _element(token: str) -> Element:
    if token.isdigit():
        return (2, int(token), '')
    if token == 'dev':
        return _DEV
    if token == 'post':
        return _POST
    return (1, 0, token)


def _split_components(text: str, original: str) -> Tuple[Component, ...]:
    if text.endswith('_'):
        # "1.1_" keeps its trailing underscore as a component of its own
        text = text[:-1].replace('_', '.') + '._'
    else:
        text = text.replace('_', '.')

    components = []
    for part in text.split('.'):
        if not part:
            raise InvalidVersion(f"empty version component in {original!r}")
        tokens = TOKEN_RE.findall(part)
        elements = [_element(token) for token in tokens]
        if not tokens[0].isdigit():
            elements.insert(0, _ZERO)
        components.append(tuple(elements))
    return tuple(components)


def _normalize(components: Tuple[Component, ...]) -> Tuple[Component, ...]:
    """Strip zero padding so that padded-equal versions normalize identically."""
    stripped = []
    for component in components:
        elements = list(component)
        while elements and elements[-1] == _ZERO:
            elements.pop()
        stripped.append(tuple(elements))
    while stripped and not stripped[-1]:
        stripped.pop()
    return tuple(stripped)


def _compare(left: Tuple[Component, ...], right: Tuple[Component, ...]) -> int:
    for lcomp, rcomp in zip_longest(left, right, fillvalue=_PAD):
        for lelem, relem in zip_longest(lcomp, rcomp, fillvalue=_ZERO):
            if lelem != relem:
                return -1 if lelem < relem else 1
    return 0


def _has_prefix(components: Tuple[Component, ...], prefix: Tuple[Component, ...]) -> bool:
    if not prefix:
        return True
    for index, pcomp in enumerate(prefix):
        vcomp = components[index] if index < len(components) else _PAD
        if index < len(prefix) - 1:
            width = max(len(vcomp), len(pcomp))
        else:
            width = len(pcomp)
        for position in range(width):
            velem = vcomp[position] if position < len(vcomp) else _ZERO
            pelem = pcomp[position] if position < len(pcomp) else _ZERO
            if velem != pelem:
                return False
    return True


@total_ordering
class VersionOrder:
    """
    A parsed, comparable conda version.

    ``str(version)`` returns the original text unchanged, which is what
    gets written back to repodata.
    """

    __slots__ = ('original', 'epoch', 'components', 'local', '_key')

    def __init__(self, version: str):
        if not isinstance(version, str):
            raise InvalidVersion(f"version must be a string, got {type(version).__name__}")
        self.original = version
        text = version.strip().lower()
        if not text:
            raise InvalidVersion("empty version string")
        invalid = not VERSION_RE.match(text)
        if invalid and '-' in text and '_' not in text:
            # dashes stand in for underscores unless both appear
            text = text.replace('-', '_')
            invalid = not VERSION_RE.match(text)
        if invalid:
            raise InvalidVersion(f"invalid character(s) in version {version!r}")

        epoch = 0
        if '!' in text:
            epoch_text, _, text = text.partition('!')
            if not epoch_text.isdigit() or '!' in text:
                raise InvalidVersion(f"invalid epoch in version {version!r}")
            epoch = int(epoch_text)

        local_text = ''
        if '+' in text:
            text, _, local_text = text.partition('+')
            if not local_text or '+' in local_text:
                raise InvalidVersion(f"invalid local version in {version!r}")
        if not text:
            raise InvalidVersion(f"missing version before local part in {version!r}")

        self.epoch = epoch
        self.components = _split_components(text, version)
        self.local = _split_components(local_text, version) if local_text else ()
        self._key = (epoch, _normalize(self.components), _normalize(self.local))

    def __str__(self) -> str:
        return self.original

    def __repr__(self) -> str:
        return f"VersionOrder({self.original!r})"

    def __hash__(self) -> int:
        return hash(self._key)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VersionOrder):
            return NotImplemented
        return self._key == other._key

    def __lt__(self, other: 'VersionOrder') -> bool:
        if not isinstance(other, VersionOrder):
            return NotImplemented
        if self.epoch != other.epoch:
            return self.epoch < other.epoch
        result = _compare(self.components, other.components)
        if result == 0:
            result = _compare(self.local, other.local)
        return result < 0

    def startswith(self, prefix: 'VersionOrder') -> bool:
        """True if this version lies under ``prefix.*`` (``3.9.18`` under ``3.9``)."""
        if self.epoch != prefix.epoch:
            return False
        if prefix.local:
            return (_compare(self.components, prefix.components) == 0
                    and _has_prefix(self.local, prefix.local))
        return _has_prefix(self.components, prefix.components)

    def elements(self) -> Iterator[Tuple[Element, ...]]:
        """Yield each component of the version and local parts."""
        yield from self.components
        yield from self.local


@lru_cache(maxsize=65536)
def parse_version(version: str) -> VersionOrder:
    """Parse a version string, caching the result."""
    return VersionOrder(version)


def prerelease_token(
    version: Union[str, VersionOrder],
    tokens: FrozenSet[str] = PRERELEASE_TOKENS
) -> Optional[str]:
    """
    Return the first pre-release token found in a version, or None.

    Args:
        version: Version string or parsed VersionOrder
        tokens: Tokens that count as pre-release markers

    Returns:
        The matching token (e.g. ``"rc"``) or None
    """
    if isinstance(version, str):
        version = parse_version(version)
    for component in version.elements():
        for index, (rank, _, text) in enumerate(component):
            if rank > 1 or text not in tokens:
                continue
            if text in _NUMBERED_TOKENS:
                following = component[index + 1] if index + 1 < len(component) else None
                if following is None or following[0] != 2:
                    continue
            return text
    return None


def is_prerelease(
    version: Union[str, VersionOrder],
    tokens: FrozenSet[str] = PRERELEASE_TOKENS
) -> bool:
    """True if the version carries a recognized pre-release token."""
    return prerelease_token(version, tokens) is not None
