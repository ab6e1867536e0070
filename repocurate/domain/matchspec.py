"""
MatchSpec parsing and matching for repocurate.

A MatchSpec names a package and optionally restricts its version, build
string and build number. Supported forms:

    python                              any python
    python 3.9.*                        prefix match
    python >=3.9,<3.10                  comma = AND
    openssl >=1.1.1,<1.1.2a|>=3.0       pipe = OR (AND binds tighter)
    python 3.9.18 h2_1                  exact version and build
    python >=3.9 *_cpython              build glob
    python=3.9                          conda shorthand for 3.9.*
    python=3.9.18=h2_1                  exact version and build
    python[version='>=3.9',build_number='>=1']
    conda-forge::python >=3.9           channel prefix is ignored

The same ``matches`` function serves both the policy allow-list and the
dependency checks of the closure engine.
"""

import fnmatch
import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Optional, Tuple

from ..errors import ConstraintParseError
from .version import InvalidVersion, VersionOrder, parse_version

logger = logging.getLogger(__name__)

NAME_RE = re.compile(r'^[A-Za-z0-9_][A-Za-z0-9_.\-]*$')
BRACKET_RE = re.compile(r'^(?P<head>[^\[]*)\[(?P<body>.*)\]\s*$')
BRACKET_ITEM_RE = re.compile(r'''(\w+)\s*=\s*("[^"]*"|'[^']*'|[^,\]]*)''')
OPERATOR_SPACE_RE = re.compile(r'(==|!=|>=|<=|~=|>|<)\s+')
TERM_RE = re.compile(r'^(==|!=|>=|<=|~=|>|<|=)?(.*)$')
NAME_END_RE = re.compile(r'[=<>!~\s]')

_COMPARATORS = {
    '>=': lambda a, b: a >= b,
    '<=': lambda a, b: a <= b,
    '>': lambda a, b: a > b,
    '<': lambda a, b: a < b,
    '==': lambda a, b: a == b,
    '!=': lambda a, b: a != b,
}


@dataclass(frozen=True)
class VersionTerm:
    """One comparison inside a version expression, e.g. ``>=3.9`` or ``2.7.*``."""
    op: str  # >=, <=, >, <, ==, !=, startswith, !startswith, ~=, *
    operand: Optional[VersionOrder] = None
    prefix: Optional[VersionOrder] = None  # only for ~=

    def match(self, version: VersionOrder) -> bool:
        if self.op == '*':
            return True
        if self.op == 'startswith':
            return version.startswith(self.operand)
        if self.op == '!startswith':
            return not version.startswith(self.operand)
        if self.op == '~=':
            return version >= self.operand and version.startswith(self.prefix)
        return _COMPARATORS[self.op](version, self.operand)


@dataclass(frozen=True)
class VersionSpec:
    """A version expression: OR of AND-groups of VersionTerms."""
    text: str
    groups: Tuple[Tuple[VersionTerm, ...], ...]

    def match(self, version: VersionOrder) -> bool:
        return any(all(term.match(version) for term in group) for group in self.groups)

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class BuildNumberSpec:
    """Build number predicate, e.g. ``2`` or ``>=2``."""
    op: str
    value: int

    def match(self, build_number: int) -> bool:
        return _COMPARATORS[self.op](build_number, self.value)


def _parse_term(text: str, raw: str) -> VersionTerm:
    if text == '*':
        return VersionTerm('*')
    match = TERM_RE.match(text)
    op, operand = match.group(1) or '', match.group(2)

    prefix = False
    if operand.endswith('.*'):
        operand, prefix = operand[:-2], True
    elif operand.endswith('*'):
        operand, prefix = operand[:-1], True
    if op == '=':
        op, prefix = '', True
    if not operand:
        raise ConstraintParseError(raw, f"empty version in {text!r}")
    if '*' in operand:
        raise ConstraintParseError(raw, f"unsupported wildcard position in {text!r}")

    try:
        version = parse_version(operand)
    except InvalidVersion as e:
        raise ConstraintParseError(raw, str(e)) from e

    if op == '~=':
        if prefix or '.' not in operand:
            raise ConstraintParseError(raw, f"invalid compatible-release term {text!r}")
        return VersionTerm('~=', version, parse_version(operand.rsplit('.', 1)[0]))
    if prefix:
        if op in ('', '=='):
            return VersionTerm('startswith', version)
        if op == '!=':
            return VersionTerm('!startswith', version)
        # ">=1.2.*" means ">=1.2"
        return VersionTerm(op, version)
    return VersionTerm(op or '==', version)


def parse_version_spec(text: str, raw: Optional[str] = None) -> VersionSpec:
    """Parse a version expression such as ``>=1.2,<2|3.0.*``."""
    raw = raw or text
    text = text.strip()
    if not text:
        raise ConstraintParseError(raw, "empty version expression")
    if '(' in text or ')' in text:
        raise ConstraintParseError(raw, "parenthesised version expressions are not supported")
    groups = []
    for alternative in text.split('|'):
        terms = [part.strip() for part in alternative.split(',')]
        if not all(terms):
            raise ConstraintParseError(raw, f"empty term in {text!r}")
        groups.append(tuple(_parse_term(term, raw) for term in terms))
    return VersionSpec(text=text, groups=tuple(groups))


def _parse_build_number(text: str, raw: str) -> BuildNumberSpec:
    text = text.strip()
    match = re.match(r'^(==|!=|>=|<=|>|<)?\s*(\d+)$', text)
    if not match:
        raise ConstraintParseError(raw, f"invalid build number {text!r}")
    return BuildNumberSpec(match.group(1) or '==', int(match.group(2)))


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in '\'"':
        return value[1:-1]
    return value


@dataclass(frozen=True)
class MatchSpec:
    """
    A parsed package constraint.

    A MatchSpec without version, build or build-number predicates
    matches every record with the same name.
    """

    name: str
    version: Optional[VersionSpec] = None
    build: Optional[str] = None
    build_number: Optional[BuildNumberSpec] = None
    raw: str = ''

    @classmethod
    def parse(cls, text: str) -> 'MatchSpec':
        """
        Parse a matchspec string.

        Raises:
            ConstraintParseError: if the string is not a valid matchspec
        """
        if not isinstance(text, str):
            raise ConstraintParseError(repr(text), "matchspec must be a string")
        raw = text
        text = text.strip()
        if not text:
            raise ConstraintParseError(raw, "empty matchspec")

        options = {}
        bracket = BRACKET_RE.match(text)
        if bracket:
            text = bracket.group('head').strip()
            body = bracket.group('body').strip()
            items = BRACKET_ITEM_RE.findall(body)
            if body and not items:
                raise ConstraintParseError(raw, f"cannot parse bracket options {body!r}")
            for key, value in items:
                if key not in ('version', 'build', 'build_number'):
                    raise ConstraintParseError(raw, f"unsupported bracket option {key!r}")
                options[key] = _unquote(value)

        if '::' in text:
            text = text.split('::', 1)[1]
        text = OPERATOR_SPACE_RE.sub(r'\1', text)

        end = NAME_END_RE.search(text)
        name = text[:end.start()] if end else text
        rest = text[len(name):]
        if not NAME_RE.match(name):
            raise ConstraintParseError(raw, f"invalid package name {name!r}")

        version_text = None
        build = None
        if rest.startswith('=') and not rest.startswith('=='):
            # conda shorthand: name=1.2 or name=1.2=build
            version_text, _, build = rest[1:].partition('=')
            version_text = version_text.strip()
            if build:
                build = build.strip()
            else:
                build = None
                if not version_text.endswith('*'):
                    version_text = f"{version_text}.*"
        else:
            parts = rest.split()
            if len(parts) > 2:
                raise ConstraintParseError(raw, "too many fields")
            if parts:
                version_text = parts[0]
            if len(parts) == 2:
                build = parts[1]

        version_text = options.get('version', version_text)
        build = options.get('build', build)

        version = None
        if version_text and version_text != '*':
            version = parse_version_spec(version_text, raw)
        if build == '*':
            build = None

        build_number = None
        if 'build_number' in options:
            build_number = _parse_build_number(options['build_number'], raw)

        return cls(
            name=name,
            version=version,
            build=build or None,
            build_number=build_number,
            raw=raw.strip(),
        )

    def match(self, record: Any) -> bool:
        """True if the record satisfies this spec."""
        return matches(record, self)

    @property
    def is_name_only(self) -> bool:
        return self.version is None and self.build is None and self.build_number is None

    def __str__(self) -> str:
        return self.raw or self.name


def matches(record: Any, constraint: MatchSpec) -> bool:
    """
    Check whether a package record satisfies a constraint.

    Args:
        record: Object with name, version (VersionOrder), build_string
            and build_number attributes (normally a PackageRecord)
        constraint: Parsed MatchSpec

    Returns:
        True if name, version, build and build number all match
    """
    if record.name != constraint.name:
        return False
    if constraint.version is not None and not constraint.version.match(record.version):
        return False
    if constraint.build is not None:
        if any(c in constraint.build for c in '*?['):
            if not fnmatch.fnmatchcase(record.build_string, constraint.build):
                return False
        elif record.build_string != constraint.build:
            return False
    if constraint.build_number is not None and not constraint.build_number.match(record.build_number):
        return False
    return True


@lru_cache(maxsize=262144)
def parse_matchspec(text: str) -> MatchSpec:
    """Parse and cache a matchspec. Raises ConstraintParseError."""
    return MatchSpec.parse(text)


@lru_cache(maxsize=262144)
def parse_dependency(text: str) -> Optional[MatchSpec]:
    """
    Parse a dependency string from a package record.

    Unlike parse_matchspec this never raises: an unparsable dependency
    yields None and the caller treats it as unsatisfiable.
    """
    try:
        return MatchSpec.parse(text)
    except ConstraintParseError as e:
        logger.debug(f"Unparsable dependency {text!r}: {e.reason}")
        return None


def dependency_name(text: str) -> str:
    """Best-effort package name of a dependency string, even an unparsable one."""
    text = text.strip()
    if '::' in text:
        text = text.split('::', 1)[1]
    end = re.search(r'[\[=<>!~\s]', text)
    return text[:end.start()] if end else text
