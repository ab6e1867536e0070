"""
Error taxonomy for repocurate.

Recoverable:
    MalformedRecordError - one bad package record; the record is dropped

Fatal (abort before any output is written):
    LoadError - a subdir's repodata document is structurally invalid
    ConstraintParseError - a policy specifier cannot be parsed
    OracleError - the compatibility oracle failed
    ClosureNonConvergenceError - the closure pass budget was exhausted

ConstraintParseError raised while reading a dependency field of a package
record is not fatal; the closure engine treats that dependency as
unsatisfiable instead.
"""

from typing import Optional, Tuple


class CurationError(Exception):
    """Base class for every error raised by the curation engine."""


class MalformedRecordError(CurationError):
    """A single package record is missing required fields or is unparsable."""

    def __init__(self, key: Tuple[str, str], reason: str):
        self.key = key
        self.reason = reason
        subdir, filename = key
        super().__init__(f"{subdir}/{filename}: {reason}")


class LoadError(CurationError):
    """A repodata document cannot be parsed as a whole."""

    def __init__(self, subdir: str, reason: str):
        self.subdir = subdir
        self.reason = reason
        super().__init__(f"cannot load {subdir} repodata: {reason}")


class ConstraintParseError(CurationError, ValueError):
    """A matchspec string is not a valid constraint."""

    def __init__(self, spec: str, reason: str):
        self.spec = spec
        self.reason = reason
        super().__init__(f"invalid matchspec {spec!r}: {reason}")


class OracleError(CurationError):
    """The compatibility oracle failed or gave up."""


class ClosureNonConvergenceError(CurationError):
    """The closure engine hit its maximum pass count without reaching a fixpoint."""

    def __init__(self, passes: int, pending: Optional[int] = None):
        self.passes = passes
        self.pending = pending
        message = f"closure did not converge after {passes} passes"
        if pending is not None:
            message += f" ({pending} removals still pending)"
        super().__init__(message)
