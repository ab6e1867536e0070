"""
Diagnostics for repocurate.

Non-fatal problems (a malformed record, an allow-list entry naming an
unknown package, an anchor with no surviving candidates) are collected
as Diagnostics and reported next to the finished output.
"""

from dataclasses import dataclass
from typing import Dict


@dataclass(frozen=True)
class Diagnostic:
    """A non-fatal problem found while curating."""
    kind: str  # malformed-record, duplicate-record, unknown-name, missing-anchor, anchors-unsatisfiable
    subject: str
    message: str

    def __str__(self) -> str:
        return f"[{self.kind}] {self.subject}: {self.message}"

    def to_dict(self) -> Dict[str, str]:
        return {'kind': self.kind, 'subject': self.subject, 'message': self.message}
