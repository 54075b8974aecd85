"""stash_reporter.models

Lightweight data structures shared by the Sonar side and the Stash side.

Severity ordering
-----------------
Sonar severities are compared in exactly one place: the numeric value of
:class:`Severity`. The order is explicit and documented:

    INFO(1) < MINOR(2) < MAJOR(3) < CRITICAL(4) < BLOCKER(5)

The gate, the approval decision and the overview rendering all rely on it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional


class Severity(IntEnum):
    INFO = 1
    MINOR = 2
    MAJOR = 3
    CRITICAL = 4
    BLOCKER = 5

    @classmethod
    def from_label(cls, label: object) -> "Severity":
        """Parse a Sonar severity label (case-insensitive).

        Raises ValueError for blank or unknown labels.
        """
        s = str(label or "").strip().upper()
        try:
            return cls[s]
        except KeyError:
            raise ValueError(f"Unknown severity: {label!r}") from None

    @classmethod
    def ordered(cls) -> "list[Severity]":
        """Most severe first."""
        return sorted(cls, reverse=True)


class GateDecision(Enum):
    PUBLISH = "publish"
    SUPPRESS = "suppress"


class ReviewDecision(Enum):
    APPROVE = "approve"
    RESET_APPROVAL = "reset_approval"


@dataclass(frozen=True)
class Issue:
    """One Sonar finding, reduced to what the reporter needs."""

    key: str
    rule: str
    severity: Severity
    message: str = ""
    path: Optional[str] = None
    line: Optional[int] = None
    type: Optional[str] = None
    status: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return (self.status or "").upper() in {"RESOLVED", "CLOSED"}


@dataclass(frozen=True)
class PullRequestRef:
    project: str
    repository: str
    pull_request_id: int

    def describe(self) -> str:
        return f"{self.project}/{self.repository}#{self.pull_request_id}"


@dataclass(frozen=True)
class StashUser:
    """Bitbucket Server user, as returned by ``/rest/api/1.0/users/{slug}``."""

    id: int
    name: str
    slug: str
    email: Optional[str] = None
