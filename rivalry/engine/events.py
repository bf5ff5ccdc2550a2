"""
rivalry.engine.events — Source records and the ScoreEvent envelope
===================================================================

Raw records are the event source's view of the world (a commit, a CI
run, a merged PR, a closed issue), already decoded from JSON.  Every
scoring decision is captured as an immutable :class:`ScoreEvent` — the
only input the ledger accepts.
"""

from __future__ import annotations

import enum
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime

__all__ = [
    "CommitRecord",
    "DiffFile",
    "IssueRecord",
    "PullRequestRecord",
    "ScoreEvent",
    "ScoreEventType",
    "WorkflowRunRecord",
    "dump_dt",
    "load_dt",
]


class ScoreEventType(enum.StrEnum):
    """Every kind of scoring decision the engine records."""
    COMMIT = "commit"
    COMMIT_WITH_TESTS = "commitWithTests"
    PR_MERGED = "prMerged"
    PR_REVIEW = "prReview"
    ISSUE_CLOSED = "issueClosed"
    CI_PASSED = "ciPassed"
    CI_FAILED = "ciFailed"
    PENALTY = "penalty"
    ACHIEVEMENT = "achievement"


# ---------------------------------------------------------------------------
# Datetime (de)serialization — ISO-8601 in every persisted document
# ---------------------------------------------------------------------------
def dump_dt(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def load_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


# ---------------------------------------------------------------------------
# Raw source records
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class CommitRecord:
    sha: str
    author: str  # GitHub login, falling back to the git author name
    message: str
    timestamp: datetime
    html_url: str | None = None

    @property
    def short_sha(self) -> str:
        return self.sha[:7]


@dataclass(frozen=True, slots=True)
class DiffFile:
    filename: str
    additions: int = 0
    deletions: int = 0


@dataclass(frozen=True, slots=True)
class WorkflowRunRecord:
    id: int
    name: str
    status: str  # "queued" | "in_progress" | "completed"
    conclusion: str | None
    created_at: datetime
    head_branch: str = ""
    html_url: str | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"


@dataclass(frozen=True, slots=True)
class PullRequestRecord:
    number: int
    title: str
    author: str
    merged_at: datetime | None
    html_url: str | None = None


_STORY_POINTS_LABEL = re.compile(r"^story-points:(\d+)$")


@dataclass(frozen=True, slots=True)
class IssueRecord:
    number: int
    title: str
    author: str
    assignee: str | None = None
    labels: tuple[str, ...] = ()
    closed_at: datetime | None = None
    html_url: str | None = None

    @property
    def story_points(self) -> int | None:
        """Points from a ``story-points:N`` label, or ``None``."""
        for label in self.labels:
            match = _STORY_POINTS_LABEL.match(label)
            if match:
                return int(match.group(1))
        return None


# ---------------------------------------------------------------------------
# ScoreEvent — the immutable scoring record
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ScoreEvent:
    """One scoring decision.  Created once, never mutated.

    ``source_id`` identifies the raw record that produced the event (commit
    sha, run id, PR or issue number) so replays can be recognised.
    ``flags`` are machine-readable annotations such as ``"lazy_message"``.
    """

    player_id: str
    event_type: ScoreEventType
    points: int
    description: str
    timestamp: datetime
    related_url: str | None = None
    source_id: str | None = None
    flags: tuple[str, ...] = ()
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "player_id": self.player_id,
            "timestamp": dump_dt(self.timestamp),
            "event_type": self.event_type.value,
            "points": self.points,
            "description": self.description,
            "related_url": self.related_url,
            "source_id": self.source_id,
            "flags": list(self.flags),
        }

    @classmethod
    def from_dict(cls, raw: dict) -> ScoreEvent:
        return cls(
            id=raw["id"],
            player_id=raw["player_id"],
            timestamp=load_dt(raw["timestamp"]),
            event_type=ScoreEventType(raw["event_type"]),
            points=int(raw["points"]),
            description=raw["description"],
            related_url=raw.get("related_url"),
            source_id=raw.get("source_id"),
            flags=tuple(raw.get("flags") or ()),
        )
