"""
rivalry.engine.state — EngineState and GameCommentary
======================================================

The full persisted snapshot.  Owned by exactly one
:class:`~rivalry.services.game_service.GameEngine`; everything else sees
deep copies.
"""

from __future__ import annotations

import copy
import enum
import uuid
from dataclasses import dataclass, field
from datetime import UTC, date, datetime

from rivalry.constants import COMMENTARY_HISTORY_LIMIT, EVENT_HISTORY_LIMIT
from rivalry.engine.events import ScoreEvent, dump_dt, load_dt
from rivalry.engine.ledger import PlayerScore

__all__ = ["CommentaryTrigger", "EngineState", "GameCommentary"]


class CommentaryTrigger(enum.StrEnum):
    CI_FAILED = "ciFailed"
    SCORE_CHANGE = "scoreChange"
    LEADER_FLIP = "leaderFlip"
    ACHIEVEMENT = "achievement"
    SHAME_TITLE = "shameTitle"
    WEEKLY_RECAP = "weeklyRecap"
    MANUAL_ROAST = "manualRoast"


@dataclass(frozen=True, slots=True)
class GameCommentary:
    trigger: CommentaryTrigger
    content: str
    target_user: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": dump_dt(self.timestamp),
            "trigger": self.trigger.value,
            "content": self.content,
            "target_user": self.target_user,
        }

    @classmethod
    def from_dict(cls, raw: dict) -> GameCommentary:
        return cls(
            id=raw["id"],
            timestamp=load_dt(raw["timestamp"]),
            trigger=CommentaryTrigger(raw["trigger"]),
            content=raw["content"],
            target_user=raw.get("target_user"),
        )


def _load_date(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


@dataclass(slots=True)
class EngineState:
    """Everything the engine persists.  Histories are newest-first."""

    players: dict[str, PlayerScore] = field(default_factory=dict)
    events: list[ScoreEvent] = field(default_factory=list)
    commentary: list[GameCommentary] = field(default_factory=list)
    last_processed_commit_id: str | None = None
    last_processed_workflow_id: int | None = None
    last_processed_pull_request_id: int | None = None
    scored_issue_numbers: set[int] = field(default_factory=set)
    daily_reset_date: date | None = None
    weekly_reset_date: date | None = None
    leader_id: str | None = None

    @classmethod
    def empty(cls) -> EngineState:
        return cls()

    def snapshot(self) -> EngineState:
        """Deep copy handed to readers and to the state store."""
        return copy.deepcopy(self)

    # -- history ------------------------------------------------------------
    def record_event(self, event: ScoreEvent) -> None:
        self.events.insert(0, event)
        del self.events[EVENT_HISTORY_LIMIT:]

    def record_commentary(self, entry: GameCommentary) -> None:
        self.commentary.insert(0, entry)
        del self.commentary[COMMENTARY_HISTORY_LIMIT:]

    def seen_source_ids(self) -> set[str]:
        return {e.source_id for e in self.events if e.source_id is not None}

    # -- serialization ------------------------------------------------------
    def to_dict(self) -> dict:
        return {
            "players": {pid: p.to_dict() for pid, p in self.players.items()},
            "events": [e.to_dict() for e in self.events],
            "commentary": [c.to_dict() for c in self.commentary],
            "last_processed_commit_id": self.last_processed_commit_id,
            "last_processed_workflow_id": self.last_processed_workflow_id,
            "last_processed_pull_request_id": self.last_processed_pull_request_id,
            "scored_issue_numbers": sorted(self.scored_issue_numbers),
            "daily_reset_date": self.daily_reset_date.isoformat() if self.daily_reset_date else None,
            "weekly_reset_date": self.weekly_reset_date.isoformat() if self.weekly_reset_date else None,
            "leader_id": self.leader_id,
        }

    @classmethod
    def from_dict(cls, raw: dict) -> EngineState:
        return cls(
            players={
                pid: PlayerScore.from_dict(p) for pid, p in (raw.get("players") or {}).items()
            },
            events=[ScoreEvent.from_dict(e) for e in raw.get("events") or []],
            commentary=[GameCommentary.from_dict(c) for c in raw.get("commentary") or []],
            last_processed_commit_id=raw.get("last_processed_commit_id"),
            last_processed_workflow_id=raw.get("last_processed_workflow_id"),
            last_processed_pull_request_id=raw.get("last_processed_pull_request_id"),
            scored_issue_numbers=set(raw.get("scored_issue_numbers") or ()),
            daily_reset_date=_load_date(raw.get("daily_reset_date")),
            weekly_reset_date=_load_date(raw.get("weekly_reset_date")),
            leader_id=raw.get("leader_id"),
        )
