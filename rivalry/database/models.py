"""
rivalry.database.models — SQLAlchemy 2.0 Data Models
=====================================================

Tables backing :class:`~rivalry.services.state_store.SqlStateStore`, the
relational alternative to the JSON snapshot file.  The layout mirrors a
shared leaderboard database so several dashboards can read one ledger.

Tables:
- player_scores   — One row per player (GitHub login PK)
- score_events    — Bounded event history, ``position`` 0 = newest
- game_commentary — Bounded commentary history, ``position`` 0 = newest
- engine_state    — Single row: cursors, reset dates, previous leader
"""

from __future__ import annotations

from datetime import UTC, date, datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Rivalry ORM models."""


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetimes on every backend.

    Values are stored as UTC; SQLite hands them back naive, so results are
    re-stamped with UTC on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect):
        if value is None:
            return None
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


# ---------------------------------------------------------------------------
# Player scores
# ---------------------------------------------------------------------------
class PlayerScoreRow(Base):
    __tablename__ = "player_scores"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    total_score: Mapped[int] = mapped_column(Integer, default=0)
    daily_score: Mapped[int] = mapped_column(Integer, default=0)
    weekly_score: Mapped[int] = mapped_column(Integer, default=0)
    streak: Mapped[int] = mapped_column(Integer, default=0)
    penalties: Mapped[int] = mapped_column(Integer, default=0)
    last_activity: Mapped[datetime | None] = mapped_column(UTCDateTime, default=None)
    titles: Mapped[list] = mapped_column(JSON, default=list)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_player_scores_total_desc", "total_score"),
    )

    def __repr__(self) -> str:
        return f"<PlayerScoreRow id={self.id!r} total={self.total_score}>"


# ---------------------------------------------------------------------------
# Score events: append-only history, trimmed on save
# ---------------------------------------------------------------------------
class ScoreEventRow(Base):
    __tablename__ = "score_events"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    player_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("player_scores.id"), nullable=False
    )
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    event_type: Mapped[str] = mapped_column(String(30), nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    related_url: Mapped[str | None] = mapped_column(Text, default=None)
    source_id: Mapped[str | None] = mapped_column(String(64), default=None)
    flags: Mapped[list] = mapped_column(JSON, default=list)

    __table_args__ = (
        Index("ix_score_events_player", "player_id"),
        Index("ix_score_events_position", "position"),
    )


# ---------------------------------------------------------------------------
# Commentary
# ---------------------------------------------------------------------------
class CommentaryRow(Base):
    __tablename__ = "game_commentary"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    trigger: Mapped[str] = mapped_column(String(30), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    target_user: Mapped[str | None] = mapped_column(String(100), default=None)


# ---------------------------------------------------------------------------
# Engine state: cursors and reset boundaries (single row, id = 1)
# ---------------------------------------------------------------------------
class EngineStateRow(Base):
    __tablename__ = "engine_state"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    last_processed_commit_id: Mapped[str | None] = mapped_column(String(64), default=None)
    last_processed_workflow_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    last_processed_pull_request_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    scored_issue_numbers: Mapped[list] = mapped_column(JSON, default=list)
    daily_reset_date: Mapped[date | None] = mapped_column(Date, default=None)
    weekly_reset_date: Mapped[date | None] = mapped_column(Date, default=None)
    leader_id: Mapped[str | None] = mapped_column(String(100), default=None)
