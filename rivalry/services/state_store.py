"""
rivalry.services.state_store — Engine State Persistence
=========================================================

Two interchangeable stores for the full :class:`EngineState` snapshot:

* :class:`JsonStateStore` — one JSON document on disk (the default).
* :class:`SqlStateStore` — the same shape spread over relational tables.

Both follow the same contract: ``load()`` never raises (a missing or
unreadable snapshot means "start fresh"), and ``save()`` overwrites the
whole snapshot.  There is no incremental write and no crash-safe
transaction around the JSON file; the engine writes after every cycle,
so a lost write is repaired by the next one.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rivalry.database.engine import create_db_engine, get_session, init_db
from rivalry.database.models import (
    CommentaryRow,
    EngineStateRow,
    PlayerScoreRow,
    ScoreEventRow,
)
from rivalry.engine.events import ScoreEvent, ScoreEventType
from rivalry.engine.ledger import PlayerScore, PlayerTitle
from rivalry.engine.state import CommentaryTrigger, EngineState, GameCommentary

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from rivalry.config import RivalryConfig

logger = logging.getLogger(__name__)

_STATE_ROW_ID = 1


class StateStore(Protocol):
    def load(self) -> EngineState: ...

    def save(self, state: EngineState) -> None: ...


# ---------------------------------------------------------------------------
# JSON document
# ---------------------------------------------------------------------------
class JsonStateStore:
    """Snapshot persisted as a single pretty-printed JSON file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> EngineState:
        if not self.path.exists():
            logger.info("No saved state at %s — starting fresh", self.path)
            return EngineState.empty()
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            return EngineState.from_dict(raw)
        except (OSError, ValueError, KeyError, TypeError, AttributeError):
            logger.warning(
                "Saved state at %s is unreadable — starting fresh", self.path, exc_info=True
            )
            return EngineState.empty()

    def save(self, state: EngineState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(state.to_dict(), indent=2), encoding="utf-8")


# ---------------------------------------------------------------------------
# SQL tables
# ---------------------------------------------------------------------------
def _player_from_row(row: PlayerScoreRow) -> PlayerScore:
    return PlayerScore(
        id=row.id,
        display_name=row.display_name,
        total_score=row.total_score,
        daily_score=row.daily_score,
        weekly_score=row.weekly_score,
        streak=row.streak,
        penalties=row.penalties,
        last_activity=row.last_activity,
        titles=[PlayerTitle.from_dict(t) for t in row.titles or []],
    )


def _event_from_row(row: ScoreEventRow) -> ScoreEvent:
    return ScoreEvent(
        id=row.id,
        player_id=row.player_id,
        timestamp=row.timestamp,
        event_type=ScoreEventType(row.event_type),
        points=row.points,
        description=row.description,
        related_url=row.related_url,
        source_id=row.source_id,
        flags=tuple(row.flags or ()),
    )


def _commentary_from_row(row: CommentaryRow) -> GameCommentary:
    return GameCommentary(
        id=row.id,
        timestamp=row.timestamp,
        trigger=CommentaryTrigger(row.trigger),
        content=row.content,
        target_user=row.target_user,
    )


class SqlStateStore:
    """Snapshot persisted across the tables in :mod:`rivalry.database.models`."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def load(self) -> EngineState:
        try:
            with Session(self.engine) as session:
                meta = session.get(EngineStateRow, _STATE_ROW_ID)
                players = session.scalars(select(PlayerScoreRow)).all()
                events = session.scalars(
                    select(ScoreEventRow).order_by(ScoreEventRow.position)
                ).all()
                commentary = session.scalars(
                    select(CommentaryRow).order_by(CommentaryRow.position)
                ).all()

                state = EngineState(
                    players={row.id: _player_from_row(row) for row in players},
                    events=[_event_from_row(row) for row in events],
                    commentary=[_commentary_from_row(row) for row in commentary],
                )
                if meta is not None:
                    state.last_processed_commit_id = meta.last_processed_commit_id
                    state.last_processed_workflow_id = meta.last_processed_workflow_id
                    state.last_processed_pull_request_id = meta.last_processed_pull_request_id
                    state.scored_issue_numbers = set(meta.scored_issue_numbers or ())
                    state.daily_reset_date = meta.daily_reset_date
                    state.weekly_reset_date = meta.weekly_reset_date
                    state.leader_id = meta.leader_id
                return state
        except (SQLAlchemyError, ValueError, KeyError, TypeError):
            logger.warning("Saved state in database is unreadable — starting fresh", exc_info=True)
            return EngineState.empty()

    def save(self, state: EngineState) -> None:
        with get_session(self.engine) as session:
            # Children first: score_events references player_scores.
            session.execute(delete(ScoreEventRow))
            session.execute(delete(CommentaryRow))
            session.execute(delete(PlayerScoreRow))
            session.execute(delete(EngineStateRow))

            session.add_all(
                PlayerScoreRow(
                    id=p.id,
                    display_name=p.display_name,
                    total_score=p.total_score,
                    daily_score=p.daily_score,
                    weekly_score=p.weekly_score,
                    streak=p.streak,
                    penalties=p.penalties,
                    last_activity=p.last_activity,
                    titles=[t.to_dict() for t in p.titles],
                )
                for p in state.players.values()
            )
            session.flush()

            session.add_all(
                ScoreEventRow(
                    id=e.id,
                    position=i,
                    player_id=e.player_id,
                    timestamp=e.timestamp,
                    event_type=e.event_type.value,
                    points=e.points,
                    description=e.description,
                    related_url=e.related_url,
                    source_id=e.source_id,
                    flags=list(e.flags),
                )
                for i, e in enumerate(state.events)
            )
            session.add_all(
                CommentaryRow(
                    id=c.id,
                    position=i,
                    timestamp=c.timestamp,
                    trigger=c.trigger.value,
                    content=c.content,
                    target_user=c.target_user,
                )
                for i, c in enumerate(state.commentary)
            )
            session.add(EngineStateRow(
                id=_STATE_ROW_ID,
                last_processed_commit_id=state.last_processed_commit_id,
                last_processed_workflow_id=state.last_processed_workflow_id,
                last_processed_pull_request_id=state.last_processed_pull_request_id,
                scored_issue_numbers=sorted(state.scored_issue_numbers),
                daily_reset_date=state.daily_reset_date,
                weekly_reset_date=state.weekly_reset_date,
                leader_id=state.leader_id,
            ))


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------
def build_state_store(cfg: RivalryConfig) -> JsonStateStore | SqlStateStore:
    """Store selected by ``state.backend`` in ``config.yaml``."""
    if cfg.state.backend == "sql":
        engine = create_db_engine()
        init_db(engine)
        return SqlStateStore(engine)
    return JsonStateStore(cfg.state.path)
