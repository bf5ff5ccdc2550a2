"""
rivalry.api.routes.public — Leaderboard endpoints
==================================================

Read-only views over the engine's copies, plus the one write action the
dashboard is allowed: requesting a fresh roast.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from rivalry.api.deps import GameDep
from rivalry.constants import COMMENTARY_HISTORY_LIMIT, EVENT_HISTORY_LIMIT, SYSTEM_ACTOR
from rivalry.engine.ledger import PlayerScore, primary_title

router = APIRouter(tags=["public"])


class RoastRequest(BaseModel):
    target: str | None = Field(None, max_length=100, description="Player id to aim the roast at")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _player_dict(player: PlayerScore, now: datetime) -> dict:
    data = player.to_dict()
    data["title"] = primary_title(player, now).to_dict()
    return data


# ---------------------------------------------------------------------------
# GET /leaderboard
# ---------------------------------------------------------------------------
@router.get("/leaderboard")
def get_leaderboard(game: GameDep):
    """Ranked players with the leader, runner-up and score gap."""
    now = datetime.now(UTC)
    standings = game.standings()
    ranking = []
    for rank, player in enumerate(standings.ranking, start=1):
        row = _player_dict(player, now)
        row["rank"] = rank
        ranking.append(row)

    return {
        "leader": standings.leader.id if standings.leader else None,
        "runner_up": standings.runner_up.id if standings.runner_up else None,
        "score_gap": standings.score_gap,
        "gap_message": standings.gap_message,
        "players": ranking,
    }


# ---------------------------------------------------------------------------
# GET /players
# ---------------------------------------------------------------------------
@router.get("/players")
def list_players(game: GameDep, include_system: bool = Query(False)):
    now = datetime.now(UTC)
    players = sorted(game.players().values(), key=lambda p: (-p.total_score, p.id))
    return [
        _player_dict(p, now) for p in players
        if include_system or p.id != SYSTEM_ACTOR
    ]


@router.get("/players/{player_id}")
def get_player(player_id: str, game: GameDep):
    player = game.player(player_id)
    if player is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Player not found")
    return _player_dict(player, datetime.now(UTC))


# ---------------------------------------------------------------------------
# GET /commentary, /events
# ---------------------------------------------------------------------------
@router.get("/commentary")
def list_commentary(game: GameDep, limit: int = Query(20, ge=1, le=COMMENTARY_HISTORY_LIMIT)):
    return [c.to_dict() for c in game.commentary_history(limit)]


@router.get("/commentary/latest")
def latest_commentary(game: GameDep):
    """Most recent commentary, or ``null`` when there is none yet."""
    latest = game.latest_commentary()
    return latest.to_dict() if latest else None


@router.get("/events")
def list_events(game: GameDep, limit: int = Query(20, ge=1, le=EVENT_HISTORY_LIMIT)):
    return [e.to_dict() for e in game.event_history(limit)]


# ---------------------------------------------------------------------------
# POST /roast
# ---------------------------------------------------------------------------
@router.post("/roast", status_code=status.HTTP_202_ACCEPTED)
async def request_roast(game: GameDep, body: RoastRequest | None = None):
    """Queue a fresh roast.  Rate-limited by the roast cooldown (429)."""
    target = body.target if body else None
    try:
        decision = await game.request_fresh_roast(target)
    except KeyError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Player not found")

    if decision.status == "unavailable":
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Commentary is not configured")

    if decision.status == "cooldown":
        retry_after = max(1, math.ceil(decision.retry_after))
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "roast_cooldown",
                "message": "A roast was requested recently, try again later.",
                "retry_after": retry_after,
            },
            headers={"Retry-After": str(retry_after)},
        )

    return {"status": "accepted"}
