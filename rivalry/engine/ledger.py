"""
rivalry.engine.ledger — Player Ledger
======================================

The authoritative per-player aggregates and the single operation that
mutates them, :func:`apply_score_event`.  Pure with respect to I/O: the
caller owns the ``players`` mapping and decides when to persist it.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime

from rivalry.constants import SHAME_TITLE_TTL, SHAME_TITLES, local_date, rank_band
from rivalry.engine.events import ScoreEvent, dump_dt, load_dt

logger = logging.getLogger(__name__)

__all__ = [
    "PlayerScore",
    "PlayerTitle",
    "TitleType",
    "apply_score_event",
    "get_or_create_player",
    "primary_title",
]


class TitleType(enum.StrEnum):
    RANK = "rank"
    ACHIEVEMENT = "achievement"
    SHAME = "shame"


@dataclass(slots=True)
class PlayerTitle:
    name: str
    icon: str
    type: TitleType
    earned_at: datetime | None = None
    expires_at: datetime | None = None

    def is_active(self, now: datetime) -> bool:
        return self.expires_at is None or self.expires_at > now

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "icon": self.icon,
            "type": self.type.value,
            "earned_at": dump_dt(self.earned_at),
            "expires_at": dump_dt(self.expires_at),
        }

    @classmethod
    def from_dict(cls, raw: dict) -> PlayerTitle:
        return cls(
            name=raw["name"],
            icon=raw["icon"],
            type=TitleType(raw["type"]),
            earned_at=load_dt(raw.get("earned_at")),
            expires_at=load_dt(raw.get("expires_at")),
        )


@dataclass(slots=True)
class PlayerScore:
    """Aggregate score state for one player (keyed by GitHub login)."""

    id: str
    display_name: str
    total_score: int = 0
    daily_score: int = 0
    weekly_score: int = 0
    streak: int = 0
    penalties: int = 0
    last_activity: datetime | None = None
    titles: list[PlayerTitle] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "total_score": self.total_score,
            "daily_score": self.daily_score,
            "weekly_score": self.weekly_score,
            "streak": self.streak,
            "penalties": self.penalties,
            "last_activity": dump_dt(self.last_activity),
            "titles": [t.to_dict() for t in self.titles],
        }

    @classmethod
    def from_dict(cls, raw: dict) -> PlayerScore:
        return cls(
            id=raw["id"],
            display_name=raw.get("display_name") or raw["id"],
            total_score=int(raw.get("total_score", 0)),
            daily_score=int(raw.get("daily_score", 0)),
            weekly_score=int(raw.get("weekly_score", 0)),
            streak=int(raw.get("streak", 0)),
            penalties=int(raw.get("penalties", 0)),
            last_activity=load_dt(raw.get("last_activity")),
            titles=[PlayerTitle.from_dict(t) for t in raw.get("titles") or []],
        )


# ---------------------------------------------------------------------------
# Title resolution
# ---------------------------------------------------------------------------
def primary_title(player: PlayerScore, now: datetime) -> PlayerTitle:
    """The title shown next to a player's name.

    An active shame title always wins; otherwise the rank band for the
    player's total score.  Derived — never stored.
    """
    for title in player.titles:
        if title.type == TitleType.SHAME and title.is_active(now):
            return title
    name, icon = rank_band(player.total_score)
    return PlayerTitle(name=name, icon=icon, type=TitleType.RANK)


def _grant_title(player: PlayerScore, title: PlayerTitle) -> None:
    """Insert *title*, replacing any existing title of the same name."""
    player.titles = [t for t in player.titles if t.name != title.name]
    player.titles.insert(0, title)


def _shame_titles_for(event: ScoreEvent) -> list[PlayerTitle]:
    titles = []
    for flag in event.flags:
        if flag in SHAME_TITLES:
            name, icon = SHAME_TITLES[flag]
            titles.append(PlayerTitle(
                name=name,
                icon=icon,
                type=TitleType.SHAME,
                earned_at=event.timestamp,
                expires_at=event.timestamp + SHAME_TITLE_TTL,
            ))
    return titles


# ---------------------------------------------------------------------------
# Streaks
# ---------------------------------------------------------------------------
def _next_streak(player: PlayerScore, when: datetime) -> int:
    """Streak after activity at *when*, counted in local calendar days."""
    if player.last_activity is None:
        return 1

    days = (local_date(when) - local_date(player.last_activity)).days
    if days == 1:
        return player.streak + 1
    if days > 1:
        return 1
    # Same day, or an older event arriving late: the streak stands.
    return max(player.streak, 1)


# ---------------------------------------------------------------------------
# Apply
# ---------------------------------------------------------------------------
def get_or_create_player(
    players: dict[str, PlayerScore],
    player_id: str,
    roster: dict[str, str] | None = None,
) -> PlayerScore:
    """Fetch or lazily create a zeroed PlayerScore."""
    player = players.get(player_id)
    if player is None:
        display = (roster or {}).get(player_id, player_id)
        player = PlayerScore(id=player_id, display_name=display)
        players[player_id] = player
        logger.info("New player on the ledger: %s (%s)", player_id, display)
    return player


def apply_score_event(
    players: dict[str, PlayerScore],
    event: ScoreEvent,
    roster: dict[str, str] | None = None,
) -> list[PlayerTitle]:
    """Apply one ScoreEvent to its player.

    Points go to total, daily and weekly scores; negative points also
    accumulate (as an absolute value) into ``penalties``.  Returns the
    shame titles newly granted by the event's flags.
    """
    player = get_or_create_player(players, event.player_id, roster)

    player.total_score += event.points
    player.daily_score += event.points
    player.weekly_score += event.points
    if event.points < 0:
        player.penalties += abs(event.points)

    player.streak = _next_streak(player, event.timestamp)
    if player.last_activity is None or event.timestamp > player.last_activity:
        player.last_activity = event.timestamp

    granted = _shame_titles_for(event)
    for title in granted:
        _grant_title(player, title)

    players[player.id] = player
    return granted
