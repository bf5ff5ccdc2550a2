"""
rivalry.services.commentary — Commentary Triggers & Roast Cooldown
===================================================================

Decides *what* the narrator is told for each trigger kind.  Every builder
returns a plain context string; the engine hands it to the narrator
together with the :class:`CommentaryTrigger`.

Manual roasts are rate-limited by :class:`RoastCooldown`: once one is
accepted, further requests are rejected until the cooldown elapses.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime

from rivalry.engine.events import ScoreEvent
from rivalry.engine.ledger import PlayerScore, PlayerTitle, primary_title
from rivalry.engine.leaderboard import Standings

logger = logging.getLogger(__name__)

DEFAULT_ROAST_COOLDOWN = 300.0


# ---------------------------------------------------------------------------
# Context builders
# ---------------------------------------------------------------------------
def significant_commit_context(event: ScoreEvent, player: PlayerScore) -> str:
    verb = "scored" if event.points >= 0 else "lost"
    return (
        f"{player.display_name} {verb} {abs(event.points)} points: "
        f"{event.description}. They now have {player.total_score} total."
    )


def ci_failure_context(name: str, branch: str) -> str:
    if branch:
        return f"CI failed on {branch}: {name}"
    return f"CI failed: {name}"


def leader_flip_context(context: str, standings: Standings) -> str:
    return f"{context} ({standings.gap_message})"


def shame_title_context(player: PlayerScore, title: PlayerTitle, event: ScoreEvent) -> str:
    return (
        f"{player.display_name} just earned the shame title '{title.name}' "
        f"for: {event.description}"
    )


def weekly_recap_context(standings: list[tuple[str, int]]) -> str:
    if not standings:
        return "A quiet week — nobody scored anything."
    lines = [f"{i}. {name}: {score} pts" for i, (name, score) in enumerate(standings, 1)]
    return "Final weekly standings:\n" + "\n".join(lines)


def _player_line(player: PlayerScore, now: datetime) -> str:
    title = primary_title(player, now)
    return (
        f"{player.display_name} ({title.name}): {player.total_score} pts total, "
        f"{player.daily_score} today, {player.weekly_score} this week, "
        f"{player.streak}-day streak, {player.penalties} penalty points"
    )


def roast_context(standings: Standings, now: datetime, target: PlayerScore | None = None) -> str:
    """Standings, streaks, titles and penalties for a manual roast.

    With a *target*, the roast is aimed at that player; the rest of the
    table is still included so the narrator has something to compare to.
    """
    lines = []
    if target is not None:
        lines.append(f"Roast target: {target.display_name}")
    if len(standings.ranking) < 2:
        lines.append("Only one player so far")
        return "\n".join(lines)
    lines.extend(_player_line(p, now) for p in standings.ranking)
    lines.append(f"Score gap: {standings.score_gap} points ({standings.gap_message}).")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Manual roast rate limit
# ---------------------------------------------------------------------------
class RoastCooldown:
    """One accepted manual roast per ``cooldown`` seconds.

    Uses a monotonic clock; not persisted, so a restart re-opens the window.
    """

    def __init__(
        self,
        cooldown: float = DEFAULT_ROAST_COOLDOWN,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.cooldown = cooldown
        self._clock = clock
        self._last: float | None = None

    def retry_after(self) -> float:
        """Seconds until the next roast is allowed (0 when allowed now)."""
        if self._last is None:
            return 0.0
        return max(0.0, self._last + self.cooldown - self._clock())

    def try_acquire(self) -> bool:
        """Claim the window.  False while the cooldown is still running."""
        if self.retry_after() > 0:
            return False
        self._last = self._clock()
        return True
