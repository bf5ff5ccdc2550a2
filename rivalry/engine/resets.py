"""
rivalry.engine.resets — Daily / Weekly Reset Scheduler
=======================================================

Runs as a gate in front of every ledger mutation rather than on a timer:
the engine calls :func:`apply_resets` at the start of each cycle, before
any new events are applied, so that today's events always land on
post-reset totals.  Idempotent — calling it twice in the same day/week
changes nothing the second time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from rivalry.constants import local_date, week_start
from rivalry.engine.state import EngineState

logger = logging.getLogger(__name__)

__all__ = ["ResetOutcome", "apply_resets", "prune_expired_titles"]


@dataclass
class ResetOutcome:
    """What a reset pass changed.

    ``weekly_standings`` holds ``(display_name, weekly_score)`` pairs taken
    just before weekly scores were zeroed, best first — the material for a
    weekly recap.
    """

    daily_reset: bool = False
    weekly_reset: bool = False
    weekly_standings: list[tuple[str, int]] = field(default_factory=list)
    titles_pruned: int = 0


def prune_expired_titles(state: EngineState, now: datetime) -> int:
    """Drop titles whose expiry has passed.  Returns how many were removed."""
    removed = 0
    for player in state.players.values():
        kept = [t for t in player.titles if t.is_active(now)]
        removed += len(player.titles) - len(kept)
        player.titles = kept
    return removed


def apply_resets(state: EngineState, now: datetime) -> ResetOutcome:
    """Zero daily / weekly scores when the local day / ISO week has turned.

    A missing reset date is initialised to the current boundary without
    zeroing anything (first run).
    """
    outcome = ResetOutcome()
    today = local_date(now)
    this_week = week_start(today)

    if state.daily_reset_date is None:
        state.daily_reset_date = today
    elif state.daily_reset_date != today:
        for player in state.players.values():
            player.daily_score = 0
        state.daily_reset_date = today
        outcome.daily_reset = True
        logger.info("Daily scores reset for %s", today.isoformat())

    if state.weekly_reset_date is None:
        state.weekly_reset_date = this_week
    elif week_start(state.weekly_reset_date) != this_week:
        outcome.weekly_standings = sorted(
            ((p.display_name, p.weekly_score) for p in state.players.values()),
            key=lambda pair: (-pair[1], pair[0]),
        )
        for player in state.players.values():
            player.weekly_score = 0
        state.weekly_reset_date = this_week
        outcome.weekly_reset = True
        logger.info("Weekly scores reset for week of %s", this_week.isoformat())

    outcome.titles_pruned = prune_expired_titles(state, now)
    return outcome
