"""
rivalry.constants — Shared Constants & Helpers
===============================================

Single source of truth for the rank-title bands, shame titles, history
limits and the local-calendar helpers used by the ledger and the reset
scheduler.  Import from here instead of duplicating in services and routes.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

# ---------------------------------------------------------------------------
# Actors & history limits
# ---------------------------------------------------------------------------
SYSTEM_ACTOR = "system"  # CI runs are not attributable to a committer

EVENT_HISTORY_LIMIT = 100
COMMENTARY_HISTORY_LIMIT = 50

# ---------------------------------------------------------------------------
# Rank titles — (exclusive upper bound, name, icon).  Last band is open-ended.
# ---------------------------------------------------------------------------
RANK_BANDS: list[tuple[int | None, str, str]] = [
    (100, "Keyboard Polisher", "keyboard"),
    (300, "Bug Whisperer", "ladybug"),
    (600, "Code Cadet", "chevron.up"),
    (1000, "Merge Maverick", "arrow.triangle.merge"),
    (2000, "Pull Request Paladin", "shield"),
    (4000, "CI Champion", "checkmark.seal"),
    (7500, "Test Titan", "testtube.2"),
    (15000, "Architecture Ace", "building.columns"),
    (None, "Code Demigod", "crown"),
]


def rank_band(total_score: int) -> tuple[str, str]:
    """Return ``(name, icon)`` of the rank band containing *total_score*."""
    for upper, name, icon in RANK_BANDS:
        if upper is None or total_score < upper:
            return name, icon
    raise AssertionError("RANK_BANDS must end with an open band")


# ---------------------------------------------------------------------------
# Shame titles — granted by ScoreEvent flags, expire after SHAME_TITLE_TTL
# ---------------------------------------------------------------------------
SHAME_TITLE_TTL = timedelta(hours=24)

SHAME_TITLES: dict[str, tuple[str, str]] = {
    "untested_dump": ("Code Dumper", "trash"),
    "lazy_message": ("Commit Mumbler", "text.bubble"),
}

# ---------------------------------------------------------------------------
# Score-gap presentation (leaderboard panel)
# ---------------------------------------------------------------------------
GAP_MESSAGES: list[tuple[int, str]] = [
    (50, "Neck and neck!"),
    (150, "Close race"),
    (300, "Pulling ahead"),
    (500, "Dominating"),
]


def gap_message(gap: int) -> str:
    for upper, message in GAP_MESSAGES:
        if gap < upper:
            return message
    return "Complete massacre"


# ---------------------------------------------------------------------------
# Local calendar helpers
# ---------------------------------------------------------------------------
def local_date(moment: datetime) -> date:
    """Calendar date of *moment* in the machine's local timezone.

    Naive datetimes are taken to already be local time.
    """
    if moment.tzinfo is not None:
        moment = moment.astimezone()
    return moment.date()


def week_start(day: date) -> date:
    """Monday of the ISO week containing *day*."""
    return day - timedelta(days=day.weekday())
