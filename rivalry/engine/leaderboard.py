"""
rivalry.engine.leaderboard — Leaderboard Monitor
=================================================

Derives the ranking from the ledger after every mutation and decides
whether the race is close enough to call a "leader flip".

Two flip modes:

* ``margin`` — fires whenever first place leads second by more than zero
  and less than the threshold.  Cheap, stateless, and happily re-fires on
  every poll while a race stays close.
* ``leader_change`` — fires only when the leader's id differs from the
  previously stored leader.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from rivalry.constants import SYSTEM_ACTOR, gap_message
from rivalry.engine.ledger import PlayerScore

__all__ = ["FlipSignal", "Standings", "compute_standings", "detect_leader_flip"]


@dataclass(frozen=True, slots=True)
class Standings:
    ranking: list[PlayerScore]

    @property
    def leader(self) -> PlayerScore | None:
        return self.ranking[0] if self.ranking else None

    @property
    def runner_up(self) -> PlayerScore | None:
        return self.ranking[1] if len(self.ranking) > 1 else None

    @property
    def score_gap(self) -> int:
        if self.leader is None or self.runner_up is None:
            return 0
        return self.leader.total_score - self.runner_up.total_score

    @property
    def gap_message(self) -> str:
        return gap_message(self.score_gap)


@dataclass(frozen=True, slots=True)
class FlipSignal:
    leader_id: str
    runner_up_id: str
    gap: int
    context: str


def compute_standings(
    players: Iterable[PlayerScore],
    exclude: Iterable[str] = (SYSTEM_ACTOR,),
) -> Standings:
    """Rank players by total score (desc), ties broken by id (asc)."""
    excluded = set(exclude)
    ranking = sorted(
        (p for p in players if p.id not in excluded),
        key=lambda p: (-p.total_score, p.id),
    )
    return Standings(ranking=ranking)


def detect_leader_flip(
    standings: Standings,
    *,
    threshold: int = 50,
    mode: str = "margin",
    previous_leader_id: str | None = None,
) -> FlipSignal | None:
    leader, runner_up = standings.leader, standings.runner_up
    if leader is None or runner_up is None:
        return None

    gap = standings.score_gap
    if gap <= 0:
        return None

    if mode == "leader_change":
        if previous_leader_id is None or previous_leader_id == leader.id:
            return None
    elif gap >= threshold:
        return None

    return FlipSignal(
        leader_id=leader.id,
        runner_up_id=runner_up.id,
        gap=gap,
        context=(
            f"{leader.display_name} just took the lead from "
            f"{runner_up.display_name} by {gap} points!"
        ),
    )
