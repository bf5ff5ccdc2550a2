"""
rivalry.services.game_service — The Game Engine (single writer)
================================================================

:class:`GameEngine` owns the one mutable :class:`EngineState`.  Every
poll cycle follows the same shape:

    1. Fetch a batch from the event source (no lock held).
    2. Score the new items with the pure calculator.
    3. Under the engine lock: run the reset gate, apply events to the
       ledger, advance the cursor, trim history, check the leaderboard,
       persist a snapshot via ``run_db``.

Commentary is fire-and-forget: a detached task calls the narrator and,
on success, re-enters through the lock to record and persist the result.
A failed narration is logged and dropped.

Readers (the API) only ever receive deep copies.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from rivalry.database.engine import run_db
from rivalry.engine.cursor import advance, advance_workflow_cursor, select_new
from rivalry.engine.events import (
    CommitRecord,
    IssueRecord,
    PullRequestRecord,
    ScoreEvent,
    ScoreEventType,
    WorkflowRunRecord,
)
from rivalry.engine.leaderboard import Standings, compute_standings, detect_leader_flip
from rivalry.engine.ledger import (
    PlayerScore,
    PlayerTitle,
    apply_score_event,
    get_or_create_player,
)
from rivalry.engine.resets import ResetOutcome, apply_resets
from rivalry.engine.scoring import (
    is_merge_commit,
    score_commit,
    score_issue_closed,
    score_pr_merge,
    score_workflow_run,
)
from rivalry.engine.state import CommentaryTrigger, EngineState, GameCommentary
from rivalry.errors import EventSourceError
from rivalry.services.commentary import (
    RoastCooldown,
    ci_failure_context,
    leader_flip_context,
    roast_context,
    shame_title_context,
    significant_commit_context,
    weekly_recap_context,
)

if TYPE_CHECKING:
    from rivalry.config import RivalryConfig
    from rivalry.services.github_source import GitHubEventSource
    from rivalry.services.narrator import AnthropicNarrator
    from rivalry.services.state_store import StateStore

logger = logging.getLogger(__name__)


@dataclass
class CycleSummary:
    """Counts for one ingestion cycle, logged and returned to callers."""

    processed: int = 0
    skipped: int = 0
    errors: int = 0

    @property
    def touched(self) -> bool:
        return bool(self.processed or self.skipped or self.errors)


@dataclass(frozen=True, slots=True)
class RoastDecision:
    status: str  # "accepted" | "cooldown" | "unavailable"
    retry_after: float = 0.0

    @property
    def accepted(self) -> bool:
        return self.status == "accepted"


def _previous_conclusion(batch: Sequence[WorkflowRunRecord], index: int) -> str | None:
    """Conclusion of the next-older completed run with the same workflow name."""
    run = batch[index]
    for older in batch[index + 1:]:
        if older.name == run.name and older.is_completed:
            return older.conclusion
    return None


class GameEngine:
    """Single-writer actor around the engine state."""

    def __init__(
        self,
        cfg: RivalryConfig,
        store: StateStore,
        *,
        source: GitHubEventSource | None = None,
        narrator: AnthropicNarrator | None = None,
        clock: Callable[[], datetime] | None = None,
        roast_cooldown: RoastCooldown | None = None,
    ) -> None:
        self.cfg = cfg
        self.store = store
        self.source = source
        self.narrator = narrator
        self.roast_cooldown = roast_cooldown or RoastCooldown(
            cfg.commentary.roast_cooldown_seconds
        )
        self._clock = clock or (lambda: datetime.now(UTC))
        self._lock = asyncio.Lock()
        self._state = EngineState.empty()
        self._started = False
        self._tasks: set[asyncio.Task] = set()

    def _now(self) -> datetime:
        return self._clock()

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    async def start(self) -> None:
        """Load persisted state, seed the roster and run the reset gate."""
        async with self._lock:
            if self._started:
                return
            self._state = await run_db(self.store.load)
            for login, name in self.cfg.roster.items():
                get_or_create_player(self._state.players, login, self.cfg.roster).display_name = name
            self._gate()
            self._state.leader_id = self._state.leader_id or self._leader_id()
            self._started = True
            await self._persist()
        logger.info(
            "Game engine started: %d players, %d events in history",
            len(self._state.players), len(self._state.events),
        )

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        if self.source is not None:
            await self.source.aclose()
        if self.narrator is not None:
            await self.narrator.aclose()

    async def drain_commentary(self) -> None:
        """Wait for every in-flight narration to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # -------------------------------------------------------------------
    # Internals (callers hold self._lock)
    # -------------------------------------------------------------------
    def _gate(self) -> ResetOutcome:
        outcome = apply_resets(self._state, self._now())
        if outcome.titles_pruned:
            logger.debug("Pruned %d expired titles", outcome.titles_pruned)
        if outcome.weekly_reset:
            self._fire_commentary(
                CommentaryTrigger.WEEKLY_RECAP,
                weekly_recap_context(outcome.weekly_standings),
            )
        return outcome

    def _apply(self, event: ScoreEvent) -> list[PlayerTitle]:
        granted = apply_score_event(self._state.players, event, self.cfg.roster)
        self._state.record_event(event)
        logger.info("%s: %s", event.player_id, event.description)
        return granted

    def _leader_id(self) -> str | None:
        leader = compute_standings(self._state.players.values()).leader
        return leader.id if leader else None

    def _check_leaderboard(self) -> None:
        standings = compute_standings(self._state.players.values())
        signal = detect_leader_flip(
            standings,
            threshold=self.cfg.leaderboard.flip_threshold,
            mode=self.cfg.leaderboard.flip_mode,
            previous_leader_id=self._state.leader_id,
        )
        # A tie keeps the stored leader; only a real lead replaces it.
        if standings.leader is not None and (standings.score_gap > 0 or self._state.leader_id is None):
            self._state.leader_id = standings.leader.id
        if signal is not None:
            logger.info("Leader flip: %s", signal.context)
            self._fire_commentary(
                CommentaryTrigger.LEADER_FLIP,
                leader_flip_context(signal.context, standings),
                signal.leader_id,
            )

    async def _persist(self) -> None:
        snapshot = self._state.snapshot()
        try:
            await run_db(self.store.save, snapshot)
        except (OSError, SQLAlchemyError):
            logger.exception("State write failed; the next cycle will write again")

    async def _finish_cycle(self, label: str, summary: CycleSummary) -> None:
        if summary.processed:
            self._check_leaderboard()
        await self._persist()
        if summary.touched:
            logger.info(
                "%s: %d processed, %d skipped, %d errors",
                label, summary.processed, summary.skipped, summary.errors,
            )

    # -------------------------------------------------------------------
    # Commentary
    # -------------------------------------------------------------------
    def _fire_commentary(
        self, trigger: CommentaryTrigger, context: str, target_user: str | None = None
    ) -> None:
        if self.narrator is None:
            logger.debug("No narrator configured — %s commentary skipped", trigger)
            return
        task = asyncio.get_running_loop().create_task(
            self._narrate(trigger, context, target_user), name=f"commentary-{trigger}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _narrate(
        self, trigger: CommentaryTrigger, context: str, target_user: str | None
    ) -> None:
        try:
            text = await self.narrator.generate(trigger, context)
        except Exception:
            logger.warning("Commentary (%s) dropped", trigger, exc_info=True)
            return

        entry = GameCommentary(
            trigger=trigger, content=text, target_user=target_user, timestamp=self._now()
        )
        async with self._lock:
            self._state.record_commentary(entry)
            await self._persist()
        logger.info("Commentary (%s): %s", trigger, text)

    def _commit_triggers(self, event: ScoreEvent, granted: list[PlayerTitle]) -> None:
        player = self._state.players[event.player_id]
        if granted:
            for title in granted:
                self._fire_commentary(
                    CommentaryTrigger.SHAME_TITLE,
                    shame_title_context(player, title, event),
                    player.id,
                )
        elif abs(event.points) >= self.cfg.commentary.significant_points:
            trigger = (
                CommentaryTrigger.ACHIEVEMENT if event.points > 0
                else CommentaryTrigger.SCORE_CHANGE
            )
            self._fire_commentary(trigger, significant_commit_context(event, player), player.id)

    # -------------------------------------------------------------------
    # Commits
    # -------------------------------------------------------------------
    async def poll_commits(self) -> CycleSummary:
        try:
            batch = await self.source.fetch_commits()
        except EventSourceError as exc:
            logger.warning("Commit fetch failed: %s", exc)
            return CycleSummary(errors=1)
        return await self.ingest_commits(batch)

    async def ingest_commits(self, batch: Sequence[CommitRecord]) -> CycleSummary:
        """Score the commits in front of the cursor.

        Each commit needs its diff; a diff that cannot be fetched skips
        that commit only.  The cursor moves to the newest commit either way.
        New items are applied oldest first, so the history stays newest
        first and streaks see days in order.
        """
        summary = CycleSummary()
        async with self._lock:
            fresh = select_new(batch, self._state.last_processed_commit_id, key=lambda c: c.sha)
            seen = self._state.seen_source_ids()

        scored: list[ScoreEvent] = []
        for commit in reversed(fresh):
            if commit.sha in seen:
                summary.skipped += 1
                continue
            if self.cfg.scoring.skip_merge_commits and is_merge_commit(commit.message):
                summary.skipped += 1
                continue
            try:
                files = await self.source.fetch_commit_diff(commit.sha)
            except EventSourceError as exc:
                logger.warning("Diff for %s unavailable, skipping: %s", commit.short_sha, exc)
                summary.errors += 1
                continue
            scored.append(score_commit(commit, files, self.cfg.scoring))

        async with self._lock:
            self._gate()
            seen = self._state.seen_source_ids()
            for event in scored:
                if event.source_id in seen:
                    summary.skipped += 1
                    continue
                granted = self._apply(event)
                summary.processed += 1
                self._commit_triggers(event, granted)
            self._state.last_processed_commit_id = advance(
                batch, self._state.last_processed_commit_id, key=lambda c: c.sha
            )
            await self._finish_cycle("Commits", summary)
        return summary

    # -------------------------------------------------------------------
    # CI workflow runs
    # -------------------------------------------------------------------
    async def poll_workflows(self) -> CycleSummary:
        try:
            batch = await self.source.fetch_workflow_runs()
        except EventSourceError as exc:
            logger.warning("Workflow run fetch failed: %s", exc)
            return CycleSummary(errors=1)
        return await self.ingest_workflow_runs(batch)

    async def ingest_workflow_runs(self, batch: Sequence[WorkflowRunRecord]) -> CycleSummary:
        summary = CycleSummary()
        async with self._lock:
            self._gate()
            cursor = self._state.last_processed_workflow_id
            fresh = select_new(batch, cursor, key=lambda r: r.id)
            seen = self._state.seen_source_ids()

            for index in reversed(range(len(fresh))):
                run = fresh[index]
                if str(run.id) in seen:
                    summary.skipped += 1
                    continue
                event = score_workflow_run(run, _previous_conclusion(batch, index))
                if event is None:
                    summary.skipped += 1
                    continue
                self._apply(event)
                summary.processed += 1
                if event.event_type == ScoreEventType.CI_FAILED:
                    self._fire_commentary(
                        CommentaryTrigger.CI_FAILED,
                        ci_failure_context(run.name, run.head_branch),
                    )

            self._state.last_processed_workflow_id = advance_workflow_cursor(fresh, cursor)
            await self._finish_cycle("Workflow runs", summary)
        return summary

    # -------------------------------------------------------------------
    # Pull requests & issues
    # -------------------------------------------------------------------
    async def poll_pull_requests(self) -> CycleSummary:
        try:
            batch = await self.source.fetch_merged_pull_requests()
        except EventSourceError as exc:
            logger.warning("Pull request fetch failed: %s", exc)
            return CycleSummary(errors=1)
        return await self.ingest_pull_requests(batch)

    async def ingest_pull_requests(self, batch: Sequence[PullRequestRecord]) -> CycleSummary:
        summary = CycleSummary()
        async with self._lock:
            self._gate()
            cursor = self._state.last_processed_pull_request_id
            fresh = select_new(batch, cursor, key=lambda pr: pr.number)
            seen = self._state.seen_source_ids()

            for pr in reversed(fresh):
                if str(pr.number) in seen:
                    summary.skipped += 1
                    continue
                self._apply(score_pr_merge(pr, now=self._now()))
                summary.processed += 1

            self._state.last_processed_pull_request_id = advance(
                batch, cursor, key=lambda pr: pr.number
            )
            await self._finish_cycle("Pull requests", summary)
        return summary

    async def poll_issues(self) -> CycleSummary:
        try:
            batch = await self.source.fetch_closed_issues()
        except EventSourceError as exc:
            logger.warning("Issue fetch failed: %s", exc)
            return CycleSummary(errors=1)
        return await self.ingest_closed_issues(batch)

    async def ingest_closed_issues(self, batch: Sequence[IssueRecord]) -> CycleSummary:
        summary = CycleSummary()
        async with self._lock:
            self._gate()
            for issue in reversed(batch):
                if issue.number in self._state.scored_issue_numbers:
                    continue
                event = score_issue_closed(issue, now=self._now())
                if event is None:
                    summary.skipped += 1
                    continue
                self._apply(event)
                self._state.scored_issue_numbers.add(issue.number)
                summary.processed += 1
            await self._finish_cycle("Issues", summary)
        return summary

    # -------------------------------------------------------------------
    # Manual roast
    # -------------------------------------------------------------------
    async def request_fresh_roast(self, target: str | None = None) -> RoastDecision:
        """Ask for a roast of the current standings, subject to the cooldown.

        *target* must be a known player id; an unknown id raises ``KeyError``
        before the cooldown is consumed.
        """
        if self.narrator is None:
            return RoastDecision("unavailable")
        target_player = None
        if target is not None:
            target_player = self.player(target)
            if target_player is None:
                raise KeyError(target)
        if not self.roast_cooldown.try_acquire():
            return RoastDecision("cooldown", self.roast_cooldown.retry_after())

        async with self._lock:
            context = roast_context(self.standings(), self._now(), target_player)
            self._fire_commentary(CommentaryTrigger.MANUAL_ROAST, context, target)
        logger.info("Manual roast requested (target=%s)", target or "everyone")
        return RoastDecision("accepted")

    # -------------------------------------------------------------------
    # Read-only queries (always copies)
    # -------------------------------------------------------------------
    def snapshot(self) -> EngineState:
        return self._state.snapshot()

    def players(self) -> dict[str, PlayerScore]:
        return self._state.snapshot().players

    def player(self, player_id: str) -> PlayerScore | None:
        return self.players().get(player_id)

    def standings(self) -> Standings:
        return compute_standings(self.players().values())

    def score_gap(self) -> int:
        return self.standings().score_gap

    def latest_commentary(self) -> GameCommentary | None:
        return self._state.commentary[0] if self._state.commentary else None

    def commentary_history(self, limit: int | None = None) -> list[GameCommentary]:
        return list(self._state.commentary[:limit])

    def event_history(self, limit: int | None = None) -> list[ScoreEvent]:
        return list(self._state.events[:limit])


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------
def build_game_engine(cfg: RivalryConfig) -> GameEngine:
    """Engine wired to the configured store, GitHub and (optionally) Anthropic."""
    from rivalry.services.github_source import get_event_source
    from rivalry.services.narrator import get_narrator
    from rivalry.services.state_store import build_state_store

    return GameEngine(
        cfg,
        build_state_store(cfg),
        source=get_event_source(cfg.repository),
        narrator=get_narrator(cfg),
    )
