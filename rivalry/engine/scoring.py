"""
rivalry.engine.scoring — Score Calculation Rules
=================================================

Pure calculation: one raw record (plus auxiliary data such as a commit's
changed files) in, one :class:`ScoreEvent` out.  No network, no ledger
state, no clock unless a fallback timestamp is needed.

Commit pipeline:
  changed files → test heuristic → line-count band → lazy-message penalty → ScoreEvent
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime

from rivalry.config import ScoringRules
from rivalry.constants import SYSTEM_ACTOR
from rivalry.engine.events import (
    CommitRecord,
    DiffFile,
    IssueRecord,
    PullRequestRecord,
    ScoreEvent,
    ScoreEventType,
    WorkflowRunRecord,
)

logger = logging.getLogger(__name__)

__all__ = [
    "has_test_files",
    "is_lazy_message",
    "is_merge_commit",
    "lines_changed",
    "score_commit",
    "score_issue_closed",
    "score_pr_merge",
    "score_workflow_run",
]

# ---------------------------------------------------------------------------
# Point values
# ---------------------------------------------------------------------------
TESTED_COMMIT_POINTS = 50
SMALL_COMMIT_POINTS = 10
BASE_COMMIT_POINTS = 5
LARGE_UNTESTED_PENALTY = 30
UNTESTED_DUMP_PENALTY = 75
LAZY_MESSAGE_PENALTY = 15

SMALL_COMMIT_LINES = 50  # strictly fewer lines → small commit
LARGE_COMMIT_LINES = 100  # strictly more lines → large untested
DUMP_COMMIT_LINES = 300  # strictly more lines → untested dump

CI_PASSED_POINTS = 20
CI_FAILED_POINTS = -100
PR_MERGED_POINTS = 100
STORY_POINT_MULTIPLIER = 2

_MERGE_PREFIXES = ("Merge branch", "Merge pull request")

_DEFAULT_RULES = ScoringRules()


# ---------------------------------------------------------------------------
# Commit heuristics
# ---------------------------------------------------------------------------
def has_test_files(files: Iterable[DiffFile], patterns: Iterable[str]) -> bool:
    """True when any changed path contains one of the test *patterns*."""
    patterns = tuple(patterns)
    return any(p in f.filename for f in files for p in patterns)


def lines_changed(files: Iterable[DiffFile]) -> int:
    return sum(f.additions + f.deletions for f in files)


def is_lazy_message(message: str, rules: ScoringRules = _DEFAULT_RULES) -> bool:
    """Lazy = exactly one of the configured throwaway words, or too short."""
    normalized = message.strip().casefold()
    return normalized in rules.lazy_messages or len(message) < rules.lazy_message_min_length


def is_merge_commit(message: str) -> bool:
    return message.startswith(_MERGE_PREFIXES)


# ---------------------------------------------------------------------------
# Commits
# ---------------------------------------------------------------------------
def score_commit(
    commit: CommitRecord,
    changed_files: list[DiffFile],
    rules: ScoringRules = _DEFAULT_RULES,
) -> ScoreEvent:
    """Score one commit from its changed-file list.

    Rules, first match wins:

    1. touches a test file → +50 (``commitWithTests``)
    2. fewer than 50 lines → +10
    3. more than 300 lines → 5 - 75 = -70 ("untested code dump")
    4. more than 100 lines → 5 - 30 = -25 ("large untested commit")
    5. anything else → +5

    A lazy message costs a further 15 points on top of whichever rule hit.
    """
    sha = commit.short_sha
    lines = lines_changed(changed_files)
    event_type = ScoreEventType.COMMIT
    flags: list[str] = []

    if has_test_files(changed_files, rules.test_file_patterns):
        points = TESTED_COMMIT_POINTS
        event_type = ScoreEventType.COMMIT_WITH_TESTS
        description = f"Tested commit {sha} (+{points})"
        flags.append("tested")
    elif lines < SMALL_COMMIT_LINES:
        points = SMALL_COMMIT_POINTS
        description = f"Small commit {sha} (+{points})"
    elif lines > DUMP_COMMIT_LINES:
        points = BASE_COMMIT_POINTS - UNTESTED_DUMP_PENALTY
        description = f"Untested code dump {sha} ({points})"
        flags.append("untested_dump")
    elif lines > LARGE_COMMIT_LINES:
        points = BASE_COMMIT_POINTS - LARGE_UNTESTED_PENALTY
        description = f"Large untested commit {sha} ({points})"
        flags.append("large_untested")
    else:
        points = BASE_COMMIT_POINTS
        description = f"Commit {sha} (+{points})"

    if is_lazy_message(commit.message, rules):
        points -= LAZY_MESSAGE_PENALTY
        description += f" [lazy message -{LAZY_MESSAGE_PENALTY}]"
        flags.append("lazy_message")

    return ScoreEvent(
        player_id=commit.author,
        event_type=event_type,
        points=points,
        description=description,
        timestamp=commit.timestamp,
        related_url=commit.html_url,
        source_id=commit.sha,
        flags=tuple(flags),
    )


# ---------------------------------------------------------------------------
# CI workflow runs
# ---------------------------------------------------------------------------
def score_workflow_run(
    run: WorkflowRunRecord,
    previous_conclusion: str | None = None,
) -> ScoreEvent | None:
    """Score a completed CI run; anything still running yields ``None``.

    CI runs are attributed to :data:`SYSTEM_ACTOR` — the run does not say
    which committer broke (or fixed) the build.  Cancelled, skipped and
    timed-out runs are not scored.
    """
    if not run.is_completed:
        return None

    if run.conclusion == "success":
        description = f"CI passed: {run.name} (+{CI_PASSED_POINTS})"
        if previous_conclusion == "failure":
            description += " [recovered]"
        return ScoreEvent(
            player_id=SYSTEM_ACTOR,
            event_type=ScoreEventType.CI_PASSED,
            points=CI_PASSED_POINTS,
            description=description,
            timestamp=run.created_at,
            related_url=run.html_url,
            source_id=str(run.id),
        )

    if run.conclusion == "failure":
        return ScoreEvent(
            player_id=SYSTEM_ACTOR,
            event_type=ScoreEventType.CI_FAILED,
            points=CI_FAILED_POINTS,
            description=f"CI FAILED: {run.name} ({CI_FAILED_POINTS})",
            timestamp=run.created_at,
            related_url=run.html_url,
            source_id=str(run.id),
        )

    logger.debug("Run %d concluded %r — not scored", run.id, run.conclusion)
    return None


# ---------------------------------------------------------------------------
# Pull requests & issues
# ---------------------------------------------------------------------------
def score_pr_merge(pr: PullRequestRecord, now: datetime | None = None) -> ScoreEvent:
    """Flat +100 for the PR author, stamped at merge time (or *now*)."""
    return ScoreEvent(
        player_id=pr.author,
        event_type=ScoreEventType.PR_MERGED,
        points=PR_MERGED_POINTS,
        description=f"Merged PR #{pr.number}: {pr.title} (+{PR_MERGED_POINTS})",
        timestamp=pr.merged_at or now or datetime.now(UTC),
        related_url=pr.html_url,
        source_id=str(pr.number),
    )


def score_issue_closed(issue: IssueRecord, now: datetime | None = None) -> ScoreEvent | None:
    """Story points × 2 for whoever the issue was assigned to.

    Issues without a ``story-points:N`` label are not scored.
    """
    story_points = issue.story_points
    if story_points is None:
        return None

    points = story_points * STORY_POINT_MULTIPLIER
    return ScoreEvent(
        player_id=issue.assignee or issue.author,
        event_type=ScoreEventType.ISSUE_CLOSED,
        points=points,
        description=(
            f"Closed #{issue.number}: {issue.title} "
            f"(+{points} pts for {story_points} story points)"
        ),
        timestamp=issue.closed_at or now or datetime.now(UTC),
        related_url=issue.html_url,
        source_id=str(issue.number),
    )
