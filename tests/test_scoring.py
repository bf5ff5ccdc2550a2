"""
tests/test_scoring.py — Score Calculator Tests
===============================================

Commit bands, the lazy-message penalty, CI runs, merged PRs and
story-pointed issues.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from conftest import NOON

from rivalry.config import ScoringRules
from rivalry.constants import SYSTEM_ACTOR
from rivalry.engine.events import (
    CommitRecord,
    DiffFile,
    IssueRecord,
    PullRequestRecord,
    ScoreEventType,
    WorkflowRunRecord,
)
from rivalry.engine.scoring import (
    has_test_files,
    is_lazy_message,
    is_merge_commit,
    score_commit,
    score_issue_closed,
    score_pr_merge,
    score_workflow_run,
)


def _commit(message: str = "implement the login flow", sha: str = "abc1234def") -> CommitRecord:
    return CommitRecord(sha=sha, author="alice", message=message, timestamp=NOON)


def _run(status: str = "completed", conclusion: str | None = "success", run_id: int = 900) -> WorkflowRunRecord:
    return WorkflowRunRecord(
        id=run_id, name="CI", status=status, conclusion=conclusion,
        created_at=NOON, head_branch="main",
    )


class TestCommitScenarios:
    def test_small_commit_without_tests(self):
        """One source file, 25 lines, a real message → +10."""
        event = score_commit(_commit("fix login bug"), [DiffFile("src/foo.go", 20, 5)])
        assert event.points == 10
        assert event.event_type == ScoreEventType.COMMIT
        assert "lazy" not in event.description

    def test_tested_commit_with_lazy_message(self):
        """+50 for touching a test file, then −15 for "wip"."""
        files = [DiffFile("tests/foo_test.go", 30, 0), DiffFile("src/foo.go", 10, 2)]
        event = score_commit(_commit("wip"), files)
        assert event.points == 35
        assert event.event_type == ScoreEventType.COMMIT_WITH_TESTS
        assert event.description.endswith("[lazy message -15]")
        assert set(event.flags) == {"tested", "lazy_message"}

    def test_untested_code_dump(self):
        event = score_commit(_commit(), [DiffFile("src/big.py", 250, 100)])
        assert event.points == -70
        assert "Untested code dump" in event.description
        assert "untested_dump" in event.flags

    def test_large_untested_commit(self):
        event = score_commit(_commit(), [DiffFile("src/mid.py", 100, 50)])
        assert event.points == -25
        assert "large_untested" in event.flags

    def test_medium_commit_gets_base_points(self):
        event = score_commit(_commit(), [DiffFile("src/mid.py", 60, 10)])
        assert event.points == 5

    @pytest.mark.parametrize("lines, points", [(49, 10), (50, 5), (100, 5), (101, -25), (300, -25), (301, -70)])
    def test_band_edges(self, lines, points):
        event = score_commit(_commit(), [DiffFile("src/a.py", lines, 0)])
        assert event.points == points

    def test_test_file_beats_size(self):
        """A tested commit is +50 no matter how large it is."""
        files = [DiffFile("src/huge.py", 5000, 0), DiffFile("app/LoginTest.swift", 1, 0)]
        assert score_commit(_commit(), files).points == 50

    def test_deterministic(self):
        files = [DiffFile("src/a.py", 120, 3)]
        first = score_commit(_commit("tmp"), files)
        second = score_commit(_commit("tmp"), files)
        assert first.points == second.points
        assert first.description == second.description

    def test_event_carries_source_id_and_author(self):
        event = score_commit(_commit(sha="deadbeefcafe"), [])
        assert event.source_id == "deadbeefcafe"
        assert event.player_id == "alice"
        assert event.timestamp == NOON

    def test_custom_patterns(self):
        rules = ScoringRules(test_file_patterns=("checks/",))
        files = [DiffFile("checks/login.py", 10, 0)]
        assert score_commit(_commit(), files, rules).points == 50
        assert score_commit(_commit(), files).points == 10


class TestLazyMessages:
    @pytest.mark.parametrize("message", ["wip", "  WIP  ", "Fix", "asdf", "short msg"])
    def test_lazy(self, message):
        assert is_lazy_message(message)

    @pytest.mark.parametrize("message", ["fix login bug", "Add retry to the uploader"])
    def test_not_lazy(self, message):
        assert not is_lazy_message(message)

    def test_min_length_is_configurable(self):
        rules = ScoringRules(lazy_message_min_length=3)
        assert not is_lazy_message("ok!", rules)

    def test_has_test_files(self):
        assert has_test_files([DiffFile("web/login.spec.ts")], (".spec.ts",))
        assert not has_test_files([DiffFile("web/login.ts")], (".spec.ts",))


class TestMergeCommits:
    def test_merge_prefixes(self):
        assert is_merge_commit("Merge branch 'main' into feature")
        assert is_merge_commit("Merge pull request #12 from acme/feature")
        assert not is_merge_commit("Merged the two config loaders")


class TestWorkflowRuns:
    def test_failure(self):
        event = score_workflow_run(_run(conclusion="failure"))
        assert event is not None
        assert event.points == -100
        assert event.event_type == ScoreEventType.CI_FAILED
        assert event.player_id == SYSTEM_ACTOR

    def test_in_progress_is_not_scored(self):
        assert score_workflow_run(_run(status="in_progress", conclusion=None)) is None

    def test_success(self):
        event = score_workflow_run(_run())
        assert event.points == 20
        assert event.event_type == ScoreEventType.CI_PASSED
        assert event.source_id == "900"
        assert "[recovered]" not in event.description

    def test_recovery_is_annotated(self):
        event = score_workflow_run(_run(), previous_conclusion="failure")
        assert event.points == 20
        assert event.description.endswith("[recovered]")

    @pytest.mark.parametrize("conclusion", ["cancelled", "skipped", "timed_out"])
    def test_other_conclusions_ignored(self, conclusion):
        assert score_workflow_run(_run(conclusion=conclusion)) is None


class TestPullRequests:
    def test_merged_pr(self):
        merged = NOON - timedelta(hours=3)
        pr = PullRequestRecord(number=7, title="Add login", author="bob", merged_at=merged)
        event = score_pr_merge(pr)
        assert event.points == 100
        assert event.player_id == "bob"
        assert event.timestamp == merged
        assert event.source_id == "7"

    def test_missing_merge_time_falls_back_to_now(self):
        pr = PullRequestRecord(number=8, title="Docs", author="bob", merged_at=None)
        assert score_pr_merge(pr, now=NOON).timestamp == NOON


class TestIssues:
    def test_story_points_to_assignee(self):
        issue = IssueRecord(
            number=42, title="Login page", author="bob", assignee="alice",
            labels=("bug", "story-points:5"), closed_at=NOON,
        )
        event = score_issue_closed(issue)
        assert event.points == 10
        assert event.player_id == "alice"
        assert event.event_type == ScoreEventType.ISSUE_CLOSED

    def test_falls_back_to_author(self):
        issue = IssueRecord(number=43, title="x", author="bob", labels=("story-points:2",))
        assert score_issue_closed(issue, now=NOON).player_id == "bob"

    def test_no_story_points_not_scored(self):
        issue = IssueRecord(number=44, title="x", author="bob", labels=("bug",))
        assert score_issue_closed(issue) is None
