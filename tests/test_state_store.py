"""
tests/test_state_store.py — State Persistence Tests
====================================================

JSON file and SQL table stores must both round-trip the full snapshot
and both treat a missing or unreadable snapshot as a fresh start.
"""

from __future__ import annotations

from datetime import date, timedelta

import pytest
from conftest import NOON

from rivalry.config import RivalryConfig, StateConfig
from rivalry.engine.events import ScoreEvent, ScoreEventType
from rivalry.engine.ledger import PlayerScore, PlayerTitle, TitleType
from rivalry.engine.state import CommentaryTrigger, EngineState, GameCommentary
from rivalry.services.state_store import JsonStateStore, SqlStateStore, build_state_store


def _populated_state() -> EngineState:
    state = EngineState.empty()
    state.players["alice"] = PlayerScore(
        id="alice", display_name="Alice", total_score=140, daily_score=40,
        weekly_score=90, streak=3, penalties=70, last_activity=NOON,
        titles=[PlayerTitle("Code Dumper", "trash", TitleType.SHAME, NOON, NOON + timedelta(days=1))],
    )
    state.players["system"] = PlayerScore(id="system", display_name="system", total_score=-80)
    state.record_event(ScoreEvent(
        player_id="alice", event_type=ScoreEventType.COMMIT_WITH_TESTS, points=50,
        description="Tested commit abc1234 (+50)", timestamp=NOON,
        related_url="https://example.test/c/abc1234", source_id="abc1234ff", flags=("tested",),
    ))
    state.record_event(ScoreEvent(
        player_id="system", event_type=ScoreEventType.CI_FAILED, points=-100,
        description="CI FAILED: CI (-100)", timestamp=NOON + timedelta(minutes=5), source_id="901",
    ))
    state.record_commentary(GameCommentary(
        trigger=CommentaryTrigger.CI_FAILED, content="The build is on fire.", timestamp=NOON,
    ))
    state.last_processed_commit_id = "abc1234ff"
    state.last_processed_workflow_id = 901
    state.last_processed_pull_request_id = 12
    state.scored_issue_numbers = {3, 9}
    state.daily_reset_date = date(2026, 3, 11)
    state.weekly_reset_date = date(2026, 3, 9)
    state.leader_id = "alice"
    return state


def _assert_same(loaded: EngineState, original: EngineState) -> None:
    assert loaded.players == original.players
    assert loaded.events == original.events
    assert loaded.commentary == original.commentary
    assert loaded.last_processed_commit_id == original.last_processed_commit_id
    assert loaded.last_processed_workflow_id == original.last_processed_workflow_id
    assert loaded.last_processed_pull_request_id == original.last_processed_pull_request_id
    assert loaded.scored_issue_numbers == original.scored_issue_numbers
    assert loaded.daily_reset_date == original.daily_reset_date
    assert loaded.weekly_reset_date == original.weekly_reset_date
    assert loaded.leader_id == original.leader_id


class TestJsonStateStore:
    def test_missing_file_starts_fresh(self, tmp_path):
        state = JsonStateStore(tmp_path / "nope.json").load()
        assert state.players == {}
        assert state.last_processed_commit_id is None

    def test_corrupt_file_starts_fresh(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json", encoding="utf-8")
        assert JsonStateStore(path).load().players == {}

    def test_wrong_shape_starts_fresh(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text('{"players": {"alice": {"total_score": 5}}}', encoding="utf-8")
        assert JsonStateStore(path).load().players == {}

    def test_round_trip(self, tmp_path):
        store = JsonStateStore(tmp_path / "nested" / "state.json")
        original = _populated_state()
        store.save(original)
        _assert_same(store.load(), original)

    def test_save_overwrites(self, tmp_path):
        store = JsonStateStore(tmp_path / "state.json")
        store.save(_populated_state())
        store.save(EngineState.empty())
        assert store.load().players == {}


class TestSqlStateStore:
    def test_empty_database_starts_fresh(self, db_engine):
        state = SqlStateStore(db_engine).load()
        assert state.players == {}
        assert state.daily_reset_date is None

    def test_round_trip(self, db_engine):
        store = SqlStateStore(db_engine)
        original = _populated_state()
        store.save(original)
        _assert_same(store.load(), original)

    def test_save_replaces_previous_snapshot(self, db_engine):
        store = SqlStateStore(db_engine)
        store.save(_populated_state())
        smaller = EngineState.empty()
        smaller.players["bob"] = PlayerScore(id="bob", display_name="Bob", total_score=5)
        store.save(smaller)
        loaded = store.load()
        assert set(loaded.players) == {"bob"}
        assert loaded.events == []
        assert loaded.last_processed_commit_id is None


class TestFactory:
    def test_json_backend(self, tmp_path):
        cfg = RivalryConfig(repository="acme/widgets", state=StateConfig(path=str(tmp_path / "s.json")))
        assert isinstance(build_state_store(cfg), JsonStateStore)

    def test_sql_backend(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite://")
        cfg = RivalryConfig(repository="acme/widgets", state=StateConfig(backend="sql"))
        assert isinstance(build_state_store(cfg), SqlStateStore)

    def test_sql_backend_without_url(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        cfg = RivalryConfig(repository="acme/widgets", state=StateConfig(backend="sql"))
        with pytest.raises(RuntimeError):
            build_state_store(cfg)
