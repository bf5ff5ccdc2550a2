"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import copy
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.pool import StaticPool

from rivalry.config import RivalryConfig
from rivalry.database.models import Base
from rivalry.engine.state import EngineState

# Wednesday, midday UTC: the same calendar day in every local timezone
# between UTC-11 and UTC+11.
NOON = datetime(2026, 3, 11, 12, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------
class FakeClock:
    def __init__(self, now: datetime = NOON) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class MemoryStore:
    """State store that keeps every saved snapshot in a list."""

    def __init__(self, state: EngineState | None = None) -> None:
        self.state = state
        self.saves: list[EngineState] = []

    def load(self) -> EngineState:
        return copy.deepcopy(self.state) if self.state else EngineState.empty()

    def save(self, state: EngineState) -> None:
        self.saves.append(state)
        self.state = state


class FakeSource:
    """Event source serving canned batches.

    ``diffs`` maps a sha to its changed files, or to an exception to raise.
    """

    def __init__(self) -> None:
        self.commits = []
        self.diffs = {}
        self.runs = []
        self.pulls = []
        self.issues = []
        self.error: Exception | None = None
        self.closed = False

    async def fetch_commits(self):
        if self.error:
            raise self.error
        return list(self.commits)

    async def fetch_commit_diff(self, sha):
        files = self.diffs.get(sha, [])
        if isinstance(files, Exception):
            raise files
        return files

    async def fetch_workflow_runs(self):
        if self.error:
            raise self.error
        return list(self.runs)

    async def fetch_merged_pull_requests(self):
        if self.error:
            raise self.error
        return list(self.pulls)

    async def fetch_closed_issues(self):
        if self.error:
            raise self.error
        return list(self.issues)

    async def aclose(self):
        self.closed = True


class FakeNarrator:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    async def generate(self, trigger, context):
        self.calls.append((trigger, context))
        if self.error:
            raise self.error
        return f"{trigger} take #{len(self.calls)}"

    async def aclose(self):
        self.closed = True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def cfg() -> RivalryConfig:
    return RivalryConfig(
        project_name="Widgets",
        repository="acme/widgets",
        roster={"alice": "Alice", "bob": "Bob"},
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def narrator() -> FakeNarrator:
    return FakeNarrator()


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all Rivalry tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in ``run_db``).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine
