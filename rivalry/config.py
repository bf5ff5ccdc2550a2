"""
rivalry.config — YAML Configuration Loader
===========================================

Reads ``config.yaml`` for the project being watched, the player roster,
polling intervals and every scoring / commentary tuning value.  Secrets
(``GITHUB_TOKEN``, ``ANTHROPIC_API_KEY``, ``DATABASE_URL``) never live
here — they come from the environment (``.env``).

Usage::

    from rivalry.config import load_config

    cfg = load_config()                    # ./config.yaml or $RIVALRY_CONFIG
    print(cfg.repository)                  # "chickensintrees/async"
    print(cfg.scoring.lazy_messages)       # ("wip", "fix", ...)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from rivalry.errors import ConfigError

# ---------------------------------------------------------------------------
# Default pattern tables
# ---------------------------------------------------------------------------
DEFAULT_TEST_FILE_PATTERNS: tuple[str, ...] = (
    "Test.swift", "_test.go", ".test.ts", ".test.js", ".spec.ts", ".spec.js",
    "/tests/", "/test/", "/spec/", "Tests/", "Test/", "Spec/",
)

DEFAULT_LAZY_MESSAGES: tuple[str, ...] = (
    "wip", "fix", "update", "changes", "stuff", "asdf", "test", "temp", "tmp",
)

FLIP_MODES = ("margin", "leader_change")
STATE_BACKENDS = ("json", "sql")


# ---------------------------------------------------------------------------
# Typed settings objects
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ScoringRules:
    """Pattern tables and switches read by the score calculator."""

    test_file_patterns: tuple[str, ...] = DEFAULT_TEST_FILE_PATTERNS
    lazy_messages: tuple[str, ...] = DEFAULT_LAZY_MESSAGES
    lazy_message_min_length: int = 10
    skip_merge_commits: bool = True


@dataclass(frozen=True, slots=True)
class PollingConfig:
    """Seconds between polls, one loop per event class."""

    commits_seconds: float = 60
    workflows_seconds: float = 45
    pull_requests_seconds: float = 30
    issues_seconds: float = 30


@dataclass(frozen=True, slots=True)
class LeaderboardConfig:
    flip_threshold: int = 50
    flip_mode: str = "margin"  # "margin" | "leader_change"


@dataclass(frozen=True, slots=True)
class CommentaryConfig:
    enabled: bool = True
    model: str = "claude-3-5-haiku-20241022"
    max_tokens: int = 150
    roast_cooldown_seconds: float = 300
    significant_points: int = 50  # |points| at which a commit earns commentary


@dataclass(frozen=True, slots=True)
class StateConfig:
    backend: str = "json"  # "json" | "sql"
    path: str = "data/rivalry.json"


@dataclass(frozen=True, slots=True)
class RivalryConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    project_name: str = "Rivalry"
    repository: str = ""  # "owner/name" on GitHub
    dashboard_port: int = 8000

    # Player id (GitHub login) → display name.  Seeded into the ledger at start-up.
    roster: dict[str, str] = field(default_factory=dict)

    state: StateConfig = field(default_factory=StateConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    scoring: ScoringRules = field(default_factory=ScoringRules)
    leaderboard: LeaderboardConfig = field(default_factory=LeaderboardConfig)
    commentary: CommentaryConfig = field(default_factory=CommentaryConfig)


# ---------------------------------------------------------------------------
# Section parsers
# ---------------------------------------------------------------------------
def _scoring(raw: dict) -> ScoringRules:
    defaults = ScoringRules()
    return ScoringRules(
        test_file_patterns=tuple(raw.get("test_file_patterns", defaults.test_file_patterns)),
        lazy_messages=tuple(
            m.strip().lower() for m in raw.get("lazy_messages", defaults.lazy_messages)
        ),
        lazy_message_min_length=int(
            raw.get("lazy_message_min_length", defaults.lazy_message_min_length)
        ),
        skip_merge_commits=bool(raw.get("skip_merge_commits", defaults.skip_merge_commits)),
    )


def _polling(raw: dict) -> PollingConfig:
    defaults = PollingConfig()
    return PollingConfig(
        commits_seconds=float(raw.get("commits_seconds", defaults.commits_seconds)),
        workflows_seconds=float(raw.get("workflows_seconds", defaults.workflows_seconds)),
        pull_requests_seconds=float(
            raw.get("pull_requests_seconds", defaults.pull_requests_seconds)
        ),
        issues_seconds=float(raw.get("issues_seconds", defaults.issues_seconds)),
    )


def _leaderboard(raw: dict) -> LeaderboardConfig:
    mode = raw.get("flip_mode", "margin")
    if mode not in FLIP_MODES:
        raise ConfigError(f"leaderboard.flip_mode must be one of {FLIP_MODES}, got {mode!r}")
    return LeaderboardConfig(
        flip_threshold=int(raw.get("flip_threshold", 50)),
        flip_mode=mode,
    )


def _commentary(raw: dict) -> CommentaryConfig:
    defaults = CommentaryConfig()
    return CommentaryConfig(
        enabled=bool(raw.get("enabled", defaults.enabled)),
        model=raw.get("model", defaults.model),
        max_tokens=int(raw.get("max_tokens", defaults.max_tokens)),
        roast_cooldown_seconds=float(
            raw.get("roast_cooldown_seconds", defaults.roast_cooldown_seconds)
        ),
        significant_points=int(raw.get("significant_points", defaults.significant_points)),
    )


def _state(raw: dict) -> StateConfig:
    backend = raw.get("backend", "json")
    if backend not in STATE_BACKENDS:
        raise ConfigError(f"state.backend must be one of {STATE_BACKENDS}, got {backend!r}")
    return StateConfig(backend=backend, path=raw.get("path", StateConfig().path))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def parse_config(raw: dict) -> RivalryConfig:
    """Build a :class:`RivalryConfig` from an already-parsed YAML mapping."""
    return RivalryConfig(
        project_name=raw.get("project_name", "Rivalry"),
        repository=raw["repository"],
        dashboard_port=int(raw.get("dashboard_port", 8000)),
        roster={str(k): str(v) for k, v in (raw.get("roster") or {}).items()},
        state=_state(raw.get("state") or {}),
        polling=_polling(raw.get("polling") or {}),
        scoring=_scoring(raw.get("scoring") or {}),
        leaderboard=_leaderboard(raw.get("leaderboard") or {}),
        commentary=_commentary(raw.get("commentary") or {}),
    )


def load_config(path: str | Path | None = None) -> RivalryConfig:
    """Read *path* and return a :class:`RivalryConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.  Defaults to
        ``$RIVALRY_CONFIG`` or ``config.yaml`` in the working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If ``repository`` is missing.
    ConfigError
        If an enumerated option holds an unknown value.
    """
    config_path = Path(path or os.getenv("RIVALRY_CONFIG", "config.yaml"))
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return parse_config(raw)
