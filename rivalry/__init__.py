"""
Rivalry — A Developer Leaderboard Engine
==========================================
Turns the activity of a source-control project (commits, CI runs, merged
pull requests, closed issues) into per-player scores, streaks, titles and
a ranked leaderboard, with AI-written commentary on the big moments.

Package layout::

    rivalry/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Rank bands, shame titles, history limits
    ├── errors.py          # Exception hierarchy
    ├── engine/
    │   ├── events.py      # Raw source records + ScoreEvent
    │   ├── scoring.py     # Pure point rules (commits, CI, PRs, issues)
    │   ├── ledger.py      # PlayerScore + apply_score_event
    │   ├── resets.py      # Daily / weekly score resets
    │   ├── cursor.py      # Newest-first cursor walking
    │   ├── leaderboard.py # Standings + leader-flip detection
    │   └── state.py       # EngineState + GameCommentary
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # ORM tables for the SQL state store
    ├── services/
    │   ├── game_service.py   # GameEngine — the single writer
    │   ├── commentary.py     # Trigger contexts + roast cooldown
    │   ├── narrator.py       # Anthropic Messages adapter
    │   ├── github_source.py  # GitHub REST adapter
    │   ├── state_store.py    # JSON / SQL snapshot persistence
    │   └── poller.py         # Periodic poll loops
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # GameEngine dependency
        └── routes/        # Read-only leaderboard endpoints + roast
"""

__version__ = "0.1.0"
