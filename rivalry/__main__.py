"""
rivalry.__main__ — Entry point for ``python -m rivalry``
=========================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (soft settings).
3. Build the GameEngine: state store, GitHub source, narrator.
4. Serve the API with uvicorn; the app lifespan starts the engine and
   its poll loops, and stops them on shutdown.

Run with::

    python -m rivalry
"""

from __future__ import annotations

import logging
import os
import sys

import uvicorn
from dotenv import load_dotenv

from rivalry.api.main import create_app
from rivalry.config import load_config
from rivalry.errors import ConfigError
from rivalry.services.game_service import build_game_engine

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("rivalry")


def main() -> None:
    """Bootstrap and serve Rivalry."""

    # 1. Environment variables (secrets).
    load_dotenv()

    # 2. Soft configuration.
    try:
        cfg = load_config()
    except (FileNotFoundError, ConfigError) as exc:
        logger.critical("%s", exc)
        sys.exit(1)
    except KeyError as exc:
        logger.critical("config.yaml is missing required key %s", exc)
        sys.exit(1)
    logger.info("Config loaded — Project: %s (%s)", cfg.project_name, cfg.repository)

    # 3. Engine.
    engine = build_game_engine(cfg)

    # 4. Serve (blocks until Ctrl+C or SIGTERM).
    app = create_app(engine)
    uvicorn.run(
        app,
        host=os.getenv("RIVALRY_HOST", "127.0.0.1"),
        port=cfg.dashboard_port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
