"""
rivalry.api.main — FastAPI application entry point
===================================================

The API process *is* the engine process: the lifespan builds the
:class:`GameEngine`, loads its state and starts the poll loops, so the
single writer lives next to the read endpoints that serve its copies.

Run with::

    uvicorn rivalry.api.main:app --port 8000
"""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from rivalry import __version__  # noqa: E402
from rivalry.api.routes.public import router as public_router  # noqa: E402
from rivalry.config import load_config  # noqa: E402
from rivalry.services.game_service import GameEngine, build_game_engine  # noqa: E402
from rivalry.services.poller import Poller  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Allowed CORS origins from ``CORS_ALLOW_ORIGINS`` (comma-separated)."""
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]


def create_app(engine: GameEngine | None = None, *, start_polling: bool = True) -> FastAPI:
    """Build the app.  Without *engine*, one is built from ``config.yaml``."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        game = app.state.engine
        if game is None:
            game = build_game_engine(load_config())
            app.state.engine = game
        await game.start()

        poller = None
        if start_polling and game.source is not None:
            poller = Poller(game, game.cfg.polling)
            poller.start(asyncio.get_running_loop())
        logger.info("Rivalry API started — watching %s", game.cfg.repository)
        yield
        if poller is not None:
            await poller.stop()
        await game.aclose()
        logger.info("Rivalry API shutting down")

    app = FastAPI(title="Rivalry Leaderboard API", version=__version__, lifespan=lifespan)
    app.state.engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.include_router(public_router, prefix="/api")

    @app.get("/api/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
