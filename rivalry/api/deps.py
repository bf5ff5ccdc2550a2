"""
rivalry.api.deps — FastAPI dependency injection
================================================
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from rivalry.services.game_service import GameEngine


def get_game_engine(request: Request) -> GameEngine:
    """The engine attached to the app at startup."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Engine not started")
    return engine


GameDep = Annotated[GameEngine, Depends(get_game_engine)]
