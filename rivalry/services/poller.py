"""
rivalry.services.poller — Periodic Poll Loops
==============================================

One background task per event class, each on its own interval from
``config.yaml``:

- **commits** — every 60 s by default
- **workflow runs** — every 45 s
- **merged pull requests** — every 30 s
- **closed issues** — every 30 s

A failing cycle is logged and the loop carries on; nothing here is fatal.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rivalry.config import PollingConfig
    from rivalry.services.game_service import GameEngine

logger = logging.getLogger(__name__)


class Poller:
    """Drives the engine's poll cycles from background tasks."""

    def __init__(self, engine: GameEngine, polling: PollingConfig) -> None:
        self.engine = engine
        self.polling = polling
        self._tasks: list[asyncio.Task] = []

    def _schedule(self) -> list[tuple[str, Callable[[], Awaitable], float]]:
        return [
            ("commits", self.engine.poll_commits, self.polling.commits_seconds),
            ("workflows", self.engine.poll_workflows, self.polling.workflows_seconds),
            ("pull-requests", self.engine.poll_pull_requests, self.polling.pull_requests_seconds),
            ("issues", self.engine.poll_issues, self.polling.issues_seconds),
        ]

    @staticmethod
    async def _loop(name: str, cycle: Callable[[], Awaitable], interval: float) -> None:
        while True:
            try:
                await cycle()
            except Exception:
                logger.exception("Poll cycle %s failed", name)
            await asyncio.sleep(interval)

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def start(self, loop: asyncio.AbstractEventLoop) -> None:
        """Start every poll loop.  A second call is a no-op."""
        if self._tasks:
            return
        for name, cycle, interval in self._schedule():
            self._tasks.append(loop.create_task(self._loop(name, cycle, interval), name=f"poll-{name}"))
        logger.info("Polling started (%d loops)", len(self._tasks))

    async def stop(self) -> None:
        """Cancel the loops and wait for them to unwind."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
