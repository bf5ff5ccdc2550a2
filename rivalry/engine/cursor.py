"""
rivalry.engine.cursor — Cursor Tracker
=======================================

Event batches arrive newest first.  A cursor is the id of the newest
item already handled for that event class; everything in front of it in
the next batch is new.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TypeVar

from rivalry.engine.events import WorkflowRunRecord

T = TypeVar("T")
K = TypeVar("K")

__all__ = ["advance", "advance_workflow_cursor", "select_new"]


def select_new(batch: Sequence[T], cursor: K | None, key: Callable[[T], K]) -> list[T]:
    """Items in front of *cursor*, in the order received (newest first).

    With no cursor, or a cursor not present in the batch, every item is new.
    """
    fresh: list[T] = []
    for item in batch:
        if cursor is not None and key(item) == cursor:
            break
        fresh.append(item)
    return fresh


def advance(batch: Sequence[T], cursor: K | None, key: Callable[[T], K]) -> K | None:
    """Newest id in the batch; an empty batch leaves the cursor alone."""
    if not batch:
        return cursor
    return key(batch[0])


def advance_workflow_cursor(
    fresh: Sequence[WorkflowRunRecord], cursor: int | None
) -> int | None:
    """Advance past completed runs only.

    Walks the new slice oldest → newest and stops in front of the first run
    that is still queued or in progress, so that run is seen again on the
    next poll.  Completed runs newer than it will be seen again too; the
    engine's duplicate check keeps them from scoring twice.
    """
    for run in reversed(fresh):
        if not run.is_completed:
            break
        cursor = run.id
    return cursor
