"""Event-loop helpers for time-based operators and awaitable producers.

Timers and background tasks run on the running asyncio loop, so they resolve
on a later cooperative turn and never pre-empt synchronous delivery.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

__all__ = ['call_later', 'spawn', 'to_seconds']

# Strong references keep fire-and-forget tasks alive until they finish
_background_tasks: set[asyncio.Task[Any]] = set()


def to_seconds(duration: float | timedelta) -> float:
    """Normalize a duration to float seconds.

    Raises:
        ValueError: If the duration is negative.
    """
    seconds = duration.total_seconds() if isinstance(duration, timedelta) else float(duration)
    if seconds < 0:
        msg = f'Duration must be non-negative, got {seconds}s'
        raise ValueError(msg)
    return seconds


def call_later(delay: float, callback: Callable[[], object]) -> asyncio.TimerHandle:
    """Schedule callback on the running loop after delay seconds.

    Raises:
        RuntimeError: If no event loop is running.
    """
    loop = asyncio.get_running_loop()
    return loop.call_later(delay, callback)


def spawn[T](coro: Coroutine[Any, Any, T]) -> asyncio.Task[T]:
    """Run a coroutine as a background task on the running loop.

    Raises:
        RuntimeError: If no event loop is running.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        coro.close()
        raise
    task = loop.create_task(coro)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task
