"""Time-control operators: debounce, throttle and buffering.

Timers run on the running asyncio loop. Building a debounced channel, or
publishing into one, outside a running loop surfaces a RuntimeError as an
error on the derived channel.
"""

from __future__ import annotations

import asyncio
import math
import time
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from rivulet import _scheduler
from rivulet.channel import Channel
from rivulet.operators._link import link
from rivulet.types import ABSENT, Absent

if TYPE_CHECKING:
    from rivulet.protocols import Subscribable

__all__ = ['buffer', 'debounce_time', 'throttle_time']


def debounce_time[T](source: Subscribable[T], duration: float | timedelta) -> Channel[T]:
    """Publish a value only after duration passes with no newer value.

    Every arrival restarts the timer, so a burst publishes only its last
    value. Disposing the result cancels a pending timer.

    Args:
        source: Source to debounce.
        duration: Quiet period, in seconds or as a timedelta.

    Raises:
        ValueError: If duration is negative.
    """
    seconds = _scheduler.to_seconds(duration)
    target: Channel[T] = Channel()
    pending: list[asyncio.TimerHandle] = []

    def cancel_pending() -> None:
        while pending:
            pending.pop().cancel()

    def step(value: T) -> Absent:
        cancel_pending()
        pending.append(_scheduler.call_later(seconds, lambda: fire(value)))
        return ABSENT

    def fire(value: T) -> None:
        pending.clear()
        target.publish(value)

    upstream = link(source, target, step)
    upstream.add_teardown(cancel_pending)
    return target


def throttle_time[T](source: Subscribable[T], duration: float | timedelta) -> Channel[T]:
    """Publish the first value of each window and drop the rest.

    A window opens on a published value and lasts duration; values arriving
    inside it are dropped, not delayed.

    Raises:
        ValueError: If duration is negative.
    """
    seconds = _scheduler.to_seconds(duration)
    target: Channel[T] = Channel()
    window_start = -math.inf

    def step(value: T) -> T | Absent:
        nonlocal window_start
        now = time.monotonic()
        if now - window_start < seconds:
            return ABSENT
        window_start = now
        return value

    link(source, target, step)
    return target


def buffer[T](source: Subscribable[T], closing: Subscribable[Any]) -> Channel[list[T]]:
    """Collect source values and publish them as a list whenever closing emits.

    Each closing emission publishes the values collected since the previous
    one (possibly an empty list) and starts a new collection. Errors from
    either source are forwarded.
    """
    target: Channel[list[T]] = Channel()
    pending: list[T] = []

    def step(value: T) -> Absent:
        pending.append(value)
        return ABSENT

    def flush(_signal: object) -> None:
        batch = list(pending)
        pending.clear()
        target.publish(batch)

    upstream = link(source, target, step)
    trigger = closing.subscribe(flush, target.publish_error)
    upstream.add_teardown(trigger.unsubscribe)
    return target
