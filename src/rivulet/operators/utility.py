"""Utility operators: taps, pairing, time annotation and windowing."""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from rivulet._config import get_config
from rivulet._logging import get_logger
from rivulet.channel import Channel
from rivulet.operators._link import link
from rivulet.types import ABSENT, Absent, TimeInterval, Timestamped

if TYPE_CHECKING:
    from rivulet.protocols import Subscribable

__all__ = [
    'debug',
    'do_on_data',
    'do_on_error',
    'pairwise',
    'skip_last',
    'take_last',
    'take_while_inclusive',
    'time_interval',
    'timestamp',
]


def _check_count(count: int) -> None:
    if count < 0:
        msg = f'Count must be non-negative, got {count}'
        raise ValueError(msg)


def debug[T](
    source: Subscribable[T],
    tag: str | None = None,
    *,
    on_value: Callable[[T], object] | None = None,
    on_error: Callable[[Exception], object] | None = None,
) -> Channel[T]:
    """Log values and errors passing through, then forward them unchanged.

    With a tag, every value is logged as a `channel_value` event and every
    error as a `channel_error` event on the `rivulet.debug` logger, at the
    level configured by `init(debug_level=...)`. The hooks run after
    logging; an exception from a hook is published in place of the item.

    Args:
        source: Source to observe.
        tag: Label attached to log events. None disables logging.
        on_value: Optional hook called with each value.
        on_error: Optional hook called with each error.
    """
    target: Channel[T] = Channel()
    logger = get_logger('rivulet.debug', tag=tag)
    emit = getattr(logger, get_config().debug_level)

    def step(value: T) -> T:
        if tag is not None:
            emit('channel_value', value=repr(value))
        if on_value is not None:
            on_value(value)
        return value

    def forward_error(error: Exception) -> None:
        if tag is not None:
            emit('channel_error', error=repr(error), error_type=type(error).__name__)
        if on_error is not None:
            try:
                on_error(error)
            except Exception as e:
                target.publish_error(e)
                return
        target.publish_error(error)

    link(source, target, step, on_error=forward_error)
    return target


def do_on_data[T](source: Subscribable[T], action: Callable[[T], object]) -> Channel[T]:
    """Run action for each value and forward the value."""
    target: Channel[T] = Channel()

    def step(value: T) -> T:
        action(value)
        return value

    link(source, target, step)
    return target


def do_on_error[T](source: Subscribable[T], action: Callable[[Exception], object]) -> Channel[T]:
    """Run action for each error and forward the error.

    If action raises, its exception is published instead.
    """
    target: Channel[T] = Channel()

    def forward_error(error: Exception) -> None:
        try:
            action(error)
        except Exception as e:
            target.publish_error(e)
            return
        target.publish_error(error)

    link(source, target, lambda value: value, on_error=forward_error)
    return target


def pairwise[T](source: Subscribable[T]) -> Channel[tuple[T, T]]:
    """Publish (previous, current) for every value after the first."""
    target: Channel[tuple[T, T]] = Channel()
    previous: T | Absent = ABSENT

    def step(value: T) -> tuple[T, T] | Absent:
        nonlocal previous
        prior, previous = previous, value
        if prior is ABSENT:
            return ABSENT
        return (prior, value)

    link(source, target, step)
    return target


def timestamp[T](source: Subscribable[T]) -> Channel[Timestamped[T]]:
    """Wrap each value with the UTC time it arrived."""
    target: Channel[Timestamped[T]] = Channel()
    link(source, target, lambda value: Timestamped(value=value, timestamp=datetime.now(UTC)))
    return target


def time_interval[T](source: Subscribable[T]) -> Channel[TimeInterval[T]]:
    """Wrap each value with the time elapsed since the previous value.

    The first interval is measured from when the operator subscribed.
    """
    target: Channel[TimeInterval[T]] = Channel()
    last = time.monotonic()

    def step(value: T) -> TimeInterval[T]:
        nonlocal last
        now = time.monotonic()
        elapsed, last = now - last, now
        return TimeInterval(value=value, interval=timedelta(seconds=elapsed))

    link(source, target, step)
    return target


def skip_last[T](source: Subscribable[T], count: int) -> Channel[T]:
    """Hold back the most recent count values.

    A value is published once count newer values have arrived after it.

    Raises:
        ValueError: If count is negative.
    """
    _check_count(count)
    target: Channel[T] = Channel()
    held: deque[T] = deque()

    def step(value: T) -> T | Absent:
        held.append(value)
        if len(held) > count:
            return held.popleft()
        return ABSENT

    link(source, target, step)
    return target


def take_last[T](source: Subscribable[T], count: int) -> Channel[T]:
    """Publish the final count values once the source closes.

    Nothing is published while the source is open; when it is disposed the
    retained values are published in arrival order.

    Raises:
        ValueError: If count is negative.
    """
    _check_count(count)
    target: Channel[T] = Channel()
    tail: deque[T] = deque(maxlen=count)

    def step(value: T) -> Absent:
        tail.append(value)
        return ABSENT

    def flush() -> None:
        while tail:
            target.publish(tail.popleft())

    link(source, target, step, on_done=flush)
    return target


def take_while_inclusive[T](source: Subscribable[T], predicate: Callable[[T], bool]) -> Channel[T]:
    """Forward values while predicate holds, plus the first value failing it.

    Everything after that first failing value is dropped.
    """
    target: Channel[T] = Channel()
    finished = False

    def step(value: T) -> T | Absent:
        nonlocal finished
        if finished:
            return ABSENT
        if not predicate(value):
            finished = True
        return value

    link(source, target, step)
    return target
