"""Transformation operators: map, filter, switch, accumulate."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from rivulet.channel import Channel
from rivulet.operators._link import link
from rivulet.types import ABSENT, Absent

if TYPE_CHECKING:
    from rivulet.protocols import Subscribable
    from rivulet.subscription import Subscription

__all__ = [
    'map_not_none',
    'map_values',
    'scan',
    'start_with',
    'switch_map',
    'where',
    'where_not_none',
]


def map_values[T, R](source: Subscribable[T], mapper: Callable[[T], R]) -> Channel[R]:
    """Publish mapper(value) for every source value.

    Example:
        ```python
        prices = Channel(10)
        with_tax = map_values(prices, lambda p: p * 1.2)
        ```
    """
    target: Channel[R] = Channel()
    link(source, target, mapper)
    return target


def where[T](source: Subscribable[T], predicate: Callable[[T], bool]) -> Channel[T]:
    """Publish only the source values satisfying predicate."""
    target: Channel[T] = Channel()

    def step(value: T) -> T | Absent:
        return value if predicate(value) else ABSENT

    link(source, target, step)
    return target


def switch_map[T, R](source: Subscribable[T], mapper: Callable[[T], Subscribable[R]]) -> Channel[R]:
    """Follow only the inner source built from the most recent value.

    Each source value is mapped to an inner source. The subscription to the
    previous inner source is cancelled before the new one is attached, so at
    most one inner subscription is live. This is how an in-flight request is
    abandoned when a newer one arrives.

    Example:
        ```python
        results = queries.switch_map(lambda q: Channel.from_awaitable(search(q)))
        ```
    """
    target: Channel[R] = Channel()
    inner: list[Subscription[R]] = []

    def release() -> None:
        while inner:
            inner.pop().unsubscribe()

    def step(value: T) -> Absent:
        release()
        inner.append(mapper(value).subscribe(target.publish, target.publish_error))
        return ABSENT

    upstream = link(source, target, step)
    upstream.add_teardown(release)
    return target


def map_not_none[T, R](source: Subscribable[T], mapper: Callable[[T], R | None]) -> Channel[R]:
    """Publish mapper(value), skipping None results."""
    target: Channel[R] = Channel()

    def step(value: T) -> R | Absent:
        result = mapper(value)
        return ABSENT if result is None else result

    link(source, target, step)
    return target


def where_not_none[T](source: Subscribable[T | None]) -> Channel[T]:
    """Publish the source values that are not None."""
    target: Channel[T] = Channel()

    def step(value: T | None) -> T | Absent:
        return ABSENT if value is None else value

    link(source, target, step)
    return target


def scan[T, R](source: Subscribable[T], seed: R, accumulator: Callable[[R, T, int], R]) -> Channel[R]:
    """Publish each intermediate accumulation.

    accumulator receives the running result, the current value and its
    zero-based index. If it raises, the running result is left unchanged.
    """
    target: Channel[R] = Channel()
    acc = seed
    index = 0

    def step(value: T) -> R:
        nonlocal acc, index
        acc = accumulator(acc, value, index)
        index += 1
        return acc

    link(source, target, step)
    return target


def start_with[T](source: Subscribable[T], value: T) -> Channel[T]:
    """Begin with value, then follow the source.

    Until the source publishes a live value, the result replays both value and
    the value a caching source replayed on attach, in that order. From the
    first live value on it replays only its latest value.
    """
    target: Channel[T] = Channel(replay=2)
    target.publish(value)
    narrow_on_next = False

    def step(item: T) -> T:
        nonlocal narrow_on_next
        if narrow_on_next:
            narrow_on_next = False
            target._resize_replay(1)
        return item

    link(source, target, step)
    # values from here on are live
    narrow_on_next = True
    return target
