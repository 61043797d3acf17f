"""Combinators over several sources."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from typing import TYPE_CHECKING, Any

from rivulet.channel import Channel
from rivulet.operators._link import link
from rivulet.types import ABSENT, Absent

if TYPE_CHECKING:
    from rivulet.protocols import Subscribable

__all__ = ['combine_latest', 'merge', 'with_latest_from']


def combine_latest[T](sources: Sequence[Subscribable[T]]) -> Channel[list[T]]:
    """Publish the latest value of every source, in source order.

    Nothing is published until every source has published at least once;
    after that, any source update publishes a fresh list. Errors from any
    source pass through.

    Example:
        ```python
        form = Channel.combine_latest([email.map(is_valid), password.map(is_valid)])
        can_submit = form.map(all)
        ```
    """
    target: Channel[list[T]] = Channel()
    latest: list[T | Absent] = [ABSENT] * len(sources)

    def slot(index: int) -> Callable[[T], list[T] | Absent]:
        def step(value: T) -> list[T] | Absent:
            latest[index] = value
            if any(item is ABSENT for item in latest):
                return ABSENT
            return list(latest)  # type: ignore[arg-type]

        return step

    for index, source in enumerate(sources):
        link(source, target, slot(index))
    return target


def merge[T](sources: Iterable[Subscribable[T]]) -> Channel[T]:
    """Publish every value of every source in arrival order."""
    target: Channel[T] = Channel()
    for source in sources:
        link(source, target, lambda value: value)
    return target


def with_latest_from[T, S, R](
    source: Subscribable[T],
    other: Subscribable[S],
    combiner: Callable[[T, S], R],
) -> Channel[R]:
    """Combine each source value with the latest value of other.

    other is subscribed first, so a caching other that already holds a value
    is available to the source's replayed value. Source values arriving
    while other has no value are dropped. Values of other alone publish
    nothing.
    """
    target: Channel[R] = Channel()
    latest: list[Any] = [ABSENT]

    def remember(value: S) -> None:
        latest[0] = value

    target.adopt(other.subscribe(remember, target.publish_error))

    def step(value: T) -> R | Absent:
        if latest[0] is ABSENT:
            return ABSENT
        return combiner(value, latest[0])

    link(source, target, step)
    return target
