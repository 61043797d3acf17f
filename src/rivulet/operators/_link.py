"""Upstream link shared by every operator."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from rivulet.types import ABSENT, Absent

if TYPE_CHECKING:
    from rivulet.channel import Channel
    from rivulet.protocols import DoneHandler, ErrorHandler, Subscribable
    from rivulet.subscription import Subscription

__all__ = ['link']


def link[T, R](
    source: Subscribable[T],
    target: Channel[R],
    step: Callable[[T], R | Absent],
    *,
    on_error: ErrorHandler | None = None,
    on_done: DoneHandler | None = None,
) -> Subscription[T]:
    """Subscribe target to source through step, owned by target.

    step returns the value to publish on target, or ABSENT to publish
    nothing. Exceptions raised by step become errors on target; errors from
    source are forwarded unchanged unless on_error is given. Exceptions from
    target's own subscribers are not caught.

    Returns:
        The upstream subscription, registered in target's registry.
    """

    def on_value(value: T) -> None:
        try:
            result = step(value)
        except Exception as e:
            target.publish_error(e)
            return
        if result is not ABSENT:
            target.publish(result)

    sub = source.subscribe(on_value, on_error if on_error is not None else target.publish_error, on_done)
    target.adopt(sub)
    return sub
