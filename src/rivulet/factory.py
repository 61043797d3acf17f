"""Channel factories: awaitable-backed channels and deferred sources."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import TYPE_CHECKING, Any

import anyio

from rivulet import _scheduler
from rivulet._logging import get_logger
from rivulet.channel import Channel
from rivulet.errors import OperationTimedOutError
from rivulet.subscription import Subscription

if TYPE_CHECKING:
    from rivulet.protocols import DoneHandler, ErrorHandler, Subscribable, ValueHandler

__all__ = ['Deferred', 'defer', 'from_awaitable']


def _dispose_later(channel: Channel[Any]) -> None:
    if channel.is_disposed:
        return
    try:
        _scheduler.spawn(channel.dispose())
    except RuntimeError:
        logger = get_logger(__name__, channel=repr(channel))
        logger.debug('deferred_channel_not_disposed', reason='no running event loop')


def _run_error_hook(hook: Callable[[Exception], object] | None, error: Exception) -> Exception | None:
    if hook is None:
        return None
    try:
        hook(error)
    except Exception as e:
        return e
    return None


class Deferred[T]:
    """Cold source that builds a fresh upstream for every subscription.

    Each `subscribe` call runs the factory and attaches to the channel it
    returns, so re-subscribing (as `retry` does) re-runs the whole upstream
    pipeline. Cancelling the subscription disposes the channel built for it.
    An exception raised by the factory is delivered as an error to that
    subscriber alone.

    Example:
        ```python
        fresh = Deferred(lambda: Channel.from_awaitable(fetch_user(user_id)))
        user = fresh.retry(3)
        ```
    """

    __slots__ = ('_factory',)

    def __init__(self, factory: Callable[[], Subscribable[T]]) -> None:
        self._factory = factory

    def __repr__(self) -> str:
        return f'Deferred(factory={self._factory!r})'

    def subscribe(
        self,
        on_value: ValueHandler[T],
        on_error: ErrorHandler | None = None,
        on_done: DoneHandler | None = None,
        *,
        cancel_on_error: bool = False,
    ) -> Subscription[T]:
        """Build a fresh upstream and attach the listener to it."""
        try:
            upstream = self._factory()
        except Exception as e:
            failed: Subscription[T] = Subscription(on_value, on_error, on_done, cancel_on_error=cancel_on_error)
            failed._deliver_error(e)
            return failed

        sub = upstream.subscribe(on_value, on_error, on_done, cancel_on_error=cancel_on_error)
        if isinstance(upstream, Channel):
            sub.add_teardown(lambda: _dispose_later(upstream))
        return sub

    # Operator methods, mirroring Channel's for the operators used on cold sources.

    def map[R](self, mapper: Callable[[T], R]) -> Channel[R]:
        """Channel of mapper(value) for every value."""
        from rivulet.operators.transform import map_values

        return map_values(self, mapper)

    def retry(self, count: int | None = None) -> Channel[T]:
        """Re-run the upstream on error, count times or indefinitely."""
        from rivulet.operators.recovery import retry

        return retry(self, count)

    def retry_when(self, signal_factory: Callable[[Channel[Exception]], Subscribable[Any]]) -> Channel[T]:
        """Re-run the upstream once per emission of the control source built for each error."""
        from rivulet.operators.recovery import retry_when

        return retry_when(self, signal_factory)

    def on_error_resume_next(self, recovery: Callable[[Exception], Subscribable[T]]) -> Channel[T]:
        """On the first error, continue with recovery(error)."""
        from rivulet.operators.recovery import on_error_resume_next

        return on_error_resume_next(self, recovery)


def defer[T](factory: Callable[[], Subscribable[T]]) -> Deferred[T]:
    """Create a Deferred source from factory."""
    return Deferred(factory)


def from_awaitable[T](
    awaitable: Awaitable[T],
    *,
    timeout: float | timedelta | None = None,
    on_error: Callable[[Exception], object] | None = None,
    on_finally: Callable[[], object] | None = None,
) -> Channel[T]:
    """Create a channel fed by a single awaitable.

    The awaitable runs as a background task on the running event loop. Its
    result is published, or its exception is passed to on_error and then
    published as an error. Afterwards on_finally runs and the channel is
    disposed, so subscribers receive on_done.

    Args:
        awaitable: Coroutine or future producing the value.
        timeout: Maximum time to wait, in seconds or as a timedelta.
        on_error: Called with the error before it is published. If it
            raises, its exception is published after the original error.
        on_finally: Called after the outcome is published.

    Returns:
        A caching channel, empty until the awaitable completes.

    Raises:
        RuntimeError: If no event loop is running.
        ValueError: If timeout is negative.

    Example:
        ```python
        profile = Channel.from_awaitable(api.get_profile(), timeout=5.0)
        print(await profile.next_value())
        ```
    """
    seconds = _scheduler.to_seconds(timeout) if timeout is not None else None
    channel: Channel[T] = Channel()

    async def run() -> None:
        try:
            try:
                if seconds is None:
                    result = await awaitable
                else:
                    with anyio.move_on_after(seconds) as scope:
                        result = await awaitable
                    if scope.cancelled_caught:
                        raise OperationTimedOutError(seconds, 'from_awaitable')
            except Exception as e:
                hook_error = _run_error_hook(on_error, e)
                channel.publish_error(e)
                if hook_error is not None:
                    channel.publish_error(hook_error)
            else:
                channel.publish(result)
        finally:
            try:
                if on_finally is not None:
                    on_finally()
            finally:
                await channel.dispose()

    try:
        _scheduler.spawn(run())
    except RuntimeError:
        if inspect.iscoroutine(awaitable):
            awaitable.close()
        raise
    return channel
