"""Error-recovery operators: resume, retry and signal-driven retry.

Retrying re-subscribes the source. A hot Channel source is simply attached
again (a caching one replays its latest value); wrap the upstream pipeline in
`defer()` to re-run it from scratch on every attempt.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from rivulet import _scheduler
from rivulet.channel import Channel
from rivulet.operators._link import link

if TYPE_CHECKING:
    import asyncio

    from rivulet.protocols import Subscribable
    from rivulet.subscription import Subscription

__all__ = ['on_error_resume_next', 'retry', 'retry_when']


def _identity[T](value: T) -> T:
    return value


class _Upstream:
    """The single live link of a recovering channel.

    Errors can arrive synchronously while a link is being built (a deferred
    factory that raises, for example), before the new subscription has been
    stored. `attach` detects that and runs the latest requested re-attach
    after the current one completes instead of recursing. With a running
    event loop that re-attach waits for the next loop turn, so a source that
    fails on every attach cannot block the loop. Without one it runs in
    place, and `retry()` without a count on such a source never returns.
    """

    __slots__ = ('_attaching', '_current', '_handle', '_next', '_target')

    def __init__(self, target: Channel[Any]) -> None:
        self._target = target
        self._current: Subscription[Any] | None = None
        self._next: Callable[[], Subscription[Any]] | None = None
        self._handle: asyncio.TimerHandle | None = None
        self._attaching = False

    def release(self) -> None:
        current, self._current = self._current, None
        if current is not None:
            current.unsubscribe()

    def close(self) -> None:
        """Release the link and drop any re-attach still waiting for the loop."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._next = None
        self.release()

    def attach(self, build: Callable[[], Subscription[Any]]) -> None:
        self._next = build
        if self._attaching:
            return
        self._attaching = True
        try:
            while self._next is not None:
                build, self._next = self._next, None
                self.release()
                self._current = build()
                if self._next is not None and self._reattach_later():
                    break
        finally:
            self._attaching = False

    def _reattach_later(self) -> bool:
        if self._handle is not None:
            return True
        try:
            self._handle = _scheduler.call_later(0, self._reattach)
        except RuntimeError:
            return False
        return True

    def _reattach(self) -> None:
        self._handle = None
        build, self._next = self._next, None
        if build is not None and not self._target.is_disposed:
            self.attach(build)


def on_error_resume_next[T](
    source: Subscribable[T],
    recovery: Callable[[Exception], Subscribable[T]],
) -> Channel[T]:
    """Switch to a fallback source on the first error.

    The source link is cancelled and the derived channel follows
    recovery(error) from then on; later errors of the fallback pass through
    unchanged. If recovery raises, that exception is published and no
    further recovery happens.

    Example:
        ```python
        quotes = live_quotes.on_error_resume_next(lambda e: Channel(cached_quote))
        ```
    """
    target: Channel[T] = Channel()
    upstream = _Upstream(target)
    resumed = False

    def on_error(error: Exception) -> None:
        nonlocal resumed
        if resumed:
            return
        resumed = True
        upstream.release()
        try:
            fallback = recovery(error)
        except Exception as e:
            target.publish_error(e)
            return
        target.adopt(fallback.subscribe(target.publish, target.publish_error))

    upstream.attach(lambda: link(source, target, _identity, on_error=on_error))
    if resumed:
        upstream.release()
    return target


def retry[T](source: Subscribable[T], count: int | None = None) -> Channel[T]:
    """Re-subscribe the source whenever it errors.

    With count=None retries indefinitely and errors never reach the derived
    channel. With a count, the error following the last permitted retry is
    forwarded and the current link is kept, so later values still pass.

    Example:
        ```python
        result = Channel.defer(lambda: Channel.from_awaitable(fetch())).retry(3)
        ```

    Raises:
        ValueError: If count is negative.
    """
    if count is not None and count < 0:
        msg = f'Retry count must be non-negative, got {count}'
        raise ValueError(msg)

    target: Channel[T] = Channel()
    upstream = _Upstream(target)
    attempts = 0

    def on_error(error: Exception) -> None:
        nonlocal attempts
        if count is not None and attempts >= count:
            target.publish_error(error)
            return
        attempts += 1
        upstream.attach(connect)

    def connect() -> Subscription[T]:
        return link(source, target, _identity, on_error=on_error)

    upstream.attach(connect)
    return target


def retry_when[T](
    source: Subscribable[T],
    signal_factory: Callable[[Channel[Exception]], Subscribable[Any]],
) -> Channel[T]:
    """Re-subscribe the source on demand of a control source.

    Each source error cancels the source link and starts a new cycle: a
    caching channel holding that error is passed to signal_factory, and
    every value of the returned control source re-subscribes the source
    once. A cycle ends when the next error starts another one. Exceptions
    raised by signal_factory and errors of the control source are terminal:
    they are published and the derived channel stops retrying.

    Example:
        ```python
        retried = source.retry_when(lambda errors: errors.debounce_time(1.0))
        ```
    """
    target: Channel[T] = Channel()
    upstream = _Upstream(target)
    control = _Upstream(target)
    stopped = False

    def stop(error: Exception) -> None:
        nonlocal stopped
        stopped = True
        upstream.close()
        control.close()
        target.publish_error(error)

    def on_signal(_signal: object) -> None:
        if not stopped:
            upstream.attach(connect)

    def on_error(error: Exception) -> None:
        if stopped:
            return
        upstream.release()
        errors: Channel[Exception] = Channel(error)
        try:
            signals = signal_factory(errors)
        except Exception as e:
            stop(e)
            return

        def watch() -> Subscription[Any]:
            sub = signals.subscribe(on_signal, stop)
            target.adopt(sub)
            return sub

        control.attach(watch)

    def connect() -> Subscription[T]:
        return link(source, target, _identity, on_error=on_error)

    upstream.attach(connect)
    return target
