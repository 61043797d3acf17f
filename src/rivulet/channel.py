"""Channel: hot multicast value-over-time primitive with replay-latest or broadcast delivery."""

from __future__ import annotations

import contextlib
import math
from collections import deque
from collections.abc import AsyncIterator, Awaitable, Callable, Hashable, Iterable, Sequence
from datetime import timedelta
from types import TracebackType
from typing import TYPE_CHECKING, Any

import aiologic
import anyio

from rivulet.errors import ChannelClosedError, OperationTimedOutError, ValueAbsentError
from rivulet.subscription import Subscription
from rivulet.types import ABSENT, Absent, Variant

if TYPE_CHECKING:
    from rivulet.factory import Deferred
    from rivulet.protocols import DoneHandler, ErrorHandler, Subscribable, ValueHandler
    from rivulet.types import TimeInterval, Timestamped

__all__ = ['Channel']


class _StreamError:
    """Error marker carried through the async iteration buffer."""

    __slots__ = ('error',)

    def __init__(self, error: Exception) -> None:
        self.error = error


class Channel[T]:
    """Hot multicast channel holding the latest published value.

    A caching channel replays its latest value to every new subscriber before
    any live value; a broadcast channel (`Channel.broadcast()`) delivers only
    values published after a subscriber attached. Both variants remember the
    latest value for `current_value`.

    Delivery is synchronous and in subscription order. Publishing to a
    disposed channel is a silent no-op so that producers finishing after a
    consumer disposed the channel never raise.

    Example:
        ```python
        counter = Channel(0)
        doubled = counter.map(lambda n: n * 2)
        doubled.subscribe(print)  # prints 0
        counter.publish(2)        # prints 4
        await doubled.dispose()
        await counter.dispose()
        ```

    Attributes:
        _value: Latest-value cache (ABSENT when empty).
        _replay: Values replayed to new subscribers (maxlen = replay depth).
        _subscribers: Active listeners in subscription order.
        _registry: Subscriptions owned by this channel, cancelled on dispose.
        _pending: Values and errors (flagged) waiting behind the delivery in progress.
    """

    __slots__ = (
        '__weakref__',
        '_closed',
        '_delivering',
        '_disposed',
        '_pending',
        '_registry',
        '_replay',
        '_subscribers',
        '_value',
    )

    def __init__(self, initial: T | Absent = ABSENT, *, replay: int = 1) -> None:
        """Create a channel.

        Args:
            initial: Optional initial value, cached (and replayed) as if published.
            replay: Number of latest values replayed to new subscribers.
                1 is the caching variant, 0 the broadcast variant.

        Raises:
            ValueError: If replay is negative.
        """
        if replay < 0:
            msg = f'Replay depth must be non-negative, got {replay}'
            raise ValueError(msg)

        self._value: T | Absent = ABSENT
        self._replay: deque[T] = deque(maxlen=replay)
        self._subscribers: list[Subscription[T]] = []
        self._registry: dict[Subscription[Any], None] = {}
        self._pending: deque[tuple[bool, Any]] = deque()
        self._delivering = False
        self._closed = False
        self._disposed = False

        if initial is not ABSENT:
            self.publish(initial)

    @classmethod
    def broadcast(cls, initial: T | Absent = ABSENT) -> Channel[T]:
        """Create a broadcast channel: late subscribers get no replay.

        The initial value is still cached for `current_value`.
        """
        return cls(initial, replay=0)

    def __repr__(self) -> str:
        return (
            f'Channel(variant={self.variant.value}, value={self._value!r}, '
            f'subscribers={len(self._subscribers)}, disposed={self._disposed})'
        )

    # --- State ---

    @property
    def variant(self) -> Variant:
        """Delivery mode of this channel."""
        return Variant.CACHING if self._replay.maxlen else Variant.BROADCAST

    @property
    def is_closed(self) -> bool:
        """Whether new subscribers are refused."""
        return self._closed

    @property
    def is_disposed(self) -> bool:
        """Whether dispose() has been called."""
        return self._disposed

    @property
    def subscriber_count(self) -> int:
        """Number of currently attached listeners."""
        return len(self._subscribers)

    @property
    def has_value(self) -> bool:
        """Whether a value is cached."""
        return self._value is not ABSENT

    @property
    def current_value(self) -> T:
        """The latest published value.

        Raises:
            ValueAbsentError: If nothing was published and no initial value was
                given, or the channel was disposed.
        """
        value = self._value
        if value is ABSENT:
            hint = 'channel disposed' if self._disposed else 'publish a value or pass an initial value'
            raise ValueAbsentError(hint)
        return value

    @property
    def current_value_or_none(self) -> T | None:
        """The latest value, or None when absent."""
        value = self._value
        return None if value is ABSENT else value

    def current_value_or[D](self, default: D) -> T | D:
        """The latest value, or default when absent."""
        value = self._value
        return default if value is ABSENT else value

    # --- Producer API ---

    def publish(self, value: T) -> None:
        """Cache value and deliver it to every active subscriber.

        A value published from inside a subscriber callback is queued and
        delivered once the current value has reached every subscriber, so all
        subscribers see the same order. No-op on a disposed channel.
        """
        if self._disposed:
            return

        self._pending.append((True, value))
        self._drain()

    def publish_error(self, error: Exception, trace: TracebackType | None = None) -> None:
        """Deliver error to every subscriber's error handler.

        The channel stays open. Queued behind a delivery in progress like
        publish(). No-op on a disposed channel.

        Args:
            error: The error to deliver.
            trace: Traceback to attach when the error carries none.
        """
        if self._disposed:
            return

        if trace is not None and error.__traceback__ is None:
            error = error.with_traceback(trace)

        self._pending.append((False, error))
        self._drain()

    def _drain(self) -> None:
        """Deliver queued items in order. Only the outermost call delivers.

        The cache is updated when a value is delivered, not when it is queued.
        If a subscriber raises, the exception reaches the outermost publisher
        and items still queued are dropped.
        """
        if self._delivering:
            return

        self._delivering = True
        try:
            while self._pending and not self._disposed:
                is_value, payload = self._pending.popleft()
                if is_value:
                    self._value = payload
                    self._replay.append(payload)
                    for sub in tuple(self._subscribers):
                        sub._deliver(payload)
                else:
                    for sub in tuple(self._subscribers):
                        sub._deliver_error(payload)
        finally:
            self._delivering = False
            self._pending.clear()

    def _resize_replay(self, depth: int) -> None:
        """Change the replay depth, keeping the latest depth values."""
        self._replay = deque(self._replay, maxlen=depth)

    # --- Subscription API ---

    def subscribe(
        self,
        on_value: ValueHandler[T],
        on_error: ErrorHandler | None = None,
        on_done: DoneHandler | None = None,
        *,
        cancel_on_error: bool = False,
    ) -> Subscription[T]:
        """Attach a listener.

        A caching channel replays its latest value before returning.
        Subscribing to a closed channel calls on_done immediately and returns
        an already cancelled subscription.

        Args:
            on_value: Called with every delivered value.
            on_error: Called with every delivered error. Errors reaching a
                listener without one are logged as unhandled.
            on_done: Called once when the channel closes.
            cancel_on_error: Detach the listener after its first error.

        Returns:
            The Subscription handle, owned by the caller.
        """
        sub: Subscription[T] = Subscription(
            on_value,
            on_error,
            on_done,
            cancel_on_error=cancel_on_error,
            detach=self._detach,
        )

        if self._closed:
            sub._deliver_done()
            sub.unsubscribe()
            return sub

        replayed = tuple(self._replay)
        self._subscribers.append(sub)
        for value in replayed:
            if sub.is_cancelled:
                break
            sub._deliver(value)
        return sub

    def subscribe_managed(
        self,
        on_value: ValueHandler[T],
        on_error: ErrorHandler | None = None,
        on_done: DoneHandler | None = None,
        *,
        cancel_on_error: bool = False,
        owner: Channel[Any] | None = None,
    ) -> Subscription[T]:
        """Attach a listener whose lifetime is tied to a channel's disposal.

        Args:
            on_value: Called with every delivered value.
            on_error: Called with every delivered error.
            on_done: Called once when this channel closes.
            cancel_on_error: Detach the listener after its first error.
            owner: Channel whose disposal cancels the subscription
                (defaults to this channel).

        Returns:
            The Subscription handle, registered with the owner.
        """
        sub = self.subscribe(on_value, on_error, on_done, cancel_on_error=cancel_on_error)
        (owner if owner is not None else self).adopt(sub)
        return sub

    def adopt(self, subscription: Subscription[Any]) -> None:
        """Register a subscription to be cancelled when this channel is disposed.

        The subscription leaves the registry when cancelled earlier. Adopting
        into a disposed channel cancels the subscription immediately.
        """
        if self._disposed:
            subscription.unsubscribe()
            return
        if subscription.is_cancelled:
            return
        self._registry[subscription] = None
        subscription.add_teardown(lambda: self._registry.pop(subscription, None))

    def _detach(self, subscription: Subscription[T]) -> None:
        with contextlib.suppress(ValueError):
            self._subscribers.remove(subscription)

    # --- Lifecycle ---

    async def dispose(self) -> None:
        """Dispose the channel. Idempotent.

        Cancels every owned subscription (awaiting each), closes delivery so
        remaining listeners get on_done, then clears the cache. Upstream
        channels are never disposed, only the links to them.

        Raises:
            ExceptionGroup: If cancellations or on_done callbacks failed. All of
                them are attempted and the channel is fully disposed first.
        """
        if self._disposed:
            return
        self._disposed = True
        self._closed = True

        errors: list[Exception] = []

        owned = list(self._registry)
        self._registry.clear()
        for sub in owned:
            try:
                await sub.cancel()
            except Exception as e:
                errors.append(e)

        listeners, self._subscribers = self._subscribers, []
        for sub in listeners:
            try:
                sub._deliver_done()
            except Exception as e:
                errors.append(e)

        self._value = ABSENT
        self._replay.clear()

        if errors:
            msg = 'Channel disposal failed'
            raise ExceptionGroup(msg, errors)

    async def __aenter__(self) -> Channel[T]:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.dispose()

    # --- Async consumption ---

    def __aiter__(self) -> AsyncIterator[T]:
        """Iterate delivered values with `async for value in channel:`.

        Iteration ends when the channel closes; a published error ends it by
        being raised.
        """
        return self.values()

    async def values(self) -> AsyncIterator[T]:
        """Async generator over delivered values (see __aiter__)."""
        send, receive = anyio.create_memory_object_stream[T | _StreamError](math.inf)

        def on_error(error: Exception) -> None:
            send.send_nowait(_StreamError(error))
            send.close()

        sub = self.subscribe(send.send_nowait, on_error, send.close, cancel_on_error=True)
        try:
            async with receive:
                async for item in receive:
                    if isinstance(item, _StreamError):
                        raise item.error
                    yield item
        finally:
            sub.unsubscribe()
            send.close()

    async def next_value(self, *, timeout: float | None = None) -> T:
        """Wait for the next delivered value (a replayed value counts).

        Args:
            timeout: Maximum seconds to wait. None waits indefinitely.

        Returns:
            The delivered value.

        Raises:
            ChannelClosedError: If the channel closes first.
            OperationTimedOutError: If timeout elapses first.
            Exception: A published error delivered first.
        """
        event = aiologic.Event()
        outcome: list[tuple[bool, Any]] = []

        def settle(ok: bool, payload: Any) -> None:
            if not outcome:
                outcome.append((ok, payload))
                event.set()

        sub = self.subscribe(
            lambda value: settle(True, value),
            lambda error: settle(False, error),
            lambda: settle(False, ChannelClosedError('Channel closed before a value arrived')),
        )
        try:
            if timeout is None:
                await event
            else:
                try:
                    with anyio.fail_after(timeout):
                        await event
                except TimeoutError:
                    raise OperationTimedOutError(timeout, 'next_value') from None
        finally:
            sub.unsubscribe()

        ok, payload = outcome[0]
        if not ok:
            raise payload
        return payload

    # --- Transformations ---

    def map[R](self, mapper: Callable[[T], R]) -> Channel[R]:
        """Channel of mapper(value) for every value."""
        from rivulet.operators.transform import map_values

        return map_values(self, mapper)

    def where(self, predicate: Callable[[T], bool]) -> Channel[T]:
        """Channel of the values satisfying predicate."""
        from rivulet.operators.transform import where

        return where(self, predicate)

    filter = where

    def switch_map[R](self, mapper: Callable[[T], Subscribable[R]]) -> Channel[R]:
        """Follow only the source built from the latest value."""
        from rivulet.operators.transform import switch_map

        return switch_map(self, mapper)

    def map_not_none[R](self, mapper: Callable[[T], R | None]) -> Channel[R]:
        """Channel of mapper(value), skipping None results."""
        from rivulet.operators.transform import map_not_none

        return map_not_none(self, mapper)

    def where_not_none(self) -> Channel[T]:
        """Channel of the values that are not None."""
        from rivulet.operators.transform import where_not_none

        return where_not_none(self)

    def scan[R](self, seed: R, accumulator: Callable[[R, T, int], R]) -> Channel[R]:
        """Channel of running accumulations."""
        from rivulet.operators.transform import scan

        return scan(self, seed, accumulator)

    def start_with(self, value: T) -> Channel[T]:
        """Channel that begins with value, then follows this channel."""
        from rivulet.operators.transform import start_with

        return start_with(self, value)

    # --- State management ---

    def distinct(self, equals: Callable[[T, T], bool] | None = None) -> Channel[T]:
        """Drop values equal to their immediate predecessor."""
        from rivulet.operators.state import distinct

        return distinct(self, equals)

    def distinct_by(self, key: Callable[[T], Hashable], *, max_keys: int | None = None) -> Channel[T]:
        """Drop values whose key was seen before."""
        from rivulet.operators.state import distinct_by

        return distinct_by(self, key, max_keys=max_keys)

    def cache(self) -> Channel[T]:
        """Replay the latest value to new subscribers."""
        from rivulet.operators.state import cache

        return cache(self)

    def share(self) -> Channel[T]:
        """Multicast through a single upstream link, without replay."""
        from rivulet.operators.state import share

        return share(self)

    def share_replay(self, max_size: int = 1) -> Channel[T]:
        """Multicast through a single upstream link, replaying max_size values."""
        from rivulet.operators.state import share_replay

        return share_replay(self, max_size)

    def group_by[K: Hashable](self, key: Callable[[T], K]) -> Channel[dict[K, list[T]]]:
        """Republish every group seen so far on each arrival."""
        from rivulet.operators.state import group_by

        return group_by(self, key)

    # --- Time control ---

    def debounce_time(self, duration: float | timedelta) -> Channel[T]:
        """Publish the last value after duration without newer values."""
        from rivulet.operators.timing import debounce_time

        return debounce_time(self, duration)

    def throttle_time(self, duration: float | timedelta) -> Channel[T]:
        """Publish the first value of each duration-long window."""
        from rivulet.operators.timing import throttle_time

        return throttle_time(self, duration)

    def buffer(self, closing: Subscribable[Any]) -> Channel[list[T]]:
        """Collect values into lists flushed whenever closing emits."""
        from rivulet.operators.timing import buffer

        return buffer(self, closing)

    # --- Error recovery ---

    def on_error_resume_next(self, recovery: Callable[[Exception], Subscribable[T]]) -> Channel[T]:
        """On the first error, continue with recovery(error)."""
        from rivulet.operators.recovery import on_error_resume_next

        return on_error_resume_next(self, recovery)

    def retry(self, count: int | None = None) -> Channel[T]:
        """Re-subscribe on error, count times or indefinitely."""
        from rivulet.operators.recovery import retry

        return retry(self, count)

    def retry_when(self, signal_factory: Callable[[Channel[Exception]], Subscribable[Any]]) -> Channel[T]:
        """Re-subscribe once per emission of the control source built for each error."""
        from rivulet.operators.recovery import retry_when

        return retry_when(self, signal_factory)

    # --- Combination ---

    def with_latest_from[S, R](self, other: Subscribable[S], combiner: Callable[[T, S], R]) -> Channel[R]:
        """Pair each value with other's latest value."""
        from rivulet.operators.combine import with_latest_from

        return with_latest_from(self, other, combiner)

    @staticmethod
    def combine_latest[V](sources: Sequence[Subscribable[V]]) -> Channel[list[V]]:
        """Latest value of every source, once all have published."""
        from rivulet.operators.combine import combine_latest

        return combine_latest(sources)

    @staticmethod
    def merge[V](sources: Iterable[Subscribable[V]]) -> Channel[V]:
        """Every value of every source in arrival order."""
        from rivulet.operators.combine import merge

        return merge(sources)

    # --- Utilities ---

    def debug(
        self,
        tag: str | None = None,
        *,
        on_value: Callable[[T], object] | None = None,
        on_error: Callable[[Exception], object] | None = None,
    ) -> Channel[T]:
        """Log values and errors under tag, then pass them through."""
        from rivulet.operators.utility import debug

        return debug(self, tag, on_value=on_value, on_error=on_error)

    def do_on_data(self, action: Callable[[T], object]) -> Channel[T]:
        """Run action for every value, passing values through."""
        from rivulet.operators.utility import do_on_data

        return do_on_data(self, action)

    def do_on_error(self, action: Callable[[Exception], object]) -> Channel[T]:
        """Run action for every error, passing errors through."""
        from rivulet.operators.utility import do_on_error

        return do_on_error(self, action)

    def pairwise(self) -> Channel[tuple[T, T]]:
        """Channel of (previous, current) pairs."""
        from rivulet.operators.utility import pairwise

        return pairwise(self)

    def timestamp(self) -> Channel[Timestamped[T]]:
        """Wrap each value with its arrival time."""
        from rivulet.operators.utility import timestamp

        return timestamp(self)

    def time_interval(self) -> Channel[TimeInterval[T]]:
        """Wrap each value with the time since the previous one."""
        from rivulet.operators.utility import time_interval

        return time_interval(self)

    def skip_last(self, count: int) -> Channel[T]:
        """Hold back the latest count values."""
        from rivulet.operators.utility import skip_last

        return skip_last(self, count)

    def take_last(self, count: int) -> Channel[T]:
        """Publish the final count values once this channel closes."""
        from rivulet.operators.utility import take_last

        return take_last(self, count)

    def take_while_inclusive(self, predicate: Callable[[T], bool]) -> Channel[T]:
        """Forward values until predicate fails, including the failing one."""
        from rivulet.operators.utility import take_while_inclusive

        return take_while_inclusive(self, predicate)

    # --- Factories ---

    @staticmethod
    def from_awaitable[V](
        awaitable: Awaitable[V],
        *,
        timeout: float | timedelta | None = None,
        on_error: Callable[[Exception], object] | None = None,
        on_finally: Callable[[], object] | None = None,
    ) -> Channel[V]:
        """Channel fed by the result of an awaitable (see factory.from_awaitable)."""
        from rivulet.factory import from_awaitable

        return from_awaitable(awaitable, timeout=timeout, on_error=on_error, on_finally=on_finally)

    @staticmethod
    def defer[V](factory: Callable[[], Subscribable[V]]) -> Deferred[V]:
        """Source rebuilt by factory for every subscription."""
        from rivulet.factory import defer

        return defer(factory)
