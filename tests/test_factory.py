"""Tests for channel factories: from_awaitable() and defer()."""

from __future__ import annotations

from datetime import timedelta

import anyio
import pytest
from rivulet import Channel, Deferred, OperationTimedOutError, defer, from_awaitable


async def compute(value: int) -> int:
    await anyio.sleep(0)
    return value


async def fail(message: str) -> int:
    await anyio.sleep(0)
    raise ValueError(message)


class TestFromAwaitable:
    """Tests for from_awaitable()."""

    async def test_publishes_result_then_disposes(self) -> None:
        """The result is published, then on_finally runs and the channel closes."""
        events: list[str] = []
        ch = Channel.from_awaitable(compute(7), on_finally=lambda: events.append('finally'))
        ch.subscribe(lambda v: events.append(f'value:{v}'), on_done=lambda: events.append('done'))

        await anyio.sleep(0.05)

        assert events == ['value:7', 'finally', 'done']
        assert ch.is_disposed is True

    async def test_next_value(self) -> None:
        """next_value() waits for the awaitable's result."""
        ch = from_awaitable(compute(3))
        assert await ch.next_value(timeout=1.0) == 3

    async def test_error_calls_on_error_then_publishes(self) -> None:
        """An exception is passed to on_error first, then published as an error."""
        events: list[str] = []
        ch = from_awaitable(
            fail('broken'),
            on_error=lambda e: events.append(f'hook:{e}'),
            on_finally=lambda: events.append('finally'),
        )
        ch.subscribe(lambda _: None, lambda e: events.append(f'error:{e}'))

        await anyio.sleep(0.05)

        assert events == ['hook:broken', 'error:broken', 'finally']
        assert ch.is_disposed is True

    async def test_failing_on_error_hook_still_publishes_error(self) -> None:
        """A raising on_error hook does not swallow the awaitable's error."""
        events: list[str] = []

        def bad_hook(_error: Exception) -> None:
            raise RuntimeError('hook failed')

        ch = from_awaitable(fail('broken'), on_error=bad_hook, on_finally=lambda: events.append('finally'))
        ch.subscribe(
            lambda _: None,
            lambda e: events.append(f'error:{e}'),
            lambda: events.append('done'),
        )

        await anyio.sleep(0.05)

        assert events == ['error:broken', 'error:hook failed', 'finally', 'done']

    async def test_timeout(self) -> None:
        """A timeout is converted into OperationTimedOutError."""
        errors: list[Exception] = []
        ch = from_awaitable(anyio.sleep(1), timeout=0.01)
        ch.subscribe(lambda _: None, errors.append)

        await anyio.sleep(0.1)

        assert len(errors) == 1
        assert isinstance(errors[0], OperationTimedOutError)
        assert errors[0].operation == 'from_awaitable'
        assert errors[0].seconds == 0.01

    async def test_timeout_as_timedelta(self) -> None:
        """Timeouts may be given as timedelta."""
        errors: list[Exception] = []
        ch = from_awaitable(anyio.sleep(1), timeout=timedelta(milliseconds=10))
        ch.subscribe(lambda _: None, errors.append)

        await anyio.sleep(0.1)

        assert isinstance(errors[0], TimeoutError)

    def test_requires_running_loop(self) -> None:
        """Without a running event loop, from_awaitable raises RuntimeError."""
        with pytest.raises(RuntimeError):
            from_awaitable(compute(1))


class TestDefer:
    """Tests for defer() and Deferred."""

    def test_factory_runs_per_subscription(self) -> None:
        """Every subscribe call builds a fresh upstream."""
        built: list[Channel[int]] = []

        def factory() -> Channel[int]:
            ch = Channel(len(built))
            built.append(ch)
            return ch

        source = defer(factory)
        first: list[int] = []
        second: list[int] = []
        source.subscribe(first.append)
        source.subscribe(second.append)

        assert isinstance(source, Deferred)
        assert len(built) == 2
        assert first == [0]
        assert second == [1]

    def test_factory_error_delivered_to_subscriber(self) -> None:
        """A factory exception is delivered as an error to that subscriber."""

        def factory() -> Channel[int]:
            raise LookupError('no upstream')

        errors: list[Exception] = []
        sub = defer(factory).subscribe(lambda _: None, errors.append)

        assert [type(e) for e in errors] == [LookupError]
        assert sub.is_cancelled is False

    async def test_cancel_disposes_fresh_channel(self) -> None:
        """Cancelling the subscription disposes the channel built for it."""
        built: list[Channel[int]] = []

        def factory() -> Channel[int]:
            ch = Channel(1)
            built.append(ch)
            return ch

        sub = Channel.defer(factory).subscribe(lambda _: None)
        sub.unsubscribe()
        await anyio.sleep(0.01)

        assert built[0].is_disposed is True

    def test_operators_accept_deferred(self) -> None:
        """Deferred sources compose with operators."""
        doubled = defer(lambda: Channel(2)).map(lambda v: v * 2)
        assert doubled.current_value == 4
