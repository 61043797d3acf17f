"""Tests for time-control operators: debounce_time, throttle_time, buffer."""

from __future__ import annotations

from datetime import timedelta

import anyio
import pytest
from rivulet import Channel


class TestDebounceTime:
    """Tests for debounce_time()."""

    async def test_burst_publishes_last_value(self) -> None:
        """Only the last value of a rapid burst is published, after the quiet period."""
        source: Channel[int] = Channel()
        values: list[int] = []
        source.debounce_time(0.1).subscribe(values.append)

        for v in (1, 2, 3):
            source.publish(v)

        await anyio.sleep(0.05)
        assert values == []

        await anyio.sleep(0.15)
        assert values == [3]

    async def test_accepts_timedelta(self) -> None:
        """Durations may be given as timedelta."""
        source: Channel[str] = Channel()
        debounced = source.debounce_time(timedelta(milliseconds=20))

        source.publish('x')
        await anyio.sleep(0.1)

        assert debounced.current_value == 'x'

    async def test_separate_bursts(self) -> None:
        """Values separated by more than the duration are all published."""
        source: Channel[int] = Channel()
        values: list[int] = []
        source.debounce_time(0.02).subscribe(values.append)

        source.publish(1)
        await anyio.sleep(0.1)
        source.publish(2)
        await anyio.sleep(0.1)

        assert values == [1, 2]

    async def test_dispose_cancels_pending_timer(self) -> None:
        """Disposing the derived channel drops a pending value."""
        source: Channel[int] = Channel()
        debounced = source.debounce_time(0.05)
        values: list[int] = []
        debounced.subscribe(values.append)

        source.publish(1)
        await debounced.dispose()
        await anyio.sleep(0.1)

        assert values == []
        assert source.subscriber_count == 0

    def test_negative_duration_rejected(self) -> None:
        """Negative durations raise ValueError."""
        with pytest.raises(ValueError, match='non-negative'):
            Channel().debounce_time(-1)


class TestThrottleTime:
    """Tests for throttle_time()."""

    async def test_leading_edge(self) -> None:
        """The first value of a window passes; the rest of the window is dropped."""
        source: Channel[int] = Channel()
        values: list[int] = []
        source.throttle_time(0.1).subscribe(values.append)

        source.publish(1)
        source.publish(2)
        assert values == [1]

        await anyio.sleep(0.15)
        source.publish(3)
        source.publish(4)

        assert values == [1, 3]

    def test_works_without_event_loop(self) -> None:
        """Throttling needs no running loop."""
        source = Channel(1)
        throttled = source.throttle_time(10)

        source.publish(2)

        assert throttled.current_value == 1


class TestBuffer:
    """Tests for buffer()."""

    def test_flushes_on_closing_signal(self) -> None:
        """Each closing emission publishes the values collected since the last one."""
        source: Channel[int] = Channel()
        closing: Channel[None] = Channel.broadcast()
        batches: list[list[int]] = []
        source.buffer(closing).subscribe(batches.append)

        source.publish(1)
        source.publish(2)
        closing.publish(None)
        source.publish(3)
        closing.publish(None)
        closing.publish(None)

        assert batches == [[1, 2], [3], []]

    def test_closing_errors_forwarded(self) -> None:
        """Errors of the closing source reach the derived channel."""
        source: Channel[int] = Channel()
        closing: Channel[None] = Channel.broadcast()
        errors: list[Exception] = []
        source.buffer(closing).subscribe(lambda _: None, errors.append)

        closing.publish_error(RuntimeError('tick failed'))

        assert len(errors) == 1

    async def test_dispose_releases_closing(self) -> None:
        """Disposing the derived channel cancels both upstream links."""
        source: Channel[int] = Channel()
        closing: Channel[None] = Channel.broadcast()
        buffered = source.buffer(closing)

        await buffered.dispose()

        assert source.subscriber_count == 0
        assert closing.subscriber_count == 0
