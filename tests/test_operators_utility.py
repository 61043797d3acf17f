"""Tests for utility operators: debug taps, pairing, time annotation and windowing."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import anyio
import pytest
from rivulet import Channel, TimeInterval, Timestamped, init


class TestDebug:
    """Tests for debug()."""

    def test_logs_values_with_tag(self, log_events: list[dict[str, Any]]) -> None:
        """Tagged values are logged as channel_value events and passed through."""
        source: Channel[int] = Channel()
        values: list[int] = []
        source.debug('prices').subscribe(values.append)

        source.publish(42)

        entries = [e for e in log_events if e.get('event') == 'channel_value']
        assert values == [42]
        assert len(entries) == 1
        assert entries[0]['tag'] == 'prices'
        assert entries[0]['value'] == '42'
        assert entries[0]['level'] == 'debug'

    def test_logs_errors_with_tag(self, log_events: list[dict[str, Any]]) -> None:
        """Tagged errors are logged as channel_error events and forwarded."""
        source: Channel[int] = Channel()
        errors: list[Exception] = []
        source.debug('prices').subscribe(lambda _: None, errors.append)

        source.publish_error(ValueError('bad tick'))

        entries = [e for e in log_events if e.get('event') == 'channel_error']
        assert len(errors) == 1
        assert entries[0]['error_type'] == 'ValueError'
        assert entries[0]['tag'] == 'prices'
        assert entries[0]['logger'] == 'rivulet.debug'

    def test_no_tag_no_logging(self, log_events: list[dict[str, Any]]) -> None:
        """Without a tag only the hooks run."""
        source: Channel[int] = Channel()
        seen: list[int] = []
        source.debug(on_value=seen.append).subscribe(lambda _: None)

        source.publish(1)

        assert seen == [1]
        assert not [e for e in log_events if e.get('event') == 'channel_value']

    def test_configured_level(self, log_events: list[dict[str, Any]]) -> None:
        """init(debug_level=...) sets the level of debug taps."""
        init(debug_level='info')
        source = Channel(1)
        source.debug('tap')

        entries = [e for e in log_events if e.get('event') == 'channel_value']
        assert entries[0]['level'] == 'info'

    def test_error_hook(self) -> None:
        """on_error is called before the error is forwarded."""
        source: Channel[int] = Channel()
        calls: list[str] = []
        source.debug(on_error=lambda _: calls.append('hook')).subscribe(
            lambda _: None, lambda _: calls.append('forwarded')
        )

        source.publish_error(ValueError('x'))

        assert calls == ['hook', 'forwarded']


class TestSideEffects:
    """Tests for do_on_data() and do_on_error()."""

    def test_do_on_data(self) -> None:
        """The action sees every value; values pass through unchanged."""
        source: Channel[int] = Channel()
        seen: list[int] = []
        values: list[int] = []
        source.do_on_data(seen.append).subscribe(values.append)

        source.publish(1)
        source.publish(2)

        assert seen == values == [1, 2]

    def test_do_on_error(self) -> None:
        """The action sees every error; errors pass through."""
        source: Channel[int] = Channel()
        seen: list[Exception] = []
        errors: list[Exception] = []
        source.do_on_error(seen.append).subscribe(lambda _: None, errors.append)
        error = ValueError('boom')

        source.publish_error(error)

        assert seen == errors == [error]

    def test_do_on_error_failing_action(self) -> None:
        """An exception from the action is published instead of the original error."""
        source: Channel[int] = Channel()
        errors: list[Exception] = []

        def fail(error: Exception) -> None:
            raise RuntimeError('action failed')

        source.do_on_error(fail).subscribe(lambda _: None, errors.append)
        source.publish_error(ValueError('boom'))

        assert [type(e) for e in errors] == [RuntimeError]


class TestPairwise:
    """Tests for pairwise()."""

    def test_pairs(self) -> None:
        """Each value after the first is paired with its predecessor."""
        source: Channel[int] = Channel()
        pairs: list[tuple[int, int]] = []
        source.pairwise().subscribe(pairs.append)

        for v in (1, 2, 3):
            source.publish(v)

        assert pairs == [(1, 2), (2, 3)]


class TestTimeAnnotation:
    """Tests for timestamp() and time_interval()."""

    def test_timestamp(self) -> None:
        """Each value is wrapped with its UTC arrival time."""
        before = datetime.now(UTC)
        stamped = Channel('x').timestamp()
        after = datetime.now(UTC)

        record = stamped.current_value
        assert isinstance(record, Timestamped)
        assert record.value == 'x'
        assert before <= record.timestamp <= after

    async def test_time_interval(self) -> None:
        """Each value is wrapped with the time since the previous value."""
        source: Channel[str] = Channel()
        records: list[TimeInterval[str]] = []
        source.time_interval().subscribe(records.append)

        source.publish('a')
        await anyio.sleep(0.05)
        source.publish('b')

        assert [r.value for r in records] == ['a', 'b']
        assert records[1].interval >= timedelta(seconds=0.04)
        assert records[0].interval >= timedelta(0)


class TestWindowing:
    """Tests for skip_last(), take_last() and take_while_inclusive()."""

    def test_skip_last(self) -> None:
        """The latest n values are held back."""
        source: Channel[int] = Channel()
        values: list[int] = []
        source.skip_last(2).subscribe(values.append)

        for v in range(1, 6):
            source.publish(v)

        assert values == [1, 2, 3]

    def test_skip_last_zero(self) -> None:
        """skip_last(0) passes everything through."""
        source: Channel[int] = Channel()
        values: list[int] = []
        source.skip_last(0).subscribe(values.append)

        source.publish(1)

        assert values == [1]

    async def test_take_last_on_close(self) -> None:
        """The final n values are published when the source closes."""
        source: Channel[int] = Channel()
        values: list[int] = []
        source.take_last(2).subscribe(values.append)

        for v in range(1, 5):
            source.publish(v)
        assert values == []

        await source.dispose()

        assert values == [3, 4]

    def test_take_while_inclusive(self) -> None:
        """Values pass while the predicate holds, plus the first failing value."""
        source: Channel[int] = Channel()
        values: list[int] = []
        source.take_while_inclusive(lambda v: v < 3).subscribe(values.append)

        for v in (1, 2, 3, 4, 1):
            source.publish(v)

        assert values == [1, 2, 3]

    def test_negative_count_rejected(self) -> None:
        """Counts must be non-negative."""
        with pytest.raises(ValueError, match='non-negative'):
            Channel().skip_last(-1)
        with pytest.raises(ValueError, match='non-negative'):
            Channel().take_last(-1)
