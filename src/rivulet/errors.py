"""Channel error types: dual struct+exception for value-style and raise-based code."""

from __future__ import annotations

import msgspec

__all__ = [
    'ChannelClosed',
    'ChannelClosedError',
    'OperationTimedOut',
    'OperationTimedOutError',
    'ValueAbsent',
    'ValueAbsentError',
]


# --- Value Errors ---


class ValueAbsent(msgspec.Struct, frozen=True, gc=False):
    """Channel holds no value - struct variant."""

    hint: str | None = None

    def to_exception(self) -> ValueAbsentError:
        """Convert to exception for raise-based code."""
        return ValueAbsentError(self.hint)


class ValueAbsentError(Exception):
    """Channel holds no value - exception variant.

    Raised by `Channel.current_value` when nothing was ever published and no
    initial value was given, or after the channel was disposed.
    """

    def __init__(self, hint: str | None = None) -> None:
        self.hint = hint
        msg = 'No value available'
        if hint:
            msg = f'{msg}: {hint}'
        super().__init__(msg)

    def to_struct(self) -> ValueAbsent:
        """Convert to struct for value-style code."""
        return ValueAbsent(self.hint)


# --- Lifecycle Errors ---


class ChannelClosed(msgspec.Struct, frozen=True, gc=False):
    """Channel has been closed - struct variant."""

    reason: str | None = None

    def to_exception(self) -> ChannelClosedError:
        """Convert to exception for raise-based code."""
        return ChannelClosedError(self.reason)


class ChannelClosedError(Exception):
    """Channel has been closed - exception variant."""

    def __init__(self, reason: str | None = None) -> None:
        self.reason = reason
        super().__init__(reason or 'Channel closed')

    def to_struct(self) -> ChannelClosed:
        """Convert to struct for value-style code."""
        return ChannelClosed(self.reason)


# --- Timeout Errors ---


class OperationTimedOut(msgspec.Struct, frozen=True, gc=False):
    """Operation timed out - struct variant."""

    seconds: float
    operation: str | None = None

    def to_exception(self) -> OperationTimedOutError:
        """Convert to exception for raise-based code."""
        return OperationTimedOutError(self.seconds, self.operation)


class OperationTimedOutError(TimeoutError):
    """Operation timed out - exception variant.

    Subclasses the builtin TimeoutError so `except TimeoutError` handlers
    written against anyio/asyncio keep working.
    """

    def __init__(self, seconds: float, operation: str | None = None) -> None:
        self.seconds = seconds
        self.operation = operation
        msg = f'Operation timed out after {seconds}s'
        if operation:
            msg = f'{operation}: {msg}'
        super().__init__(msg)

    def to_struct(self) -> OperationTimedOut:
        """Convert to struct for value-style code."""
        return OperationTimedOut(self.seconds, self.operation)
