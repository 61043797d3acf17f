"""Subscription handle: one listener's attachment to a channel."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from rivulet._logging import get_logger

if TYPE_CHECKING:
    from rivulet.protocols import DoneHandler, ErrorHandler, ValueHandler

__all__ = ['Subscription']


def _describe(handler: object) -> str:
    return getattr(handler, '__qualname__', None) or repr(handler)


class Subscription[T]:
    """Handle to a listener attached to a channel's delivery core.

    The handle does not own the channel it listens to. Cancelling it only
    stops delivery to this listener and runs its teardown actions; the
    channel and its other subscribers are unaffected.

    Attributes:
        _detach: Callback removing this subscription from its channel.
        _teardowns: Release actions run once on cancellation (timers,
            inner subscriptions, registry entries).
    """

    __slots__ = (
        '_cancel_on_error',
        '_cancelled',
        '_detach',
        '_on_done',
        '_on_error',
        '_on_value',
        '_teardowns',
    )

    def __init__(
        self,
        on_value: ValueHandler[T],
        on_error: ErrorHandler | None = None,
        on_done: DoneHandler | None = None,
        *,
        cancel_on_error: bool = False,
        detach: Callable[[Subscription[T]], None] | None = None,
    ) -> None:
        self._on_value: ValueHandler[T] | None = on_value
        self._on_error = on_error
        self._on_done = on_done
        self._cancel_on_error = cancel_on_error
        self._detach = detach
        self._teardowns: list[Callable[[], object]] = []
        self._cancelled = False

    @property
    def is_cancelled(self) -> bool:
        """Whether this subscription no longer receives deliveries."""
        return self._cancelled

    def add_teardown(self, teardown: Callable[[], object]) -> None:
        """Register an action to run when this subscription is cancelled.

        Runs immediately if the subscription is already cancelled.

        Args:
            teardown: Zero-argument callable.
        """
        if self._cancelled:
            teardown()
            return
        self._teardowns.append(teardown)

    def unsubscribe(self) -> None:
        """Detach synchronously and run teardown actions.

        Idempotent. Every teardown runs even if an earlier one fails; failures
        are re-raised afterwards (alone, or as an ExceptionGroup).
        """
        if self._cancelled:
            return
        self._cancelled = True

        detach, self._detach = self._detach, None
        teardowns, self._teardowns = self._teardowns, []
        self._on_value = self._on_error = self._on_done = None

        errors: list[Exception] = []
        if detach is not None:
            detach(self)
        for teardown in teardowns:
            try:
                teardown()
            except Exception as e:
                errors.append(e)

        if len(errors) == 1:
            raise errors[0]
        if errors:
            msg = 'Subscription teardown failed'
            raise ExceptionGroup(msg, errors)

    async def cancel(self) -> None:
        """Cancel this subscription.

        Awaitable counterpart of unsubscribe(), used by channel disposal so
        that owned links unwind before the channel finishes closing.
        """
        self.unsubscribe()

    def _deliver(self, value: T) -> None:
        handler = self._on_value
        if handler is not None:
            handler(value)

    def _deliver_error(self, error: Exception) -> None:
        if self._cancelled:
            return
        handler = self._on_error
        listener = self._on_value
        if self._cancel_on_error:
            self.unsubscribe()
        if handler is None:
            logger = get_logger(__name__, listener=_describe(listener))
            logger.warning('unhandled_channel_error', error=repr(error), error_type=type(error).__name__)
            return
        handler(error)

    def _deliver_done(self) -> None:
        # The channel has already dropped this listener; teardowns stay
        # pending until the owner cancels the subscription.
        self._detach = None
        handler, self._on_done = self._on_done, None
        self._on_value = self._on_error = None
        if handler is not None:
            handler()
