"""Source protocol: anything a listener can attach to.

Uses PEP 695 type parameter syntax (Python 3.12+); type checkers infer
Subscribable[T] as covariant since T only reaches the caller through callbacks.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from rivulet.subscription import Subscription

__all__ = ['DoneHandler', 'ErrorHandler', 'Subscribable', 'ValueHandler']

type ValueHandler[T] = Callable[[T], object]
type ErrorHandler = Callable[[Exception], object]
type DoneHandler = Callable[[], object]


class Subscribable[T](Protocol):
    """Protocol for value sources that accept listeners.

    `Channel` is the hot implementation; `Deferred` builds a fresh upstream
    per subscription. Operator functions accept any Subscribable as source.
    """

    @abstractmethod
    def subscribe(
        self,
        on_value: ValueHandler[T],
        on_error: ErrorHandler | None = None,
        on_done: DoneHandler | None = None,
        *,
        cancel_on_error: bool = False,
    ) -> Subscription[T]:
        """Attach a listener.

        Args:
            on_value: Called with every delivered value.
            on_error: Called with every delivered error.
            on_done: Called once when the source closes.
            cancel_on_error: Detach the listener after its first error.

        Returns:
            The Subscription handle for this listener.
        """
        ...
