"""State operators: de-duplication, sharing and grouping."""

from __future__ import annotations

from collections.abc import Callable, Hashable
from typing import TYPE_CHECKING, Any

from cachetools import LRUCache

from rivulet.channel import Channel
from rivulet.operators._link import link
from rivulet.types import ABSENT, Absent, Variant

if TYPE_CHECKING:
    from rivulet.protocols import Subscribable

__all__ = [
    'cache',
    'distinct',
    'distinct_by',
    'group_by',
    'share',
    'share_replay',
]


def _identity[T](value: T) -> T:
    return value


def distinct[T](source: Subscribable[T], equals: Callable[[T, T], bool] | None = None) -> Channel[T]:
    """Drop values equal to the immediately preceding value.

    Only the previous value is compared, not the full history:
    [1, 1, 2, 1] yields [1, 2, 1].

    Args:
        source: Source to de-duplicate.
        equals: Custom equality, defaults to ==.
    """
    target: Channel[T] = Channel()
    previous: T | Absent = ABSENT

    def step(value: T) -> T | Absent:
        nonlocal previous
        if previous is not ABSENT:
            same = equals(previous, value) if equals is not None else previous == value
            if same:
                return ABSENT
        previous = value
        return value

    link(source, target, step)
    return target


def distinct_by[T](
    source: Subscribable[T],
    key: Callable[[T], Hashable],
    *,
    max_keys: int | None = None,
) -> Channel[T]:
    """Drop values whose key has been seen before.

    Unlike distinct(), this compares against every key seen so far. With the
    default max_keys=None the key history is unbounded and grows for the
    whole life of the channel. Pass max_keys to keep only the most recently
    seen keys (LRU); an evicted key is treated as new when it reappears.

    Raises:
        ValueError: If max_keys is not positive.
    """
    if max_keys is not None and max_keys < 1:
        msg = f'max_keys must be positive, got {max_keys}'
        raise ValueError(msg)

    target: Channel[T] = Channel()
    seen: set[Hashable] | LRUCache[Hashable, bool] = set() if max_keys is None else LRUCache(maxsize=max_keys)

    def step(value: T) -> T | Absent:
        k = key(value)
        if isinstance(seen, set):
            if k in seen:
                return ABSENT
            seen.add(k)
            return value
        if k in seen:
            seen[k]  # refresh recency
            return ABSENT
        seen[k] = True
        return value

    link(source, target, step)
    return target


def cache[T](source: Subscribable[T]) -> Channel[T]:
    """Replay the latest value to new subscribers.

    A caching channel already does this and is returned unchanged; any other
    source gets a caching derived channel with a single upstream link.
    """
    if isinstance(source, Channel) and source.variant is Variant.CACHING:
        return source
    target: Channel[T] = Channel()
    link(source, target, _identity)
    return target


def share[T](source: Subscribable[T]) -> Channel[T]:
    """Multicast the source through one upstream link, without replay."""
    target: Channel[T] = Channel.broadcast()
    link(source, target, _identity)
    return target


def share_replay[T](source: Subscribable[T], max_size: int = 1) -> Channel[T]:
    """Multicast the source through one upstream link, replaying the latest max_size values.

    The upstream computation runs once regardless of how many subscribers
    attach to the result.

    Raises:
        ValueError: If max_size is not positive.
    """
    if max_size < 1:
        msg = f'max_size must be positive, got {max_size}'
        raise ValueError(msg)
    target: Channel[T] = Channel(replay=max_size)
    link(source, target, _identity)
    return target


def group_by[T, K: Hashable](source: Subscribable[T], key: Callable[[T], K]) -> Channel[dict[K, list[T]]]:
    """Republish every group seen so far on each arrival.

    Each emission is a fresh snapshot dict of key -> values in arrival order,
    not an incremental diff; consumers that need the change must compare
    consecutive snapshots.
    """
    target: Channel[dict[K, list[T]]] = Channel()
    groups: dict[K, list[Any]] = {}

    def step(value: T) -> dict[K, list[T]]:
        groups.setdefault(key(value), []).append(value)
        return {k: list(items) for k, items in groups.items()}

    link(source, target, step)
    return target
