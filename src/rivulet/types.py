"""Shared channel types: delivery variants, value records and the absent marker."""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Final

import msgspec

__all__ = [
    'ABSENT',
    'Absent',
    'TimeInterval',
    'Timestamped',
    'Variant',
]


class Variant(Enum):
    """Delivery mode of a channel."""

    CACHING = 'caching'
    BROADCAST = 'broadcast'


class Absent(Enum):
    """Marker type for "no value yet".

    `None` is a legitimate channel value, so absence needs its own sentinel.
    """

    ABSENT = 'absent'

    def __repr__(self) -> str:
        return '<absent>'

    def __bool__(self) -> bool:
        return False


ABSENT: Final = Absent.ABSENT


class Timestamped[T](msgspec.Struct, frozen=True):
    """A value paired with the wall-clock time it passed through `timestamp()`."""

    value: T
    timestamp: datetime


class TimeInterval[T](msgspec.Struct, frozen=True):
    """A value paired with the time elapsed since the previous one (`time_interval()`)."""

    value: T
    interval: timedelta
