"""
rivulet: Reactive value channels for asyncio applications.

Provides hot multicast channels that remember their latest value, a
composable operator layer (transformation, de-duplication, time control,
error recovery, combination) and explicit, asynchronous disposal that
releases every upstream link a derived channel owns.
"""

from rivulet._config import ChannelConfig, get_config, init
from rivulet._logging import add_log_hook, clear_log_hooks, configure_logging, get_logger, remove_log_hook
from rivulet.channel import Channel
from rivulet.errors import (
    ChannelClosed,
    ChannelClosedError,
    OperationTimedOut,
    OperationTimedOutError,
    ValueAbsent,
    ValueAbsentError,
)
from rivulet.factory import Deferred, defer, from_awaitable
from rivulet.protocols import Subscribable
from rivulet.subscription import Subscription
from rivulet.types import ABSENT, Absent, TimeInterval, Timestamped, Variant

__all__ = [
    'ABSENT',
    'Absent',
    # Channels
    'Channel',
    # Errors - struct variants
    'ChannelClosed',
    # Errors - exception variants
    'ChannelClosedError',
    # Config
    'ChannelConfig',
    'Deferred',
    'OperationTimedOut',
    'OperationTimedOutError',
    'Subscribable',
    'Subscription',
    'TimeInterval',
    'Timestamped',
    'ValueAbsent',
    'ValueAbsentError',
    'Variant',
    # Logging
    'add_log_hook',
    'clear_log_hooks',
    'configure_logging',
    'defer',
    'from_awaitable',
    'get_config',
    'get_logger',
    'init',
    'remove_log_hook',
]
