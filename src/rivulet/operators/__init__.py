"""Operator functions over Subscribable sources.

Every `Channel` operator method delegates to a function here; the functions
also accept any other Subscribable (such as a `Deferred`) as their source.
Each returns a new derived channel that owns its upstream subscriptions.
"""

from rivulet.operators.combine import combine_latest, merge, with_latest_from
from rivulet.operators.recovery import on_error_resume_next, retry, retry_when
from rivulet.operators.state import cache, distinct, distinct_by, group_by, share, share_replay
from rivulet.operators.timing import buffer, debounce_time, throttle_time
from rivulet.operators.transform import map_not_none, map_values, scan, start_with, switch_map, where, where_not_none
from rivulet.operators.utility import (
    debug,
    do_on_data,
    do_on_error,
    pairwise,
    skip_last,
    take_last,
    take_while_inclusive,
    time_interval,
    timestamp,
)

__all__ = [
    'buffer',
    'cache',
    'combine_latest',
    'debounce_time',
    'debug',
    'distinct',
    'distinct_by',
    'do_on_data',
    'do_on_error',
    'group_by',
    'map_not_none',
    'map_values',
    'merge',
    'on_error_resume_next',
    'pairwise',
    'retry',
    'retry_when',
    'scan',
    'share',
    'share_replay',
    'skip_last',
    'start_with',
    'switch_map',
    'take_last',
    'take_while_inclusive',
    'throttle_time',
    'time_interval',
    'timestamp',
    'where',
    'where_not_none',
    'with_latest_from',
]
