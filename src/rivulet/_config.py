"""Channel configuration: ChannelConfig and initialization."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from rivulet._logging import configure_logging

__all__ = [
    'ChannelConfig',
    'get_config',
    'init',
]

_LEVELS = ('debug', 'info', 'warning', 'error', 'critical')


@dataclass(frozen=True)
class ChannelConfig:
    """Configuration for rivulet.

    Attributes:
        log_level: Logging level (e.g., "DEBUG", "INFO"). None = leave logging alone.
        json_logs: Emit JSON logs when True, console output otherwise.
        debug_level: Level used by the `debug()` operator for its taps.
    """

    log_level: str | None = None
    json_logs: bool = True
    debug_level: str = 'debug'


# Global configuration (set by init())
_config: ChannelConfig | None = None


def _detect_log_level() -> str | None:
    """Read the logging level from RIVULET_LOG_LEVEL."""
    env_level = os.environ.get('RIVULET_LOG_LEVEL', '').strip()
    if not env_level:
        return None
    if env_level.lower() not in _LEVELS:
        logging.warning("Unknown RIVULET_LOG_LEVEL value '%s', logging left unconfigured", env_level)
        return None
    return env_level.upper()


def _detect_json_logs() -> bool:
    """Read the output format from RIVULET_LOG_FORMAT ("json" or "console")."""
    env_format = os.environ.get('RIVULET_LOG_FORMAT', 'json').lower()
    if env_format not in ('json', 'console'):
        logging.warning("Unknown RIVULET_LOG_FORMAT value '%s', defaulting to json", env_format)
        return True
    return env_format == 'json'


def _detect_debug_level() -> str:
    """Read the debug tap level from RIVULET_DEBUG_LEVEL."""
    env_level = os.environ.get('RIVULET_DEBUG_LEVEL', 'debug').lower()
    if env_level not in _LEVELS:
        logging.warning("Unknown RIVULET_DEBUG_LEVEL value '%s', defaulting to debug", env_level)
        return 'debug'
    return env_level


def init(
    log_level: str | None = None,
    *,
    json_logs: bool | None = None,
    debug_level: str | None = None,
) -> ChannelConfig:
    """Initialize rivulet with the given configuration.

    Explicit arguments win; anything left as None is read from the
    environment (RIVULET_LOG_LEVEL, RIVULET_LOG_FORMAT, RIVULET_DEBUG_LEVEL).

    Args:
        log_level: Logging level ("DEBUG", "INFO", etc.). None = silent.
        json_logs: JSON (True) or console (False) log output.
        debug_level: Level at which `debug()` taps are logged.

    Returns:
        The ChannelConfig that was set.

    Raises:
        ValueError: If debug_level is not a known logging level.

    Example:
        ```python
        import rivulet

        rivulet.init(log_level='DEBUG', json_logs=False)
        ```
    """
    global _config  # noqa: PLW0603

    resolved_level = log_level if log_level is not None else _detect_log_level()
    resolved_json = json_logs if json_logs is not None else _detect_json_logs()

    if debug_level is None:
        resolved_debug = _detect_debug_level()
    elif debug_level.lower() in _LEVELS:
        resolved_debug = debug_level.lower()
    else:
        msg = f'Unknown debug level: {debug_level!r}'
        raise ValueError(msg)

    _config = ChannelConfig(
        log_level=resolved_level,
        json_logs=resolved_json,
        debug_level=resolved_debug,
    )

    if resolved_level is not None:
        configure_logging(resolved_level, json_output=resolved_json)

    return _config


def get_config() -> ChannelConfig:
    """Get the current configuration, initializing from the environment on first use.

    Returns:
        The current ChannelConfig.
    """
    if _config is None:
        return init()
    return _config
