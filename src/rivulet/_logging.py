"""Structured logging for rivulet.

Channel events (debug taps, errors nobody handled, disposals skipped for lack
of an event loop) go through structlog loggers in the `rivulet` namespace,
bound with the context of the channel or listener that produced them.
`configure_logging` renders them through one ProcessorFormatter together
with stdlib records, and log hooks see every event as a plain dict.
"""

from __future__ import annotations

import contextlib
import logging
import sys
from typing import TYPE_CHECKING, Any, TextIO

if TYPE_CHECKING:
    from collections.abc import Callable

    type LogHook = Callable[[dict[str, Any]], None]

__all__ = [
    'add_log_hook',
    'clear_log_hooks',
    'configure_logging',
    'get_logger',
    'remove_log_hook',
]

_NAMESPACE = 'rivulet'

_log_hooks: list[LogHook] = []


def _qualify(name: str | None) -> str:
    if name is None or name == _NAMESPACE:
        return _NAMESPACE
    if name.startswith(f'{_NAMESPACE}.'):
        return name
    return f'{_NAMESPACE}.{name}'


def _run_hooks(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    # each hook gets its own copy; a failing hook never breaks the log call
    for hook in tuple(_log_hooks):
        with contextlib.suppress(Exception):
            hook(dict(event_dict))
    return event_dict


def _event_processors() -> list[Any]:
    import structlog

    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt='iso', utc=True),
        _run_hooks,
    ]


def configure_logging(
    level: str = 'INFO',
    *,
    json_output: bool = True,
    stream: TextIO | None = None,
) -> None:
    """Route rivulet events and stdlib records through one structured handler.

    Replaces the root logger's handlers, so calling it again reconfigures
    instead of stacking output.

    Args:
        level: Root level ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL").
            Unknown names fall back to INFO.
        json_output: Render JSON lines; otherwise a console format, colored
            when the stream is a terminal.
        stream: Output stream, stderr by default.
    """
    import structlog

    out = stream if stream is not None else sys.stderr

    structlog.configure(
        processors=[
            *_event_processors(),
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    renderer: Any
    if json_output:
        # values in channel events are arbitrary objects
        renderer = structlog.processors.JSONRenderer(default=repr)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=out.isatty())

    handler = logging.StreamHandler(out)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_event_processors(),
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))


def get_logger(name: str | None = None, **context: Any) -> Any:
    """Get a logger in the `rivulet` namespace, bound with context.

    Args:
        name: Logger name. Names outside the namespace are prefixed with
            `rivulet.`; None returns the `rivulet` logger itself.
        **context: Key-value pairs added to every event of the logger,
            such as a debug tag or the listener an error was meant for.

    Returns:
        A structlog BoundLogger.
    """
    import structlog

    logger = structlog.get_logger(_qualify(name))
    return logger.bind(**context) if context else logger


def add_log_hook(hook: LogHook) -> None:
    """Call hook with a copy of every event.

    Useful to collect `debug()` taps in tests or to forward unhandled
    channel errors to an alerting system.
    """
    _log_hooks.append(hook)


def remove_log_hook(hook: LogHook) -> None:
    """Stop calling hook. Unknown hooks are ignored."""
    with contextlib.suppress(ValueError):
        _log_hooks.remove(hook)


def clear_log_hooks() -> None:
    """Remove every log hook."""
    _log_hooks.clear()
