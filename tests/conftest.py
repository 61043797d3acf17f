"""Pytest configuration for rivulet tests."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest
from rivulet import _config
from rivulet._logging import add_log_hook, clear_log_hooks, configure_logging

if TYPE_CHECKING:
    from collections.abc import Generator


@pytest.fixture(autouse=True)
def reset_config(monkeypatch: pytest.MonkeyPatch) -> Generator[None]:
    """Start each test with no configuration and a clean environment."""
    for name in ('RIVULET_LOG_LEVEL', 'RIVULET_LOG_FORMAT', 'RIVULET_DEBUG_LEVEL'):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(_config, '_config', None)
    yield
    monkeypatch.setattr(_config, '_config', None)


@pytest.fixture
def log_events() -> Generator[list[dict[str, Any]]]:
    """Capture structured log events emitted during the test.

    Logging is configured at DEBUG so `debug()` taps are recorded too.
    """
    events: list[dict[str, Any]] = []
    configure_logging(level='DEBUG', json_output=True)
    clear_log_hooks()
    add_log_hook(events.append)
    yield events
    clear_log_hooks()
