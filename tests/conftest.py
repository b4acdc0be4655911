"""Shared fixtures."""

import pytest
from loguru import logger

from excevent.settings import get_settings


@pytest.fixture
def log_messages():
    """Collect excevent log records of level WARNING and above."""
    messages: list[str] = []
    logger.enable("excevent")
    handler_id = logger.add(lambda message: messages.append(str(message)), level="WARNING", format="{message}")
    yield messages
    logger.remove(handler_id)
    logger.disable("excevent")


@pytest.fixture
def strict_until(monkeypatch: pytest.MonkeyPatch):
    """Enable strict ``until`` through the environment."""
    monkeypatch.setenv("EXCEVENT_STRICT_UNTIL", "true")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
