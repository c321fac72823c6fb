"""
Shared fixtures for Receptacle tests.
"""

import logging
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import structlog

from receptacle.core.types import ItemSnapshot
from receptacle.logging_config import LOGGER_PREFIX, clear_correlation_id


NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for file-based tests."""
    with tempfile.TemporaryDirectory() as tmp:
        yield Path(tmp)


@pytest.fixture
def now():
    """Fixed reference time for date-dependent rules."""
    return NOW


@pytest.fixture
def make_item(now):
    """Factory for items owned by entity 'e1', dated relative to now."""
    def _make_item(item_id, days_ago=0, **kwargs):
        kwargs.setdefault("entity_id", "e1")
        kwargs.setdefault("date", now - timedelta(days=days_ago))
        return ItemSnapshot(id=item_id, **kwargs)

    return _make_item


@pytest.fixture
def restore_logging():
    """Undo setup_logging() so later tests see the default logging state."""
    package_logger = logging.getLogger(LOGGER_PREFIX)
    handlers = package_logger.handlers[:]
    level = package_logger.level
    propagate = package_logger.propagate
    yield
    for handler in package_logger.handlers[:]:
        if handler not in handlers:
            handler.close()
    package_logger.handlers[:] = handlers
    package_logger.setLevel(level)
    package_logger.propagate = propagate
    structlog.reset_defaults()
    clear_correlation_id()
