"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import pytest
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from spaced_review.config import Settings, get_settings  # noqa: E402
from spaced_review.core.models import ReviewableItem, StrategyKind  # noqa: E402

FIXED_NOW = datetime(2024, 5, 10, 12, 0, tzinfo=UTC)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (SQLite / files)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached per process; tests that touch env need a fresh read."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def now():
    """Fixed reference instant: 2024-05-10 12:00 UTC."""
    return FIXED_NOW


@pytest.fixture
def clock(now):
    """Clock returning the fixed reference instant."""
    return lambda: now


@pytest.fixture
def settings():
    """Default settings, ignoring any local .env file."""
    return Settings(_env_file=None, store_backend="memory")


@pytest.fixture
def question():
    """A fresh ease-factor question."""
    return ReviewableItem(
        id="q-osi",
        content={"front": "Which OSI layer handles routing?", "back": "Network (3)"},
        category="networking",
        strategy=StrategyKind.EASE_FACTOR,
    )


@pytest.fixture
def flashcard():
    """A fresh level-based vocabulary card."""
    return ReviewableItem(
        id="v-ciao",
        content={"front": "ciao", "back": "hello"},
        category="vocabulary",
        strategy=StrategyKind.LEVEL,
    )


@pytest.fixture
def due_deck(now):
    """Mixed deck relative to the fixed instant."""
    return [
        ReviewableItem(id="overdue", next_review_date=now - timedelta(days=2), interval_days=1),
        ReviewableItem(id="due-now", next_review_date=now, interval_days=1),
        ReviewableItem(
            id="tonight", next_review_date=now + timedelta(hours=6), interval_days=1
        ),
        ReviewableItem(id="in-3d", next_review_date=now + timedelta(days=3), interval_days=3),
        ReviewableItem(id="in-10d", next_review_date=now + timedelta(days=10), interval_days=10),
        ReviewableItem(id="in-30d", next_review_date=now + timedelta(days=30), interval_days=30),
        ReviewableItem(id="new"),
    ]
