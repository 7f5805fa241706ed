"""Pytest configuration and fixtures for test suite."""

import os
import sys
from pathlib import Path

import pytest

# Set test environment BEFORE any other imports
os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("DB_DRIVER", "sqlite+aiosqlite")
os.environ.pop("SMTP_HOST", None)

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))


def _reset_db_modules():
    """Reset database module globals to ensure clean state."""
    import database.async_engine as module
    module._async_engine = None
    module._async_session_factory = None


def _reset_email_provider():
    from notifications.email_provider import set_email_provider
    set_email_provider(None)


@pytest.fixture(autouse=True)
def reset_module_globals():
    """Reset database and provider globals before and after each test."""
    _reset_db_modules()
    _reset_email_provider()
    yield
    _reset_db_modules()
    _reset_email_provider()


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are lru_cached; tests that patch the environment need fresh ones."""
    from config.settings import get_delivery_settings, get_settings
    from config.database import get_database_settings

    yield
    get_settings.cache_clear()
    get_delivery_settings.cache_clear()
    get_database_settings.cache_clear()


@pytest.fixture
def mock_async_session():
    """Provide a mock async session for testing."""
    from unittest.mock import AsyncMock
    return AsyncMock()
