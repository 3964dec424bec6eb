"""
Shared pytest fixtures for the document scan test suite.

Synthetic frame builders live in ``tests/frames.py``.
"""

import pytest


# ---------------------------------------------------------------------------
# Basic settings fixture: overrides env vars for tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def override_settings(monkeypatch):
    """Provide safe dummy credentials so Settings() doesn't fail in tests."""
    monkeypatch.setenv("STORAGE_URL", "https://storage.test")
    monkeypatch.setenv("STORAGE_API_KEY", "test-service-key")
    # Clear lru_cache so each test gets fresh Settings from monkeypatched env
    from src.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
