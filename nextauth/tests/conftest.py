"""
Shared fixtures.

Every test runs against a clean, known environment: settings are read from
the variables set here and the cached settings are dropped before and after
each test.
"""

import pytest

from nextauth.config import get_settings


TEST_SECRET = "test-secret-that-is-long-enough-for-hkdf-0123456789"
TEST_URL = "http://localhost:3000"


@pytest.fixture(autouse=True)
def auth_env(monkeypatch):
    """Known NEXTAUTH_* environment for each test"""
    monkeypatch.setenv("NEXTAUTH_SECRET", TEST_SECRET)
    monkeypatch.setenv("NEXTAUTH_URL", TEST_URL)
    for name in (
        "NEXTAUTH_BASE_PATH",
        "NEXTAUTH_OPTIONS",
        "JWT_ENCRYPTION",
        "SESSION_MAX_AGE_SECONDS",
        "HTTP_TIMEOUT_SECONDS",
        "LOG_LEVEL",
        "DEBUG",
    ):
        monkeypatch.delenv(name, raising=False)

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
