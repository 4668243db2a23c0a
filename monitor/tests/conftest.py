"""
Shared test fixtures for the solar monitor tests.

Monitor env vars are cleaned before each test so settings tests are isolated.
Also provides a controllable clock and a metrics cache bound to it.

CHANGELOG:
- 2026-10-08: Add clock and cache fixtures (STORY-011)
- 2026-10-02: Initial creation (STORY-001)

TODO:
- None
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from monitor.src.cache import MetricsCache

# All MonitorSettings environment variable names, used for cleanup.
_ALL_MONITOR_ENV_VARS = (
    "SOURCE_MODE",
    "POLLING_INTERVAL_S",
    "FUSIONSOLAR_BASE_URL",
    "FUSIONSOLAR_USERNAME",
    "FUSIONSOLAR_PASSWORD",
    "FUSIONSOLAR_POLLING_INTERVAL_S",
    "FUSIONSOLAR_REQUEST_TIMEOUT_S",
    "FUSIONSOLAR_TOKEN_TTL_S",
    "FUSIONSOLAR_REALTIME_FIELDS",
    "FUSIONSOLAR_ENERGY_FIELDS",
    "MODBUS_HOST",
    "MODBUS_PORT",
    "MODBUS_UNIT_ID",
    "MODBUS_POLLING_INTERVAL_S",
    "MODBUS_CONNECT_TIMEOUT_S",
    "MODBUS_REQUEST_TIMEOUT_S",
    "MODBUS_PLANT",
    "MODBUS_REGISTERS",
    "API_HOST",
    "API_PORT",
    "CORS_ORIGINS",
    "HEALTH_PATH",
)


class FakeClock:
    """Settable clock returning timezone-aware UTC datetimes."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture(autouse=True)
def _clean_monitor_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Remove all monitor env vars and isolate from .env files before each test.

    This runs automatically for every test in the monitor test suite.
    Changes working directory to tmp_path so no .env file is accidentally
    loaded by Pydantic BaseSettings.
    """
    for var in _ALL_MONITOR_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def cloud_env(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set the minimum environment for cloud mode."""
    env = {
        "SOURCE_MODE": "cloud",
        "FUSIONSOLAR_USERNAME": "api-user",
        "FUSIONSOLAR_PASSWORD": "system-code",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture()
def clock() -> FakeClock:
    """Clock fixed at 2026-10-01 12:00 UTC; tests may move ``clock.now``."""
    return FakeClock(datetime(2026, 10, 1, 12, 0, tzinfo=UTC))


@pytest.fixture()
def cache(clock: FakeClock) -> MetricsCache:
    """Empty metrics cache whose retention cutoff follows ``clock``."""
    return MetricsCache(clock=clock)
