from __future__ import annotations

import pytest


_ISOLATED_ENV_VARS = (
    "POLYMARKET_DATA_API_URL",
    "POLYMARKET_CLOB_API_URL",
    "POLYMARKET_OFFLINE",
    "POLYFOLIO_HTTP_TIMEOUT",
    "POLYFOLIO_PAGE_SIZE",
    "POLYFOLIO_FILLS_HARD_CAP",
    "POLYFOLIO_ACTIVITY_HARD_CAP",
    "POLYFOLIO_POSITIONS_HARD_CAP",
    "POLYFOLIO_WINDOW_DAYS",
    "POLYFOLIO_MAX_WORKERS",
    "POLYFOLIO_PRICE_CACHE_SECONDS",
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer shell settings out of config-dependent tests."""
    for key in _ISOLATED_ENV_VARS:
        monkeypatch.delenv(key, raising=False)
