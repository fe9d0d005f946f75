"""Environment-driven configuration for the portfolio engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ConfigError

DEFAULT_DATA_API_BASE = "https://data-api.polymarket.com"
DEFAULT_CLOB_API_BASE = "https://clob.polymarket.com"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def _read_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None:
        return default
    text = raw.strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigError(f"{key} must be a boolean flag, got {raw!r}")


def _read_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {value}")
    return value


def _read_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw.strip())
    except ValueError as exc:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from exc
    if value < 0:
        raise ConfigError(f"{key} must be non-negative, got {value}")
    return value


@dataclass(frozen=True)
class PortfolioConfig:
    """Settings shared by the source adapters and the reconciler."""

    data_api_url: str = DEFAULT_DATA_API_BASE
    clob_api_url: str = DEFAULT_CLOB_API_BASE
    offline: bool = False
    http_timeout: float = 20.0
    page_size: int = 500
    fills_hard_cap: int = 100_000
    activity_hard_cap: int = 10_000
    positions_hard_cap: int = 10_000
    window_days: int = 30
    max_workers: int = 4
    price_cache_seconds: float = 30.0

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "PortfolioConfig":
        """Build a config from environment variables, falling back to defaults.

        Raises:
            ConfigError: If a variable is set to an unparseable value.
        """
        env = os.environ if env is None else env
        return cls(
            data_api_url=(env.get("POLYMARKET_DATA_API_URL") or DEFAULT_DATA_API_BASE).rstrip("/"),
            clob_api_url=(env.get("POLYMARKET_CLOB_API_URL") or DEFAULT_CLOB_API_BASE).rstrip("/"),
            offline=_read_bool(env, "POLYMARKET_OFFLINE", False),
            http_timeout=_read_float(env, "POLYFOLIO_HTTP_TIMEOUT", 20.0),
            page_size=_read_int(env, "POLYFOLIO_PAGE_SIZE", 500),
            fills_hard_cap=_read_int(env, "POLYFOLIO_FILLS_HARD_CAP", 100_000),
            activity_hard_cap=_read_int(env, "POLYFOLIO_ACTIVITY_HARD_CAP", 10_000),
            positions_hard_cap=_read_int(env, "POLYFOLIO_POSITIONS_HARD_CAP", 10_000),
            window_days=_read_int(env, "POLYFOLIO_WINDOW_DAYS", 30),
            max_workers=_read_int(env, "POLYFOLIO_MAX_WORKERS", 4),
            price_cache_seconds=_read_float(env, "POLYFOLIO_PRICE_CACHE_SECONDS", 30.0),
        )
