"""Tests for environment-driven portfolio configuration."""

from __future__ import annotations

import pytest

from packages.portfolio.config import (
    DEFAULT_CLOB_API_BASE,
    DEFAULT_DATA_API_BASE,
    PortfolioConfig,
)
from packages.portfolio.errors import ConfigError


def test_defaults_when_env_is_empty():
    config = PortfolioConfig.from_env({})

    assert config == PortfolioConfig()
    assert config.data_api_url == DEFAULT_DATA_API_BASE
    assert config.clob_api_url == DEFAULT_CLOB_API_BASE
    assert config.offline is False
    assert config.page_size == 500
    assert config.fills_hard_cap == 100_000
    assert config.window_days == 30


def test_reads_overrides():
    config = PortfolioConfig.from_env({
        "POLYMARKET_DATA_API_URL": "http://localhost:8080/",
        "POLYMARKET_OFFLINE": "yes",
        "POLYFOLIO_PAGE_SIZE": "100",
        "POLYFOLIO_WINDOW_DAYS": "7",
        "POLYFOLIO_HTTP_TIMEOUT": "2.5",
        "POLYFOLIO_PRICE_CACHE_SECONDS": "0",
    })

    assert config.data_api_url == "http://localhost:8080"
    assert config.offline is True
    assert config.page_size == 100
    assert config.window_days == 7
    assert config.http_timeout == 2.5
    assert config.price_cache_seconds == 0.0


def test_reads_process_environment(monkeypatch):
    monkeypatch.setenv("POLYFOLIO_MAX_WORKERS", "2")
    assert PortfolioConfig.from_env().max_workers == 2


def test_blank_values_fall_back_to_defaults():
    config = PortfolioConfig.from_env({"POLYFOLIO_PAGE_SIZE": "  ", "POLYMARKET_DATA_API_URL": ""})

    assert config.page_size == 500
    assert config.data_api_url == DEFAULT_DATA_API_BASE


@pytest.mark.parametrize(
    "env",
    [
        {"POLYFOLIO_PAGE_SIZE": "lots"},
        {"POLYFOLIO_PAGE_SIZE": "0"},
        {"POLYFOLIO_WINDOW_DAYS": "-30"},
        {"POLYFOLIO_HTTP_TIMEOUT": "-1"},
        {"POLYFOLIO_HTTP_TIMEOUT": "soon"},
        {"POLYMARKET_OFFLINE": "maybe"},
    ],
)
def test_invalid_values_raise_config_error(env):
    with pytest.raises(ConfigError):
        PortfolioConfig.from_env(env)


def test_config_error_is_a_value_error():
    with pytest.raises(ValueError):
        PortfolioConfig.from_env({"POLYFOLIO_FILLS_HARD_CAP": "x"})
