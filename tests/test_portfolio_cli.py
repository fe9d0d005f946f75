"""Offline tests for the ``polyfolio portfolio`` command."""

from __future__ import annotations

import json
from decimal import Decimal
from unittest.mock import patch

from packages.portfolio.errors import InvalidArgument
from packages.portfolio.models import PortfolioAggregate
from polyfolio.__main__ import main as polyfolio_main
from tools.cli import portfolio as portfolio_cli


class _StubReconciler:
    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def compute_portfolio(self, wallet, scope="all", time_range=None):
        self.calls.append(("portfolio", wallet, scope, time_range))
        if not wallet.strip():
            raise InvalidArgument("wallet address is required")
        return PortfolioAggregate(
            scope=scope,
            total_value=Decimal("12.5"),
            total_unrealized_pnl=Decimal("1.5"),
            total_realized_pnl=Decimal("2"),
            open_positions_count=3,
            lifetime_positions_count=7,
            sources={"positions": "snapshot"},
        )

    def compute_realized_pnl_window(self, wallet, scope="all", window_days=None):
        self.calls.append(("window", wallet, scope, window_days))
        return Decimal("1.8")


def test_portfolio_prints_aggregate_json(capsys):
    stub = _StubReconciler()
    with patch.object(portfolio_cli, "build_reconciler", return_value=stub):
        exit_code = portfolio_cli.main(["--wallet", "0xabc", "--scope", "esports"])

    assert exit_code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["scope"] == "esports"
    assert payload["total_value"] == "12.5"
    assert payload["total_pnl"] == "3.5"
    assert payload["lifetime_positions_count"] == 7
    assert stub.calls == [("portfolio", "0xabc", "esports", None)]


def test_pnl_window_only_uses_requested_window(capsys):
    stub = _StubReconciler()
    with patch.object(portfolio_cli, "build_reconciler", return_value=stub) as factory:
        exit_code = portfolio_cli.main(["--wallet", "0xabc", "--pnl-window-only", "--window-days", "7"])

    assert exit_code == 0
    assert json.loads(capsys.readouterr().out) == {
        "scope": "all",
        "window_days": 7,
        "realized_pnl_window": "1.8",
    }
    assert factory.call_args[0][0].window_days == 7
    assert stub.calls == [("window", "0xabc", "all", 7)]


def test_time_range_flags_are_parsed():
    stub = _StubReconciler()
    with patch.object(portfolio_cli, "build_reconciler", return_value=stub):
        portfolio_cli.main(["--wallet", "0xabc", "--start", "2026-01-01", "--end", "2026-02-01T00:00:00Z"])

    time_range = stub.calls[0][3]
    assert time_range.start.isoformat() == "2026-01-01T00:00:00+00:00"
    assert time_range.end.isoformat() == "2026-02-01T00:00:00+00:00"


def test_invalid_input_returns_error_code(capsys):
    stub = _StubReconciler()
    with patch.object(portfolio_cli, "build_reconciler", return_value=stub):
        assert portfolio_cli.main(["--wallet", "   "]) == 1
        assert portfolio_cli.main(["--wallet", "0xabc", "--window-days", "0"]) == 1
        assert portfolio_cli.main(["--wallet", "0xabc", "--start", "2026-02-01", "--end", "2026-01-01"]) == 1

    assert "Error:" in capsys.readouterr().err


def test_window_only_rejects_explicit_time_range(capsys):
    stub = _StubReconciler()
    with patch.object(portfolio_cli, "build_reconciler", return_value=stub):
        code = portfolio_cli.main(["--wallet", "0xabc", "--pnl-window-only", "--start", "2026-01-01"])

    assert code == 1
    assert stub.calls == []
    assert "--pnl-window-only" in capsys.readouterr().err


def test_offline_flag_reaches_config():
    with patch.object(portfolio_cli, "build_reconciler", return_value=_StubReconciler()) as factory:
        portfolio_cli.main(["--wallet", "0xabc", "--offline"])

    assert factory.call_args[0][0].offline is True


def test_bad_environment_is_reported(monkeypatch, capsys):
    monkeypatch.setenv("POLYFOLIO_PAGE_SIZE", "many")

    assert portfolio_cli.main(["--wallet", "0xabc"]) == 1
    assert "POLYFOLIO_PAGE_SIZE" in capsys.readouterr().err


def test_module_entrypoint_routes_portfolio_command():
    with patch("polyfolio.__main__.portfolio_main", return_value=0) as routed:
        assert polyfolio_main(["portfolio", "--wallet", "0xabc"]) == 0
    routed.assert_called_once_with(["--wallet", "0xabc"])


def test_module_entrypoint_usage_and_unknown_command(capsys):
    assert polyfolio_main([]) == 1
    assert polyfolio_main(["--help"]) == 0
    assert polyfolio_main(["rebalance"]) == 1
    assert polyfolio_main(["--version"]) == 0
    out = capsys.readouterr().out
    assert "Unknown command: rebalance" in out
    assert "polyfolio 0.1.0" in out
