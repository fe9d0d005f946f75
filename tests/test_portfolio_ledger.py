"""Tests for net-position aggregation and FIFO realized PnL.

Two invariant families
----------------------
1. **Aggregation**: net size equals the signed sum of trade sizes per key,
   average cost follows the opens, and the historical maximum is tracked.
2. **FIFO matching**: closes consume the oldest lots first, fees are
   charged on both legs, and only closes inside the window count.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from itertools import count

import pytest

from packages.portfolio.aggregator import aggregate, lifetime_count, open_positions, sort_trades
from packages.portfolio.matcher import match_fifo, realized_pnl
from packages.portfolio.models import Side, TradeRecord

_D = Decimal  # shorthand
_ids = count()

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _trade(
    side: Side,
    size: str,
    price: str,
    *,
    fee: str = "0",
    days_ago: float = 1,
    market: str = "0xm1",
    outcome: str = "tok-yes",
) -> TradeRecord:
    return TradeRecord(
        market_id=market,
        outcome_id=outcome,
        side=side,
        size=_D(size),
        price=_D(price),
        fee=_D(fee),
        timestamp=NOW - timedelta(days=days_ago),
        source_id=f"t-{next(_ids)}",
    )


def _open(size, price, **kw):
    return _trade(Side.OPEN, size, price, **kw)


def _close(size, price, **kw):
    return _trade(Side.CLOSE, size, price, **kw)


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def test_opens_only_average_cost():
    positions = aggregate([_open("10", "0.50", days_ago=3), _open("5", "0.60", days_ago=2)])

    position = positions[("0xm1", "tok-yes")]
    assert position.net_size == _D("15")
    assert position.cost_basis == _D("8.00")
    assert position.average_cost == _D("8.00") / _D("15")
    assert position.max_historical_net_size == _D("15")


def test_net_size_is_signed_sum_per_key():
    trades = [
        _open("10", "0.4", days_ago=5),
        _close("4", "0.5", days_ago=4),
        _open("3", "0.45", days_ago=3),
        _open("7", "0.2", days_ago=2, outcome="tok-no"),
        _close("7", "0.3", days_ago=1, outcome="tok-no"),
    ]

    positions = aggregate(trades)

    for key, position in positions.items():
        expected = sum((t.signed_size for t in trades if t.key == key), _D("0"))
        assert position.net_size == expected
    assert positions[("0xm1", "tok-yes")].net_size == _D("9")
    assert positions[("0xm1", "tok-no")].net_size == _D("0")


def test_close_removes_basis_at_average_cost():
    positions = aggregate([
        _open("10", "0.50", days_ago=3),
        _open("10", "0.70", days_ago=2),
        _close("5", "0.90", days_ago=1),
    ])

    position = positions[("0xm1", "tok-yes")]
    assert position.net_size == _D("15")
    assert position.average_cost == _D("0.6")
    assert position.cost_basis == _D("9.0")


def test_max_historical_and_lifetime_count():
    positions = aggregate([
        _open("10", "0.5", days_ago=5),
        _close("10", "0.6", days_ago=4),
        _open("2", "0.5", days_ago=3, market="0xm2"),
        _close("1", "0.5", days_ago=2, market="0xm3"),
    ])

    assert positions[("0xm1", "tok-yes")].max_historical_net_size == _D("10")
    assert positions[("0xm1", "tok-yes")].is_open is False
    # 0xm3 was only ever closed (open predates history), so never counted.
    assert positions[("0xm3", "tok-yes")].net_size == _D("-1")
    assert lifetime_count(positions) == 2
    assert [p.market_id for p in open_positions(positions)] == ["0xm2"]


def test_sort_is_stable_for_equal_timestamps():
    first = _open("1", "0.5", days_ago=1)
    second = _close("1", "0.6", days_ago=1)

    assert sort_trades([first, second]) == [first, second]
    assert sort_trades([second, first]) == [second, first]


def test_empty_trades():
    assert aggregate([]) == {}
    assert lifetime_count({}) == 0


# ---------------------------------------------------------------------------
# FIFO matching
# ---------------------------------------------------------------------------


def test_round_trip_with_fees_inside_window():
    trades = [_open("10", "0.50", fee="0.1", days_ago=5), _close("10", "0.70", fee="0.1", days_ago=2)]

    result = match_fifo(trades, window_start=NOW - timedelta(days=30), now=NOW)

    assert result.realized_pnl == _D("1.8")
    assert result.matched_size == _D("10")
    assert result.fees_charged == _D("0.2")
    assert result.closes_in_window == 1
    assert result.open_lots == {}


def test_closes_consume_oldest_lots_first():
    trades = [
        _open("5", "0.20", days_ago=10),
        _open("5", "0.60", days_ago=9),
        _close("6", "0.50", days_ago=1),
    ]

    result = match_fifo(trades)

    # 5 @ (0.50-0.20) + 1 @ (0.50-0.60)
    assert result.realized_pnl == _D("1.40")
    remaining = result.open_lots[("0xm1", "tok-yes")]
    assert len(remaining) == 1
    assert remaining[0].remaining_size == _D("4")
    assert remaining[0].unit_cost == _D("0.60")


def test_partial_lot_fees_are_prorated():
    trades = [_open("10", "0.5", fee="1.0", days_ago=3), _close("4", "0.5", fee="0.2", days_ago=1)]

    result = match_fifo(trades)

    # 4 * 0.1 open unit fee + 4 * 0.05 close unit fee
    assert result.realized_pnl == _D("-0.60")


def test_only_closes_inside_window_count():
    window_start = NOW - timedelta(days=30)
    trades = [
        _open("10", "0.40", days_ago=60),
        _close("5", "0.50", days_ago=45),
        _close("5", "0.80", days_ago=3),
    ]

    result = match_fifo(trades, window_start=window_start, now=NOW)

    # Opened before the window, closed inside it: realized inside.
    assert result.realized_pnl == _D("2.00")
    assert result.closes_in_window == 1
    assert realized_pnl(trades) == _D("2.50")


def test_close_after_now_is_ignored():
    trades = [_open("1", "0.1", days_ago=5), _close("1", "0.9", days_ago=-1)]
    assert match_fifo(trades, window_start=NOW - timedelta(days=30), now=NOW).realized_pnl == _D("0")


def test_unmatched_close_charges_its_fee_only(caplog):
    with caplog.at_level("WARNING"):
        result = match_fifo([_close("4", "0.9", fee="0.4", days_ago=1)])

    assert result.realized_pnl == _D("-0.4")
    assert result.unmatched_close_size == _D("4")
    assert result.matched_size == _D("0")
    assert "Unmatched close size" in caplog.text


def test_keys_are_matched_independently():
    trades = [
        _open("10", "0.5", days_ago=5, outcome="tok-yes"),
        _close("10", "0.7", days_ago=1, outcome="tok-no"),
    ]

    result = match_fifo(trades)

    assert result.unmatched_close_size == _D("10")
    assert ("0xm1", "tok-yes") in result.open_lots


def test_matching_is_deterministic():
    trades = [
        _open("3", "0.31", fee="0.01", days_ago=9, market="0xm2"),
        _open("7", "0.42", fee="0.02", days_ago=8),
        _close("2", "0.55", fee="0.01", days_ago=4, market="0xm2"),
        _close("7", "0.61", fee="0.03", days_ago=2),
    ]

    first = match_fifo(trades, window_start=NOW - timedelta(days=30), now=NOW)
    second = match_fifo(list(reversed(trades)), window_start=NOW - timedelta(days=30), now=NOW)

    assert first.realized_pnl == second.realized_pnl
    assert str(first.realized_pnl) == str(second.realized_pnl)


def test_empty_history_realizes_zero():
    result = match_fifo([])
    assert result.realized_pnl == _D("0")
    assert result.open_lots == {}


@pytest.mark.parametrize("days_ago", [30, 29.999])
def test_window_start_is_inclusive(days_ago):
    window_start = NOW - timedelta(days=30)
    trades = [_open("1", "0.5", days_ago=40), _close("1", "0.6", days_ago=days_ago)]
    assert match_fifo(trades, window_start=window_start, now=NOW).realized_pnl == _D("0.1")
