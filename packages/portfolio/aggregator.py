"""Fold ordered trades into net per-outcome positions."""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from .models import NetPosition, PositionKey, Side, TradeRecord

_ZERO = Decimal("0")


def sort_trades(trades: Iterable[TradeRecord]) -> list[TradeRecord]:
    """Order trades by timestamp; ties keep ingestion order (sorted is stable)."""
    return sorted(trades, key=lambda trade: trade.timestamp)


def aggregate(trades: Iterable[TradeRecord]) -> dict[PositionKey, NetPosition]:
    """Build net positions from trades in a single chronological pass.

    Each key tracks the running signed size (opens add, closes subtract) and
    the largest size ever reached. Cost basis follows average-cost
    accounting: a close removes basis at the current average cost, and the
    basis resets once the position is flat or short.

    Trades sharing a timestamp keep their ingestion order; that can change
    an intermediate maximum but never the final net size.
    """
    positions: dict[PositionKey, NetPosition] = {}

    for trade in sort_trades(trades):
        position = positions.get(trade.key)
        if position is None:
            position = NetPosition(market_id=trade.market_id, outcome_id=trade.outcome_id)
            positions[trade.key] = position

        if trade.side is Side.OPEN:
            if position.net_size < _ZERO:
                # Re-opening from a short (close seen before its open): only
                # the part above zero carries basis.
                long_part = max(position.net_size + trade.size, _ZERO)
                position.cost_basis = long_part * trade.price
            else:
                position.cost_basis += trade.size * trade.price
            position.net_size += trade.size
        else:
            if position.net_size > _ZERO:
                reduced = min(trade.size, position.net_size)
                position.cost_basis -= position.average_cost * reduced
            position.net_size -= trade.size
            if position.net_size <= _ZERO:
                position.cost_basis = _ZERO

        if position.net_size > position.max_historical_net_size:
            position.max_historical_net_size = position.net_size

    return positions


def open_positions(positions: dict[PositionKey, NetPosition]) -> list[NetPosition]:
    """Positions whose final net size is positive, in key order."""
    return [positions[key] for key in sorted(positions) if positions[key].is_open]


def lifetime_count(positions: dict[PositionKey, NetPosition]) -> int:
    """Number of keys whose net size was ever positive."""
    return sum(1 for position in positions.values() if position.max_historical_net_size > _ZERO)
