"""FIFO lot matching for realized PnL.

Opening trades push lots onto a per-outcome queue; closing trades consume
lots oldest-first. Each matched slice realizes

    (exit_price - lot_unit_cost) * matched_size
        - lot_unit_fee * matched_size
        - close_unit_fee * matched_size

Only slices whose *closing* trade falls inside ``[window_start, now]`` are
counted, so a position opened before the window and closed inside it is
realized inside it. Close size with no lot to match (the open happened
before the fetched history began) still pays its share of the close fee.

Arithmetic is Decimal and groups are visited in key order, so identical
input always produces an identical result.
"""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from .aggregator import sort_trades
from .models import Lot, PositionKey, Side, TradeRecord

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")


@dataclass
class FifoMatchResult:
    """Outcome of one matching pass."""

    realized_pnl: Decimal = _ZERO
    matched_size: Decimal = _ZERO
    unmatched_close_size: Decimal = _ZERO
    fees_charged: Decimal = _ZERO
    closes_in_window: int = 0
    open_lots: dict[PositionKey, list[Lot]] = field(default_factory=dict)


def _in_window(ts: datetime, window_start: Optional[datetime], now: Optional[datetime]) -> bool:
    if window_start is not None and ts < window_start:
        return False
    if now is not None and ts > now:
        return False
    return True


def match_fifo(
    trades: Iterable[TradeRecord],
    window_start: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> FifoMatchResult:
    """Match closes against opens FIFO and sum realized PnL in the window.

    Args:
        trades: Trade records in any order (sorted stably by timestamp here)
        window_start: Earliest close timestamp to count; None counts all history
        now: Latest close timestamp to count; None means unbounded

    Returns:
        FifoMatchResult with realized PnL and matching diagnostics
    """
    grouped: dict[PositionKey, list[TradeRecord]] = defaultdict(list)
    for trade in sort_trades(trades):
        if trade.size <= _ZERO:
            continue
        grouped[trade.key].append(trade)

    result = FifoMatchResult()

    for key in sorted(grouped):
        lots: deque[Lot] = deque()
        unmatched_for_key = _ZERO

        for trade in grouped[key]:
            unit_fee = trade.fee / trade.size

            if trade.side is Side.OPEN:
                lots.append(Lot(
                    open_timestamp=trade.timestamp,
                    remaining_size=trade.size,
                    unit_cost=trade.price,
                    unit_fee=unit_fee,
                ))
                continue

            counted = _in_window(trade.timestamp, window_start, now)
            if counted:
                result.closes_in_window += 1
            remaining = trade.size

            while remaining > _ZERO and lots:
                lot = lots[0]
                matched = min(remaining, lot.remaining_size)
                fees = (lot.unit_fee + unit_fee) * matched
                pnl = (trade.price - lot.unit_cost) * matched - fees

                if counted:
                    result.realized_pnl += pnl
                    result.fees_charged += fees
                    result.matched_size += matched

                lot.remaining_size -= matched
                remaining -= matched
                if lot.remaining_size <= _ZERO:
                    lots.popleft()

            if remaining > _ZERO:
                unmatched_for_key += remaining
                if counted:
                    orphan_fee = unit_fee * remaining
                    result.realized_pnl -= orphan_fee
                    result.fees_charged += orphan_fee
                    result.unmatched_close_size += remaining

        if unmatched_for_key > _ZERO:
            logger.warning(
                f"Unmatched close size {unmatched_for_key} for {key[0]}/{key[1]}; "
                f"opens likely predate the fetched history"
            )
        if lots:
            result.open_lots[key] = list(lots)

    return result


def realized_pnl(
    trades: Iterable[TradeRecord],
    window_start: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Decimal:
    """Shorthand for ``match_fifo(...).realized_pnl``."""
    return match_fifo(trades, window_start=window_start, now=now).realized_pnl
