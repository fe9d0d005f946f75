"""Record types shared by the adapters, the aggregator and the reconciler.

All sizes, prices and money amounts are ``Decimal``. Adapters convert
upstream strings/numbers at the boundary so downstream arithmetic is exact
and repeat runs produce identical output.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

_ZERO = Decimal("0")


class Side(str, Enum):
    """Direction of a trade relative to the position it touches."""

    OPEN = "open"
    CLOSE = "close"


PositionKey = tuple[str, str]


@dataclass(frozen=True)
class TradeRecord:
    """One normalized fill from the trades ledger."""

    market_id: str
    outcome_id: str
    side: Side
    size: Decimal
    price: Decimal
    fee: Decimal
    timestamp: datetime
    source_id: str
    outcome: str = ""
    title: str = ""
    slug: str = ""
    event_slug: str = ""

    @property
    def key(self) -> PositionKey:
        return (self.market_id, self.outcome_id)

    @property
    def signed_size(self) -> Decimal:
        return self.size if self.side is Side.OPEN else -self.size


@dataclass(frozen=True)
class PositionSnapshot:
    """Venue-reported state of one position (open or closed)."""

    market_id: str
    outcome_id: str
    net_size: Decimal
    average_entry_price: Decimal
    current_mark_price: Decimal
    current_value: Decimal
    cash_pnl: Decimal
    realized_pnl: Decimal
    resolved: bool = False
    end_date: Optional[datetime] = None
    outcome: str = ""
    title: str = ""
    slug: str = ""
    event_slug: str = ""

    @property
    def key(self) -> PositionKey:
        return (self.market_id, self.outcome_id)


@dataclass(frozen=True)
class ActivityRecord:
    """One row of the account activity ledger (trades, redeems, merges, ...)."""

    market_id: str
    outcome_id: str
    activity_type: str
    side: Optional[Side]
    size: Decimal
    price: Decimal
    usdc_size: Decimal
    timestamp: datetime
    source_id: str
    title: str = ""
    slug: str = ""
    event_slug: str = ""

    @property
    def key(self) -> PositionKey:
        return (self.market_id, self.outcome_id)


@dataclass
class NetPosition:
    """Net size and cost basis for one market outcome, built from trades."""

    market_id: str
    outcome_id: str
    net_size: Decimal = _ZERO
    cost_basis: Decimal = _ZERO
    max_historical_net_size: Decimal = _ZERO

    @property
    def key(self) -> PositionKey:
        return (self.market_id, self.outcome_id)

    @property
    def is_open(self) -> bool:
        return self.net_size > _ZERO

    @property
    def average_cost(self) -> Decimal:
        if self.net_size <= _ZERO:
            return _ZERO
        return self.cost_basis / self.net_size


@dataclass
class Lot:
    """Unconsumed remainder of an opening trade."""

    open_timestamp: datetime
    remaining_size: Decimal
    unit_cost: Decimal
    unit_fee: Decimal = _ZERO


@dataclass(frozen=True)
class TimeRange:
    """Optional caller-supplied bounds for ledger computations."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def contains(self, ts: datetime) -> bool:
        if self.start is not None and ts < self.start:
            return False
        if self.end is not None and ts > self.end:
            return False
        return True


@dataclass(frozen=True)
class GameExposure:
    game: str
    exposure: Decimal
    percentage: Decimal
    position_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "game": self.game,
            "exposure": str(self.exposure),
            "percentage": str(self.percentage),
            "position_count": self.position_count,
        }


@dataclass
class PortfolioAggregate:
    """Portfolio metrics for one wallet and scope.

    ``total_pnl`` is derived, so it always equals unrealized plus realized.
    ``sources`` records which tier produced each metric group and
    ``degraded`` lists metrics computed from partial or approximate data.
    """

    scope: str = "all"
    total_value: Decimal = _ZERO
    total_unrealized_pnl: Decimal = _ZERO
    total_realized_pnl: Decimal = _ZERO
    realized_pnl_window: Decimal = _ZERO
    window_days: int = 30
    open_positions_count: int = 0
    lifetime_positions_count: int = 0
    per_game_exposure: list[GameExposure] = field(default_factory=list)
    sources: dict[str, str] = field(default_factory=dict)
    degraded: list[str] = field(default_factory=list)

    @property
    def total_pnl(self) -> Decimal:
        return self.total_unrealized_pnl + self.total_realized_pnl

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready view; Decimal values are rendered as strings."""
        return {
            "scope": self.scope,
            "total_value": str(self.total_value),
            "total_unrealized_pnl": str(self.total_unrealized_pnl),
            "total_realized_pnl": str(self.total_realized_pnl),
            "total_pnl": str(self.total_pnl),
            "realized_pnl_window": str(self.realized_pnl_window),
            "window_days": self.window_days,
            "open_positions_count": self.open_positions_count,
            "lifetime_positions_count": self.lifetime_positions_count,
            "per_game_exposure": [item.to_dict() for item in self.per_game_exposure],
            "sources": dict(sorted(self.sources.items())),
            "degraded": sorted(set(self.degraded)),
        }
