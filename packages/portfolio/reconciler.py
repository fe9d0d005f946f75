"""Portfolio reconciliation across the snapshot, fills and activity sources.

Each metric group is produced by an ordered chain of strategies, most
authoritative first:

positions (value, unrealized/realized PnL, open count)
    snapshot -> ledger (fills) -> activity
lifetime positions
    snapshot open+closed union -> ledger max-historical size -> activity keys
realized PnL window
    ledger FIFO match -> 0

The positions chain takes the first tier that returns any data; a usable
snapshot is never replaced by the ledger, even when its closed history or
pagination is incomplete. The other chains prefer the first complete answer
and fall back to the first partial one. Incomplete metrics are listed in
``PortfolioAggregate.degraded``. Upstream failures never
escape :meth:`PortfolioReconciler.compute_portfolio`; only invalid caller
input raises.

Chain disagreements (e.g. lifetime counts from the snapshot union vs. fills
history at the edge of the fetched window) are not reconciled; the
preferred source simply wins.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Optional, Sequence

from .aggregator import aggregate, lifetime_count
from .config import PortfolioConfig
from .errors import InvalidArgument
from .matcher import match_fifo
from .models import GameExposure, PortfolioAggregate, PositionKey, Side, TimeRange, TradeRecord
from .normalization import normalize_wallet
from .pricing import ClobPriceLookup, PriceLookup
from .scope import ScopeDefinition, classify_game, filter_scope, get_scope
from .sources import ActivitySource, FillsSource, PositionsSource

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")
_PCT_QUANTUM = Decimal("0.01")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class FetchOutcome:
    """Result of one adapter call, with failures captured instead of raised."""

    records: list = field(default_factory=list)
    truncated: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def usable(self) -> bool:
        return self.ok and bool(self.records)


@dataclass
class PositionMetrics:
    total_value: Decimal = _ZERO
    unrealized_pnl: Decimal = _ZERO
    realized_pnl: Decimal = _ZERO
    open_count: int = 0
    # (record carrying market text, current value) per open position
    exposures: list[tuple[Any, Decimal]] = field(default_factory=list)


@dataclass
class TierResult:
    value: Any
    complete: bool
    degraded: list[str] = field(default_factory=list)


def _fetch(name: str, call: Callable[[], Any]) -> FetchOutcome:
    try:
        result = call()
    except Exception as exc:
        logger.warning(f"{name} fetch failed: {type(exc).__name__}: {exc}")
        return FetchOutcome(error=str(exc) or type(exc).__name__)
    return FetchOutcome(records=list(result.records), truncated=result.truncated)


class ReconcileContext:
    """Inputs for one reconciliation call, with scope filtering applied once."""

    def __init__(
        self,
        wallet: str,
        scope: ScopeDefinition,
        now: datetime,
        window_start: datetime,
        time_range: Optional[TimeRange],
        snapshot: FetchOutcome,
        closed: FetchOutcome,
        fills: FetchOutcome,
        account_value: Optional[Decimal],
        load_activity: Callable[[], FetchOutcome],
        price_lookup: Optional[PriceLookup],
    ):
        self.wallet = wallet
        self.scope = scope
        self.now = now
        self.window_start = window_start
        self.time_range = time_range
        self.snapshot = snapshot
        self.closed = closed
        self.fills = fills
        self.account_value = account_value
        self.price_lookup = price_lookup
        self._load_activity = load_activity
        self._activity: Optional[FetchOutcome] = None

        self.scoped_snapshot = filter_scope(snapshot.records, scope)
        self.scoped_closed = filter_scope(closed.records, scope)
        trades = filter_scope(fills.records, scope)
        if time_range is not None:
            trades = [trade for trade in trades if time_range.contains(trade.timestamp)]
        self.scoped_trades: list[TradeRecord] = trades

    @property
    def activity(self) -> FetchOutcome:
        if self._activity is None:
            self._activity = self._load_activity()
        return self._activity

    @property
    def scoped_activity(self) -> list:
        return filter_scope(self.activity.records, self.scope)


class Strategy:
    """One step of a fallback chain."""

    name = "strategy"
    # False for strategies that can only ever produce a degraded answer;
    # they are skipped once any earlier answer exists.
    can_complete = True

    def compute_metrics(self, ctx: ReconcileContext) -> Optional[TierResult]:
        raise NotImplementedError


class SnapshotTier(Strategy):
    """Venue-reported open positions (plus closed history for realized PnL)."""

    name = "snapshot"

    def compute_metrics(self, ctx: ReconcileContext) -> Optional[TierResult]:
        if not ctx.snapshot.usable:
            return None

        degraded: list[str] = []
        open_rows = [row for row in ctx.scoped_snapshot if row.net_size > _ZERO]
        metrics = PositionMetrics(open_count=len(open_rows))

        for row in open_rows:
            metrics.total_value += row.current_value
            metrics.unrealized_pnl += row.cash_pnl
            metrics.exposures.append((row, row.current_value))

        open_keys = {row.key for row in ctx.scoped_snapshot}
        metrics.realized_pnl = sum(
            (row.realized_pnl for row in ctx.scoped_snapshot), _ZERO
        )
        if ctx.closed.ok:
            metrics.realized_pnl += sum(
                (row.realized_pnl for row in ctx.scoped_closed if row.key not in open_keys),
                _ZERO,
            )
        else:
            degraded.append("total_realized_pnl")

        unscoped = ctx.scope.includes_everything and not ctx.scope.exclude_patterns
        if unscoped and ctx.account_value is not None and ctx.account_value > _ZERO:
            metrics.total_value = ctx.account_value

        if ctx.snapshot.truncated:
            degraded.extend(["total_value", "open_positions_count"])

        return TierResult(metrics, complete=not degraded, degraded=degraded)


class LedgerTier(Strategy):
    """Positions rebuilt from fills; values marked via the price lookup."""

    name = "ledger"

    def compute_metrics(self, ctx: ReconcileContext) -> Optional[TierResult]:
        if not ctx.fills.usable:
            return None

        degraded: list[str] = []
        trades = ctx.scoped_trades
        latest_by_key: dict[PositionKey, TradeRecord] = {trade.key: trade for trade in trades}

        # Realized and unrealized share the FIFO lots so a partial close is
        # counted exactly once.
        match = match_fifo(trades)
        metrics = PositionMetrics(realized_pnl=match.realized_pnl)
        approximated = 0

        for key in sorted(match.open_lots):
            lots = match.open_lots[key]
            net_size = sum((lot.remaining_size for lot in lots), _ZERO)
            if net_size <= _ZERO:
                continue
            cost = sum((lot.remaining_size * lot.unit_cost for lot in lots), _ZERO)

            mark = None
            if ctx.price_lookup is not None:
                mark = ctx.price_lookup.get_current_price(*key)

            if mark is not None:
                value = net_size * mark
                metrics.unrealized_pnl += value - cost
            else:
                # No mark: value at cost, which leaves unrealized PnL at zero.
                value = cost
                approximated += 1

            metrics.total_value += value
            metrics.open_count += 1
            metrics.exposures.append((latest_by_key[key], value))

        if approximated:
            logger.info(f"Valued {approximated} positions at cost basis (no mark price)")
            degraded.extend(["total_value", "total_unrealized_pnl"])
        if ctx.fills.truncated:
            degraded.extend(["total_realized_pnl", "open_positions_count"])

        return TierResult(metrics, complete=not degraded, degraded=degraded)


def _activity_net_sizes(records: Sequence) -> dict[PositionKey, Decimal]:
    net: dict[PositionKey, Decimal] = defaultdict(lambda: _ZERO)
    for record in sorted(records, key=lambda r: r.timestamp):
        if record.side is Side.OPEN:
            net[record.key] += record.size
        elif record.side is Side.CLOSE:
            net[record.key] -= record.size
    return net


class ActivityTier(Strategy):
    """Activity ledger: position counts only, no PnL."""

    name = "activity"
    can_complete = False

    def compute_metrics(self, ctx: ReconcileContext) -> Optional[TierResult]:
        if not ctx.activity.usable:
            return None
        net = _activity_net_sizes(ctx.scoped_activity)
        metrics = PositionMetrics(open_count=sum(1 for size in net.values() if size > _ZERO))
        return TierResult(
            metrics,
            complete=False,
            degraded=["total_value", "total_unrealized_pnl", "total_realized_pnl"],
        )


class SnapshotUnionLifetime(Strategy):
    """Distinct scoped keys across open positions and closed history."""

    name = "snapshot"

    def compute_metrics(self, ctx: ReconcileContext) -> Optional[TierResult]:
        if not ctx.snapshot.ok:
            return None
        keys = {row.key for row in ctx.scoped_snapshot if row.net_size > _ZERO}
        if not ctx.closed.ok:
            if not keys:
                return None
            logger.warning("Closed positions unavailable; lifetime count covers open positions only")
            return TierResult(len(keys), complete=False, degraded=["lifetime_positions_count"])
        keys.update(row.key for row in ctx.scoped_closed)
        if not keys:
            return None
        truncated = ctx.snapshot.truncated or ctx.closed.truncated
        return TierResult(
            len(keys),
            complete=not truncated,
            degraded=["lifetime_positions_count"] if truncated else [],
        )


class LedgerLifetime(Strategy):
    """Keys whose net size from fills was ever positive."""

    name = "ledger"

    def compute_metrics(self, ctx: ReconcileContext) -> Optional[TierResult]:
        if not ctx.fills.usable:
            return None
        truncated = ctx.fills.truncated
        return TierResult(
            lifetime_count(aggregate(ctx.scoped_trades)),
            complete=not truncated,
            degraded=["lifetime_positions_count"] if truncated else [],
        )


class ActivityLifetime(Strategy):
    """Distinct scoped keys touched in the activity ledger."""

    name = "activity"
    can_complete = False

    def compute_metrics(self, ctx: ReconcileContext) -> Optional[TierResult]:
        if not ctx.activity.usable:
            return None
        keys = {record.key for record in ctx.scoped_activity}
        return TierResult(len(keys), complete=False, degraded=["lifetime_positions_count"])


class LedgerWindow(Strategy):
    """FIFO realized PnL for closes inside the window."""

    name = "ledger"

    def compute_metrics(self, ctx: ReconcileContext) -> Optional[TierResult]:
        if not ctx.fills.usable:
            return None
        result = match_fifo(ctx.scoped_trades, window_start=ctx.window_start, now=ctx.now)
        truncated = ctx.fills.truncated
        return TierResult(
            result.realized_pnl,
            complete=not truncated,
            degraded=["realized_pnl_window"] if truncated else [],
        )


POSITION_TIERS: tuple[Strategy, ...] = (SnapshotTier(), LedgerTier(), ActivityTier())
LIFETIME_CHAIN: tuple[Strategy, ...] = (SnapshotUnionLifetime(), LedgerLifetime(), ActivityLifetime())
WINDOW_CHAIN: tuple[Strategy, ...] = (LedgerWindow(),)


def run_chain(
    strategies: Sequence[Strategy],
    ctx: ReconcileContext,
    first_with_data: bool = False,
) -> tuple[str, Optional[TierResult]]:
    """Try strategies in order; return the first complete result.

    Falls back to the first partial result, or ``("none", None)``. With
    ``first_with_data`` any result stops the chain, complete or not.
    """
    fallback: Optional[tuple[str, TierResult]] = None
    for strategy in strategies:
        if fallback is not None and not strategy.can_complete:
            continue
        result = strategy.compute_metrics(ctx)
        if result is None:
            logger.info(f"{strategy.name} strategy produced no data, trying next")
            continue
        if result.complete or first_with_data:
            return strategy.name, result
        if fallback is None:
            fallback = (strategy.name, result)
    if fallback is not None:
        return fallback
    return "none", None


def compute_game_exposure(exposures: Sequence[tuple[Any, Decimal]]) -> list[GameExposure]:
    """Group open-position values by esports title."""
    totals: dict[str, Decimal] = defaultdict(lambda: _ZERO)
    counts: dict[str, int] = defaultdict(int)
    for record, value in exposures:
        game = classify_game(record)
        if game is None:
            continue
        totals[game] += value
        counts[game] += 1

    grand_total = sum(totals.values(), _ZERO)
    breakdown = []
    for game, exposure in totals.items():
        if grand_total > _ZERO:
            percentage = (exposure / grand_total * _HUNDRED).quantize(_PCT_QUANTUM)
        else:
            percentage = _ZERO
        breakdown.append(GameExposure(
            game=game,
            exposure=exposure,
            percentage=percentage,
            position_count=counts[game],
        ))
    breakdown.sort(key=lambda item: (-item.exposure, item.game))
    return breakdown


class PortfolioReconciler:
    """Builds a :class:`PortfolioAggregate` for a wallet and scope."""

    def __init__(
        self,
        positions_source: PositionsSource,
        fills_source: FillsSource,
        activity_source: ActivitySource,
        price_lookup: Optional[PriceLookup] = None,
        config: Optional[PortfolioConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.positions_source = positions_source
        self.fills_source = fills_source
        self.activity_source = activity_source
        self.price_lookup = price_lookup
        self.config = config or PortfolioConfig()
        self.clock = clock or _utcnow

    def _window(
        self, window_days: int, time_range: Optional[TimeRange]
    ) -> tuple[datetime, datetime, int]:
        now = self.clock()
        if time_range is not None and time_range.end is not None:
            now = time_range.end
        if time_range is not None and time_range.start is not None:
            start = time_range.start
            days = max(math.ceil((now - start).total_seconds() / 86400), 0)
            return start, now, days
        return now - timedelta(days=window_days), now, window_days

    def compute_portfolio(
        self,
        wallet: str,
        scope: "str | ScopeDefinition" = "all",
        time_range: Optional[TimeRange] = None,
    ) -> PortfolioAggregate:
        """
        Compute portfolio metrics for one wallet.

        Args:
            wallet: Proxy wallet address
            scope: Scope name ("all", "esports") or a ScopeDefinition
            time_range: Optional bounds applied to fills and the realized window

        Returns:
            PortfolioAggregate; metrics that could not be sourced are zero
            and listed in ``degraded``

        Raises:
            InvalidArgument: Missing wallet or unknown scope
        """
        wallet = normalize_wallet(wallet)
        scope_def = get_scope(scope)
        window_start, now, window_days = self._window(self.config.window_days, time_range)

        unscoped = scope_def.includes_everything and not scope_def.exclude_patterns
        with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            snapshot_future = executor.submit(
                _fetch, "positions", lambda: self.positions_source.fetch(wallet)
            )
            closed_future = executor.submit(
                _fetch, "closed positions", lambda: self.positions_source.fetch_closed(wallet)
            )
            fills_future = executor.submit(
                _fetch, "fills", lambda: self.fills_source.fetch(wallet)
            )
            value_future = (
                executor.submit(self._fetch_value, wallet) if unscoped else None
            )
            snapshot = snapshot_future.result()
            closed = closed_future.result()
            fills = fills_future.result()
            account_value = value_future.result() if value_future is not None else None

        ctx = ReconcileContext(
            wallet=wallet,
            scope=scope_def,
            now=now,
            window_start=window_start,
            time_range=time_range,
            snapshot=snapshot,
            closed=closed,
            fills=fills,
            account_value=account_value,
            load_activity=lambda: _fetch("activity", lambda: self.activity_source.fetch(wallet)),
            price_lookup=self.price_lookup,
        )
        return self._assemble(ctx, window_days)

    def _fetch_value(self, wallet: str) -> Optional[Decimal]:
        try:
            return self.positions_source.fetch_value(wallet)
        except Exception as exc:
            logger.warning(f"account value fetch failed: {type(exc).__name__}: {exc}")
            return None

    def _assemble(self, ctx: ReconcileContext, window_days: int) -> PortfolioAggregate:
        aggregate_result = PortfolioAggregate(scope=ctx.scope.name, window_days=window_days)

        tier_name, tier = run_chain(POSITION_TIERS, ctx, first_with_data=True)
        aggregate_result.sources["positions"] = tier_name
        if tier is not None:
            metrics: PositionMetrics = tier.value
            aggregate_result.total_value = metrics.total_value
            aggregate_result.total_unrealized_pnl = metrics.unrealized_pnl
            aggregate_result.total_realized_pnl = metrics.realized_pnl
            aggregate_result.open_positions_count = metrics.open_count
            aggregate_result.per_game_exposure = compute_game_exposure(metrics.exposures)
            aggregate_result.degraded.extend(tier.degraded)
        else:
            logger.warning(f"No position source available for {ctx.wallet[:10]}...; reporting zeros")
            aggregate_result.degraded.extend([
                "total_value",
                "total_unrealized_pnl",
                "total_realized_pnl",
                "open_positions_count",
            ])

        lifetime_name, lifetime = run_chain(LIFETIME_CHAIN, ctx)
        aggregate_result.sources["lifetime_positions"] = lifetime_name
        if lifetime is not None:
            aggregate_result.lifetime_positions_count = lifetime.value
            aggregate_result.degraded.extend(lifetime.degraded)
        else:
            aggregate_result.degraded.append("lifetime_positions_count")

        window_name, window = run_chain(WINDOW_CHAIN, ctx)
        aggregate_result.sources["realized_pnl_window"] = window_name
        if window is not None:
            aggregate_result.realized_pnl_window = window.value
            aggregate_result.degraded.extend(window.degraded)
        else:
            aggregate_result.degraded.append("realized_pnl_window")

        aggregate_result.degraded = sorted(set(aggregate_result.degraded))
        logger.info(
            f"Portfolio for {ctx.wallet[:10]}... scope={ctx.scope.name}: "
            f"positions={tier_name} lifetime={lifetime_name} window={window_name} "
            f"degraded={aggregate_result.degraded}"
        )
        return aggregate_result

    def compute_realized_pnl_window(
        self,
        wallet: str,
        scope: "str | ScopeDefinition" = "all",
        window_days: Optional[int] = None,
    ) -> Decimal:
        """
        Realized PnL of closes in the trailing ``window_days`` days.

        Returns zero when fills are unavailable.

        Raises:
            InvalidArgument: Missing wallet, unknown scope, or window_days <= 0
        """
        wallet = normalize_wallet(wallet)
        scope_def = get_scope(scope)
        days = self.config.window_days if window_days is None else window_days
        if days <= 0:
            raise InvalidArgument(f"window_days must be positive, got {days}")

        fills = _fetch("fills", lambda: self.fills_source.fetch(wallet))
        if not fills.usable:
            return _ZERO

        now = self.clock()
        trades = filter_scope(fills.records, scope_def)
        return match_fifo(trades, window_start=now - timedelta(days=days), now=now).realized_pnl


def build_reconciler(config: Optional[PortfolioConfig] = None) -> PortfolioReconciler:
    """Wire the default Data API sources and CLOB price lookup."""
    config = config or PortfolioConfig.from_env()
    return PortfolioReconciler(
        positions_source=PositionsSource(config=config),
        fills_source=FillsSource(config=config),
        activity_source=ActivitySource(config=config),
        price_lookup=ClobPriceLookup(config=config),
        config=config,
    )
