"""Source adapters for the Polymarket Data API collections.

Each adapter drains one collection through :func:`pagination.fetch_all` and
normalizes the raw rows into the shared record types. Rows that cannot be
normalized are dropped with a warning; they never fail the fetch.

Upstream field names vary between endpoints and API revisions, so every
field is looked up through an ordered list of candidate names where the
first non-empty value wins.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Optional

from .config import PortfolioConfig
from .errors import UpstreamMalformed
from .http_client import HttpClient, get_shared_client
from .models import ActivityRecord, PositionSnapshot, TradeRecord
from .normalization import (
    first_present,
    normalize_condition_id,
    normalize_outcome_name,
    parse_decimal,
    parse_side,
    parse_timestamp,
)
from .pagination import fetch_all

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")
_ONE = Decimal("1")

MARKET_ID_FIELDS = ("conditionId", "condition_id", "market_id", "marketId", "market")
TOKEN_ID_FIELDS = ("asset", "asset_id", "assetId", "tokenId", "token_id")
OUTCOME_FIELDS = ("outcome", "outcomeName", "outcome_name")
TRADE_ID_FIELDS = ("id", "tradeId", "trade_id", "fill_id", "fillId")
TX_HASH_FIELDS = ("transactionHash", "transaction_hash", "txHash", "tx_hash")
SIDE_FIELDS = ("side", "type")
SIZE_FIELDS = ("size", "amount", "shares")
PRICE_FIELDS = ("price", "avgPrice", "avg_price")
FEE_FIELDS = ("fee", "feeAmount", "fee_usdc", "fees")
TIMESTAMP_FIELDS = ("timestamp", "matchTime", "match_time", "createdAt", "created_at")
TITLE_FIELDS = ("title", "question", "marketTitle")
SLUG_FIELDS = ("slug", "market_slug", "marketSlug")
EVENT_SLUG_FIELDS = ("eventSlug", "event_slug")


@dataclass
class SourceResult:
    """Normalized records from one adapter call."""

    records: list = field(default_factory=list)
    pages_fetched: int = 0
    truncated: bool = False
    dropped: int = 0


def _text(data: dict, fields: tuple[str, ...]) -> str:
    value = first_present(data, fields)
    return "" if value is None else str(value).strip()


def _market_id(data: dict) -> str:
    market_id = normalize_condition_id(_text(data, MARKET_ID_FIELDS))
    if not market_id:
        raise UpstreamMalformed("record has no market identifier")
    return market_id


def _outcome_id(data: dict) -> str:
    token_id = _text(data, TOKEN_ID_FIELDS)
    if token_id:
        return token_id
    outcome = normalize_outcome_name(_text(data, OUTCOME_FIELDS))
    if outcome:
        return outcome
    index = data.get("outcomeIndex")
    if index is None:
        raise UpstreamMalformed("record has no outcome identifier")
    return f"index:{index}"


def _stable_id(*parts: Any) -> str:
    return hashlib.sha256("|".join(str(part) for part in parts).encode()).hexdigest()


def parse_trade(data: dict, wallet: str = "") -> TradeRecord:
    """
    Normalize one ``/trades`` row.

    Source id: the row's own id if present, else the transaction hash plus
    the fill's identifying fields, else a sha256 over those fields.

    Raises:
        UpstreamMalformed: Missing market/timestamp/side, size <= 0, or a
            price outside [0, 1].
    """
    market_id = _market_id(data)
    outcome_id = _outcome_id(data)
    side = parse_side(first_present(data, SIDE_FIELDS))

    ts = parse_timestamp(first_present(data, TIMESTAMP_FIELDS))
    if ts is None:
        raise UpstreamMalformed(f"trade in {market_id} has no usable timestamp")

    size = parse_decimal(first_present(data, SIZE_FIELDS))
    if size <= _ZERO:
        raise UpstreamMalformed(f"trade in {market_id} has non-positive size {size}")
    price = parse_decimal(first_present(data, PRICE_FIELDS))
    if price < _ZERO or price > _ONE:
        raise UpstreamMalformed(f"trade in {market_id} has price {price} outside [0, 1]")
    fee = max(parse_decimal(first_present(data, FEE_FIELDS)), _ZERO)

    trade_id = _text(data, TRADE_ID_FIELDS)
    if not trade_id:
        tx_hash = _text(data, TX_HASH_FIELDS)
        trade_id = _stable_id(
            wallet or _text(data, ("proxyWallet",)),
            tx_hash,
            ts.isoformat(),
            market_id,
            outcome_id,
            side.value,
            size,
            price,
        )

    return TradeRecord(
        market_id=market_id,
        outcome_id=outcome_id,
        side=side,
        size=size,
        price=price,
        fee=fee,
        timestamp=ts,
        source_id=trade_id,
        outcome=_text(data, OUTCOME_FIELDS),
        title=_text(data, TITLE_FIELDS),
        slug=_text(data, SLUG_FIELDS),
        event_slug=_text(data, EVENT_SLUG_FIELDS),
    )


def parse_position(data: dict) -> PositionSnapshot:
    """
    Normalize one ``/positions`` or ``/closed-positions`` row.

    Closed rows carry no size; their net size is 0.
    """
    market_id = _market_id(data)
    net_size = parse_decimal(first_present(data, ("size", "shares")))
    mark = parse_decimal(first_present(data, ("curPrice", "currentPrice", "cur_price")))
    current_value = first_present(data, ("currentValue", "current_value"))
    return PositionSnapshot(
        market_id=market_id,
        outcome_id=_outcome_id(data),
        net_size=net_size,
        average_entry_price=parse_decimal(first_present(data, ("avgPrice", "avg_price"))),
        current_mark_price=mark,
        current_value=(
            parse_decimal(current_value) if current_value is not None else net_size * mark
        ),
        cash_pnl=parse_decimal(first_present(data, ("cashPnl", "cash_pnl"))),
        realized_pnl=parse_decimal(first_present(data, ("realizedPnl", "realized_pnl"))),
        resolved=bool(data.get("redeemable") or data.get("resolved")),
        end_date=parse_timestamp(first_present(data, ("endDate", "end_date"))),
        outcome=_text(data, OUTCOME_FIELDS),
        title=_text(data, TITLE_FIELDS),
        slug=_text(data, SLUG_FIELDS),
        event_slug=_text(data, EVENT_SLUG_FIELDS),
    )


def parse_activity(data: dict, wallet: str = "") -> ActivityRecord:
    """
    Normalize one ``/activity`` row.

    Non-trade rows (redeems, merges, rewards) have no side; that is not an
    error here.
    """
    market_id = _market_id(data)
    ts = parse_timestamp(first_present(data, TIMESTAMP_FIELDS))
    if ts is None:
        raise UpstreamMalformed(f"activity in {market_id} has no usable timestamp")

    raw_side = data.get("side")
    try:
        side = parse_side(raw_side) if raw_side not in (None, "") else None
    except UpstreamMalformed:
        side = None

    activity_type = _text(data, ("type", "activityType")).upper() or "TRADE"
    outcome_id = _outcome_id(data)
    source_id = _text(data, TRADE_ID_FIELDS)
    if not source_id:
        source_id = _stable_id(
            wallet or _text(data, ("proxyWallet",)),
            _text(data, TX_HASH_FIELDS),
            ts.isoformat(),
            market_id,
            outcome_id,
            activity_type,
            data.get("size"),
        )

    return ActivityRecord(
        market_id=market_id,
        outcome_id=outcome_id,
        activity_type=activity_type,
        side=side,
        size=parse_decimal(data.get("size")),
        price=parse_decimal(data.get("price")),
        usdc_size=parse_decimal(first_present(data, ("usdcSize", "usdc_size"))),
        timestamp=ts,
        source_id=source_id,
        title=_text(data, TITLE_FIELDS),
        slug=_text(data, SLUG_FIELDS),
        event_slug=_text(data, EVENT_SLUG_FIELDS),
    )


class _CollectionSource:
    """Shared pagination + normalization for one Data API collection."""

    def __init__(
        self,
        client: Optional[HttpClient] = None,
        config: Optional[PortfolioConfig] = None,
    ):
        self.config = config or PortfolioConfig()
        self.client = client or get_shared_client(
            self.config.data_api_url, timeout=self.config.http_timeout
        )

    def _drain(
        self,
        path: str,
        wallet: str,
        params: dict,
        parse: Callable[[dict], Any],
        hard_cap: int,
    ) -> SourceResult:
        if self.config.offline:
            logger.warning(f"Offline mode enabled; returning empty {path} collection")
            return SourceResult()

        base_params = {"user": wallet, **params}

        def request(limit: int, offset: int) -> list:
            return self.client.get_collection(
                path, params={**base_params, "limit": limit, "offset": offset}
            )

        page = fetch_all(request, page_size=self.config.page_size, hard_cap=hard_cap)
        result = SourceResult(pages_fetched=page.pages_fetched, truncated=page.truncated)

        for raw in page.records:
            if not isinstance(raw, dict):
                result.dropped += 1
                logger.warning(f"Dropping non-object row from {path}: {type(raw).__name__}")
                continue
            try:
                result.records.append(parse(raw))
            except UpstreamMalformed as exc:
                result.dropped += 1
                logger.warning(f"Dropping malformed row from {path}: {exc}")

        logger.info(
            f"Fetched {path}: {len(result.records)} records, {result.dropped} dropped, "
            f"{result.pages_fetched} pages (wallet={wallet[:10]}...)"
        )
        return result


class PositionsSource(_CollectionSource):
    """Positions snapshot: current positions, closed history, account value."""

    def fetch(self, wallet: str, filter_params: Optional[dict] = None) -> SourceResult:
        """Fetch current open positions, largest first.

        ``filter_params`` may carry venue filters such as ``sizeThreshold``.
        """
        params = {"sortBy": "TOKENS", "sortDirection": "DESC", **(filter_params or {})}
        return self._drain(
            "/positions",
            wallet,
            params,
            parse_position,
            self.config.positions_hard_cap,
        )

    def fetch_closed(self, wallet: str, filter_params: Optional[dict] = None) -> SourceResult:
        """Fetch closed positions history, newest first."""
        params = {"sortBy": "TIMESTAMP", "sortDirection": "DESC", **(filter_params or {})}
        return self._drain(
            "/closed-positions",
            wallet,
            params,
            parse_position,
            self.config.positions_hard_cap,
        )

    def fetch_value(self, wallet: str) -> Decimal:
        """Fetch the account's total position value (0 when unknown)."""
        if self.config.offline:
            return _ZERO
        body = self.client.get_json("/value", params={"user": wallet})
        if isinstance(body, list):
            body = body[0] if body else None
        if isinstance(body, dict):
            return parse_decimal(body.get("value"))
        return _ZERO


class FillsSource(_CollectionSource):
    """Historical fills from ``/trades``, de-duplicated by source id."""

    def fetch(self, wallet: str, filter_params: Optional[dict] = None) -> SourceResult:
        result = self._drain(
            "/trades",
            wallet,
            dict(filter_params or {}),
            lambda raw: parse_trade(raw, wallet),
            self.config.fills_hard_cap,
        )

        seen: set[str] = set()
        unique: list[TradeRecord] = []
        for trade in result.records:
            if trade.source_id in seen:
                continue
            seen.add(trade.source_id)
            unique.append(trade)

        duplicates = len(result.records) - len(unique)
        if duplicates:
            logger.info(f"Removed {duplicates} duplicate fills (overlapping pages)")
        result.records = unique
        return result


class ActivitySource(_CollectionSource):
    """Account activity ledger from ``/activity``."""

    def fetch(self, wallet: str, filter_params: Optional[dict] = None) -> SourceResult:
        params = {"sortBy": "TIMESTAMP", "sortDirection": "DESC", **(filter_params or {})}
        return self._drain(
            "/activity",
            wallet,
            params,
            lambda raw: parse_activity(raw, wallet),
            self.config.activity_hard_cap,
        )
