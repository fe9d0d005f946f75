"""Present-time mark prices for open positions.

Marks come from the CLOB order book of the outcome token. Two methods are
supported:

bid (default, conservative)
    Long positions are marked at ``best_bid``, what they would fetch if sold
    immediately. Unrealized PnL is never overstated.

midpoint
    ``(best_bid + best_ask) / 2``; useful when the spread is very wide.

Books are cached for a short TTL so one reconciliation does not hit the
same token twice. The cache is the only state shared across calls and is
guarded by a lock.
"""

from __future__ import annotations

import logging
import threading
import time
from decimal import Decimal
from typing import Optional, Protocol

from .config import PortfolioConfig
from .errors import UpstreamError
from .http_client import HttpClient, get_shared_client
from .normalization import parse_decimal

logger = logging.getLogger(__name__)

MARK_BID = "bid"
MARK_MID = "midpoint"

_ZERO = Decimal("0")
_ONE = Decimal("1")
_TWO = Decimal("2")


class PriceLookup(Protocol):
    """Current price for a market outcome, or None when unavailable."""

    def get_current_price(self, market_id: str, outcome_id: str) -> Optional[Decimal]:
        ...


def _level_price(level: object) -> Optional[Decimal]:
    if isinstance(level, dict):
        price = level.get("price") or level.get("p")
    elif isinstance(level, (list, tuple)) and level:
        price = level[0]
    else:
        price = None

    if price is None or price == "":
        return None
    value = parse_decimal(price, default=Decimal("-1"))
    if value < _ZERO or value > _ONE:
        return None
    return value


def mark_price(
    best_bid: Optional[Decimal],
    best_ask: Optional[Decimal],
    method: str = MARK_BID,
) -> Optional[Decimal]:
    """Return the mark for a long position, or None if the book is too thin.

    Examples:
        >>> mark_price(Decimal("0.58"), Decimal("0.60"))
        Decimal('0.58')
        >>> mark_price(Decimal("0.58"), Decimal("0.60"), method="midpoint")
        Decimal('0.59')
    """
    if method == MARK_BID:
        return best_bid
    if method == MARK_MID:
        if best_bid is None or best_ask is None:
            return None
        return (best_bid + best_ask) / _TWO
    raise ValueError(f"Unknown mark method: {method!r}. Use 'bid' or 'midpoint'.")


class ClobPriceLookup:
    """Mark-price lookup backed by the CLOB ``/book`` endpoint.

    ``outcome_id`` is expected to be the outcome token id, which is how the
    source adapters key positions whenever the venue supplies one.
    """

    def __init__(
        self,
        client: Optional[HttpClient] = None,
        config: Optional[PortfolioConfig] = None,
        method: str = MARK_BID,
        cache_seconds: Optional[float] = None,
    ):
        if method not in (MARK_BID, MARK_MID):
            raise ValueError(f"Unknown mark method: {method!r}. Use 'bid' or 'midpoint'.")
        self.config = config or PortfolioConfig()
        self.client = client or get_shared_client(
            self.config.clob_api_url, timeout=self.config.http_timeout
        )
        self.method = method
        self.cache_seconds = (
            self.config.price_cache_seconds if cache_seconds is None else cache_seconds
        )
        self._cache: dict[str, tuple[float, Optional[Decimal]]] = {}
        self._lock = threading.Lock()

    def get_best_bid_ask(self, token_id: str) -> tuple[Optional[Decimal], Optional[Decimal]]:
        """Fetch best bid/ask for a token; raises UpstreamError on failure."""
        book = self.client.get_json("/book", params={"token_id": token_id})
        if not isinstance(book, dict):
            return None, None

        bids = [p for p in (_level_price(level) for level in book.get("bids") or []) if p is not None]
        asks = [p for p in (_level_price(level) for level in book.get("asks") or []) if p is not None]
        return (max(bids) if bids else None, min(asks) if asks else None)

    def get_current_price(self, market_id: str, outcome_id: str) -> Optional[Decimal]:
        if not outcome_id or self.config.offline:
            return None

        now_ts = time.monotonic()
        with self._lock:
            cached = self._cache.get(outcome_id)
            if cached and self.cache_seconds > 0 and now_ts - cached[0] <= self.cache_seconds:
                return cached[1]

        try:
            best_bid, best_ask = self.get_best_bid_ask(outcome_id)
        except UpstreamError as exc:
            logger.warning(f"Failed to fetch CLOB book for {market_id}/{outcome_id}: {exc}")
            return None

        price = mark_price(best_bid, best_ask, self.method)
        with self._lock:
            self._cache[outcome_id] = (now_ts, price)
        return price
