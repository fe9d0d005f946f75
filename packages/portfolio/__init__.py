"""Polymarket portfolio reconciliation package."""

from .aggregator import aggregate, lifetime_count, open_positions
from .config import PortfolioConfig
from .errors import (
    ConfigError,
    InvalidArgument,
    PortfolioError,
    UpstreamError,
    UpstreamMalformed,
    UpstreamUnavailable,
)
from .http_client import HttpClient, get_shared_client
from .matcher import FifoMatchResult, match_fifo, realized_pnl
from .models import (
    ActivityRecord,
    GameExposure,
    Lot,
    NetPosition,
    PortfolioAggregate,
    PositionSnapshot,
    Side,
    TimeRange,
    TradeRecord,
)
from .pagination import PageFetchResult, fetch_all
from .pricing import ClobPriceLookup, PriceLookup
from .reconciler import PortfolioReconciler, build_reconciler
from .scope import ALL_SCOPE, ESPORTS_SCOPE, ScopeDefinition, classify_game, get_scope, is_in_scope
from .sources import ActivitySource, FillsSource, PositionsSource, SourceResult

__all__ = [
    "aggregate",
    "lifetime_count",
    "open_positions",
    "PortfolioConfig",
    "ConfigError",
    "InvalidArgument",
    "PortfolioError",
    "UpstreamError",
    "UpstreamMalformed",
    "UpstreamUnavailable",
    "HttpClient",
    "get_shared_client",
    "FifoMatchResult",
    "match_fifo",
    "realized_pnl",
    "ActivityRecord",
    "GameExposure",
    "Lot",
    "NetPosition",
    "PortfolioAggregate",
    "PositionSnapshot",
    "Side",
    "TimeRange",
    "TradeRecord",
    "PageFetchResult",
    "fetch_all",
    "ClobPriceLookup",
    "PriceLookup",
    "PortfolioReconciler",
    "build_reconciler",
    "ALL_SCOPE",
    "ESPORTS_SCOPE",
    "ScopeDefinition",
    "classify_game",
    "get_scope",
    "is_in_scope",
    "ActivitySource",
    "FillsSource",
    "PositionsSource",
    "SourceResult",
]
