"""Error taxonomy for portfolio reconciliation.

Only :class:`InvalidArgument` (and :class:`ConfigError` at startup) reach the
caller of the reconciler. Upstream errors are caught per tier and turned into
degraded metrics.
"""

from __future__ import annotations


class PortfolioError(Exception):
    """Base class for all portfolio engine errors."""


class InvalidArgument(PortfolioError, ValueError):
    """Raised when the caller passes unusable input (e.g. empty wallet)."""


class ConfigError(PortfolioError, ValueError):
    """Raised when an environment setting cannot be parsed."""


class UpstreamError(PortfolioError):
    """Base class for failures talking to the venue APIs."""


class UpstreamUnavailable(UpstreamError):
    """Network failure, exhausted retries, or a non-404 HTTP error."""


class UpstreamMalformed(UpstreamError):
    """A single upstream record could not be normalized."""
