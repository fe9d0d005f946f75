"""Normalization helpers for Polymarket identifiers and loosely typed fields."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional, Sequence

from .errors import InvalidArgument, UpstreamMalformed
from .models import Side

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")
# Epoch values above this are milliseconds, not seconds.
_MILLIS_THRESHOLD = 10_000_000_000

_OPEN_SIDES = {"BUY", "0"}
_CLOSE_SIDES = {"SELL", "1"}


def normalize_condition_id(value: Optional[str]) -> str:
    """Normalize condition_id to lowercase with 0x prefix.

    Returns empty string when value is falsy or only whitespace.
    """
    if value is None:
        return ""
    cleaned = str(value).strip()
    if not cleaned:
        return ""
    lowered = cleaned.lower()
    if lowered.startswith("0x"):
        normalized = lowered[2:]
    else:
        normalized = lowered
    if not normalized:
        return ""
    return f"0x{normalized}"


def normalize_outcome_name(value: Optional[str]) -> str:
    """Normalize outcome strings for joins (lowercase/trim)."""
    if value is None:
        return ""
    cleaned = str(value).strip().lower()
    return cleaned


def normalize_wallet(value: Optional[str]) -> str:
    """Lowercase and trim a wallet address.

    Raises:
        InvalidArgument: If the wallet is missing or blank.
    """
    if value is None:
        raise InvalidArgument("wallet address is required")
    cleaned = str(value).strip().lower()
    if not cleaned:
        raise InvalidArgument("wallet address is required")
    return cleaned


def first_present(data: Mapping[str, Any], fields: Sequence[str]) -> Any:
    """Return the value of the first field in ``fields`` that is set.

    Empty strings and ``None`` count as unset; ``0`` does not.
    """
    for name in fields:
        value = data.get(name)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def parse_decimal(value: Any, default: Decimal = _ZERO) -> Decimal:
    """Parse a number that may arrive as a string, int or float.

    Anything unparseable (including NaN and infinities) yields ``default``.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, Decimal):
        result = value
    else:
        text = str(value).strip()
        if not text:
            return default
        try:
            result = Decimal(text)
        except (InvalidOperation, ValueError):
            return default
    if not result.is_finite():
        return default
    return result


def parse_side(value: Any) -> Side:
    """Map ``"BUY"``/``0`` to OPEN and ``"SELL"``/``1`` to CLOSE.

    Raises:
        UpstreamMalformed: For any other value.
    """
    if isinstance(value, Side):
        return value
    if isinstance(value, bool):
        raise UpstreamMalformed(f"unrecognized side: {value!r}")
    text = str(value).strip().upper() if value is not None else ""
    if text in _OPEN_SIDES:
        return Side.OPEN
    if text in _CLOSE_SIDES:
        return Side.CLOSE
    raise UpstreamMalformed(f"unrecognized side: {value!r}")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse epoch seconds/milliseconds or an ISO-8601 string to aware UTC.

    Returns None when the value is missing or unparseable.
    """
    if value is None or isinstance(value, bool):
        return None

    epoch: Optional[float] = None
    if isinstance(value, (int, float, Decimal)):
        epoch = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            epoch = float(text)
        except ValueError:
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                logger.debug(f"Could not parse timestamp: {text}")
                return None
            if parsed.tzinfo is None:
                return parsed.replace(tzinfo=timezone.utc)
            return parsed.astimezone(timezone.utc)
    else:
        return None

    if epoch != epoch or epoch < 0:
        return None
    if epoch > _MILLIS_THRESHOLD:
        epoch = epoch / 1000.0
    try:
        return datetime.fromtimestamp(epoch, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None
