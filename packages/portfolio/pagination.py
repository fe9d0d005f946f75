"""Offset pagination over Data API collection endpoints."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from .errors import InvalidArgument, UpstreamError, UpstreamUnavailable

logger = logging.getLogger(__name__)

PageRequest = Callable[[int, int], list]


@dataclass
class PageFetchResult:
    """Records drained from a collection endpoint."""

    records: list = field(default_factory=list)
    pages_fetched: int = 0
    truncated: bool = False


def fetch_all(request: PageRequest, page_size: int, hard_cap: int) -> PageFetchResult:
    """
    Drain a collection by requesting ``page_size`` items at increasing offsets.

    Stops on the first short page, or once ``hard_cap`` records have been
    collected. Hitting the cap sets ``truncated`` and logs a warning; the
    records gathered so far are still returned.

    Args:
        request: Callable taking ``(limit, offset)`` and returning one page
        page_size: Records per page
        hard_cap: Maximum number of records to collect

    Returns:
        PageFetchResult with records in arrival order

    Raises:
        UpstreamUnavailable: If any page request fails
        InvalidArgument: If page_size or hard_cap is not positive
    """
    if page_size <= 0:
        raise InvalidArgument(f"page_size must be positive, got {page_size}")
    if hard_cap <= 0:
        raise InvalidArgument(f"hard_cap must be positive, got {hard_cap}")

    result = PageFetchResult()
    offset = 0

    while len(result.records) < hard_cap:
        limit = min(page_size, hard_cap - len(result.records))
        logger.debug(f"Fetching page {result.pages_fetched + 1} (offset={offset}, limit={limit})")
        try:
            page = request(limit, offset)
        except UpstreamError:
            raise
        except Exception as exc:
            raise UpstreamUnavailable(f"page request failed at offset {offset}: {exc}") from exc

        result.pages_fetched += 1
        page = list(page or [])
        result.records.extend(page)

        if len(page) < limit:
            break
        offset += len(page)
    else:
        result.truncated = True

    if len(result.records) > hard_cap:
        del result.records[hard_cap:]
        result.truncated = True

    if result.truncated:
        logger.warning(
            f"Pagination hard cap reached ({hard_cap} records after "
            f"{result.pages_fetched} pages); results are partial"
        )

    return result
