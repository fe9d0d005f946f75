"""Offline tests for offset pagination over collection endpoints."""

from __future__ import annotations

import pytest

from packages.portfolio.errors import InvalidArgument, UpstreamMalformed, UpstreamUnavailable
from packages.portfolio.pagination import fetch_all


class _PagedEndpoint:
    """Serves pre-sized pages and records each (limit, offset) request."""

    def __init__(self, page_sizes: list[int]) -> None:
        self.page_sizes = list(page_sizes)
        self.calls: list[tuple[int, int]] = []

    def __call__(self, limit: int, offset: int) -> list:
        self.calls.append((limit, offset))
        index = len(self.calls) - 1
        size = self.page_sizes[index] if index < len(self.page_sizes) else 0
        size = min(size, limit)
        return [{"i": offset + n} for n in range(size)]


def test_stops_after_short_page():
    endpoint = _PagedEndpoint([500, 500, 500, 120])

    result = fetch_all(endpoint, page_size=500, hard_cap=100_000)

    assert len(result.records) == 1620
    assert result.pages_fetched == 4
    assert result.truncated is False
    assert endpoint.calls == [(500, 0), (500, 500), (500, 1000), (500, 1500)]
    assert [r["i"] for r in result.records] == list(range(1620))


def test_empty_first_page_returns_nothing():
    endpoint = _PagedEndpoint([0])

    result = fetch_all(endpoint, page_size=100, hard_cap=1000)

    assert result.records == []
    assert result.pages_fetched == 1
    assert result.truncated is False


def test_hard_cap_truncates_and_shrinks_last_limit(caplog):
    endpoint = _PagedEndpoint([100, 100, 100, 100])

    with caplog.at_level("WARNING"):
        result = fetch_all(endpoint, page_size=100, hard_cap=250)

    assert len(result.records) == 250
    assert result.truncated is True
    assert endpoint.calls == [(100, 0), (100, 100), (50, 200)]
    assert "hard cap" in caplog.text


def test_oversized_page_is_trimmed_to_cap():
    result = fetch_all(lambda limit, offset: [{"n": n} for n in range(limit + 5)], page_size=10, hard_cap=10)

    assert len(result.records) == 10
    assert result.truncated is True


def test_request_failure_is_wrapped_as_unavailable():
    def boom(limit, offset):
        raise RuntimeError("socket closed")

    with pytest.raises(UpstreamUnavailable, match="offset 0"):
        fetch_all(boom, page_size=10, hard_cap=100)


def test_upstream_errors_pass_through_unchanged():
    def malformed(limit, offset):
        raise UpstreamMalformed("bad page")

    with pytest.raises(UpstreamMalformed):
        fetch_all(malformed, page_size=10, hard_cap=100)


@pytest.mark.parametrize("page_size,hard_cap", [(0, 10), (10, 0), (-1, 10)])
def test_rejects_non_positive_limits(page_size, hard_cap):
    with pytest.raises(InvalidArgument):
        fetch_all(lambda limit, offset: [], page_size=page_size, hard_cap=hard_cap)
