"""Shared fixtures for the tscache test suite."""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime

import pytest

from tscache.clock import format_timestamp
from tscache.exceptions import UpstreamError
from tscache.store import MemoryCacheStore
from tscache.types import SeriesFragment, Symbol
from tscache.upstream import UpstreamFetcher


class StubFetcher(UpstreamFetcher):
    """Fetcher returning one point per requested span, recording every call.

    :param fail_at: Span starts for which ``fetch`` raises ``UpstreamError``.
    """

    def __init__(self, fail_at: set[datetime] | None = None) -> None:
        self.fail_at = fail_at or set()
        self.calls: list[tuple[str, str, datetime, datetime]] = []
        self._lock = threading.Lock()

    def fetch(
        self,
        symbol: Symbol | str,
        period: str,
        start: datetime,
        end: datetime,
    ) -> SeriesFragment:
        with self._lock:
            self.calls.append((str(symbol), period, start, end))
        if start in self.fail_at:
            raise UpstreamError(f"provider down for {format_timestamp(start)}", 503)
        return ({"symbol": str(symbol), "t": format_timestamp(start)},)

@pytest.fixture
def fetcher() -> StubFetcher:
    return StubFetcher()

@pytest.fixture
def make_fetcher() -> Callable[..., StubFetcher]:
    """Factory for stub fetchers that fail on selected span starts."""
    return StubFetcher

@pytest.fixture
def store() -> MemoryCacheStore:
    return MemoryCacheStore(default_ttl=600.0)
