"""Core type definitions for the time-series cache.

All data models use Pydantic BaseModel for automatic validation, JSON
serialization, and better error messages.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, NewType

from pydantic import BaseModel, ConfigDict

# Type aliases for domain-specific identifiers
Symbol = NewType("Symbol", str)

# A fragment is an ordered, immutable run of provider data points. Points are
# opaque to the cache: JSON objects from the HTTP provider, Bar models from
# Yahoo Finance.
SeriesFragment = tuple[Any, ...]


# ---------------------------------------------------------------------------
# Base Configuration
# ---------------------------------------------------------------------------


class FrozenModel(BaseModel):
    """Base model with frozen (immutable) configuration."""

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Range Types
# ---------------------------------------------------------------------------


class TimeUnit(FrozenModel):
    """One fixed-width, cache-addressable slice of a requested range.

    :param key: Cache key derived from symbol, period and ``start``.
    :param start: Start of the slice (inclusive).
    :param end: End of the slice (exclusive).
    """

    key: str
    start: datetime
    end: datetime


class TimeseriesQuery(FrozenModel):
    """A validated range query.

    :param symbol: Market symbol to query.
    :param period: Opaque sampling label passed through to the provider.
    :param start: Start of the requested range.
    :param end: End of the requested range.
    """

    symbol: Symbol
    period: str
    start: datetime
    end: datetime


# ---------------------------------------------------------------------------
# Market Data Types
# ---------------------------------------------------------------------------


class Bar(FrozenModel):
    """OHLCV bar of market data for a symbol.

    :param symbol: Market symbol for this bar.
    :param timestamp: Timestamp for this bar (timezone-aware).
    :param open: Opening price.
    :param high: Highest price during the bar period.
    :param low: Lowest price during the bar period.
    :param close: Closing price.
    :param volume: Trading volume during the bar period.
    """

    symbol: Symbol
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float


__all__ = [
    "Symbol",
    "SeriesFragment",
    "FrozenModel",
    "TimeUnit",
    "TimeseriesQuery",
    "Bar",
]
