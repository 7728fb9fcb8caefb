"""Cached time-series range queries."""

from tscache.exceptions import (ConfigError, QueryValidationError,
                                TimeseriesCacheError, UpstreamError)
from tscache.materializer import RangeMaterializer
from tscache.store import CacheStore, MemoryCacheStore
from tscache.upstream import UpstreamFetcher

__all__ = [
    "CacheStore",
    "ConfigError",
    "MemoryCacheStore",
    "QueryValidationError",
    "RangeMaterializer",
    "TimeseriesCacheError",
    "UpstreamError",
    "UpstreamFetcher",
]
