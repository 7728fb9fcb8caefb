"""Range materialization over a unit cache and an upstream provider.

A request is served from its whole-range cache entry when present. Otherwise
the range is decomposed into units, cached units are reused, only the gaps are
fetched, and the fragments are stitched back together in chronological order.
The stitched series is then cached under the whole-range key as well.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from datetime import datetime, timedelta
from itertools import chain
from typing import Any

from tscache.clock import DEFAULT_GRANULARITY, aggregate_key, decompose
from tscache.exceptions import ConfigError
from tscache.store import CacheStore
from tscache.types import SeriesFragment, Symbol, TimeUnit
from tscache.upstream import UpstreamFetcher

logger = logging.getLogger(__name__)


class RangeMaterializer:
    """Resolves range queries against a cache, fetching only missing units.

    Unit entries and the whole-range entry are written with the same TTL, and
    the whole-range entry is always the concatenation of the unit fragments it
    was assembled from.

    :param store: Cache holding unit and whole-range fragments.
    :param fetcher: Upstream provider for missing units.
    :param ttl: Lifetime in seconds for every entry written.
    :param granularity: Unit width used to decompose ranges.
    :param max_workers: Number of units fetched concurrently; 1 fetches
        sequentially in chronological order.
    """

    def __init__(
        self,
        store: CacheStore,
        fetcher: UpstreamFetcher,
        ttl: float = 600.0,
        granularity: timedelta = DEFAULT_GRANULARITY,
        max_workers: int = 1,
    ) -> None:
        if max_workers < 1:
            raise ConfigError(f"max_workers must be at least 1, got {max_workers}")
        self.store = store
        self.fetcher = fetcher
        self.ttl = ttl
        self.granularity = granularity
        self.max_workers = max_workers
        self._stats_lock = threading.Lock()
        self._stats = {
            "requests": 0,
            "aggregate_hits": 0,
            "unit_hits": 0,
            "unit_fetches": 0,
            "failures": 0,
        }

    def resolve(
        self,
        symbol: Symbol | str,
        period: str,
        start: datetime,
        end: datetime,
    ) -> SeriesFragment:
        """Return the ordered series for ``[start, end]``.

        :param symbol: Market symbol.
        :param period: Sampling period label, passed through to the provider.
        :param start: Range start; callers guarantee ``start <= end``.
        :param end: Range end.
        :returns: Concatenated fragments of every unit covering the range.
        :raises UpstreamError: If any missing unit cannot be fetched. Nothing
            is cached for the whole range in that case.
        :raises QueryValidationError: If the range reaches past the last
            representable unit.
        """
        self._count("requests")
        range_key = aggregate_key(symbol, period, start, end)

        cached = self.store.get(range_key)
        if cached is not None:
            self._count("aggregate_hits")
            logger.debug("Range cache hit for %s", range_key)
            return cached

        units = decompose(symbol, period, start, end, self.granularity)
        slots: list[SeriesFragment | None] = []
        pending: list[tuple[int, TimeUnit]] = []
        for index, unit in enumerate(units):
            fragment = self.store.get(unit.key)
            slots.append(fragment)
            if fragment is None:
                pending.append((index, unit))

        self._count("unit_hits", len(units) - len(pending))
        logger.debug(
            "Resolving %s: %d units, %d cached, %d to fetch",
            range_key,
            len(units),
            len(units) - len(pending),
            len(pending),
        )

        try:
            if self.max_workers > 1 and len(pending) > 1:
                self._fetch_concurrently(symbol, period, pending, slots)
            else:
                for index, unit in pending:
                    slots[index] = self._fetch_unit(symbol, period, unit)
        except Exception:
            self._count("failures")
            logger.warning("Resolution of %s aborted, range left uncached", range_key)
            raise

        series = tuple(chain.from_iterable(slots))  # type: ignore[arg-type]
        self.store.set(range_key, series, self.ttl)
        return series

    def _fetch_unit(
        self, symbol: Symbol | str, period: str, unit: TimeUnit
    ) -> SeriesFragment:
        fragment = tuple(self.fetcher.fetch(symbol, period, unit.start, unit.end))
        self.store.set(unit.key, fragment, self.ttl)
        self._count("unit_fetches")
        return fragment

    def _fetch_concurrently(
        self,
        symbol: Symbol | str,
        period: str,
        pending: list[tuple[int, TimeUnit]],
        slots: list[SeriesFragment | None],
    ) -> None:
        workers = min(self.max_workers, len(pending))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {
                pool.submit(self._fetch_unit, symbol, period, unit): index
                for index, unit in pending
            }
            done, not_done = wait(futures, return_when=FIRST_EXCEPTION)
            for future in not_done:
                future.cancel()
            # Surface the earliest failing unit, matching sequential behaviour.
            for future in sorted(done, key=futures.__getitem__):
                if future.exception() is not None:
                    raise future.exception()  # type: ignore[misc]
            for future, index in futures.items():
                slots[index] = future.result()

    def _count(self, name: str, amount: int = 1) -> None:
        with self._stats_lock:
            self._stats[name] += amount

    def stats(self) -> dict[str, Any]:
        """Counters describing how requests were served."""
        with self._stats_lock:
            return dict(self._stats)


__all__ = ["RangeMaterializer"]
