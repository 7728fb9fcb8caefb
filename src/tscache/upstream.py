"""Upstream providers that fetch a single series fragment.

Fetchers are one-shot I/O boundaries: no retries and no caching. The
materializer decides whether and how often to call them.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import requests

from tscache.clock import format_timestamp
from tscache.exceptions import ConfigError, UpstreamError
from tscache.types import Bar, SeriesFragment, Symbol

if TYPE_CHECKING:
    from tscache.config import ServiceConfig

logger = logging.getLogger(__name__)


class UpstreamFetcher(ABC):
    """Abstract base class for upstream data providers.

    All provider implementations must inherit from this class and implement
    the `fetch` method.
    """

    @abstractmethod
    def fetch(
        self,
        symbol: Symbol | str,
        period: str,
        start: datetime,
        end: datetime,
    ) -> SeriesFragment:
        """Fetch the series for one contiguous span.

        :param symbol: Symbol to fetch.
        :param period: Sampling period label, passed through to the provider.
        :param start: Span start (inclusive).
        :param end: Span end (exclusive).
        :returns: Data points in chronological order.
        :raises UpstreamError: If the provider cannot produce the fragment.
        """
        ...


class HttpUpstreamFetcher(UpstreamFetcher):
    """Provider that serves JSON arrays over HTTP.

    Issues ``GET base_url?symbol=&period=&start=&end=`` and expects a JSON
    array of data points in response.

    Each calling thread gets its own ``requests.Session``. An injected
    session is instead shared by every thread, so inject one only when
    fetches are sequential.

    :param base_url: Endpoint URL of the provider.
    :param timeout: Request timeout in seconds.
    :param session: Optional ``requests.Session`` to reuse connections.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self._shared_session = session
        self._local = threading.local()
        self._owned_sessions: list[requests.Session] = []
        self._sessions_lock = threading.Lock()

    @property
    def session(self) -> requests.Session:
        """Session for the calling thread."""
        if self._shared_session is not None:
            return self._shared_session
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
            with self._sessions_lock:
                self._owned_sessions.append(session)
        return session

    def fetch(
        self,
        symbol: Symbol | str,
        period: str,
        start: datetime,
        end: datetime,
    ) -> SeriesFragment:
        params = {
            "symbol": str(symbol),
            "period": period,
            "start": format_timestamp(start),
            "end": format_timestamp(end),
        }
        try:
            response = self.session.get(self.base_url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("Error fetching data from API: %s", e)
            raise UpstreamError(f"Request to {self.base_url} failed: {e}") from e

        if not response.ok:
            logger.error(
                "Error fetching data from API: HTTP %s for %s", response.status_code, params
            )
            raise UpstreamError(
                f"Upstream returned HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamError(f"Upstream returned invalid JSON: {e}") from e

        if not isinstance(payload, list):
            raise UpstreamError(
                f"Upstream returned {type(payload).__name__}, expected a JSON array"
            )
        return tuple(payload)

    def close(self) -> None:
        """Close the injected session, or every per-thread session opened so far."""
        if self._shared_session is not None:
            self._shared_session.close()
            return
        with self._sessions_lock:
            sessions, self._owned_sessions = self._owned_sessions, []
        for session in sessions:
            session.close()
        self._local = threading.local()


class YahooUpstreamFetcher(UpstreamFetcher):
    """Provider that fetches OHLCV bars from Yahoo Finance via yfinance.

    :param source_params: Optional parameters for configuring the provider.
        - timeout: Request timeout in seconds (default: 30)
        - allow_empty: Accept an empty frame as a span without data
          (default: False)

    An empty frame raises ``UpstreamError`` unless ``allow_empty`` is set.
    """

    # Map period labels to yfinance interval format
    PERIOD_MAP = {
        "1m": "1m",
        "2m": "2m",
        "5m": "5m",
        "15m": "15m",
        "30m": "30m",
        "60m": "60m",
        "1h": "60m",
        "90m": "90m",
        "1d": "1d",
        "5d": "5d",
        "1wk": "1wk",
        "1mo": "1mo",
        "3mo": "3mo",
    }

    def __init__(self, source_params: dict[str, Any] | None = None) -> None:
        self.params = source_params or {}
        self.timeout = self.params.get("timeout", 30)
        self.allow_empty = bool(self.params.get("allow_empty", False))

    def fetch(
        self,
        symbol: Symbol | str,
        period: str,
        start: datetime,
        end: datetime,
    ) -> SeriesFragment:
        """Fetch bars from Yahoo Finance.

        :param symbol: Symbol to fetch.
        :param period: Bar period, one of ``PERIOD_MAP``.
        :param start: Span start (inclusive).
        :param end: Span end (exclusive).
        :returns: Tuple of Bar objects.
        :raises UpstreamError: If the period is unsupported, fetching fails,
            or the provider returns an empty frame.
        """
        interval = self.PERIOD_MAP.get(period)
        if interval is None:
            raise UpstreamError(
                f"Unsupported period '{period}'. "
                f"Supported: {list(self.PERIOD_MAP.keys())}"
            )

        try:
            import yfinance as yf
        except ImportError as e:
            raise UpstreamError(
                "yfinance is not installed. Install it with: pip install yfinance"
            ) from e

        try:
            df = yf.Ticker(str(symbol)).history(
                start=start,
                end=end,
                interval=interval,
                timeout=self.timeout,
            )
        except Exception as e:
            logger.error("Error fetching %s from Yahoo Finance: %s", symbol, e)
            raise UpstreamError(f"Failed to fetch data for symbol '{symbol}': {e}") from e

        if df.empty and not self.allow_empty:
            logger.error(
                "Yahoo Finance returned no data for %s between %s and %s",
                symbol,
                format_timestamp(start),
                format_timestamp(end),
            )
            raise UpstreamError(
                f"No data returned for symbol '{symbol}' between "
                f"{format_timestamp(start)} and {format_timestamp(end)}"
            )

        bars = []
        for timestamp, row in df.iterrows():
            # yfinance returns timezone-aware timestamps
            ts = timestamp.to_pydatetime()
            if ts.tzinfo is None:
                ts = ts.replace(tzinfo=timezone.utc)
            if ts < start or ts >= end:
                continue

            bars.append(
                Bar(
                    symbol=Symbol(str(symbol)),
                    timestamp=ts,
                    open=float(row["Open"]),
                    high=float(row["High"]),
                    low=float(row["Low"]),
                    close=float(row["Close"]),
                    volume=float(row["Volume"]),
                )
            )
        return tuple(bars)


def resolve_upstream_fetcher(config: ServiceConfig) -> UpstreamFetcher:
    """Construct an upstream fetcher from configuration.

    :param config: ServiceConfig with an ``upstream`` section.
    :returns: UpstreamFetcher for the configured provider kind.
    :raises ConfigError: If the provider kind is unrecognized or incomplete.
    """
    upstream = config.upstream
    kind = upstream.kind.lower()

    if kind == "http":
        if not upstream.base_url:
            raise ConfigError("HTTP upstream requires 'upstream.base_url'")
        return HttpUpstreamFetcher(upstream.base_url, timeout=upstream.timeout)
    elif kind == "yahoo":
        return YahooUpstreamFetcher({"timeout": upstream.timeout, **upstream.params})
    else:
        raise ConfigError(
            f"Unrecognized upstream kind: '{upstream.kind}'. "
            f"Supported kinds: http, yahoo"
        )


__all__ = [
    "UpstreamFetcher",
    "HttpUpstreamFetcher",
    "YahooUpstreamFetcher",
    "resolve_upstream_fetcher",
]
