"""HTTP surface for range queries.

Validates the ``symbol``, ``period``, ``start`` and ``end`` query parameters
and hands them to a :class:`~tscache.materializer.RangeMaterializer`.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from tscache.clock import parse_timestamp
from tscache.exceptions import QueryValidationError, UpstreamError
from tscache.materializer import RangeMaterializer
from tscache.types import Symbol, TimeseriesQuery

logger = logging.getLogger(__name__)

MISSING_PARAMS_MESSAGE = "Symbol, period, start time, and end time are required"
UPSTREAM_FAILURE_MESSAGE = "Failed to fetch data from external API"


def parse_query(
    symbol: str | None,
    period: str | None,
    start: str | None,
    end: str | None,
) -> TimeseriesQuery:
    """Validate raw query parameters.

    :raises QueryValidationError: If a parameter is missing or malformed, or
        if ``start`` is after ``end``.
    """
    if not symbol or not period or not start or not end:
        raise QueryValidationError(MISSING_PARAMS_MESSAGE)

    start_dt = parse_timestamp(start)
    end_dt = parse_timestamp(end)
    if start_dt > end_dt:
        raise QueryValidationError("'start' must not be after 'end'")

    return TimeseriesQuery(symbol=Symbol(symbol), period=period, start=start_dt, end=end_dt)


def create_app(materializer: RangeMaterializer) -> FastAPI:
    """Build the FastAPI application serving ``GET /timeseries``.

    :param materializer: Materializer shared by every request; its cache
        lives as long as the application.
    """
    app = FastAPI(title="tscache", description="Cached time-series range queries")
    app.state.materializer = materializer

    # Plain ``def`` so each request resolves on its own worker thread.
    @app.get("/timeseries")
    def get_timeseries(
        symbol: str | None = Query(default=None),
        period: str | None = Query(default=None),
        start: str | None = Query(default=None),
        end: str | None = Query(default=None),
    ) -> Any:
        try:
            query = parse_query(symbol, period, start, end)
        except QueryValidationError as e:
            return JSONResponse(status_code=400, content={"error": str(e)})

        try:
            series = materializer.resolve(query.symbol, query.period, query.start, query.end)
        except QueryValidationError as e:
            return JSONResponse(status_code=400, content={"error": str(e)})
        except UpstreamError as e:
            logger.warning("Upstream failure for %s %s: %s", query.symbol, query.period, e)
            return JSONResponse(status_code=500, content={"error": UPSTREAM_FAILURE_MESSAGE})

        return JSONResponse(content=jsonable_encoder(list(series)))

    @app.get("/stats")
    def get_stats() -> dict[str, Any]:
        stats: dict[str, Any] = {"materializer": materializer.stats()}
        store_stats = getattr(materializer.store, "stats", None)
        if callable(store_stats):
            stats["cache"] = store_stats()
        return stats

    return app


__all__ = ["create_app", "parse_query"]
