"""Time-series cache exception hierarchy.

All service-specific exceptions derive from :class:`TimeseriesCacheError` so
callers can catch every cache-related error uniformly.
"""

from __future__ import annotations


class TimeseriesCacheError(Exception):
    """Base class for time-series cache exceptions.

    Derived exceptions should extend this class so that callers can catch all
    service-specific errors uniformly.
    """


class ConfigError(TimeseriesCacheError):
    """Raised when configuration files or parameters are invalid."""


class QueryValidationError(TimeseriesCacheError):
    """Raised when query parameters are missing or malformed.

    Named QueryValidationError to avoid conflict with pydantic's ValidationError.
    """


class UpstreamError(TimeseriesCacheError):
    """Raised when the upstream provider cannot produce a series fragment.

    :param detail: Failure detail reported by (or about) the provider.
    :param status_code: HTTP status returned by the provider, if any.
    """

    def __init__(self, detail: str, status_code: int | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


__all__ = [
    "TimeseriesCacheError",
    "ConfigError",
    "QueryValidationError",
    "UpstreamError",
]
