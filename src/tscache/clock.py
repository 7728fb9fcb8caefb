"""Range decomposition into fixed-width cache units.

Unit boundaries sit on a UTC epoch-aligned grid of ``granularity`` width, so
two overlapping requests address identical sub-ranges with identical keys.
Granularity is a caching resolution only; it is independent of the ``period``
label that describes the data's own sampling.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from urllib.parse import quote

from tscache.exceptions import ConfigError, QueryValidationError
from tscache.types import Symbol, TimeUnit

DEFAULT_GRANULARITY = timedelta(minutes=1)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# ISO-8601 reduced-precision dates that would otherwise parse as epoch seconds
_REDUCED_DATE_FORMATS = [
    (re.compile(r"\d{4}"), "%Y"),
    (re.compile(r"\d{4}-\d{2}"), "%Y-%m"),
    (re.compile(r"\d{8}"), "%Y%m%d"),
]
_EPOCH_SECONDS = re.compile(r"[-+]?(\d+\.?\d*|\.\d+)")


def _as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def format_timestamp(ts: datetime) -> str:
    """Render a timestamp as ISO-8601 UTC with a ``Z`` suffix."""
    return _as_utc(ts).isoformat().replace("+00:00", "Z")


def _parse_text(text: str) -> datetime:
    for pattern, fmt in _REDUCED_DATE_FORMATS:
        if pattern.fullmatch(text):
            return datetime.strptime(text, fmt)

    if _EPOCH_SECONDS.fullmatch(text):
        return datetime.fromtimestamp(float(text), tz=timezone.utc)

    return datetime.fromisoformat(text.replace("Z", "+00:00"))


def parse_timestamp(value: str | int | float | datetime) -> datetime:
    """Parse a query timestamp into a UTC datetime.

    Accepts ISO-8601 strings (``Z`` suffix allowed), reduced ISO dates
    (``YYYY``, ``YYYY-MM``, ``YYYYMMDD``), epoch seconds, or datetime
    objects. Naive values are taken as UTC. Digit strings that read as
    reduced ISO dates are dates, not epoch seconds.

    :param value: Raw timestamp value.
    :returns: Timezone-aware datetime in UTC.
    :raises QueryValidationError: If the value cannot be parsed or falls
        outside the representable range once converted to UTC.
    """
    try:
        if isinstance(value, datetime):
            return _as_utc(value)

        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return datetime.fromtimestamp(value, tz=timezone.utc)

        if not isinstance(value, str) or not value.strip():
            raise QueryValidationError(f"Invalid timestamp: {value!r}")

        return _as_utc(_parse_text(value.strip()))
    except (ValueError, OverflowError, OSError) as e:
        raise QueryValidationError(f"Invalid timestamp: {value!r}") from e


def _join_key(namespace: str, *parts: str) -> str:
    # Percent-encoding never emits ':', so the join is unambiguous.
    return ":".join([namespace, *(quote(part, safe="") for part in parts)])


def unit_key(symbol: Symbol | str, period: str, unit_start: datetime) -> str:
    """Cache key for the unit of ``symbol``/``period`` starting at ``unit_start``."""
    return _join_key("unit", str(symbol), period, format_timestamp(unit_start))


def aggregate_key(
    symbol: Symbol | str, period: str, start: datetime, end: datetime
) -> str:
    """Cache key for a whole ``(symbol, period, start, end)`` request."""
    return _join_key(
        "range", str(symbol), period, format_timestamp(start), format_timestamp(end)
    )


def floor_to_unit(ts: datetime, granularity: timedelta = DEFAULT_GRANULARITY) -> datetime:
    """Start of the grid unit containing ``ts``."""
    ts = _as_utc(ts)
    return ts - (ts - _EPOCH) % granularity


def decompose(
    symbol: Symbol | str,
    period: str,
    start: datetime,
    end: datetime,
    granularity: timedelta = DEFAULT_GRANULARITY,
) -> list[TimeUnit]:
    """Split ``[start, end]`` into contiguous fixed-width units.

    The first unit contains ``start``; further units follow while their start
    is before ``end``. A zero-width range yields exactly one unit.

    :param symbol: Market symbol.
    :param period: Opaque period label, part of every unit key.
    :param start: Range start; callers guarantee ``start <= end``.
    :param end: Range end.
    :param granularity: Width of each unit.
    :returns: Units in chronological order.
    :raises ConfigError: If ``granularity`` is not positive.
    :raises QueryValidationError: If a unit would end past the largest
        representable datetime.
    """
    if granularity <= timedelta(0):
        raise ConfigError(f"Unit granularity must be positive, got {granularity}")

    end = _as_utc(end)
    units = []
    try:
        cursor = floor_to_unit(start, granularity)
        while True:
            units.append(
                TimeUnit(
                    key=unit_key(symbol, period, cursor),
                    start=cursor,
                    end=cursor + granularity,
                )
            )
            cursor += granularity
            if cursor >= end:
                return units
    except OverflowError as e:
        raise QueryValidationError(
            f"Range {format_timestamp(start)} to {format_timestamp(end)} "
            "runs past the last representable unit"
        ) from e


__all__ = [
    "DEFAULT_GRANULARITY",
    "aggregate_key",
    "decompose",
    "floor_to_unit",
    "format_timestamp",
    "parse_timestamp",
    "unit_key",
]
