"""Shared utility functions used across DealScout modules."""
from __future__ import annotations

import json
import math
from datetime import UTC, datetime, timedelta
from typing import Any

_MISSING = object()

SECONDS_PER_DAY = 86_400


def json_parse(value: str | None, default: Any = _MISSING) -> Any:
    """Safely parse a JSON string, returning *default* on failure.

    If no default is given, returns ``{}`` on parse error.
    """
    try:
        return json.loads(value or "")
    except (json.JSONDecodeError, TypeError):
        return {} if default is _MISSING else default


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 string (or pass through a datetime) as an aware UTC datetime.

    Raises ValueError if the value cannot be interpreted as a timestamp.
    """
    if isinstance(value, datetime):
        return as_utc(value)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid timestamp: {value!r}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError as exc:
        raise ValueError(f"Invalid timestamp: {value!r}") from exc


def days_since(timestamp: datetime, now: datetime | None = None) -> int:
    """Whole days elapsed since *timestamp*; future timestamps count as 0."""
    now = as_utc(now) if now is not None else utcnow()
    elapsed = (now - as_utc(timestamp)).total_seconds()
    return max(0, math.floor(elapsed / SECONDS_PER_DAY))


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up, not to the even neighbour."""
    return math.floor(value + 0.5)


def is_future(timestamp: datetime, tolerance: timedelta, now: datetime | None = None) -> bool:
    now = as_utc(now) if now is not None else utcnow()
    return as_utc(timestamp) > now + tolerance


def title_case_key(key: str) -> str:
    """``traction_signals`` -> ``Traction Signals``."""
    return " ".join(part.capitalize() for part in key.split("_") if part)
