from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlparse

UNKNOWN_AGE_HOURS = 999.0


def clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(ts: datetime | None) -> datetime | None:
    if ts is None:
        return None
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """Best-effort parse of ISO strings, epoch numbers and datetimes."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, (int, float)):
        # Heuristic: milliseconds if very large.
        if value > 10_000_000_000:
            value = value / 1000.0
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        cleaned = value.strip().replace("Z", "+00:00")
        if not cleaned:
            return None
        try:
            return as_utc(datetime.fromisoformat(cleaned))
        except ValueError:
            return None
    return None


def hours_between(start: datetime | None, end: datetime) -> float:
    """Non-negative hours from start to end; unknown start counts as stale."""
    start = as_utc(start)
    if start is None:
        return UNKNOWN_AGE_HOURS
    return max(0.0, (as_utc(end) - start).total_seconds() / 3600.0)


def host_from_url(url: str | None) -> str:
    if not url:
        return ""
    try:
        host = urlparse(url.strip()).hostname or ""
    except ValueError:
        return ""
    host = host.lower()
    if host.startswith("www."):
        host = host[4:]
    return host


def to_float(value: Any, default: float) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(result):
        return default
    return result
