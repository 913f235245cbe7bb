from __future__ import annotations

import hashlib
import re
from datetime import datetime, timezone


def to_iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def stable_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def normalize_tag(tag: str) -> str:
    lowered = tag.lower()
    cleaned = re.sub(r"[^a-z0-9\s_-]", " ", lowered)
    cleaned = re.sub(r"\s+", "-", cleaned.strip())
    return cleaned
