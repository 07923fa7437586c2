"""Provider timestamp coercion. Every result is timezone-aware UTC."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

# Epoch values above this are milliseconds (year 2286 in seconds)
MILLISECONDS_THRESHOLD = 10_000_000_000


def from_epoch(raw: Any) -> Optional[datetime]:
    try:
        value = float(raw)
    except (OverflowError, ValueError):
        # JSON integers can be arbitrarily large
        return None
    if value != value or value in (float("inf"), float("-inf")):
        return None
    seconds = value / 1000 if value > MILLISECONDS_THRESHOLD else value
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def from_iso(value: str) -> Optional[datetime]:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def coerce_timestamp(raw: Any, now: datetime) -> datetime:
    """
    Numbers and digit strings are epoch seconds (or milliseconds),
    other strings are ISO-8601. Anything unusable falls back to `now`.
    """
    if isinstance(raw, bool) or raw is None:
        return now

    if isinstance(raw, (int, float)):
        return from_epoch(raw) or now

    if isinstance(raw, str):
        stripped = raw.strip()
        if not stripped:
            return now
        if stripped.isdigit():
            return from_epoch(stripped) or now
        return from_iso(stripped) or now

    return now
