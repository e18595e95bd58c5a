"""Shared utility functions used across components."""

import time
from datetime import datetime, timezone
from typing import Any


def utcnow() -> datetime:
    """Return the current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Return datetime as timezone-aware UTC. Returns None if input is None."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def from_unix_timestamp(value: Any) -> datetime | None:
    """Convert provider epoch seconds (Stripe, Twilio) to an aware datetime."""
    if value in (None, ""):
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def epoch_millis() -> int:
    return int(time.time() * 1000)


def parse_optional_int(value: Any) -> int | None:
    """Parse form/JSON numeric strings such as Twilio's CallDuration."""
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None
