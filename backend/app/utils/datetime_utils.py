"""
Datetime helpers

Timestamps are stored as naive UTC so the same columns behave identically on
PostgreSQL and SQLite.
"""
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Current UTC time as a naive datetime

    Example:
        >>> from app.utils.datetime_utils import utc_now
        >>> utc_now().tzinfo is None
        True
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with a trailing Z"""
    return utc_now().isoformat() + "Z"


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Serialize a stored (naive UTC) datetime, passing None through"""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat() + "Z"


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp into a naive UTC datetime

    Accepts a trailing 'Z'. Returns None for empty input and raises ValueError
    for malformed input.
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
