"""
Timestamp helpers.

All competition windows and activity start times are stored as Unix
seconds (UTC). Strava's `start_date` is ISO-8601 with a trailing 'Z'.
"""

from datetime import datetime, timezone


def parse_strava_datetime(value: str | None) -> int | None:
    """
    Convert a Strava UTC timestamp to Unix seconds.

    Args:
        value: e.g. '2025-11-15T10:30:45Z'

    Returns:
        Unix seconds, or None if value is empty or unparseable
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        # Strava UTC fields always carry 'Z'; treat naive as UTC
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


def to_iso(unix_seconds: int | None) -> str | None:
    """Unix seconds -> ISO-8601 UTC string."""
    if unix_seconds is None:
        return None
    return datetime.fromtimestamp(unix_seconds, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def utc_now() -> datetime:
    """Naive UTC now, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
