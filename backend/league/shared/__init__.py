"""
Shared utilities (NOT business logic).

Usage:
    from league.shared import BaseRepository, KeyedLock
    from league.shared.formatters import format_duration
"""
from .repository import BaseRepository, PersistenceError
from .locks import KeyedLock
from .formatters import (
    format_duration,
    format_distance_km,
)
from .timestamps import (
    parse_strava_datetime,
    to_iso,
    utc_now,
)
from .constants import (
    ObjectType,
    AspectType,
    STRAVA_ACTIVITY_URL,
)

__all__ = [
    # Data access
    "BaseRepository",
    "PersistenceError",
    "KeyedLock",
    # Formatters
    "format_duration",
    "format_distance_km",
    # Timestamps
    "parse_strava_datetime",
    "to_iso",
    "utc_now",
    # Constants
    "ObjectType",
    "AspectType",
    "STRAVA_ACTIVITY_URL",
]
