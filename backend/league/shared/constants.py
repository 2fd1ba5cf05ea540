"""
Strava webhook vocabulary.

These are Strava's wire values, used when parsing push events.
"""

from enum import Enum


class ObjectType(str, Enum):
    """`object_type` of a webhook event."""
    ACTIVITY = "activity"
    ATHLETE = "athlete"


class AspectType(str, Enum):
    """`aspect_type` of a webhook event."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


# Base URL for linking stored activities in leaderboards
STRAVA_ACTIVITY_URL = "https://www.strava.com/activities/{activity_id}"
