"""
Database Models

Import all models here to ensure they are registered with SQLAlchemy.
Use direct imports from features/ modules in application code.
"""

from league.models.base import Base
from league.features.participants.models import Participant
from league.features.strava.models import StravaToken
from league.features.competition.models import (
    Season,
    Segment,
    Week,
    Activity,
    SegmentEffort,
    Result,
)
from league.features.webhooks.models import WebhookEvent, WebhookSubscription


__all__ = [
    "Base",
    "Participant",
    "StravaToken",
    "Season",
    "Segment",
    "Week",
    "Activity",
    "SegmentEffort",
    "Result",
    "WebhookEvent",
    "WebhookSubscription",
]
