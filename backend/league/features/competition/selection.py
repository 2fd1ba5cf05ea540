"""
Best activity selection.

Given a freshly matched candidate and whatever is stored for the same
(participant, week), decide what the store should do. The decision is
pure; ResultStore applies it inside one transaction.
"""

from enum import Enum
from typing import Optional

from .matching import MatchResult
from .models import Activity


class StoreOutcome(str, Enum):
    """What storing a candidate did."""
    CREATED = "created"  # nothing was stored
    REPLACED = "replaced"  # candidate is strictly faster than a different stored activity
    REFRESHED = "refreshed"  # same Strava activity, its efforts changed upstream
    UNCHANGED = "unchanged"  # identical result already stored
    KEPT_EXISTING = "kept_existing"  # stored activity is at least as fast

    @property
    def changed(self) -> bool:
        return self in (StoreOutcome.CREATED, StoreOutcome.REPLACED, StoreOutcome.REFRESHED)


def _effort_signature(efforts) -> list[tuple]:
    return [(e.strava_effort_id, e.elapsed_seconds, bool(e.pr_achieved)) for e in efforts]


def select_best(candidate: MatchResult, stored: Optional[Activity]) -> StoreOutcome:
    """
    Decide between candidate and the stored activity.

    A different activity only wins with a strictly lower total time, so
    ties keep whatever was stored first. The same Strava activity seen
    again is either a no-op or, if Strava now reports different efforts
    (e.g. the ride was cropped), a refresh of the stored copy.
    """
    if stored is None:
        return StoreOutcome.CREATED

    if stored.strava_activity_id == candidate.strava_activity_id:
        same_time = stored.total_time_seconds == candidate.total_time_seconds
        same_efforts = _effort_signature(stored.efforts) == _effort_signature(candidate.efforts)
        if same_time and same_efforts:
            return StoreOutcome.UNCHANGED
        return StoreOutcome.REFRESHED

    if candidate.total_time_seconds < stored.total_time_seconds:
        return StoreOutcome.REPLACED
    return StoreOutcome.KEPT_EXISTING
