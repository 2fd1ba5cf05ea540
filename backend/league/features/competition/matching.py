"""
Activity matching.

Decides which competition weeks a Strava activity qualifies for and the
qualifying time for each. Pure functions, no I/O.

An activity qualifies for a week when:
- week.start_at <= start_date (UTC) < week.end_at
- it holds at least week.required_laps efforts on week.segment_id

The qualifying time is the sum of the fastest required_laps efforts on
that segment, not the first ones ridden.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Protocol

from league.shared.timestamps import parse_strava_datetime

logger = logging.getLogger(__name__)


class WeekWindow(Protocol):
    """Anything shaped like a Week (ORM row or WeekSpec)."""

    id: int
    segment_id: int
    required_laps: int
    start_at: int
    end_at: int


@dataclass(frozen=True)
class WeekSpec:
    """Plain week description, for callers without ORM rows."""

    id: int
    segment_id: int
    required_laps: int
    start_at: int
    end_at: int


@dataclass(frozen=True)
class EffortRecord:
    """One segment effort, normalized from the Strava payload."""

    segment_id: int
    elapsed_seconds: int
    effort_index: int  # position in the activity's effort list (ride order)
    strava_effort_id: Optional[str] = None
    start_at: Optional[int] = None
    pr_rank: Optional[int] = None

    @property
    def pr_achieved(self) -> bool:
        # Strava marks the athlete's fastest-ever effort with pr_rank 1
        return self.pr_rank == 1


@dataclass(frozen=True)
class MatchResult:
    """A week the activity qualifies for."""

    week_id: int
    strava_activity_id: int
    start_at: int
    total_time_seconds: int
    efforts: tuple[EffortRecord, ...] = field(default_factory=tuple)

    @property
    def pr_achieved(self) -> bool:
        return any(effort.pr_achieved for effort in self.efforts)


# =============================================================================
# Payload normalization
# =============================================================================

def activity_start_time(activity: dict) -> Optional[int]:
    """
    Unix start time of a Strava activity.

    Only `start_date` (UTC) is read. `start_date_local` is the wall clock
    of the rider's timezone rendered with a 'Z' suffix; comparing it to
    UTC windows shifts the activity by the UTC offset.
    """
    return parse_strava_datetime(activity.get("start_date"))


def parse_efforts(raw_efforts: Iterable[dict]) -> list[EffortRecord]:
    """
    Normalize Strava segment_efforts.

    Efforts without a segment id or elapsed time are skipped.
    """
    efforts = []
    for index, raw in enumerate(raw_efforts or []):
        segment = raw.get("segment") or {}
        segment_id = segment.get("id")
        elapsed = raw.get("elapsed_time")
        if segment_id is None or elapsed is None:
            logger.debug(f"Skipping incomplete segment effort at index {index}")
            continue
        effort_id = raw.get("id")
        efforts.append(EffortRecord(
            segment_id=int(segment_id),
            elapsed_seconds=int(elapsed),
            effort_index=index,
            strava_effort_id=str(effort_id) if effort_id is not None else None,
            start_at=parse_strava_datetime(raw.get("start_date")),
            pr_rank=raw.get("pr_rank"),
        ))
    return efforts


def fastest_efforts(efforts: Iterable[EffortRecord], count: int) -> tuple[EffortRecord, ...]:
    """
    The `count` fastest efforts, returned in ride order.

    Equal times keep ride order, so the pick is deterministic.
    """
    ranked = sorted(efforts, key=lambda e: (e.elapsed_seconds, e.effort_index))
    return tuple(sorted(ranked[:count], key=lambda e: e.effort_index))


# =============================================================================
# Matching
# =============================================================================

def match_activity(
    activity: dict,
    weeks: Iterable[WeekWindow],
    efforts: Optional[list[EffortRecord]] = None,
) -> list[MatchResult]:
    """
    Every week the activity qualifies for.

    Args:
        activity: Strava detailed activity (include_all_efforts=true)
        weeks: Candidate weeks; all are evaluated, overlapping windows on
            different segments can each match
        efforts: Pre-parsed efforts; parsed from activity when omitted

    Returns:
        One MatchResult per qualifying week, in the order weeks were given
    """
    start_at = activity_start_time(activity)
    if start_at is None:
        logger.warning(f"Activity {activity.get('id')} has no usable start_date, cannot match")
        return []

    if efforts is None:
        efforts = parse_efforts(activity.get("segment_efforts") or [])

    by_segment: dict[int, list[EffortRecord]] = {}
    for effort in efforts:
        by_segment.setdefault(effort.segment_id, []).append(effort)

    matches = []
    for week in weeks:
        if not (week.start_at <= start_at < week.end_at):
            continue

        required = max(int(week.required_laps), 1)
        on_segment = by_segment.get(int(week.segment_id), [])
        if len(on_segment) < required:
            logger.debug(
                f"Activity {activity.get('id')} has {len(on_segment)}/{required} "
                f"efforts on segment {week.segment_id} for week {week.id}"
            )
            continue

        chosen = fastest_efforts(on_segment, required)
        matches.append(MatchResult(
            week_id=week.id,
            strava_activity_id=int(activity["id"]),
            start_at=start_at,
            total_time_seconds=sum(e.elapsed_seconds for e in chosen),
            efforts=chosen,
        ))

    return matches
