"""
Scoring engine.

Ranks and points are always derived from the stored activities; nothing
is accumulated incrementally, so a deletion or replacement is reflected
by simply computing again.

Week scoring:
    entries sorted by total time ascending, rank 1..N
    points = ((N - rank) + 1 + pr_bonus) * week.multiplier
    pr_bonus = 1 if any counted effort was a personal record

Ties: participants with identical total time share the better rank
(1, 2, 2, 4). Neither gets an arbitrary advantage and both earn the
same points.

Season scoring:
    total points = sum of weekly points, weeks_completed = weeks with a
    stored activity; ordered by points desc, then weeks_completed desc.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from league.shared.constants import STRAVA_ACTIVITY_URL
from .models import Activity, Week
from .repository import (
    ActivityRepository,
    ResultRepository,
    SeasonRepository,
    WeekRepository,
)
from .store import PersistenceError

logger = logging.getLogger(__name__)


class CompetitionNotFoundError(LookupError):
    """Week or season does not exist."""
    pass


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class ScoreEntry:
    """Input to week ranking: one participant's stored result."""

    participant_id: int
    total_time_seconds: int
    pr_achieved: bool = False
    name: str = ""


@dataclass(frozen=True)
class EffortSummary:
    effort_index: int
    elapsed_seconds: int
    pr_achieved: bool


@dataclass
class WeekStanding:
    """One row of a week leaderboard."""

    participant_id: int
    name: str
    rank: int
    total_time_seconds: int
    points: int
    pr_achieved: bool
    strava_activity_id: Optional[int] = None
    activity_url: Optional[str] = None
    device_name: Optional[str] = None
    efforts: list[EffortSummary] = field(default_factory=list)


@dataclass
class WeekLeaderboard:
    week_id: int
    week_name: str
    season_id: int
    segment_id: int
    required_laps: int
    multiplier: int
    start_at: Optional[int] = None
    end_at: Optional[int] = None
    standings: list[WeekStanding] = field(default_factory=list)


@dataclass
class SeasonStanding:
    """One row of a season leaderboard."""

    participant_id: int
    name: str
    rank: int
    total_points: int
    weeks_completed: int


# =============================================================================
# Pure scoring
# =============================================================================

def week_points(participants: int, rank: int, pr_achieved: bool, multiplier: int = 1) -> int:
    """Points for one participant in one week."""
    return ((participants - rank) + 1 + (1 if pr_achieved else 0)) * multiplier


def rank_week(entries: Iterable[ScoreEntry], multiplier: int = 1) -> list[tuple[ScoreEntry, int, int]]:
    """
    Rank one week's entries.

    Returns:
        (entry, rank, points) sorted by rank, ties by participant id
    """
    ordered = sorted(entries, key=lambda e: (e.total_time_seconds, e.participant_id))
    total = len(ordered)

    ranked = []
    rank = 0
    previous_time = None
    for position, entry in enumerate(ordered, start=1):
        if entry.total_time_seconds != previous_time:
            rank = position
            previous_time = entry.total_time_seconds
        ranked.append((entry, rank, week_points(total, rank, entry.pr_achieved, multiplier)))
    return ranked


def aggregate_season(
    weekly: Iterable[Iterable[WeekStanding]],
) -> list[SeasonStanding]:
    """
    Sum weekly standings into season standings.

    Participants equal on both points and weeks completed share a rank.
    """
    totals: dict[int, list[int]] = {}
    known_names: dict[int, str] = {}
    for standings in weekly:
        for standing in standings:
            points_weeks = totals.setdefault(standing.participant_id, [0, 0])
            points_weeks[0] += standing.points
            points_weeks[1] += 1
            known_names.setdefault(standing.participant_id, standing.name)

    ordered = sorted(
        totals.items(),
        key=lambda item: (-item[1][0], -item[1][1], known_names.get(item[0], ""), item[0]),
    )

    season = []
    rank = 0
    previous = None
    for position, (participant_id, (points, weeks)) in enumerate(ordered, start=1):
        if (points, weeks) != previous:
            rank = position
            previous = (points, weeks)
        season.append(SeasonStanding(
            participant_id=participant_id,
            name=known_names.get(participant_id, ""),
            rank=rank,
            total_points=points,
            weeks_completed=weeks,
        ))
    return season


# =============================================================================
# Scoring Engine
# =============================================================================

class ScoringEngine:
    """
    Leaderboards computed from stored activities.

    Usage:
        scoring = ScoringEngine(session_factory)
        await scoring.refresh_week(week_id)  # after any store/delete
        board = await scoring.get_week_leaderboard(week_id)
        season = await scoring.get_season_leaderboard(season_id)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def _week_standings(self, db: AsyncSession, week: Week) -> list[WeekStanding]:
        rows = await ActivityRepository(db).list_for_week_with_names(week.id)
        activities: dict[int, Activity] = {activity.participant_id: activity for activity, _ in rows}
        entries = [
            ScoreEntry(
                participant_id=activity.participant_id,
                total_time_seconds=activity.total_time_seconds,
                pr_achieved=activity.pr_achieved,
                name=name,
            )
            for activity, name in rows
        ]

        standings = []
        for entry, rank, points in rank_week(entries, week.multiplier or 1):
            activity = activities[entry.participant_id]
            standings.append(WeekStanding(
                participant_id=entry.participant_id,
                name=entry.name,
                rank=rank,
                total_time_seconds=entry.total_time_seconds,
                points=points,
                pr_achieved=entry.pr_achieved,
                strava_activity_id=activity.strava_activity_id,
                activity_url=STRAVA_ACTIVITY_URL.format(activity_id=activity.strava_activity_id),
                device_name=activity.device_name,
                efforts=[
                    EffortSummary(e.effort_index, e.elapsed_seconds, e.pr_achieved)
                    for e in activity.efforts
                ],
            ))
        return standings

    @staticmethod
    def _leaderboard(week: Week, standings: list[WeekStanding]) -> WeekLeaderboard:
        return WeekLeaderboard(
            week_id=week.id,
            week_name=week.name,
            season_id=week.season_id,
            segment_id=week.segment_id,
            required_laps=week.required_laps,
            multiplier=week.multiplier or 1,
            start_at=week.start_at,
            end_at=week.end_at,
            standings=standings,
        )

    async def get_week_leaderboard(self, week_id: int) -> WeekLeaderboard:
        """
        Week leaderboard computed from stored activities.

        Raises:
            CompetitionNotFoundError: Unknown week
        """
        async with self._session_factory() as db:
            week = await WeekRepository(db).get_by_id(week_id)
            if week is None:
                raise CompetitionNotFoundError(f"Week {week_id} not found")
            return self._leaderboard(week, await self._week_standings(db, week))

    async def get_season_leaderboard(self, season_id: int) -> list[SeasonStanding]:
        """
        Season standings over all weeks of the season.

        Raises:
            CompetitionNotFoundError: Unknown season
        """
        async with self._session_factory() as db:
            if await SeasonRepository(db).get_by_id(season_id) is None:
                raise CompetitionNotFoundError(f"Season {season_id} not found")
            weekly = [
                await self._week_standings(db, week)
                for week in await WeekRepository(db).list_for_season(season_id)
            ]
        return aggregate_season(weekly)

    async def refresh_week(self, week_id: int) -> WeekLeaderboard:
        """
        Recompute the week and rewrite every Result row's rank and points.

        Raises:
            CompetitionNotFoundError: Unknown week
            PersistenceError: Writing results failed
        """
        try:
            async with self._session_factory() as db:
                async with db.begin():
                    week = await WeekRepository(db).get_by_id(week_id)
                    if week is None:
                        raise CompetitionNotFoundError(f"Week {week_id} not found")

                    standings = await self._week_standings(db, week)
                    by_participant = {s.participant_id: s for s in standings}

                    for result in await ResultRepository(db).list_for_week(week_id):
                        standing = by_participant.get(result.participant_id)
                        if standing is None:
                            # Orphaned by a concurrent delete; activity cascade removes it
                            continue
                        result.rank = standing.rank
                        result.points = standing.points
                        result.total_time_seconds = standing.total_time_seconds
                        result.pr_bonus = standing.pr_achieved
        except SQLAlchemyError as e:
            logger.error(f"Failed to refresh results for week {week_id}: {e}")
            raise PersistenceError(str(e)) from e

        logger.info(f"Week {week_id} rescored: {len(standings)} participant(s)")
        return self._leaderboard(week, standings)
