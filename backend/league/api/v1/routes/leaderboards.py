"""
Leaderboard Endpoints

Read-only views computed from stored activities on every request.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from league.api.deps import get_services
from league.features.competition import CompetitionNotFoundError
from league.services import Services
from league.shared.formatters import format_duration
from league.shared.timestamps import to_iso

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Schemas
# =============================================================================

class EffortOut(BaseModel):
    effort_index: int
    elapsed_seconds: int
    elapsed: str
    pr_achieved: bool


class WeekStandingOut(BaseModel):
    rank: int
    participant_id: int
    name: str
    total_time_seconds: int
    total_time: str
    points: int
    pr_achieved: bool
    strava_activity_id: Optional[int] = None
    activity_url: Optional[str] = None
    device_name: Optional[str] = None
    efforts: list[EffortOut] = []


class WeekLeaderboardOut(BaseModel):
    week_id: int
    week_name: str
    season_id: int
    segment_id: int
    required_laps: int
    multiplier: int
    starts_at: Optional[str] = None
    ends_at: Optional[str] = None
    standings: list[WeekStandingOut]


class SeasonStandingOut(BaseModel):
    rank: int
    participant_id: int
    name: str
    total_points: int
    weeks_completed: int


class SeasonLeaderboardOut(BaseModel):
    season_id: int
    standings: list[SeasonStandingOut]


# =============================================================================
# Endpoints
# =============================================================================

@router.get("/weeks/{week_id}/leaderboard", response_model=WeekLeaderboardOut)
async def week_leaderboard(week_id: int, services: Services = Depends(get_services)):
    """Ranks, times and points for one week."""
    try:
        board = await services.scoring.get_week_leaderboard(week_id)
    except CompetitionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return WeekLeaderboardOut(
        week_id=board.week_id,
        week_name=board.week_name,
        season_id=board.season_id,
        segment_id=board.segment_id,
        required_laps=board.required_laps,
        multiplier=board.multiplier,
        starts_at=to_iso(board.start_at),
        ends_at=to_iso(board.end_at),
        standings=[
            WeekStandingOut(
                rank=s.rank,
                participant_id=s.participant_id,
                name=s.name,
                total_time_seconds=s.total_time_seconds,
                total_time=format_duration(s.total_time_seconds),
                points=s.points,
                pr_achieved=s.pr_achieved,
                strava_activity_id=s.strava_activity_id,
                activity_url=s.activity_url,
                device_name=s.device_name,
                efforts=[
                    EffortOut(
                        effort_index=e.effort_index,
                        elapsed_seconds=e.elapsed_seconds,
                        elapsed=format_duration(e.elapsed_seconds),
                        pr_achieved=e.pr_achieved,
                    )
                    for e in s.efforts
                ],
            )
            for s in board.standings
        ],
    )


@router.get("/seasons/{season_id}/leaderboard", response_model=SeasonLeaderboardOut)
async def season_leaderboard(season_id: int, services: Services = Depends(get_services)):
    """Season standings: total points, then weeks completed."""
    try:
        standings = await services.scoring.get_season_leaderboard(season_id)
    except CompetitionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return SeasonLeaderboardOut(
        season_id=season_id,
        standings=[
            SeasonStandingOut(
                rank=s.rank,
                participant_id=s.participant_id,
                name=s.name,
                total_points=s.total_points,
                weeks_completed=s.weeks_completed,
            )
            for s in standings
        ],
    )
