"""
Competition module.

Usage:
    from league.features.competition import match_activity, ResultStore, ScoringEngine

Components:
- match_activity: Pure week matching (time window + fastest laps)
- select_best: Pure best-activity decision
- ResultStore: Transactional store/delete per (participant, week)
- ScoringEngine: Compute-on-read week and season leaderboards
- SegmentService: Segment metadata refresh

Models:
- Season, Segment, Week, Activity, SegmentEffort, Result
"""

from .models import (
    Season,
    Segment,
    Week,
    Activity,
    SegmentEffort,
    Result,
)
from .matching import (
    WeekSpec,
    EffortRecord,
    MatchResult,
    activity_start_time,
    parse_efforts,
    fastest_efforts,
    match_activity,
)
from .selection import (
    StoreOutcome,
    select_best,
)
from .store import (
    ResultStore,
    StoredSlot,
    PersistenceError,
)
from .scoring import (
    ScoringEngine,
    ScoreEntry,
    WeekStanding,
    WeekLeaderboard,
    SeasonStanding,
    CompetitionNotFoundError,
    week_points,
    rank_week,
    aggregate_season,
)
from .segments import SegmentService
from .repository import (
    SeasonRepository,
    SegmentRepository,
    WeekRepository,
    ActivityRepository,
    ResultRepository,
)

__all__ = [
    # Models
    "Season",
    "Segment",
    "Week",
    "Activity",
    "SegmentEffort",
    "Result",
    # Matching
    "WeekSpec",
    "EffortRecord",
    "MatchResult",
    "activity_start_time",
    "parse_efforts",
    "fastest_efforts",
    "match_activity",
    # Selection / storage
    "StoreOutcome",
    "select_best",
    "ResultStore",
    "StoredSlot",
    "PersistenceError",
    # Scoring
    "ScoringEngine",
    "ScoreEntry",
    "WeekStanding",
    "WeekLeaderboard",
    "SeasonStanding",
    "CompetitionNotFoundError",
    "week_points",
    "rank_week",
    "aggregate_season",
    # Segments
    "SegmentService",
    # Repositories
    "SeasonRepository",
    "SegmentRepository",
    "WeekRepository",
    "ActivityRepository",
    "ResultRepository",
]
