"""
Competition repositories.

Data access layer for seasons, segments, weeks, activities and results.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from league.features.participants.models import Participant
from league.shared.repository import BaseRepository
from .models import Activity, Result, Season, Segment, Week


class SeasonRepository(BaseRepository[Season]):
    """Repository for seasons."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, Season)


class SegmentRepository(BaseRepository[Segment]):
    """Repository for Strava segments."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, Segment)

    async def upsert(self, segment_id: int, **fields) -> Segment:
        """
        Insert or update segment metadata.

        Args:
            segment_id: Strava segment ID (primary key)
            **fields: Column values to set

        Returns:
            Segment entity
        """
        segment = await self.get_by_id(segment_id)
        if segment is None:
            return await self.create(id=segment_id, **fields)
        return await self.update(segment, **fields)


class WeekRepository(BaseRepository[Week]):
    """Repository for competition weeks."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, Week)

    async def list_all(self) -> list[Week]:
        """Every week, oldest first. Webhook matching runs against all of them."""
        return await self.list_by(Week.start_at, Week.id)

    async def list_for_season(self, season_id: int) -> list[Week]:
        return await self.list_by(Week.start_at, Week.id, season_id=season_id)


class ActivityRepository(BaseRepository[Activity]):
    """Repository for stored best activities."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, Activity)

    async def get_for_participant_week(
        self,
        participant_id: int,
        week_id: int,
        for_update: bool = False,
    ) -> Activity | None:
        """
        Stored activity for (participant, week).

        Args:
            participant_id: Participant ID
            week_id: Week ID
            for_update: Lock the row until the transaction ends (PostgreSQL)

        Returns:
            Activity with efforts and result loaded, or None
        """
        query = select(Activity).where(
            Activity.participant_id == participant_id,
            Activity.week_id == week_id,
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def list_by_strava_id(self, strava_activity_id: int) -> list[Activity]:
        """Every (participant, week) slot currently holding this Strava activity."""
        return await self.list_by(Activity.week_id, strava_activity_id=strava_activity_id)

    async def list_for_week_with_names(self, week_id: int) -> list[tuple[Activity, str]]:
        """Stored activities of a week paired with participant names."""
        result = await self.db.execute(
            select(Activity, Participant.name)
            .join(Participant, Participant.id == Activity.participant_id)
            .where(Activity.week_id == week_id)
        )
        return [(row[0], row[1]) for row in result]


class ResultRepository(BaseRepository[Result]):
    """Repository for derived weekly results."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, Result)

    async def list_for_week(self, week_id: int) -> list[Result]:
        return await self.list_by(Result.rank, Result.participant_id, week_id=week_id)
