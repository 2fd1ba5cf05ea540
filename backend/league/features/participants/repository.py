"""
Participant repository.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from league.shared.repository import BaseRepository
from .models import Participant


class ParticipantRepository(BaseRepository[Participant]):
    """Repository for club participants."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, Participant)

    async def get_by_athlete_id(self, athlete_id: int) -> Participant | None:
        """
        Get participant by Strava athlete ID.

        Args:
            athlete_id: Strava athlete ID (webhook owner_id)

        Returns:
            Participant if found, None otherwise
        """
        return await self.get_by(strava_athlete_id=athlete_id)

    async def get_names(self, participant_ids: list[int]) -> dict[int, str]:
        """Map participant id -> display name."""
        if not participant_ids:
            return {}
        result = await self.db.execute(
            select(Participant.id, Participant.name).where(Participant.id.in_(participant_ids))
        )
        return {row.id: row.name for row in result}

    async def upsert_from_athlete(self, athlete: dict) -> Participant:
        """
        Create or update a participant from a Strava athlete block.

        Args:
            athlete: {"id": 123, "firstname": "...", "lastname": "...", "profile": "..."}

        Returns:
            Participant (flushed, with id)
        """
        name = " ".join(
            part for part in (athlete.get("firstname"), athlete.get("lastname")) if part
        )
        participant = await self.get_by_athlete_id(int(athlete["id"]))
        if participant is None:
            return await self.create(
                strava_athlete_id=int(athlete["id"]),
                name=name,
                profile_image_url=athlete.get("profile"),
            )
        return await self.update(
            participant,
            name=name or participant.name,
            profile_image_url=athlete.get("profile") or participant.profile_image_url,
        )
