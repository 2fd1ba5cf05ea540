"""
Strava token repository.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from league.shared.repository import BaseRepository
from .models import StravaToken


class StravaTokenRepository(BaseRepository[StravaToken]):
    """Repository for Strava OAuth tokens."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, StravaToken)

    async def get_by_participant_id(self, participant_id: int) -> StravaToken | None:
        return await self.get_by(participant_id=participant_id)

    async def list_connected_participant_ids(self) -> list[int]:
        """IDs of every participant holding a token, in id order."""
        tokens = await self.list_by(StravaToken.participant_id)
        return [token.participant_id for token in tokens]

    async def update_tokens(
        self,
        token: StravaToken,
        access_token: str,
        refresh_token: str,
        expires_at: int
    ) -> StravaToken:
        """
        Overwrite the stored triple after a refresh.

        Args:
            token: Existing token entity
            access_token: New access token (already encrypted if enabled)
            refresh_token: New refresh token (already encrypted if enabled)
            expires_at: Token expiration timestamp

        Returns:
            Updated token
        """
        return await self.update(
            token,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
        )
