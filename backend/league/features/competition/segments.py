"""
Segment metadata refresh.

Segment rows are reference data for leaderboards (name, distance, grade,
location). They are fetched from Strava on demand using any connected
participant's token, since the segment endpoint needs an athlete token.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from league.features.strava.client import StravaClient
from league.features.strava.repository import StravaTokenRepository
from league.features.strava.tokens import NotConnectedError, TokenManager
from .models import Segment
from .repository import SegmentRepository

logger = logging.getLogger(__name__)


def segment_fields(payload: dict) -> dict:
    """Columns to store from a Strava segment payload."""
    return {
        "name": payload.get("name") or "",
        "distance": payload.get("distance"),
        "average_grade": payload.get("average_grade"),
        "total_elevation_gain": payload.get("total_elevation_gain"),
        "climb_category": payload.get("climb_category"),
        "city": payload.get("city"),
        "state": payload.get("state"),
        "country": payload.get("country"),
    }


class SegmentService:
    """Refreshes Segment rows from Strava."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client: StravaClient,
        tokens: TokenManager,
    ):
        self._session_factory = session_factory
        self._client = client
        self._tokens = tokens

    async def refresh_segment(self, segment_id: int, participant_id: Optional[int] = None) -> Segment:
        """
        Fetch segment metadata from Strava and upsert it.

        Args:
            segment_id: Strava segment ID
            participant_id: Whose token to use; any connected participant if None

        Raises:
            NotConnectedError: Nobody is connected
            RefreshFailedError, StravaError: Upstream failures
        """
        if participant_id is None:
            async with self._session_factory() as db:
                connected = await StravaTokenRepository(db).list_connected_participant_ids()
            if not connected:
                raise NotConnectedError(0)
            participant_id = connected[0]

        payload = await self._tokens.call_with_token(
            participant_id,
            lambda token: self._client.get_segment(token, segment_id),
        )

        async with self._session_factory() as db:
            segment = await SegmentRepository(db).upsert(segment_id, **segment_fields(payload))
            await db.commit()

        logger.info(f"Refreshed segment {segment_id} ({segment.name})")
        return segment
