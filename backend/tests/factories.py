"""
Test data builders and fakes shared across test modules.

Strava payload builders mirror the fields the client actually reads.
The fakes stand in for the HTTP-backed collaborators (StravaOAuth,
StravaClient, StravaPushAPI) behind the same method names.
"""

import asyncio
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from league.features.competition.models import Season, Segment, Week
from league.features.participants.models import Participant
from league.features.strava.client import StravaAuthError, StravaNotFoundError, StravaRateLimitError
from league.features.strava.models import StravaToken
from league.features.strava.oauth import StravaOAuthError
from league.shared.timestamps import parse_strava_datetime


# Monday 2025-11-10 00:00 UTC -> Monday 2025-11-17 00:00 UTC
WEEK_START = parse_strava_datetime("2025-11-10T00:00:00Z")
WEEK_END = parse_strava_datetime("2025-11-17T00:00:00Z")
SEGMENT_ID = 229781
OTHER_SEGMENT_ID = 611413

# Fixed "now" for token expiry decisions
NOW = WEEK_START + 3 * 86400
FAR_FUTURE = NOW + 6 * 3600


# =============================================================================
# Strava payloads
# =============================================================================

def effort(
    elapsed: int,
    segment_id: int = SEGMENT_ID,
    pr_rank: Optional[int] = None,
    effort_id: Optional[int] = None,
    start_date: Optional[str] = None,
) -> dict:
    """One entry of an activity's segment_efforts."""
    return {
        "id": effort_id if effort_id is not None else elapsed * 10 + (pr_rank or 0),
        "elapsed_time": elapsed,
        "start_date": start_date,
        "pr_rank": pr_rank,
        "segment": {"id": segment_id, "name": f"Segment {segment_id}"},
    }


def ride(
    activity_id: int,
    start_date: str = "2025-11-12T07:00:00Z",
    efforts: Optional[list[dict]] = None,
    start_date_local: Optional[str] = None,
    device_name: Optional[str] = "Garmin Edge 540",
    athlete_id: Optional[int] = None,
) -> dict:
    """Detailed activity as returned with include_all_efforts=true."""
    return {
        "id": activity_id,
        "name": f"Ride {activity_id}",
        "type": "Ride",
        "start_date": start_date,
        "start_date_local": start_date_local or start_date,
        "device_name": device_name,
        "athlete": {"id": athlete_id} if athlete_id is not None else {},
        "segment_efforts": efforts or [],
    }


# =============================================================================
# Database seeding
# =============================================================================

class Seeder:
    """Insert rows directly, bypassing the services under test."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def _add(self, entity):
        async with self._session_factory() as db:
            db.add(entity)
            await db.commit()
            return entity

    async def participant(
        self,
        athlete_id: int,
        name: str = "",
        connected: bool = True,
        expires_at: int = FAR_FUTURE,
    ) -> Participant:
        participant = await self._add(Participant(
            strava_athlete_id=athlete_id,
            name=name or f"Rider {athlete_id}",
        ))
        if connected:
            await self.token(participant.id, expires_at=expires_at)
        return participant

    async def token(self, participant_id: int, expires_at: int = FAR_FUTURE, generation: int = 0) -> StravaToken:
        return await self._add(StravaToken(
            participant_id=participant_id,
            access_token=access_token_for(participant_id, generation),
            refresh_token=f"refresh-{participant_id}-{generation}",
            expires_at=expires_at,
            scope="read,activity:read",
        ))

    async def season(self, name: str = "Autumn 2025") -> Season:
        return await self._add(Season(name=name, start_at=WEEK_START, end_at=WEEK_END + 8 * 7 * 86400))

    async def segment(self, segment_id: int = SEGMENT_ID, name: str = "Hill climb") -> Segment:
        return await self._add(Segment(id=segment_id, name=name))

    async def week(
        self,
        season_id: int,
        segment_id: int = SEGMENT_ID,
        required_laps: int = 1,
        start_at: int = WEEK_START,
        end_at: int = WEEK_END,
        multiplier: int = 1,
        name: str = "Week 1",
    ) -> Week:
        return await self._add(Week(
            season_id=season_id,
            segment_id=segment_id,
            required_laps=required_laps,
            start_at=start_at,
            end_at=end_at,
            multiplier=multiplier,
            name=name,
        ))


def access_token_for(participant_id: int, generation: int = 0) -> str:
    return f"access-{participant_id}-{generation}"


def participant_from_token(access_token: str) -> int:
    return int(access_token.split("-")[1])


# =============================================================================
# Fakes
# =============================================================================

class FakeOAuth:
    """Stands in for StravaOAuth; counts refreshes and can be told to fail."""

    configured = True

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.refresh_calls: list[str] = []
        self.fail_refresh: Optional[str] = None
        self.athlete = {"id": 9001, "firstname": "Ada", "lastname": "Quick", "profile": None}
        self.expires_at = FAR_FUTURE

    async def refresh_token(self, refresh_token: str) -> dict:
        self.refresh_calls.append(refresh_token)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_refresh:
            raise StravaOAuthError(self.fail_refresh, status_code=400)

        # refresh-<participant>-<generation>
        _, participant_id, generation = refresh_token.split("-")
        next_generation = int(generation) + 1
        return {
            "access_token": access_token_for(int(participant_id), next_generation),
            "refresh_token": f"refresh-{participant_id}-{next_generation}",
            "expires_at": self.expires_at,
        }

    async def exchange_code(self, code: str) -> dict:
        if code == "bad":
            raise StravaOAuthError("Token exchange failed: 400", status_code=400)
        return {
            "access_token": "access-new-0",
            "refresh_token": "refresh-new-0",
            "expires_at": self.expires_at,
            "athlete": dict(self.athlete),
        }


class FakeStrava:
    """
    Stands in for StravaClient.

    Activities are registered per participant; the participant is read
    back from the access token, as Strava would do.
    """

    def __init__(self):
        self.activities: dict[int, dict] = {}
        self.owners: dict[int, int] = {}
        self.segments: dict[int, dict] = {}
        self.hidden: set[int] = set()  # listed, but 404 on detail
        self.rejected_tokens: set[str] = set()
        self.rate_limited: dict[int, int] = {}  # participant -> remaining 429 answers
        self.failing: dict[int, Exception] = {}  # participant -> exception to raise
        self.calls: list[tuple] = []

    def add(self, participant_id: int, activity: dict) -> dict:
        self.activities[activity["id"]] = activity
        self.owners[activity["id"]] = participant_id
        return activity

    def _check(self, access_token: str) -> int:
        if access_token in self.rejected_tokens:
            raise StravaAuthError("Strava rejected token: 401")
        participant_id = participant_from_token(access_token)
        if participant_id in self.failing:
            raise self.failing[participant_id]
        remaining = self.rate_limited.get(participant_id, 0)
        if remaining:
            self.rate_limited[participant_id] = remaining - 1
            raise StravaRateLimitError("Strava rate limit exceeded", retry_after=None)
        return participant_id

    async def get_activity(self, access_token: str, activity_id: int) -> dict:
        self.calls.append(("get_activity", access_token, activity_id))
        self._check(access_token)
        if activity_id not in self.activities or activity_id in self.hidden:
            raise StravaNotFoundError("Strava object not found")
        return self.activities[activity_id]

    async def list_activities(self, access_token: str, after: int, before: int, per_page: int = 200) -> list[dict]:
        self.calls.append(("list_activities", access_token, after, before))
        participant_id = self._check(access_token)
        summaries = []
        for activity_id, owner in self.owners.items():
            activity = self.activities[activity_id]
            started = parse_strava_datetime(activity["start_date"])
            if owner == participant_id and after < started < before:
                summary = {k: v for k, v in activity.items() if k != "segment_efforts"}
                summaries.append(summary)
        return summaries

    async def get_segment(self, access_token: str, segment_id: int) -> dict:
        self.calls.append(("get_segment", access_token, segment_id))
        self._check(access_token)
        if segment_id not in self.segments:
            raise StravaNotFoundError("Strava object not found")
        return self.segments[segment_id]


class FakePushAPI:
    """Stands in for StravaPushAPI."""

    def __init__(self, existing: Optional[list[dict]] = None, configured: bool = True):
        self.existing = existing or []
        self.configured = configured
        self.created: list[tuple[str, str]] = []
        self.deleted: list[int] = []
        self.fail_create: Optional[Exception] = None

    async def list_subscriptions(self) -> list[dict]:
        return list(self.existing)

    async def create_subscription(self, callback_url: str, verify_token: str) -> dict:
        if self.fail_create:
            raise self.fail_create
        self.created.append((callback_url, verify_token))
        self.existing = [{"id": 555, "callback_url": callback_url}]
        return {"id": 555}

    async def delete_subscription(self, subscription_id: int) -> None:
        self.deleted.append(subscription_id)
        self.existing = []
