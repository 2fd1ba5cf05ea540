"""
Tests for segment metadata refresh.
"""

import pytest

from league.features.competition import Segment, SegmentService
from league.features.strava import NotConnectedError

from factories import SEGMENT_ID


@pytest.fixture
def segments(session_factory, strava, tokens):
    return SegmentService(session_factory, strava, tokens)


class TestRefreshSegment:
    """Tests for pulling segment details from Strava."""

    async def test_upserts_metadata(self, segments, seed, strava, session_factory):
        await seed.segment(name="")
        await seed.participant(1)
        strava.segments[SEGMENT_ID] = {
            "id": SEGMENT_ID,
            "name": "Col de la Club",
            "distance": 2450.3,
            "average_grade": 6.1,
            "total_elevation_gain": 151.0,
            "climb_category": 2,
            "city": "Girona",
            "country": "Spain",
        }

        segment = await segments.refresh_segment(SEGMENT_ID)

        assert (segment.name, segment.climb_category) == ("Col de la Club", 2)
        async with session_factory() as db:
            stored = await db.get(Segment, SEGMENT_ID)
        assert (stored.distance, stored.city, stored.state) == (2450.3, "Girona", None)

    async def test_creates_unknown_segment(self, segments, seed, strava):
        await seed.participant(1)
        strava.segments[777] = {"id": 777, "name": "New climb"}

        segment = await segments.refresh_segment(777)

        assert segment.id == 777

    async def test_nobody_connected(self, segments, seed):
        await seed.participant(1, connected=False)

        with pytest.raises(NotConnectedError):
            await segments.refresh_segment(SEGMENT_ID)
