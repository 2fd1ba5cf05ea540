"""
Tests for best activity selection and ResultStore.
"""

import asyncio

import pytest
from sqlalchemy import func, select

from league.features.competition import (
    Activity,
    MatchResult,
    Result,
    SegmentEffort,
    StoreOutcome,
    WeekSpec,
    match_activity,
    select_best,
)

from factories import SEGMENT_ID, WEEK_END, WEEK_START, effort, ride


# =============================================================================
# Helpers
# =============================================================================

def matched(activity_id: int, laps: list[int], week_id: int, required_laps: int = 2, **kwargs) -> MatchResult:
    week = WeekSpec(id=week_id, segment_id=SEGMENT_ID, required_laps=required_laps, start_at=WEEK_START, end_at=WEEK_END)
    [match] = match_activity(ride(activity_id, efforts=[effort(t, **kwargs) for t in laps]), [week])
    return match


async def count(session_factory, model) -> int:
    async with session_factory() as db:
        return (await db.execute(select(func.count()).select_from(model))).scalar()


async def stored(session_factory, participant_id: int, week_id: int):
    async with session_factory() as db:
        result = await db.execute(
            select(Activity).where(Activity.participant_id == participant_id, Activity.week_id == week_id)
        )
        return result.scalar_one_or_none()


@pytest.fixture
async def slot(seed):
    """A participant and a two-lap week."""
    season = await seed.season()
    await seed.segment()
    week = await seed.week(season.id, required_laps=2)
    participant = await seed.participant(101, "Ada")
    return participant, week


# =============================================================================
# Selection (pure)
# =============================================================================

class TestSelectBest:
    """Tests for the store decision."""

    def test_nothing_stored(self):
        assert select_best(matched(1, [300, 310], 1), None) == StoreOutcome.CREATED

    def test_faster_different_activity_replaces(self):
        current = Activity(strava_activity_id=1, total_time_seconds=610, efforts=[])
        assert select_best(matched(2, [290, 300], 1), current) == StoreOutcome.REPLACED

    def test_equal_time_keeps_existing(self):
        """Ties keep whatever was stored first."""
        current = Activity(strava_activity_id=1, total_time_seconds=590, efforts=[])
        assert select_best(matched(2, [290, 300], 1), current) == StoreOutcome.KEPT_EXISTING

    def test_slower_keeps_existing(self):
        current = Activity(strava_activity_id=1, total_time_seconds=500, efforts=[])
        assert select_best(matched(2, [290, 300], 1), current) == StoreOutcome.KEPT_EXISTING

    def test_same_activity_changed_is_refreshed(self):
        """A cropped ride may be slower; the stored copy still follows Strava."""
        current = Activity(strava_activity_id=2, total_time_seconds=500, efforts=[])
        assert select_best(matched(2, [290, 300], 1), current) == StoreOutcome.REFRESHED

    def test_changed_property(self):
        assert StoreOutcome.CREATED.changed
        assert StoreOutcome.REFRESHED.changed
        assert not StoreOutcome.UNCHANGED.changed
        assert not StoreOutcome.KEPT_EXISTING.changed


# =============================================================================
# ResultStore
# =============================================================================

class TestStoreIfBetter:
    """Tests for transactional storage."""

    async def test_creates_activity_efforts_and_result(self, store, session_factory, slot):
        participant, week = slot

        outcome = await store.store_if_better(
            participant.id, matched(1, [300, 310, 320], week.id), device_name="Wahoo", athlete_name="Ada"
        )

        assert outcome == StoreOutcome.CREATED
        activity = await stored(session_factory, participant.id, week.id)
        assert activity.total_time_seconds == 610
        assert activity.device_name == "Wahoo"
        assert [e.elapsed_seconds for e in activity.efforts] == [300, 310]
        assert activity.result.total_time_seconds == 610
        assert activity.result.rank is None

    async def test_replaces_only_when_strictly_faster(self, store, session_factory, slot):
        participant, week = slot
        await store.store_if_better(participant.id, matched(1, [300, 310], week.id))

        slower = await store.store_if_better(participant.id, matched(2, [320, 330], week.id))
        tie = await store.store_if_better(participant.id, matched(3, [305, 305], week.id))
        faster = await store.store_if_better(participant.id, matched(4, [290, 300], week.id))

        assert (slower, tie, faster) == (
            StoreOutcome.KEPT_EXISTING, StoreOutcome.KEPT_EXISTING, StoreOutcome.REPLACED,
        )
        activity = await stored(session_factory, participant.id, week.id)
        assert activity.strava_activity_id == 4
        assert await count(session_factory, Activity) == 1
        assert await count(session_factory, SegmentEffort) == 2
        assert await count(session_factory, Result) == 1

    async def test_rerun_is_idempotent(self, store, session_factory, slot):
        """Storing the same match twice leaves storage unchanged."""
        participant, week = slot
        match = matched(1, [300, 310], week.id, pr_rank=1)
        await store.store_if_better(participant.id, match)
        before = await stored(session_factory, participant.id, week.id)

        outcome = await store.store_if_better(participant.id, match)

        after = await stored(session_factory, participant.id, week.id)
        assert outcome == StoreOutcome.UNCHANGED
        assert after.id == before.id
        assert [e.id for e in after.efforts] == [e.id for e in before.efforts]
        assert after.result.id == before.result.id

    async def test_same_activity_refreshed_when_efforts_change(self, store, session_factory, slot):
        participant, week = slot
        await store.store_if_better(participant.id, matched(1, [300, 310], week.id))

        outcome = await store.store_if_better(participant.id, matched(1, [300, 340], week.id))

        assert outcome == StoreOutcome.REFRESHED
        activity = await stored(session_factory, participant.id, week.id)
        assert activity.total_time_seconds == 640
        assert await count(session_factory, SegmentEffort) == 2

    async def test_concurrent_stores_converge_to_fastest(self, store, session_factory, slot):
        """Whatever order the writers finish in, the fastest activity wins."""
        participant, week = slot
        candidates = [
            matched(10, [330, 340], week.id),
            matched(11, [280, 290], week.id),
            matched(12, [300, 310], week.id),
            matched(13, [281, 290], week.id),
        ]

        await asyncio.gather(*(store.store_if_better(participant.id, m) for m in candidates))
        await asyncio.gather(*(store.store_if_better(participant.id, m) for m in reversed(candidates)))

        activity = await stored(session_factory, participant.id, week.id)
        assert activity.strava_activity_id == 11
        assert await count(session_factory, Activity) == 1
        assert await count(session_factory, Result) == 1


class TestDelete:
    """Tests for removing a Strava activity."""

    async def test_removes_activity_efforts_and_result(self, store, session_factory, slot):
        participant, week = slot
        await store.store_if_better(participant.id, matched(1, [300, 310], week.id))

        removed = await store.delete_strava_activity(1)

        assert removed == [week.id]
        assert await count(session_factory, Activity) == 0
        assert await count(session_factory, SegmentEffort) == 0
        assert await count(session_factory, Result) == 0

    async def test_unknown_activity(self, store, slot):
        assert await store.delete_strava_activity(999) == []

    async def test_keeps_listed_weeks(self, store, seed, session_factory, slot):
        participant, week = slot
        second = await seed.week(week.season_id, required_laps=2, name="Week 1b")
        await store.store_if_better(participant.id, matched(1, [300, 310], week.id))
        await store.store_if_better(participant.id, matched(1, [300, 310], second.id))

        removed = await store.delete_strava_activity(1, keep_week_ids=[week.id])

        assert removed == [second.id]
        assert [s.week_id for s in await store.find_slots(1)] == [week.id]
