"""
Tests for WebhookEventProcessor.

Runs against a real SQLite database with the Strava client and OAuth
endpoint faked.
"""

import pytest
from sqlalchemy import select

from league.features.competition import Activity
from league.features.strava import StravaAPIError, StravaToken
from league.features.webhooks import QueuedEvent, WebhookEventProcessor, parse_event

from factories import OTHER_SEGMENT_ID, effort, ride


ATHLETE_ID = 134815


def event(aspect_type: str, object_id: int, object_type: str = "activity", owner_id: int = ATHLETE_ID, **extra):
    return parse_event({
        "object_type": object_type,
        "aspect_type": aspect_type,
        "object_id": object_id,
        "owner_id": owner_id,
        "event_time": 1763000000 + object_id,
        **extra,
    })


async def stored_activities(session_factory) -> list[tuple[int, int, int]]:
    async with session_factory() as db:
        rows = (await db.execute(select(Activity).order_by(Activity.week_id))).scalars().all()
        return [(a.week_id, a.strava_activity_id, a.total_time_seconds) for a in rows]


@pytest.fixture
def processor(session_factory, tokens, strava, store, scoring, ledger):
    return WebhookEventProcessor(session_factory, tokens, strava, store, scoring, ledger)


@pytest.fixture
async def league(seed):
    """One rider, a two-lap week and an overlapping one-lap week on another segment."""
    season = await seed.season()
    await seed.segment()
    await seed.segment(OTHER_SEGMENT_ID, "Sprint")
    week = await seed.week(season.id, required_laps=2)
    sprint = await seed.week(season.id, segment_id=OTHER_SEGMENT_ID, required_laps=1, name="Sprint week")
    rider = await seed.participant(ATHLETE_ID, "Ada")
    return rider, week, sprint


# =============================================================================
# activity:create / activity:update
# =============================================================================

class TestActivityUpsert:
    """Tests for create and update events."""

    async def test_create_stores_every_qualifying_week(self, processor, strava, session_factory, league):
        rider, week, sprint = league
        strava.add(rider.id, ride(1, efforts=[effort(300), effort(290), effort(95, segment_id=OTHER_SEGMENT_ID)]))

        outcome = await processor.process(event("create", 1))

        assert outcome.startswith("matched 2 week(s)")
        assert await stored_activities(session_factory) == [(week.id, 1, 590), (sprint.id, 1, 95)]

    async def test_create_rescores_week(self, processor, strava, scoring, seed, league):
        rider, week, _ = league
        other = await seed.participant(222, "Bo")
        strava.add(rider.id, ride(1, efforts=[effort(300), effort(290)]))
        strava.add(other.id, ride(2, efforts=[effort(280), effort(290)]))

        await processor.process(event("create", 1))
        await processor.process(event("create", 2, owner_id=222))

        board = await scoring.get_week_leaderboard(week.id)
        assert [(s.name, s.rank, s.points) for s in board.standings] == [("Bo", 1, 2), ("Ada", 2, 1)]

    async def test_unknown_athlete_ignored(self, processor, strava, session_factory, league):
        outcome = await processor.process(event("create", 1, owner_id=999))

        assert outcome.startswith("ignored")
        assert strava.calls == []

    async def test_non_qualifying_activity(self, processor, strava, session_factory, league):
        rider, _, _ = league
        strava.add(rider.id, ride(1, efforts=[effort(300)]))

        outcome = await processor.process(event("create", 1))

        assert outcome == "no qualifying week"
        assert await stored_activities(session_factory) == []

    async def test_create_for_stored_activity_skipped(self, processor, strava, league):
        rider, _, _ = league
        strava.add(rider.id, ride(1, efforts=[effort(300), effort(290)]))
        await processor.process(event("create", 1))
        strava.calls.clear()

        outcome = await processor.process(event("create", 1, event_time=1))

        assert outcome == "skipped: activity already stored"
        assert strava.calls == []

    async def test_update_that_disqualifies_removes(self, processor, strava, session_factory, league):
        """A ride cropped below the required laps leaves the week."""
        rider, week, sprint = league
        strava.add(rider.id, ride(1, efforts=[effort(300), effort(290), effort(95, segment_id=OTHER_SEGMENT_ID)]))
        await processor.process(event("create", 1))

        strava.add(rider.id, ride(1, efforts=[effort(300), effort(95, segment_id=OTHER_SEGMENT_ID)]))
        outcome = await processor.process(event("update", 1, updates={"title": "Cropped"}))

        assert "removed from 1" in outcome
        assert await stored_activities(session_factory) == [(sprint.id, 1, 95)]

    async def test_activity_gone_upstream(self, processor, strava, session_factory, league):
        """A 404 on fetch (deleted or made private) removes what was stored."""
        rider, _, _ = league
        strava.add(rider.id, ride(1, efforts=[effort(300), effort(290)]))
        await processor.process(event("create", 1))
        del strava.activities[1]

        outcome = await processor.process(event("update", 1, updates={"private": "true"}))

        assert outcome == "activity not visible, removed from 1 week(s)"
        assert await stored_activities(session_factory) == []


# =============================================================================
# activity:delete / deauthorization
# =============================================================================

class TestDeleteAndDeauthorize:
    """Tests for delete and deauthorization events."""

    async def test_delete_removes_from_all_weeks(self, processor, strava, scoring, session_factory, league):
        rider, week, _ = league
        strava.add(rider.id, ride(1, efforts=[effort(300), effort(290), effort(95, segment_id=OTHER_SEGMENT_ID)]))
        await processor.process(event("create", 1))

        outcome = await processor.process(event("delete", 1))

        assert outcome == "removed from 2 week(s)"
        assert await stored_activities(session_factory) == []
        assert (await scoring.get_week_leaderboard(week.id)).standings == []

    async def test_delete_of_unknown_activity(self, processor, league):
        assert await processor.process(event("delete", 42)) == "nothing stored"

    async def test_deauthorization_keeps_results(self, processor, strava, session_factory, league):
        rider, week, _ = league
        strava.add(rider.id, ride(1, efforts=[effort(300), effort(290)]))
        await processor.process(event("create", 1))

        outcome = await processor.process(
            event("update", ATHLETE_ID, object_type="athlete", updates={"authorized": "false"})
        )

        assert outcome == "token deleted"
        async with session_factory() as db:
            assert (await db.execute(select(StravaToken))).scalars().all() == []
        assert await stored_activities(session_factory) == [(week.id, 1, 590)]

    async def test_other_athlete_update_ignored(self, processor, league):
        outcome = await processor.process(
            event("update", ATHLETE_ID, object_type="athlete", updates={"name": "New"})
        )

        assert outcome == "ignored: athlete:update"


# =============================================================================
# Ledger annotation
# =============================================================================

class TestLedgerAnnotation:
    """Tests for the outcome written on each ledger row."""

    async def test_success_marks_processed(self, processor, strava, ledger, league):
        rider, _, _ = league
        strava.add(rider.id, ride(1, efforts=[effort(300), effort(290)]))
        created = event("create", 1)
        receipt = await ledger.record(created)

        await processor.handle(QueuedEvent(created, receipt.event_id))

        row = await ledger.get(receipt.event_id)
        assert row.status == "processed"
        assert row.outcome.startswith("matched 1 week(s)")

    async def test_not_connected_is_skipped(self, processor, seed, ledger, league):
        await seed.participant(777, connected=False)
        created = event("create", 1, owner_id=777)
        receipt = await ledger.record(created)

        await processor.process(created, receipt.event_id)

        row = await ledger.get(receipt.event_id)
        assert (row.status, row.outcome) == ("processed", "skipped: participant not connected")

    async def test_failure_marks_failed_and_raises(self, processor, strava, ledger, league):
        rider, _, _ = league
        strava.failing[rider.id] = StravaAPIError("API error: 500", status_code=500)
        created = event("create", 1)
        receipt = await ledger.record(created)

        with pytest.raises(StravaAPIError):
            await processor.process(created, receipt.event_id)

        row = await ledger.get(receipt.event_id)
        assert row.status == "failed"
        assert "StravaAPIError" in row.error_message

    async def test_processor_usable_after_failure(self, processor, strava, session_factory, league):
        rider, week, _ = league
        strava.failing[rider.id] = StravaAPIError("API error: 500", status_code=500)
        with pytest.raises(StravaAPIError):
            await processor.process(event("create", 1))

        del strava.failing[rider.id]
        strava.add(rider.id, ride(1, efforts=[effort(300), effort(290)]))
        await processor.process(event("create", 1))

        assert await stored_activities(session_factory) == [(week.id, 1, 590)]
