"""
Tests for activity matching.

Pure functions, no database.
"""

import pytest

from league.features.competition import (
    EffortRecord,
    WeekSpec,
    activity_start_time,
    fastest_efforts,
    match_activity,
    parse_efforts,
)

from factories import OTHER_SEGMENT_ID, SEGMENT_ID, WEEK_END, WEEK_START, effort, ride


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def week():
    return WeekSpec(id=1, segment_id=SEGMENT_ID, required_laps=3, start_at=WEEK_START, end_at=WEEK_END)


@pytest.fixture
def previous_week():
    return WeekSpec(
        id=0,
        segment_id=SEGMENT_ID,
        required_laps=1,
        start_at=WEEK_START - 7 * 86400,
        end_at=WEEK_START,
    )


# =============================================================================
# Fastest subset
# =============================================================================

class TestFastestEfforts:
    """Tests for picking the fastest required laps."""

    def test_sums_fastest_not_first(self, week):
        """Total time is the sum of the fastest laps, not the first ones ridden."""
        activity = ride(1, efforts=[effort(300), effort(280), effort(310), effort(250), effort(290)])

        [match] = match_activity(activity, [week])

        assert match.total_time_seconds == 250 + 280 + 290
        assert [e.elapsed_seconds for e in match.efforts] == [280, 250, 290]

    def test_one_lap_short_does_not_qualify(self, week):
        """required_laps - 1 efforts on the segment gives no result."""
        activity = ride(1, efforts=[effort(300), effort(280)])

        assert match_activity(activity, [week]) == []

    def test_two_extra_laps_use_fastest_subset(self, week):
        """required_laps + 2 efforts still qualify, counting only the fastest."""
        laps = [410, 395, 402, 388, 420]
        activity = ride(1, efforts=[effort(t) for t in laps])

        [match] = match_activity(activity, [week])

        assert match.total_time_seconds == sum(sorted(laps)[:3])
        assert len(match.efforts) == 3

    def test_efforts_on_other_segments_ignored(self, week):
        """Laps on a different segment never count toward the week."""
        activity = ride(1, efforts=[
            effort(100, segment_id=OTHER_SEGMENT_ID),
            effort(300),
            effort(101, segment_id=OTHER_SEGMENT_ID),
            effort(310),
        ])

        assert match_activity(activity, [week]) == []

    def test_equal_times_keep_ride_order(self):
        """Ties between lap times pick the earlier lap."""
        efforts = [
            EffortRecord(segment_id=SEGMENT_ID, elapsed_seconds=200, effort_index=0, strava_effort_id="a"),
            EffortRecord(segment_id=SEGMENT_ID, elapsed_seconds=200, effort_index=1, strava_effort_id="b"),
            EffortRecord(segment_id=SEGMENT_ID, elapsed_seconds=190, effort_index=2, strava_effort_id="c"),
        ]

        chosen = fastest_efforts(efforts, 2)

        assert [e.strava_effort_id for e in chosen] == ["a", "c"]

    def test_pr_flag_from_counted_efforts_only(self, week):
        """A PR on a lap that is not counted earns nothing."""
        activity = ride(1, efforts=[effort(260), effort(270), effort(280), effort(500, pr_rank=1)])

        [match] = match_activity(activity, [week])

        assert match.pr_achieved is False

    def test_pr_rank_one_is_a_pr(self, week):
        """pr_rank 1 marks a personal record; 2 and 3 do not."""
        activity = ride(1, efforts=[effort(260, pr_rank=2), effort(270, pr_rank=1), effort(280, pr_rank=3)])

        [match] = match_activity(activity, [week])

        assert match.pr_achieved is True
        assert [e.pr_achieved for e in match.efforts] == [False, True, False]


# =============================================================================
# Time window
# =============================================================================

class TestTimeWindow:
    """Tests for the week window check."""

    def test_start_inclusive_end_exclusive(self, week):
        """An activity at start_at qualifies, one at end_at does not."""
        laps = [effort(300), effort(301), effort(302)]
        at_start = ride(1, start_date="2025-11-10T00:00:00Z", efforts=laps)
        at_end = ride(2, start_date="2025-11-17T00:00:00Z", efforts=laps)

        assert len(match_activity(at_start, [week])) == 1
        assert match_activity(at_end, [week]) == []

    def test_uses_utc_start_not_local(self, week, previous_week):
        """
        Ride on Sunday 15:00 UTC, local midnight Monday in UTC+9.

        Strava renders the local wall clock with a 'Z' suffix, so reading
        start_date_local would move the ride into the next week.
        """
        activity = ride(
            1,
            start_date="2025-11-09T15:00:00Z",
            start_date_local="2025-11-10T00:00:00Z",
            efforts=[effort(300), effort(301), effort(302)],
        )

        matches = match_activity(activity, [previous_week, week])

        assert [m.week_id for m in matches] == [previous_week.id]
        assert activity_start_time(activity) == WEEK_START - 9 * 3600

    def test_local_field_alone_is_not_enough(self, week):
        """Without start_date nothing matches, whatever start_date_local says."""
        activity = ride(1, efforts=[effort(300), effort(301), effort(302)])
        activity["start_date"] = None

        assert match_activity(activity, [week]) == []


# =============================================================================
# Multiple weeks
# =============================================================================

class TestMultipleWeeks:
    """Tests for activities qualifying for more than one week."""

    def test_overlapping_weeks_on_different_segments(self, week):
        """Every qualifying week is returned, no short-circuit after the first."""
        other = WeekSpec(id=2, segment_id=OTHER_SEGMENT_ID, required_laps=1, start_at=WEEK_START, end_at=WEEK_END)
        activity = ride(1, efforts=[
            effort(300), effort(301), effort(302),
            effort(120, segment_id=OTHER_SEGMENT_ID),
            effort(110, segment_id=OTHER_SEGMENT_ID),
        ])

        matches = match_activity(activity, [week, other])

        assert [(m.week_id, m.total_time_seconds) for m in matches] == [(1, 903), (2, 110)]

    def test_accepts_preparsed_efforts(self, week):
        """Efforts passed in take precedence over the payload's."""
        activity = ride(1, efforts=[])
        efforts = parse_efforts([effort(300), effort(301), effort(302)])

        [match] = match_activity(activity, [week], efforts=efforts)

        assert match.total_time_seconds == 903
        assert match.strava_activity_id == 1


# =============================================================================
# Payload parsing
# =============================================================================

class TestParseEfforts:
    """Tests for normalizing Strava segment efforts."""

    def test_skips_incomplete_efforts(self):
        raw = [effort(300), {"id": 5, "segment": {"id": SEGMENT_ID}}, {"elapsed_time": 200}]

        efforts = parse_efforts(raw)

        assert len(efforts) == 1
        assert efforts[0].effort_index == 0

    def test_keeps_ride_order_index(self):
        efforts = parse_efforts([effort(300), effort(200, segment_id=OTHER_SEGMENT_ID), effort(250)])

        assert [e.effort_index for e in efforts] == [0, 1, 2]
        assert efforts[2].strava_effort_id == "2500"

    def test_handles_missing_list(self):
        assert parse_efforts(None) == []
