"""
Result store.

Durable storage of each participant's best activity per week, its
counted efforts and its Result row. Every write for a (participant, week)
is one transaction: read the stored activity, compare, write. A keyed
lock serializes writers in this process; SELECT ... FOR UPDATE and the
unique (participant, week) constraint cover other processes.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from league.shared.locks import KeyedLock
from league.shared.repository import PersistenceError
from .matching import MatchResult
from .models import Activity, Result, SegmentEffort
from .repository import ActivityRepository
from .selection import StoreOutcome, select_best

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredSlot:
    """A (participant, week) slot holding some Strava activity."""

    participant_id: int
    week_id: int
    strava_activity_id: int
    total_time_seconds: int


def build_activity(
    participant_id: int,
    match: MatchResult,
    device_name: Optional[str] = None,
    athlete_name: Optional[str] = None,
) -> Activity:
    """New Activity row with its efforts and a Result awaiting scoring."""
    efforts = [
        SegmentEffort(
            segment_id=effort.segment_id,
            strava_effort_id=effort.strava_effort_id,
            effort_index=effort.effort_index,
            elapsed_seconds=effort.elapsed_seconds,
            start_at=effort.start_at,
            pr_rank=effort.pr_rank,
            pr_achieved=effort.pr_achieved,
        )
        for effort in match.efforts
    ]
    return Activity(
        participant_id=participant_id,
        week_id=match.week_id,
        strava_activity_id=match.strava_activity_id,
        start_at=match.start_at,
        total_time_seconds=match.total_time_seconds,
        device_name=device_name,
        athlete_name=athlete_name,
        validation_status="valid",
        efforts=efforts,
        result=Result(
            week_id=match.week_id,
            participant_id=participant_id,
            total_time_seconds=match.total_time_seconds,
            pr_bonus=match.pr_achieved,
        ),
    )


class ResultStore:
    """
    Transactional writes of best activities.

    Usage:
        store = ResultStore(session_factory)
        outcome = await store.store_if_better(participant_id, match)
        week_ids = await store.delete_strava_activity(strava_activity_id)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._locks = KeyedLock()

    async def store_if_better(
        self,
        participant_id: int,
        match: MatchResult,
        device_name: Optional[str] = None,
        athlete_name: Optional[str] = None,
    ) -> StoreOutcome:
        """
        Store `match` unless the stored activity is at least as fast.

        Returns:
            What happened (see StoreOutcome)

        Raises:
            PersistenceError: Transaction failed; nothing was written
        """
        key = (participant_id, match.week_id)
        async with self._locks.hold(key):
            try:
                async with self._session_factory() as db:
                    async with db.begin():
                        repo = ActivityRepository(db)
                        stored = await repo.get_for_participant_week(
                            participant_id, match.week_id, for_update=True
                        )
                        outcome = select_best(match, stored)
                        if not outcome.changed:
                            return outcome

                        if stored is not None:
                            await db.delete(stored)
                            await db.flush()
                        db.add(build_activity(
                            participant_id,
                            match,
                            device_name=device_name,
                            athlete_name=athlete_name,
                        ))
            except SQLAlchemyError as e:
                logger.error(
                    f"Failed to store activity {match.strava_activity_id} for "
                    f"participant {participant_id} week {match.week_id}: {e}"
                )
                raise PersistenceError(str(e)) from e

        logger.info(
            f"Week {match.week_id} participant {participant_id}: {outcome.value} "
            f"activity {match.strava_activity_id} ({match.total_time_seconds}s)"
        )
        return outcome

    async def find_slots(self, strava_activity_id: int) -> list[StoredSlot]:
        """Where this Strava activity is currently stored."""
        async with self._session_factory() as db:
            activities = await ActivityRepository(db).list_by_strava_id(strava_activity_id)
            return [
                StoredSlot(a.participant_id, a.week_id, a.strava_activity_id, a.total_time_seconds)
                for a in activities
            ]

    async def delete_strava_activity(
        self,
        strava_activity_id: int,
        keep_week_ids: Iterable[int] = (),
    ) -> list[int]:
        """
        Remove a Strava activity from every week it is stored in.

        Efforts and the Result row go with it.

        Args:
            strava_activity_id: Strava activity ID
            keep_week_ids: Weeks to leave untouched (still qualifying)

        Returns:
            IDs of weeks that lost a stored activity

        Raises:
            PersistenceError: A delete transaction failed
        """
        keep = set(keep_week_ids)
        affected = []
        for slot in await self.find_slots(strava_activity_id):
            if slot.week_id in keep:
                continue
            if await self._delete_slot(slot):
                affected.append(slot.week_id)
        return affected

    async def _delete_slot(self, slot: StoredSlot) -> bool:
        async with self._locks.hold((slot.participant_id, slot.week_id)):
            try:
                async with self._session_factory() as db:
                    async with db.begin():
                        stored = await ActivityRepository(db).get_for_participant_week(
                            slot.participant_id, slot.week_id, for_update=True
                        )
                        # Replaced by a faster ride since we looked
                        if stored is None or stored.strava_activity_id != slot.strava_activity_id:
                            return False
                        await db.delete(stored)
            except SQLAlchemyError as e:
                logger.error(f"Failed to delete activity {slot.strava_activity_id} from week {slot.week_id}: {e}")
                raise PersistenceError(str(e)) from e

        logger.info(
            f"Removed activity {slot.strava_activity_id} from week {slot.week_id} "
            f"(participant {slot.participant_id})"
        )
        return True
