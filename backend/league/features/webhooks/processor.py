"""
Webhook event processing.

Runs on the background queue, never inside the request. Dispatch is by
(object_type, aspect_type):

- activity:create / activity:update
    participant by owner_id -> token -> fetch activity with efforts ->
    match against all weeks -> store per qualifying week -> drop the
    activity from weeks it no longer qualifies for -> rescore touched weeks
- activity:delete
    remove the activity from every week holding it -> rescore those weeks
- athlete:update with authorized=false
    delete the participant's token; activities and results stay

Every event ends with exactly one ledger annotation: processed (with an
outcome note) or failed (with the error).
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from league.features.competition.matching import match_activity
from league.features.competition.repository import WeekRepository
from league.features.competition.scoring import ScoringEngine
from league.features.competition.store import ResultStore
from league.features.participants import Participant, ParticipantRepository
from league.features.strava.client import StravaClient, StravaNotFoundError
from league.features.strava.tokens import NotConnectedError, TokenManager
from league.shared.constants import AspectType, ObjectType
from .ledger import WebhookLedger
from .queue import QueuedEvent
from .schemas import StravaWebhookEvent

logger = logging.getLogger(__name__)


class WebhookEventProcessor:
    """
    State-driven handler for Strava push events.

    Usage:
        processor = WebhookEventProcessor(session_factory, tokens, client, store, scoring, ledger)
        queue = WebhookEventQueue(processor.handle)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        tokens: TokenManager,
        fetcher: StravaClient,
        store: ResultStore,
        scoring: ScoringEngine,
        ledger: WebhookLedger,
    ):
        self._session_factory = session_factory
        self._tokens = tokens
        self._fetcher = fetcher
        self._store = store
        self._scoring = scoring
        self._ledger = ledger

    async def handle(self, item: QueuedEvent) -> str:
        """Queue entry point."""
        return await self.process(item.event, item.ledger_id)

    async def process(self, event: StravaWebhookEvent, ledger_id: Optional[int] = None) -> str:
        """
        Process one event and annotate its ledger row.

        Returns:
            Outcome note stored on the ledger row

        Raises:
            Exception: Whatever made processing fail, after the ledger row
                was marked failed
        """
        logger.info(f"Processing webhook {event.key} object={event.object_id} owner={event.owner_id}")
        try:
            outcome = await self._dispatch(event)
        except NotConnectedError:
            outcome = "skipped: participant not connected"
        except Exception as e:
            await self._ledger.mark_failed(ledger_id, f"{type(e).__name__}: {e}")
            raise

        await self._ledger.mark_processed(ledger_id, outcome)
        logger.info(f"Webhook {event.key} object={event.object_id}: {outcome}")
        return outcome

    async def _dispatch(self, event: StravaWebhookEvent) -> str:
        if event.object_type == ObjectType.ACTIVITY:
            if event.aspect_type == AspectType.DELETE:
                return await self._handle_activity_delete(event)
            return await self._handle_activity_upsert(event)

        if event.object_type == ObjectType.ATHLETE and event.is_deauthorization:
            return await self._handle_deauthorization(event)

        return f"ignored: {event.key}"

    async def _participant(self, athlete_id: int) -> Optional[Participant]:
        async with self._session_factory() as db:
            return await ParticipantRepository(db).get_by_athlete_id(athlete_id)

    async def _rescore(self, week_ids) -> None:
        for week_id in sorted(set(week_ids)):
            await self._scoring.refresh_week(week_id)

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    async def _handle_activity_upsert(self, event: StravaWebhookEvent) -> str:
        participant = await self._participant(event.owner_id)
        if participant is None:
            return f"ignored: unknown athlete {event.owner_id}"

        if event.aspect_type == AspectType.CREATE:
            # Already picked up (e.g. by a batch fetch); re-matching would store the same thing
            if await self._store.find_slots(event.object_id):
                return "skipped: activity already stored"

        try:
            activity = await self._tokens.call_with_token(
                participant.id,
                lambda token: self._fetcher.get_activity(token, event.object_id),
            )
        except StravaNotFoundError:
            # Deleted or made private before we fetched it
            removed = await self._store.delete_strava_activity(event.object_id)
            await self._rescore(removed)
            return f"activity not visible, removed from {len(removed)} week(s)"

        async with self._session_factory() as db:
            weeks = await WeekRepository(db).list_all()

        matches = match_activity(activity, weeks)
        touched = set()
        for match in matches:
            outcome = await self._store.store_if_better(
                participant.id,
                match,
                device_name=activity.get("device_name"),
                athlete_name=participant.name,
            )
            if outcome.changed:
                touched.add(match.week_id)

        # An edit can disqualify a previously stored activity
        removed = await self._store.delete_strava_activity(
            event.object_id,
            keep_week_ids=[match.week_id for match in matches],
        )
        touched.update(removed)

        await self._rescore(touched)

        if not matches and not removed:
            return "no qualifying week"
        parts = [f"matched {len(matches)} week(s)", f"updated {len(touched - set(removed))}"]
        if removed:
            parts.append(f"removed from {len(removed)}")
        return ", ".join(parts)

    async def _handle_activity_delete(self, event: StravaWebhookEvent) -> str:
        removed = await self._store.delete_strava_activity(event.object_id)
        await self._rescore(removed)
        if not removed:
            return "nothing stored"
        return f"removed from {len(removed)} week(s)"

    async def _handle_deauthorization(self, event: StravaWebhookEvent) -> str:
        participant = await self._participant(event.owner_id)
        if participant is None:
            return f"ignored: unknown athlete {event.owner_id}"
        deleted = await self._tokens.delete_token(participant.id)
        return "token deleted" if deleted else "no token stored"
