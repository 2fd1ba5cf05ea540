"""
Batch fetch of week results.

Admin-triggered sweep over every connected participant for one week:
list the participant's activities inside the week window, fetch each
with its segment efforts, match against this week only, store the best.
Each participant is handled independently; a failure is recorded in the
summary and the sweep moves on. The week is rescored once at the end.

This is also the manual recovery path for failed webhook events.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from league.features.competition.matching import MatchResult, activity_start_time, match_activity
from league.features.competition.models import Week
from league.features.competition.repository import WeekRepository
from league.features.competition.scoring import CompetitionNotFoundError, ScoringEngine
from league.features.competition.selection import StoreOutcome
from league.features.competition.store import ResultStore
from league.features.participants import ParticipantRepository
from league.features.strava.client import StravaClient, StravaError, StravaNotFoundError, StravaRateLimitError
from league.features.strava.repository import StravaTokenRepository
from league.features.strava.tokens import NotConnectedError, RefreshFailedError, TokenManager
from league.shared.repository import PersistenceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Data Classes
# =============================================================================

class FetchStatus(str, Enum):
    """Per-participant outcome of a sweep."""
    FOUND = "found"
    NOT_FOUND = "not_found"  # nothing qualified; not an error
    SKIPPED = "skipped"  # not connected
    ERROR = "error"  # something broke (token, Strava, storage)


@dataclass
class ParticipantOutcome:
    participant_id: int
    participant_name: str
    status: FetchStatus
    strava_activity_id: Optional[int] = None
    total_time_seconds: Optional[int] = None
    segment_efforts: int = 0
    store_outcome: Optional[StoreOutcome] = None
    activities_checked: int = 0
    reason: Optional[str] = None


@dataclass
class BatchSummary:
    week_id: int
    week_name: str
    participants_processed: int = 0
    results_found: int = 0
    not_found: int = 0
    skipped: int = 0
    errors: int = 0
    scoring_error: Optional[str] = None
    outcomes: list[ParticipantOutcome] = field(default_factory=list)

    def add(self, outcome: ParticipantOutcome) -> None:
        self.outcomes.append(outcome)
        self.participants_processed += 1
        if outcome.status == FetchStatus.FOUND:
            self.results_found += 1
        elif outcome.status == FetchStatus.NOT_FOUND:
            self.not_found += 1
        elif outcome.status == FetchStatus.SKIPPED:
            self.skipped += 1
        else:
            self.errors += 1

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class BackoffPolicy:
    """Bounded exponential backoff for Strava 429 answers."""

    max_retries: int = 3
    base_seconds: float = 2.0
    max_seconds: float = 60.0

    def delay(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Seconds to wait before retry number `attempt` (0-based)."""
        if retry_after is not None and retry_after > 0:
            return min(retry_after, self.max_seconds)
        return min(self.base_seconds * (2 ** attempt), self.max_seconds)


# =============================================================================
# Orchestrator
# =============================================================================

class BatchFetchOrchestrator:
    """
    Sweep all connected participants for one week.

    Usage:
        orchestrator = BatchFetchOrchestrator(session_factory, tokens, client, store, scoring)
        summary = await orchestrator.fetch_week_results(week_id)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        tokens: TokenManager,
        fetcher: StravaClient,
        store: ResultStore,
        scoring: ScoringEngine,
        backoff: BackoffPolicy = BackoffPolicy(),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._session_factory = session_factory
        self._tokens = tokens
        self._fetcher = fetcher
        self._store = store
        self._scoring = scoring
        self._backoff = backoff
        self._sleep = sleep

    async def fetch_week_results(self, week_id: int) -> BatchSummary:
        """
        Fetch, match and store every connected participant's best activity.

        Raises:
            CompetitionNotFoundError: Unknown week
        """
        async with self._session_factory() as db:
            week = await WeekRepository(db).get_by_id(week_id)
            if week is None:
                raise CompetitionNotFoundError(f"Week {week_id} not found")
            participant_ids = await StravaTokenRepository(db).list_connected_participant_ids()
            names = await ParticipantRepository(db).get_names(participant_ids)

        logger.info(f"Batch fetch for week {week.id} ({week.name}): {len(participant_ids)} participant(s)")

        summary = BatchSummary(week_id=week.id, week_name=week.name)
        for participant_id in participant_ids:
            outcome = await self._process_participant(week, participant_id, names.get(participant_id, ""))
            summary.add(outcome)

        try:
            await self._scoring.refresh_week(week.id)
        except PersistenceError as e:
            summary.scoring_error = str(e)
            logger.error(f"Rescoring week {week.id} after batch fetch failed: {e}")

        logger.info(
            f"Batch fetch for week {week.id} done: {summary.results_found} found, "
            f"{summary.not_found} not found, {summary.skipped} skipped, {summary.errors} error(s)"
        )
        return summary

    async def _process_participant(self, week: Week, participant_id: int, name: str) -> ParticipantOutcome:
        def failed(reason: str) -> ParticipantOutcome:
            return ParticipantOutcome(participant_id, name, FetchStatus.ERROR, reason=reason)

        try:
            return await self._best_for_week(week, participant_id, name)
        except NotConnectedError:
            return ParticipantOutcome(participant_id, name, FetchStatus.SKIPPED, reason="not connected")
        except RefreshFailedError as e:
            logger.warning(f"Participant {participant_id} unreachable: {e.reason}")
            return failed(f"token refresh failed: {e.reason}")
        except StravaRateLimitError:
            logger.warning(f"Participant {participant_id}: still rate limited after {self._backoff.max_retries} retries")
            return failed(f"rate limited after {self._backoff.max_retries} retries")
        except StravaError as e:
            logger.warning(f"Participant {participant_id}: Strava error: {e}")
            return failed(f"strava error: {e}")
        except PersistenceError as e:
            return failed(f"storage error: {e}")
        except Exception as e:
            logger.exception(f"Participant {participant_id}: unexpected error during batch fetch")
            return failed(f"unexpected error: {e}")

    async def _request(self, participant_id: int, request: Callable[[str], Awaitable[T]]) -> T:
        """Authenticated Strava call with bounded backoff on 429."""
        attempt = 0
        while True:
            try:
                return await self._tokens.call_with_token(participant_id, request)
            except StravaRateLimitError as e:
                if attempt >= self._backoff.max_retries:
                    raise
                delay = self._backoff.delay(attempt, e.retry_after)
                attempt += 1
                logger.warning(
                    f"Rate limited fetching for participant {participant_id}, "
                    f"retry {attempt}/{self._backoff.max_retries} in {delay:.1f}s"
                )
                await self._sleep(delay)

    async def _best_for_week(self, week: Week, participant_id: int, name: str) -> ParticipantOutcome:
        summaries = await self._request(
            participant_id,
            lambda token: self._fetcher.list_activities(token, after=week.start_at - 1, before=week.end_at),
        )

        candidates: list[tuple[MatchResult, dict]] = []
        checked = 0
        for summary in summaries:
            start_at = activity_start_time(summary)
            if start_at is not None and not (week.start_at <= start_at < week.end_at):
                continue
            checked += 1
            try:
                detail = await self._request(
                    participant_id,
                    lambda token, activity_id=summary["id"]: self._fetcher.get_activity(token, activity_id),
                )
            except StravaNotFoundError:
                logger.info(f"Participant {participant_id}: activity {summary['id']} no longer visible, skipped")
                continue
            for match in match_activity(detail, [week]):
                candidates.append((match, detail))

        if not candidates:
            logger.info(f"Participant {participant_id}: no qualifying activity for week {week.id}")
            return ParticipantOutcome(
                participant_id, name, FetchStatus.NOT_FOUND,
                activities_checked=checked,
                reason=f"no qualifying activity ({checked} checked)",
            )

        best, detail = min(candidates, key=lambda c: (c[0].total_time_seconds, c[0].start_at))
        stored = await self._store.store_if_better(
            participant_id,
            best,
            device_name=detail.get("device_name"),
            athlete_name=name,
        )
        return ParticipantOutcome(
            participant_id,
            name,
            FetchStatus.FOUND,
            strava_activity_id=best.strava_activity_id,
            total_time_seconds=best.total_time_seconds,
            segment_efforts=len(best.efforts),
            store_outcome=stored,
            activities_checked=checked,
            reason="faster activity already stored" if stored == StoreOutcome.KEPT_EXISTING else None,
        )
