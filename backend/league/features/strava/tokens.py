"""
Per-participant OAuth token lifecycle.

TokenManager hands out usable access tokens, refreshing them at Strava
when they are about to expire. Strava rotates the refresh token on every
refresh, so two concurrent refreshes for one participant would leave the
stored refresh token invalid. Refreshes are therefore serialized per
participant; different participants never wait on each other.
"""

import logging
import time
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from league.features.participants import Participant, ParticipantRepository
from league.shared.locks import KeyedLock
from league.shared.repository import PersistenceError
from .client import StravaAuthError
from .encryption import TokenCipher
from .oauth import StravaOAuth, StravaOAuthError
from .repository import StravaTokenRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Exceptions
# =============================================================================

class NotConnectedError(Exception):
    """Participant has no stored Strava token."""

    def __init__(self, participant_id: int):
        super().__init__(f"Participant {participant_id} is not connected to Strava")
        self.participant_id = participant_id


class RefreshFailedError(Exception):
    """Strava rejected the refresh token; participant is unreachable for now."""

    def __init__(self, participant_id: int, reason: str):
        super().__init__(f"Token refresh failed for participant {participant_id}: {reason}")
        self.participant_id = participant_id
        self.reason = reason


# =============================================================================
# Token Manager
# =============================================================================

class TokenManager:
    """
    Owns the stored StravaToken rows.

    Usage:
        manager = TokenManager(session_factory, oauth, TokenCipher(key))
        access_token = await manager.get_valid_access_token(participant_id)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        oauth: StravaOAuth,
        cipher: TokenCipher,
        refresh_margin_seconds: int = 3600,
        clock: Callable[[], float] = time.time,
    ):
        self._session_factory = session_factory
        self._oauth = oauth
        self._cipher = cipher
        self._refresh_margin = refresh_margin_seconds
        self._clock = clock
        self._locks = KeyedLock()

    async def get_valid_access_token(self, participant_id: int) -> str:
        """
        Return an access token valid for at least the refresh margin.

        The common case (token still fresh) takes no lock. Otherwise the
        participant's lock is taken and the row re-read, so a refresh that
        finished while we waited is reused instead of repeated.

        Raises:
            NotConnectedError: No token stored
            RefreshFailedError: Strava rejected the refresh token
            PersistenceError: Reading or saving the token failed
        """
        try:
            async with self._session_factory() as db:
                token = await StravaTokenRepository(db).get_by_participant_id(participant_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Reading token for participant {participant_id} failed: {e}") from e
        if token is None:
            raise NotConnectedError(participant_id)
        if not token.expires_within(self._refresh_margin, self._clock()):
            return self._cipher.decrypt(token.access_token)

        async with self._locks.hold(participant_id):
            return await self._refresh_locked(participant_id, rejected_token=None)

    async def refresh_after_rejection(self, participant_id: int, rejected_token: str) -> str:
        """
        Force a refresh after Strava answered 401 to `rejected_token`.

        If another caller already replaced that token, the replacement is
        returned without hitting Strava again.

        Raises:
            NotConnectedError: No token stored
            RefreshFailedError: Strava rejected the refresh token
            PersistenceError: Reading or saving the token failed
        """
        async with self._locks.hold(participant_id):
            return await self._refresh_locked(participant_id, rejected_token=rejected_token)

    async def _refresh_locked(self, participant_id: int, rejected_token: Optional[str]) -> str:
        try:
            return await self._refresh_in_session(participant_id, rejected_token)
        except SQLAlchemyError as e:
            logger.error(f"Token storage failed for participant {participant_id}: {e}")
            raise PersistenceError(f"Token storage failed for participant {participant_id}: {e}") from e

    async def _refresh_in_session(self, participant_id: int, rejected_token: Optional[str]) -> str:
        async with self._session_factory() as db:
            repo = StravaTokenRepository(db)
            token = await repo.get_by_participant_id(participant_id)
            if token is None:
                raise NotConnectedError(participant_id)

            current = self._cipher.decrypt(token.access_token)
            if rejected_token is None:
                if not token.expires_within(self._refresh_margin, self._clock()):
                    return current
            elif current != rejected_token:
                return current

            logger.info(f"Refreshing Strava token for participant {participant_id}")
            try:
                data = await self._oauth.refresh_token(self._cipher.decrypt(token.refresh_token))
            except StravaOAuthError as e:
                logger.warning(f"Strava refused token refresh for participant {participant_id}: {e}")
                raise RefreshFailedError(participant_id, str(e)) from e

            await repo.update_tokens(
                token,
                access_token=self._cipher.encrypt(data["access_token"]),
                refresh_token=self._cipher.encrypt(data["refresh_token"]),
                expires_at=int(data["expires_at"]),
            )
            await db.commit()
            return data["access_token"]

    async def call_with_token(
        self,
        participant_id: int,
        request: Callable[[str], Awaitable[T]],
    ) -> T:
        """
        Run `request(access_token)`, retrying once with a forced refresh
        if Strava rejects the token (revoked early, clock skew).

        Raises:
            NotConnectedError, RefreshFailedError, PersistenceError, StravaError
        """
        access_token = await self.get_valid_access_token(participant_id)
        try:
            return await request(access_token)
        except StravaAuthError:
            logger.info(f"Strava rejected token for participant {participant_id}, forcing refresh")
            access_token = await self.refresh_after_rejection(participant_id, access_token)
            return await request(access_token)

    # -------------------------------------------------------------------------
    # Authorization / deauthorization
    # -------------------------------------------------------------------------

    async def connect(self, code: str, scope: Optional[str] = None) -> Participant:
        """
        Complete the OAuth flow: exchange `code`, upsert the participant
        from the returned athlete block and store the token.

        Raises:
            StravaOAuthError: Code exchange failed
        """
        data = await self._oauth.exchange_code(code)
        athlete = data.get("athlete") or {}
        if "id" not in athlete:
            raise StravaOAuthError("Token exchange response has no athlete")

        async with self._session_factory() as db:
            participant = await ParticipantRepository(db).upsert_from_athlete(athlete)

            async with self._locks.hold(participant.id):
                repo = StravaTokenRepository(db)
                fields = dict(
                    access_token=self._cipher.encrypt(data["access_token"]),
                    refresh_token=self._cipher.encrypt(data["refresh_token"]),
                    expires_at=int(data["expires_at"]),
                    scope=scope,
                )
                token = await repo.get_by_participant_id(participant.id)
                if token is None:
                    await repo.create(participant_id=participant.id, **fields)
                else:
                    await repo.update(token, **fields)
                await db.commit()

        logger.info(f"Participant {participant.id} connected (athlete {participant.strava_athlete_id})")
        return participant

    async def delete_token(self, participant_id: int) -> bool:
        """
        Drop the participant's token. Activities and results are kept.

        Returns:
            True if a token was deleted
        """
        async with self._locks.hold(participant_id):
            async with self._session_factory() as db:
                deleted = await StravaTokenRepository(db).delete_by(participant_id=participant_id)
                await db.commit()
        if deleted:
            logger.info(f"Deleted Strava token for participant {participant_id}")
        return bool(deleted)
