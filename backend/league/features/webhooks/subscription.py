"""
Strava push subscription management.

States:
    UNSUBSCRIBED -> PENDING_VERIFICATION -> ACTIVE

On startup the manager adopts an existing subscription if Strava already
has one for this application. Otherwise it registers the callback URL
and verify token; Strava then sends
    GET <callback>?hub.mode=subscribe&hub.challenge=X&hub.verify_token=Y
which must be answered with {"hub.challenge": X} before the create call
returns. Missing configuration or a Strava failure leaves the feature
disabled and is only logged.

While the app runs, SubscriptionMonitor re-checks the subscription at a
fixed interval and registers a new one if Strava dropped it.
"""

import asyncio
import hmac
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from league.features.strava.client import StravaError
from league.features.strava.push import StravaPushAPI
from league.shared.timestamps import utc_now
from .models import WebhookSubscription

logger = logging.getLogger(__name__)


class SubscriptionState(str, Enum):
    UNSUBSCRIBED = "unsubscribed"
    PENDING_VERIFICATION = "pending_verification"
    ACTIVE = "active"


class VerificationError(Exception):
    """Handshake request rejected; status_code is the HTTP answer."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class SubscriptionConfig:
    enabled: bool = False
    callback_url: Optional[str] = None
    verify_token: Optional[str] = None

    def missing(self) -> list[str]:
        return [
            name for name, value in (
                ("WEBHOOK_CALLBACK_URL", self.callback_url),
                ("STRAVA_WEBHOOK_VERIFY_TOKEN", self.verify_token),
            )
            if not value
        ]


class SubscriptionManager:
    """
    Owns the single Strava push subscription.

    Usage:
        manager = SubscriptionManager(session_factory, push_api, config)
        await manager.ensure_subscription()      # startup, never raises
        manager.verify_challenge(mode, token, challenge)  # GET callback
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        push_api: StravaPushAPI,
        config: SubscriptionConfig,
    ):
        self._session_factory = session_factory
        self._push = push_api
        self.config = config
        self.state = SubscriptionState.UNSUBSCRIBED
        self.subscription_id: Optional[int] = None
        self.last_error: Optional[str] = None

    # -------------------------------------------------------------------------
    # Startup
    # -------------------------------------------------------------------------

    async def ensure_subscription(self) -> SubscriptionState:
        """
        Adopt or create the subscription.

        Returns:
            Resulting state; UNSUBSCRIBED on any problem
        """
        if not self.config.enabled:
            logger.info("Strava webhooks disabled (WEBHOOK_ENABLED=false)")
            return self.state

        missing = self.config.missing()
        if not self._push.configured:
            missing.append("STRAVA_CLIENT_ID/STRAVA_CLIENT_SECRET")
        if missing:
            self.last_error = f"missing configuration: {', '.join(missing)}"
            logger.warning(f"Strava webhooks not started, {self.last_error}")
            return self.state

        try:
            existing = await self._push.list_subscriptions()
            if existing:
                current = existing[0]
                if current.get("callback_url") != self.config.callback_url:
                    logger.warning(
                        f"Adopting Strava subscription {current.get('id')} registered for "
                        f"{current.get('callback_url')}, not {self.config.callback_url}"
                    )
                await self._activate(int(current["id"]), current.get("callback_url") or self.config.callback_url)
                logger.info(f"Adopted existing Strava subscription {self.subscription_id}")
                return self.state

            self.state = SubscriptionState.PENDING_VERIFICATION
            logger.info(f"Registering Strava subscription for {self.config.callback_url}")
            created = await self._push.create_subscription(
                self.config.callback_url, self.config.verify_token
            )
            await self._activate(int(created["id"]), self.config.callback_url)
            logger.info(f"Strava subscription {self.subscription_id} active")
        except (StravaError, SQLAlchemyError, KeyError, TypeError, ValueError) as e:
            self.state = SubscriptionState.UNSUBSCRIBED
            self.last_error = str(e)
            logger.error(f"Strava subscription setup failed: {e}")

        return self.state

    async def _activate(self, subscription_id: int, callback_url: str) -> None:
        async with self._session_factory() as db:
            row = await db.get(WebhookSubscription, WebhookSubscription.SINGLETON_ID)
            if row is None:
                row = WebhookSubscription(id=WebhookSubscription.SINGLETON_ID, callback_url=callback_url)
                db.add(row)
            row.subscription_id = subscription_id
            row.callback_url = callback_url
            row.last_verified_at = utc_now()
            await db.commit()

        self.subscription_id = subscription_id
        self.state = SubscriptionState.ACTIVE
        self.last_error = None

    # -------------------------------------------------------------------------
    # Renewal
    # -------------------------------------------------------------------------

    async def check_subscription(self) -> SubscriptionState:
        """
        Confirm the subscription still exists at Strava, re-registering
        it if it is gone. Never raises.

        Returns:
            Resulting state
        """
        if not self.config.enabled or self.state == SubscriptionState.PENDING_VERIFICATION:
            return self.state

        try:
            existing = await self._push.list_subscriptions()
            current = next(
                (s for s in existing if self.subscription_id is not None and int(s["id"]) == self.subscription_id),
                None,
            )
            if current is not None:
                await self._activate(self.subscription_id, current.get("callback_url") or self.config.callback_url)
                logger.info(f"Strava subscription {self.subscription_id} still active")
                return self.state
        except (StravaError, SQLAlchemyError, KeyError, TypeError, ValueError) as e:
            self.last_error = str(e)
            logger.error(f"Strava subscription check failed: {e}")
            return self.state

        if self.subscription_id is not None:
            logger.warning(f"Strava subscription {self.subscription_id} no longer exists, re-registering")
        self.subscription_id = None
        self.state = SubscriptionState.UNSUBSCRIBED
        return await self.ensure_subscription()

    # -------------------------------------------------------------------------
    # Handshake
    # -------------------------------------------------------------------------

    def verify_challenge(
        self,
        mode: Optional[str],
        verify_token: Optional[str],
        challenge: Optional[str],
    ) -> dict:
        """
        Answer Strava's callback validation.

        Returns:
            {"hub.challenge": challenge}, echoed verbatim

        Raises:
            VerificationError: 400 for a wrong mode or missing challenge,
                403 for a wrong verify token or no token configured
        """
        if mode != "subscribe" or challenge is None:
            raise VerificationError("Invalid hub.mode or missing hub.challenge", 400)

        expected = self.config.verify_token
        if not expected or not verify_token or not hmac.compare_digest(
            verify_token.encode(), expected.encode()
        ):
            logger.warning("Strava webhook verification failed: verify token mismatch")
            raise VerificationError("Invalid verify token", 403)

        logger.info(f"Strava webhook verification answered (state={self.state.value})")
        return {"hub.challenge": challenge}

    # -------------------------------------------------------------------------
    # Admin
    # -------------------------------------------------------------------------

    async def disable(self) -> bool:
        """
        Delete the subscription at Strava and locally.

        Returns:
            True if a subscription was deleted

        Raises:
            StravaError: Strava refused the delete
        """
        subscription_id = self.subscription_id
        if subscription_id is None:
            existing = await self._push.list_subscriptions()
            subscription_id = int(existing[0]["id"]) if existing else None

        if subscription_id is not None:
            await self._push.delete_subscription(subscription_id)

        async with self._session_factory() as db:
            row = await db.get(WebhookSubscription, WebhookSubscription.SINGLETON_ID)
            if row is not None:
                await db.delete(row)
                await db.commit()

        self.subscription_id = None
        self.state = SubscriptionState.UNSUBSCRIBED
        logger.info(f"Strava subscription {subscription_id} disabled")
        return subscription_id is not None

    async def get_status(self) -> dict:
        async with self._session_factory() as db:
            row = await db.get(WebhookSubscription, WebhookSubscription.SINGLETON_ID)

        return {
            "enabled": self.config.enabled,
            "state": self.state.value,
            "subscription_id": self.subscription_id,
            "callback_url": row.callback_url if row else self.config.callback_url,
            "created_at": row.created_at.isoformat() if row and row.created_at else None,
            "last_verified_at": row.last_verified_at.isoformat() if row and row.last_verified_at else None,
            "last_error": self.last_error,
        }


class SubscriptionMonitor:
    """
    Background loop calling SubscriptionManager.check_subscription.

    Usage:
        monitor = SubscriptionMonitor(manager, interval_seconds=6 * 3600)
        await monitor.start()
        # ... later ...
        await monitor.stop()
    """

    def __init__(
        self,
        manager: SubscriptionManager,
        interval_seconds: float,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._manager = manager
        self.interval_seconds = interval_seconds
        self._sleep = sleep
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the check loop. The first check runs after one interval."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Subscription monitor started (every {self.interval_seconds:.0f}s)")

    async def stop(self) -> None:
        """Stop the check loop."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Subscription monitor stopped")

    async def _run_loop(self) -> None:
        while self._running:
            await self._sleep(self.interval_seconds)
            try:
                await self._manager.check_subscription()
            except Exception as e:
                logger.error(f"Subscription check error: {e}")
