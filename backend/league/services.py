"""
Service wiring.

Builds every collaborator once from Settings and hands them to each
other explicitly. The FastAPI app keeps the result on app.state.
"""

import logging
from dataclasses import dataclass

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from league.config import Settings
from league.db.session import create_engine, create_session_factory
from league.features.batch import BackoffPolicy, BatchFetchOrchestrator
from league.features.competition import ResultStore, ScoringEngine, SegmentService
from league.features.strava import (
    StravaClient,
    StravaOAuth,
    StravaPushAPI,
    StravaRateLimiter,
    TokenCipher,
    TokenManager,
)
from league.features.webhooks import (
    SubscriptionConfig,
    SubscriptionManager,
    SubscriptionMonitor,
    WebhookEventProcessor,
    WebhookEventQueue,
    WebhookLedger,
)

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything the routes and lifespan need."""

    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    http: httpx.AsyncClient
    oauth: StravaOAuth
    strava: StravaClient
    rate_limiter: StravaRateLimiter
    tokens: TokenManager
    store: ResultStore
    scoring: ScoringEngine
    segments: SegmentService
    ledger: WebhookLedger
    processor: WebhookEventProcessor
    webhook_queue: WebhookEventQueue
    subscriptions: SubscriptionManager
    subscription_monitor: SubscriptionMonitor
    batch: BatchFetchOrchestrator

    async def aclose(self) -> None:
        await self.http.aclose()
        await self.engine.dispose()


def build_services(
    settings: Settings,
    http: httpx.AsyncClient | None = None,
    engine: AsyncEngine | None = None,
) -> Services:
    """
    Wire all services.

    Args:
        settings: Application settings
        http: Shared HTTP client (created from settings if None)
        engine: Database engine (created from settings.database_url if None)
    """
    engine = engine or create_engine(settings.database_url, echo=settings.debug)
    session_factory = create_session_factory(engine)
    http = http or httpx.AsyncClient(timeout=settings.strava_request_timeout)

    oauth = StravaOAuth(
        http,
        settings.strava_client_id,
        settings.strava_client_secret,
        oauth_url=settings.strava_oauth_url,
    )
    rate_limiter = StravaRateLimiter()
    strava = StravaClient(http, api_url=settings.strava_api_url, rate_limiter=rate_limiter)
    tokens = TokenManager(
        session_factory,
        oauth,
        TokenCipher(settings.token_encryption_key),
        refresh_margin_seconds=settings.token_refresh_margin_seconds,
    )

    store = ResultStore(session_factory)
    scoring = ScoringEngine(session_factory)
    ledger = WebhookLedger(session_factory, persist=settings.webhook_persist_events)
    processor = WebhookEventProcessor(session_factory, tokens, strava, store, scoring, ledger)

    subscriptions = SubscriptionManager(
        session_factory,
        StravaPushAPI(
            http,
            settings.strava_client_id,
            settings.strava_client_secret,
            api_url=settings.strava_api_url,
        ),
        SubscriptionConfig(
            enabled=settings.webhook_enabled,
            callback_url=settings.webhook_callback_url,
            verify_token=settings.strava_webhook_verify_token,
        ),
    )

    return Services(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        http=http,
        oauth=oauth,
        strava=strava,
        rate_limiter=rate_limiter,
        tokens=tokens,
        store=store,
        scoring=scoring,
        segments=SegmentService(session_factory, strava, tokens),
        ledger=ledger,
        processor=processor,
        webhook_queue=WebhookEventQueue(
            processor.handle,
            maxsize=settings.webhook_queue_size,
            workers=settings.webhook_workers,
        ),
        subscriptions=subscriptions,
        subscription_monitor=SubscriptionMonitor(subscriptions, settings.webhook_check_interval_seconds),
        batch=BatchFetchOrchestrator(
            session_factory,
            tokens,
            strava,
            store,
            scoring,
            backoff=BackoffPolicy(
                max_retries=settings.strava_max_retries,
                base_seconds=settings.strava_backoff_base_seconds,
                max_seconds=settings.strava_backoff_max_seconds,
            ),
        ),
    )
