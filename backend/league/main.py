"""
Club Segment League API

FastAPI application for weekly Strava segment competitions.
"""

from contextlib import asynccontextmanager
import asyncio
import logging
import sys

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from league.config import Settings, settings
from league.db.session import init_db
from league.api.v1.router import api_router
from league.services import build_services


# === Logging Setup ===
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout),
    ]
)
logger = logging.getLogger(__name__)


def create_app(app_settings: Settings = settings, services=None) -> FastAPI:
    """
    Build the application.

    Args:
        app_settings: Settings to wire services from
        services: Pre-built Services (tests); built in the lifespan if None
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        logger.info("Starting Club Segment League API...")
        app.state.services = services or build_services(app_settings)

        await init_db(app.state.services.engine)
        logger.info("Database initialized")

        await app.state.services.webhook_queue.start()

        # Strava calls back into this app while the subscription is created,
        # so this runs after startup completes
        background: set[asyncio.Task] = set()
        task = asyncio.create_task(app.state.services.subscriptions.ensure_subscription())
        background.add(task)
        task.add_done_callback(background.discard)
        if app.state.services.settings.webhook_enabled:
            await app.state.services.subscription_monitor.start()

        yield

        logger.info("Shutting down...")
        for pending in list(background):
            pending.cancel()
        await app.state.services.subscription_monitor.stop()
        await app.state.services.webhook_queue.stop()
        if services is None:
            await app.state.services.aclose()

    app = FastAPI(
        title="Club Segment League API",
        description="Weekly Strava segment competitions",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if app_settings.debug else None,
        redoc_url="/redoc" if app_settings.debug else None,
    )

    # === Middleware ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # === Routes ===
    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        services = app.state.services
        return {
            "status": "healthy",
            "version": "0.1.0",
            "webhook_queue_depth": services.webhook_queue.depth,
            "subscription": services.subscriptions.state.value,
            "strava_usage": services.rate_limiter.get_usage(),
        }

    return app


app = create_app()
