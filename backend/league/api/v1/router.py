"""
API Router v1

Combines all route modules.
"""

from fastapi import APIRouter

from league.api.v1.routes import admin, auth, leaderboards, webhooks

api_router = APIRouter()

api_router.include_router(webhooks.router, tags=["Webhooks"])
api_router.include_router(leaderboards.router, tags=["Leaderboards"])
api_router.include_router(auth.router, tags=["Strava OAuth"])
api_router.include_router(admin.router, tags=["Admin"])
