"""
Strava OAuth Routes

- /auth/strava - Redirect to Strava consent screen
- /auth/strava/callback - Exchange code, create participant, store token
"""

import logging
import secrets
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse

from league.api.deps import get_services
from league.features.strava import StravaOAuthError
from league.services import Services

logger = logging.getLogger(__name__)

router = APIRouter()

# In-memory CSRF state; single-process deployment
_oauth_states: dict[str, datetime] = {}
_STATE_TTL = timedelta(minutes=10)


def _prune_states(now: datetime) -> None:
    for state, created_at in list(_oauth_states.items()):
        if now - created_at > _STATE_TTL:
            del _oauth_states[state]


@router.get("/auth/strava")
async def strava_auth(services: Services = Depends(get_services)):
    """Start the Strava OAuth flow."""
    settings = services.settings
    if not services.oauth.configured or not settings.strava_redirect_uri:
        raise HTTPException(status_code=503, detail="Strava integration not configured")

    now = datetime.utcnow()
    _prune_states(now)
    state = secrets.token_urlsafe(32)
    _oauth_states[state] = now

    return RedirectResponse(
        url=services.oauth.get_authorization_url(settings.strava_redirect_uri, state=state)
    )


@router.get("/auth/strava/callback")
async def strava_callback(
    code: str = Query(None),
    scope: str = Query(None),
    state: str = Query(None),
    error: str = Query(None),
    services: Services = Depends(get_services),
):
    """Exchange the code for tokens and register the participant."""
    if error:
        logger.warning(f"Strava OAuth error: {error}")
        raise HTTPException(status_code=400, detail=f"Strava authorization denied: {error}")

    if not state or _oauth_states.pop(state, None) is None:
        logger.warning("Invalid OAuth state")
        raise HTTPException(status_code=400, detail="Invalid or expired OAuth state")

    if not code:
        raise HTTPException(status_code=400, detail="Missing authorization code")

    try:
        participant = await services.tokens.connect(code, scope=scope)
    except StravaOAuthError as e:
        raise HTTPException(status_code=502, detail=str(e))

    return {
        "connected": True,
        "participant_id": participant.id,
        "athlete_id": participant.strava_athlete_id,
        "name": participant.name,
    }
