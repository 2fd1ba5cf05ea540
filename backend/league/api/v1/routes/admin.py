"""
Admin Endpoints

Protected by X-API-Key header.
- POST   /admin/weeks/{week_id}/fetch       - Batch fetch a week
- GET    /admin/webhooks/status             - Queue, ledger and subscription state
- GET    /admin/webhooks/events             - Recent ledger rows
- POST   /admin/webhooks/subscription       - (Re)create subscription
- DELETE /admin/webhooks/subscription       - Delete subscription
- POST   /admin/segments/{segment_id}/refresh - Refresh segment metadata
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from league.api.deps import get_services, verify_api_key
from league.features.competition import CompetitionNotFoundError
from league.features.strava import NotConnectedError, RefreshFailedError, StravaError
from league.services import Services
from league.shared.formatters import format_distance_km

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", dependencies=[Depends(verify_api_key)])


# =============================================================================
# Schemas
# =============================================================================

class WebhookEventOut(BaseModel):
    id: int
    object_type: Optional[str] = None
    aspect_type: Optional[str] = None
    object_id: Optional[int] = None
    owner_id: Optional[int] = None
    received_at: datetime
    status: str
    outcome: Optional[str] = None
    error_message: Optional[str] = None


class SegmentOut(BaseModel):
    id: int
    name: str
    distance: Optional[float] = None
    distance_display: str = ""
    average_grade: Optional[float] = None
    total_elevation_gain: Optional[float] = None
    climb_category: Optional[int] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None


# =============================================================================
# Batch fetch
# =============================================================================

@router.post("/weeks/{week_id}/fetch")
async def fetch_week(week_id: int, services: Services = Depends(get_services)):
    """
    Fetch, match and store results for every connected participant.

    Also the recovery path for failed webhook events.
    """
    try:
        summary = await services.batch.fetch_week_results(week_id)
    except CompetitionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return summary.to_dict()


# =============================================================================
# Webhooks
# =============================================================================

@router.get("/webhooks/status")
async def webhook_status(services: Services = Depends(get_services)):
    """Queue counters, ledger totals and subscription state."""
    return {
        "queue": services.webhook_queue.get_status(),
        "ledger": await services.ledger.get_status(),
        "subscription": await services.subscriptions.get_status(),
    }


@router.get("/webhooks/events", response_model=list[WebhookEventOut])
async def webhook_events(
    limit: int = Query(default=50, ge=1, le=500),
    services: Services = Depends(get_services),
):
    """Most recent ledger rows, newest first."""
    rows = await services.ledger.recent(limit)
    return [
        WebhookEventOut(
            id=row.id,
            object_type=row.object_type,
            aspect_type=row.aspect_type,
            object_id=row.object_id,
            owner_id=row.owner_id,
            received_at=row.received_at,
            status=row.status,
            outcome=row.outcome,
            error_message=row.error_message,
        )
        for row in rows
    ]


@router.post("/webhooks/subscription")
async def enable_subscription(services: Services = Depends(get_services)):
    """Adopt or create the Strava subscription."""
    await services.subscriptions.ensure_subscription()
    return await services.subscriptions.get_status()


@router.delete("/webhooks/subscription")
async def disable_subscription(services: Services = Depends(get_services)):
    """Delete the Strava subscription."""
    try:
        deleted = await services.subscriptions.disable()
    except StravaError as e:
        raise HTTPException(status_code=502, detail=f"Strava refused: {e}")
    return {"deleted": deleted, **(await services.subscriptions.get_status())}


# =============================================================================
# Segments
# =============================================================================

@router.post("/segments/{segment_id}/refresh", response_model=SegmentOut)
async def refresh_segment(segment_id: int, services: Services = Depends(get_services)):
    """Pull segment metadata from Strava."""
    try:
        segment = await services.segments.refresh_segment(segment_id)
    except NotConnectedError:
        raise HTTPException(status_code=409, detail="No connected participant to fetch with")
    except RefreshFailedError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except StravaError as e:
        raise HTTPException(status_code=502, detail=f"Strava error: {e}")

    return SegmentOut(
        id=segment.id,
        name=segment.name,
        distance=segment.distance,
        distance_display=format_distance_km(segment.distance),
        average_grade=segment.average_grade,
        total_elevation_gain=segment.total_elevation_gain,
        climb_category=segment.climb_category,
        city=segment.city,
        state=segment.state,
        country=segment.country,
    )
