"""
Strava Webhook Endpoints

- GET  /webhooks/strava - Subscription handshake (hub.challenge echo)
- POST /webhooks/strava - Event delivery; recorded, queued, acknowledged

Strava expects a 200 within 2 seconds, so the POST only writes the
ledger row and enqueues; matching and scoring happen on the worker.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.exc import SQLAlchemyError

from league.api.deps import get_services
from league.features.webhooks import (
    MalformedEventError,
    QueuedEvent,
    Receipt,
    VerificationError,
    parse_event,
)
from league.services import Services

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/webhooks/strava")
async def verify_subscription(
    hub_mode: Optional[str] = Query(None, alias="hub.mode"),
    hub_challenge: Optional[str] = Query(None, alias="hub.challenge"),
    hub_verify_token: Optional[str] = Query(None, alias="hub.verify_token"),
    services: Services = Depends(get_services),
):
    """Echo hub.challenge when the verify token matches."""
    try:
        return services.subscriptions.verify_challenge(hub_mode, hub_verify_token, hub_challenge)
    except VerificationError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/webhooks/strava")
async def receive_event(request: Request, services: Services = Depends(get_services)):
    """
    Receive a Strava push event.

    Always answers 200 for a well-formed request so Strava does not
    redeliver; the JSON status says what happened.
    """
    try:
        payload = await request.json()
    except ValueError:
        payload = (await request.body()).decode("utf-8", errors="replace")

    try:
        event = parse_event(payload)
    except MalformedEventError as e:
        try:
            await services.ledger.record_malformed(payload, str(e))
        except SQLAlchemyError as db_error:
            logger.error(f"Could not record rejected webhook event: {db_error}")
        return {"status": "rejected", "reason": str(e)}

    try:
        receipt = await services.ledger.record(event, payload)
    except SQLAlchemyError as e:
        logger.error(f"Could not record webhook event {event.key} {event.object_id}: {e}")
        receipt = Receipt(event_id=None)

    if receipt.duplicate:
        logger.info(f"Duplicate webhook delivery {event.key} {event.object_id} (ledger #{receipt.event_id}, {receipt.status})")
        return {"status": "duplicate", "event_id": receipt.event_id}

    if not services.webhook_queue.submit(QueuedEvent(event, receipt.event_id)):
        try:
            await services.ledger.mark_failed(receipt.event_id, "webhook queue full or stopped")
        except SQLAlchemyError as e:
            logger.error(f"Could not mark dropped webhook event #{receipt.event_id} as failed: {e}")
        return {"status": "dropped", "event_id": receipt.event_id}

    return {"status": "accepted", "event_id": receipt.event_id}
