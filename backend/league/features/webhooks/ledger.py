"""
Webhook event ledger.

Every received event gets exactly one WebhookEvent row, written on
receipt and annotated once when processing ends. The ledger is also the
duplicate check: Strava redelivers an event with the same event_time
when it did not see a timely 200.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from league.shared.timestamps import utc_now
from .models import WebhookEvent
from .schemas import StravaWebhookEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Receipt:
    """Result of recording a delivery."""

    event_id: Optional[int]
    duplicate: bool = False
    status: str = "pending"


class WebhookLedger:
    """
    Persistence of webhook deliveries.

    With persist=False nothing is written (events are still processed);
    receipts then carry event_id=None and annotations are no-ops.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], persist: bool = True):
        self._session_factory = session_factory
        self.persist = persist

    @staticmethod
    def _delivery_query(event: StravaWebhookEvent):
        return select(WebhookEvent).where(
            WebhookEvent.object_type == event.object_type.value,
            WebhookEvent.aspect_type == event.aspect_type.value,
            WebhookEvent.object_id == event.object_id,
            WebhookEvent.event_time == event.event_time,
        )

    async def record(self, event: StravaWebhookEvent, payload: Optional[dict] = None) -> Receipt:
        """
        Insert the ledger row for a delivery.

        Returns:
            Receipt; duplicate=True when this exact delivery was seen before
        """
        if not self.persist:
            return Receipt(event_id=None)

        async with self._session_factory() as db:
            if event.event_time is not None:
                existing = (await db.execute(self._delivery_query(event))).scalars().first()
                if existing is not None:
                    return Receipt(existing.id, duplicate=True, status=existing.status)

            row = WebhookEvent(
                object_type=event.object_type.value,
                aspect_type=event.aspect_type.value,
                object_id=event.object_id,
                owner_id=event.owner_id,
                subscription_id=event.subscription_id,
                event_time=event.event_time,
                updates=event.updates or None,
                payload=payload,
                received_at=utc_now(),
            )
            db.add(row)
            try:
                await db.commit()
            except IntegrityError:
                # Same delivery recorded concurrently
                await db.rollback()
                existing = (await db.execute(self._delivery_query(event))).scalars().first()
                if existing is None:
                    raise
                return Receipt(existing.id, duplicate=True, status=existing.status)
            return Receipt(row.id)

    async def record_malformed(self, payload: object, reason: str) -> Optional[int]:
        """Store a rejected delivery, already annotated as failed."""
        logger.warning(f"Rejected webhook event: {reason}")
        if not self.persist:
            return None

        fields = payload if isinstance(payload, dict) else {}

        def _int_or_none(value):
            try:
                return int(value)
            except (TypeError, ValueError):
                return None

        now = utc_now()
        async with self._session_factory() as db:
            row = WebhookEvent(
                object_type=str(fields.get("object_type"))[:20] if fields.get("object_type") else None,
                aspect_type=str(fields.get("aspect_type"))[:20] if fields.get("aspect_type") else None,
                object_id=_int_or_none(fields.get("object_id")),
                owner_id=_int_or_none(fields.get("owner_id")),
                payload=payload if isinstance(payload, (dict, list)) else {"raw": str(payload)},
                received_at=now,
                processed=False,
                processed_at=now,
                error_message=reason,
                outcome="rejected",
            )
            db.add(row)
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                return None
            return row.id

    async def _annotate(self, event_id: Optional[int], **values) -> None:
        if event_id is None:
            return
        async with self._session_factory() as db:
            # Annotated once: later calls for the same row are ignored
            await db.execute(
                update(WebhookEvent)
                .where(WebhookEvent.id == event_id, WebhookEvent.processed_at.is_(None))
                .values(processed_at=utc_now(), **values)
            )
            await db.commit()

    async def mark_processed(self, event_id: Optional[int], outcome: str) -> None:
        await self._annotate(event_id, processed=True, outcome=outcome[:255])

    async def mark_failed(self, event_id: Optional[int], error: str) -> None:
        await self._annotate(event_id, processed=False, error_message=error, outcome="failed")

    async def get(self, event_id: int) -> Optional[WebhookEvent]:
        async with self._session_factory() as db:
            return await db.get(WebhookEvent, event_id)

    async def get_status(self) -> dict:
        """
        Ledger totals for operators.

        Returns:
            {"total", "processed", "failed", "pending", "last_received_at"}
        """
        async with self._session_factory() as db:
            result = await db.execute(
                select(
                    func.count(WebhookEvent.id),
                    func.count(WebhookEvent.id).filter(WebhookEvent.processed.is_(True)),
                    func.count(WebhookEvent.id).filter(
                        WebhookEvent.processed.is_(False), WebhookEvent.processed_at.is_not(None)
                    ),
                    func.count(WebhookEvent.id).filter(WebhookEvent.processed_at.is_(None)),
                    func.max(WebhookEvent.received_at),
                )
            )
            total, processed, failed, pending, last_received_at = result.one()

        return {
            "persist_events": self.persist,
            "total": total,
            "processed": processed,
            "failed": failed,
            "pending": pending,
            "last_received_at": last_received_at.isoformat() if last_received_at else None,
        }

    async def recent(self, limit: int = 50) -> list[WebhookEvent]:
        """Most recent ledger rows, newest first."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(WebhookEvent).order_by(WebhookEvent.id.desc()).limit(limit)
            )
            return list(result.scalars().all())
