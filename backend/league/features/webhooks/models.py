"""
Webhook database models.

Models:
- WebhookEvent: Ledger row per received Strava push event
- WebhookSubscription: Singleton record of our Strava push subscription
"""

from datetime import datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from league.models.base import Base


class WebhookEvent(Base):
    """
    Ledger of received push events.

    Inserted once on receipt, then annotated exactly once by the worker:
    processed=True, or processed=False with error_message. Rows with
    processed_at still NULL are in flight. Never replayed automatically.
    """

    __tablename__ = "webhook_events"
    __table_args__ = (
        # Strava redeliveries repeat the same event_time
        UniqueConstraint(
            "object_type", "aspect_type", "object_id", "event_time",
            name="uq_webhook_event_delivery",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)

    object_type = Column(String(20), nullable=True)
    aspect_type = Column(String(20), nullable=True)
    object_id = Column(BigInteger, nullable=True, index=True)
    owner_id = Column(BigInteger, nullable=True, index=True)
    subscription_id = Column(BigInteger, nullable=True)
    event_time = Column(Integer, nullable=True)
    updates = Column(JSON, nullable=True)
    payload = Column(JSON, nullable=True)  # raw body, kept for malformed events

    received_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    processed = Column(Boolean, nullable=False, default=False)
    processed_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)
    outcome = Column(String(255), nullable=True)  # e.g. "stored in 2 week(s)"

    @property
    def status(self) -> str:
        if self.processed_at is None:
            return "pending"
        return "processed" if self.processed else "failed"

    def __repr__(self):
        return (
            f"<WebhookEvent id={self.id} {self.object_type}:{self.aspect_type} "
            f"object_id={self.object_id} status={self.status}>"
        )


class WebhookSubscription(Base):
    """
    Our single Strava push subscription.

    Always stored with id=1; subscription_id is Strava's identifier.
    """

    __tablename__ = "webhook_subscriptions"

    SINGLETON_ID = 1

    id = Column(Integer, primary_key=True, autoincrement=False)
    subscription_id = Column(BigInteger, nullable=True)
    callback_url = Column(String(512), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    last_verified_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<WebhookSubscription strava_id={self.subscription_id} url={self.callback_url}>"
