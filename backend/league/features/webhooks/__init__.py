"""
Strava webhooks module.

Usage:
    from league.features.webhooks import parse_event, WebhookEventProcessor

Components:
- parse_event: Payload validation (MalformedEventError)
- WebhookLedger: One row per delivery, annotated processed/failed
- WebhookEventQueue: Bounded background queue with workers
- WebhookEventProcessor: create/update/delete/deauthorize handling
- SubscriptionManager: Push subscription lifecycle and handshake
- SubscriptionMonitor: Periodic subscription check and re-registration

Models:
- WebhookEvent: Delivery ledger
- WebhookSubscription: Singleton subscription record
"""

from .models import WebhookEvent, WebhookSubscription
from .schemas import (
    StravaWebhookEvent,
    MalformedEventError,
    parse_event,
)
from .ledger import WebhookLedger, Receipt
from .queue import (
    WebhookEventQueue,
    QueuedEvent,
    QueueStats,
)
from .processor import WebhookEventProcessor
from .subscription import (
    SubscriptionManager,
    SubscriptionMonitor,
    SubscriptionConfig,
    SubscriptionState,
    VerificationError,
)

__all__ = [
    # Models
    "WebhookEvent",
    "WebhookSubscription",
    # Schemas
    "StravaWebhookEvent",
    "MalformedEventError",
    "parse_event",
    # Ledger
    "WebhookLedger",
    "Receipt",
    # Queue
    "WebhookEventQueue",
    "QueuedEvent",
    "QueueStats",
    # Processing
    "WebhookEventProcessor",
    # Subscription
    "SubscriptionManager",
    "SubscriptionMonitor",
    "SubscriptionConfig",
    "SubscriptionState",
    "VerificationError",
]
