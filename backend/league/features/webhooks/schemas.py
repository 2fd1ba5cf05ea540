"""
Strava push event schema.

Payload:
    {
        "aspect_type": "create" | "update" | "delete",
        "object_type": "activity" | "athlete",
        "object_id": 1360128428,
        "owner_id": 134815,
        "subscription_id": 120475,
        "event_time": 1516126040,
        "updates": {"title": "Messy"} | {"authorized": "false"}
    }
"""

from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from league.shared.constants import AspectType, ObjectType


class MalformedEventError(ValueError):
    """Webhook payload is missing required fields or has invalid values."""
    pass


class StravaWebhookEvent(BaseModel):
    """Validated push event."""

    object_type: ObjectType
    aspect_type: AspectType
    object_id: int
    owner_id: int
    subscription_id: Optional[int] = None
    event_time: Optional[int] = None
    updates: dict[str, Any] = Field(default_factory=dict)

    @property
    def key(self) -> str:
        return f"{self.object_type.value}:{self.aspect_type.value}"

    @property
    def is_deauthorization(self) -> bool:
        """athlete:update with updates.authorized == "false" (Strava sends a string)."""
        if self.object_type != ObjectType.ATHLETE or self.aspect_type != AspectType.UPDATE:
            return False
        authorized = self.updates.get("authorized")
        if authorized is None:
            return False
        return str(authorized).strip().lower() == "false"


def parse_event(payload: Any) -> StravaWebhookEvent:
    """
    Validate a raw webhook body.

    Raises:
        MalformedEventError: Not an object, or required fields missing/invalid
    """
    if not isinstance(payload, dict):
        raise MalformedEventError("Webhook body is not a JSON object")
    try:
        return StravaWebhookEvent.model_validate(payload)
    except ValidationError as e:
        problems = ", ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise MalformedEventError(f"Malformed webhook event ({problems})") from e
