"""Trigger model for eventlottery.

A trigger is anything from outside the process that asks for work: a
document write, a periodic tick, a deferred task callback or a direct call.
Each known trigger type names the payload fields its handler cannot work
without, and a trigger missing one is rejected when it is built, so a
malformed request never reaches the bus.
"""

import json
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

# Maximum payload size (1MB)
MAX_PAYLOAD_SIZE = 1_000_000

EVENT_WRITTEN = "events.written"
NOTIFICATION_WRITTEN = "notifications.written"
LOTTERY_REFRESH = "lottery.refresh"
LOTTERY_CALLBACK = "lottery.callback"
LOTTERY_DRAW_EARLY = "lottery.draw_early"
NOTIFICATION_CREATE = "notifications.create"

# Per trigger type, the payload fields it needs. Each entry is a group of
# alternative keys; one of them must hold a non-null value.
REQUIRED_FIELDS: dict[str, tuple[tuple[str, ...], ...]] = {
    EVENT_WRITTEN: (("collection",), ("documentId",)),
    NOTIFICATION_WRITTEN: (("collection",), ("documentId",)),
    LOTTERY_CALLBACK: (("eventId",),),
    LOTTERY_DRAW_EARLY: (("lotteryID", "eventId"),),
    NOTIFICATION_CREATE: (("title",), ("description",), ("recipientIds",)),
}

# Payload key naming the event or document a trigger is about, in preference order
_SUBJECT_KEYS: dict[str, tuple[str, ...]] = {
    EVENT_WRITTEN: ("documentId",),
    NOTIFICATION_WRITTEN: ("documentId",),
    LOTTERY_CALLBACK: ("eventId",),
    LOTTERY_DRAW_EARLY: ("lotteryID", "eventId"),
}


def written_trigger_type(collection: str) -> str:
    """Trigger type emitted for a committed write to ``collection``."""
    return f"{collection}.written"


class Trigger(BaseModel):
    """Immutable, validated trigger message.

    Attributes:
        id: UUID v4 string, auto-generated if not provided.
        timestamp: UTC datetime, auto-generated if not provided. Naive
            values are taken to be UTC.
        trigger_type: Non-empty string identifier for routing.
        payload: JSON-serializable dictionary (max 1MB when serialized)
            carrying every field ``REQUIRED_FIELDS`` lists for the type.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    trigger_type: str
    payload: dict[str, Any] = Field(default_factory=dict)

    model_config = {
        "extra": "forbid",
        "frozen": True,
    }

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        try:
            parsed = UUID(v)
        except ValueError:
            parsed = None
        if parsed is None or parsed.version != 4 or str(parsed) != v.lower():
            raise ValueError(f"id must be a valid UUID v4 string, got: {v!r}")
        return str(parsed)

    @field_validator("timestamp")
    @classmethod
    def validate_timestamp(cls, v: datetime) -> datetime:
        return v if v.tzinfo is not None else v.replace(tzinfo=UTC)

    @field_validator("trigger_type")
    @classmethod
    def validate_trigger_type(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("trigger_type must not be empty")
        return v

    @field_validator("payload")
    @classmethod
    def validate_payload(cls, v: dict[str, Any]) -> dict[str, Any]:
        """Ensure payload is strictly JSON-serializable and within size limits."""
        try:
            serialized = json.dumps(v)
        except (TypeError, ValueError) as e:
            raise ValueError(f"payload must be JSON-serializable: {e}") from e

        byte_length = len(serialized.encode("utf-8"))
        if byte_length > MAX_PAYLOAD_SIZE:
            raise ValueError(
                f"payload exceeds maximum size of {MAX_PAYLOAD_SIZE} bytes "
                f"(got {byte_length} bytes)"
            )
        return v

    @model_validator(mode="after")
    def validate_required_fields(self) -> "Trigger":
        missing = [
            " or ".join(group)
            for group in REQUIRED_FIELDS.get(self.trigger_type, ())
            if self.first(*group) is None
        ]
        if missing:
            raise ValueError(
                f"{self.trigger_type} is missing required fields: {', '.join(missing)}"
            )
        if self.trigger_type == NOTIFICATION_CREATE and not isinstance(
            self.payload["recipientIds"], list
        ):
            raise ValueError(f"{NOTIFICATION_CREATE} recipientIds must be a list")
        return self

    def first(self, *keys: str) -> Any:
        """Value of the first of ``keys`` present and non-null in the payload."""
        for key in keys:
            if self.payload.get(key) is not None:
                return self.payload[key]
        return None

    @property
    def subject_id(self) -> str | None:
        """Id of the event or document this trigger is about, if its type has one."""
        return self.first(*_SUBJECT_KEYS.get(self.trigger_type, ()))
