"""Document models.

Documents are stored with camelCase field names; the models expose them as
snake_case attributes. Unknown fields are kept so a read-modify-write never
drops data owned by other parts of the app.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, ClassVar, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from eventlottery.store.base import DocumentSnapshot


class _Document(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    id: str

    @classmethod
    def from_snapshot(cls, snapshot: DocumentSnapshot) -> Self:
        return cls.model_validate({**snapshot.to_dict(), "id": snapshot.id})

    def to_document(self) -> dict[str, Any]:
        """Field data as stored, without the id (it is the document key)."""
        return self.model_dump(by_alias=True, exclude={"id"})


class EventRecord(_Document):
    """An event with a registration deadline and a capacity-limited lottery.

    ``waiting_list`` and ``organizer_id`` are optional here only so malformed
    documents can be read and reported; the draw refuses to run without them.
    """

    name: str | None = None
    registration_end_time: datetime | None = None
    max_attendees: int | None = None
    organizer_id: str | None = None
    waiting_list: list[str] | None = None
    invites: list[str] = Field(default_factory=list)
    lottery_complete: bool = False
    lottery_task_handle: str | None = None

    @field_validator("invites", mode="before")
    @classmethod
    def _null_invites(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("lottery_complete", mode="before")
    @classmethod
    def _null_complete(cls, v: Any) -> Any:
        return False if v is None else v

    @property
    def has_task(self) -> bool:
        return self.lottery_task_handle is not None


class Invitation(_Document):
    """Created once per lottery winner."""

    event_id: str
    organizer_id: str
    recipient_id: str
    send_time: datetime = Field(default_factory=lambda: datetime.now(UTC))
    accepted: bool = False
    cancelled: bool = False
    cancel_time: datetime | None = None
    response_time: datetime | None = None


class NotificationCategory(Enum):
    """Who a notification comes from; the value is the user's opt-out flag field."""

    ORGANIZER = "organizerNotifications"
    SYSTEM = "systemNotifications"


class NotificationPreference(Enum):
    """A user's setting for one notification category.

    Users opt out: an unset flag allows notifications.
    """

    ENABLED = "enabled"
    DISABLED = "disabled"
    UNSET = "unset"

    @classmethod
    def from_flag(cls, flag: bool | None) -> "NotificationPreference":
        if flag is None:
            return cls.UNSET
        return cls.ENABLED if flag else cls.DISABLED

    @property
    def allows(self) -> bool:
        return self is not NotificationPreference.DISABLED


class Notification(_Document):
    event_id: str | None = None
    organizer_id: str | None = None
    title: str
    description: str
    creation_date: datetime = Field(default_factory=lambda: datetime.now(UTC))
    sent: bool = False
    deleted: bool = False

    @property
    def category(self) -> NotificationCategory:
        if self.organizer_id is not None:
            return NotificationCategory.ORGANIZER
        return NotificationCategory.SYSTEM


class DeliveryRecord(_Document):
    """Tracks one notification for one recipient.

    ``sent`` is None when the stored record has no such field; those
    count as sent.
    """

    user_id: str
    notification_id: str
    sent: bool | None = None

    @property
    def was_sent(self) -> bool:
        return self.sent is not False


class UserProfile(_Document):
    """The slice of a user document the dispatcher reads."""

    fcm_token: str | None = None
    organizer_notifications: bool | None = None
    system_notifications: bool | None = None

    PUSH_FIELDS: ClassVar[list[str]] = ["fcmToken", "organizerNotifications", "systemNotifications"]

    def preference(self, category: NotificationCategory) -> NotificationPreference:
        if category is NotificationCategory.ORGANIZER:
            return NotificationPreference.from_flag(self.organizer_notifications)
        return NotificationPreference.from_flag(self.system_notifications)
