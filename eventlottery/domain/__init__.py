"""Document models."""

from eventlottery.domain.models import (
    DeliveryRecord,
    EventRecord,
    Invitation,
    Notification,
    NotificationCategory,
    NotificationPreference,
    UserProfile,
)

__all__ = [
    "DeliveryRecord",
    "EventRecord",
    "Invitation",
    "Notification",
    "NotificationCategory",
    "NotificationPreference",
    "UserProfile",
]
