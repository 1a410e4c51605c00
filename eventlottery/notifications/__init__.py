"""Notification dispatch."""

from eventlottery.notifications.dispatcher import (
    DeliveryReport,
    NotificationDispatcher,
    StoredNotification,
)

__all__ = ["DeliveryReport", "NotificationDispatcher", "StoredNotification"]
