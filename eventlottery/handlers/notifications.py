"""Handlers that drive the notification dispatcher."""

from eventlottery.core.handler import TriggerHandler
from eventlottery.core.trigger import NOTIFICATION_CREATE, NOTIFICATION_WRITTEN, Trigger
from eventlottery.handlers.payloads import change_from_trigger
from eventlottery.notifications.dispatcher import NotificationDispatcher


class _NotificationHandler(TriggerHandler):
    def __init__(self, notifications: NotificationDispatcher, name: str | None = None) -> None:
        super().__init__(name=name)
        self.notifications = notifications


class NotificationWrittenHandler(_NotificationHandler):
    """Delivers or withdraws a notification when its document is written."""

    listens_to = [NOTIFICATION_WRITTEN]

    async def handle(self, trigger: Trigger) -> None:
        await self.notifications.handle_notification_change(change_from_trigger(trigger))


class CreateNotificationHandler(_NotificationHandler):
    """Creates and delivers a notification on direct request."""

    listens_to = [NOTIFICATION_CREATE]

    async def handle(self, trigger: Trigger) -> None:
        payload = trigger.payload
        await self.notifications.create_notification(
            payload["title"],
            payload["description"],
            list(payload["recipientIds"]),
            event_id=payload.get("eventId"),
            organizer_id=payload.get("organizerId"),
        )
