"""Notification creation, fan-out, delivery and withdrawal.

A notification is one document in ``notifications`` plus one delivery
record per recipient in ``userNotifications``. Delivery resolves each
recipient's device token and opt-out flag, marks the delivery records of
everyone a push was dispatched to, and multicasts through the push gateway.
Withdrawal pushes a deletion marker to the devices that got the original.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from eventlottery.domain.models import (
    DeliveryRecord,
    Notification,
    UserProfile,
)
from eventlottery.push.base import MulticastResult, PushGateway, PushMessage
from eventlottery.scheduling.base import Clock, utcnow
from eventlottery.store.base import (
    NOTIFICATIONS,
    USER_NOTIFICATIONS,
    USERS,
    DocumentChange,
    DocumentStore,
    new_document_id,
)

logger = logging.getLogger("eventlottery.notifications")

WON_TITLE = "Won event lottery"
WON_BODY = "You were selected to attend {name}!"
LOST_TITLE = "Lost event lottery"
LOST_BODY = "A lottery was run for {name}. You were not selected this time."
DELETED_TITLE = "Deleted"
DELETED_BODY = "Deleted notification"


@dataclass(frozen=True)
class DeliveryReport:
    """What one push attempt reached."""

    recipients: int = 0
    targeted_users: list[str] = field(default_factory=list)
    success_count: int = 0
    failure_count: int = 0

    @property
    def tokens(self) -> int:
        return len(self.targeted_users)


@dataclass(frozen=True)
class StoredNotification:
    notification: Notification
    recipient_ids: list[str]


class NotificationDispatcher:
    """Creates notifications and pushes them to recipients' devices.

    Args:
        store: Document store holding notifications, delivery records and users.
        push: Gateway used for multicast delivery.
        clock: Source of creation timestamps.
        id_factory: Generates notification ids.
    """

    def __init__(
        self,
        store: DocumentStore,
        push: PushGateway,
        clock: Clock = utcnow,
        id_factory: Callable[[], str] = new_document_id,
    ) -> None:
        self._store = store
        self._push = push
        self._clock = clock
        self._id_factory = id_factory

    async def notify_of_lottery(
        self,
        event_id: str,
        event_name: str | None,
        winner_ids: list[str],
        loser_ids: list[str],
    ) -> None:
        """Tell winners and losers of a draw, one notification per group."""
        name = event_name or "an event"
        logger.info(
            f"Notifying {len(winner_ids)} winners and {len(loser_ids)} losers",
            extra={"event_id": event_id},
        )
        await asyncio.gather(
            self.create_notification(
                WON_TITLE, WON_BODY.format(name=name), winner_ids, event_id=event_id
            ),
            self.create_notification(
                LOST_TITLE, LOST_BODY.format(name=name), loser_ids, event_id=event_id
            ),
        )

    async def create_notification(
        self,
        title: str,
        description: str,
        recipient_ids: list[str],
        event_id: str | None = None,
        organizer_id: str | None = None,
    ) -> str | None:
        """Record a notification with its delivery records, then deliver it.

        The notification is stored already marked sent because this call
        delivers it itself; the write trigger only dispatches notifications
        stored unsent by other writers.

        Returns:
            The new notification id, or None when there are no recipients.
        """
        recipients = list(dict.fromkeys(recipient_ids))
        if not recipients:
            return None

        notification = Notification(
            id=self._id_factory(),
            event_id=event_id,
            organizer_id=organizer_id,
            title=title,
            description=description,
            creation_date=self._clock(),
            sent=True,
            deleted=False,
        )

        batch = self._store.batch()
        for recipient_id in recipients:
            record = DeliveryRecord(
                id=self._store.new_id(),
                user_id=recipient_id,
                notification_id=notification.id,
                sent=False,
            )
            batch.create(USER_NOTIFICATIONS, record.id, record.to_document())
        await batch.commit()

        await self._store.create(NOTIFICATIONS, notification.id, notification.to_document())
        logger.info(
            f"Created notification for {len(recipients)} recipients",
            extra={"notification_id": notification.id, "event_id": event_id},
        )

        await self.send_notification(notification, recipients)
        return notification.id

    async def _load_profiles(
        self, recipient_ids: list[str], fields: list[str]
    ) -> list[UserProfile]:
        snapshots = await self._store.get_all(USERS, recipient_ids, field_mask=fields)
        profiles = []
        for snapshot in snapshots:
            if not snapshot.exists:
                logger.debug(f"Recipient {snapshot.id} has no user document")
                continue
            profiles.append(UserProfile.from_snapshot(snapshot))
        return profiles

    async def _mark_delivery_sent(self, notification_id: str, user_ids: list[str]) -> None:
        if not user_ids:
            return
        queries = await asyncio.gather(
            *(
                self._store.query(
                    USER_NOTIFICATIONS, {"userId": user_id, "notificationId": notification_id}
                )
                for user_id in user_ids
            )
        )
        batch = self._store.batch()
        for records in queries:
            for record in records:
                batch.set(USER_NOTIFICATIONS, record.id, {"sent": True}, merge=True)
        await batch.commit()

    async def _multicast(self, message: PushMessage, notification_id: str) -> MulticastResult:
        result = await self._push.send_multicast(message)
        extra = {
            "notification_id": notification_id,
            "success_count": result.success_count,
            "failure_count": result.failure_count,
        }
        if result.success_count == 0:
            logger.error("Failed to send message to any recipients", extra=extra)
        elif result.failure_count > 0:
            logger.warning("Failed to send to some recipients", extra=extra)
        else:
            logger.debug("Sent message to all recipients", extra=extra)
        return result

    async def send_notification(
        self, notification: Notification, recipient_ids: list[str]
    ) -> DeliveryReport:
        """Push a notification to every recipient with a token who has not opted out.

        Delivery records of targeted recipients are marked sent whatever the
        gateway reports: ``sent`` tracks the dispatch, not the receipt.
        """
        if not recipient_ids:
            return DeliveryReport()

        category = notification.category
        targeted: list[UserProfile] = []
        for profile in await self._load_profiles(recipient_ids, UserProfile.PUSH_FIELDS):
            if profile.fcm_token is None:
                continue
            if not profile.preference(category).allows:
                logger.debug(
                    f"Recipient {profile.id} opted out of {category.value}",
                    extra={"notification_id": notification.id},
                )
                continue
            targeted.append(profile)

        targeted_ids = [profile.id for profile in targeted]
        await self._mark_delivery_sent(notification.id, targeted_ids)

        if not targeted:
            logger.debug(
                "No recipient tokens, nothing to push",
                extra={"notification_id": notification.id},
            )
            return DeliveryReport(recipients=len(recipient_ids))

        message = PushMessage(
            tokens=[profile.fcm_token for profile in targeted],
            data={
                "id": notification.id,
                "eventId": notification.event_id or "",
                "deleted": "false",
            },
            title=notification.title,
            body=notification.description,
            collapse_key=notification.id,
        )
        result = await self._multicast(message, notification.id)
        return DeliveryReport(
            recipients=len(recipient_ids),
            targeted_users=targeted_ids,
            success_count=result.success_count,
            failure_count=result.failure_count,
        )

    async def delete_notification(
        self, notification_id: str, recipient_ids: list[str]
    ) -> DeliveryReport:
        """Ask devices that received a notification to withdraw it.

        Only recipients whose delivery record was marked sent are targeted.
        """
        if not recipient_ids:
            return DeliveryReport()

        records = await self._store.query(USER_NOTIFICATIONS, {"notificationId": notification_id})
        sent_to = {
            delivery.user_id
            for delivery in map(DeliveryRecord.from_snapshot, records)
            if delivery.was_sent
        }
        candidates = [user_id for user_id in recipient_ids if user_id in sent_to]

        targeted = [
            profile
            for profile in await self._load_profiles(candidates, ["fcmToken"])
            if profile.fcm_token is not None
        ]

        if not targeted:
            logger.debug(
                "No recipient tokens, nothing to withdraw",
                extra={"notification_id": notification_id},
            )
            return DeliveryReport(recipients=len(recipient_ids))

        message = PushMessage(
            tokens=[profile.fcm_token for profile in targeted],
            data={"id": notification_id, "deleted": "true"},
            title=DELETED_TITLE,
            body=DELETED_BODY,
            collapse_key=notification_id,
        )
        result = await self._multicast(message, notification_id)
        return DeliveryReport(
            recipients=len(recipient_ids),
            targeted_users=[profile.id for profile in targeted],
            success_count=result.success_count,
            failure_count=result.failure_count,
        )

    async def get_notification(self, notification_id: str) -> StoredNotification | None:
        """Load a notification and the recipients of its delivery records."""
        snapshot, records = await asyncio.gather(
            self._store.get(NOTIFICATIONS, notification_id),
            self._store.query(USER_NOTIFICATIONS, {"notificationId": notification_id}),
        )
        if not snapshot.exists:
            return None
        recipient_ids = list(dict.fromkeys(record.get("userId") for record in records))
        return StoredNotification(Notification.from_snapshot(snapshot), recipient_ids)

    async def mark_notification_sent(self, notification_id: str) -> None:
        await self._store.set(NOTIFICATIONS, notification_id, {"sent": True}, merge=True)

    async def handle_notification_change(self, change: DocumentChange) -> None:
        """React to a write of a notification document.

        A notification stored unsent is delivered and then marked sent; one
        that became deleted is withdrawn. Everything else is a no-op, so
        re-firing on a sent notification pushes nothing.
        """
        if not change.after.exists:
            return

        notification_id = change.document_id
        stored = await self.get_notification(notification_id)
        if stored is None:
            logger.error(
                "Tried to load notification from database and failed",
                extra={"notification_id": notification_id},
            )
            return

        notification = stored.notification
        if notification.deleted:
            if change.before.get("deleted") is True:
                logger.debug(
                    "Notification already withdrawn", extra={"notification_id": notification_id}
                )
                return
            await self.delete_notification(notification.id, stored.recipient_ids)
        elif not notification.sent:
            await self.send_notification(notification, stored.recipient_ids)
            await self.mark_notification_sent(notification.id)
