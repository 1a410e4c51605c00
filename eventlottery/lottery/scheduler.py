"""Lottery scheduling and drawing.

Each event moves through three states: no task, task scheduled, complete.
A deferred task fires the draw at the registration deadline, so no process
has to stay alive waiting for it. The task service only accepts tasks a
limited time ahead, so events further out than the horizon are left alone
and picked up by the periodic refresh once they come within it.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from eventlottery.config import LotterySettings
from eventlottery.core.errors import (
    DataIntegrityError,
    DocumentNotFoundError,
    PreconditionFailedError,
    TaskNotFoundError,
)
from eventlottery.domain.models import EventRecord, Invitation
from eventlottery.lottery.draw import draw_winners, invite_count
from eventlottery.notifications.dispatcher import NotificationDispatcher
from eventlottery.scheduling.base import Clock, HttpTarget, TaskScheduler, utcnow
from eventlottery.store.base import (
    EVENTS,
    INVITATIONS,
    DocumentChange,
    DocumentSnapshot,
    DocumentStore,
)

logger = logging.getLogger("eventlottery.lottery")


class ScheduleOutcome(Enum):
    """What queue_lottery_task did for an event."""

    SCHEDULED = "scheduled"
    DRAWN = "drawn"
    BEYOND_HORIZON = "beyond_horizon"
    ALREADY_COMPLETE = "already_complete"
    ALREADY_SCHEDULED = "already_scheduled"
    INVALID = "invalid"


@dataclass(frozen=True)
class DrawResult:
    event_id: str
    winner_ids: list[str]
    remaining_ids: list[str]
    invitation_ids: list[str]


def _as_utc(moment: datetime) -> datetime:
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=UTC)


class LotteryScheduler:
    """Owns when each event's lottery runs, and runs it.

    Args:
        store: Document store holding events and invitations.
        tasks: Deferred task scheduler used to fire draws on time.
        notifications: Dispatcher told about every draw's winners and losers.
        settings: Horizon, queue and callback configuration.
        clock: Source of the current time.
        rng: Random source for draws. Defaults to the OS entropy source.
    """

    def __init__(
        self,
        store: DocumentStore,
        tasks: TaskScheduler,
        notifications: NotificationDispatcher,
        settings: LotterySettings,
        clock: Clock = utcnow,
        rng: random.Random | None = None,
    ) -> None:
        self._store = store
        self._tasks = tasks
        self._notifications = notifications
        self._settings = settings
        self._clock = clock
        self._rng = rng or random.SystemRandom()

    async def handle_event_change(self, change: DocumentChange) -> None:
        """Create, move or cancel the lottery task after an event write.

        Changes can be delivered well after they were committed, so the
        task is always cancelled and queued against the event as it is now,
        never against ``change.after``.
        """
        event_id = change.document_id

        if not change.after.exists:
            logger.debug("Event deleted", extra={"event_id": event_id})
            await self.cancel_lottery_task(
                event_id, change.before.get("lotteryTaskHandle"), clear=False
            )
            return

        if not change.before.exists:
            logger.debug("Event created", extra={"event_id": event_id})
            current = await self._store.get(EVENTS, event_id)
            if current.exists:
                await self.queue_lottery_task(current)
            return

        time_before = change.before.get("registrationEndTime")
        time_after = change.after.get("registrationEndTime")
        if time_before is None or time_after is None:
            logger.warning(
                f'Ignoring {event_id} since "registrationEndTime" is null',
                extra={"event_id": event_id},
            )
            return
        if _as_utc(time_before) == _as_utc(time_after):
            return

        current = await self._store.get(EVENTS, event_id)
        if not current.exists:
            return
        logger.info("Registration end moved, rescheduling lottery", extra={"event_id": event_id})
        await self.cancel_lottery_task(event_id, current.get("lotteryTaskHandle"))
        # Re-read so the cleared handle is seen
        await self.queue_lottery_task(await self._store.get(EVENTS, event_id))

    async def refresh_lotteries(self) -> int:
        """Queue every pending lottery that has no task yet.

        Events beyond the horizon when they were written only get a task
        this way, so this must run at least once per horizon. One event
        failing does not stop the others from being queued; the first
        failure is re-raised once every event has been tried.

        Returns:
            Number of events that were scheduled or drawn.
        """
        snapshots = await self._store.list_documents(EVENTS)
        pending = [
            snapshot
            for snapshot in snapshots
            if not snapshot.get("lotteryComplete") and snapshot.get("lotteryTaskHandle") is None
        ]
        logger.info(
            f"Refreshing {len(pending)} of {len(snapshots)} events",
            extra={"pending": len(pending)},
        )
        outcomes = await asyncio.gather(
            *(self.queue_lottery_task(s) for s in pending), return_exceptions=True
        )

        errors = []
        for snapshot, outcome in zip(pending, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    f"Failed to queue lottery: {outcome}", extra={"event_id": snapshot.id}
                )
                errors.append(outcome)
        if errors:
            raise errors[0]
        return sum(
            1 for outcome in outcomes
            if outcome in (ScheduleOutcome.SCHEDULED, ScheduleOutcome.DRAWN)
        )

    async def queue_lottery_task(self, snapshot: DocumentSnapshot) -> ScheduleOutcome:
        """Schedule the draw for an event, or draw now if its deadline passed.

        Does nothing for complete events, events that already have a task,
        and events whose deadline is at least the horizon away.
        """
        event = EventRecord.from_snapshot(snapshot)
        extra = {"event_id": event.id}

        if event.lottery_complete:
            return ScheduleOutcome.ALREADY_COMPLETE
        if event.has_task:
            return ScheduleOutcome.ALREADY_SCHEDULED
        if event.registration_end_time is None:
            logger.warning(
                f'Ignoring {event.id} since "registrationEndTime" is null', extra=extra
            )
            return ScheduleOutcome.INVALID

        draw_time = _as_utc(event.registration_end_time)
        delay = draw_time - self._clock()
        if delay >= self._settings.task_horizon:
            logger.debug(f"Lottery is {delay} away, waiting for a refresh", extra=extra)
            return ScheduleOutcome.BEYOND_HORIZON

        if delay.total_seconds() <= 0:
            logger.info("Registration already ended, drawing now", extra=extra)
            await self.draw_lottery(event.id, early=False)
            return ScheduleOutcome.DRAWN

        handle = await self._tasks.create(
            queue=self._settings.queue_path(),
            target=HttpTarget(url=self._settings.callback_url()),
            payload={"eventId": event.id},
            schedule_time=draw_time,
        )
        await self._store.update(EVENTS, event.id, {"lotteryTaskHandle": handle})
        logger.info(
            f"Scheduled lottery for {draw_time.isoformat()}",
            extra={**extra, "task": handle},
        )
        return ScheduleOutcome.SCHEDULED

    async def cancel_lottery_task(
        self, event_id: str, handle: str | None, clear: bool = True
    ) -> bool:
        """Cancel an outstanding task and, if ``clear``, forget its handle.

        Cancelling a task that already fired or was already cancelled is not
        an error, so callers need not agree on who cancels first.

        Returns:
            True if there was a handle to cancel.
        """
        if handle is None:
            return False

        try:
            await self._tasks.delete(handle)
        except TaskNotFoundError:
            logger.debug(f"Task {handle} was already gone", extra={"event_id": event_id})

        if clear:
            await self._store.update(EVENTS, event_id, {"lotteryTaskHandle": None})
        return True

    async def _load_event(self, event_id: str) -> EventRecord:
        snapshot = await self._store.get(EVENTS, event_id)
        if not snapshot.exists:
            raise DataIntegrityError(EVENTS, event_id, "<document>")
        event = EventRecord.from_snapshot(snapshot)
        if event.waiting_list is None:
            raise DataIntegrityError(EVENTS, event_id, "waitingList")
        if event.organizer_id is None:
            raise DataIntegrityError(EVENTS, event_id, "organizerId")
        return event

    async def draw_lottery(self, event_id: str, early: bool = False) -> DrawResult | None:
        """Draw winners from the waiting list and invite them.

        A draw happens at most once per event. ``early`` marks a draw made
        ahead of the deadline, whose scheduled task must also be cancelled.

        Returns:
            The draw result, or None if the event was already drawn, was
            drawn concurrently, or is malformed (logged, not retried).
        """
        extra = {"event_id": event_id}
        try:
            event = await self._load_event(event_id)
        except DataIntegrityError as e:
            logger.warning(f"Ignoring {event_id}: {e}", extra=extra)
            return None

        if event.lottery_complete:
            logger.info("Lottery already drawn", extra=extra)
            await self.cancel_lottery_task(event_id, event.lottery_task_handle)
            return None

        count = invite_count(event.max_attendees, len(event.invites), len(event.waiting_list))
        winners, remaining = draw_winners(event.waiting_list, count, self._rng)

        now = self._clock()
        invitations = [
            Invitation(
                id=self._store.new_id(),
                event_id=event_id,
                organizer_id=event.organizer_id,
                recipient_id=winner,
                send_time=now,
            )
            for winner in winners
        ]
        invitation_ids = [invitation.id for invitation in invitations]

        # The event update only applies while the lottery is still open, so
        # of two concurrent draws exactly one commits and the other writes nothing
        batch = self._store.batch()
        for invitation in invitations:
            batch.create(INVITATIONS, invitation.id, invitation.to_document())
        batch.update(
            EVENTS,
            event_id,
            {
                "lotteryComplete": True,
                "invites": event.invites + invitation_ids,
                "waitingList": remaining,
                "lotteryTaskHandle": None,
            },
            unless={"lotteryComplete": True},
        )
        try:
            await batch.commit()
        except PreconditionFailedError:
            logger.info("Lottery drawn concurrently, discarding this draw", extra=extra)
            return None
        except DocumentNotFoundError:
            logger.warning(f"Ignoring {event_id}: deleted while drawing", extra=extra)
            return None

        if early:
            await self.cancel_lottery_task(event_id, event.lottery_task_handle, clear=False)
        logger.info(
            f"Drew {len(winners)} winners, {len(remaining)} remain on the waiting list",
            extra={**extra, "early": early},
        )

        await self._notifications.notify_of_lottery(event_id, event.name, winners, remaining)
        return DrawResult(event_id, winners, remaining, invitation_ids)
