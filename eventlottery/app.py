"""Application wiring and demo entry point.

Every client is constructed here once and handed to the components that
need it; nothing else in the package holds process-wide state.

Usage:
    python -m eventlottery.app
"""

import asyncio
import random
from dataclasses import dataclass, field
from datetime import timedelta

from eventlottery.backends.base import TriggerBackend
from eventlottery.backends.inmemory import InMemoryBackend
from eventlottery.backends.redis_backend import RedisBackend
from eventlottery.config import LotterySettings
from eventlottery.core.bus import TriggerBus
from eventlottery.core.logging import configure_logging
from eventlottery.core.trigger import LOTTERY_CALLBACK, LOTTERY_REFRESH, Trigger
from eventlottery.handlers import (
    CreateNotificationHandler,
    DrawLotteryEarlyHandler,
    EventWrittenHandler,
    LotteryCallbackHandler,
    NotificationWrittenHandler,
    RefreshLotteriesHandler,
    change_to_trigger,
)
from eventlottery.lottery.scheduler import DrawResult, LotteryScheduler
from eventlottery.notifications.dispatcher import NotificationDispatcher
from eventlottery.push.base import PushGateway
from eventlottery.push.inmemory import InMemoryPushGateway
from eventlottery.scheduling.base import (
    Clock,
    DeliveringTaskScheduler,
    ManualClock,
    ScheduledTask,
    utcnow,
)
from eventlottery.scheduling.inmemory import InMemoryTaskScheduler
from eventlottery.scheduling.redis_scheduler import RedisTaskScheduler
from eventlottery.scheduling.ticker import PeriodicTicker
from eventlottery.store.base import EVENTS, NOTIFICATIONS, USERS, DocumentChange, DocumentStore
from eventlottery.store.inmemory import InMemoryDocumentStore
from eventlottery.store.redis_store import RedisDocumentStore

TRIGGERED_COLLECTIONS = (EVENTS, NOTIFICATIONS)


@dataclass
class LotteryApp:
    """The assembled system."""

    settings: LotterySettings
    store: DocumentStore
    tasks: DeliveringTaskScheduler
    push: PushGateway
    backend: TriggerBackend
    notifications: NotificationDispatcher
    lottery: LotteryScheduler
    bus: TriggerBus
    ticker: PeriodicTicker
    clock: Clock = utcnow
    _stopped: asyncio.Event = field(default_factory=asyncio.Event)

    async def draw_lottery_early(self, event_id: str) -> DrawResult | None:
        """Draw now, on the caller's behalf; failures are raised to the caller."""
        return await self.lottery.draw_lottery(event_id, early=True)

    async def create_notification(
        self,
        title: str,
        description: str,
        recipient_ids: list[str],
        event_id: str | None = None,
        organizer_id: str | None = None,
    ) -> str | None:
        return await self.notifications.create_notification(
            title, description, recipient_ids, event_id=event_id, organizer_id=organizer_id
        )

    async def pump(self) -> int:
        """Fire due deferred tasks, then process triggers until none are left.

        Returns:
            Number of tasks fired.
        """
        fired = await self.tasks.fire_due(self.clock())
        await self.bus.drain()
        return fired

    async def _pump_tasks(self, poll_interval: float) -> None:
        while not self._stopped.is_set():
            await self.tasks.fire_due(self.clock())
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=poll_interval)
            except TimeoutError:
                pass

    async def serve(self, poll_interval: float = 1.0) -> None:
        """Run the trigger bus, refresh ticker and task pump until stop()."""
        self._stopped.clear()
        async with asyncio.TaskGroup() as group:
            group.create_task(self.bus.run())
            group.create_task(self.ticker.run())
            group.create_task(self._pump_tasks(poll_interval))
            await self._stopped.wait()
            self.bus.stop()
            self.ticker.stop()

    def stop(self) -> None:
        self._stopped.set()

    async def close(self) -> None:
        for client in (self.backend, self.store, self.tasks):
            close = getattr(client, "close", None)
            if close is not None:
                await close()


def build_app(
    settings: LotterySettings | None = None,
    store: DocumentStore | None = None,
    tasks: DeliveringTaskScheduler | None = None,
    push: PushGateway | None = None,
    backend: TriggerBackend | None = None,
    clock: Clock = utcnow,
    rng: random.Random | None = None,
) -> LotteryApp:
    """Construct every client and component and wire them together.

    Clients not passed in are created from ``settings``: Redis-backed when
    ``redis_url`` is set, in-memory otherwise. The push gateway defaults to
    the in-memory recorder.
    """
    settings = settings or LotterySettings()
    redis_url = settings.redis_url

    if store is None:
        store = RedisDocumentStore(redis_url) if redis_url else InMemoryDocumentStore()
    if tasks is None:
        tasks = (
            RedisTaskScheduler(redis_url, max_lead=settings.scheduler_max_lead, clock=clock)
            if redis_url
            else InMemoryTaskScheduler(max_lead=settings.scheduler_max_lead, clock=clock)
        )
    if backend is None:
        backend = (
            RedisBackend(redis_url, max_deliveries=settings.max_deliveries)
            if redis_url
            else InMemoryBackend(max_deliveries=settings.max_deliveries)
        )
    push = push or InMemoryPushGateway()

    notifications = NotificationDispatcher(store, push, clock=clock)
    lottery = LotteryScheduler(store, tasks, notifications, settings, clock=clock, rng=rng)

    async def forward_write(change: DocumentChange) -> None:
        if change.collection in TRIGGERED_COLLECTIONS:
            await backend.enqueue(change_to_trigger(change))

    async def deliver_task(task: ScheduledTask) -> None:
        await backend.enqueue(Trigger(trigger_type=LOTTERY_CALLBACK, payload=task.payload))

    async def emit_refresh() -> None:
        await backend.enqueue(Trigger(trigger_type=LOTTERY_REFRESH))

    store.add_write_listener(forward_write)
    tasks.set_delivery(deliver_task)

    bus = TriggerBus(
        handlers=[
            EventWrittenHandler(lottery),
            RefreshLotteriesHandler(lottery),
            LotteryCallbackHandler(lottery),
            DrawLotteryEarlyHandler(lottery),
            NotificationWrittenHandler(notifications),
            CreateNotificationHandler(notifications),
        ],
        backend=backend,
        handler_failure_mode=settings.handler_failure_mode,
        pull_timeout=0.05 if isinstance(backend, InMemoryBackend) else 1.0,
    )
    # A restart must not push the next refresh a whole interval out
    ticker = PeriodicTicker(settings.refresh_interval, emit_refresh, run_immediately=True)

    return LotteryApp(
        settings=settings,
        store=store,
        tasks=tasks,
        push=push,
        backend=backend,
        notifications=notifications,
        lottery=lottery,
        bus=bus,
        ticker=ticker,
        clock=clock,
    )


async def run_demo(waiting: int = 20, seats: int = 5) -> LotteryApp:
    """Run one lottery end to end on in-memory clients with a simulated clock."""
    clock = ManualClock()
    settings = LotterySettings(project_id="demo-project", redis_url=None)
    app = build_app(settings, clock=clock)

    user_ids = [f"u{i}" for i in range(1, waiting + 1)]
    for user_id in user_ids:
        await app.store.create(USERS, user_id, {"fcmToken": f"token-{user_id}"})

    await app.store.create(
        EVENTS,
        "demo-event",
        {
            "name": "Demo Night",
            "organizerId": "organizer-1",
            "registrationEndTime": clock() + timedelta(days=2),
            "maxAttendees": seats,
            "waitingList": user_ids,
            "invites": [],
            "lotteryComplete": False,
        },
    )
    await app.pump()

    clock.advance(timedelta(days=2, seconds=1))
    await app.pump()
    return app


def main() -> None:
    """Main entry point for the lottery demo."""
    configure_logging(LotterySettings().log_level)
    app = asyncio.run(run_demo())
    print(f"Push messages sent: {len(app.push.sent)}")
    for message in app.push.sent:
        print(f"  {message.title}: {len(message.tokens)} devices")


if __name__ == "__main__":
    main()
