"""Pytest configuration, Hypothesis profiles and shared fixtures."""

import random
from datetime import UTC, datetime, timedelta

import pytest
from hypothesis import settings

from eventlottery.config import LotterySettings
from eventlottery.lottery.scheduler import LotteryScheduler
from eventlottery.notifications.dispatcher import NotificationDispatcher
from eventlottery.push.inmemory import InMemoryPushGateway
from eventlottery.scheduling.base import ManualClock
from eventlottery.scheduling.inmemory import InMemoryTaskScheduler
from eventlottery.store.base import EVENTS, USERS
from eventlottery.store.inmemory import InMemoryDocumentStore

settings.register_profile("ci", max_examples=100)
settings.register_profile("dev", max_examples=20)

# Load dev profile by default, CI can override via --hypothesis-profile=ci
settings.load_profile("dev")

START = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START)


@pytest.fixture
def lottery_settings() -> LotterySettings:
    return LotterySettings(project_id="test-project", redis_url=None)


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def tasks(clock) -> InMemoryTaskScheduler:
    return InMemoryTaskScheduler(clock=clock)


@pytest.fixture
def push() -> InMemoryPushGateway:
    return InMemoryPushGateway()


@pytest.fixture
def notifications(store, push, clock) -> NotificationDispatcher:
    return NotificationDispatcher(store, push, clock=clock)


@pytest.fixture
def lottery(store, tasks, notifications, lottery_settings, clock) -> LotteryScheduler:
    return LotteryScheduler(
        store, tasks, notifications, lottery_settings, clock=clock, rng=random.Random(7)
    )


@pytest.fixture
def seed_users(store):
    """Create users with device tokens; extra fields apply to every user."""

    async def seed(user_ids, **fields):
        for user_id in user_ids:
            await store.create(USERS, user_id, {"fcmToken": f"token-{user_id}", **fields})
        return list(user_ids)

    return seed


@pytest.fixture
def seed_event(store, clock):
    """Create an event whose registration ends ``ends_in`` from now."""

    async def seed(
        event_id="event-1",
        ends_in=timedelta(days=2),
        waiting_list=None,
        max_attendees=None,
        **fields,
    ):
        data = {
            "name": "Spring Gala",
            "organizerId": "organizer-1",
            "registrationEndTime": clock() + ends_in,
            "maxAttendees": max_attendees,
            "waitingList": list(waiting_list) if waiting_list is not None else [],
            "invites": [],
            "lotteryComplete": False,
            "lotteryTaskHandle": None,
        }
        data.update(fields)
        await store.create(EVENTS, event_id, data)
        return await store.get(EVENTS, event_id)

    return seed
