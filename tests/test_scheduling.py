"""Tests for the in-memory task scheduler, the manual clock and the ticker."""

import asyncio
from datetime import timedelta

import pytest

from eventlottery.core.errors import TaskNotFoundError, TaskSchedulingError
from eventlottery.scheduling.base import HttpTarget
from eventlottery.scheduling.inmemory import InMemoryTaskScheduler
from eventlottery.scheduling.ticker import PeriodicTicker

QUEUE = "projects/p/locations/us-central1/queues/firestore-lottery"
TARGET = HttpTarget(url="https://example.test/callback")


async def test_create_returns_handle_under_queue(tasks, clock):
    handle = await tasks.create(QUEUE, TARGET, {"eventId": "e1"}, clock() + timedelta(hours=1))

    assert handle.startswith(f"{QUEUE}/tasks/")
    assert tasks.get(handle).payload == {"eventId": "e1"}
    assert tasks.created_count == 1


async def test_create_beyond_max_lead_is_rejected(clock):
    tasks = InMemoryTaskScheduler(max_lead=timedelta(days=30), clock=clock)

    with pytest.raises(TaskSchedulingError):
        await tasks.create(QUEUE, TARGET, {}, clock() + timedelta(days=31))

    assert tasks.outstanding == []


async def test_delete_unknown_handle_raises(tasks):
    with pytest.raises(TaskNotFoundError) as exc_info:
        await tasks.delete(f"{QUEUE}/tasks/unknown")
    assert exc_info.value.handle == f"{QUEUE}/tasks/unknown"


async def test_delete_twice_raises(tasks, clock):
    handle = await tasks.create(QUEUE, TARGET, {}, clock() + timedelta(hours=1))
    await tasks.delete(handle)

    with pytest.raises(TaskNotFoundError):
        await tasks.delete(handle)
    assert tasks.deleted_count == 1


async def test_fire_due_delivers_only_due_tasks_in_time_order(tasks, clock):
    delivered = []

    async def deliver(task):
        delivered.append(task.payload["eventId"])

    tasks.set_delivery(deliver)
    await tasks.create(QUEUE, TARGET, {"eventId": "late"}, clock() + timedelta(hours=2))
    await tasks.create(QUEUE, TARGET, {"eventId": "early"}, clock() + timedelta(hours=1))
    await tasks.create(QUEUE, TARGET, {"eventId": "later"}, clock() + timedelta(days=1))

    clock.advance(timedelta(hours=2))
    fired = await tasks.fire_due()

    assert fired == 2
    assert delivered == ["early", "late"]
    assert [t.payload["eventId"] for t in tasks.outstanding] == ["later"]


async def test_fired_task_can_no_longer_be_deleted(tasks, clock):
    handle = await tasks.create(QUEUE, TARGET, {}, clock() + timedelta(minutes=1))
    clock.advance(timedelta(minutes=1))
    await tasks.fire_due()

    with pytest.raises(TaskNotFoundError):
        await tasks.delete(handle)


def test_manual_clock_advances(clock):
    start = clock()
    assert clock.advance(timedelta(days=2)) == start + timedelta(days=2)
    assert clock() == start + timedelta(days=2)


@pytest.mark.timeout(5)
async def test_ticker_emits_until_stopped():
    emitted = []

    async def emit():
        emitted.append(1)

    ticker = PeriodicTicker(timedelta(milliseconds=10), emit)
    task = asyncio.create_task(ticker.run())
    await asyncio.sleep(0.1)
    ticker.stop()
    await task

    assert ticker.ticks >= 1
    assert len(emitted) == ticker.ticks


@pytest.mark.timeout(5)
async def test_ticker_can_tick_on_start():
    emitted = []

    async def emit():
        emitted.append(1)

    ticker = PeriodicTicker(timedelta(hours=1), emit, run_immediately=True)
    task = asyncio.create_task(ticker.run())
    await asyncio.sleep(0.05)
    ticker.stop()
    await task

    assert emitted == [1]


@pytest.mark.parametrize("interval", [timedelta(0), timedelta(seconds=-1)])
def test_ticker_rejects_non_positive_interval(interval):
    async def emit():
        pass

    with pytest.raises(ValueError):
        PeriodicTicker(interval, emit)
