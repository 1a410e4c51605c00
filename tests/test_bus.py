"""Tests for TriggerBus routing, failure modes and statistics."""

import asyncio
import logging

import pytest

from eventlottery.backends.inmemory import InMemoryBackend
from eventlottery.core.bus import (
    HandlerFailureMode,
    InMemoryFailedTriggerStore,
    TriggerBus,
)
from eventlottery.core.errors import BackendUnavailableError
from eventlottery.core.handler import TriggerHandler
from eventlottery.core.trigger import Trigger


class RecordingHandler(TriggerHandler):
    listens_to = ["lottery.callback"]

    def __init__(self, name=None):
        super().__init__(name=name)
        self.seen: list[Trigger] = []

    async def handle(self, trigger):
        self.seen.append(trigger)


class SyncRecordingHandler(TriggerHandler):
    listens_to = ["lottery.callback", "lottery.refresh"]

    def __init__(self):
        super().__init__()
        self.seen: list[str] = []

    def handle(self, trigger):
        self.seen.append(trigger.trigger_type)


class FailingHandler(TriggerHandler):
    listens_to = ["lottery.callback"]

    def __init__(self, failures=1_000):
        super().__init__()
        self.failures = failures
        self.calls = 0

    async def handle(self, trigger):
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError("draw failed")


class ReturningHandler(TriggerHandler):
    listens_to = ["lottery.callback"]

    async def handle(self, trigger):
        return "not none"


class BadListensTo(TriggerHandler):
    listens_to = "lottery.callback"

    def handle(self, trigger):
        pass


class FailingBackend:
    async def enqueue(self, trigger):
        pass

    async def pull(self, timeout=1.0):
        raise ConnectionError("connection refused")

    async def ack(self, trigger):
        pass

    async def nack(self, trigger, reason="Processing failed"):
        pass

    async def close(self):
        pass


class LogCapture(logging.Handler):
    """Custom handler to capture log records for testing."""

    def __init__(self):
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


@pytest.fixture
def backend():
    return InMemoryBackend(max_deliveries=3)


@pytest.fixture
def bus_logs():
    logger = logging.getLogger("eventlottery.bus")
    handler = LogCapture()
    handler.setLevel(logging.DEBUG)
    logger.addHandler(handler)
    yield handler
    logger.removeHandler(handler)


def callback_trigger(event_id="event-1"):
    return Trigger(trigger_type="lottery.callback", payload={"eventId": event_id})


async def test_routes_to_every_matching_handler(backend):
    recording = RecordingHandler()
    sync_handler = SyncRecordingHandler()
    bus = TriggerBus([recording, sync_handler], backend, pull_timeout=0.01)

    await backend.enqueue(callback_trigger())
    await backend.enqueue(Trigger(trigger_type="lottery.refresh"))
    stats = await bus.drain()

    assert [t.payload["eventId"] for t in recording.seen] == ["event-1"]
    assert sync_handler.seen == ["lottery.callback", "lottery.refresh"]
    assert stats.triggers_processed == 2


async def test_unhandled_triggers_are_acked_and_counted(backend):
    bus = TriggerBus([RecordingHandler()], backend, pull_timeout=0.01)

    await backend.enqueue(Trigger(trigger_type="users.written"))
    stats = await bus.drain()

    assert stats.unhandled["users.written"] == 1
    assert backend.qsize() == 0


async def test_nack_mode_redelivers_until_handler_succeeds(backend):
    handler = FailingHandler(failures=2)
    bus = TriggerBus([handler], backend, pull_timeout=0.01)

    await backend.enqueue(callback_trigger())
    stats = await bus.drain()

    assert handler.calls == 3
    assert stats.nacked == 2
    assert stats.handler_errors["FailingHandler"] == 2
    assert backend.dead_letters == []


async def test_nack_mode_dead_letters_after_max_deliveries(backend):
    handler = FailingHandler()
    bus = TriggerBus([handler], backend, pull_timeout=0.01)

    trigger = callback_trigger()
    await backend.enqueue(trigger)
    await bus.drain()

    assert handler.calls == 3
    assert [(t.id, reason) for t, reason in backend.dead_letters] == [(trigger.id, "draw failed")]


async def test_store_mode_keeps_failed_trigger_and_acks(backend):
    failed_store = InMemoryFailedTriggerStore()
    bus = TriggerBus(
        [FailingHandler()],
        backend,
        handler_failure_mode=HandlerFailureMode.STORE,
        failed_trigger_store=failed_store,
        pull_timeout=0.01,
    )

    trigger = callback_trigger()
    await backend.enqueue(trigger)
    stats = await bus.drain()

    assert stats.triggers_processed == 1
    assert stats.nacked == 0
    [(stored, error)] = failed_store.get_failed_triggers()
    assert stored.id == trigger.id
    assert str(error) == "draw failed"


async def test_log_mode_acks_without_retry(backend):
    handler = FailingHandler()
    bus = TriggerBus(
        [handler], backend, handler_failure_mode=HandlerFailureMode.LOG, pull_timeout=0.01
    )

    await backend.enqueue(callback_trigger())
    await bus.drain()

    assert handler.calls == 1
    assert len(bus.failed_trigger_store) == 0


async def test_failing_handler_does_not_stop_other_handlers(backend):
    recording = RecordingHandler()
    bus = TriggerBus(
        [FailingHandler(), recording],
        backend,
        handler_failure_mode=HandlerFailureMode.LOG,
        pull_timeout=0.01,
    )

    await backend.enqueue(callback_trigger())
    await bus.drain()

    assert len(recording.seen) == 1


async def test_handler_returning_value_is_a_failure(backend):
    bus = TriggerBus(
        [ReturningHandler()], backend, handler_failure_mode=HandlerFailureMode.STORE
    )

    error = await bus.dispatch(callback_trigger())

    assert isinstance(error, TypeError)
    assert "must return None" in str(error)


async def test_handler_timeout_is_a_failure(backend):
    class SlowHandler(TriggerHandler):
        listens_to = ["lottery.callback"]

        async def handle(self, trigger):
            await asyncio.sleep(1)

    bus = TriggerBus([SlowHandler()], backend, handler_timeout=0.01)

    error = await bus.dispatch(callback_trigger())

    assert isinstance(error, TimeoutError)


def test_rejects_non_list_listens_to(backend):
    with pytest.raises(TypeError, match="listens_to must be a list"):
        TriggerBus([BadListensTo()], backend)


async def test_circuit_breaker_opens_after_consecutive_pull_failures():
    bus = TriggerBus([RecordingHandler()], FailingBackend(), max_consecutive_backend_failures=3)

    for _ in range(3):
        assert await bus.run_once() is False

    with pytest.raises(BackendUnavailableError) as exc_info:
        await bus.run_once()

    assert exc_info.value.failure_count == 3
    assert "connection refused" in str(exc_info.value)
    assert bus.get_stats().backend_errors == 3


async def test_dispatch_logs_handler_and_trigger_context(backend, bus_logs):
    bus = TriggerBus(
        [FailingHandler()], backend, handler_failure_mode=HandlerFailureMode.LOG
    )

    trigger = callback_trigger()
    await bus.dispatch(trigger)

    errors = [r for r in bus_logs.records if r.levelno == logging.ERROR]
    assert len(errors) == 1
    assert errors[0].trigger_id == trigger.id
    assert errors[0].trigger_type == "lottery.callback"
    assert errors[0].handler == "FailingHandler"


async def test_get_stats_returns_a_copy(backend):
    bus = TriggerBus([FailingHandler()], backend, handler_failure_mode=HandlerFailureMode.LOG)
    await bus.dispatch(callback_trigger())

    stats = bus.get_stats()
    stats.handler_errors["FailingHandler"] = 99

    assert bus.get_stats().handler_errors["FailingHandler"] == 1
