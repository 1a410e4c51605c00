"""Tests for trigger handlers and trigger payload conversion."""

from datetime import UTC, datetime

import pytest

from eventlottery.core.trigger import (
    EVENT_WRITTEN,
    LOTTERY_CALLBACK,
    LOTTERY_DRAW_EARLY,
    LOTTERY_REFRESH,
    NOTIFICATION_CREATE,
    NOTIFICATION_WRITTEN,
    Trigger,
)
from eventlottery.handlers import (
    CreateNotificationHandler,
    DrawLotteryEarlyHandler,
    EventWrittenHandler,
    LotteryCallbackHandler,
    NotificationWrittenHandler,
    RefreshLotteriesHandler,
    change_from_trigger,
    change_to_trigger,
)
from eventlottery.store.base import EVENTS, DocumentChange, DocumentSnapshot


class FakeLottery:
    def __init__(self):
        self.calls = []

    async def handle_event_change(self, change):
        self.calls.append(("change", change))

    async def refresh_lotteries(self):
        self.calls.append(("refresh",))
        return 0

    async def draw_lottery(self, event_id, early=False):
        self.calls.append(("draw", event_id, early))


class FakeNotifications:
    def __init__(self):
        self.calls = []

    async def handle_notification_change(self, change):
        self.calls.append(("change", change))

    async def create_notification(
        self, title, description, recipient_ids, event_id=None, organizer_id=None
    ):
        self.calls.append(("create", title, description, recipient_ids, event_id, organizer_id))


def event_change():
    when = datetime(2026, 10, 21, 18, 0, tzinfo=UTC)
    return DocumentChange(
        DocumentSnapshot(EVENTS, "e1", None),
        DocumentSnapshot(EVENTS, "e1", {"registrationEndTime": when, "waitingList": ["u1"]}),
    )


def test_change_survives_trigger_round_trip():
    change = event_change()

    trigger = change_to_trigger(change)
    restored = change_from_trigger(Trigger.model_validate_json(trigger.model_dump_json()))

    assert trigger.trigger_type == EVENT_WRITTEN
    assert restored == change


def test_handlers_listen_to_their_trigger_types():
    assert EventWrittenHandler.listens_to == [EVENT_WRITTEN]
    assert RefreshLotteriesHandler.listens_to == [LOTTERY_REFRESH]
    assert LotteryCallbackHandler.listens_to == [LOTTERY_CALLBACK]
    assert DrawLotteryEarlyHandler.listens_to == [LOTTERY_DRAW_EARLY]
    assert NotificationWrittenHandler.listens_to == [NOTIFICATION_WRITTEN]
    assert CreateNotificationHandler.listens_to == [NOTIFICATION_CREATE]


async def test_event_written_handler_forwards_change():
    lottery = FakeLottery()
    change = event_change()

    await EventWrittenHandler(lottery).handle(change_to_trigger(change))

    assert lottery.calls == [("change", change)]


async def test_refresh_handler():
    lottery = FakeLottery()
    await RefreshLotteriesHandler(lottery).handle(Trigger(trigger_type=LOTTERY_REFRESH))
    assert lottery.calls == [("refresh",)]


async def test_callback_handler_draws_on_schedule():
    lottery = FakeLottery()
    trigger = Trigger(trigger_type=LOTTERY_CALLBACK, payload={"eventId": "e1"})

    await LotteryCallbackHandler(lottery).handle(trigger)

    assert lottery.calls == [("draw", "e1", False)]


@pytest.mark.parametrize("key", ["lotteryID", "eventId"])
async def test_early_draw_handler_accepts_either_key(key):
    lottery = FakeLottery()
    trigger = Trigger(trigger_type=LOTTERY_DRAW_EARLY, payload={key: "e1"})

    await DrawLotteryEarlyHandler(lottery).handle(trigger)

    assert lottery.calls == [("draw", "e1", True)]


async def test_early_draw_handler_prefers_lottery_id():
    lottery = FakeLottery()
    trigger = Trigger(
        trigger_type=LOTTERY_DRAW_EARLY, payload={"lotteryID": "e1", "eventId": "e2"}
    )

    await DrawLotteryEarlyHandler(lottery).handle(trigger)

    assert lottery.calls == [("draw", "e1", True)]


async def test_notification_written_handler_forwards_change():
    notifications = FakeNotifications()
    change = DocumentChange(
        DocumentSnapshot("notifications", "n1", None),
        DocumentSnapshot("notifications", "n1", {"title": "T", "description": "D"}),
    )

    await NotificationWrittenHandler(notifications).handle(change_to_trigger(change))

    assert notifications.calls == [("change", change)]


async def test_create_notification_handler():
    notifications = FakeNotifications()
    trigger = Trigger(
        trigger_type=NOTIFICATION_CREATE,
        payload={
            "title": "T",
            "description": "D",
            "recipientIds": ["a", "b"],
            "organizerId": "org",
        },
    )

    await CreateNotificationHandler(notifications).handle(trigger)

    assert notifications.calls == [("create", "T", "D", ["a", "b"], None, "org")]


def test_handler_name_defaults_to_class_name():
    assert EventWrittenHandler(FakeLottery()).name == "EventWrittenHandler"
    assert EventWrittenHandler(FakeLottery(), name="events").name == "events"
