"""Trigger handlers: the thin layer between triggers and core components."""

from eventlottery.handlers.events import (
    DrawLotteryEarlyHandler,
    EventWrittenHandler,
    LotteryCallbackHandler,
    RefreshLotteriesHandler,
)
from eventlottery.handlers.notifications import (
    CreateNotificationHandler,
    NotificationWrittenHandler,
)
from eventlottery.handlers.payloads import change_from_trigger, change_to_trigger

__all__ = [
    "DrawLotteryEarlyHandler",
    "EventWrittenHandler",
    "LotteryCallbackHandler",
    "RefreshLotteriesHandler",
    "CreateNotificationHandler",
    "NotificationWrittenHandler",
    "change_from_trigger",
    "change_to_trigger",
]
