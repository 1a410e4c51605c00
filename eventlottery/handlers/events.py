"""Handlers that drive the lottery scheduler."""

from eventlottery.core.handler import TriggerHandler
from eventlottery.core.trigger import (
    EVENT_WRITTEN,
    LOTTERY_CALLBACK,
    LOTTERY_DRAW_EARLY,
    LOTTERY_REFRESH,
    Trigger,
)
from eventlottery.handlers.payloads import change_from_trigger
from eventlottery.lottery.scheduler import LotteryScheduler


class _LotteryHandler(TriggerHandler):
    def __init__(self, lottery: LotteryScheduler, name: str | None = None) -> None:
        super().__init__(name=name)
        self.lottery = lottery


class EventWrittenHandler(_LotteryHandler):
    """Schedules, moves or cancels the lottery task when an event is written."""

    listens_to = [EVENT_WRITTEN]

    async def handle(self, trigger: Trigger) -> None:
        await self.lottery.handle_event_change(change_from_trigger(trigger))


class RefreshLotteriesHandler(_LotteryHandler):
    """Periodic sweep that schedules lotteries which have come within the horizon."""

    listens_to = [LOTTERY_REFRESH]

    async def handle(self, trigger: Trigger) -> None:
        await self.lottery.refresh_lotteries()


class LotteryCallbackHandler(_LotteryHandler):
    """Runs the draw when its deferred task fires."""

    listens_to = [LOTTERY_CALLBACK]

    async def handle(self, trigger: Trigger) -> None:
        await self.lottery.draw_lottery(trigger.subject_id, early=False)


class DrawLotteryEarlyHandler(_LotteryHandler):
    """Runs the draw on request, ahead of the registration deadline."""

    listens_to = [LOTTERY_DRAW_EARLY]

    async def handle(self, trigger: Trigger) -> None:
        await self.lottery.draw_lottery(trigger.subject_id, early=True)
