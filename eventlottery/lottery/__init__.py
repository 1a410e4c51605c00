"""Lottery scheduling and drawing."""

from eventlottery.lottery.draw import draw_winners, invite_count
from eventlottery.lottery.scheduler import DrawResult, LotteryScheduler, ScheduleOutcome

__all__ = ["DrawResult", "LotteryScheduler", "ScheduleOutcome", "draw_winners", "invite_count"]
