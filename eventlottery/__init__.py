"""eventlottery - Deferred event lotteries and push notification fan-out."""

from eventlottery.app import LotteryApp, build_app
from eventlottery.config import LotterySettings
from eventlottery.core import (
    BackendUnavailableError,
    ConfigurationError,
    DataIntegrityError,
    HandlerFailureMode,
    Trigger,
    TriggerBus,
    TriggerHandler,
)
from eventlottery.lottery import DrawResult, LotteryScheduler, ScheduleOutcome
from eventlottery.notifications import NotificationDispatcher

__version__ = "0.1.0"

__all__ = [
    # Components
    "LotteryScheduler",
    "NotificationDispatcher",
    "DrawResult",
    "ScheduleOutcome",
    # Wiring
    "LotteryApp",
    "LotterySettings",
    "build_app",
    # Trigger layer
    "Trigger",
    "TriggerBus",
    "TriggerHandler",
    "HandlerFailureMode",
    # Errors
    "BackendUnavailableError",
    "ConfigurationError",
    "DataIntegrityError",
    # Meta
    "__version__",
]
