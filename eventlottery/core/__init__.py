"""Core components: triggers, handlers, the trigger bus, errors and logging.

Types:
    Trigger: Immutable, validated trigger message.
    TriggerHandler: Abstract base class for trigger handlers.
    TriggerBus: Routes triggers from a backend to handlers.
    BusStats: Statistics dataclass from a bus run.

Failure Handling:
    HandlerFailureMode: LOG, STORE or NACK a trigger whose handler failed.
    FailedTriggerStore / InMemoryFailedTriggerStore: where STORE mode keeps them.
"""

from eventlottery.core.bus import (
    BusStats,
    FailedTriggerStore,
    HandlerFailureMode,
    InMemoryFailedTriggerStore,
    TriggerBus,
)
from eventlottery.core.errors import (
    BackendUnavailableError,
    ConfigurationError,
    DataIntegrityError,
    DocumentExistsError,
    DocumentNotFoundError,
    EventLotteryError,
    TaskNotFoundError,
    TaskSchedulingError,
)
from eventlottery.core.handler import TriggerHandler
from eventlottery.core.trigger import MAX_PAYLOAD_SIZE, Trigger

__all__ = [
    "Trigger",
    "MAX_PAYLOAD_SIZE",
    "TriggerHandler",
    "TriggerBus",
    "BusStats",
    "HandlerFailureMode",
    "FailedTriggerStore",
    "InMemoryFailedTriggerStore",
    "EventLotteryError",
    "DataIntegrityError",
    "ConfigurationError",
    "DocumentExistsError",
    "DocumentNotFoundError",
    "TaskSchedulingError",
    "TaskNotFoundError",
    "BackendUnavailableError",
]
