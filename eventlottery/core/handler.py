"""Base class for trigger handlers."""

from abc import ABC, abstractmethod
from collections.abc import Awaitable
from typing import ClassVar

from eventlottery.core.trigger import Trigger


class TriggerHandler(ABC):
    """Base class for trigger handlers.

    Each handler declares which trigger types it reacts to via the
    `listens_to` class attribute and delegates straight to a core component.

    Note: Validation of `listens_to` happens in TriggerBus during registration.
    """

    listens_to: ClassVar[list[str]] = []

    def __init__(self, name: str | None = None) -> None:
        self.name = name or self.__class__.__name__

    @abstractmethod
    def handle(self, trigger: Trigger) -> None | Awaitable[None]:
        """Handle an incoming trigger.

        Raising marks the invocation as failed; the bus's failure mode
        decides whether it is redelivered.
        """
        ...
