"""Trigger bus: the thin layer between inbound triggers and core components.

The bus:
- Pulls triggers from a backend
- Routes them to every handler listening for the trigger type
- Acks, stores or nacks the trigger depending on the handler outcome

Each trigger is processed as an isolated invocation. The bus keeps no
queue of its own; all queue operations go through the backend.
"""

import asyncio
import inspect
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Protocol

from eventlottery.core.errors import BackendUnavailableError
from eventlottery.core.handler import TriggerHandler
from eventlottery.core.logging import get_logger
from eventlottery.core.trigger import Trigger

if TYPE_CHECKING:
    from eventlottery.backends.base import TriggerBackend

DEFAULT_MAX_CONSECUTIVE_FAILURES = 10


class HandlerFailureMode(Enum):
    """Strategy for handling handler failures.

    LOG: Log the error and ack (no retry)
    STORE: Store the failed trigger for inspection and ack
    NACK: Hand the trigger back to the backend for redelivery
    """

    LOG = "log"
    STORE = "store"
    NACK = "nack"


class FailedTriggerStore(Protocol):
    """Protocol for keeping failed triggers for later inspection."""

    async def store(self, trigger: Trigger, error: Exception) -> None: ...
    def get_failed_triggers(self) -> list[tuple[Trigger, Exception]]: ...
    def clear(self) -> None: ...


class InMemoryFailedTriggerStore:
    """In-memory failed trigger store with bounded size."""

    def __init__(self, max_size: int = 10_000) -> None:
        self._triggers: list[tuple[Trigger, Exception]] = []
        self._max_size = max_size
        self._dropped_count = 0

    def __bool__(self) -> bool:
        # An empty store must still win over the default in `store or default`
        return True

    async def store(self, trigger: Trigger, error: Exception) -> None:
        if len(self._triggers) >= self._max_size:
            self._triggers.pop(0)
            self._dropped_count += 1
        self._triggers.append((trigger, error))

    def get_failed_triggers(self) -> list[tuple[Trigger, Exception]]:
        return list(self._triggers)

    def clear(self) -> None:
        self._triggers.clear()

    def __len__(self) -> int:
        return len(self._triggers)

    @property
    def dropped_count(self) -> int:
        return self._dropped_count


@dataclass
class BusStats:
    """Statistics from a TriggerBus run."""

    triggers_processed: int = 0
    handler_errors: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    unhandled: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    backend_errors: int = 0
    ack_errors: int = 0
    nacked: int = 0


class TriggerBus:
    """Routes triggers from a backend to handlers."""

    def __init__(
        self,
        handlers: list[TriggerHandler],
        backend: "TriggerBackend",
        handler_failure_mode: HandlerFailureMode = HandlerFailureMode.NACK,
        failed_trigger_store: FailedTriggerStore | None = None,
        max_consecutive_backend_failures: int = DEFAULT_MAX_CONSECUTIVE_FAILURES,
        handler_timeout: float | None = None,
        pull_timeout: float = 1.0,
    ) -> None:
        self.handlers = handlers
        self.backend = backend
        self.handler_failure_mode = handler_failure_mode
        self.failed_trigger_store = failed_trigger_store or InMemoryFailedTriggerStore()
        self.max_consecutive_backend_failures = max_consecutive_backend_failures
        self.handler_timeout = handler_timeout
        self.pull_timeout = pull_timeout
        self._log = get_logger("eventlottery.bus")
        self._running = False
        self._stats = BusStats()
        self._consecutive_pull_failures = 0
        self._last_backend_error: str | None = None

        self._validate_handlers()

    def _validate_handlers(self) -> None:
        for handler in self.handlers:
            if not isinstance(handler.listens_to, list):
                raise TypeError(
                    f"{handler.name}.listens_to must be a list[str], "
                    f"got {type(handler.listens_to).__name__}"
                )
            for item in handler.listens_to:
                if not isinstance(item, str):
                    raise TypeError(
                        f"{handler.name}.listens_to must contain only strings, "
                        f"found {type(item).__name__}: {item!r}"
                    )

    async def _invoke_handler(self, handler: TriggerHandler, trigger: Trigger) -> None:
        result = handler.handle(trigger)
        if inspect.isawaitable(result):
            if self.handler_timeout is None:
                result = await result
            else:
                try:
                    result = await asyncio.wait_for(result, timeout=self.handler_timeout)
                except TimeoutError:
                    raise TimeoutError(
                        f"Handler {handler.name} timed out after {self.handler_timeout}s"
                    )
        if result is not None:
            raise TypeError(
                f"Handler {handler.name} must return None, got {type(result).__name__}"
            )

    def stop(self) -> None:
        self._running = False

    def get_stats(self) -> BusStats:
        """Return a snapshot of current statistics."""
        return BusStats(
            triggers_processed=self._stats.triggers_processed,
            handler_errors=defaultdict(int, self._stats.handler_errors),
            unhandled=defaultdict(int, self._stats.unhandled),
            backend_errors=self._stats.backend_errors,
            ack_errors=self._stats.ack_errors,
            nacked=self._stats.nacked,
        )

    async def dispatch(self, trigger: Trigger) -> Exception | None:
        """Run every matching handler for one trigger.

        Returns:
            The first handler error, or None if all handlers succeeded.
        """
        extra = {"trigger_id": trigger.id, "trigger_type": trigger.trigger_type}
        matching = [h for h in self.handlers if trigger.trigger_type in h.listens_to]
        if not matching:
            self._stats.unhandled[trigger.trigger_type] += 1
            self._log.debug(f"No handler for {trigger.trigger_type}", extra=extra)
            return None

        first_error: Exception | None = None
        for handler in matching:
            self._log.info(
                f"Dispatching {trigger.trigger_type} to {handler.name}",
                extra={**extra, "handler": handler.name},
            )
            try:
                await self._invoke_handler(handler, trigger)
            except Exception as e:
                first_error = first_error or e
                self._stats.handler_errors[handler.name] += 1
                self._log.error(
                    f"Handler {handler.name} raised exception: {e}",
                    extra={**extra, "handler": handler.name, "error": str(e)},
                )
        return first_error

    async def _settle(self, trigger: Trigger, error: Exception | None) -> None:
        extra = {"trigger_id": trigger.id, "trigger_type": trigger.trigger_type}

        if error is not None and self.handler_failure_mode == HandlerFailureMode.NACK:
            self._stats.nacked += 1
            self._log.warning(
                f"Trigger not acked due to handler failure (will retry): {trigger.trigger_type}",
                extra=extra,
            )
            try:
                await self.backend.nack(trigger, reason=str(error))
            except Exception as e:
                self._stats.ack_errors += 1
                self._log.error(f"Failed to nack trigger: {e}", extra={**extra, "error": str(e)})
            return

        if error is not None and self.handler_failure_mode == HandlerFailureMode.STORE:
            await self.failed_trigger_store.store(trigger, error)
            self._log.warning(
                f"Stored failed trigger: {trigger.trigger_type}",
                extra={**extra, "error": str(error)},
            )

        try:
            await self.backend.ack(trigger)
        except Exception as e:
            self._stats.ack_errors += 1
            self._log.error(f"Failed to ack trigger: {e}", extra={**extra, "error": str(e)})

    async def run_once(self) -> bool:
        """Pull and process at most one trigger.

        Returns:
            True if a trigger was processed, False if the pull came back empty.
        """
        if self._consecutive_pull_failures >= self.max_consecutive_backend_failures:
            raise BackendUnavailableError(
                f"Backend unavailable after {self._consecutive_pull_failures} failures",
                failure_count=self._consecutive_pull_failures,
                last_error=self._last_backend_error,
            )

        try:
            trigger = await self.backend.pull(timeout=self.pull_timeout)
            self._consecutive_pull_failures = 0
            self._last_backend_error = None
        except Exception as e:
            self._consecutive_pull_failures += 1
            self._stats.backend_errors += 1
            self._last_backend_error = str(e)
            self._log.error(
                f"Backend pull failed ({self._consecutive_pull_failures}/"
                f"{self.max_consecutive_backend_failures}): {e}",
                extra={"error": str(e), "consecutive_failures": self._consecutive_pull_failures},
            )
            return False

        if trigger is None:
            return False

        self._stats.triggers_processed += 1
        error = await self.dispatch(trigger)
        await self._settle(trigger, error)
        return True

    async def drain(self) -> BusStats:
        """Process triggers until the backend comes back empty."""
        self._running = True
        while self._running and await self.run_once():
            pass
        return self.get_stats()

    async def run(self) -> BusStats:
        """Process triggers until stop() is called."""
        self._stats = BusStats()
        self._running = True
        self._consecutive_pull_failures = 0

        while self._running:
            await self.run_once()

        return self._stats
