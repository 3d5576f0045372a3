"""
Event Bus.

In-memory publish/subscribe channel between the simulation engine and
everything that renders it. Dispatch is synchronous on the caller's
thread, in registration order per event name.

A bus is an ordinary object: construct one per application or test and
close it when done.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Union

from models.errors import EventBusClosedError

logger = logging.getLogger(__name__)


class SimEvent(str, Enum):
    """Names of the events the engine publishes."""
    # Lifecycle
    SIM_START = "sim:start"
    SIM_TICK = "sim:tick"
    SIM_COMPLETE = "sim:complete"
    SIM_RESET = "sim:reset"
    SIM_SPEED_CHANGE = "sim:speed-change"
    # Packet transitions
    PACKET_MOVE = "packet:move"
    PACKET_DROP = "packet:drop"
    PACKET_ARRIVE = "packet:arrive"
    PACKET_INSPECT = "packet:inspect"
    # Console
    CONSOLE_LOG = "console:log"
    CONSOLE_WARN = "console:warn"
    CONSOLE_ERROR = "console:error"
    # Accessibility
    ANNOUNCE = "announce"
    # Device state
    PORT_STATUS_CHANGE = "port:status-change"
    CAM_UPDATE = "table:cam-update"
    ARP_UPDATE = "table:arp-update"


EventName = Union[SimEvent, str]
Handler = Callable[[Any], None]
WildcardHandler = Callable[[str, Any], None]


@dataclass
class EventRecord:
    """One entry of the debug event log."""
    name: str
    payload: Any
    timestamp: float


def _key(event: EventName) -> str:
    if isinstance(event, SimEvent):
        return event.value
    return str(event)


class EventBus:
    """
    Synchronous event dispatcher.

    Handlers receive the payload only; wildcard handlers registered with
    on_any() receive (event name, payload). An exception in one handler
    is logged and does not prevent the remaining handlers from running.
    """

    MAX_LOG_SIZE = 500

    def __init__(self, max_log_size: int = MAX_LOG_SIZE):
        self._handlers: dict[str, list[Handler]] = {}
        self._wildcard: list[WildcardHandler] = []
        self._log: deque = deque(maxlen=max_log_size)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def on(self, event: EventName, handler: Handler) -> Callable[[], None]:
        """
        Subscribe to an event.

        Returns a function that removes this subscription; calling it
        more than once is harmless.
        """
        if self._closed:
            raise EventBusClosedError(f"Cannot subscribe to '{_key(event)}' on a closed bus")
        name = _key(event)
        self._handlers.setdefault(name, []).append(handler)

        def unsubscribe():
            self.off(name, handler)

        return unsubscribe

    def off(self, event: EventName, handler: Handler) -> bool:
        """Remove a handler. Returns False if it was not registered."""
        handlers = self._handlers.get(_key(event))
        if not handlers:
            return False
        try:
            handlers.remove(handler)
        except ValueError:
            return False
        return True

    def on_any(self, handler: WildcardHandler) -> Callable[[], None]:
        """Subscribe to every event (debug panels, loggers)."""
        if self._closed:
            raise EventBusClosedError("Cannot subscribe on a closed bus")
        self._wildcard.append(handler)

        def unsubscribe():
            if handler in self._wildcard:
                self._wildcard.remove(handler)

        return unsubscribe

    def emit(self, event: EventName, payload: Any = None):
        """
        Deliver a payload to every current subscriber of an event.

        Handlers added or removed during dispatch take effect from the
        next emit.
        """
        if self._closed:
            return
        name = _key(event)
        self._log.append(EventRecord(name, payload, time.time()))

        for handler in list(self._handlers.get(name, ())):
            try:
                handler(payload)
            except Exception:
                logger.exception(f"Error in handler for '{name}'")

        for handler in list(self._wildcard):
            try:
                handler(name, payload)
            except Exception:
                logger.exception(f"Error in wildcard handler for '{name}'")

    async def wait_for(self, event: EventName, timeout: Optional[float] = 10.0) -> Any:
        """Suspend until the next emit of an event and return its payload."""
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def handler(payload):
            if not future.done():
                future.set_result(payload)

        unsubscribe = self.on(event, handler)
        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            unsubscribe()

    def has_listeners(self, event: EventName) -> bool:
        return bool(self._handlers.get(_key(event))) or bool(self._wildcard)

    def listener_count(self, event: EventName) -> int:
        return len(self._handlers.get(_key(event), ()))

    @property
    def event_log(self) -> list[EventRecord]:
        """Most recent events, oldest first."""
        return list(self._log)

    def clear(self):
        """Drop all subscriptions and the event log."""
        self._handlers.clear()
        self._wildcard.clear()
        self._log.clear()

    def close(self):
        """Tear the bus down; later emits are ignored."""
        self.clear()
        self._closed = True

    def __enter__(self) -> "EventBus":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
