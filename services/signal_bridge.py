"""
Qt Signal Bridge.

Re-emits event bus traffic as Qt signals so canvas, console and
inspector widgets can connect to the engine with ordinary slots.
"""

import logging
from typing import Callable, List, Optional

from PyQt6.QtCore import QObject, pyqtSignal

from .event_bus import EventBus, SimEvent

logger = logging.getLogger(__name__)


class SimulationSignalBridge(QObject):
    """
    Forwards engine events to Qt signals.

    Payloads are passed through unchanged (the dataclasses from
    models.simulation). Console signals carry the ConsoleLogEvent for
    all three console levels.
    """

    # Signals
    packet_moved = pyqtSignal(object)        # PacketMoveEvent
    packet_dropped = pyqtSignal(object)      # PacketDropEvent
    packet_arrived = pyqtSignal(object)      # PacketArriveEvent
    packet_inspected = pyqtSignal(object)    # Packet
    console_message = pyqtSignal(object)     # ConsoleLogEvent
    simulation_started = pyqtSignal(object)  # SimStartEvent
    simulation_completed = pyqtSignal(object)  # SimulationSummary
    simulation_reset = pyqtSignal()
    tick = pyqtSignal(int)
    speed_changed = pyqtSignal(str)
    port_status_changed = pyqtSignal(object)  # PortStatusEvent
    announced = pyqtSignal(str, str)         # message, priority

    def __init__(self, parent: Optional[QObject] = None):
        super().__init__(parent)
        self._bus: Optional[EventBus] = None
        self._unsubscribers: List[Callable[[], None]] = []

    @property
    def is_attached(self) -> bool:
        return self._bus is not None

    def attach(self, bus: EventBus):
        """Start forwarding events from a bus; detaches from any previous one."""
        self.detach()
        self._bus = bus
        routes = {
            SimEvent.PACKET_MOVE: self.packet_moved.emit,
            SimEvent.PACKET_DROP: self.packet_dropped.emit,
            SimEvent.PACKET_ARRIVE: self.packet_arrived.emit,
            SimEvent.PACKET_INSPECT: self.packet_inspected.emit,
            SimEvent.CONSOLE_LOG: self.console_message.emit,
            SimEvent.CONSOLE_WARN: self.console_message.emit,
            SimEvent.CONSOLE_ERROR: self.console_message.emit,
            SimEvent.SIM_START: self.simulation_started.emit,
            SimEvent.SIM_COMPLETE: self.simulation_completed.emit,
            SimEvent.SIM_RESET: lambda _payload: self.simulation_reset.emit(),
            SimEvent.SIM_TICK: lambda payload: self.tick.emit(payload.tick),
            SimEvent.SIM_SPEED_CHANGE: lambda speed: self.speed_changed.emit(speed.value),
            SimEvent.PORT_STATUS_CHANGE: self.port_status_changed.emit,
            SimEvent.ANNOUNCE: lambda a: self.announced.emit(a.message, a.priority),
        }
        for event, handler in routes.items():
            self._unsubscribers.append(bus.on(event, handler))
        logger.debug(f"Signal bridge attached ({len(routes)} events)")

    def detach(self):
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self._bus = None
