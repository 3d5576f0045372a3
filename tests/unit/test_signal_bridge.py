"""
Unit tests for the Qt signal bridge.

Tests:
- Bus events are re-emitted as Qt signals
- Payload conversion for tick, speed and announcements
- Detaching stops forwarding
"""

import pytest

QtCore = pytest.importorskip("PyQt6.QtCore")

from models.simulation import Announcement, ConsoleLogEvent, LogLevel, SimTickEvent, SimulationSpeed
from services.event_bus import EventBus, SimEvent
from services.signal_bridge import SimulationSignalBridge


@pytest.fixture(scope="module")
def qt_app():
    """Shared core application for signal delivery."""
    app = QtCore.QCoreApplication.instance() or QtCore.QCoreApplication([])
    yield app


@pytest.fixture
def bridge(qt_app, bus):
    bridge = SimulationSignalBridge()
    bridge.attach(bus)
    yield bridge
    bridge.detach()


class TestSignalBridge:
    """Tests for SimulationSignalBridge."""

    def test_console_levels_share_one_signal(self, bridge, bus):
        """Test log, warn and error all reach console_message."""
        received = []
        bridge.console_message.connect(received.append)

        for event, level in (
            (SimEvent.CONSOLE_LOG, LogLevel.INFO),
            (SimEvent.CONSOLE_WARN, LogLevel.WARN),
            (SimEvent.CONSOLE_ERROR, LogLevel.ERROR),
        ):
            bus.emit(event, ConsoleLogEvent("msg", level))

        assert [e.level for e in received] == [LogLevel.INFO, LogLevel.WARN, LogLevel.ERROR]

    def test_tick_and_speed_payloads(self, bridge, bus):
        """Test typed signals receive converted payloads."""
        ticks, speeds = [], []
        bridge.tick.connect(ticks.append)
        bridge.speed_changed.connect(speeds.append)

        bus.emit(SimEvent.SIM_TICK, SimTickEvent(tick=7, run_id="r", packet_id="p"))
        bus.emit(SimEvent.SIM_SPEED_CHANGE, SimulationSpeed.FAST)

        assert ticks == [7]
        assert speeds == ["fast"]

    def test_announce_and_reset(self, bridge, bus):
        """Test announcements unpack and reset carries no payload."""
        announced, resets = [], []
        bridge.announced.connect(lambda message, priority: announced.append((message, priority)))
        bridge.simulation_reset.connect(lambda: resets.append(True))

        bus.emit(SimEvent.ANNOUNCE, Announcement("Packet arrived", "assertive"))
        bus.emit(SimEvent.SIM_RESET)

        assert announced == [("Packet arrived", "assertive")]
        assert resets == [True]

    def test_detach(self, bridge, bus):
        """Test a detached bridge no longer forwards."""
        received = []
        bridge.packet_moved.connect(received.append)
        bridge.detach()

        bus.emit(SimEvent.PACKET_MOVE, "payload")

        assert received == []
        assert not bridge.is_attached
        assert bus.listener_count(SimEvent.PACKET_MOVE) == 0

    def test_reattach_moves_to_new_bus(self, bridge, bus):
        """Test attaching to another bus releases the first."""
        received = []
        bridge.packet_arrived.connect(received.append)
        with EventBus() as other:
            bridge.attach(other)
            bus.emit(SimEvent.PACKET_ARRIVE, "old")
            other.emit(SimEvent.PACKET_ARRIVE, "new")
        assert received == ["new"]
