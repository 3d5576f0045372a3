"""
Integration tests for CLI sessions bound to a live topology.

Tests:
- Opening sessions and CLI availability
- Configuration written back to the device store
- Static routes and show ip route
- Ping resolved against the topology
- Session lifecycle
"""

import pytest

from models.cli import CliMode
from models.errors import CliUnavailableError
from models.network import StaticRoute
from services.cli_sessions import CliSessionManager


@pytest.fixture
def changes():
    return []


@pytest.fixture
def saves():
    return []


@pytest.fixture
def sessions(routed_topology, changes, saves):
    return CliSessionManager(routed_topology, show_banner=False, on_change=changes.append, on_save=saves.append)


def submit_all(sessions, device_id, lines):
    result = None
    for line in lines:
        result = sessions.submit(device_id, line)
    return result


class TestOpen:
    """Tests for opening sessions."""

    def test_open_router(self, sessions):
        """Test a router session starts in user mode with its hostname."""
        session = sessions.open("r1")
        assert session.state.mode == CliMode.USER
        assert session.state.hostname == "R1"
        assert session.context.firmware == "IOS 15.7(3)M"
        assert sessions.open_devices == ["r1"]

    def test_open_is_idempotent(self, sessions):
        """Test opening twice returns the same session."""
        assert sessions.open("r1") is sessions.open("r1")

    def test_banner(self, routed_topology):
        """Test the banner is shown when enabled."""
        session = CliSessionManager(routed_topology).open("r1")
        assert "NetBuilder Academy - CLI Emulator" in session.state.output[1]

    def test_device_without_cli(self, sessions):
        """Test end devices have no terminal."""
        with pytest.raises(CliUnavailableError) as exc_info:
            sessions.open("pc1")
        assert exc_info.value.device_id == "pc1"
        assert exc_info.value.model == "pc-workstation"

    def test_unknown_device(self, sessions):
        """Test opening a device that does not exist."""
        with pytest.raises(CliUnavailableError):
            sessions.open("ghost")


class TestConfiguration:
    """Tests for changes applied through a session."""

    def test_hostname_and_interface(self, sessions, routed_topology, changes):
        """Test configuration lands in the topology."""
        sessions.open("r1")
        submit_all(sessions, "r1", [
            "enable",
            "configure terminal",
            "hostname Edge",
            "interface gi0/2",
            "ip address 172.16.0.1 255.255.0.0",
            "description lab uplink",
        ])

        router = routed_topology.get_device("r1")
        assert router.hostname == "Edge"
        iface = router.get_interface("gi0-2")
        assert iface.ip_address == "172.16.0.1"
        assert iface.subnet_mask == "255.255.0.0"
        assert iface.description == "lab uplink"
        assert changes == ["r1", "r1", "r1"]
        assert sessions.get("r1").state.hostname == "Edge"

    def test_static_route_round_trip(self, sessions, routed_topology):
        """Test ip route adds once, shows, and no ip route removes."""
        sessions.open("r1")
        submit_all(sessions, "r1", ["en", "conf t"])
        sessions.submit("r1", "ip route 172.20.0.0 255.255.0.0 10.0.0.10")
        sessions.submit("r1", "ip route 172.20.0.0 255.255.0.0 10.0.0.10")
        router = routed_topology.get_device("r1")
        assert router.static_routes == [StaticRoute("172.20.0.0", "255.255.0.0", "10.0.0.10")]

        result = submit_all(sessions, "r1", ["end", "show ip route"])
        assert "S    172.20.0.0/16 [1/0] via 10.0.0.10" in result.lines

        submit_all(sessions, "r1", ["conf t", "no ip route 172.20.0.0 255.255.0.0 10.0.0.10"])
        assert router.static_routes == []

    def test_switch_has_no_static_routes(self, sessions):
        """Test switches refuse ip route."""
        sessions.open("sw1")
        result = submit_all(sessions, "sw1", ["en", "conf t", "ip route 0.0.0.0 0.0.0.0 192.168.1.1"])
        assert result.lines == ("% Static routing is not available on this device",)

    def test_write_memory(self, sessions, saves):
        """Test saving reports the device id."""
        sessions.open("r1")
        submit_all(sessions, "r1", ["en", "write memory"])
        assert saves == ["r1"]


class TestPing:
    """Tests for pings resolved against the topology."""

    def test_directly_connected(self, sessions):
        """Test a one-hop ping."""
        sessions.open("r1")
        result = submit_all(sessions, "r1", ["en", "ping 10.0.0.10"])
        assert result.lines[-1] == "Success rate is 100 percent (5/5), round-trip min/avg/max = 2/2/2 ms"

    def test_through_switch(self, sessions):
        """Test latency grows with hop count."""
        sessions.open("r1")
        result = submit_all(sessions, "r1", ["en", "ping 192.168.1.10"])
        assert result.lines[-1].endswith("= 4/4/4 ms")

    def test_unknown_address(self, sessions):
        """Test an address nobody owns fails."""
        sessions.open("r1")
        result = submit_all(sessions, "r1", ["en", "ping 8.8.8.8"])
        assert result.lines[-2:] == (".....", "Success rate is 0 percent (0/5)")

    def test_own_address(self, sessions):
        """Test pinging one of the device's own addresses."""
        sessions.open("r1")
        result = submit_all(sessions, "r1", ["en", "ping 10.0.0.1"])
        assert "!!!!!" in result.lines

    def test_shutdown_breaks_ping(self, sessions, routed_topology):
        """Test a shutdown entered in the CLI affects the next ping."""
        sessions.open("r1")
        submit_all(sessions, "r1", ["en", "conf t", "int gi0/1", "shutdown", "end"])
        assert routed_topology.get_device("r1").get_interface("gi0-1").admin_up is False

        result = sessions.submit("r1", "ping 10.0.0.10")
        assert result.lines[-1] == "Success rate is 0 percent (0/5)"


class TestLifecycle:
    """Tests for closing sessions."""

    def test_exit_closes_session(self, sessions):
        """Test exit in user mode ends the session."""
        sessions.open("r1")
        result = sessions.submit("r1", "exit")
        assert result.closed
        assert sessions.get("r1") is None

    def test_submit_without_session(self, sessions):
        """Test submitting to a closed terminal is an error."""
        with pytest.raises(KeyError):
            sessions.submit("r1", "enable")

    def test_completion(self, sessions):
        """Test completion follows the session's mode."""
        assert sessions.complete("r1", "en") == []
        sessions.open("r1")
        assert sessions.complete("r1", "en") == ["enable"]
        sessions.submit("r1", "enable")
        assert sessions.complete("r1", "sh ip") == ["show ip interface brief", "show ip route"]

    def test_close_all(self, sessions):
        """Test every session can be closed at once."""
        sessions.open("r1")
        sessions.open("sw1")
        assert sessions.close("sw1")
        assert not sessions.close("sw1")
        assert sessions.close_all() == 1
        assert sessions.open_devices == []
