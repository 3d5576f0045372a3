"""
Unit tests for the IOS-like CLI engine.

Tests:
- Mode transitions and prompts
- Keyword abbreviation and ambiguity
- Configuration commands and their callbacks
- Show command formatting
- Error lines and completion
"""

import pytest

from conftest import make_router
from models.cli import CliContext, CliMode
from models.network import StaticRoute
from models.simulation import SimulationSummary
from services.cli_engine import (
    BANNER,
    build_prompt,
    create_initial_cli_state,
    get_completions,
    process_command,
)


class Recorder:
    """Collects callback invocations made by the engine."""

    def __init__(self):
        self.data_updates = []
        self.interface_updates = []
        self.added_routes = []
        self.removed_routes = []
        self.saves = 0

    def on_save(self):
        self.saves += 1


@pytest.fixture
def router():
    return make_router("r1", [("192.168.1.1", "255.255.255.0")])


@pytest.fixture
def calls():
    return Recorder()


@pytest.fixture
def context(router, calls):
    return CliContext(
        device=router,
        on_update_data=calls.data_updates.append,
        on_update_interface=lambda iface_id, changes: calls.interface_updates.append((iface_id, changes)),
        on_add_static_route=lambda *route: calls.added_routes.append(route),
        on_remove_static_route=lambda *route: calls.removed_routes.append(route),
        on_save_config=calls.on_save,
    )


def run(commands, context, state=None):
    """Feed several lines through the engine; return the final result."""
    state = state or create_initial_cli_state("R1", banner=False)
    result = None
    for command in commands:
        result = process_command(command, state, context)
        state = result.state
    return result


class TestModes:
    """Tests for mode navigation."""

    def test_initial_state(self):
        """Test a new session starts in user mode with the banner."""
        state = create_initial_cli_state("R1")
        assert state.mode == CliMode.USER
        assert state.output == BANNER
        assert build_prompt(state) == "R1>"
        assert create_initial_cli_state("", banner=False).hostname == "Router"

    @pytest.mark.parametrize("commands,mode,prompt", [
        (["enable"], CliMode.PRIVILEGED, "R1#"),
        (["enable", "configure terminal"], CliMode.CONFIG, "R1(config)#"),
        (["en", "conf t", "int gi0/0"], CliMode.CONFIG_IF, "R1(config-if)#"),
        (["en", "conf t", "int gi0/0", "exit"], CliMode.CONFIG, "R1(config)#"),
        (["en", "conf t", "int gi0/0", "end"], CliMode.PRIVILEGED, "R1#"),
        (["en", "conf t", "end"], CliMode.PRIVILEGED, "R1#"),
        (["en", "disable"], CliMode.USER, "R1>"),
        (["en", "exit"], CliMode.USER, "R1>"),
    ])
    def test_transitions(self, context, commands, mode, prompt):
        """Test each mode transition and the resulting prompt."""
        state = run(commands, context).state
        assert state.mode == mode
        assert build_prompt(state) == prompt

    def test_interface_mode_tracks_interface(self, context):
        """Test entering interface mode records the interface id."""
        state = run(["en", "conf t", "interface GigabitEthernet 0/0"], context).state
        assert state.current_interface == "gi0-0"
        state = run(["exit"], context, state).state
        assert state.current_interface is None

    def test_exit_from_user_mode_closes(self, context):
        """Test exit at the top level closes the terminal."""
        result = run(["exit"], context)
        assert result.closed
        assert result.lines == ("--- Terminal closed ---",)

    def test_empty_input_is_ignored(self, context):
        """Test blank lines change nothing."""
        state = create_initial_cli_state("R1", banner=False)
        result = process_command("   ", state, context)
        assert result.state is state
        assert result.lines == ()

    def test_missing_input_is_ignored(self, context):
        """Test None from an unbound input field behaves like a blank line."""
        state = create_initial_cli_state("R1", banner=False)
        result = process_command(None, state, context)
        assert result.state is state
        assert result.lines == ()

    def test_non_string_input_is_rejected(self, context):
        """Test a non-string command becomes an ordinary invalid input."""
        state = create_initial_cli_state("R1", banner=False)
        result = process_command(42, state, context)
        assert len(result.lines) == 1
        assert result.lines[0].startswith("%")
        assert result.state.mode == state.mode


class TestOutputAndHistory:
    """Tests for the transcript kept in the state."""

    def test_prompt_echo_and_history(self, context):
        """Test every line is echoed with its prompt and recorded."""
        state = create_initial_cli_state("R1", banner=False)
        result = process_command("enable", state, context)
        assert result.state.output == ("R1> enable",)
        assert result.state.history == ("enable",)

        result = process_command("show history", result.state, context)
        assert result.lines == ("  enable",)
        assert result.state.history == ("enable", "show history")

    def test_original_state_untouched(self, context):
        """Test processing returns a new state."""
        state = create_initial_cli_state("R1", banner=False)
        process_command("enable", state, context)
        assert state.mode == CliMode.USER
        assert state.output == ()


class TestErrors:
    """Tests for rejected input."""

    def test_unknown_command(self, context):
        """Test unknown input yields one % line and keeps the mode."""
        result = run(["enable", "frobnicate now"], context)
        assert result.lines == ("% Invalid input detected: 'frobnicate now'",)
        assert result.state.mode == CliMode.PRIVILEGED

    def test_ambiguous_prefix(self, context):
        """Test a prefix that matches several keywords."""
        result = run(["e"], context)
        assert result.lines == ("% Ambiguous command: 'e'",)

    def test_privileged_command_in_user_mode(self, context):
        """Test show is not available before enable."""
        result = run(["show version"], context)
        assert result.lines[0].startswith("% Invalid input")

    def test_unknown_interface(self, context):
        """Test entering a port the device does not have."""
        result = run(["en", "conf t", "interface fa0/9"], context)
        assert result.lines == ("% Interface 'fa0/9' not found",)
        assert result.state.mode == CliMode.CONFIG

    @pytest.mark.parametrize("command,message", [
        ("ip address 300.1.1.1 255.255.255.0", "% Invalid IP address '300.1.1.1'"),
        ("ip address 10.0.0.1 255.0.255.0", "% Invalid subnet mask '255.0.255.0'"),
        ("ip address 10.0.0.1", "% Incomplete command: ip address <ip> <mask>"),
    ])
    def test_bad_addresses(self, context, calls, command, message):
        """Test address validation rejects malformed input."""
        result = run(["en", "conf t", "int gi0/0", command], context)
        assert result.lines == (message,)
        assert calls.interface_updates == []

    def test_callback_failure_becomes_internal_error(self, router):
        """Test an exception raised by a callback is reported, not raised."""
        def broken(changes):
            raise RuntimeError("store offline")

        context = CliContext(device=router, on_update_data=broken)
        result = run(["en", "conf t", "hostname R2"], context)
        assert result.lines == ("% Internal error: store offline",)
        assert result.state.hostname == "R1"

    def test_invalid_hostname(self, context, calls):
        """Test hostnames must start with a letter."""
        result = run(["en", "conf t", "hostname 9lives"], context)
        assert result.lines == ("% Invalid hostname '9lives'",)
        assert calls.data_updates == []


class TestConfiguration:
    """Tests for commands that change the device."""

    def test_hostname(self, context, calls):
        """Test hostname updates the prompt and the device store."""
        state = run(["en", "conf t", "hostname Core1"], context).state
        assert build_prompt(state) == "Core1(config)#"
        assert calls.data_updates == [{"hostname": "Core1"}]

    def test_ip_address(self, context, calls):
        """Test assigning an address to the current interface."""
        run(["en", "conf t", "int gi0/1", "ip address 10.0.0.1 255.255.255.0"], context)
        assert calls.interface_updates == [
            ("gi0-1", {"ip_address": "10.0.0.1", "subnet_mask": "255.255.255.0"}),
        ]

    def test_no_ip_address(self, context, calls):
        """Test removing an interface address."""
        run(["en", "conf t", "int gi0/0", "no ip address"], context)
        assert calls.interface_updates == [("gi0-0", {"ip_address": "", "subnet_mask": ""})]

    def test_shutdown_and_no_shutdown(self, context, calls):
        """Test admin state changes print a link message."""
        result = run(["en", "conf t", "int gi0/0", "shutdown"], context)
        assert result.lines == (
            "%LINK-5-CHANGED: Interface GigabitEthernet0/0, changed state to administratively down",
        )
        result = run(["no shut"], context, result.state)
        assert result.lines == ("%LINK-5-CHANGED: Interface GigabitEthernet0/0, changed state to up",)
        assert calls.interface_updates == [("gi0-0", {"admin_up": False}), ("gi0-0", {"admin_up": True})]

    def test_description(self, context, calls):
        """Test the description keeps its spaces."""
        run(["en", "conf t", "int gi0/0", "description uplink to core"], context)
        assert calls.interface_updates == [("gi0-0", {"description": "uplink to core"})]

    def test_static_routes(self, context, calls):
        """Test ip route and no ip route invoke the route callbacks."""
        run(["en", "conf t", "ip route 10.0.0.0 255.0.0.0 192.168.1.254"], context)
        run(["en", "conf t", "no ip route 10.0.0.0 255.0.0.0 192.168.1.254"], context)
        assert calls.added_routes == [("10.0.0.0", "255.0.0.0", "192.168.1.254")]
        assert calls.removed_routes == [("10.0.0.0", "255.0.0.0", "192.168.1.254")]

    def test_static_routes_unavailable(self, router):
        """Test devices without route callbacks refuse ip route."""
        result = run(["en", "conf t", "ip route 10.0.0.0 255.0.0.0 192.168.1.254"], CliContext(device=router))
        assert result.lines == ("% Static routing is not available on this device",)

    def test_write_memory(self, context, calls):
        """Test saving through write and copy."""
        result = run(["en", "wr"], context)
        assert result.lines == ("Building configuration...", "[OK]")
        run(["en", "copy run start"], context)
        assert calls.saves == 2


class TestShow:
    """Tests for show commands."""

    def test_ip_interface_brief(self, context):
        """Test the interface summary table."""
        lines = run(["en", "sh ip int br"], context).lines
        assert lines[0].startswith("Interface")
        assert "IP-Address" in lines[0]
        assert len(lines) == 4
        assert "192.168.1.1" in lines[1]
        assert "unassigned" in lines[2]

    def test_ip_route(self, context, router):
        """Test the routing table listing built from the device."""
        router.static_routes.append(StaticRoute("0.0.0.0", "0.0.0.0", "192.168.1.254"))
        lines = run(["en", "show ip route"], context).lines
        assert lines[0].startswith("Codes:")
        assert "Gateway of last resort is 192.168.1.254 to network 0.0.0.0" in lines
        assert any(line.startswith("C    192.168.1.0/24") for line in lines)

    def test_ip_route_without_routes(self, router):
        """Test an unconfigured device shows an empty table."""
        router.interfaces[0].ip_address = ""
        lines = run(["en", "show ip route"], CliContext(device=router)).lines
        assert "Gateway of last resort is not set" in lines
        assert "  (no routes)" in lines

    def test_running_config(self, context, router):
        """Test the configuration dump."""
        router.interfaces[1].admin_up = False
        router.static_routes.append(StaticRoute("10.0.0.0", "255.0.0.0", "192.168.1.254"))
        lines = run(["en", "show running-config"], context).lines
        assert "hostname R1" in lines
        assert "interface GigabitEthernet0/0" in lines
        assert " ip address 192.168.1.1 255.255.255.0" in lines
        assert " shutdown" in lines
        assert "ip route 10.0.0.0 255.0.0.0 192.168.1.254" in lines
        assert lines[-1] == "end"

    def test_version(self, context):
        """Test the version banner names the model and firmware."""
        lines = run(["en", "show version"], context).lines
        assert "IOS 15.7(3)M" in lines[0]
        assert "Model: Cisco 2911" in lines

    def test_interfaces(self, context):
        """Test the detailed interface listing."""
        lines = run(["en", "show interfaces"], context).lines
        assert lines[0] == "GigabitEthernet0/0 is down, line protocol is down"
        assert "  Internet address is 192.168.1.1/24" in lines

    def test_help(self, context):
        """Test help text follows the mode."""
        assert run(["?"], context).lines[0] == "Available commands (user mode):"
        assert run(["en", "help"], context).lines[0] == "Available commands (privileged mode):"


class TestPing:
    """Tests for the ping command."""

    def test_without_callback(self, context):
        """Test ping succeeds virtually when nothing resolves it."""
        lines = run(["en", "ping 10.0.0.1"], context).lines
        assert "!!!!!" in lines
        assert lines[-1].startswith("Success rate is 100 percent")

    def test_failed_ping(self, router):
        """Test a failing callback prints dots and zero success."""
        context = CliContext(device=router, on_ping=lambda ip: SimulationSummary.failure("No route"))
        lines = run(["en", "ping 10.0.0.1"], context).lines
        assert "....." in lines
        assert lines[-1] == "Success rate is 0 percent (0/5)"

    def test_successful_ping_reports_latency(self, router):
        """Test the round-trip time comes from the summary."""
        context = CliContext(
            device=router,
            on_ping=lambda ip: SimulationSummary(success=True, total_latency_ms=6.0),
        )
        lines = run(["en", "ping 10.0.0.1"], context).lines
        assert lines[-1] == "Success rate is 100 percent (5/5), round-trip min/avg/max = 6/6/6 ms"

    def test_invalid_target(self, context):
        """Test ping validates its argument."""
        assert run(["en", "ping nowhere"], context).lines == ("% Invalid IP address 'nowhere'",)


class TestCompletions:
    """Tests for tab completion."""

    def test_empty_lists_verbs(self):
        """Test no input lists every verb once."""
        verbs = get_completions("", CliMode.PRIVILEGED)
        assert verbs[0] == "configure"
        assert verbs.count("show") == 1

    def test_verb_prefix(self):
        """Test a single partial word completes verbs."""
        assert get_completions("sh", CliMode.PRIVILEGED) == ["show"]
        assert get_completions("e", CliMode.CONFIG) == ["exit", "end"]

    def test_multi_word(self):
        """Test several words complete to full command forms."""
        assert get_completions("show ip", CliMode.PRIVILEGED) == [
            "show ip interface brief",
            "show ip route",
        ]
        assert get_completions("sh ip r", CliMode.PRIVILEGED) == ["show ip route"]
        assert get_completions("no ", CliMode.CONFIG_IF) == ["no ip address", "no shutdown"]

    def test_no_match(self):
        """Test unmatched input completes to nothing."""
        assert get_completions("xyz", CliMode.USER) == []
