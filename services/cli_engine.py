"""
CLI Engine.

IOS-like command interpreter for routers, switches and firewalls. The
engine is a set of pure functions over an immutable CliState: it never
touches a device directly and applies configuration changes only through
the callbacks in CliContext.

Modes nest user > privileged > config > config-if. Keywords may be
abbreviated to any unique prefix ("conf t", "sh ip int br", "int gi0/0").
"""

import ipaddress
import logging
import re
from typing import Optional

from models.cli import CliContext, CliMode, CliResult, CliState
from models.hardware import get_hardware_model
from .device_state import RouteType, RoutingTable

logger = logging.getLogger(__name__)

BANNER = (
    "+--------------------------------------------------+",
    "|        NetBuilder Academy - CLI Emulator         |",
    "|   Type 'help' to list the available commands     |",
    "+--------------------------------------------------+",
    "",
)

# Full command forms per mode; drives help text and completion
COMMAND_TABLE = {
    CliMode.USER: (
        "enable",
        "help",
        "exit",
    ),
    CliMode.PRIVILEGED: (
        "configure terminal",
        "show ip interface brief",
        "show ip route",
        "show interfaces",
        "show running-config",
        "show version",
        "show history",
        "ping",
        "write memory",
        "copy running-config startup-config",
        "disable",
        "exit",
        "help",
    ),
    CliMode.CONFIG: (
        "hostname",
        "interface",
        "ip route",
        "no ip route",
        "exit",
        "end",
        "help",
    ),
    CliMode.CONFIG_IF: (
        "ip address",
        "no ip address",
        "shutdown",
        "no shutdown",
        "description",
        "exit",
        "end",
        "help",
    ),
}

HELP_TEXT = {
    CliMode.USER: [
        "Available commands (user mode):",
        "  enable                   Enter privileged mode",
        "  help                     Show this help",
        "  exit                     Close the terminal",
    ],
    CliMode.PRIVILEGED: [
        "Available commands (privileged mode):",
        "  configure terminal       Enter configuration mode",
        "  show ip interface brief  Interface summary",
        "  show ip route            Routing table",
        "  show interfaces          Interface details",
        "  show running-config      Current configuration",
        "  show version             Hardware and firmware",
        "  show history             Commands entered in this session",
        "  ping <ip>                Test connectivity",
        "  write memory             Save configuration",
        "  copy run start           Copy running-config to startup-config",
        "  disable                  Return to user mode",
        "  exit                     Return to user mode",
    ],
    CliMode.CONFIG: [
        "Available commands (config mode):",
        "  hostname <name>                Set the device hostname",
        "  interface <name>               Configure an interface",
        "  ip route <net> <mask> <nh>     Add a static route",
        "  no ip route <net> <mask> <nh>  Remove a static route",
        "  exit | end                     Return to privileged mode",
    ],
    CliMode.CONFIG_IF: [
        "Available commands (interface config):",
        "  ip address <ip> <mask>   Assign an IP address",
        "  no ip address            Remove the IP address",
        "  shutdown                 Disable the interface",
        "  no shutdown              Enable the interface",
        "  description <text>       Describe the interface",
        "  exit                     Return to config mode",
        "  end                      Return to privileged mode",
    ],
}

_HOSTNAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9-]{0,62}$")

_SPEED_BANDWIDTH = {
    "10M": "10000 Kbit",
    "100M": "100000 Kbit",
    "1G": "1000000 Kbit",
    "10G": "10000000 Kbit",
}


class _CommandError(Exception):
    """A user error; rendered as a single % line."""


def create_initial_cli_state(hostname: str = "Router", banner: bool = True) -> CliState:
    return CliState(
        hostname=hostname or "Router",
        mode=CliMode.USER,
        output=BANNER if banner else (),
    )


def build_prompt(state: CliState) -> str:
    suffix = {
        CliMode.USER: ">",
        CliMode.PRIVILEGED: "#",
        CliMode.CONFIG: "(config)#",
        CliMode.CONFIG_IF: "(config-if)#",
    }[state.mode]
    return f"{state.hostname}{suffix}"


def process_command(command: str, state: CliState, context: CliContext) -> CliResult:
    """
    Interpret one line of input.

    Returns the new state (with the prompt line, the result lines and the
    history entry appended) and the result lines on their own. Empty input
    leaves the state unchanged.
    """
    line = str(command or "").strip()
    if not line:
        return CliResult(state=state)

    prompt_line = f"{build_prompt(state)} {line}"
    tokens = line.split()
    closed = False

    try:
        lines, new_state = _dispatch(tokens, state, context)
        if new_state is None:
            closed = True
            new_state = state
    except _CommandError as e:
        lines, new_state = [f"% {e}"], state
    except Exception as e:
        logger.exception(f"CLI command failed: {line!r}")
        lines, new_state = [f"% Internal error: {e}"], state

    final = new_state.evolve(
        output=state.output + (prompt_line,) + tuple(lines),
        history=state.history + (line,),
    )
    return CliResult(state=final, lines=tuple(lines), closed=closed)


def get_completions(partial: str, mode: CliMode) -> list[str]:
    """
    Commands of a mode matching what has been typed.

    A single word completes to verbs; several words complete to full
    command forms. An empty input lists every verb.
    """
    commands = COMMAND_TABLE[mode]
    words = partial.lower().split()
    verbs = list(dict.fromkeys(c.split()[0] for c in commands))
    if not words:
        return verbs
    if len(words) == 1 and not partial.endswith(" "):
        return [v for v in verbs if v.startswith(words[0])]

    # Every typed word may be an abbreviation of the matching keyword
    matches = []
    for full in commands:
        parts = full.split()
        if len(parts) >= len(words) and all(p.startswith(w) for p, w in zip(parts, words)):
            matches.append(full)
    return matches


# ---- Dispatch ----

def _match(token: str, keywords) -> Optional[str]:
    """Resolve a keyword or a unique prefix of one."""
    token = token.lower()
    if token in keywords:
        return token
    hits = [k for k in keywords if k.startswith(token)]
    if len(hits) == 1:
        return hits[0]
    if len(hits) > 1:
        raise _CommandError(f"Ambiguous command: '{token}'")
    return None


def _invalid(tokens) -> _CommandError:
    return _CommandError(f"Invalid input detected: '{' '.join(tokens)}'")


def _dispatch(tokens: list[str], state: CliState, context: CliContext):
    """Returns (lines, new_state); new_state None closes the session."""
    if tokens[0] == "?":
        return list(HELP_TEXT[state.mode]), state

    handlers = _HANDLERS[state.mode]
    verb = _match(tokens[0], handlers)
    if verb is None:
        raise _invalid(tokens)
    return handlers[verb](tokens[1:], state, context)


# ---- User mode ----

def _user_enable(args, state, context):
    return [], state.evolve(mode=CliMode.PRIVILEGED)


def _user_exit(args, state, context):
    return ["--- Terminal closed ---"], None


def _help(args, state, context):
    return list(HELP_TEXT[state.mode]), state


# ---- Privileged mode ----

def _configure(args, state, context):
    if not args:
        raise _CommandError("Incomplete command: configure terminal")
    if _match(args[0], ("terminal",)) is None:
        raise _invalid(["configure"] + args)
    return (
        ["Enter configuration commands, one per line.  End with 'end'."],
        state.evolve(mode=CliMode.CONFIG, current_interface=None),
    )


def _show(args, state, context):
    if not args:
        raise _CommandError("Incomplete command: show ?")
    sub = _match(args[0], ("ip", "interfaces", "running-config", "version", "history"))
    if sub == "ip":
        if len(args) < 2:
            raise _CommandError("Incomplete command: show ip interface brief | show ip route")
        what = _match(args[1], ("interface", "route"))
        if what == "interface":
            if len(args) < 3 or _match(args[2], ("brief",)) is None:
                raise _CommandError("Incomplete command: show ip interface brief")
            return format_ip_interface_brief(context.device), state
        if what == "route":
            return format_ip_route(context), state
    elif sub == "interfaces":
        return format_interfaces(context.device), state
    elif sub == "running-config":
        return format_running_config(state, context), state
    elif sub == "version":
        return format_version(state, context), state
    elif sub == "history":
        return [f"  {entry}" for entry in state.history], state
    raise _invalid(["show"] + args)


def _ping(args, state, context):
    if not args:
        raise _CommandError("Incomplete command: ping <ip-address>")
    destination = args[0]
    _require_ip(destination, "Invalid IP address")

    lines = [
        "Type escape sequence to abort.",
        f"Sending 5, 100-byte ICMP Echos to {destination}, timeout is 2 seconds:",
    ]
    if context.on_ping is None:
        return lines + [
            "!!!!!",
            "Success rate is 100 percent (5/5), round-trip min/avg/max = 1/2/4 ms",
        ], state

    result = context.on_ping(destination)
    if result is not None and getattr(result, "success", False):
        latency = max(1, round(getattr(result, "total_latency_ms", 0) or 1))
        return lines + [
            "!!!!!",
            f"Success rate is 100 percent (5/5), round-trip min/avg/max = "
            f"{latency}/{latency}/{latency} ms",
        ], state
    return lines + [".....", "Success rate is 0 percent (0/5)"], state


def _write(args, state, context):
    if args and _match(args[0], ("memory",)) is None:
        raise _invalid(["write"] + args)
    if context.on_save_config is not None:
        context.on_save_config()
    return ["Building configuration...", "[OK]"], state


def _copy(args, state, context):
    if (
        len(args) < 2
        or _match(args[0], ("running-config",)) is None
        or _match(args[1], ("startup-config",)) is None
    ):
        raise _CommandError("Usage: copy running-config startup-config")
    if context.on_save_config is not None:
        context.on_save_config()
    return ["Destination filename [startup-config]?", "Building configuration...", "[OK]"], state


def _disable(args, state, context):
    return [], state.evolve(mode=CliMode.USER, current_interface=None)


# ---- Global configuration ----

def _hostname(args, state, context):
    if not args:
        raise _CommandError("Incomplete command: hostname <name>")
    name = args[0]
    if not _HOSTNAME_RE.match(name):
        raise _CommandError(f"Invalid hostname '{name}'")
    context.on_update_data({"hostname": name})
    return [], state.evolve(hostname=name)


def _interface(args, state, context):
    if not args:
        raise _CommandError("Incomplete command: interface <name>")
    query = "".join(args)
    iface = context.device.find_interface(query)
    if iface is None:
        raise _CommandError(f"Interface '{' '.join(args)}' not found")
    return [], state.evolve(mode=CliMode.CONFIG_IF, current_interface=iface.id)


def _config_ip(args, state, context):
    if not args or _match(args[0], ("route",)) is None:
        raise _invalid(["ip"] + args)
    network, mask, next_hop = _route_args(args[1:], "ip route")
    if context.on_add_static_route is None:
        raise _CommandError("Static routing is not available on this device")
    context.on_add_static_route(network, mask, next_hop)
    return [], state


def _config_no(args, state, context):
    if len(args) < 2 or _match(args[0], ("ip",)) is None or _match(args[1], ("route",)) is None:
        raise _invalid(["no"] + args)
    network, mask, next_hop = _route_args(args[2:], "no ip route")
    if context.on_remove_static_route is None:
        raise _CommandError("Static routing is not available on this device")
    context.on_remove_static_route(network, mask, next_hop)
    return [], state


def _to_privileged(args, state, context):
    return [], state.evolve(mode=CliMode.PRIVILEGED, current_interface=None)


# ---- Interface configuration ----

def _current_interface(state, context):
    iface = context.device.get_interface(state.current_interface or "")
    if iface is None:
        raise _CommandError("Interface no longer exists")
    return iface


def _if_ip(args, state, context):
    iface = _current_interface(state, context)
    if not args or _match(args[0], ("address",)) is None:
        raise _invalid(["ip"] + args)
    if len(args) < 3:
        raise _CommandError("Incomplete command: ip address <ip> <mask>")
    address, mask = args[1], args[2]
    _require_ip(address, "Invalid IP address")
    _require_mask(mask)
    context.on_update_interface(iface.id, {"ip_address": address, "subnet_mask": mask})
    return [], state


def _if_no(args, state, context):
    iface = _current_interface(state, context)
    if not args:
        raise _CommandError("Incomplete command: no ?")
    sub = _match(args[0], ("ip", "shutdown"))
    if sub == "shutdown":
        context.on_update_interface(iface.id, {"admin_up": True})
        return [f"%LINK-5-CHANGED: Interface {iface.name}, changed state to up"], state
    if sub == "ip" and len(args) > 1 and _match(args[1], ("address",)):
        context.on_update_interface(iface.id, {"ip_address": "", "subnet_mask": ""})
        return [], state
    raise _invalid(["no"] + args)


def _if_shutdown(args, state, context):
    iface = _current_interface(state, context)
    context.on_update_interface(iface.id, {"admin_up": False})
    return [f"%LINK-5-CHANGED: Interface {iface.name}, changed state to administratively down"], state


def _if_description(args, state, context):
    iface = _current_interface(state, context)
    if not args:
        raise _CommandError("Incomplete command: description <text>")
    context.on_update_interface(iface.id, {"description": " ".join(args)})
    return [], state


def _if_exit(args, state, context):
    return [], state.evolve(mode=CliMode.CONFIG, current_interface=None)


_HANDLERS = {
    CliMode.USER: {
        "enable": _user_enable,
        "help": _help,
        "exit": _user_exit,
    },
    CliMode.PRIVILEGED: {
        "configure": _configure,
        "show": _show,
        "ping": _ping,
        "write": _write,
        "copy": _copy,
        "disable": _disable,
        "exit": _disable,
        "help": _help,
    },
    CliMode.CONFIG: {
        "hostname": _hostname,
        "interface": _interface,
        "ip": _config_ip,
        "no": _config_no,
        "exit": _to_privileged,
        "end": _to_privileged,
        "help": _help,
    },
    CliMode.CONFIG_IF: {
        "ip": _if_ip,
        "no": _if_no,
        "shutdown": _if_shutdown,
        "description": _if_description,
        "exit": _if_exit,
        "end": _to_privileged,
        "help": _help,
    },
}


# ---- Validation ----

def _require_ip(value: str, message: str):
    try:
        ipaddress.IPv4Address(value)
    except ValueError:
        raise _CommandError(f"{message} '{value}'") from None


def _require_mask(value: str):
    try:
        ipaddress.IPv4Network(f"0.0.0.0/{value}")
    except ValueError:
        raise _CommandError(f"Invalid subnet mask '{value}'") from None


def _route_args(args, usage: str):
    if len(args) < 3:
        raise _CommandError(f"Incomplete command: {usage} <network> <mask> <next-hop>")
    network, mask, next_hop = args[:3]
    _require_ip(network, "Invalid network")
    _require_mask(mask)
    _require_ip(next_hop, "Invalid next hop")
    return network, mask, next_hop


# ---- Formatters ----

def format_ip_interface_brief(device) -> list[str]:
    header = f"{'Interface':<27}{'IP-Address':<16}{'OK?':<4}{'Method':<7}{'Status':<22}Protocol"
    lines = [header]
    for iface in device.interfaces:
        protocol = "up" if iface.admin_up and iface.is_connected else "down"
        lines.append(
            f"{iface.name:<27}{(iface.ip_address or 'unassigned'):<16}{'YES':<4}"
            f"{('manual' if iface.ip_address else 'unset'):<7}{iface.status_text:<22}{protocol}"
        )
    return lines


def format_interfaces(device) -> list[str]:
    lines = []
    for iface in device.interfaces:
        protocol = "up" if iface.admin_up and iface.is_connected else "down"
        lines.append(f"{iface.name} is {iface.status_text}, line protocol is {protocol}")
        lines.append(f"  Hardware is {iface.media.value.upper()}, address is {iface.mac_address}")
        if iface.description:
            lines.append(f"  Description: {iface.description}")
        if iface.network is not None:
            lines.append(f"  Internet address is {iface.ip_address}/{iface.network.prefixlen}")
        lines.append(f"  MTU 1500 bytes, BW {_SPEED_BANDWIDTH.get(iface.speed, iface.speed)}, DLY 10 usec")
        if iface.poe.value != "none":
            lines.append(f"  PoE: {'powered' if iface.poe.value == 'in' else 'supplying'}")
        lines.append("")
    return lines


def format_ip_route(context: CliContext) -> list[str]:
    if context.get_routes is not None:
        routes = list(context.get_routes())
    else:
        routes = RoutingTable.for_device(context.device).routes

    lines = ["Codes: C - connected, S - static, S* - candidate default", ""]
    default = next((r for r in routes if r.route_type == RouteType.DEFAULT or r.is_default), None)
    if default is not None and default.next_hop:
        lines.append(f"Gateway of last resort is {default.next_hop} to network 0.0.0.0")
    else:
        lines.append("Gateway of last resort is not set")
    lines.append("")
    if not routes:
        lines.append("  (no routes)")
    for route in routes:
        lines.append(route.describe())
    return lines


def format_running_config(state: CliState, context: CliContext) -> list[str]:
    device = context.device
    lines = [
        "Building configuration...",
        "",
        "Current configuration:",
        "!",
        f"hostname {state.hostname}",
        "!",
    ]
    for iface in device.interfaces:
        lines.append(f"interface {iface.name}")
        if iface.description:
            lines.append(f" description {iface.description}")
        if iface.ip_address and iface.subnet_mask:
            lines.append(f" ip address {iface.ip_address} {iface.subnet_mask}")
        else:
            lines.append(" no ip address")
        if not iface.admin_up:
            lines.append(" shutdown")
        lines.append("!")
    for route in device.static_routes:
        lines.append(f"ip route {route.network} {route.mask} {route.next_hop}")
    if device.static_routes:
        lines.append("!")
    lines.append("end")
    return lines


def format_version(state: CliState, context: CliContext) -> list[str]:
    device = context.device
    model = get_hardware_model(device.hardware_model)
    firmware = context.firmware or (model.firmware if model else "") or "unknown"
    return [
        f"NetBuilder Academy Virtual {device.device_type.value}, {firmware}",
        f"Hostname: {state.hostname}",
        f"Model: {model.name if model else 'Generic'}",
        f"Interfaces: {len(device.interfaces)}",
    ]
