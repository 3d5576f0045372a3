"""
Command line emulator models.

CliState is an immutable value: every processed command yields a new
state. CliContext carries the device being configured and the callbacks
through which the device store applies changes.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Optional

from .network import Device


class CliMode(Enum):
    """Nested command contexts, outermost first."""
    USER = "user"
    PRIVILEGED = "privileged"
    CONFIG = "config"
    CONFIG_IF = "config-if"

    @property
    def depth(self) -> int:
        return _MODE_ORDER.index(self)


_MODE_ORDER = [CliMode.USER, CliMode.PRIVILEGED, CliMode.CONFIG, CliMode.CONFIG_IF]


@dataclass(frozen=True)
class CliState:
    hostname: str = "Router"
    mode: CliMode = CliMode.USER
    current_interface: Optional[str] = None
    output: tuple = ()
    history: tuple = ()

    def evolve(self, **changes) -> "CliState":
        return replace(self, **changes)

    @property
    def last_output(self) -> str:
        return self.output[-1] if self.output else ""


def _noop(*args, **kwargs):
    return None


@dataclass
class CliContext:
    """
    What a CLI session may read and which callbacks it may invoke.

    Attributes:
        device: Current device data (read-only for the engine)
        on_update_data: Apply partial device fields, e.g. {"hostname": "R2"}
        on_update_interface: Apply partial interface fields by interface id
        on_add_static_route / on_remove_static_route: (network, mask, next_hop)
        get_routes: Current routing table rows for "show ip route"
        on_save_config: "write memory"
        on_ping: Resolve a ping from this device; returns a summary or None
    """
    device: Device
    on_update_data: Callable[[dict], None] = _noop
    on_update_interface: Callable[[str, dict], None] = _noop
    on_add_static_route: Optional[Callable[[str, str, str], None]] = None
    on_remove_static_route: Optional[Callable[[str, str, str], None]] = None
    get_routes: Optional[Callable[[], list]] = None
    on_save_config: Optional[Callable[[], None]] = None
    on_ping: Optional[Callable[[str], object]] = None
    firmware: str = ""


@dataclass(frozen=True)
class CliResult:
    """Outcome of one processed line."""
    state: CliState
    lines: tuple = field(default_factory=tuple)
    closed: bool = False

    @property
    def output(self) -> tuple:
        return self.state.output
