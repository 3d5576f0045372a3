"""
CLI session registry.

One terminal per device, backed by the live Topology: configuration
commands entered in a session are written straight to the device store.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from models.cli import CliContext, CliResult, CliState
from models.errors import CliUnavailableError
from models.hardware import get_hardware_model
from models.network import StaticRoute, Topology
from models.simulation import SimulationSummary
from .cli_engine import create_initial_cli_state, get_completions, process_command
from .device_state import RoutingTable
from .path_resolver import PathResolver

logger = logging.getLogger(__name__)


@dataclass
class CliSession:
    """An open terminal on one device."""
    device_id: str
    state: CliState
    context: CliContext
    opened_at: float = field(default_factory=time.time)


class CliSessionManager:
    """
    Opens, drives and closes CLI sessions keyed by device id.

    Usage:
        sessions = CliSessionManager(topology)
        sessions.open("r1")
        result = sessions.submit("r1", "enable")
    """

    def __init__(
        self,
        topology: Topology,
        show_banner: bool = True,
        on_change: Optional[Callable[[str], None]] = None,
        on_save: Optional[Callable[[str], None]] = None,
    ):
        self._topology = topology
        self._show_banner = show_banner
        self._on_change = on_change
        self._on_save = on_save
        self._sessions: dict[str, CliSession] = {}

    @property
    def open_devices(self) -> list[str]:
        return list(self._sessions)

    def open(self, device_id: str, context: Optional[CliContext] = None) -> CliSession:
        """
        Open (or return the already open) session for a device.

        Raises CliUnavailableError if the device is unknown or its
        hardware has no command line.
        """
        existing = self._sessions.get(device_id)
        if existing is not None:
            return existing

        device = self._topology.get_device(device_id)
        if device is None:
            raise CliUnavailableError(device_id)
        model = get_hardware_model(device.hardware_model)
        if model is None or not model.has_cli:
            raise CliUnavailableError(device_id, device.hardware_model)

        session = CliSession(
            device_id=device_id,
            state=create_initial_cli_state(device.hostname, banner=self._show_banner),
            context=context or self._build_context(device_id, model.firmware),
        )
        self._sessions[device_id] = session
        logger.info(f"Opened CLI session on {device_id} ({model.name})")
        return session

    def get(self, device_id: str) -> Optional[CliSession]:
        return self._sessions.get(device_id)

    def submit(self, device_id: str, line: str) -> CliResult:
        """Run one command line; a closing command ends the session."""
        session = self._sessions.get(device_id)
        if session is None:
            raise KeyError(f"No open CLI session for {device_id}")
        result = process_command(line, session.state, session.context)
        session.state = result.state
        if result.closed:
            self.close(device_id)
        return result

    def complete(self, device_id: str, partial: str) -> list[str]:
        session = self._sessions.get(device_id)
        if session is None:
            return []
        return get_completions(partial, session.state.mode)

    def close(self, device_id: str) -> bool:
        if self._sessions.pop(device_id, None) is None:
            return False
        logger.info(f"Closed CLI session on {device_id}")
        return True

    def close_all(self) -> int:
        count = len(self._sessions)
        self._sessions.clear()
        return count

    # ---- Context wiring ----

    def _build_context(self, device_id: str, firmware: str) -> CliContext:
        topology = self._topology
        device = topology.get_device(device_id)

        def update_data(changes: dict):
            topology.update_device(device_id, **changes)
            self._changed(device_id)

        def update_interface(interface_id: str, changes: dict):
            topology.update_interface(device_id, interface_id, **changes)
            self._changed(device_id)

        def add_route(network: str, mask: str, next_hop: str):
            route = StaticRoute(network, mask, next_hop)
            if route not in device.static_routes:
                device.static_routes.append(route)
                self._changed(device_id)

        def remove_route(network: str, mask: str, next_hop: str):
            route = StaticRoute(network, mask, next_hop)
            if route in device.static_routes:
                device.static_routes.remove(route)
                self._changed(device_id)

        def save():
            if self._on_save is not None:
                self._on_save(device_id)

        def ping(address: str) -> SimulationSummary:
            return self._dry_run_ping(device_id, address)

        return CliContext(
            device=device,
            on_update_data=update_data,
            on_update_interface=update_interface,
            on_add_static_route=add_route if device.device_type.is_router else None,
            on_remove_static_route=remove_route if device.device_type.is_router else None,
            get_routes=lambda: RoutingTable.for_device(device).routes,
            on_save_config=save,
            on_ping=ping,
            firmware=firmware,
        )

    def _dry_run_ping(self, device_id: str, address: str) -> SimulationSummary:
        """Resolve a ping from the CLI without animating it."""
        snapshot = self._topology.snapshot()
        target = snapshot.device_by_ip(address)
        if target is None:
            return SimulationSummary.failure(f"No route to host {address}")
        if target.id == device_id:
            return SimulationSummary(success=True, path=[device_id], total_latency_ms=1.0)
        result = PathResolver().resolve(snapshot, device_id, target.id)
        if not result.ok:
            return SimulationSummary.failure(result.failure.message)
        return SimulationSummary(
            success=True,
            path=result.path,
            total_latency_ms=2.0 * result.hop_count,
            total_packets=1,
            delivered_packets=1,
        )

    def _changed(self, device_id: str):
        logger.debug(f"Configuration changed on {device_id}")
        if self._on_change is not None:
            self._on_change(device_id)
