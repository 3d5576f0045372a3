"""
Simulation Orchestrator.

Owns a ping run end to end: validates the request, resolves the path,
steps a packet across each hop while narrating what the devices learn,
and publishes every transition on the event bus. The only asynchronous
boundary is the per-hop suspension, which goes through the HopScheduler
so reset() can cancel it.
"""

import asyncio
import copy
import logging
from typing import Iterable, Optional

from models.errors import RunCancelledError
from models.network import Device, Edge, Interface, TopologySnapshot
from models.packet import BROADCAST_MAC, Packet, PacketFactory
from models.simulation import (
    Announcement,
    ConsoleLogEvent,
    DropReason,
    LogLevel,
    PacketArriveEvent,
    PacketDropEvent,
    PacketMoveEvent,
    PortStatusEvent,
    RunStatus,
    SchedulerConfig,
    SimStartEvent,
    SimTickEvent,
    SimulationRun,
    SimulationSpeed,
    SimulationState,
    SimulationSummary,
)
from .device_state import DeviceState, DeviceStateManager
from .event_bus import EventBus, SimEvent
from .path_resolver import PathResolver, PathResult
from .scheduler import HopScheduler

logger = logging.getLogger(__name__)

_CONSOLE_EVENTS = {
    LogLevel.INFO: SimEvent.CONSOLE_LOG,
    LogLevel.SUCCESS: SimEvent.CONSOLE_LOG,
    LogLevel.WARN: SimEvent.CONSOLE_WARN,
    LogLevel.ERROR: SimEvent.CONSOLE_ERROR,
}


class _TickLimitExceeded(Exception):
    pass


class SimulationOrchestrator:
    """
    State machine for ping runs: idle -> running -> completed/failed.

    Only one run may be active. A call to execute_ping while a run is in
    progress is rejected immediately with an unsuccessful summary and
    nothing is published for it.

    Usage:
        bus = EventBus()
        orchestrator = SimulationOrchestrator(bus)
        orchestrator.initialize(devices, edges)
        summary = await orchestrator.execute_ping("pc1", "pc2")
    """

    def __init__(
        self,
        event_bus: Optional[EventBus] = None,
        config: Optional[SchedulerConfig] = None,
        speed: SimulationSpeed = SimulationSpeed.NORMAL,
    ):
        self._bus = event_bus if event_bus is not None else EventBus()
        self._config = config or SchedulerConfig()
        self._speed = SimulationSpeed.parse(speed)
        self._snapshot = TopologySnapshot({}, [])
        self._states = DeviceStateManager(self._bus)
        self._resolver = PathResolver(self._states)
        self._scheduler = HopScheduler()
        self._packets = PacketFactory()

        self._run: Optional[SimulationRun] = None
        self._packet: Optional[Packet] = None
        self._logs: list[ConsoleLogEvent] = []
        self._tick = 0
        # (source MAC, destination MAC) of the frame on the current L2 segment
        self._frame = ("", BROADCAST_MAC)
        # (switch id, egress port) pairs crossed since the last L3 hop
        self._segment: list[tuple[str, str]] = []
        # Bumped on reset/initialize; stale continuations compare against it
        self._generation = 0

    # ---- Properties ----

    @property
    def event_bus(self) -> EventBus:
        return self._bus

    @property
    def config(self) -> SchedulerConfig:
        return self._config

    @property
    def speed(self) -> SimulationSpeed:
        return self._speed

    @property
    def snapshot(self) -> TopologySnapshot:
        return self._snapshot

    @property
    def is_running(self) -> bool:
        return self._run is not None and self._run.is_running

    @property
    def logs(self) -> list[ConsoleLogEvent]:
        return list(self._logs)

    @property
    def scheduler(self) -> HopScheduler:
        return self._scheduler

    # ---- Public operations ----

    def initialize(self, devices: Iterable[Device], edges: Iterable[Edge]):
        """
        Replace the internal snapshot with a copy of the given topology.

        Any run in progress is cancelled first. Safe to call before every
        run to pick up edits.
        """
        self._cancel_active("Topology re-initialized")
        self._snapshot = TopologySnapshot.capture(devices, edges)
        self._states.sync(self._snapshot)
        self._log(
            f"Simulation initialized with {len(self._snapshot.devices)} devices "
            f"and {len(self._snapshot.edges)} links"
        )

    def load_snapshot(self, snapshot: TopologySnapshot):
        """Initialize from an existing snapshot (e.g. loaded from JSON)."""
        self.initialize(snapshot.devices, snapshot.edges)

    def set_speed(self, speed):
        """
        Change playback speed. Takes effect from the next hop.

        Raises ValueError for an unknown speed name.
        """
        self._speed = SimulationSpeed.parse(speed)
        logger.debug(f"Speed set to {self._speed.value}")
        self._bus.emit(SimEvent.SIM_SPEED_CHANGE, self._speed)

    def reset(self):
        """
        Cancel any pending hop, clear the run and buffered logs, forget
        learned MAC/ARP entries and publish sim:reset.
        """
        self._cancel_active("Simulation reset")
        self._run = None
        self._packet = None
        self._logs.clear()
        self._tick = 0
        self._states.clear_learned()
        self._bus.emit(SimEvent.SIM_RESET, None)

    def get_state(self) -> SimulationState:
        return SimulationState(
            is_running=self.is_running,
            speed=self._speed,
            current_run=copy.deepcopy(self._run),
            current_tick=self._tick,
        )

    def get_device_state(self, device_id: str) -> Optional[DeviceState]:
        return self._states.get(device_id)

    def inspect_packet(self) -> Optional[Packet]:
        """Publish the in-flight packet on packet:inspect."""
        if self._packet is None or not self.is_running:
            return None
        snapshot = self._packet.snapshot()
        self._bus.emit(SimEvent.PACKET_INSPECT, snapshot)
        return snapshot

    def set_edge_validity(self, edge_id: str, valid: bool, reason: str = "") -> bool:
        """
        Mark a link valid or invalid in the engine's own snapshot.

        A packet whose next hop crosses an invalidated link is dropped.
        """
        edge = self._snapshot.set_edge_validity(edge_id, valid, reason or "Link disabled")
        if edge is None:
            return False
        self._log(
            f"Link {edge_id} is now {'up' if valid else 'down'}" + (f": {reason}" if reason else ""),
            LogLevel.INFO if valid else LogLevel.WARN,
        )
        self._bus.emit(SimEvent.PORT_STATUS_CHANGE, PortStatusEvent(
            device_id=edge.source, edge_id=edge_id, up=valid, reason=edge.invalid_reason,
        ))
        return True

    def set_interface_state(self, device_id: str, interface_id: str, up: bool) -> bool:
        """Administratively enable or shut down an interface in the snapshot."""
        iface = self._snapshot.set_interface_state(device_id, interface_id, up)
        if iface is None:
            return False
        self._states.refresh_routes(self._snapshot)
        self._log(
            f"Interface {iface.display_name} changed state to "
            f"{'up' if up else 'administratively down'}",
            LogLevel.INFO if up else LogLevel.WARN,
            device_id,
        )
        self._bus.emit(SimEvent.PORT_STATUS_CHANGE, PortStatusEvent(
            device_id=device_id, interface_id=interface_id, edge_id=iface.connected_edge_id or "", up=up,
        ))
        return True

    def resolve(self, source_id: str, target_id: str) -> PathResult:
        """Resolve a path without running anything."""
        return self._resolver.resolve(self._snapshot, source_id, target_id)

    def resolve_ip(self, source_id: str, address: str) -> Optional[PathResult]:
        """Resolve a path to whichever device owns an address."""
        target = self._snapshot.device_by_ip(address)
        if target is None:
            return None
        return self.resolve(source_id, target.id)

    async def execute_ping(
        self, source_id: str, target_id: str, ttl: Optional[int] = None
    ) -> SimulationSummary:
        """
        Send one ICMP echo request from source to target.

        Never raises for configuration or routing problems; those yield
        an unsuccessful summary. sim:complete is the last event of every
        run that was accepted.
        """
        if self.is_running:
            logger.warning(f"Ping {source_id} -> {target_id} rejected: a run is already active")
            return SimulationSummary.failure("A simulation is already running")

        self._logs.clear()
        self._tick = 0
        ttl = self._config.default_ttl if ttl is None else ttl

        error = self._validate(source_id, target_id, ttl)
        if error:
            self._run = None
            self._log(error, LogLevel.ERROR)
            return self._complete(SimulationSummary.failure(error))

        source = self._snapshot.get_device(source_id)
        target = self._snapshot.get_device(target_id)
        run = SimulationRun(source_id=source_id, target_id=target_id)
        self._run = run

        result = self._resolver.resolve(self._snapshot, source_id, target_id)
        if not result.ok:
            run.status = RunStatus.FAILED
            run.errors.append(result.failure.message)
            self._log(result.failure.message, LogLevel.ERROR, result.failure.device_id)
            self._announce(f"Ping failed: {result.failure.message}")
            return self._complete(SimulationSummary.failure(result.failure.message))

        self._generation += 1
        generation = self._generation
        first_iface = self._interface_toward(source, self._snapshot.get_edge(result.edges[0]))
        packet = self._packets.create_echo_request(
            src_ip=source.primary_ip,
            dst_ip=target.primary_ip,
            src_mac=first_iface.mac_address if first_iface else "",
            ttl=ttl,
            origin=source_id,
        )
        self._packet = packet
        run.packet_id = packet.id
        run.path = list(result.path)
        run.edges = list(result.edges)
        run.traversed = [source_id]
        run.status = RunStatus.RUNNING

        try:
            self._emit_live(generation, SimEvent.SIM_START, SimStartEvent(
                run_id=run.id, source_id=source_id, target_id=target_id,
                path=list(run.path), packet_id=packet.id,
            ))
            self._announce(f"Starting ping from {source.display_name} to {target.display_name}", generation)
            self._log(f"Pinging {target.primary_ip} ({target.display_name}) with TTL {packet.ttl}",
                      LogLevel.INFO, source_id, generation)

            for index, (from_id, to_id, edge_id) in enumerate(result.hops()):
                dropped = await self._hop(run, packet, generation, index, from_id, to_id, edge_id)
                if dropped is not None:
                    return dropped

            return self._arrive(run, packet, generation, target)

        except RunCancelledError:
            logger.info(f"Run {run.id} cancelled")
            return SimulationSummary.failure("Run cancelled", path=run.traversed)
        except asyncio.CancelledError:
            # The awaiting task was cancelled; finish the run before propagating
            if self._run is run and run.is_running:
                self._generation += 1
                self._fail(run, "Run cancelled by caller")
            raise
        except _TickLimitExceeded:
            message = f"Simulation exceeded {self._config.max_ticks} ticks"
            return self._fail(run, message)
        except Exception as e:
            logger.exception(f"Unexpected error during run {run.id}")
            return self._fail(run, f"Internal error: {e}")

    # ---- Run steps ----

    async def _hop(
        self,
        run: SimulationRun,
        packet: Packet,
        generation: int,
        index: int,
        from_id: str,
        to_id: str,
        edge_id: str,
    ) -> Optional[SimulationSummary]:
        """Move the packet across one edge. Returns a summary if it dropped."""
        edge = self._snapshot.get_edge(edge_id)
        from_dev = self._snapshot.get_device(from_id)
        to_dev = self._snapshot.get_device(to_id)
        from_iface = self._interface_toward(from_dev, edge)
        to_iface = self._interface_toward(to_dev, edge)

        # (a) narrate
        self._narrate(run, packet, generation, index, from_dev, from_iface, to_dev, to_iface)

        # (b) re-frame and age
        packet.rewrite_l2(from_iface.mac_address, to_iface.mac_address)
        packet.decrement_ttl()
        packet.hop_count += 1

        # (c) drop checks
        if not self._snapshot.is_traversable(edge):
            reason = edge.invalid_reason or "link is down"
            return self._drop(run, packet, generation, from_id, DropReason.LINK_DOWN,
                              f"Link {from_dev.display_name} -> {to_dev.display_name} is down: {reason}",
                              edge_id)
        if packet.expired and to_id != run.target_id:
            return self._drop(run, packet, generation, from_id, DropReason.TTL_EXPIRED,
                              f"TTL expired at {from_dev.display_name} after {packet.hop_count} hops "
                              f"(destination {packet.l3.dst_ip} not reached)",
                              edge_id)

        # (d) move and suspend
        duration = self._config.hop_duration_ms(self._speed)
        self._emit_live(generation, SimEvent.PACKET_MOVE, PacketMoveEvent(
            packet=packet.snapshot(),
            edge_id=edge_id,
            from_device=from_id,
            to_device=to_id,
            duration_ms=duration,
            hop=index + 1,
        ))
        await self._suspend(run, packet, generation, duration)

        if not self._snapshot.is_traversable(edge):
            reason = edge.invalid_reason or "link went down"
            return self._drop(run, packet, generation, to_id, DropReason.LINK_DOWN,
                              f"Packet lost in transit between {from_dev.display_name} and "
                              f"{to_dev.display_name}: {reason}",
                              edge_id)

        run.hop_durations_ms.append(duration)
        run.traversed.append(to_id)
        packet.current_device = to_id
        packet.path.append(to_id)
        if not to_dev.device_type.is_l2_forwarder:
            self._learn_reply_path(to_dev, to_iface, generation)
        return None

    async def _suspend(self, run: SimulationRun, packet: Packet, generation: int, duration_ms: float):
        """Wait out a hop in ticks, publishing sim:tick for each."""
        ticks = self._config.ticks_per_hop(self._speed)
        interval = duration_ms / ticks / 1000.0
        for _ in range(ticks):
            await self._scheduler.sleep(packet.id, interval)
            self._check_live(generation)
            self._tick += 1
            run.ticks += 1
            if run.ticks > self._config.max_ticks:
                raise _TickLimitExceeded()
            self._emit_live(generation, SimEvent.SIM_TICK, SimTickEvent(
                tick=self._tick, run_id=run.id, packet_id=packet.id,
            ))

    def _narrate(
        self,
        run: SimulationRun,
        packet: Packet,
        generation: int,
        index: int,
        from_dev: Device,
        from_iface: Interface,
        to_dev: Device,
        to_iface: Interface,
    ):
        """Console lines for one hop plus whatever the forwarding device learns."""
        if index == 0 or from_dev.device_type.is_router:
            self._narrate_l3_send(packet, generation, from_dev, from_iface)
        elif from_dev.device_type.is_l2_forwarder:
            self._narrate_switching(run, generation, index, from_dev, from_iface)

        self._log(
            f"Hop {index + 1}: {from_dev.display_name} ({from_iface.display_name}) -> "
            f"{to_dev.display_name} ({to_iface.display_name}), TTL {packet.ttl - 1}",
            LogLevel.INFO, from_dev.id, generation,
        )

    def _narrate_l3_send(self, packet: Packet, generation: int, device: Device, egress: Interface):
        dst_ip = packet.l3.dst_ip
        route = self._states.routing_table(device.id).lookup(dst_ip)
        if device.device_type.is_router:
            if route is not None:
                via = f"via {route.next_hop}" if route.next_hop else "directly connected"
                self._log(
                    f"Route lookup for {dst_ip}: [{route.route_type.code}] {route.network} {via}, "
                    f"out {route.interface_name}",
                    LogLevel.INFO, device.id, generation,
                )
        next_hop_ip = route.next_hop if route is not None and route.next_hop else dst_ip
        if route is not None and route.next_hop and not device.device_type.is_router:
            self._log(f"{dst_ip} is on another network, sending to gateway {next_hop_ip}",
                      LogLevel.INFO, device.id, generation)

        cached = self._states.lookup_arp(device.id, next_hop_ip)
        if cached:
            self._log(f"ARP cache hit: {next_hop_ip} is at {cached}", LogLevel.INFO, device.id, generation)
            frame_dst = cached
        else:
            self._log(f"ARP request: who has {next_hop_ip}? Tell {egress.ip_address or device.primary_ip}",
                      LogLevel.INFO, device.id, generation)
            frame_dst = self._mac_for_ip(next_hop_ip)
            if frame_dst:
                self._states.learn_arp(device.id, next_hop_ip, frame_dst)
                self._check_live(generation)
                self._log(f"ARP reply: {next_hop_ip} is at {frame_dst}", LogLevel.INFO, device.id, generation)
            else:
                frame_dst = BROADCAST_MAC
        self._frame = (egress.mac_address, frame_dst)
        self._segment = []

    def _narrate_switching(
        self, run: SimulationRun, generation: int, index: int, device: Device, egress: Interface,
    ):
        frame_src, frame_dst = self._frame
        ingress_edge = self._snapshot.get_edge(run.edges[index - 1])
        ingress = self._interface_toward(device, ingress_edge)

        if frame_src and self._states.learn_mac(device.id, frame_src, ingress.id):
            self._check_live(generation)
            self._log(f"Learned MAC {frame_src.upper()} on port {ingress.display_name}",
                      LogLevel.INFO, device.id, generation)

        self._segment.append((device.id, egress.id))
        known_port = None if frame_dst == BROADCAST_MAC else self._states.lookup_mac(device.id, frame_dst)
        if known_port is not None:
            port = device.get_interface(known_port)
            self._log(f"MAC {frame_dst} known on port {port.display_name if port else known_port}, forwarding",
                      LogLevel.INFO, device.id, generation)
        else:
            flood = [
                e for e in self._snapshot.edges_of(device.id)
                if e.id != ingress_edge.id and self._snapshot.is_traversable(e)
            ]
            kind = "Broadcast" if frame_dst == BROADCAST_MAC else f"Unknown destination {frame_dst}"
            self._log(f"{kind}, flooding out {len(flood)} port(s)", LogLevel.INFO, device.id, generation)

    def _learn_reply_path(self, receiver: Device, ingress: Interface, generation: int):
        """
        Switches on the segment just crossed learn the receiver's MAC on
        the port facing it, as its reply would teach them.
        """
        for switch_id, port_id in self._segment:
            if self._states.learn_mac(switch_id, ingress.mac_address, port_id):
                self._check_live(generation)
                switch = self._snapshot.get_device(switch_id)
                port = switch.get_interface(port_id)
                self._log(
                    f"Learned MAC {ingress.mac_address.upper()} of {receiver.display_name} "
                    f"on port {port.display_name if port else port_id}",
                    LogLevel.INFO, switch_id, generation,
                )
        self._segment = []

    def _arrive(self, run: SimulationRun, packet: Packet, generation: int, target: Device) -> SimulationSummary:
        packet.current_device = target.id
        self._emit_live(generation, SimEvent.PACKET_ARRIVE, PacketArriveEvent(
            packet=packet.snapshot(),
            device_id=target.id,
            total_latency_ms=run.total_latency_ms,
            hops=run.hops_completed,
        ))
        self._log(
            f"Echo request from {packet.l3.src_ip} received: {run.hops_completed} hops, "
            f"TTL {packet.ttl}, {run.total_latency_ms:.0f} ms",
            LogLevel.SUCCESS, target.id, generation,
        )
        self._announce(f"Ping to {target.display_name} succeeded", generation)
        run.status = RunStatus.COMPLETED
        self._packet = None
        return self._complete(SimulationSummary(
            success=True,
            path=list(run.path),
            total_latency_ms=run.total_latency_ms,
            total_packets=1,
            total_ticks=run.ticks,
            errors=[],
            delivered_packets=1,
            dropped_packets=0,
        ))

    def _drop(
        self,
        run: SimulationRun,
        packet: Packet,
        generation: int,
        device_id: str,
        reason: DropReason,
        explanation: str,
        edge_id: str = "",
    ) -> SimulationSummary:
        self._emit_live(generation, SimEvent.PACKET_DROP, PacketDropEvent(
            packet=packet.snapshot(),
            device_id=device_id,
            reason=reason,
            explanation=explanation,
            edge_id=edge_id,
        ))
        self._log(explanation, LogLevel.ERROR, device_id, generation)
        self._announce(f"Packet dropped: {explanation}", generation)
        run.status = RunStatus.FAILED
        run.errors.append(explanation)
        self._packet = None
        return self._complete(SimulationSummary(
            success=False,
            path=list(run.traversed),
            total_latency_ms=run.total_latency_ms,
            total_packets=1,
            total_ticks=run.ticks,
            errors=list(run.errors),
            delivered_packets=0,
            dropped_packets=1,
        ))

    def _fail(self, run: SimulationRun, message: str) -> SimulationSummary:
        run.status = RunStatus.FAILED
        run.errors.append(message)
        self._packet = None
        self._scheduler.cancel(run.packet_id)
        self._log(message, LogLevel.ERROR)
        return self._complete(SimulationSummary(
            success=False,
            path=list(run.traversed),
            total_latency_ms=run.total_latency_ms,
            total_packets=1 if run.packet_id else 0,
            total_ticks=run.ticks,
            errors=list(run.errors),
        ))

    def _complete(self, summary: SimulationSummary) -> SimulationSummary:
        summary.logs = [log.format() for log in self._logs]
        self._bus.emit(SimEvent.SIM_COMPLETE, summary)
        return summary

    # ---- Helpers ----

    def _validate(self, source_id: str, target_id: str, ttl: int) -> str:
        if not source_id or not target_id:
            return "Source and target devices must be specified"
        for device_id in (source_id, target_id):
            if not self._snapshot.has_device(device_id):
                return f"Device '{device_id}' not found in topology"
        if source_id == target_id:
            return "Source and target are the same device"
        if ttl < 1:
            return f"Invalid TTL {ttl}"
        for device_id in (source_id, target_id):
            device = self._snapshot.get_device(device_id)
            if not device.primary_ip:
                return f"{device.display_name} has no IP address configured"
        return ""

    def _cancel_active(self, reason: str):
        self._generation += 1
        cancelled = self._scheduler.cancel_all()
        if self._run is not None and self._run.is_running:
            self._run.status = RunStatus.FAILED
            self._run.errors.append(reason)
            logger.info(f"{reason}: cancelled run {self._run.id} ({cancelled} pending hop(s))")

    def _check_live(self, generation: int):
        if generation != self._generation:
            raise RunCancelledError(self._packet.id if self._packet else "")

    def _emit_live(self, generation: int, event: SimEvent, payload):
        """Emit on behalf of a run, then stop it if a handler cancelled it."""
        self._check_live(generation)
        self._bus.emit(event, payload)
        self._check_live(generation)

    def _log(self, message: str, level: LogLevel = LogLevel.INFO, device_id: str = "",
             generation: Optional[int] = None):
        if generation is not None:
            self._check_live(generation)
        entry = ConsoleLogEvent(message=message, level=level, device_id=device_id)
        self._logs.append(entry)
        logger.debug(entry.format())
        self._bus.emit(_CONSOLE_EVENTS[level], entry)
        if generation is not None:
            self._check_live(generation)

    def _announce(self, message: str, generation: Optional[int] = None):
        if generation is not None:
            self._emit_live(generation, SimEvent.ANNOUNCE, Announcement(message, "assertive"))
        else:
            self._bus.emit(SimEvent.ANNOUNCE, Announcement(message, "assertive"))

    @staticmethod
    def _interface_toward(device: Device, edge: Edge) -> Optional[Interface]:
        return device.get_interface(edge.interface_on(device.id))

    def _mac_for_ip(self, address: str) -> str:
        owner = self._snapshot.device_by_ip(address)
        if owner is None:
            return ""
        for iface in owner.interfaces:
            if iface.ip_address == address:
                return iface.mac_address
        return ""
