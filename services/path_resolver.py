"""
Path Resolver.

Finds the fewest-hop forwarding path between two devices over the
traversable edges of a topology snapshot. Neighbours are expanded in
edge-list order so the same snapshot always yields the same path.

Forwarding rules:
- switches, access points, ISP and cloud nodes forward transparently
- routers and firewalls look up the destination IP (longest prefix
  match) and only forward out of the matching route's interface; an
  access list, when present, must permit the packet
- end devices never forward; as a source they send out of the interface
  their routing table picks, and off-subnet targets are only reached
  through a router
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from models.network import AclAction, Device, Edge, TopologySnapshot
from .device_state import DeviceStateManager, RoutingTable

logger = logging.getLogger(__name__)


class FailureKind(Enum):
    NO_ROUTE = "no-route"          # A router had no matching route
    UNREACHABLE = "unreachable"    # No traversable path at all
    BLOCKED = "blocked"            # Denied by an access list
    TARGET_DOWN = "target-down"    # Every target interface is shut down
    SOURCE_DOWN = "source-down"    # Every source interface is shut down
    UNKNOWN_DEVICE = "unknown-device"


@dataclass
class PathFailure:
    kind: FailureKind
    message: str
    device_id: str = ""

    def __str__(self) -> str:
        return self.message


@dataclass
class PathResult:
    """Ordered device ids and the edges joining them, or a failure."""
    path: list[str] = field(default_factory=list)
    edges: list[str] = field(default_factory=list)
    failure: Optional[PathFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def hop_count(self) -> int:
        return len(self.edges)

    def hops(self) -> list[tuple[str, str, str]]:
        """(from device, to device, edge id) for each hop."""
        return [
            (self.path[i], self.path[i + 1], self.edges[i])
            for i in range(len(self.edges))
        ]


def acl_permits(device: Device, src_ip: str, dst_ip: str, protocol: str = "icmp") -> bool:
    """First matching rule decides; no match with rules present is a deny."""
    if not device.acl_rules:
        return True
    for rule in device.acl_rules:
        if rule.matches(src_ip, dst_ip, protocol):
            return rule.action == AclAction.PERMIT
    return False


class PathResolver:
    """
    Breadth-first path search honouring device forwarding rules.

    Routing tables come from the DeviceStateManager when one is given,
    otherwise they are built from each device's configuration.
    """

    def __init__(self, states: Optional[DeviceStateManager] = None):
        self._states = states

    def _routing_table(self, device: Device) -> RoutingTable:
        if self._states is not None and self._states.get(device.id) is not None:
            return self._states.routing_table(device.id)
        return RoutingTable.for_device(device)

    def resolve(self, snapshot: TopologySnapshot, source_id: str, target_id: str) -> PathResult:
        source = snapshot.get_device(source_id)
        target = snapshot.get_device(target_id)
        if source is None or target is None:
            missing = source_id if source is None else target_id
            return PathResult(failure=PathFailure(
                FailureKind.UNKNOWN_DEVICE, f"No route: device '{missing}' does not exist", missing,
            ))

        if target.interfaces and not any(i.admin_up for i in target.interfaces):
            return PathResult(failure=PathFailure(
                FailureKind.TARGET_DOWN,
                f"No route to {target.display_name}: all interfaces are administratively down",
                target.id,
            ))
        if source.interfaces and not any(i.admin_up for i in source.interfaces):
            return PathResult(failure=PathFailure(
                FailureKind.SOURCE_DOWN,
                f"No route from {source.display_name}: all interfaces are administratively down",
                source.id,
            ))

        src_ip = source.primary_ip
        dst_ip = target.primary_ip
        via_gateway = self._uses_gateway(source, target, dst_ip)
        parents: dict[str, tuple[str, str]] = {}
        # Whether a router lies between the source and each visited device
        routed = {source.id: False}
        visited = {source.id}
        queue = deque([source.id])
        failures: list[PathFailure] = []

        while queue:
            current_id = queue.popleft()
            if current_id == target.id:
                return self._build_result(parents, source.id, target.id)

            current = snapshot.get_device(current_id)
            if current is None:
                continue
            is_source = current_id == source.id
            crossed = routed[current_id] or (not is_source and current.device_type.is_router)
            candidates = self._egress_edges(snapshot, current, is_source, src_ip, dst_ip, failures)
            for edge in candidates:
                neighbour_id, _ = edge.other_end(current_id)
                if neighbour_id in visited:
                    continue
                # Off-subnet traffic must reach the target through the gateway
                if neighbour_id == target.id and via_gateway and not crossed:
                    continue
                visited.add(neighbour_id)
                routed[neighbour_id] = crossed
                parents[neighbour_id] = (current_id, edge.id)
                queue.append(neighbour_id)

        return PathResult(failure=self._pick_failure(failures, source, target, dst_ip))

    def _egress_edges(
        self,
        snapshot: TopologySnapshot,
        device: Device,
        is_source: bool,
        src_ip: str,
        dst_ip: str,
        failures: list[PathFailure],
    ) -> list[Edge]:
        edges = [e for e in snapshot.edges_of(device.id) if snapshot.is_traversable(e)]

        if device.device_type.is_router:
            route = self._routing_table(device).lookup(dst_ip) if dst_ip else None
            if route is None:
                failures.append(PathFailure(
                    FailureKind.NO_ROUTE,
                    f"No route to host {dst_ip or 'unknown'} on {device.display_name}",
                    device.id,
                ))
                return []
            if not is_source and not acl_permits(device, src_ip, dst_ip):
                failures.append(PathFailure(
                    FailureKind.BLOCKED,
                    f"Packet to {dst_ip} blocked by access list on {device.display_name}",
                    device.id,
                ))
                return []
            return [e for e in edges if e.interface_on(device.id) == route.interface_id]

        if device.device_type.is_l2_forwarder:
            return edges

        if is_source:
            if not dst_ip:
                return edges
            route = self._routing_table(device).lookup(dst_ip)
            if route is None:
                failures.append(PathFailure(
                    FailureKind.NO_ROUTE,
                    f"No route to host {dst_ip} from {device.display_name}: "
                    f"destination is on another network and no gateway is configured",
                    device.id,
                ))
                return []
            return [e for e in edges if e.interface_on(device.id) == route.interface_id]

        # End devices do not forward
        return []

    def _uses_gateway(self, source: Device, target: Device, dst_ip: str) -> bool:
        """True when an end device reaches a target other than its gateway through the gateway."""
        if not dst_ip or not source.device_type.is_end_device:
            return False
        route = self._routing_table(source).lookup(dst_ip)
        if route is None or not route.next_hop:
            return False
        return all(i.ip_address != route.next_hop for i in target.interfaces)

    @staticmethod
    def _build_result(parents: dict[str, tuple[str, str]], source_id: str, target_id: str) -> PathResult:
        path = [target_id]
        edges = []
        node = target_id
        while node != source_id:
            prev, edge_id = parents[node]
            path.append(prev)
            edges.append(edge_id)
            node = prev
        path.reverse()
        edges.reverse()
        return PathResult(path=path, edges=edges)

    @staticmethod
    def _pick_failure(
        failures: list[PathFailure], source: Device, target: Device, dst_ip: str
    ) -> PathFailure:
        for kind in (FailureKind.BLOCKED, FailureKind.NO_ROUTE):
            for failure in failures:
                if failure.kind == kind:
                    return failure
        return PathFailure(
            FailureKind.UNREACHABLE,
            f"No route to {target.display_name}{f' ({dst_ip})' if dst_ip else ''}: "
            f"no traversable path from {source.display_name}",
            target.id,
        )
