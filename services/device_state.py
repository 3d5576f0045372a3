"""
Device simulation state.

Per-device MAC address table, ARP table and routing table. The
orchestrator owns one DeviceState per device; reset() clears what was
learned during runs.
"""

import ipaddress
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from models.network import Device, DeviceType, TopologySnapshot
from models.simulation import TableUpdateEvent

logger = logging.getLogger(__name__)


class RouteType(Enum):
    CONNECTED = "connected"
    STATIC = "static"
    DEFAULT = "default"

    @property
    def code(self) -> str:
        return {"connected": "C", "static": "S", "default": "S*"}[self.value]


@dataclass(frozen=True)
class RouteEntry:
    """A routing table row."""
    network: ipaddress.IPv4Network
    route_type: RouteType
    next_hop: str = ""
    interface_id: str = ""
    interface_name: str = ""
    admin_distance: int = 0
    metric: int = 0

    @property
    def prefix_length(self) -> int:
        return self.network.prefixlen

    @property
    def is_default(self) -> bool:
        return self.network.prefixlen == 0

    def matches(self, address: str) -> bool:
        try:
            return ipaddress.IPv4Address(address) in self.network
        except ValueError:
            return False

    def describe(self) -> str:
        """One line in 'show ip route' style."""
        if self.next_hop:
            via = f"via {self.next_hop}"
        else:
            via = f"is directly connected, {self.interface_name or self.interface_id}"
        distance = f" [{self.admin_distance}/{self.metric}]" if self.route_type != RouteType.CONNECTED else ""
        return f"{self.route_type.code:<4} {self.network}{distance} {via}"


class RoutingTable:
    """Longest-prefix-match routing table."""

    def __init__(self):
        self._routes: list[RouteEntry] = []

    @property
    def routes(self) -> list[RouteEntry]:
        return list(self._routes)

    def __len__(self) -> int:
        return len(self._routes)

    def add(self, route: RouteEntry) -> bool:
        if route in self._routes:
            return False
        self._routes.append(route)
        # Most specific first, then lowest administrative distance
        self._routes.sort(key=lambda r: (-r.prefix_length, r.admin_distance))
        return True

    def remove(self, network: str, mask: str, next_hop: Optional[str] = None) -> bool:
        try:
            target = ipaddress.IPv4Network(f"{network}/{mask}", strict=False)
        except ValueError:
            return False
        for route in self._routes:
            if route.network == target and (next_hop is None or route.next_hop == next_hop):
                self._routes.remove(route)
                return True
        return False

    def lookup(self, address: str) -> Optional[RouteEntry]:
        """Most specific route containing the address, or None."""
        for route in self._routes:
            if route.matches(address):
                return route
        return None

    def clear(self):
        self._routes.clear()

    @classmethod
    def for_device(cls, device: Device) -> "RoutingTable":
        """
        Build a table from a device's configuration.

        Connected routes come from administratively up interfaces with an
        address. Static routes resolve their egress through a connected
        route. End devices get a default route via their gateway.
        """
        table = cls()
        for iface in device.interfaces:
            network = iface.network
            if network is None or not iface.admin_up:
                continue
            table.add(RouteEntry(
                network=network,
                route_type=RouteType.CONNECTED,
                interface_id=iface.id,
                interface_name=iface.display_name,
            ))

        for static in device.static_routes:
            try:
                network = ipaddress.IPv4Network(f"{static.network}/{static.mask}", strict=False)
            except ValueError:
                logger.warning(f"Ignoring malformed static route on {device.id}: {static}")
                continue
            egress = table.lookup(static.next_hop)
            if egress is None or egress.route_type != RouteType.CONNECTED:
                # Recursive routes are not resolved
                logger.debug(f"Static route {network} on {device.id}: next hop {static.next_hop} not connected")
                continue
            table.add(RouteEntry(
                network=network,
                route_type=RouteType.STATIC,
                next_hop=static.next_hop,
                interface_id=egress.interface_id,
                interface_name=egress.interface_name,
                admin_distance=1,
            ))

        if device.gateway and device.gateway != "0.0.0.0" and device.device_type.is_end_device:
            egress = table.lookup(device.gateway)
            if egress is not None and egress.route_type == RouteType.CONNECTED:
                table.add(RouteEntry(
                    network=ipaddress.IPv4Network("0.0.0.0/0"),
                    route_type=RouteType.DEFAULT,
                    next_hop=device.gateway,
                    interface_id=egress.interface_id,
                    interface_name=egress.interface_name,
                    admin_distance=1,
                ))
        return table


class MacTable:
    """Switch MAC address table: MAC -> ingress port."""

    def __init__(self):
        self._entries: dict[str, str] = {}

    def learn(self, mac: str, interface_id: str) -> bool:
        """Record a source MAC. Returns True if the table changed."""
        mac = mac.upper()
        if self._entries.get(mac) == interface_id:
            return False
        self._entries[mac] = interface_id
        return True

    def lookup(self, mac: str) -> Optional[str]:
        return self._entries.get(mac.upper())

    @property
    def entries(self) -> dict[str, str]:
        return dict(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self):
        self._entries.clear()


class ArpTable:
    """IP -> MAC cache."""

    def __init__(self):
        self._entries: dict[str, str] = {}

    def add(self, ip: str, mac: str) -> bool:
        mac = mac.upper()
        if self._entries.get(ip) == mac:
            return False
        self._entries[ip] = mac
        return True

    def lookup(self, ip: str) -> Optional[str]:
        return self._entries.get(ip)

    @property
    def entries(self) -> dict[str, str]:
        return dict(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self):
        self._entries.clear()


@dataclass
class DeviceState:
    device_id: str
    device_type: DeviceType
    mac_table: MacTable
    arp_table: ArpTable
    routing_table: RoutingTable

    def to_dict(self) -> dict:
        return {
            "device_id": self.device_id,
            "mac_table": self.mac_table.entries,
            "arp_table": self.arp_table.entries,
            "routes": [r.describe() for r in self.routing_table.routes],
        }


class DeviceStateManager:
    """
    Holds the learning state of every device in a snapshot.

    When an event bus is given, table changes are published as
    table:cam-update / table:arp-update.
    """

    def __init__(self, event_bus=None):
        self._bus = event_bus
        self._states: dict[str, DeviceState] = {}

    def sync(self, snapshot: TopologySnapshot):
        """
        Align state with a snapshot.

        Routing tables are rebuilt for every device. Learned MAC and ARP
        entries survive for devices that are still present.
        """
        states = {}
        for device in snapshot.devices:
            previous = self._states.get(device.id)
            states[device.id] = DeviceState(
                device_id=device.id,
                device_type=device.device_type,
                mac_table=previous.mac_table if previous else MacTable(),
                arp_table=previous.arp_table if previous else ArpTable(),
                routing_table=RoutingTable.for_device(device),
            )
        self._states = states

    def refresh_routes(self, snapshot: TopologySnapshot):
        """Recompute routing tables, keeping learned MAC/ARP entries."""
        for device in snapshot.devices:
            state = self._states.get(device.id)
            if state is None:
                continue
            state.routing_table = RoutingTable.for_device(device)

    def get(self, device_id: str) -> Optional[DeviceState]:
        return self._states.get(device_id)

    def routing_table(self, device_id: str) -> RoutingTable:
        state = self._states.get(device_id)
        return state.routing_table if state else RoutingTable()

    def learn_mac(self, device_id: str, mac: str, interface_id: str) -> bool:
        state = self._states.get(device_id)
        if state is None or not state.mac_table.learn(mac, interface_id):
            return False
        self._publish("table:cam-update", TableUpdateEvent(device_id, mac.upper(), interface_id))
        return True

    def learn_arp(self, device_id: str, ip: str, mac: str) -> bool:
        state = self._states.get(device_id)
        if state is None or not state.arp_table.add(ip, mac):
            return False
        self._publish("table:arp-update", TableUpdateEvent(device_id, ip, mac.upper()))
        return True

    def lookup_mac(self, device_id: str, mac: str) -> Optional[str]:
        state = self._states.get(device_id)
        return state.mac_table.lookup(mac) if state else None

    def lookup_arp(self, device_id: str, ip: str) -> Optional[str]:
        state = self._states.get(device_id)
        return state.arp_table.lookup(ip) if state else None

    def clear_learned(self):
        """Forget MAC and ARP entries; routing tables stay."""
        for state in self._states.values():
            state.mac_table.clear()
            state.arp_table.clear()

    def clear(self):
        self._states.clear()

    def _publish(self, event: str, payload: TableUpdateEvent):
        if self._bus is not None:
            self._bus.emit(event, payload)
