"""
Network topology data models.

These models describe the devices, interfaces and links drawn on the
editor canvas. The simulation engine reads them through an immutable
TopologySnapshot; the live Topology container is what the editor mutates.
"""

import copy
import ipaddress
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Iterable
import uuid

from .errors import TopologyError


class DeviceType(Enum):
    """
    Types of devices that can be placed on the canvas.

    The value is the identifier used in saved topologies.
    """
    ROUTER = "router"
    SWITCH_L2 = "switch-l2"
    SWITCH_L3 = "switch-l3"
    ACCESS_POINT = "access-point"
    PC = "pc"
    LAPTOP = "laptop"
    IP_PHONE = "ip-phone"
    SERVER = "server"
    PRINTER = "printer"
    ISP = "isp"
    CLOUD = "cloud"
    FIREWALL = "firewall"
    # IoT / smart home
    SMART_TV = "smart-tv"
    SMART_SPEAKER = "smart-speaker"
    SMART_LIGHT = "smart-light"
    SECURITY_CAMERA = "security-camera"
    ROBOT_VACUUM = "robot-vacuum"
    SMART_THERMOSTAT = "smart-thermostat"
    GAME_CONSOLE = "game-console"
    STREAMING_BOX = "streaming-box"

    @property
    def is_l2_forwarder(self) -> bool:
        """Forwards frames without looking at the L3 header."""
        return self in L2_FORWARDERS

    @property
    def is_router(self) -> bool:
        """Forwards packets by routing table lookup."""
        return self in L3_FORWARDERS

    @property
    def is_forwarder(self) -> bool:
        return self.is_l2_forwarder or self.is_router

    @property
    def is_end_device(self) -> bool:
        return not self.is_forwarder


L2_FORWARDERS = frozenset({
    DeviceType.SWITCH_L2,
    DeviceType.SWITCH_L3,
    DeviceType.ACCESS_POINT,
    DeviceType.ISP,
    DeviceType.CLOUD,
})

L3_FORWARDERS = frozenset({
    DeviceType.ROUTER,
    DeviceType.FIREWALL,
})


class InterfaceType(Enum):
    """Physical medium of an interface."""
    RJ45 = "rj45"   # Copper
    SFP = "sfp"     # Fiber
    WIFI = "wifi"   # Wireless


class PoEType(Enum):
    """Power over Ethernet role of an interface."""
    IN = "in"       # Consumes power
    OUT = "out"     # Supplies power
    NONE = "none"


class ConnectionType(Enum):
    """Protocol/media label shown on a link."""
    ETHERNET = "ethernet"
    FIBER = "fiber"
    WIRELESS = "wireless"
    SERIAL = "serial"


# Which interface media can be cabled together
MEDIA_COMPATIBILITY = {
    InterfaceType.RJ45: {InterfaceType.RJ45},
    InterfaceType.SFP: {InterfaceType.SFP},
    InterfaceType.WIFI: {InterfaceType.WIFI},
}


def _short_id() -> str:
    return str(uuid.uuid4())[:8]


@dataclass
class Interface:
    """
    A physical port on a device.

    Carries L1 (media, speed, PoE), L2 (MAC) and L3 (IP/mask) state plus
    the id of the single edge plugged into it.
    """
    id: str = field(default_factory=_short_id)
    name: str = ""
    short_name: str = ""
    media: InterfaceType = InterfaceType.RJ45
    speed: str = "1G"
    poe: PoEType = PoEType.NONE
    mac_address: str = ""
    ip_address: str = ""
    subnet_mask: str = ""
    admin_up: bool = True
    description: str = ""
    connected_edge_id: Optional[str] = None

    @property
    def is_connected(self) -> bool:
        """Check if an edge occupies this port."""
        return self.connected_edge_id is not None

    @property
    def display_name(self) -> str:
        return self.short_name or self.name or self.id

    @property
    def network(self) -> Optional[ipaddress.IPv4Network]:
        """Network this interface is attached to, if addressed."""
        if not self.ip_address or not self.subnet_mask:
            return None
        try:
            return ipaddress.IPv4Interface(f"{self.ip_address}/{self.subnet_mask}").network
        except ValueError:
            return None

    @property
    def status_text(self) -> str:
        if not self.admin_up:
            return "administratively down"
        if self.is_connected:
            return "up"
        return "down"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "short_name": self.short_name,
            "media": self.media.value,
            "speed": self.speed,
            "poe": self.poe.value,
            "mac_address": self.mac_address,
            "ip_address": self.ip_address,
            "subnet_mask": self.subnet_mask,
            "admin_up": self.admin_up,
            "description": self.description,
            "connected_edge_id": self.connected_edge_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Interface":
        try:
            return cls(
                id=data["id"],
                name=data.get("name", ""),
                short_name=data.get("short_name", ""),
                media=InterfaceType(data.get("media", "rj45")),
                speed=data.get("speed", "1G"),
                poe=PoEType(data.get("poe", "none")),
                mac_address=data.get("mac_address", ""),
                ip_address=data.get("ip_address", ""),
                subnet_mask=data.get("subnet_mask", ""),
                admin_up=data.get("admin_up", True),
                description=data.get("description", ""),
                connected_edge_id=data.get("connected_edge_id"),
            )
        except (KeyError, ValueError) as e:
            raise TopologyError(f"Invalid interface record: {e}") from e


@dataclass
class StaticRoute:
    """A manually configured route (ip route NET MASK NEXT_HOP)."""
    network: str = "0.0.0.0"
    mask: str = "0.0.0.0"
    next_hop: str = ""

    @property
    def cidr(self) -> str:
        return str(ipaddress.IPv4Network(f"{self.network}/{self.mask}", strict=False))

    def to_dict(self) -> dict:
        return {"network": self.network, "mask": self.mask, "next_hop": self.next_hop}


class AclAction(Enum):
    PERMIT = "permit"
    DENY = "deny"


@dataclass
class AclRule:
    """
    One access-control entry on a router or firewall.

    Source and destination are CIDR strings; "any" matches everything.
    The first matching rule in a list decides.
    """
    action: AclAction = AclAction.PERMIT
    source: str = "any"
    destination: str = "any"
    protocol: str = "any"

    @staticmethod
    def _match_net(spec: str, address: str) -> bool:
        if spec == "any":
            return True
        try:
            return ipaddress.ip_address(address) in ipaddress.ip_network(spec, strict=False)
        except ValueError:
            return False

    def matches(self, src_ip: str, dst_ip: str, protocol: str = "icmp") -> bool:
        if self.protocol not in ("any", protocol):
            return False
        return self._match_net(self.source, src_ip) and self._match_net(self.destination, dst_ip)

    def to_dict(self) -> dict:
        return {
            "action": self.action.value,
            "source": self.source,
            "destination": self.destination,
            "protocol": self.protocol,
        }


@dataclass
class Device:
    """
    A device node on the canvas.

    Attributes:
        id: Unique identifier
        device_type: Type of device
        label: Display label on the canvas
        hostname: CLI hostname (defaults to the label)
        hardware_model: Catalog model id; drives CLI availability and ports
        interfaces: Ordered list of ports
        gateway: Default gateway for end devices
        static_routes: Routes entered through the CLI
        acl_rules: Ordered access list (routers and firewalls)
    """
    id: str = field(default_factory=_short_id)
    device_type: DeviceType = DeviceType.PC
    label: str = ""
    hostname: str = ""
    hardware_model: str = ""
    interfaces: list[Interface] = field(default_factory=list)
    gateway: str = ""
    static_routes: list[StaticRoute] = field(default_factory=list)
    acl_rules: list[AclRule] = field(default_factory=list)

    def __post_init__(self):
        if not self.label:
            self.label = f"{self.device_type.value}_{self.id[:4]}"
        if not self.hostname:
            self.hostname = self.label.replace(" ", "")

        from .hardware import default_model_for_type, get_hardware_model, create_interfaces

        model = get_hardware_model(self.hardware_model) if self.hardware_model else None
        if model is None:
            model = default_model_for_type(self.device_type)
            if model is not None:
                self.hardware_model = model.model_id

        # Initialize ports from the hardware blueprint if none were given
        if not self.interfaces and model is not None:
            self.interfaces = create_interfaces(model, self.id)

    def get_interface(self, interface_id: str) -> Optional[Interface]:
        """Get an interface by id."""
        for iface in self.interfaces:
            if iface.id == interface_id:
                return iface
        return None

    def find_interface(self, name: str) -> Optional[Interface]:
        """
        Look up an interface the way IOS does.

        Accepts the id, the full name, the short name, or an abbreviation
        such as "gi0/0" for "GigabitEthernet0/0".
        """
        wanted = name.lower().replace(" ", "")
        for iface in self.interfaces:
            if wanted in (iface.id.lower(), iface.name.lower(), iface.short_name.lower()):
                return iface

        # Prefix abbreviation: split alpha prefix from the port index
        alpha = wanted.rstrip("0123456789/.")
        index = wanted[len(alpha):]
        if not alpha or not index:
            return None
        for iface in self.interfaces:
            full = iface.name.lower()
            full_alpha = full.rstrip("0123456789/.")
            if full_alpha.startswith(alpha) and full[len(full_alpha):] == index:
                return iface
        return None

    def interface_for_edge(self, edge_id: str) -> Optional[Interface]:
        """Get the port occupied by a specific edge."""
        for iface in self.interfaces:
            if iface.connected_edge_id == edge_id:
                return iface
        return None

    def get_available_interfaces(self) -> list[Interface]:
        return [i for i in self.interfaces if not i.is_connected]

    @property
    def primary_interface(self) -> Optional[Interface]:
        """First interface with an IP address."""
        for iface in self.interfaces:
            if iface.ip_address:
                return iface
        return None

    @property
    def primary_ip(self) -> str:
        iface = self.primary_interface
        return iface.ip_address if iface else ""

    @property
    def display_name(self) -> str:
        return self.label or self.hostname or self.id

    def owns_ip(self, address: str) -> bool:
        return any(i.ip_address == address for i in self.interfaces if i.ip_address)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "device_type": self.device_type.value,
            "label": self.label,
            "hostname": self.hostname,
            "hardware_model": self.hardware_model,
            "interfaces": [i.to_dict() for i in self.interfaces],
            "gateway": self.gateway,
            "static_routes": [r.to_dict() for r in self.static_routes],
            "acl_rules": [r.to_dict() for r in self.acl_rules],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Device":
        try:
            device_type = DeviceType(data["device_type"])
            interfaces = [Interface.from_dict(i) for i in data.get("interfaces", [])]
            routes = [StaticRoute(**r) for r in data.get("static_routes", [])]
            acl = [
                AclRule(
                    action=AclAction(r.get("action", "permit")),
                    source=r.get("source", "any"),
                    destination=r.get("destination", "any"),
                    protocol=r.get("protocol", "any"),
                )
                for r in data.get("acl_rules", [])
            ]
            return cls(
                id=data["id"],
                device_type=device_type,
                label=data.get("label", ""),
                hostname=data.get("hostname", ""),
                hardware_model=data.get("hardware_model", ""),
                interfaces=interfaces,
                gateway=data.get("gateway", ""),
                static_routes=routes,
                acl_rules=acl,
            )
        except (KeyError, ValueError, TypeError) as e:
            raise TopologyError(f"Invalid device record: {e}") from e


@dataclass
class Edge:
    """
    A link between two ports on two devices.

    Attributes:
        id: Unique identifier
        source / source_interface: Device id and port id of one end
        target / target_interface: Device id and port id of the other end
        protocol: Label shown on the link
        valid: False when media or PoE checks failed; such edges are kept
               in the graph but are never traversed
        invalid_reason: Why the edge is invalid
    """
    id: str = field(default_factory=_short_id)
    source: str = ""
    source_interface: str = ""
    target: str = ""
    target_interface: str = ""
    protocol: ConnectionType = ConnectionType.ETHERNET
    valid: bool = True
    invalid_reason: str = ""

    def other_end(self, device_id: str) -> tuple[str, str]:
        """Return (device id, interface id) at the opposite end."""
        if device_id == self.source:
            return self.target, self.target_interface
        return self.source, self.source_interface

    def interface_on(self, device_id: str) -> str:
        if device_id == self.source:
            return self.source_interface
        return self.target_interface

    def touches(self, device_id: str) -> bool:
        return device_id in (self.source, self.target)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source": self.source,
            "source_interface": self.source_interface,
            "target": self.target,
            "target_interface": self.target_interface,
            "protocol": self.protocol.value,
            "valid": self.valid,
            "invalid_reason": self.invalid_reason,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Edge":
        try:
            return cls(
                id=data["id"],
                source=data["source"],
                source_interface=data.get("source_interface", ""),
                target=data["target"],
                target_interface=data.get("target_interface", ""),
                protocol=ConnectionType(data.get("protocol", "ethernet")),
                valid=data.get("valid", True),
                invalid_reason=data.get("invalid_reason", ""),
            )
        except (KeyError, ValueError) as e:
            raise TopologyError(f"Invalid edge record: {e}") from e


@dataclass
class LinkCheck:
    """Outcome of a media/PoE compatibility check."""
    ok: bool = True
    reason: str = ""


def check_link_compatibility(
    source: Device,
    source_iface: Interface,
    target: Device,
    target_iface: Interface,
    topology: Optional["Topology"] = None,
) -> LinkCheck:
    """
    Check whether two ports may be cabled together.

    Media types must be compatible, a PoE powered port must face a PoE
    supplying port, and the supplier must have budget left for the new
    load when a topology is given to count existing draws.
    """
    if target_iface.media not in MEDIA_COMPATIBILITY[source_iface.media]:
        return LinkCheck(
            False,
            f"Media mismatch: {source_iface.display_name} is {source_iface.media.value}, "
            f"{target_iface.display_name} is {target_iface.media.value}",
        )

    for powered_dev, powered, supplier_dev, supplier in (
        (target, target_iface, source, source_iface),
        (source, source_iface, target, target_iface),
    ):
        if powered.poe != PoEType.IN:
            continue
        if supplier.poe != PoEType.OUT:
            return LinkCheck(
                False,
                f"{powered.display_name} requires PoE, but {supplier.display_name} does not supply it",
            )
        if topology is not None:
            from .hardware import get_hardware_model

            supplier_model = get_hardware_model(supplier_dev.hardware_model)
            powered_model = get_hardware_model(powered_dev.hardware_model)
            if supplier_model is None or powered_model is None:
                continue
            used = topology.poe_load(supplier_dev.id)
            if used + powered_model.poe_draw_watts > supplier_model.poe_budget_watts:
                return LinkCheck(
                    False,
                    f"PoE budget exceeded on {supplier_dev.display_name}: "
                    f"{used + powered_model.poe_draw_watts:.1f}W of {supplier_model.poe_budget_watts:.1f}W",
                )

    return LinkCheck(True)


def protocol_for_media(media: InterfaceType) -> ConnectionType:
    if media == InterfaceType.SFP:
        return ConnectionType.FIBER
    if media == InterfaceType.WIFI:
        return ConnectionType.WIRELESS
    return ConnectionType.ETHERNET


@dataclass
class Topology:
    """
    Live, mutable collection of devices and edges.

    This is the store the editor and the CLI callbacks write to. The
    simulation engine only ever sees a TopologySnapshot taken from it.
    """
    devices: dict[str, Device] = field(default_factory=dict)
    edges: dict[str, Edge] = field(default_factory=dict)

    def add_device(self, device: Device) -> Device:
        self.devices[device.id] = device
        return device

    def remove_device(self, device_id: str) -> Optional[Device]:
        """Remove a device and all edges attached to it."""
        if device_id not in self.devices:
            return None
        for edge_id in [e.id for e in self.edges.values() if e.touches(device_id)]:
            self.disconnect(edge_id)
        return self.devices.pop(device_id)

    def get_device(self, device_id: str) -> Optional[Device]:
        return self.devices.get(device_id)

    def get_edge(self, edge_id: str) -> Optional[Edge]:
        return self.edges.get(edge_id)

    def connect(
        self,
        source_id: str,
        target_id: str,
        source_interface_id: str = "",
        target_interface_id: str = "",
        edge_id: Optional[str] = None,
    ) -> Optional[Edge]:
        """
        Cable two devices together.

        If port ids are not specified, the first free ports of compatible
        media are picked. Returns None when a device or free port is
        missing. An incompatible pair still yields an edge, flagged invalid.
        """
        source = self.devices.get(source_id)
        target = self.devices.get(target_id)
        if source is None or target is None or source_id == target_id:
            return None

        source_iface = self._pick_port(source, source_interface_id)
        if source_iface is None:
            return None
        target_iface = self._pick_port(target, target_interface_id, prefer=source_iface.media)
        if target_iface is None:
            return None

        check = check_link_compatibility(source, source_iface, target, target_iface, self)
        edge = Edge(
            source=source_id,
            source_interface=source_iface.id,
            target=target_id,
            target_interface=target_iface.id,
            protocol=protocol_for_media(source_iface.media),
            valid=check.ok,
            invalid_reason=check.reason,
        )
        if edge_id:
            edge.id = edge_id
        self.edges[edge.id] = edge

        # Bind ports to edge
        source_iface.connected_edge_id = edge.id
        target_iface.connected_edge_id = edge.id
        return edge

    @staticmethod
    def _pick_port(
        device: Device, interface_id: str, prefer: Optional[InterfaceType] = None
    ) -> Optional[Interface]:
        if interface_id:
            iface = device.get_interface(interface_id)
            if iface is None or iface.is_connected:
                return None
            return iface
        available = device.get_available_interfaces()
        if not available:
            return None
        if prefer is not None:
            for iface in available:
                if iface.media == prefer:
                    return iface
        return available[0]

    def disconnect(self, edge_id: str) -> Optional[Edge]:
        """Remove an edge and unbind its ports."""
        edge = self.edges.pop(edge_id, None)
        if edge is None:
            return None
        for device_id, iface_id in (
            (edge.source, edge.source_interface),
            (edge.target, edge.target_interface),
        ):
            device = self.devices.get(device_id)
            iface = device.get_interface(iface_id) if device else None
            if iface is not None and iface.connected_edge_id == edge_id:
                iface.connected_edge_id = None
        return edge

    def poe_load(self, supplier_id: str) -> float:
        """Watts drawn from a device's PoE ports by valid edges."""
        from .hardware import get_hardware_model

        total = 0.0
        for edge in self.edges.values():
            if not edge.valid or not edge.touches(supplier_id):
                continue
            peer_id, peer_iface_id = edge.other_end(supplier_id)
            peer = self.devices.get(peer_id)
            if peer is None:
                continue
            peer_iface = peer.get_interface(peer_iface_id)
            model = get_hardware_model(peer.hardware_model)
            if peer_iface is not None and peer_iface.poe == PoEType.IN and model is not None:
                total += model.poe_draw_watts
        return total

    def update_device(self, device_id: str, **changes) -> Optional[Device]:
        """Apply a partial update of device fields."""
        device = self.devices.get(device_id)
        if device is None:
            return None
        for key, value in changes.items():
            if hasattr(device, key):
                setattr(device, key, value)
        return device

    def update_interface(self, device_id: str, interface_id: str, **changes) -> Optional[Interface]:
        """Apply a partial update of interface fields."""
        device = self.devices.get(device_id)
        iface = device.get_interface(interface_id) if device else None
        if iface is None:
            return None
        for key, value in changes.items():
            if hasattr(iface, key):
                setattr(iface, key, value)
        return iface

    def snapshot(self) -> "TopologySnapshot":
        return TopologySnapshot.capture(self.devices.values(), self.edges.values())

    def to_dict(self) -> dict:
        return {
            "devices": [d.to_dict() for d in self.devices.values()],
            "edges": [e.to_dict() for e in self.edges.values()],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Topology":
        topology = cls()
        for record in data.get("devices", []):
            topology.add_device(Device.from_dict(record))
        for record in data.get("edges", []):
            edge = Edge.from_dict(record)
            topology.edges[edge.id] = edge
        return topology


class TopologySnapshot:
    """
    Read-only view of the devices and edges at one point in time.

    Captured with a deep copy so later edits to the live store are not
    observed. Edge order is preserved; path resolution depends on it.
    """

    def __init__(self, devices: dict[str, Device], edges: list[Edge]):
        self._devices = devices
        self._edges = edges
        self._edge_index = {e.id: e for e in edges}

    @classmethod
    def capture(cls, devices: Iterable[Device], edges: Iterable[Edge]) -> "TopologySnapshot":
        device_map = {}
        for device in devices:
            device_map[device.id] = copy.deepcopy(device)
        return cls(device_map, [copy.deepcopy(e) for e in edges])

    @property
    def devices(self) -> list[Device]:
        return list(self._devices.values())

    @property
    def edges(self) -> list[Edge]:
        return list(self._edges)

    def get_device(self, device_id: str) -> Optional[Device]:
        return self._devices.get(device_id)

    def get_edge(self, edge_id: str) -> Optional[Edge]:
        return self._edge_index.get(edge_id)

    def has_device(self, device_id: str) -> bool:
        return device_id in self._devices

    def edges_of(self, device_id: str) -> list[Edge]:
        """Edges attached to a device, in edge-list order."""
        return [e for e in self._edges if e.touches(device_id)]

    def endpoint_interfaces(self, edge: Edge) -> tuple[Optional[Interface], Optional[Interface]]:
        source = self._devices.get(edge.source)
        target = self._devices.get(edge.target)
        return (
            source.get_interface(edge.source_interface) if source else None,
            target.get_interface(edge.target_interface) if target else None,
        )

    def is_traversable(self, edge: Edge) -> bool:
        """
        Valid, both ends administratively up, and both ports bound back
        to this edge.
        """
        if not edge.valid:
            return False
        src_iface, dst_iface = self.endpoint_interfaces(edge)
        if src_iface is None or dst_iface is None:
            return False
        if src_iface.connected_edge_id != edge.id or dst_iface.connected_edge_id != edge.id:
            return False
        return src_iface.admin_up and dst_iface.admin_up

    def device_by_ip(self, address: str) -> Optional[Device]:
        for device in self._devices.values():
            if device.owns_ip(address):
                return device
        return None

    # The engine mutates its own copy for link-state changes made mid-run
    def set_edge_validity(self, edge_id: str, valid: bool, reason: str = "") -> Optional[Edge]:
        edge = self._edge_index.get(edge_id)
        if edge is None:
            return None
        edge.valid = valid
        edge.invalid_reason = "" if valid else reason
        return edge

    def set_interface_state(self, device_id: str, interface_id: str, up: bool) -> Optional[Interface]:
        device = self._devices.get(device_id)
        iface = device.get_interface(interface_id) if device else None
        if iface is not None:
            iface.admin_up = up
        return iface

    def to_dict(self) -> dict:
        return {
            "devices": [d.to_dict() for d in self._devices.values()],
            "edges": [e.to_dict() for e in self._edges],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TopologySnapshot":
        if not isinstance(data, dict):
            raise TopologyError("Topology data must be a mapping")
        devices = [Device.from_dict(d) for d in data.get("devices", [])]
        edges = [Edge.from_dict(e) for e in data.get("edges", [])]
        return cls({d.id: d for d in devices}, edges)

    def __len__(self) -> int:
        return len(self._devices)
