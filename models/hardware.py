"""
Hardware catalog.

Each model describes a real or generic device: whether it exposes a
command line, its firmware string, PoE capabilities and the blueprint
used to generate its ports.
"""

import hashlib
from dataclasses import dataclass, field
from typing import Optional

from .network import DeviceType, Interface, InterfaceType, PoEType


@dataclass(frozen=True)
class InterfaceBlueprint:
    """A group of identical ports, e.g. 24x FastEthernet0/1-0/24."""
    name_prefix: str
    short_prefix: str
    media: InterfaceType = InterfaceType.RJ45
    speed: str = "1G"
    count: int = 1
    start_index: str = "0"
    poe: PoEType = PoEType.NONE

    def index(self, offset: int) -> str:
        """Port index for the n-th port ("0/1" style or plain "1")."""
        if "/" in self.start_index:
            slot, port = self.start_index.split("/", 1)
            return f"{slot}/{int(port) + offset}"
        return str(int(self.start_index) + offset)


@dataclass(frozen=True)
class HardwareModel:
    model_id: str
    name: str
    vendor: str
    device_type: DeviceType
    has_cli: bool = False
    firmware: str = ""
    poe_budget_watts: float = 0.0
    poe_draw_watts: float = 0.0
    interfaces: tuple = field(default_factory=tuple)

    @property
    def port_count(self) -> int:
        return sum(bp.count for bp in self.interfaces)


def _wifi(speed: str = "1G") -> InterfaceBlueprint:
    return InterfaceBlueprint("Wi-Fi", "Wi-Fi", InterfaceType.WIFI, speed)


HARDWARE_CATALOG = [
    # Networking
    HardwareModel(
        "cisco-2911", "Cisco 2911", "Cisco", DeviceType.ROUTER,
        has_cli=True, firmware="IOS 15.7(3)M",
        interfaces=(InterfaceBlueprint("GigabitEthernet", "Gi", count=3, start_index="0/0"),),
    ),
    HardwareModel(
        "mikrotik-hex-s", "MikroTik hEX S", "MikroTik", DeviceType.ROUTER,
        has_cli=True, firmware="RouterOS 7.x",
        interfaces=(
            InterfaceBlueprint("ether", "eth", count=5, start_index="1"),
            InterfaceBlueprint("sfp", "sfp", InterfaceType.SFP, count=1, start_index="1"),
        ),
    ),
    HardwareModel(
        "cisco-catalyst-2960", "Cisco Catalyst 2960", "Cisco", DeviceType.SWITCH_L2,
        has_cli=True, firmware="IOS 15.2(7)E", poe_budget_watts=370.0,
        interfaces=(
            InterfaceBlueprint("FastEthernet", "Fa", speed="100M", count=24,
                               start_index="0/1", poe=PoEType.OUT),
            InterfaceBlueprint("GigabitEthernet", "Gi", count=2, start_index="0/1"),
        ),
    ),
    HardwareModel(
        "generic-switch-l3", "Switch L3", "Generic", DeviceType.SWITCH_L3,
        has_cli=True, firmware="IOS 15.2(4)E",
        interfaces=(
            InterfaceBlueprint("GigabitEthernet", "Gi", count=12, start_index="0/1"),
            InterfaceBlueprint("TenGigabitEthernet", "Te", InterfaceType.SFP, "10G",
                               count=2, start_index="0/1"),
        ),
    ),
    HardwareModel(
        "ubiquiti-ap-ac-pro", "Ubiquiti AP-AC-Pro", "Ubiquiti", DeviceType.ACCESS_POINT,
        poe_draw_watts=9.0,
        interfaces=(
            InterfaceBlueprint("eth", "eth", poe=PoEType.IN),
            InterfaceBlueprint("wlan", "wlan", InterfaceType.WIFI, count=8),
        ),
    ),
    HardwareModel(
        "generic-firewall", "Firewall", "Generic", DeviceType.FIREWALL,
        has_cli=True, firmware="ASA 9.8(4)",
        interfaces=(InterfaceBlueprint("GigabitEthernet", "Gi", count=4, start_index="0/0"),),
    ),
    # End devices
    HardwareModel(
        "pc-workstation", "PC Workstation", "Generic", DeviceType.PC,
        interfaces=(InterfaceBlueprint("Ethernet", "Eth", speed="2.5G"),),
    ),
    HardwareModel(
        "generic-laptop", "Laptop", "Generic", DeviceType.LAPTOP,
        interfaces=(InterfaceBlueprint("Ethernet", "Eth"), _wifi()),
    ),
    HardwareModel(
        "cisco-ip-phone-7841", "Cisco IP Phone 7841", "Cisco", DeviceType.IP_PHONE,
        poe_draw_watts=6.3,
        interfaces=(
            InterfaceBlueprint("Ethernet-SW", "SW", speed="100M", poe=PoEType.IN),
            InterfaceBlueprint("Ethernet-PC", "PC", speed="100M"),
        ),
    ),
    HardwareModel(
        "dell-poweredge-server", "Dell PowerEdge R640", "Dell", DeviceType.SERVER,
        interfaces=(InterfaceBlueprint("Ethernet", "Eth", count=4),),
    ),
    HardwareModel(
        "generic-printer", "Network Printer", "Generic", DeviceType.PRINTER,
        interfaces=(InterfaceBlueprint("Ethernet", "Eth", speed="100M"),),
    ),
    HardwareModel(
        "ip-camera-dome", "IP Camera Dome", "Generic", DeviceType.SECURITY_CAMERA,
        poe_draw_watts=12.95,
        interfaces=(InterfaceBlueprint("Ethernet", "Eth", speed="100M", poe=PoEType.IN),),
    ),
    # Cloud / WAN
    HardwareModel(
        "generic-isp", "ISP", "Generic", DeviceType.ISP,
        interfaces=(InterfaceBlueprint("Fiber", "Fb", InterfaceType.SFP, "10G", count=2),),
    ),
    HardwareModel(
        "generic-cloud", "Public Cloud", "Generic", DeviceType.CLOUD,
        interfaces=(InterfaceBlueprint("VirtualNIC", "vNIC", InterfaceType.SFP, "10G", count=2),),
    ),
    # IoT / smart home
    HardwareModel(
        "generic-smart-tv", "Smart TV 4K", "Generic", DeviceType.SMART_TV,
        interfaces=(InterfaceBlueprint("Ethernet", "Eth", speed="100M"), _wifi()),
    ),
    HardwareModel(
        "generic-smart-speaker", "Voice Assistant", "Generic", DeviceType.SMART_SPEAKER,
        interfaces=(_wifi("100M"),),
    ),
    HardwareModel(
        "generic-smart-light", "Smart Light", "Generic", DeviceType.SMART_LIGHT,
        interfaces=(_wifi("100M"),),
    ),
    HardwareModel(
        "generic-robot-vacuum", "Robot Vacuum", "Generic", DeviceType.ROBOT_VACUUM,
        interfaces=(_wifi("100M"),),
    ),
    HardwareModel(
        "generic-smart-thermostat", "Smart Thermostat", "Generic", DeviceType.SMART_THERMOSTAT,
        interfaces=(_wifi("100M"),),
    ),
    HardwareModel(
        "generic-game-console", "Game Console", "Generic", DeviceType.GAME_CONSOLE,
        interfaces=(InterfaceBlueprint("Ethernet", "Eth"), _wifi()),
    ),
    HardwareModel(
        "generic-streaming-box", "Streaming Box", "Generic", DeviceType.STREAMING_BOX,
        interfaces=(InterfaceBlueprint("Ethernet", "Eth", speed="100M"), _wifi()),
    ),
]

_CATALOG_INDEX = {m.model_id: m for m in HARDWARE_CATALOG}

# Fictitious OUI prefixes per device class
OUI_PREFIXES = {
    DeviceType.ROUTER: "00:1A:2B",
    DeviceType.SWITCH_L2: "00:2C:3D",
    DeviceType.SWITCH_L3: "00:2C:4E",
    DeviceType.ACCESS_POINT: "00:3E:5F",
    DeviceType.PC: "00:4F:6A",
    DeviceType.LAPTOP: "00:5A:7B",
    DeviceType.IP_PHONE: "00:6B:8C",
    DeviceType.SERVER: "00:7C:9D",
    DeviceType.PRINTER: "00:8D:AE",
    DeviceType.ISP: "00:9E:BF",
    DeviceType.CLOUD: "00:AF:C0",
    DeviceType.FIREWALL: "00:BF:D1",
}


def get_hardware_model(model_id: str) -> Optional[HardwareModel]:
    """Look up a catalog model by id."""
    return _CATALOG_INDEX.get(model_id)


def default_model_for_type(device_type: DeviceType) -> Optional[HardwareModel]:
    """First catalog model registered for a device type."""
    for model in HARDWARE_CATALOG:
        if model.device_type == device_type:
            return model
    return None


def models_for_type(device_type: DeviceType) -> list[HardwareModel]:
    return [m for m in HARDWARE_CATALOG if m.device_type == device_type]


def generate_mac(device_type: DeviceType, seed: str) -> str:
    """
    Deterministic MAC address for a port.

    The OUI identifies the device class; the remaining three octets are
    taken from a hash of the seed so the same device id and port always
    get the same address.
    """
    prefix = OUI_PREFIXES.get(device_type, "00:00:00")
    digest = hashlib.sha256(seed.encode("utf-8")).hexdigest().upper()
    return f"{prefix}:{digest[0:2]}:{digest[2:4]}:{digest[4:6]}"


def create_interfaces(model: HardwareModel, device_id: str) -> list[Interface]:
    """Expand a model's blueprint into concrete ports."""
    interfaces = []
    for bp in model.interfaces:
        for offset in range(bp.count):
            index = bp.index(offset)
            iface_id = f"{bp.short_prefix.lower()}{index.replace('/', '-')}"
            interfaces.append(Interface(
                id=iface_id,
                name=f"{bp.name_prefix}{index}",
                short_name=f"{bp.short_prefix}{index}",
                media=bp.media,
                speed=bp.speed,
                poe=bp.poe,
                mac_address=generate_mac(model.device_type, f"{device_id}:{iface_id}"),
            ))
    return interfaces
