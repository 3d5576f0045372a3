"""
Pytest configuration and shared fixtures for simulation engine tests.
"""

import pytest
import tempfile
import shutil
from pathlib import Path
from typing import Generator

# Add parent directory to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from models.network import AclAction, AclRule, Device, DeviceType, Topology
from models.simulation import SchedulerConfig
from services.event_bus import EventBus
from services.orchestrator import SimulationOrchestrator


# ============== Temporary Directory Fixtures ==============

@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    tmp = tempfile.mkdtemp(prefix="netbuilder_test_")
    yield Path(tmp)
    shutil.rmtree(tmp, ignore_errors=True)


# ============== Device Helpers ==============

def make_host(device_id: str, ip: str, mask: str = "255.255.255.0", gateway: str = "",
              device_type: DeviceType = DeviceType.PC) -> Device:
    """An end device with its first port addressed."""
    device = Device(id=device_id, device_type=device_type, label=device_id.upper(), gateway=gateway)
    device.interfaces[0].ip_address = ip
    device.interfaces[0].subnet_mask = mask
    return device


def make_router(device_id: str, addresses: list, device_type: DeviceType = DeviceType.ROUTER) -> Device:
    """A router (or firewall) with (ip, mask) assigned to its first ports."""
    device = Device(id=device_id, device_type=device_type, label=device_id.upper())
    for iface, (ip, mask) in zip(device.interfaces, addresses):
        iface.ip_address = ip
        iface.subnet_mask = mask
    return device


# ============== Topology Fixtures ==============

@pytest.fixture
def switched_topology() -> Topology:
    """
    Two hosts on one switch.

        pc1 (192.168.1.10) --e1-- sw1 --e2-- pc2 (192.168.1.20)
    """
    topology = Topology()
    topology.add_device(make_host("pc1", "192.168.1.10"))
    topology.add_device(make_host("pc2", "192.168.1.20"))
    topology.add_device(Device(id="sw1", device_type=DeviceType.SWITCH_L2, label="SW1"))
    topology.connect("pc1", "sw1", "eth0", "fa0-1", edge_id="e1")
    topology.connect("pc2", "sw1", "eth0", "fa0-2", edge_id="e2")
    return topology


@pytest.fixture
def routed_topology() -> Topology:
    """
    Two subnets joined by a router.

        pc1 (192.168.1.10) --e1-- sw1 --e2-- r1 --e3-- pc2 (10.0.0.10)
    """
    topology = Topology()
    topology.add_device(make_host("pc1", "192.168.1.10", gateway="192.168.1.1"))
    topology.add_device(make_host("pc2", "10.0.0.10", gateway="10.0.0.1"))
    topology.add_device(Device(id="sw1", device_type=DeviceType.SWITCH_L2, label="SW1"))
    topology.add_device(make_router("r1", [
        ("192.168.1.1", "255.255.255.0"),
        ("10.0.0.1", "255.255.255.0"),
    ]))
    topology.connect("pc1", "sw1", "eth0", "fa0-1", edge_id="e1")
    topology.connect("sw1", "r1", "gi0-1", "gi0-0", edge_id="e2")
    topology.connect("r1", "pc2", "gi0-1", "eth0", edge_id="e3")
    return topology


@pytest.fixture
def firewall_topology() -> Topology:
    """
    Two subnets joined by a firewall that denies traffic to 10.0.0.0/24.

        pc1 (192.168.1.10) --e1-- fw1 --e2-- pc2 (10.0.0.10)
    """
    topology = Topology()
    topology.add_device(make_host("pc1", "192.168.1.10", gateway="192.168.1.1"))
    topology.add_device(make_host("pc2", "10.0.0.10", gateway="10.0.0.1"))
    firewall = make_router("fw1", [
        ("192.168.1.1", "255.255.255.0"),
        ("10.0.0.1", "255.255.255.0"),
    ], device_type=DeviceType.FIREWALL)
    firewall.acl_rules = [AclRule(AclAction.DENY, destination="10.0.0.0/24")]
    topology.add_device(firewall)
    topology.connect("pc1", "fw1", "eth0", "gi0-0", edge_id="e1")
    topology.connect("fw1", "pc2", "gi0-1", "eth0", edge_id="e2")
    return topology


# ============== Engine Fixtures ==============

@pytest.fixture
def bus() -> Generator[EventBus, None, None]:
    """A fresh event bus, closed after the test."""
    with EventBus() as event_bus:
        yield event_bus


@pytest.fixture
def fast_config() -> SchedulerConfig:
    """Short hop timings so timed runs finish quickly."""
    return SchedulerConfig(base_latency_ms=20.0, tick_interval_ms=5.0)


@pytest.fixture
def recorder(bus: EventBus) -> list:
    """Every (event name, payload) published on the bus, in order."""
    events = []
    bus.on_any(lambda name, payload: events.append((name, payload)))
    return events


@pytest.fixture
def orchestrator(bus: EventBus, fast_config: SchedulerConfig) -> SimulationOrchestrator:
    return SimulationOrchestrator(bus, config=fast_config, speed="instant")


# ============== Helper Functions ==============

def event_names(events: list) -> list[str]:
    """Names from a recorder list."""
    return [name for name, _ in events]


def count_events(events: list, name: str) -> int:
    return sum(1 for event_name, _ in events if event_name == name)
