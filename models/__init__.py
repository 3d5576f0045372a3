"""
Models package.

This package contains all data models for the simulation engine.

- Network topology (Device, Interface, Edge, Topology, TopologySnapshot)
- Hardware catalog (HardwareModel, InterfaceBlueprint)
- Packets (Packet, PacketFactory)
- Simulation runs, summaries and event payloads
- CLI emulator state (CliState, CliContext, CliResult)
"""

from .errors import (
    SimulationError,
    TopologyError,
    RunCancelledError,
    EventBusClosedError,
    CliUnavailableError,
)
from .network import (
    DeviceType,
    InterfaceType,
    PoEType,
    ConnectionType,
    MEDIA_COMPATIBILITY,
    Interface,
    StaticRoute,
    AclAction,
    AclRule,
    Device,
    Edge,
    LinkCheck,
    check_link_compatibility,
    protocol_for_media,
    Topology,
    TopologySnapshot,
)
from .hardware import (
    InterfaceBlueprint,
    HardwareModel,
    HARDWARE_CATALOG,
    OUI_PREFIXES,
    get_hardware_model,
    default_model_for_type,
    models_for_type,
    generate_mac,
    create_interfaces,
)
from .packet import (
    BROADCAST_MAC,
    DEFAULT_TTL,
    MAX_TTL,
    L2Header,
    L3Header,
    Packet,
    PacketFactory,
)
from .simulation import (
    SimulationSpeed,
    SPEED_MULTIPLIERS,
    RunStatus,
    DropReason,
    LogLevel,
    SchedulerConfig,
    SimulationRun,
    SimulationSummary,
    SimulationState,
    PacketMoveEvent,
    PacketDropEvent,
    PacketArriveEvent,
    ConsoleLogEvent,
    SimStartEvent,
    SimTickEvent,
    Announcement,
    PortStatusEvent,
    TableUpdateEvent,
)
from .cli import (
    CliMode,
    CliState,
    CliContext,
    CliResult,
)


__all__ = [
    # Errors
    "SimulationError",
    "TopologyError",
    "RunCancelledError",
    "EventBusClosedError",
    "CliUnavailableError",
    # Network
    "DeviceType",
    "InterfaceType",
    "PoEType",
    "ConnectionType",
    "MEDIA_COMPATIBILITY",
    "Interface",
    "StaticRoute",
    "AclAction",
    "AclRule",
    "Device",
    "Edge",
    "LinkCheck",
    "check_link_compatibility",
    "protocol_for_media",
    "Topology",
    "TopologySnapshot",
    # Hardware
    "InterfaceBlueprint",
    "HardwareModel",
    "HARDWARE_CATALOG",
    "OUI_PREFIXES",
    "get_hardware_model",
    "default_model_for_type",
    "models_for_type",
    "generate_mac",
    "create_interfaces",
    # Packet
    "BROADCAST_MAC",
    "DEFAULT_TTL",
    "MAX_TTL",
    "L2Header",
    "L3Header",
    "Packet",
    "PacketFactory",
    # Simulation
    "SimulationSpeed",
    "SPEED_MULTIPLIERS",
    "RunStatus",
    "DropReason",
    "LogLevel",
    "SchedulerConfig",
    "SimulationRun",
    "SimulationSummary",
    "SimulationState",
    "PacketMoveEvent",
    "PacketDropEvent",
    "PacketArriveEvent",
    "ConsoleLogEvent",
    "SimStartEvent",
    "SimTickEvent",
    "Announcement",
    "PortStatusEvent",
    "TableUpdateEvent",
    # CLI
    "CliMode",
    "CliState",
    "CliContext",
    "CliResult",
]
