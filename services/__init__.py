"""
Services package.

The Qt signal bridge lives in services.signal_bridge and is imported
explicitly by GUI code, so the engine itself runs without a Qt
application.
"""

from .event_bus import EventBus, EventRecord, SimEvent
from .device_state import (
    RouteType,
    RouteEntry,
    RoutingTable,
    MacTable,
    ArpTable,
    DeviceState,
    DeviceStateManager,
)
from .path_resolver import (
    FailureKind,
    PathFailure,
    PathResult,
    PathResolver,
    acl_permits,
)
from .scheduler import HopScheduler
from .orchestrator import SimulationOrchestrator
from .cli_engine import (
    BANNER,
    COMMAND_TABLE,
    create_initial_cli_state,
    build_prompt,
    process_command,
    get_completions,
)
from .cli_sessions import CliSession, CliSessionManager
from .settings_manager import (
    SettingsManager,
    AppSettings,
    SimulationDefaults,
    CliSettings,
    ConsoleSettings,
    get_settings,
    reset_settings_manager,
)

__all__ = [
    # Event bus
    "EventBus",
    "EventRecord",
    "SimEvent",
    # Device state
    "RouteType",
    "RouteEntry",
    "RoutingTable",
    "MacTable",
    "ArpTable",
    "DeviceState",
    "DeviceStateManager",
    # Path resolution
    "FailureKind",
    "PathFailure",
    "PathResult",
    "PathResolver",
    "acl_permits",
    # Orchestration
    "HopScheduler",
    "SimulationOrchestrator",
    # CLI
    "BANNER",
    "COMMAND_TABLE",
    "create_initial_cli_state",
    "build_prompt",
    "process_command",
    "get_completions",
    "CliSession",
    "CliSessionManager",
    # Settings
    "SettingsManager",
    "AppSettings",
    "SimulationDefaults",
    "CliSettings",
    "ConsoleSettings",
    "get_settings",
    "reset_settings_manager",
]
