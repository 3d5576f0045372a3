"""
Simulation state and result models.

Tracks the active ping run, speed settings, the final summary and the
payloads carried by engine events.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum, auto
from typing import Optional
import time
import uuid

from .packet import Packet


class SimulationSpeed(Enum):
    """
    Playback speed of a run.

    The value multiplies the base per-hop latency; INSTANT collapses
    every hop into a zero-duration transition.
    """
    SLOW = "slow"
    NORMAL = "normal"
    FAST = "fast"
    INSTANT = "instant"

    @property
    def multiplier(self) -> float:
        return SPEED_MULTIPLIERS[self]

    @classmethod
    def parse(cls, value) -> "SimulationSpeed":
        """Accept an enum member or its string value."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(
                f"Unknown speed '{value}' (expected one of: "
                f"{', '.join(s.value for s in cls)})"
            ) from None


SPEED_MULTIPLIERS = {
    SimulationSpeed.SLOW: 3.0,
    SimulationSpeed.NORMAL: 1.0,
    SimulationSpeed.FAST: 0.3,
    SimulationSpeed.INSTANT: 0.0,
}


class RunStatus(Enum):
    """Lifecycle of a ping run."""
    IDLE = auto()
    RUNNING = auto()
    COMPLETED = auto()
    FAILED = auto()


class DropReason(Enum):
    TTL_EXPIRED = "ttl-expired"
    LINK_DOWN = "link-down"
    NO_ROUTE = "no-route"
    BLOCKED = "blocked"


class LogLevel(Enum):
    """Console severity; maps onto the console:* event family."""
    INFO = "info"
    SUCCESS = "success"
    WARN = "warn"
    ERROR = "error"


@dataclass
class SchedulerConfig:
    """Timing parameters for hop playback."""
    base_latency_ms: float = 800.0   # Per-hop duration at NORMAL speed
    tick_interval_ms: float = 100.0  # sim:tick cadence at NORMAL speed
    default_ttl: int = 64
    max_ticks: int = 1000            # Safety limit per run

    def hop_duration_ms(self, speed: SimulationSpeed) -> float:
        return self.base_latency_ms * speed.multiplier

    def tick_interval(self, speed: SimulationSpeed) -> float:
        return self.tick_interval_ms * speed.multiplier

    def ticks_per_hop(self, speed: SimulationSpeed) -> int:
        """At least one tick per hop, even at instant speed."""
        interval = self.tick_interval(speed)
        if interval <= 0:
            return 1
        return max(1, round(self.hop_duration_ms(speed) / interval))


@dataclass
class SimulationRun:
    """
    One execution of a ping, from start to a terminal state.

    Owned by the orchestrator; at most one is active at a time.
    """
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    source_id: str = ""
    target_id: str = ""
    packet_id: str = ""
    path: list[str] = field(default_factory=list)
    edges: list[str] = field(default_factory=list)
    traversed: list[str] = field(default_factory=list)
    hop_durations_ms: list[float] = field(default_factory=list)
    status: RunStatus = RunStatus.IDLE
    errors: list[str] = field(default_factory=list)
    ticks: int = 0
    started_at: float = field(default_factory=time.time)

    @property
    def is_running(self) -> bool:
        return self.status == RunStatus.RUNNING

    @property
    def total_latency_ms(self) -> float:
        return sum(self.hop_durations_ms)

    @property
    def hops_completed(self) -> int:
        return len(self.hop_durations_ms)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source_id": self.source_id,
            "target_id": self.target_id,
            "packet_id": self.packet_id,
            "path": list(self.path),
            "edges": list(self.edges),
            "traversed": list(self.traversed),
            "hop_durations_ms": list(self.hop_durations_ms),
            "status": self.status.name,
            "errors": list(self.errors),
            "ticks": self.ticks,
        }


@dataclass
class SimulationSummary:
    """Result of execute_ping; also the sim:complete payload."""
    success: bool = False
    path: list[str] = field(default_factory=list)
    total_latency_ms: float = 0.0
    total_packets: int = 0
    total_ticks: int = 0
    errors: list[str] = field(default_factory=list)
    delivered_packets: int = 0
    dropped_packets: int = 0
    logs: list[str] = field(default_factory=list)

    @classmethod
    def failure(cls, *errors: str, path: Optional[list[str]] = None) -> "SimulationSummary":
        return cls(success=False, path=list(path or []), errors=list(errors))

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SimulationState:
    """Read-only view of the orchestrator for external consumers."""
    is_running: bool = False
    speed: SimulationSpeed = SimulationSpeed.NORMAL
    current_run: Optional[SimulationRun] = None
    current_tick: int = 0


# ---- Event payloads ----

@dataclass
class PacketMoveEvent:
    packet: Packet
    edge_id: str
    from_device: str
    to_device: str
    duration_ms: float
    hop: int


@dataclass
class PacketDropEvent:
    packet: Packet
    device_id: str
    reason: DropReason
    explanation: str
    edge_id: str = ""


@dataclass
class PacketArriveEvent:
    packet: Packet
    device_id: str
    total_latency_ms: float
    hops: int


@dataclass
class ConsoleLogEvent:
    message: str
    level: LogLevel = LogLevel.INFO
    device_id: str = ""
    timestamp: float = field(default_factory=time.time)

    def format(self) -> str:
        prefix = f"[{self.device_id}] " if self.device_id else ""
        return f"{prefix}{self.message}"


@dataclass
class SimStartEvent:
    run_id: str
    source_id: str
    target_id: str
    path: list[str]
    packet_id: str


@dataclass
class SimTickEvent:
    tick: int
    run_id: str
    packet_id: str


@dataclass
class Announcement:
    """Screen-reader announcement."""
    message: str
    priority: str = "polite"  # polite, assertive


@dataclass
class PortStatusEvent:
    device_id: str
    interface_id: str = ""
    edge_id: str = ""
    up: bool = True
    reason: str = ""


@dataclass
class TableUpdateEvent:
    """A MAC or ARP table learned an entry."""
    device_id: str
    key: str
    value: str
