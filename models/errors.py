"""
Exception hierarchy for the simulation engine.

Routing failures, drops and CLI mistakes are reported through summaries,
events and output lines; these exceptions cover malformed input and
programming errors only.
"""


class SimulationError(Exception):
    """Base class for engine errors."""


class TopologyError(SimulationError):
    """Malformed device or edge data."""


class RunCancelledError(SimulationError):
    """Raised inside a suspended hop when its run is cancelled."""

    def __init__(self, packet_id: str = ""):
        super().__init__(f"Run cancelled (packet {packet_id})" if packet_id else "Run cancelled")
        self.packet_id = packet_id


class EventBusClosedError(SimulationError):
    """The event bus has been torn down."""


class CliUnavailableError(SimulationError):
    """The device's hardware model has no command line."""

    def __init__(self, device_id: str, model: str = ""):
        detail = f" (model {model})" if model else ""
        super().__init__(f"Device {device_id} has no CLI{detail}")
        self.device_id = device_id
        self.model = model
