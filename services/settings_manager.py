"""
Settings Manager.

Handles application settings with JSON file storage.
"""

import json
import logging
import os
from dataclasses import dataclass, field, asdict
from typing import Optional
from pathlib import Path

from models.simulation import SchedulerConfig, SimulationSpeed

logger = logging.getLogger(__name__)


@dataclass
class SimulationDefaults:
    """Default simulation parameters."""
    speed: str = "normal"
    base_latency_ms: float = 800.0
    tick_interval_ms: float = 100.0
    default_ttl: int = 64
    max_ticks: int = 1000

    @property
    def speed_enum(self) -> SimulationSpeed:
        return SimulationSpeed.parse(self.speed)

    def to_scheduler_config(self) -> SchedulerConfig:
        """Timing parameters for the orchestrator."""
        return SchedulerConfig(
            base_latency_ms=self.base_latency_ms,
            tick_interval_ms=self.tick_interval_ms,
            default_ttl=self.default_ttl,
            max_ticks=self.max_ticks,
        )


@dataclass
class CliSettings:
    """Terminal emulator settings."""
    default_hostname: str = "Router"
    show_banner: bool = True


@dataclass
class ConsoleSettings:
    """Simulation console settings."""
    history_limit: int = 200  # Entries kept by the console view
    show_timestamps: bool = True


@dataclass
class AppSettings:
    """Complete application settings."""
    simulation: SimulationDefaults = field(default_factory=SimulationDefaults)
    cli: CliSettings = field(default_factory=CliSettings)
    console: ConsoleSettings = field(default_factory=ConsoleSettings)
    recent_topologies: list = field(default_factory=list)
    recent_topologies_max: int = 10

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "simulation": asdict(self.simulation),
            "cli": asdict(self.cli),
            "console": asdict(self.console),
            "recent_topologies": self.recent_topologies,
            "recent_topologies_max": self.recent_topologies_max,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AppSettings":
        """Create from dictionary."""
        settings = cls()

        if "simulation" in data:
            settings.simulation = SimulationDefaults(**data["simulation"])
        if "cli" in data:
            settings.cli = CliSettings(**data["cli"])
        if "console" in data:
            settings.console = ConsoleSettings(**data["console"])
        if "recent_topologies" in data:
            settings.recent_topologies = data["recent_topologies"]
        if "recent_topologies_max" in data:
            settings.recent_topologies_max = data["recent_topologies_max"]

        return settings


class SettingsManager:
    """
    Manages application settings with JSON file storage.

    Settings file location:
    - Windows: %APPDATA%/NetBuilderSim/settings.json
    - Linux: ~/.config/NetBuilderSim/settings.json
    - macOS: ~/Library/Application Support/NetBuilderSim/settings.json
    """

    APP_NAME = "NetBuilderSim"
    SETTINGS_FILE = "settings.json"

    def __init__(self, config_override: Optional[str] = None):
        """
        Initialize settings manager.

        Args:
            config_override: Optional path to override config file location.
                            Useful for testing.
        """
        self._settings = AppSettings()
        self._config_override = config_override
        self._settings_path = self._get_settings_path()
        self._ensure_settings_dir()
        self.load()

    @property
    def settings(self) -> AppSettings:
        """Get current settings."""
        return self._settings

    @property
    def settings_path(self) -> str:
        """Get the settings file path."""
        return str(self._settings_path)

    @property
    def simulation(self) -> SimulationDefaults:
        return self._settings.simulation

    @property
    def cli(self) -> CliSettings:
        return self._settings.cli

    @property
    def console(self) -> ConsoleSettings:
        return self._settings.console

    # Convenience properties for common settings
    @property
    def default_speed(self) -> str:
        return self._settings.simulation.speed

    @default_speed.setter
    def default_speed(self, value: str):
        # Raises ValueError for unknown speeds before anything is written
        self._settings.simulation.speed = SimulationSpeed.parse(value).value
        self.save()

    @property
    def default_ttl(self) -> int:
        return self._settings.simulation.default_ttl

    @default_ttl.setter
    def default_ttl(self, value: int):
        if value < 1:
            raise ValueError(f"TTL must be positive, got {value}")
        self._settings.simulation.default_ttl = value
        self.save()

    def _get_settings_path(self) -> Path:
        """Get platform-specific settings directory."""
        if self._config_override:
            return Path(self._config_override)

        import platform
        system = platform.system()

        if system == "Windows":
            base = os.environ.get("APPDATA", os.path.expanduser("~"))
            config_dir = Path(base) / self.APP_NAME
        elif system == "Darwin":  # macOS
            config_dir = Path.home() / "Library" / "Application Support" / self.APP_NAME
        else:  # Linux and others
            xdg_config = os.environ.get("XDG_CONFIG_HOME", os.path.expanduser("~/.config"))
            config_dir = Path(xdg_config) / self.APP_NAME

        return config_dir / self.SETTINGS_FILE

    def _ensure_settings_dir(self):
        """Create settings directory if it doesn't exist."""
        self._settings_path.parent.mkdir(parents=True, exist_ok=True)

    def load(self) -> bool:
        """Load settings from file."""
        if not self._settings_path.exists():
            return False

        try:
            with open(self._settings_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            self._settings = AppSettings.from_dict(data)
            return True
        except (OSError, ValueError, TypeError) as e:
            logger.error(f"Error loading settings from {self._settings_path}: {e}")
            return False

    def save(self) -> bool:
        """Save settings to file."""
        try:
            self._ensure_settings_dir()
            with open(self._settings_path, "w", encoding="utf-8") as f:
                json.dump(self._settings.to_dict(), f, indent=2)
            return True
        except OSError as e:
            logger.error(f"Error saving settings to {self._settings_path}: {e}")
            return False

    def reset(self):
        """Reset settings to defaults."""
        self._settings = AppSettings()
        self.save()

    def add_recent_topology(self, file_path: str):
        """Add a topology file to the recent list."""
        # Remove if already exists
        if file_path in self._settings.recent_topologies:
            self._settings.recent_topologies.remove(file_path)

        # Add to front
        self._settings.recent_topologies.insert(0, file_path)

        # Trim to max
        max_files = self._settings.recent_topologies_max
        self._settings.recent_topologies = self._settings.recent_topologies[:max_files]

        self.save()

    def get_recent_topologies(self) -> list:
        """Get recent topologies, filtered to existing files."""
        existing = [f for f in self._settings.recent_topologies if os.path.exists(f)]
        if len(existing) != len(self._settings.recent_topologies):
            self._settings.recent_topologies = existing
            self.save()
        return existing


# Global settings instance
_settings_manager: Optional[SettingsManager] = None


def get_settings(config_override: Optional[str] = None) -> SettingsManager:
    """
    Get the global settings manager instance.

    Args:
        config_override: Optional path to override config location.
                        Only used on first call to initialize.
    """
    global _settings_manager
    if _settings_manager is None:
        _settings_manager = SettingsManager(config_override)
    return _settings_manager


def reset_settings_manager():
    """Reset the global settings manager (useful for testing)."""
    global _settings_manager
    _settings_manager = None
