#!/usr/bin/env python3
"""
NetBuilder Simulation Engine - Command Line Entry Point

Runs the packet simulation and the CLI emulator headless against a
topology saved as JSON.

Usage:
    python main.py ping topology.json pc1 pc2
    python main.py ping topology.json pc1 pc2 --speed instant --ttl 3
    python main.py console topology.json r1
    python main.py --debug ...    # Enable debug logging
"""

import sys
import json
import asyncio
import logging
import argparse
from pathlib import Path

from models.errors import CliUnavailableError, TopologyError
from models.network import Topology
from models.simulation import ConsoleLogEvent, LogLevel, SimulationSpeed
from services.cli_engine import build_prompt
from services.cli_sessions import CliSessionManager
from services.event_bus import EventBus, SimEvent
from services.orchestrator import SimulationOrchestrator
from services.settings_manager import get_settings

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False):
    """Configure logging for the application."""
    level = logging.DEBUG if debug else logging.INFO

    # Create formatter
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)

    # Log startup message
    logger.info(f"Logging initialized at {'DEBUG' if debug else 'INFO'} level")


def load_topology(path: str) -> Topology:
    """Read a topology JSON file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise TopologyError(f"Cannot read topology {path}: {e}") from e
    if not isinstance(data, dict):
        raise TopologyError(f"Topology {path} must contain a JSON object")
    return Topology.from_dict(data)


def save_topology(topology: Topology, path: str):
    with open(path, "w", encoding="utf-8") as f:
        json.dump(topology.to_dict(), f, indent=2)


def print_console_event(entry: ConsoleLogEvent):
    marker = {
        LogLevel.INFO: " ",
        LogLevel.SUCCESS: "+",
        LogLevel.WARN: "!",
        LogLevel.ERROR: "x",
    }[entry.level]
    print(f"[{marker}] {entry.format()}")


def run_ping(args, settings) -> int:
    """Animate one ping in the terminal; exit status reflects delivery."""
    topology = load_topology(args.topology)

    with EventBus() as bus:
        for event in (SimEvent.CONSOLE_LOG, SimEvent.CONSOLE_WARN, SimEvent.CONSOLE_ERROR):
            bus.on(event, print_console_event)

        orchestrator = SimulationOrchestrator(
            bus,
            config=settings.simulation.to_scheduler_config(),
            speed=args.speed or settings.default_speed,
        )
        orchestrator.load_snapshot(topology.snapshot())
        summary = asyncio.run(orchestrator.execute_ping(args.source, args.target, ttl=args.ttl))

    print("-" * 60)
    if summary.success:
        print(f"Delivered via {' -> '.join(summary.path)} "
              f"({len(summary.path) - 1} hops, {summary.total_latency_ms:.0f} ms, "
              f"{summary.total_ticks} ticks)")
        return 0
    for error in summary.errors:
        print(f"Failed: {error}")
    return 1


def run_console(args, settings) -> int:
    """Interactive CLI session on one device over stdin."""
    topology = load_topology(args.topology)

    def save(device_id: str):
        save_topology(topology, args.topology)
        logger.info(f"Saved configuration of {device_id} to {args.topology}")

    sessions = CliSessionManager(topology, show_banner=settings.cli.show_banner, on_save=save)
    try:
        session = sessions.open(args.device)
    except CliUnavailableError as e:
        print(f"% {e}")
        return 1

    for line in session.state.output:
        print(line)

    while True:
        try:
            line = input(f"{build_prompt(session.state)} ")
        except (EOFError, KeyboardInterrupt):
            print()
            break
        result = sessions.submit(args.device, line)
        for output in result.lines:
            print(output)
        if result.closed:
            break
    sessions.close_all()
    return 0


def main():
    """Main entry point."""
    # Parse command line arguments
    parser = argparse.ArgumentParser(description='NetBuilder network simulation engine')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    parser.add_argument('--config', help='Path to settings.json')
    subparsers = parser.add_subparsers(dest='command', required=True)

    ping = subparsers.add_parser('ping', help='Send one ICMP echo between two devices')
    ping.add_argument('topology', help='Topology JSON file')
    ping.add_argument('source', help='Source device id')
    ping.add_argument('target', help='Target device id')
    ping.add_argument('--speed', choices=[s.value for s in SimulationSpeed],
                      help='Playback speed (default from settings)')
    ping.add_argument('--ttl', type=int, default=None, help='Initial TTL')

    console = subparsers.add_parser('console', help='Open a CLI session on a device')
    console.add_argument('topology', help='Topology JSON file')
    console.add_argument('device', help='Device id')

    args = parser.parse_args()

    # Setup logging
    setup_logging(debug=args.debug)

    settings = get_settings(args.config)

    try:
        if args.command == 'ping':
            status = run_ping(args, settings)
        else:
            status = run_console(args, settings)
    except TopologyError as e:
        logger.error(str(e))
        status = 2

    if Path(args.topology).exists() and status == 0:
        settings.add_recent_topology(str(Path(args.topology).resolve()))
    sys.exit(status)


if __name__ == "__main__":
    main()
