#!/usr/bin/env python3
"""
HostScope - Main Entry Point

A terminal monitor for the sockets of a Linux process, with session
recording and replay
"""

import os
import sys
import logging
import argparse
from rich.console import Console
from rich.logging import RichHandler

from hostscope.config import MonitorConfig, PACING_CHOICES, ON_ERROR_CHOICES, env_period, env_procfs
from hostscope.dashboard import main as run_dashboard
from hostscope.errors import AmbiguousTarget, HostScopeError
from hostscope.process_info import ProcessProbe, resolve_target
from hostscope.scheduler import Sampler, SamplerConfig
from hostscope.session import Player, Recorder
from hostscope.socket_tracker import SocketTracker
from hostscope.sources import LiveSource, ReplaySource

logger = logging.getLogger("hostscope")


def parse_arguments(argv=None):
    """Parse command-line arguments"""
    parser = argparse.ArgumentParser(
        description="HostScope - Process Socket Monitor"
    )

    parser.add_argument("--pid", type=int, default=0, help="Process ID to monitor")
    parser.add_argument("--search", type=str, help="Search target process by name")
    parser.add_argument(
        "--period",
        type=int,
        default=env_period(),
        help="Data refresh period in milliseconds"
    )
    parser.add_argument(
        "--procfs",
        type=str,
        default=env_procfs(),
        help="Root of the proc filesystem"
    )
    parser.add_argument("--record", type=str, help="Record the session to this file")
    parser.add_argument("--replay", type=str, help="Replay the session in this file")
    parser.add_argument(
        "--replay-pacing",
        choices=PACING_CHOICES,
        default="none",
        help="Replay one sample per tick (none) or keep the recorded spacing (original)"
    )
    parser.add_argument("--replay-speed", type=float, default=1.0, help="Speed factor for original pacing")
    parser.add_argument(
        "--strict-tables",
        action="store_true",
        help="Fail when a socket table is missing instead of skipping its family"
    )
    parser.add_argument(
        "--on-error",
        choices=ON_ERROR_CHOICES,
        default="stop",
        help="Stop sampling on a collection error or skip the tick"
    )
    parser.add_argument(
        "--rich-only",
        action="store_true",
        help="Use Rich-based dashboard instead of Textual"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument("--log-file", type=str, help="Write log messages to this file")

    return parser.parse_args(argv)


def setup_logging(config: MonitorConfig) -> None:
    """Log to a file when asked to, the terminal belongs to the dashboard"""
    level = logging.DEBUG if config.debug else logging.WARNING
    if config.log_file:
        handler = logging.FileHandler(config.log_file)
        handler.setFormatter(logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s"))
    else:
        handler = RichHandler(rich_tracebacks=True)
    logging.basicConfig(level=level, format="%(message)s", datefmt="[%X]", handlers=[handler])


def build_sampler(config: MonitorConfig, tracker: SocketTracker):
    """
    Create the data source selected by the configuration and the sampler
    driving it

    Returns:
        Tuple of (sampler, source)
    """
    if config.replaying:
        player = Player.open(config.replay_file, config.replay_pacing, config.replay_speed)
        source = ReplaySource(player)
    else:
        pid = resolve_target(config)
        recorder = Recorder.create(config.record_file) if config.recording else None
        source = LiveSource(config, ProcessProbe(pid, config.procfs), recorder)

    sampler = Sampler(source, SamplerConfig(interval=config.interval, on_error=config.on_error))
    sampler.add_consumer(tracker.on_sample)
    sampler.add_error_consumer(tracker.on_error)
    return sampler, source


def main(argv=None) -> int:
    """Main entry point for the application"""
    console = Console()
    args = parse_arguments(argv)

    if args.no_color:
        os.environ["NO_COLOR"] = "1"

    try:
        config = MonitorConfig.from_args(args)
    except HostScopeError as e:
        console.print(f"[bold red]{e}[/bold red]")
        return 2

    setup_logging(config)
    tracker = SocketTracker()

    try:
        sampler, source = build_sampler(config, tracker)
    except AmbiguousTarget as e:
        console.print(f"[yellow]{e}:[/yellow]")
        for pid, name, cmdline in e.matches:
            console.print(f"[{pid}] ({name}) {cmdline}", markup=False)
        return 0
    except (HostScopeError, OSError) as e:
        console.print(f"[bold red]{e}[/bold red]")
        return 1

    try:
        # first sample before the UI shows up
        sampler.force_refresh()
        run_dashboard(sampler, tracker, rich_only=config.rich_only)
    except KeyboardInterrupt:
        console.print("\n[yellow]HostScope terminated by user[/yellow]")
    finally:
        try:
            source.close()
        except HostScopeError as e:
            console.print(f"[bold red]{e}[/bold red]")
            return 1

    if sampler.last_error is not None and sampler.stopped:
        console.print(f"[bold red]Sampling stopped: {sampler.last_error}[/bold red]")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
