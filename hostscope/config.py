#!/usr/bin/env python3
"""
Monitor configuration

A single MonitorConfig value is built from the command line (and a couple of
environment defaults) and handed to every component that needs it.
"""

import os
from dataclasses import dataclass

from hostscope.errors import ConfigError

DEFAULT_PROCFS = "/proc"
DEFAULT_PERIOD_MS = 500

PACING_CHOICES = ("none", "original")
ON_ERROR_CHOICES = ("stop", "skip")


@dataclass
class MonitorConfig:
    """Configuration for a monitoring session"""
    procfs: str = DEFAULT_PROCFS
    pid: int = 0
    search: str = ""
    period_ms: int = DEFAULT_PERIOD_MS
    record_file: str = ""
    replay_file: str = ""
    replay_pacing: str = "none"
    replay_speed: float = 1.0
    # A family whose table is missing (not compiled in the kernel) counts as
    # zero entries instead of failing the whole sample
    skip_missing_tables: bool = True
    on_error: str = "stop"
    rich_only: bool = False
    debug: bool = False
    log_file: str = ""

    @property
    def interval(self) -> float:
        """Refresh period in seconds"""
        return self.period_ms / 1000.0

    @property
    def replaying(self) -> bool:
        return bool(self.replay_file)

    @property
    def recording(self) -> bool:
        return bool(self.record_file)

    def validate(self) -> "MonitorConfig":
        if self.period_ms <= 0:
            raise ConfigError(f"refresh period must be positive, got {self.period_ms}ms")
        if self.record_file and self.replay_file:
            raise ConfigError("recording and replaying are mutually exclusive")
        if self.pid < 0:
            raise ConfigError(f"invalid pid {self.pid}")
        if self.pid and self.search:
            raise ConfigError("--pid and --search are mutually exclusive")
        if self.replay_pacing not in PACING_CHOICES:
            raise ConfigError(f"unknown replay pacing '{self.replay_pacing}'")
        if self.replay_speed <= 0:
            raise ConfigError(f"replay speed must be positive, got {self.replay_speed}")
        if self.on_error not in ON_ERROR_CHOICES:
            raise ConfigError(f"unknown error policy '{self.on_error}'")
        return self

    @classmethod
    def from_args(cls, args) -> "MonitorConfig":
        """Build a validated configuration from parsed command line arguments"""
        return cls(
            procfs=args.procfs,
            pid=args.pid,
            search=args.search or "",
            period_ms=args.period,
            record_file=args.record or "",
            replay_file=args.replay or "",
            replay_pacing=args.replay_pacing,
            replay_speed=args.replay_speed,
            skip_missing_tables=not args.strict_tables,
            on_error=args.on_error,
            rich_only=args.rich_only,
            debug=args.debug,
            log_file=args.log_file or "",
        ).validate()


def env_procfs() -> str:
    return os.environ.get("HOSTSCOPE_PROCFS", DEFAULT_PROCFS)


def env_period() -> int:
    value = os.environ.get("HOSTSCOPE_PERIOD", "")
    try:
        return int(value) if value else DEFAULT_PERIOD_MS
    except ValueError:
        raise ConfigError(f"HOSTSCOPE_PERIOD must be an integer, got '{value}'")
