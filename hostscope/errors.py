#!/usr/bin/env python3
"""
Errors raised by HostScope

Collection errors abort the current sample, session errors are fatal to
startup or to the recording, target errors are reported before monitoring
starts.
"""

from typing import List, Tuple


class HostScopeError(Exception):
    """Base class for all HostScope errors"""


class MalformedLine(HostScopeError):
    """A kernel table line could not be decoded"""

    def __init__(self, filename: str, protocol: str, line: str, reason: str = ""):
        self.filename = filename
        self.protocol = protocol
        self.line = line
        self.reason = reason
        message = f"could not parse {protocol} line from {filename}"
        if reason:
            message += f" ({reason})"
        super().__init__(f"{message}: {line}")


class TableUnavailable(HostScopeError, OSError):
    """A kernel table file is missing or unreadable"""

    def __init__(self, path: str, reason: str = ""):
        self.path = path
        self.reason = reason
        super().__init__(f"cannot read {path}" + (f": {reason}" if reason else ""))

    def __str__(self) -> str:
        return self.args[0]


class SessionError(HostScopeError):
    """A session file could not be written or replayed"""


class ConfigError(HostScopeError):
    """Invalid monitor configuration"""


class TargetError(HostScopeError):
    """The process to monitor could not be resolved"""


class NoSuchTarget(TargetError):
    """No process matches the search"""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"no matches for '{name}'")


class AmbiguousTarget(TargetError):
    """More than one process matches the search"""

    def __init__(self, name: str, matches: List[Tuple[int, str, str]]):
        self.name = name
        # (pid, name, cmdline) sorted by pid
        self.matches = sorted(matches)
        super().__init__(f"multiple matches for '{name}'")
