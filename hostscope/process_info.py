#!/usr/bin/env python3
"""
Process Information Module

Resolves the process to monitor and collects its per-sample data:
- Search by name (substring of the process name)
- Socket inodes from the open file descriptors
- Basic process metrics (CPU, memory, threads)
"""

import os
import re
import logging
from typing import Any, Dict, List, Tuple

import psutil

from hostscope.config import MonitorConfig
from hostscope.errors import AmbiguousTarget, NoSuchTarget

logger = logging.getLogger("hostscope.process_info")

SOCKET_LINK = re.compile(r"^socket:\[(\d+)\]$")


def search_processes(name: str) -> List[Tuple[int, str, str]]:
    """
    Find the processes whose name contains a substring

    Args:
        name: Substring to look for

    Returns:
        List of (pid, name, cmdline) sorted by pid
    """
    matches = []
    for proc in psutil.process_iter(['pid', 'name', 'cmdline']):
        try:
            comm = proc.info['name'] or ""
            if comm and name in comm:
                cmdline = ' '.join(proc.info['cmdline'] or [])
                matches.append((proc.info['pid'], comm, cmdline))
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass
    return sorted(matches)


def resolve_target(config: MonitorConfig) -> int:
    """
    Pick the process to monitor

    Uses the configured pid, otherwise a unique name search match, otherwise
    the monitor itself.

    Raises:
        NoSuchTarget: the search matched nothing
        AmbiguousTarget: the search matched more than one process
    """
    if config.search:
        matches = search_processes(config.search)
        if not matches:
            raise NoSuchTarget(config.search)
        if len(matches) > 1:
            raise AmbiguousTarget(config.search, matches)
        pid = matches[0][0]
        logger.info(f"Found '{config.search}' with pid {pid}")
        return pid

    if config.pid > 0:
        if not psutil.pid_exists(config.pid):
            raise NoSuchTarget(f"pid {config.pid}")
        return config.pid

    return os.getpid()


def socket_inodes(pid: int, procfs_root: str = "/proc") -> List[int]:
    """
    List the socket inodes a process holds open

    Reads the <procfs>/<pid>/fd links, sockets show up as socket:[inode].
    File descriptors closed while iterating are ignored.
    """
    fd_dir = os.path.join(procfs_root, str(pid), "fd")
    inodes = []
    for fd in sorted(os.listdir(fd_dir), key=lambda x: int(x) if x.isdigit() else 0):
        try:
            link = os.readlink(os.path.join(fd_dir, fd))
        except FileNotFoundError:
            continue
        match = SOCKET_LINK.match(link)
        if match:
            inodes.append(int(match.group(1)))
    return inodes


class ProcessProbe:
    """Collect the per-sample data of the monitored process"""

    def __init__(self, pid: int, procfs_root: str = "/proc"):
        self.pid = pid
        self.procfs_root = procfs_root
        try:
            self._process = psutil.Process(pid)
        except psutil.NoSuchProcess as e:
            raise NoSuchTarget(f"pid {pid}") from e
        # prime cpu_percent, the first call always returns 0.0
        try:
            self._process.cpu_percent(interval=None)
        except psutil.AccessDenied:
            pass

    def collect(self) -> Dict[str, Any]:
        """
        Returns:
            Dictionary with pid, name, cmdline, cpu_percent, memory_rss,
            num_threads and socket_inodes
        """
        info: Dict[str, Any] = {"pid": self.pid}
        try:
            with self._process.oneshot():
                info["name"] = self._process.name()
                info["cmdline"] = ' '.join(self._process.cmdline())
                info["cpu_percent"] = self._process.cpu_percent(interval=None)
                info["memory_rss"] = self._process.memory_info().rss
                info["num_threads"] = self._process.num_threads()
        except psutil.NoSuchProcess:
            info["gone"] = True
        except psutil.AccessDenied:
            info["access_denied"] = True

        try:
            info["socket_inodes"] = socket_inodes(self.pid, self.procfs_root)
        except PermissionError:
            info["access_denied"] = True
            info["socket_inodes"] = []
        except FileNotFoundError:
            # no fd table under this procfs root, only host wide data
            logger.debug(f"no fd directory for pid {self.pid} under {self.procfs_root}")
        return info
