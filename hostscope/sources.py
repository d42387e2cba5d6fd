#!/usr/bin/env python3
"""
Data Sources

A data source produces one Sample per collection cycle. The live source reads
the kernel tables (and records them when asked to), the replay source reads a
previously recorded session. Consumers cannot tell them apart.
"""

import time
import logging
from typing import List, Optional, Set

from hostscope.config import MonitorConfig
from hostscope.inode_index import InodeIndexBuilder
from hostscope.process_info import ProcessProbe
from hostscope.session import Player, Recorder, Sample
from hostscope.socket_tables import PROTOCOLS, Protocol, TableScanner

logger = logging.getLogger("hostscope.sources")


class LiveSource:
    """Sample the kernel socket tables"""

    def __init__(self, config: MonitorConfig, probe: Optional[ProcessProbe] = None,
                 recorder: Optional[Recorder] = None):
        self.config = config
        self.scanner = TableScanner(config.procfs)
        self.probe = probe
        self.recorder = recorder
        self._missing: Set[Protocol] = set()
        # wall clock anchor advanced by the monotonic clock, so a clock step
        # never produces a timestamp older than the previous sample
        self._wall_start = time.time()
        self._mono_start = time.monotonic()
        self._last_timestamp = 0.0

    def _protocols(self) -> List[Protocol]:
        if not self.config.skip_missing_tables:
            return PROTOCOLS

        # A family the kernel does not expose counts as zero entries. The
        # index build itself stays all or nothing over the remaining ones.
        protocols = []
        for protocol in PROTOCOLS:
            if self.scanner.available(protocol):
                protocols.append(protocol)
            elif protocol not in self._missing:
                self._missing.add(protocol)
                logger.warning(f"{self.scanner.table_path(protocol)} not available, skipping {protocol.value}")
        return protocols

    def _timestamp(self) -> float:
        timestamp = self._wall_start + (time.monotonic() - self._mono_start)
        if timestamp <= self._last_timestamp:
            timestamp = self._last_timestamp + 1e-6
        self._last_timestamp = timestamp
        return timestamp

    def collect(self) -> Sample:
        index = InodeIndexBuilder(self.scanner, self._protocols()).build()
        extras = {}
        if self.probe is not None:
            extras["process"] = self.probe.collect()

        sample = Sample(self._timestamp(), index, extras)
        if self.recorder is not None:
            self.recorder.append(sample)
        return sample

    def close(self) -> None:
        if self.recorder is not None:
            self.recorder.close()


class ReplaySource:
    """Replay the samples of a recorded session"""

    def __init__(self, player: Player, sleep=time.sleep):
        self.player = player
        self._sleep = sleep

    def collect(self) -> Optional[Sample]:
        delay = self.player.delay_before(self.player.position)
        sample, done = self.player.next()
        if done:
            return None
        if delay > 0:
            self._sleep(delay)
        return sample

    def close(self) -> None:
        pass
