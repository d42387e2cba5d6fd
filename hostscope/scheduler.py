#!/usr/bin/env python3
"""
Sampler Module

Drives periodic collection cycles over a data source:
- Running / Paused states, toggled by the operator
- Manual refresh that works while paused
- At most one collection in flight, overlapping ticks are dropped
"""

import time
import logging
import threading
from enum import Enum
from dataclasses import dataclass
from typing import Callable, List, Optional

from hostscope.errors import HostScopeError
from hostscope.session import Sample

logger = logging.getLogger("hostscope.scheduler")


class SamplerState(Enum):
    RUNNING = "running"
    PAUSED = "paused"


@dataclass
class SamplerConfig:
    """Configuration for the sampler"""
    interval: float = 0.5
    # "stop" ends sampling on the first collection error, "skip" drops the
    # tick and tries again on the next one
    on_error: str = "stop"


class Sampler:
    """Periodic collection driver feeding samples to consumers"""

    def __init__(self, source, config: Optional[SamplerConfig] = None):
        """
        Initialize the sampler

        Args:
            source: Object with a collect() method returning a Sample, or
                    None once there is nothing left to collect
            config: Optional sampler settings
        """
        self.source = source
        self.config = config or SamplerConfig()
        self.state = SamplerState.RUNNING
        self.latest: Optional[Sample] = None
        self.last_error: Optional[Exception] = None
        self.finished = False
        self.stopped = False
        self.collections = 0
        self.dropped_ticks = 0
        self._busy = threading.Lock()
        self._consumers: List[Callable[[Sample], None]] = []
        self._error_consumers: List[Callable[[Exception], None]] = []

    def add_consumer(self, consumer: Callable[[Sample], None]) -> None:
        self._consumers.append(consumer)

    def add_error_consumer(self, consumer: Callable[[Exception], None]) -> None:
        self._error_consumers.append(consumer)

    @property
    def paused(self) -> bool:
        return self.state is SamplerState.PAUSED

    @property
    def active(self) -> bool:
        return not (self.finished or self.stopped)

    def pause(self) -> None:
        self.state = SamplerState.PAUSED

    def resume(self) -> None:
        self.state = SamplerState.RUNNING

    def toggle_pause(self) -> SamplerState:
        self.state = SamplerState.RUNNING if self.paused else SamplerState.PAUSED
        logger.debug(f"sampler {self.state.value}")
        return self.state

    def tick(self) -> bool:
        """
        Periodic entry point, collects unless paused

        Returns:
            True if a sample was delivered
        """
        if self.paused:
            return False
        return self._cycle()

    def force_refresh(self) -> bool:
        """Run exactly one collection cycle regardless of the pause state"""
        return self._cycle()

    def _cycle(self) -> bool:
        if not self.active:
            return False
        if not self._busy.acquire(blocking=False):
            self.dropped_ticks += 1
            logger.debug("collection still in flight, tick dropped")
            return False
        try:
            try:
                sample = self.source.collect()
            except (HostScopeError, OSError) as e:
                self._handle_error(e)
                return False

            if sample is None:
                self.finished = True
                logger.info("data source exhausted")
                return False

            # swap only the fully built sample
            self.latest = sample
            self.collections += 1
            for consumer in self._consumers:
                consumer(sample)
            return True
        finally:
            self._busy.release()

    def _handle_error(self, error: Exception) -> None:
        self.last_error = error
        if self.config.on_error == "skip":
            logger.warning(f"collection failed, skipping tick: {error}")
            return
        logger.error(f"collection failed, stopping: {error}")
        self.stopped = True
        for consumer in self._error_consumers:
            consumer(error)

    def run(self, stop_event: Optional[threading.Event] = None) -> None:
        """Blocking driver loop, ticks every interval until stopped or exhausted"""
        stop_event = stop_event or threading.Event()
        next_tick = time.monotonic()
        while self.active and not stop_event.is_set():
            self.tick()
            next_tick += self.config.interval
            # late ticks are skipped, never queued
            now = time.monotonic()
            if next_tick < now:
                next_tick = now
            stop_event.wait(next_tick - now)
