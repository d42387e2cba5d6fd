#!/usr/bin/env python3
"""
Tests for the Sampler module
"""

import threading
import pytest
from unittest.mock import MagicMock
from hostscope.errors import MalformedLine, TableUnavailable
from hostscope.inode_index import ConnectionIndex
from hostscope.scheduler import Sampler, SamplerConfig, SamplerState
from hostscope.session import Sample


@pytest.fixture
def source():
    """Mock data source returning a fresh sample on every collect"""
    source = MagicMock()
    source.collect.side_effect = lambda: Sample(float(source.collect.call_count), ConnectionIndex())
    return source


@pytest.fixture
def sampler(source):
    """Fixture for a Sampler over the mock source"""
    return Sampler(source, SamplerConfig(interval=0.01))


class TestSampler:
    """Test suite for Sampler"""

    def test_starts_running(self, sampler):
        assert sampler.state is SamplerState.RUNNING
        assert not sampler.paused

    def test_tick_collects_and_delivers(self, sampler, source):
        consumer = MagicMock()
        sampler.add_consumer(consumer)

        assert sampler.tick()

        assert source.collect.call_count == 1
        consumer.assert_called_once_with(sampler.latest)
        assert sampler.collections == 1

    def test_every_consumer_gets_the_sample(self, sampler):
        first, second = MagicMock(), MagicMock()
        sampler.add_consumer(first)
        sampler.add_consumer(second)

        sampler.tick()

        assert first.call_args == second.call_args

    def test_toggle_pause(self, sampler):
        assert sampler.toggle_pause() is SamplerState.PAUSED
        assert sampler.toggle_pause() is SamplerState.RUNNING

    def test_paused_ticks_do_not_collect(self, sampler, source):
        sampler.pause()
        for _ in range(5):
            assert not sampler.tick()

        source.collect.assert_not_called()

    def test_force_refresh_while_paused(self, sampler, source):
        """Each refresh is exactly one collection, ticks add none"""
        sampler.pause()
        for refreshes in range(1, 4):
            sampler.tick()
            assert sampler.force_refresh()
            sampler.tick()
            assert source.collect.call_count == refreshes

        assert sampler.paused

    def test_overlapping_tick_is_dropped(self, source):
        started = threading.Event()
        release = threading.Event()

        def slow_collect():
            started.set()
            release.wait(5)
            return Sample(1.0, ConnectionIndex())

        source.collect.side_effect = slow_collect
        sampler = Sampler(source)

        worker = threading.Thread(target=sampler.tick)
        worker.start()
        assert started.wait(5)

        assert not sampler.tick()
        assert not sampler.force_refresh()

        release.set()
        worker.join(5)

        assert source.collect.call_count == 1
        assert sampler.dropped_ticks == 2
        assert sampler.collections == 1

    def test_latest_is_replaced(self, sampler):
        sampler.tick()
        first = sampler.latest
        sampler.tick()

        assert sampler.latest is not first
        assert sampler.latest.timestamp == 2.0

    def test_error_stops_by_default(self, sampler, source):
        error = MalformedLine("/proc/net/tcp", "tcp", "garbage", "got 1 fields")
        source.collect.side_effect = error
        on_error = MagicMock()
        consumer = MagicMock()
        sampler.add_error_consumer(on_error)
        sampler.add_consumer(consumer)

        assert not sampler.tick()

        assert sampler.stopped
        assert not sampler.active
        assert sampler.last_error is error
        on_error.assert_called_once_with(error)
        consumer.assert_not_called()

        assert not sampler.tick()
        assert source.collect.call_count == 1

    def test_error_skip_policy(self, source):
        sample = Sample(1.0, ConnectionIndex())
        source.collect.side_effect = [TableUnavailable("/proc/net/tcp"), sample]
        sampler = Sampler(source, SamplerConfig(on_error="skip"))

        assert not sampler.tick()
        assert sampler.active
        assert sampler.tick()
        assert sampler.latest is sample

    def test_exhausted_source(self, sampler, source):
        source.collect.side_effect = [Sample(1.0, ConnectionIndex()), None]

        assert sampler.tick()
        assert not sampler.tick()
        assert sampler.finished
        assert not sampler.force_refresh()
        assert source.collect.call_count == 2

    def test_run_until_exhausted(self, source):
        source.collect.side_effect = [Sample(float(i), ConnectionIndex()) for i in range(3)] + [None]
        sampler = Sampler(source, SamplerConfig(interval=0.001))

        sampler.run()

        assert sampler.collections == 3
        assert sampler.finished

    def test_run_stops_on_event(self, sampler):
        stop = threading.Event()
        sampler.add_consumer(lambda sample: stop.set())

        sampler.run(stop)

        assert sampler.collections == 1
