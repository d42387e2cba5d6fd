#!/usr/bin/env python3
"""
Tests for the configuration and the command line entry point
"""

import pytest
from unittest.mock import patch, MagicMock
from hostscope.__main__ import build_sampler, main, parse_arguments
from hostscope.config import MonitorConfig
from hostscope.errors import AmbiguousTarget, ConfigError
from hostscope.session import Recorder
from hostscope.socket_tracker import SocketTracker
from hostscope.sources import LiveSource, ReplaySource


class TestConfig:
    """Test suite for MonitorConfig"""

    def test_defaults(self):
        config = MonitorConfig().validate()

        assert config.procfs == "/proc"
        assert config.interval == 0.5
        assert config.skip_missing_tables
        assert not config.recording and not config.replaying

    @pytest.mark.parametrize("kwargs", [
        {"period_ms": 0},
        {"record_file": "a.hs", "replay_file": "b.hs"},
        {"pid": 1, "search": "sshd"},
        {"pid": -3},
        {"replay_pacing": "fast"},
        {"replay_speed": 0},
        {"on_error": "retry"},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ConfigError):
            MonitorConfig(**kwargs).validate()

    def test_from_args(self):
        args = parse_arguments(["--pid", "12", "--period", "250", "--procfs", "/host/proc",
                                "--record", "s.hs", "--strict-tables", "--on-error", "skip"])
        config = MonitorConfig.from_args(args)

        assert config.pid == 12
        assert config.interval == 0.25
        assert config.procfs == "/host/proc"
        assert config.record_file == "s.hs"
        assert not config.skip_missing_tables
        assert config.on_error == "skip"

    def test_environment_defaults(self, monkeypatch):
        monkeypatch.setenv("HOSTSCOPE_PROCFS", "/mnt/proc")
        monkeypatch.setenv("HOSTSCOPE_PERIOD", "1000")
        args = parse_arguments([])

        assert args.procfs == "/mnt/proc"
        assert args.period == 1000


class TestMain:
    """Test suite for the entry point"""

    @patch('hostscope.__main__.ProcessProbe')
    @patch('hostscope.__main__.resolve_target', return_value=42)
    def test_build_live_sampler(self, mock_resolve, mock_probe, tmp_path):
        config = MonitorConfig(record_file=str(tmp_path / "s.hs"))
        sampler, source = build_sampler(config, SocketTracker())

        assert isinstance(source, LiveSource)
        assert isinstance(source.recorder, Recorder)
        mock_probe.assert_called_once_with(42, "/proc")
        source.close()

    def test_build_replay_sampler(self, tmp_path):
        path = str(tmp_path / "s.hs")
        Recorder.create(path).close()
        tracker = SocketTracker()

        sampler, source = build_sampler(MonitorConfig(replay_file=path), tracker)

        assert isinstance(source, ReplaySource)
        assert not sampler.force_refresh()
        assert sampler.finished

    @patch('hostscope.__main__.run_dashboard')
    @patch('hostscope.__main__.resolve_target')
    def test_ambiguous_search(self, mock_resolve, mock_run_dashboard, capsys):
        mock_resolve.side_effect = AmbiguousTarget("nginx", [(4321, "nginx", "worker"), (1200, "nginx", "master")])

        assert main(["--search", "nginx"]) == 0

        output = capsys.readouterr().out
        assert output.index("[1200]") < output.index("[4321]")
        mock_run_dashboard.assert_not_called()

    @patch('hostscope.__main__.run_dashboard')
    def test_missing_replay_file(self, mock_run_dashboard, tmp_path):
        assert main(["--replay", str(tmp_path / "missing.hs")]) == 1
        mock_run_dashboard.assert_not_called()

    def test_invalid_arguments(self):
        assert main(["--record", "a.hs", "--replay", "b.hs"]) == 2

    @patch('hostscope.__main__.run_dashboard')
    def test_replay_runs_dashboard(self, mock_run_dashboard, tmp_path):
        path = str(tmp_path / "s.hs")
        Recorder.create(path).close()

        assert main(["--replay", path, "--rich-only"]) == 0

        sampler, tracker = mock_run_dashboard.call_args.args
        assert mock_run_dashboard.call_args.kwargs == {"rich_only": True}
        assert isinstance(tracker, SocketTracker)
