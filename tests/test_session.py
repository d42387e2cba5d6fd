#!/usr/bin/env python3
"""
Tests for the Session module
"""

import gzip
import json
import pytest
from unittest.mock import MagicMock
from hostscope.errors import SessionError
from hostscope.inode_index import ConnectionIndex
from hostscope.session import Player, Recorder, Sample
from hostscope.socket_tables import ConnectionRecord, Protocol


def make_sample(timestamp, *inodes):
    records = [
        ConnectionRecord(Protocol.TCP, inode, state=1, state_label="ESTABLISHED",
                         src_ip="127.0.0.1", src_port=5037, dst_ip="10.0.0.1", dst_port=443, uid=1000)
        for inode in inodes
    ]
    records.append(ConnectionRecord(Protocol.UNIX, 9000 + timestamp, type=1, type_label="SOCK_STREAM",
                                    path="/run/a.sock"))
    records.append(ConnectionRecord(Protocol.NETLINK, 9500 + timestamp, groups="00000011"))
    return Sample(float(timestamp), ConnectionIndex(records), {"process": {"pid": 42, "socket_inodes": list(inodes)}})


@pytest.fixture
def session_file(tmp_path):
    """Fixture for a closed session holding three samples"""
    path = tmp_path / "session.hs"
    with Recorder.create(str(path)) as recorder:
        recorder.append(make_sample(100, 1, 2))
        recorder.append(make_sample(101, 2, 3))
        recorder.append(make_sample(103, 4))
    return path


class TestRecorder:
    """Test suite for Recorder"""

    def test_count(self, tmp_path):
        recorder = Recorder.create(str(tmp_path / "s.hs"))
        recorder.append(make_sample(1, 1))
        recorder.append(2.0, ConnectionIndex(), {})
        recorder.close()

        assert recorder.count == 2
        assert recorder.closed

    def test_timestamps_must_increase(self, tmp_path):
        recorder = Recorder.create(str(tmp_path / "s.hs"))
        recorder.append(make_sample(5, 1))

        with pytest.raises(SessionError):
            recorder.append(make_sample(5, 2))
        with pytest.raises(SessionError):
            recorder.append(make_sample(4, 2))

        recorder.close()
        assert len(Player.open(str(tmp_path / "s.hs"))) == 1

    def test_append_after_close(self, tmp_path):
        recorder = Recorder.create(str(tmp_path / "s.hs"))
        recorder.close()
        recorder.close()

        with pytest.raises(SessionError):
            recorder.append(make_sample(1, 1))

    def test_write_failure_ends_recording(self, tmp_path):
        fileobj = MagicMock()
        fileobj.write.side_effect = OSError("No space left on device")
        recorder = Recorder(str(tmp_path / "s.hs"), fileobj)

        with pytest.raises(SessionError):
            recorder.append(make_sample(1, 1))

        assert recorder.closed
        fileobj.close.assert_called_once()
        with pytest.raises(SessionError):
            recorder.append(make_sample(2, 1))

    def test_create_in_missing_directory(self, tmp_path):
        with pytest.raises(SessionError):
            Recorder.create(str(tmp_path / "missing" / "s.hs"))


class TestPlayer:
    """Test suite for Player"""

    def test_replays_in_order_then_done(self, session_file):
        player = Player.open(str(session_file))

        timestamps = []
        for _ in range(3):
            sample, done = player.next()
            assert not done
            timestamps.append(sample.timestamp)

        assert timestamps == [100.0, 101.0, 103.0]
        assert player.next() == (None, True)
        assert player.next() == (None, True)

    def test_replayed_samples_equal_recorded(self, tmp_path):
        recorded = [make_sample(t, t, t + 1000) for t in range(10, 20)]
        path = str(tmp_path / "s.hs")
        with Recorder.create(path) as recorder:
            for sample in recorded:
                recorder.append(sample)

        replayed = list(Player.open(path))

        assert len(replayed) == len(recorded)
        for original, copy in zip(recorded, replayed):
            assert copy.timestamp == original.timestamp
            assert copy.index == original.index
            assert copy.index.records() == original.index.records()
            assert copy.extras == original.extras

    def test_replay_is_repeatable(self, session_file):
        first = [s.index for s in Player.open(str(session_file)).play(sleep=lambda d: None)]
        second = [s.index for s in Player.open(str(session_file)).play(sleep=lambda d: None)]
        assert first == second

    def test_rewind(self, session_file):
        player = Player.open(str(session_file))
        list(player.play())
        player.rewind()

        sample, done = player.next()
        assert sample.timestamp == 100.0
        assert not done

    def test_empty_session(self, tmp_path):
        path = str(tmp_path / "s.hs")
        Recorder.create(path).close()

        player = Player.open(path)
        assert len(player) == 0
        assert player.next() == (None, True)

    def test_missing_file(self, tmp_path):
        with pytest.raises(SessionError):
            Player.open(str(tmp_path / "nope.hs"))

    def test_truncated_gzip_stream(self, session_file):
        data = session_file.read_bytes()
        session_file.write_bytes(data[:len(data) // 2])

        with pytest.raises(SessionError):
            Player.open(str(session_file))

    def test_not_gzip(self, tmp_path):
        path = tmp_path / "s.hs"
        path.write_text("hello\n")

        with pytest.raises(SessionError):
            Player.open(str(path))

    def test_unfinished_recording(self, tmp_path):
        """A recorder that was never closed has no footer"""
        path = tmp_path / "s.hs"
        with gzip.open(path, "wt") as f:
            f.write(json.dumps({"format": "hostscope-session", "version": 1, "created": 0}) + "\n")
            f.write(json.dumps(make_sample(1, 1).to_dict()) + "\n")

        with pytest.raises(SessionError):
            Player.open(str(path))

    def test_footer_count_mismatch(self, tmp_path):
        path = tmp_path / "s.hs"
        with gzip.open(path, "wt") as f:
            f.write(json.dumps({"format": "hostscope-session", "version": 1, "created": 0}) + "\n")
            f.write(json.dumps(make_sample(1, 1).to_dict()) + "\n")
            f.write(json.dumps({"end": True, "count": 2}) + "\n")

        with pytest.raises(SessionError):
            Player.open(str(path))

    def test_wrong_format(self, tmp_path):
        path = tmp_path / "s.hs"
        with gzip.open(path, "wt") as f:
            f.write(json.dumps({"format": "something-else", "version": 1}) + "\n")
            f.write(json.dumps({"end": True, "count": 0}) + "\n")

        with pytest.raises(SessionError):
            Player.open(str(path))

    def test_corrupt_entry(self, tmp_path):
        path = tmp_path / "s.hs"
        with gzip.open(path, "wt") as f:
            f.write(json.dumps({"format": "hostscope-session", "version": 1, "created": 0}) + "\n")
            f.write(json.dumps({"timestamp": 1, "index": {"records": [{"protocol": "sctp", "inode": 1}]}}) + "\n")
            f.write(json.dumps({"end": True, "count": 1}) + "\n")

        with pytest.raises(SessionError):
            Player.open(str(path))


class TestPacing:
    """Test suite for replay pacing"""

    def test_no_pacing(self, session_file):
        sleep = MagicMock()
        player = Player.open(str(session_file))

        assert len(list(player.play(sleep=sleep))) == 3
        sleep.assert_not_called()

    def test_original_pacing(self, session_file):
        sleep = MagicMock()
        player = Player.open(str(session_file), pacing="original")

        list(player.play(sleep=sleep))

        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]

    def test_original_pacing_with_speed(self, session_file):
        player = Player.open(str(session_file), pacing="original", speed=2.0)

        assert [player.delay_before(i) for i in range(4)] == [0.0, 0.5, 1.0, 0.0]
