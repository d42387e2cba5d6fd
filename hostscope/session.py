#!/usr/bin/env python3
"""
Session Recording Module

Records timestamped samples to a gzip compressed JSON lines file and
replays them in the same order.

File layout, one JSON document per line:
- header:  {"format": "hostscope-session", "version": 1, "created": ...}
- entries: {"timestamp": ..., "index": {...}, "extras": {...}}
- footer:  {"end": true, "count": N}

A file without footer (recording interrupted) or with a damaged gzip
stream is rejected on open.
"""

import gzip
import json
import time
import zlib
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from hostscope.errors import SessionError
from hostscope.inode_index import ConnectionIndex

logger = logging.getLogger("hostscope.session")

SESSION_FORMAT = "hostscope-session"
SESSION_VERSION = 1


@dataclass
class Sample:
    """One collection cycle: the connection index plus opaque sibling data"""
    timestamp: float
    index: ConnectionIndex
    extras: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp, "index": self.index.to_dict(), "extras": self.extras}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Sample":
        return cls(
            timestamp=float(data["timestamp"]),
            index=ConnectionIndex.from_dict(data["index"]),
            extras=data.get("extras") or {},
        )


class Recorder:
    """Append samples to a session file"""

    def __init__(self, path: str, fileobj):
        self.path = path
        self._file = fileobj
        self._last_timestamp: Optional[float] = None
        self.count = 0
        self.closed = False

    @classmethod
    def create(cls, path: str) -> "Recorder":
        """Create (or truncate) a session file and write its header"""
        try:
            fileobj = gzip.open(path, "wt", encoding="utf-8")
        except OSError as e:
            raise SessionError(f"cannot create session file {path}: {e}") from e
        recorder = cls(path, fileobj)
        recorder._write({"format": SESSION_FORMAT, "version": SESSION_VERSION, "created": time.time()})
        logger.info(f"Recording session to {path}")
        return recorder

    def _write(self, document: Dict[str, Any]) -> None:
        try:
            self._file.write(json.dumps(document, separators=(",", ":")) + "\n")
        except (OSError, TypeError, ValueError) as e:
            # a recording with a hole in it is worse than no recording
            self.closed = True
            self._file.close()
            raise SessionError(f"cannot write to session file {self.path}: {e}") from e

    def append(self, sample, index: Optional[ConnectionIndex] = None,
               extras: Optional[Dict[str, Any]] = None) -> None:
        """
        Append one entry

        Accepts either a Sample or (timestamp, index, extras).

        Raises:
            SessionError: recorder closed, timestamp not increasing or write failure
        """
        if not isinstance(sample, Sample):
            sample = Sample(float(sample), index, extras or {})
        if self.closed:
            raise SessionError(f"session {self.path} is closed")
        if self._last_timestamp is not None and sample.timestamp <= self._last_timestamp:
            raise SessionError(
                f"timestamp {sample.timestamp} is not after previous entry {self._last_timestamp}"
            )
        self._write(sample.to_dict())
        self._last_timestamp = sample.timestamp
        self.count += 1

    def close(self) -> None:
        """Write the footer and close the file, the session becomes replayable"""
        if self.closed:
            return
        self._write({"end": True, "count": self.count})
        self.closed = True
        try:
            self._file.close()
        except OSError as e:
            raise SessionError(f"cannot finalize session file {self.path}: {e}") from e
        logger.info(f"Recorded {self.count} samples to {self.path}")

    def __enter__(self) -> "Recorder":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class Player:
    """Read-only cursor over a closed session file"""

    def __init__(self, path: str, samples: List[Sample], pacing: str = "none", speed: float = 1.0):
        self.path = path
        self.pacing = pacing
        self.speed = speed
        self._samples = samples
        self._pos = 0

    @classmethod
    def open(cls, path: str, pacing: str = "none", speed: float = 1.0) -> "Player":
        """
        Load and validate a session file

        Args:
            path: Session file written by a Recorder
            pacing: "none" to replay as fast as consumed, "original" to keep
                    the recorded spacing between samples
            speed: Pacing speed factor, 2.0 replays twice as fast

        Raises:
            SessionError: file missing, unreadable, truncated or corrupt
        """
        try:
            with gzip.open(path, "rt", encoding="utf-8") as f:
                lines = f.read().splitlines()
        except (OSError, EOFError, zlib.error, UnicodeDecodeError) as e:
            raise SessionError(f"cannot read session file {path}: {e}") from e

        try:
            documents = [json.loads(line) for line in lines if line]
        except ValueError as e:
            raise SessionError(f"corrupt session file {path}: {e}") from e

        samples = cls._validate(path, documents)
        logger.info(f"Loaded {len(samples)} samples from {path}")
        return cls(path, samples, pacing, speed)

    @staticmethod
    def _validate(path: str, documents: List[Any]) -> List[Sample]:
        if len(documents) < 2:
            raise SessionError(f"session file {path} is truncated")

        header, entries, footer = documents[0], documents[1:-1], documents[-1]
        if not isinstance(header, dict) or header.get("format") != SESSION_FORMAT:
            raise SessionError(f"{path} is not a session file")
        if header.get("version") != SESSION_VERSION:
            raise SessionError(f"unsupported session version {header.get('version')}")
        if not isinstance(footer, dict) or footer.get("end") is not True:
            raise SessionError(f"session file {path} is truncated")
        if footer.get("count") != len(entries):
            raise SessionError(
                f"session file {path} declares {footer.get('count')} entries, found {len(entries)}"
            )

        samples = []
        for entry in entries:
            try:
                sample = Sample.from_dict(entry)
            except (KeyError, TypeError, ValueError) as e:
                raise SessionError(f"corrupt entry in session file {path}: {e}") from e
            if samples and sample.timestamp <= samples[-1].timestamp:
                raise SessionError(f"session file {path} has out of order entries")
            samples.append(sample)
        return samples

    def next(self) -> Tuple[Optional[Sample], bool]:
        """
        Return the next sample in recorded order

        Returns:
            Tuple of (sample, done), sample is None once done
        """
        if self._pos >= len(self._samples):
            return None, True
        sample = self._samples[self._pos]
        self._pos += 1
        return sample, False

    def rewind(self) -> None:
        self._pos = 0

    @property
    def position(self) -> int:
        return self._pos

    def delay_before(self, position: int) -> float:
        """Pacing delay before the sample at a position, derived only from recorded timestamps"""
        if self.pacing != "original" or position <= 0 or position >= len(self._samples):
            return 0.0
        delta = self._samples[position].timestamp - self._samples[position - 1].timestamp
        return delta / self.speed

    def play(self, sleep: Callable[[float], None] = time.sleep) -> Iterator[Sample]:
        """Yield the remaining samples, sleeping between them as configured"""
        while True:
            delay = self.delay_before(self._pos)
            sample, done = self.next()
            if done:
                return
            if delay > 0:
                sleep(delay)
            yield sample

    def __iter__(self) -> Iterator[Sample]:
        return iter(self._samples)

    def __len__(self) -> int:
        return len(self._samples)
