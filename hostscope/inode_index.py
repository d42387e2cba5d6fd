#!/usr/bin/env python3
"""
Inode Index Module

Folds the records of every socket table into a single mapping keyed by
kernel inode, so per-process file descriptors (socket:[inode]) can be
resolved to connections.
"""

import logging
from collections import Counter
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Any

from hostscope.socket_tables import ConnectionRecord, Protocol, PROTOCOLS, TableScanner

logger = logging.getLogger("hostscope.inode_index")


class ConnectionIndex:
    """Mapping from inode to ConnectionRecord for one snapshot"""

    def __init__(self, records: Optional[Iterable[ConnectionRecord]] = None):
        self._by_inode: Dict[int, ConnectionRecord] = {}
        for record in records or []:
            self.add(record)

    def add(self, record: ConnectionRecord) -> None:
        # A later family overwrites an earlier one on inode collision. This
        # only happens when sockets churn between two table reads.
        self._by_inode[record.inode] = record

    def lookup(self, inode: int) -> Tuple[Optional[ConnectionRecord], bool]:
        """
        Find the connection owning an inode

        Returns:
            Tuple of (record, found)
        """
        record = self._by_inode.get(inode)
        return record, record is not None

    def records(self) -> List[ConnectionRecord]:
        return list(self._by_inode.values())

    def by_protocol(self) -> Dict[Protocol, int]:
        """Number of records per protocol family"""
        return dict(Counter(r.protocol for r in self._by_inode.values()))

    def __contains__(self, inode: int) -> bool:
        return inode in self._by_inode

    def __len__(self) -> int:
        return len(self._by_inode)

    def __iter__(self) -> Iterator[int]:
        return iter(self._by_inode)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ConnectionIndex):
            return NotImplemented
        return self._by_inode == other._by_inode

    def __repr__(self) -> str:
        return f"ConnectionIndex({len(self)} records)"

    def to_dict(self) -> Dict[str, Any]:
        return {"records": [r.to_dict() for r in self._by_inode.values()]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConnectionIndex":
        return cls(ConnectionRecord.from_dict(r) for r in data["records"])


def build_index(scanner: TableScanner, protocols: Iterable[Protocol] = PROTOCOLS) -> ConnectionIndex:
    """
    Scan every family and index the records by inode

    Families are folded in the given order. The first scan error is
    propagated and no partial index is returned.

    Args:
        scanner: Scanner bound to a procfs root
        protocols: Families to scan, in order

    Returns:
        A fully populated ConnectionIndex
    """
    index = ConnectionIndex()
    for protocol in protocols:
        for entry in scanner.scan(protocol):
            index.add(entry)
    return index


class InodeIndexBuilder:
    """Build a fresh ConnectionIndex over a fixed list of families"""

    def __init__(self, scanner: TableScanner, protocols: Iterable[Protocol] = PROTOCOLS):
        self.scanner = scanner
        self.protocols = list(protocols)

    def build(self) -> ConnectionIndex:
        index = build_index(self.scanner, self.protocols)
        if logger.isEnabledFor(logging.DEBUG):
            counts = index.by_protocol()
            logger.debug(
                "index built: " + ", ".join(f"{p.value}={counts.get(p, 0)}" for p in self.protocols)
            )
        return index
