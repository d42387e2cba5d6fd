#!/usr/bin/env python3
"""
Socket Tables Module

Parses the kernel socket tables exposed under <procfs>/net:
- tcp, tcp6, udp, udp6 (packed hex addresses and ports)
- unix (socket type, state and optional path)
- netlink (multicast groups mask)

Every table line becomes a ConnectionRecord keyed by its kernel inode.
"""

import os
import stat
import logging
import ipaddress
from enum import Enum
from dataclasses import dataclass, asdict
from typing import Dict, List, Callable, Any

from hostscope.errors import MalformedLine, TableUnavailable

logger = logging.getLogger("hostscope.socket_tables")


class Protocol(Enum):
    """Supported socket table families, in scan order"""
    TCP = "tcp"
    TCP6 = "tcp6"
    UDP = "udp"
    UDP6 = "udp6"
    UNIX = "unix"
    NETLINK = "netlink"

    @property
    def is_ip(self) -> bool:
        return self in (Protocol.TCP, Protocol.TCP6, Protocol.UDP, Protocol.UDP6)

    @property
    def has_state(self) -> bool:
        return self in (Protocol.TCP, Protocol.TCP6, Protocol.UNIX)

    def decode(self, filename: str, line: str) -> "ConnectionRecord":
        """Decode one table line with this family's decoder"""
        return DECODERS[self](filename, line, self)


PROTOCOLS = list(Protocol)

# include/net/tcp_states.h
TCP_ESTABLISHED = 1
TCP_SYN_SENT = 2
TCP_SYN_RECV = 3
TCP_FIN_WAIT1 = 4
TCP_FIN_WAIT2 = 5
TCP_TIME_WAIT = 6
TCP_CLOSE = 7
TCP_CLOSE_WAIT = 8
TCP_LAST_ACK = 9
TCP_LISTEN = 10
TCP_CLOSING = 11

SOCKET_STATES = {
    TCP_ESTABLISHED: "ESTABLISHED",
    TCP_SYN_SENT: "SYN_SENT",
    TCP_SYN_RECV: "SYN_RECV",
    TCP_FIN_WAIT1: "FIN_WAIT1",
    TCP_FIN_WAIT2: "FIN_WAIT2",
    TCP_TIME_WAIT: "TIME_WAIT",
    TCP_CLOSE: "CLOSE",
    TCP_CLOSE_WAIT: "CLOSE_WAIT",
    TCP_LAST_ACK: "LAST_ACK",
    TCP_LISTEN: "LISTEN",
    TCP_CLOSING: "CLOSING",
}

SOCKET_TYPES = {
    1: "SOCK_STREAM",
    2: "SOCK_DGRAM",
    5: "SOCK_SEQPACKET",
}

# Minimum number of whitespace separated columns per family
IP_MIN_FIELDS = 10
UNIX_MIN_FIELDS = 7
NETLINK_MIN_FIELDS = 10


@dataclass(frozen=True)
class ConnectionRecord:
    """One decoded line of a kernel socket table"""
    protocol: Protocol
    inode: int
    type: int = 0
    type_label: str = ""
    state: int = 0
    state_label: str = ""
    src_ip: str = ""
    src_port: int = 0
    dst_ip: str = ""
    dst_port: int = 0
    uid: int = 0
    path: str = ""
    groups: str = ""

    def describe(self) -> str:
        """Short human readable form of the connection"""
        proto = self.protocol.value
        if self.protocol is Protocol.UNIX:
            # unnamed and abstract sockets have no path
            if not self.path:
                return f"({proto}) {self.type_label} inode={self.inode}"
            return f"({proto}) {self.type_label} path='{self.path}'"
        if self.protocol is Protocol.NETLINK:
            return f"({proto}) groups={self.groups}"
        local = format_endpoint(self.src_ip, self.src_port)
        if self.protocol in (Protocol.UDP, Protocol.UDP6):
            if ipaddress.ip_address(self.dst_ip).is_unspecified:
                return f"({proto}) {local}"
        elif self.state == TCP_LISTEN:
            return f"({proto}) {local}"
        return f"({proto}) {local} <-> {format_endpoint(self.dst_ip, self.dst_port)}"

    def info(self) -> str:
        """State label for IP sockets, file mode for unix sockets bound to a path"""
        if self.protocol is Protocol.UNIX:
            if self.path:
                try:
                    return stat.filemode(os.stat(self.path).st_mode)
                except OSError:
                    pass
            return ""
        return self.state_label

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["protocol"] = self.protocol.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConnectionRecord":
        fields = dict(data)
        fields["protocol"] = Protocol(fields["protocol"])
        return cls(**fields)


def format_endpoint(ip: str, port: int) -> str:
    if ":" in ip:
        return f"[{ip}]:{port}"
    return f"{ip}:{port}"


def _hex(value: str) -> int:
    return int(value, 16)


def decode_address(hex_addr: str) -> str:
    """
    Convert a kernel packed hex address to its textual form

    The kernel prints each 32 bit word in host (little endian) byte order,
    so '0100007F' is 127.0.0.1.

    Args:
        hex_addr: 8 (IPv4) or 32 (IPv6) hex digits

    Returns:
        Dotted or colon separated address
    """
    if len(hex_addr) not in (8, 32):
        raise ValueError(f"bad address length {len(hex_addr)}")
    raw = bytes.fromhex(hex_addr)
    packed = b"".join(raw[i:i + 4][::-1] for i in range(0, len(raw), 4))
    return str(ipaddress.ip_address(packed))


def encode_address(ip: str) -> str:
    """Inverse of decode_address"""
    packed = ipaddress.ip_address(ip).packed
    raw = b"".join(packed[i:i + 4][::-1] for i in range(0, len(packed), 4))
    return raw.hex().upper()


def decode_endpoint(value: str):
    """Split an 'ADDR:PORT' column into (address, port)"""
    addr, sep, port = value.partition(":")
    if not sep:
        raise ValueError(f"missing port in {value!r}")
    return decode_address(addr), _hex(port)


def encode_endpoint(ip: str, port: int) -> str:
    """Inverse of decode_endpoint: '127.0.0.1', 5037 -> '0100007F:13AD'"""
    return f"{encode_address(ip)}:{port:04X}"


# /proc/net/tcp:
# sl  local_address rem_address   st tx_queue rx_queue tr tm->when retrnsmt   uid  timeout inode
# 0:  0100007F:13AD 00000000:0000 0A 00000000:00000000 00:00000000 00000000  1000        0 18083222
def decode_ip(filename: str, line: str, protocol: Protocol) -> ConnectionRecord:
    fields = line.split()
    if len(fields) < IP_MIN_FIELDS:
        raise MalformedLine(filename, protocol.value, line, f"got {len(fields)} fields")

    try:
        src_ip, src_port = decode_endpoint(fields[1])
        dst_ip, dst_port = decode_endpoint(fields[2])
        # datagram sockets carry a kernel state that has no meaning here
        state = _hex(fields[3]) if protocol.has_state else 0
        uid = int(fields[7])
        inode = int(fields[9])
    except ValueError as e:
        raise MalformedLine(filename, protocol.value, line, str(e)) from e

    return ConnectionRecord(
        protocol=protocol,
        inode=inode,
        state=state,
        state_label=SOCKET_STATES.get(state, ""),
        src_ip=src_ip,
        src_port=src_port,
        dst_ip=dst_ip,
        dst_port=dst_port,
        uid=uid,
    )


# /proc/net/unix
# Num       RefCount Protocol Flags    Type St Inode Path
# 0000000000000000: 00000002 00000000 00010000 0001 01 28271 /run/user/1000/gnupg/S.dirmngr
def decode_unix(filename: str, line: str, protocol: Protocol) -> ConnectionRecord:
    fields = line.split()
    if len(fields) < UNIX_MIN_FIELDS:
        raise MalformedLine(filename, protocol.value, line, f"got {len(fields)} fields")

    try:
        sock_type = _hex(fields[4])
        state = _hex(fields[5])
        inode = int(fields[6])
    except ValueError as e:
        raise MalformedLine(filename, protocol.value, line, str(e)) from e

    # Only the first word of a path containing spaces survives the split
    path = fields[7] if len(fields) > 7 else ""

    return ConnectionRecord(
        protocol=protocol,
        inode=inode,
        type=sock_type,
        type_label=SOCKET_TYPES.get(sock_type, ""),
        state=state,
        state_label=SOCKET_STATES.get(state, ""),
        path=path,
    )


# /proc/net/netlink
# sk               Eth Pid        Groups   Rmem     Wmem     Dump     Locks     Drops     Inode
# 0000000000000000 0   2192944774 00000011 0        0        0        2         0         4842849
def decode_netlink(filename: str, line: str, protocol: Protocol) -> ConnectionRecord:
    fields = line.split()
    if len(fields) < NETLINK_MIN_FIELDS:
        raise MalformedLine(filename, protocol.value, line, f"got {len(fields)} fields")

    try:
        inode = int(fields[9])
    except ValueError as e:
        raise MalformedLine(filename, protocol.value, line, str(e)) from e

    return ConnectionRecord(protocol=protocol, inode=inode, groups=fields[3])


DECODERS: Dict[Protocol, Callable[[str, str, Protocol], ConnectionRecord]] = {
    Protocol.TCP: decode_ip,
    Protocol.TCP6: decode_ip,
    Protocol.UDP: decode_ip,
    Protocol.UDP6: decode_ip,
    Protocol.UNIX: decode_unix,
    Protocol.NETLINK: decode_netlink,
}


class TableScanner:
    """Read and decode the socket tables found under a procfs root"""

    def __init__(self, procfs_root: str = "/proc"):
        """
        Initialize the scanner

        Args:
            procfs_root: Root of the proc filesystem, tables are read from <root>/net
        """
        self.procfs_root = procfs_root

    def table_path(self, protocol: Protocol) -> str:
        return os.path.join(self.procfs_root, "net", protocol.value)

    def available(self, protocol: Protocol) -> bool:
        """Check if the running kernel exposes the table for a family"""
        return os.access(self.table_path(protocol), os.R_OK)

    def scan(self, protocol: Protocol) -> List[ConnectionRecord]:
        """
        Decode every entry of a family's table

        The header line is skipped unchecked. A single malformed line aborts
        the whole scan.

        Args:
            protocol: Family to scan

        Returns:
            Records in table order

        Raises:
            TableUnavailable: the table file cannot be opened or read
            MalformedLine: a line could not be decoded
        """
        filename = self.table_path(protocol)
        entries = []
        try:
            # unix paths are raw bytes, abstract names are often not utf-8
            with open(filename, "r", encoding="utf-8", errors="backslashreplace") as f:
                for lineno, raw in enumerate(f):
                    # skip column names
                    if lineno == 0:
                        continue
                    line = raw.strip()
                    if not line:
                        continue
                    entries.append(protocol.decode(filename, line))
        except OSError as e:
            raise TableUnavailable(filename, e.strerror or str(e)) from e

        logger.debug(f"{filename}: {len(entries)} entries")
        return entries
