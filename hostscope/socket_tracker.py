#!/usr/bin/env python3
"""
Socket Tracker Module

Displays the sockets of the monitored process:
- Protocol, endpoints or path, state for every open socket
- Inode and owner uid from the kernel tables
- Summary of the whole host snapshot
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from rich.console import Group
from rich.table import Table
from rich.panel import Panel
from rich.text import Text
from rich import box
from rich.markup import escape

from hostscope.session import Sample
from hostscope.socket_tables import ConnectionRecord, Protocol, format_endpoint

# Connection status colors
STATUS_COLORS = {
    'ESTABLISHED': 'green',
    'LISTEN': 'yellow',
    'TIME_WAIT': 'cyan',
    'CLOSE_WAIT': 'magenta',
    'FIN_WAIT1': 'red',
    'FIN_WAIT2': 'red',
    'CLOSING': 'red',
    'LAST_ACK': 'red',
    'SYN_SENT': 'blue',
    'SYN_RECV': 'blue',
    'CLOSE': 'white',
}

MAX_ROWS = 50


class SocketTracker:
    """Render the sockets of a sample"""

    def __init__(self, max_rows: int = MAX_ROWS):
        """
        Initialize the socket tracker

        Args:
            max_rows: Maximum number of sockets listed in the table
        """
        self.max_rows = max_rows
        self.sample: Optional[Sample] = None
        self.error: Optional[Exception] = None

    def on_sample(self, sample: Sample) -> None:
        """Sampler consumer"""
        self.sample = sample
        self.error = None

    def on_error(self, error: Exception) -> None:
        self.error = error

    @property
    def process(self) -> Dict[str, Any]:
        if self.sample is None:
            return {}
        return self.sample.extras.get("process") or {}

    def connections(self) -> List[ConnectionRecord]:
        """
        Sockets to display

        Returns:
            The sockets owned by the monitored process if the sample carries
            process data, otherwise every socket of the snapshot
        """
        if self.sample is None:
            return []
        index = self.sample.index
        if "socket_inodes" not in self.process:
            return index.records()

        records = []
        for inode in self.process["socket_inodes"]:
            record, found = index.lookup(inode)
            if found:
                records.append(record)
        return records

    def get_table(self) -> Table:
        """
        Generate a rich table with socket information

        Returns:
            Rich Table object with connection data
        """
        table = Table(
            box=box.SIMPLE,
            title="",
            show_header=True,
            header_style="bold green",
            show_edge=False,
            padding=(0, 1),
        )

        table.add_column("Proto", style="cyan", width=7)
        table.add_column("Local Address", width=30)
        table.add_column("Remote Address", width=30)
        table.add_column("State", width=12)
        table.add_column("Inode", justify="right", width=10)
        table.add_column("UID", justify="right", width=6)

        if self.error is not None:
            table.caption = f"[bold red]{escape(str(self.error))}[/bold red]"
        elif self.sample is None:
            table.caption = "[yellow]Waiting for data...[/yellow]"

        connections = self.connections()
        if self.sample is not None and not connections:
            table.add_row("N/A", "N/A", "N/A", "No sockets", "N/A", "N/A")
            return table

        connections = sorted(connections, key=lambda c: (list(Protocol).index(c.protocol), c.inode))
        for conn in connections[:self.max_rows]:
            table.add_row(*self._row(conn))

        if len(connections) > self.max_rows:
            table.caption = f"{len(connections) - self.max_rows} more sockets not shown"
        return table

    def _row(self, conn: ConnectionRecord) -> List[str]:
        if conn.protocol is Protocol.UNIX:
            local = conn.path or "(unnamed)"
            remote = conn.type_label
            status = conn.info()
        elif conn.protocol is Protocol.NETLINK:
            local = f"groups={conn.groups}"
            remote = ""
            status = ""
        else:
            local = format_endpoint(conn.src_ip, conn.src_port)
            remote = format_endpoint(conn.dst_ip, conn.dst_port)
            status = conn.state_label

        # paths and labels come from the kernel, never parse them as markup
        local, remote = escape(local), escape(remote)
        if status in STATUS_COLORS:
            color = STATUS_COLORS[status]
            status = f"[{color}]{status}[/{color}]"
        else:
            status = escape(status)

        uid = str(conn.uid) if conn.protocol.is_ip else ""
        return [conn.protocol.value, local, remote, status, str(conn.inode), uid]

    def get_summary(self) -> Text:
        """
        Generate a summary of the snapshot

        Returns:
            Rich Text object with socket counts
        """
        summary = Text()
        if self.sample is None:
            summary.append("No sample yet", "yellow")
            return summary

        counts = self.sample.index.by_protocol()
        tcp = counts.get(Protocol.TCP, 0) + counts.get(Protocol.TCP6, 0)
        udp = counts.get(Protocol.UDP, 0) + counts.get(Protocol.UDP6, 0)
        records = self.sample.index.records()
        established = sum(1 for r in records if r.protocol.is_ip and r.state_label == 'ESTABLISHED')
        listening = sum(1 for r in records if r.protocol.is_ip and r.state_label == 'LISTEN')

        summary.append("Sockets: ")
        summary.append(f"{len(self.sample.index)} total ", "bold white")
        summary.append(f"({tcp} TCP, {udp} UDP, {counts.get(Protocol.UNIX, 0)} unix, "
                       f"{counts.get(Protocol.NETLINK, 0)} netlink) ", "cyan")
        summary.append(f"{established} established, ", "green")
        summary.append(f"{listening} listening", "yellow")
        summary.append(f"  @ {datetime.fromtimestamp(self.sample.timestamp).strftime('%H:%M:%S')}", "dim")
        return summary

    def get_process_text(self) -> Text:
        """One line description of the monitored process"""
        proc = self.process
        text = Text()
        if not proc:
            return text
        text.append(f"[{proc.get('pid')}] ", "bold cyan")
        text.append(f"{proc.get('name', '?')} ", "bold white")
        if proc.get("gone"):
            text.append("(exited)", "red")
            return text
        if all(key in proc for key in ("cpu_percent", "memory_rss", "num_threads")):
            text.append(f"cpu {proc['cpu_percent']:.1f}% ", "green")
            text.append(f"rss {proc['memory_rss'] / (1024 * 1024):.1f} MB ", "magenta")
            text.append(f"threads {proc['num_threads']} ", "blue")
        text.append(f"sockets {len(proc.get('socket_inodes', []))}", "yellow")
        if proc.get("access_denied"):
            text.append("  (access denied, run as root)", "yellow")
        return text

    def get_panel(self, title: str = "SOCKETS") -> Panel:
        """
        Return a panel with socket information

        Returns:
            Rich Panel with summary and table of connections
        """
        return Panel(
            Group(self.get_process_text(), self.get_summary(), Text(""), self.get_table()),
            title=f"[bold]{title}[/bold]",
            border_style="blue",
            box=box.ROUNDED,
        )
