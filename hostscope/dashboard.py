#!/usr/bin/env python3
"""
HostScope Dashboard

Terminal UI fed by the sampler:
- Textual application with pause / force refresh key bindings
- Rich live view as a lighter alternative
"""

import asyncio
import logging

from rich.console import Console
from rich.live import Live
from textual.app import App, ComposeResult
from textual.widgets import Header, Footer, Static

from hostscope.scheduler import Sampler
from hostscope.socket_tracker import SocketTracker

logger = logging.getLogger("hostscope.dashboard")


class SocketPanel(Static):
    """Panel showing the sockets of the current sample"""

    def __init__(self, tracker: SocketTracker):
        super().__init__("Loading...", id="socket-panel")
        self.tracker = tracker

    def update_content(self) -> None:
        self.update(self.tracker.get_panel(title=self._title()))

    def _title(self) -> str:
        sample = self.tracker.sample
        if sample is not None and "process" in sample.extras:
            return "PROCESS SOCKETS"
        return "HOST SOCKETS"


class HostScopeApp(App):
    """HostScope Textual App"""

    CSS = """
    Screen {
        background: #121212;
    }

    #socket-panel {
        height: 100%;
        border: heavy $primary-darken-2;
        background: $surface-darken-1;
        overflow: auto;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("space", "toggle_pause", "Pause"),
        ("p", "toggle_pause", "Pause"),
        ("f", "force_refresh", "Refresh"),
    ]

    def __init__(self, sampler: Sampler, tracker: SocketTracker, title: str = "HostScope"):
        """
        Initialize the app

        Args:
            sampler: Sampler driving the data source
            tracker: Renderer registered as a sampler consumer
            title: Window title
        """
        super().__init__()
        self.sampler = sampler
        self.tracker = tracker
        self.title = title

    def compose(self) -> ComposeResult:
        yield Header()
        self.socket_panel = SocketPanel(self.tracker)
        yield self.socket_panel
        yield Footer()

    async def on_mount(self) -> None:
        """Set up regular sampling after app is mounted"""
        self.socket_panel.update_content()
        self.set_interval(self.sampler.config.interval, self.on_tick)

    async def on_tick(self) -> None:
        # file reads are blocking, keep them off the event loop
        await asyncio.to_thread(self.sampler.tick)
        self._redraw()

    def _redraw(self) -> None:
        state = "paused" if self.sampler.paused else "running"
        if self.sampler.finished:
            state = "end of session"
        elif self.sampler.stopped:
            state = "stopped"
        self.sub_title = state
        self.socket_panel.update_content()

    def action_toggle_pause(self) -> None:
        self.sampler.toggle_pause()
        self._redraw()

    async def action_force_refresh(self) -> None:
        await asyncio.to_thread(self.sampler.force_refresh)
        self._redraw()


class RichDashboard:
    """Rich-based dashboard as an alternative to Textual"""

    def __init__(self, sampler: Sampler, tracker: SocketTracker):
        self.console = Console(highlight=False)
        self.sampler = sampler
        self.tracker = tracker

    async def run(self) -> None:
        """Run the dashboard until the source is exhausted or fails"""
        interval = self.sampler.config.interval
        with Live(self.tracker.get_panel(), console=self.console,
                  refresh_per_second=max(1, int(1 / interval)), screen=True) as live:
            while self.sampler.active:
                await asyncio.to_thread(self.sampler.tick)
                live.update(self.tracker.get_panel())
                await asyncio.sleep(interval)
        if self.sampler.last_error is not None:
            self.console.print(f"[bold red]Sampling stopped: {self.sampler.last_error}[/bold red]")


def main(sampler: Sampler, tracker: SocketTracker, rich_only: bool = False) -> None:
    """
    Run the dashboard

    Args:
        sampler: Sampler with the tracker registered as consumer
        tracker: Socket renderer
        rich_only: Use the Rich live view instead of the Textual app
    """
    if rich_only:
        asyncio.run(RichDashboard(sampler, tracker).run())
    else:
        HostScopeApp(sampler, tracker).run()
