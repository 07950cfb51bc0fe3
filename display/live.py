"""Live fetch panels for the terminal dashboard.

While a refresh runs, the aggregator puts one FetchEvent into a queue as each
service's fetch starts and settles. LiveDisplay reads that queue and redraws
a panel per service plus a progress footer. The aggregator never waits on
the display; with no queue attached it behaves exactly the same.

Usage:
    event_queue = asyncio.Queue()
    display = LiveDisplay(runtime.services)

    with display.make_live() as live:
        refresh = asyncio.create_task(runtime.refresh(event_queue=event_queue))
        consumer = asyncio.create_task(display.consume(event_queue, live))
        snapshot = await refresh
        await event_queue.put(None)  # sentinel: consume() returns
        await consumer
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum

from rich.columns import Columns
from rich.console import Group
from rich.live import Live
from rich.panel import Panel
from rich.text import Text

from schemas.events import EventType, FetchEvent

MAX_MESSAGES = 3
PANELS_PER_ROW = 2


class FetchState(str, Enum):
    WAITING = "waiting"
    FETCHING = "fetching"
    COMPLETE = "complete"
    ERROR = "error"


# state → (icon markup, panel border style)
_LOOK = {
    FetchState.WAITING: ("[dim]○[/dim]", "dim"),
    FetchState.FETCHING: ("[bold yellow]●[/bold yellow]", "yellow"),
    FetchState.COMPLETE: ("[bold green]✓[/bold green]", "green"),
    FetchState.ERROR: ("[bold red]✗[/bold red]", "red"),
}

_TRANSITIONS = {
    EventType.STARTED: (FetchState.FETCHING, ""),
    EventType.COMPLETE: (FetchState.COMPLETE, "✓ "),
    EventType.ERROR: (FetchState.ERROR, "✗ "),
}


@dataclass
class _Panel:
    service_name: str
    state: FetchState = FetchState.WAITING
    elapsed_ms: float = 0.0
    messages: list[str] = field(default_factory=list)


class LiveDisplay:
    """Per-service fetch progress, fed by the aggregator's event queue.

    Attributes:
        _panels: Service name → _Panel, in configured service order.
    """

    def __init__(self, service_names: list[str]) -> None:
        self._panels = {name: _Panel(service_name=name) for name in service_names}

    def make_live(self) -> Live:
        """Return a Rich Live context manager showing the current panels."""
        return Live(self.render(), refresh_per_second=12, transient=False)

    async def consume(self, queue: asyncio.Queue, live: Live | None = None) -> None:
        """Apply queued events until the None sentinel arrives.

        Args:
            queue: The queue passed to DashboardRuntime.refresh().
            live: Active Live context to redraw after each event. None only
                tracks state.
        """
        while True:
            event = await queue.get()
            if event is None:
                return
            self.apply(event)
            if live is not None:
                live.update(self.render())

    def status_of(self, service_name: str) -> FetchState:
        return self._panels[service_name].state

    def apply(self, event: FetchEvent) -> None:
        """Advance one service's panel. Events for unknown services are dropped."""
        panel = self._panels.get(event.service_name)
        if panel is None:
            return

        panel.state, prefix = _TRANSITIONS[event.event_type]
        panel.elapsed_ms = event.timestamp_ms
        panel.messages = [*panel.messages, f"{prefix}{event.message}"][-MAX_MESSAGES:]

    def render(self) -> Group:
        """Panels in rows of PANELS_PER_ROW, then a settled/total footer."""
        panels = [self._render_panel(p) for p in self._panels.values()]
        rows = [
            Columns(panels[i : i + PANELS_PER_ROW], equal=True)
            for i in range(0, len(panels), PANELS_PER_ROW)
        ]
        settled = sum(
            p.state in (FetchState.COMPLETE, FetchState.ERROR) for p in self._panels.values()
        )
        footer = Text(f"{settled}/{len(self._panels)} services settled", style="dim")
        return Group(*rows, footer)

    @staticmethod
    def _render_panel(panel: _Panel) -> Panel:
        icon, border = _LOOK[panel.state]
        body = [Text.from_markup(f"[dim][{panel.elapsed_ms / 1000:.2f}s][/dim]  {icon}")]
        # Messages carry exception text, so they are never parsed as markup.
        body.extend(Text(f"  {msg}", style="dim") for msg in panel.messages)
        return Panel(
            Group(*body),
            title=f"[bold]{panel.service_name}[/bold]",
            border_style=border,
            width=42,
        )
