"""Rich renderables for the terminal dashboard.

Pure builders: each takes core output (DashboardSnapshot, ChangeRecord,
InsightDocument) and returns something Console.print() can draw. Nothing here
talks to the backend.
"""

from rich.console import Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from schemas.change import ChangeRecord, ChangeStatus
from schemas.health import DashboardSnapshot
from schemas.insight import (
    Bullet,
    ImpactLine,
    InsightDocument,
    InsightField,
    MainHeader,
    PlainLine,
    SectionHeader,
    SubBullet,
)

STATUS_COLORS = {
    ChangeStatus.ACTIVE: "red",
    ChangeStatus.ACKNOWLEDGED: "yellow",
    ChangeStatus.RESOLVED: "green",
    ChangeStatus.IGNORED: "bright_black",
}

FIELD_TITLES = {
    InsightField.SUGGESTION: "Migration suggestion",
    InsightField.IMPACT: "Predicted impact",
    InsightField.EXPLANATION: "In plain English",
}


def health_table(snapshot: DashboardSnapshot) -> Table:
    """Services table: online badge and baseline state per service."""
    table = Table(
        title=f"Services  {snapshot.online_count}/{snapshot.total_count} online",
        border_style="bright_black",
    )
    table.add_column("Service", style="bold", min_width=22)
    table.add_column("Status", width=9, justify="center")
    table.add_column("Baseline", min_width=28)

    for name, health in snapshot.services.items():
        online = "[green]Online[/green]" if health.online else "[red]Offline[/red]"
        if health.has_baseline:
            version = f"v{health.baseline_version} " if health.baseline_version else ""
            when = f"set {health.baseline_set_at:%Y-%m-%d %H:%M}" if health.baseline_set_at else "set"
            baseline = f"{version}{when}"
        else:
            baseline = "[dim]none[/dim]"
        table.add_row(name, online, baseline)

    return table


def feed_table(snapshot: DashboardSnapshot) -> Table:
    """Recent breaking changes table, newest first."""
    title = "Recent Breaking Changes"
    if snapshot.status_filter != "ALL":
        title += f" ({snapshot.status_filter})"

    table = Table(title=title, show_lines=True, border_style="bright_black")
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Type", min_width=16)
    table.add_column("Status", width=12, justify="center")
    table.add_column("Service", min_width=18)
    table.add_column("Detected", width=16)
    table.add_column("Description", min_width=30)

    for record in snapshot.feed:
        color = STATUS_COLORS.get(record.status, "white")
        description = Text(record.description)
        description.append(f"\nPath: {record.path}", style="dim")
        if record.has_insights:
            description.append("\n✨ Insights available", style="magenta")
        table.add_row(
            record.id,
            record.change_type.replace("_", " "),
            f"[{color}]{record.status.value}[/{color}]",
            record.service_name,
            f"{record.detected_at:%Y-%m-%d %H:%M}",
            description,
        )

    return table


def audit_lines(record: ChangeRecord) -> Text | None:
    """One line per closing/acknowledging audit block, or None if there is none."""
    text = Text()
    if record.acknowledged_by:
        text.append(f"Acknowledged by {record.acknowledged_by}\n", style="yellow")
    if record.status is ChangeStatus.RESOLVED and record.resolved_by:
        when = f" on {record.resolved_at:%Y-%m-%d}" if record.resolved_at else ""
        text.append(f"✅ Resolved by {record.resolved_by}{when}\n", style="green")
        if record.resolution_notes:
            text.append(f"   {record.resolution_notes}\n", style="dim")
    if record.status is ChangeStatus.IGNORED and record.ignored_by:
        text.append(f"Ignored by {record.ignored_by}: {record.ignored_reason or ''}\n", style="dim")
    return text if text.plain else None


def insight_panel(document: InsightDocument) -> Panel:
    """Render one parsed insight field block by block."""
    lines: list[Text] = []
    for block in document.blocks:
        if isinstance(block, MainHeader):
            lines.append(Text(f"{block.index}. {block.title}", style="bold cyan"))
        elif isinstance(block, SectionHeader):
            lines.append(Text(block.title, style="bold magenta"))
        elif isinstance(block, SubBullet):
            line = Text("    ◦ ")
            line.append(f"{block.label}: ", style="bold")
            line.append(block.text)
            lines.append(line)
        elif isinstance(block, Bullet):
            lines.append(Text(f"  • {block.text}"))
        elif isinstance(block, ImpactLine):
            line = Text(f"  {block.rank}. ")
            line.append(block.service_name, style="bold")
            line.append(f"  {block.confidence_percent}%  ", style=_confidence_style(block.confidence_percent))
            line.append(block.description, style="dim")
            lines.append(line)
        elif isinstance(block, PlainLine):
            prefix = f"{block.index}. " if block.index is not None else ""
            lines.append(Text(prefix + block.text))

    title = FIELD_TITLES.get(document.field, "Insight") if document.field else "Insight"
    return Panel(Group(*lines), title=f"[bold]{title}[/bold]", border_style="magenta")


def _confidence_style(percent: int) -> str:
    if percent >= 70:
        return "red"
    if percent >= 40:
        return "yellow"
    return "green"
