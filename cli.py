"""Contract Monitor dashboard — terminal client.

Runs the same DashboardRuntime as the HTTP API and renders it with Rich:
live per-service fetch panels while the feed loads, then the service health
table, the breaking-change feed and, with --expand, every change's parsed
insights.

Lifecycle and baseline commands ask for confirmation first; the core itself
never prompts.

Usage:
    python cli.py overview --status active --expand
    python cli.py resolve 101 --notes "Clients migrated"
    python cli.py baseline set-latest order-service
"""

import asyncio

import click
from rich.console import Console

from aggregation.aggregator import ChangeAggregator
from backend.base import TransportFailure
from core.runtime import DashboardRuntime
from core.settings import Settings, make_backend
from display.live import LiveDisplay
from display.render import audit_lines, feed_table, health_table, insight_panel
from lifecycle.controller import DEFAULT_IGNORE_REASON, DEFAULT_RESOLUTION_NOTES, InvalidTransition
from schemas.change import ChangeStatus
from schemas.health import DashboardSnapshot

console = Console()

_STATUS_CHOICES = ["ALL"] + [s.value for s in ChangeStatus]


def _build_runtime() -> DashboardRuntime:
    settings = Settings.from_env()
    return DashboardRuntime(
        make_backend(settings),
        settings.services,
        aggregator=ChangeAggregator(
            per_service_limit=settings.per_service_limit,
            window=settings.feed_window,
            timeout_seconds=settings.timeout_seconds,
        ),
        actor=settings.actor,
    )


def _runtime(ctx: click.Context) -> DashboardRuntime:
    return ctx.obj["runtime"]


# ── Rendering ─────────────────────────────────────────────────────────────────

async def _refresh(runtime: DashboardRuntime, status: str, live: bool) -> DashboardSnapshot:
    """Refresh, showing one live panel per service while fetches settle."""
    if not live:
        return await runtime.refresh(status)

    display = LiveDisplay(runtime.services)
    event_queue: asyncio.Queue = asyncio.Queue()

    with display.make_live() as live_view:
        refresh = asyncio.create_task(runtime.refresh(status, event_queue=event_queue))
        consumer = asyncio.create_task(display.consume(event_queue, live_view))
        try:
            snapshot = await refresh
        finally:
            await event_queue.put(None)   # sentinel: tell consumer to stop
            await consumer

    return snapshot


def _print_snapshot(runtime: DashboardRuntime, snapshot: DashboardSnapshot, expand: bool) -> None:
    console.print()
    console.print(
        f"  breaking changes  [bold]{snapshot.total_breaking_changes}[/bold]    "
        f"services online  [bold]{snapshot.online_count}/{snapshot.total_count}[/bold]"
    )
    console.print(health_table(snapshot))

    if not snapshot.feed:
        console.print("\n[green]No breaking changes found.[/green]")
        return

    console.print(feed_table(snapshot))

    if not expand:
        return

    for record in snapshot.feed:
        documents = runtime.insights(record.id)
        audit = audit_lines(record)
        if not documents and audit is None:
            continue
        console.rule(f"[bold]#{record.id}[/bold]  {record.service_name}  {record.path}")
        if audit is not None:
            console.print(audit)
        for document in documents.values():
            console.print(insight_panel(document))


# ── Commands ──────────────────────────────────────────────────────────────────

@click.group()
@click.pass_context
def main(ctx: click.Context):
    """Breaking-change dashboard for monitored API contracts."""
    ctx.ensure_object(dict)
    if "runtime" not in ctx.obj:
        ctx.obj["runtime"] = _build_runtime()


@main.command("overview")
@click.option(
    "--status",
    type=click.Choice(_STATUS_CHOICES, case_sensitive=False),
    default="ALL",
    show_default=True,
    help="Only show changes with this status.",
)
@click.option("--expand", is_flag=True, help="Show parsed insights and audit info for each change.")
@click.option("--live/--no-live", default=True, show_default=True, help="Show per-service fetch panels.")
@click.pass_context
def overview_cmd(ctx: click.Context, status: str, expand: bool, live: bool):
    """Refresh and show service health plus the recent breaking changes."""
    runtime = _runtime(ctx)

    async def run():
        snapshot = await _refresh(runtime, status, live)
        _print_snapshot(runtime, snapshot, expand)

    asyncio.run(run())


def _transition(ctx: click.Context, change_id: str, verb: str, apply) -> None:
    """Refresh, confirm, apply one lifecycle action, and show the new status.

    Args:
        verb: Word used in the confirmation prompt ("Resolve").
        apply: Coroutine function taking the runtime and returning the
            updated record.
    """
    runtime = _runtime(ctx)

    async def run():
        await runtime.refresh()
        try:
            record = runtime.get_change(change_id)
        except KeyError as exc:
            raise click.BadParameter(str(exc.args[0]), param_hint="CHANGE_ID") from None

        allowed = [a.value for a in runtime.allowed_actions(record.id)]
        if verb.lower() not in allowed:
            raise click.ClickException(
                f"Cannot {verb.lower()} change #{record.id}: it is {record.status.value}."
            )

        if not ctx.params.get("yes"):
            click.confirm(
                f"{verb} {record.change_type} on {record.service_name} {record.path}?",
                abort=True,
            )

        try:
            updated = await apply(runtime, record)
        except InvalidTransition as exc:
            raise click.ClickException(str(exc)) from None
        except TransportFailure as exc:
            raise click.ClickException(f"Backend call failed: {exc}") from None

        console.print(f"[green]✓[/green] #{updated.id} is now [bold]{updated.status.value}[/bold]")
        snapshot = await runtime.refresh()
        _print_snapshot(runtime, snapshot, expand=False)

    asyncio.run(run())


@main.command("acknowledge")
@click.argument("change_id")
@click.option("--actor", default=None, help="Who is acknowledging. Defaults to DASHBOARD_ACTOR.")
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt.")
@click.pass_context
def acknowledge_cmd(ctx: click.Context, change_id: str, actor: str | None, yes: bool):
    """Acknowledge an ACTIVE breaking change."""

    async def apply(runtime, record):
        return await runtime.acknowledge(record.id, actor=actor)

    _transition(ctx, change_id, "Acknowledge", apply)


@main.command("resolve")
@click.argument("change_id")
@click.option("--actor", default=None, help="Who resolved it. Defaults to DASHBOARD_ACTOR.")
@click.option("--notes", default=None, help="Resolution notes. Prompted for when omitted.")
@click.option("--yes", "-y", is_flag=True, help="Skip prompts and use defaults.")
@click.pass_context
def resolve_cmd(ctx: click.Context, change_id: str, actor: str | None, notes: str | None, yes: bool):
    """Resolve a breaking change (ACTIVE or ACKNOWLEDGED)."""

    async def apply(runtime, record):
        resolved_notes = notes
        if resolved_notes is None and not yes:
            resolved_notes = click.prompt("Resolution notes", default=DEFAULT_RESOLUTION_NOTES)
        return await runtime.resolve(record.id, actor=actor, notes=resolved_notes)

    _transition(ctx, change_id, "Resolve", apply)


@main.command("ignore")
@click.argument("change_id")
@click.option("--actor", default=None, help="Who ignored it. Defaults to DASHBOARD_ACTOR.")
@click.option("--reason", default=None, help="Why it is intentional. Prompted for when omitted.")
@click.option("--yes", "-y", is_flag=True, help="Skip prompts and use defaults.")
@click.pass_context
def ignore_cmd(ctx: click.Context, change_id: str, actor: str | None, reason: str | None, yes: bool):
    """Mark a breaking change as intentional (ACTIVE or ACKNOWLEDGED)."""

    async def apply(runtime, record):
        ignore_reason = reason
        if ignore_reason is None and not yes:
            ignore_reason = click.prompt("Reason for ignoring", default=DEFAULT_IGNORE_REASON)
        return await runtime.ignore(record.id, actor=actor, reason=ignore_reason)

    _transition(ctx, change_id, "Ignore", apply)


@main.group("baseline")
def baseline_group():
    """Pin or clear a service's baseline spec."""


@baseline_group.command("set-latest")
@click.argument("service_name")
@click.pass_context
def baseline_set_latest_cmd(ctx: click.Context, service_name: str):
    """Use the service's latest spec as the comparison baseline."""
    runtime = _runtime(ctx)
    try:
        asyncio.run(runtime.set_latest_as_baseline(service_name))
    except TransportFailure as exc:
        raise click.ClickException(f"Backend call failed: {exc}") from None
    console.print(f"[green]✓[/green] Latest spec set as baseline for [bold]{service_name}[/bold]")


@baseline_group.command("clear")
@click.argument("service_name")
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt.")
@click.pass_context
def baseline_clear_cmd(ctx: click.Context, service_name: str, yes: bool):
    """Clear the service's baseline."""
    if not yes:
        click.confirm(f"Clear baseline for {service_name}?", abort=True)
    runtime = _runtime(ctx)
    try:
        asyncio.run(runtime.clear_baseline(service_name))
    except TransportFailure as exc:
        raise click.ClickException(f"Backend call failed: {exc}") from None
    console.print(f"[green]✓[/green] Baseline cleared for [bold]{service_name}[/bold]")


@main.command("analyze")
@click.argument("service_name")
@click.pass_context
def analyze_cmd(ctx: click.Context, service_name: str):
    """Ask the contract monitor to analyse a service now."""
    runtime = _runtime(ctx)
    try:
        result = asyncio.run(runtime.analyze(service_name))
    except TransportFailure as exc:
        raise click.ClickException(f"Backend call failed: {exc}") from None
    console.print(f"[green]✓[/green] {result.get('message', 'Analysis complete')}")


if __name__ == "__main__":
    main()
