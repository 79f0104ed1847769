"""SleepTracker CLI - record nights and rate how you slept."""

import logging
from datetime import datetime
from typing import Annotated, Optional

import anyio
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from sleeptracker import __version__
from sleeptracker.formatting import format_duration, format_timestamp, quality_label
from sleeptracker.tracker.controller import SleepTrackerController
from sleeptracker.tracker.errors import StorageError
from sleeptracker.tracker.quality import SleepQualityController
from sleeptracker.tracker.store import SqliteSleepStore

app = typer.Typer(
    name="sleeptracker",
    help="Track your sleep and rate its quality.",
    no_args_is_help=True,
)
mcp_app = typer.Typer(help="MCP server management.")

app.add_typer(mcp_app, name="mcp")

console = Console()


def _short_time(millis: int) -> str:
    return datetime.fromtimestamp(millis / 1000).strftime("%Y-%m-%d %H:%M")


def version_callback(value: bool) -> None:
    if value:
        console.print(f"sleeptracker {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option("--version", "-v", callback=version_callback, is_eager=True),
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", help="Log store and state activity")] = False,
) -> None:
    """SleepTracker - track your sleep and rate its quality."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        )


def _run(fn, *args):
    """Run an async command body against the default store."""
    store = SqliteSleepStore()
    try:
        return anyio.run(fn, store, *args)
    except StorageError as exc:
        console.print(f"[red]Storage error:[/red] {exc}")
        raise typer.Exit(1)
    finally:
        store.close()


async def _tracker_state(store):
    async with SleepTrackerController(store) as tracker:
        await tracker.initialized.wait()
        return tracker.tonight.value, tracker.nights.value


# ── Tracking commands ────────────────────────────────────────────


@app.command("start")
def start() -> None:
    """Start tracking a night of sleep."""

    async def body(store):
        async with SleepTrackerController(store) as tracker:
            await tracker.initialized.wait()
            if not tracker.start_enabled.value:
                return None
            return await tracker.start().wait()

    night = _run(body)
    if night is None:
        console.print("[yellow]A night is already in progress.[/yellow]")
        console.print("Stop it first: sleeptracker stop")
        raise typer.Exit(1)
    console.print(f"[green]Started night {night.night_id}[/green] at {format_timestamp(night.start_time_milli)}")


@app.command("stop")
def stop() -> None:
    """Stop the night in progress."""

    async def body(store):
        async with SleepTrackerController(store) as tracker:
            await tracker.initialized.wait()
            night = await tracker.stop().wait()
            # The CLI has nowhere to navigate; it prints the rating hint instead
            tracker.acknowledge_navigation_event()
            return night

    night = _run(body)
    if night is None:
        console.print("[yellow]No night in progress.[/yellow]")
        raise typer.Exit(1)
    console.print(f"[green]Stopped night {night.night_id}[/green] after {format_duration(night.duration_milli)}")
    console.print(f"[dim]Rate it: sleeptracker rate {night.night_id} <0-5>[/dim]")


@app.command("rate")
def rate(
    night_id: Annotated[int, typer.Argument(help="Night to rate")],
    quality: Annotated[int, typer.Argument(help="0 (very bad) to 5 (excellent)")],
) -> None:
    """Rate the quality of a finished night."""

    async def body(store):
        return await SleepQualityController(store, night_id).set_sleep_quality(quality)

    try:
        night = _run(body)
    except ValueError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1)
    console.print(f"[green]Rated night {night.night_id}:[/green] {quality_label(night.sleep_quality)}")


@app.command("status")
def status() -> None:
    """Show whether a night is in progress."""
    tonight, nights = _run(_tracker_state)
    if tonight is None:
        console.print("[dim]No night in progress.[/dim]")
    else:
        console.print(f"[green]Night {tonight.night_id} in progress[/green] since {format_timestamp(tonight.start_time_milli)}")
    console.print(f"Recorded nights: {len(nights)}")


@app.command("history")
def history(
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum nights to show")] = 20,
) -> None:
    """List recorded nights, newest first."""
    _, nights = _run(_tracker_state)
    if not nights:
        console.print("[dim]No nights recorded yet. Start one with:[/dim]")
        console.print("  sleeptracker start")
        return

    table = Table(title="Sleep History")
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("Start", style="green")
    table.add_column("End")
    table.add_column("Duration", justify="right")
    table.add_column("Quality")

    for night in nights[:limit]:
        if night.in_progress:
            table.add_row(str(night.night_id), _short_time(night.start_time_milli), "[yellow]in progress[/yellow]", "", "")
            continue
        table.add_row(
            str(night.night_id),
            _short_time(night.start_time_milli),
            _short_time(night.end_time_milli),
            format_duration(night.duration_milli),
            quality_label(night.sleep_quality),
        )

    console.print(table)


@app.command("clear")
def clear(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """Delete every recorded night."""
    if not yes:
        typer.confirm("Delete all recorded nights?", abort=True)

    async def body(store):
        async with SleepTrackerController(store) as tracker:
            await tracker.initialized.wait()
            await tracker.clear().wait()

    _run(body)
    console.print("[green]Cleared sleep history.[/green]")


# ── MCP commands ─────────────────────────────────────────────────


@mcp_app.command("serve")
def mcp_serve() -> None:
    """Start the MCP server (stdio transport)."""
    from sleeptracker.mcp.server import mcp

    mcp.run()
