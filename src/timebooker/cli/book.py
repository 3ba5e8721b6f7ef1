"""CLI commands for booking time entries."""

from __future__ import annotations

import asyncio
import json
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from timebooker.models.booking import BatchSummary, ItemResult, ItemStatus

book_app = typer.Typer(help="Book time entries in the portal.")
console = Console()

_STATUS_STYLE = {
    ItemStatus.BOOKED: "green",
    ItemStatus.ALREADY_BOOKED: "cyan",
    ItemStatus.DRY_RUN: "yellow",
    ItemStatus.FAILED: "red",
}


def _clock(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    from timebooker.settings.config import parse_clock

    try:
        return parse_clock(value)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from None


@book_app.command("run")
def book_run(
    start: Optional[str] = typer.Option(None, "--start", "-s", help="Start time HH:MM (default: booking.start_time)."),
    end: Optional[str] = typer.Option(None, "--end", "-e", help="End time HH:MM (default: booking.end_time)."),
    mode: Optional[str] = typer.Option(
        None, "--mode", "-m", help="Category for weekdays without a schedule entry, e.g. Remote or Office."
    ),
    balance: Optional[str] = typer.Option(None, "--balance", "-b", help="Balance marking a day as open (default: -8:00)."),
    debug: bool = typer.Option(False, "--debug", help="Headed browser, slow motion, discard instead of save."),
    slowmo: Optional[int] = typer.Option(None, "--slowmo", min=0, help="Slow-motion delay per action in ms."),
    save: bool = typer.Option(False, "--save", help="Save bookings even in --debug mode."),
    json_output: bool = typer.Option(False, "--json", "-j", help="Print the batch summary as JSON."),
) -> None:
    """Book every day whose balance matches, one day at a time."""
    from timebooker.booking.runner import run_booking
    from timebooker.exceptions import TimebookerError
    from timebooker.settings import get_settings
    from timebooker.worker.jobs import configure_logging

    configure_logging("DEBUG" if debug else None)
    settings = get_settings()
    start_time, end_time = _clock(start), _clock(end)
    dry_run = False if save else None

    if not json_output:
        console.print(
            Panel(
                f"[bold]Portal:[/bold] {settings.portal.base_url}\n"
                f"[bold]Times:[/bold] {start_time or settings.booking.start_time}"
                f"-{end_time or settings.booking.end_time}",
                title="timebooker",
                border_style="blue",
            )
        )

    def report(result: ItemResult) -> None:
        if json_output:
            return
        style = _STATUS_STYLE[result.status]
        console.print(f"  [{style}]{result.status.value:<14}[/{style}] {result.item_id}  {result.category}")

    try:
        summary = asyncio.run(
            run_booking(
                settings,
                debug=debug,
                start_time=start_time,
                end_time=end_time,
                category=mode,
                balance=balance,
                dry_run=dry_run,
                slow_mo_ms=slowmo,
                on_result=report,
            )
        )
    except TimebookerError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(code=2) from None

    if json_output:
        console.print_json(summary.model_dump_json())
    else:
        _print_summary(summary)

    if summary.failed:
        raise typer.Exit(code=1)


def _print_summary(summary: BatchSummary) -> None:
    if not summary.total:
        console.print("[green]✓[/green] Nothing to book.")
        return

    table = Table(title="Bookings")
    table.add_column("Day", style="cyan")
    table.add_column("Category")
    table.add_column("Status")
    table.add_column("Attempts", justify="right")
    table.add_column("Stage", style="dim")
    table.add_column("Error", max_width=60)

    for result in summary.results:
        style = _STATUS_STYLE[result.status]
        table.add_row(
            result.item_id,
            result.selected_text or result.category,
            f"[{style}]{result.status.value}[/{style}]",
            str(result.attempts),
            result.stage.value if result.stage else "",
            result.error,
        )

    console.print(table)
    console.print(f"\n[bold]Batch complete:[/bold] {summary.succeeded} succeeded, {summary.failed} failed")


@book_app.command("schedule")
def book_schedule(
    days: list[str] = typer.Argument(..., help="Days as YYYY-MM-DD."),
    mode: Optional[str] = typer.Option(None, "--mode", "-m", help="Category for weekdays without a schedule entry."),
) -> None:
    """Show which category each day would be booked with."""
    from timebooker.booking.categories import CategoryAliasSet
    from timebooker.booking.schedule import WeekdayCategoryResolver, weekday_of
    from timebooker.exceptions import ConfigurationError
    from timebooker.settings import get_settings

    settings = get_settings()
    rows = []
    try:
        aliases = CategoryAliasSet.from_settings(settings.categories)
        default_category = aliases.canonical(mode) if mode else None
        resolver = WeekdayCategoryResolver.from_settings(settings.booking, default_category)
        for day in days:
            rows.append({"day": day, "weekday": weekday_of(day), "category": resolver.resolve(day)})
    except ConfigurationError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1) from None

    console.print_json(json.dumps(rows))
