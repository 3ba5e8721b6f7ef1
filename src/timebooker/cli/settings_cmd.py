"""CLI commands for inspecting and validating timebooker settings."""

from __future__ import annotations

import json

import typer
from rich.console import Console

settings_app = typer.Typer(help="Inspect and validate timebooker configuration.")
console = Console()


@settings_app.command("show")
def show_settings() -> None:
    """Display the currently resolved settings (password masked)."""
    from timebooker.settings import get_settings

    settings = get_settings()
    data = settings.model_dump(mode="json")
    if settings.portal.password.get_secret_value():
        data["portal"]["password"] = "********"
    else:
        data["portal"]["password"] = ""
    console.print_json(json.dumps(data, indent=2, default=str))


@settings_app.command("validate")
def validate_settings() -> None:
    """Validate settings and report any issues."""
    from timebooker.booking.categories import CategoryAliasSet
    from timebooker.settings import get_settings

    try:
        settings = get_settings()
        aliases = CategoryAliasSet.from_settings(settings.categories)
        console.print("[green]✓[/green] Settings are valid.")
        console.print(f"  Environment: {settings.env}")
        console.print(f"  Portal: {settings.portal.base_url}")
        console.print(f"  Categories: {', '.join(aliases.categories)}")
        console.print(f"  Watchdog: {settings.policy.watchdog_timeout_s:.0f}s per item")
        if not settings.portal.username:
            console.print("[yellow]⚠[/yellow] No portal username configured (TIMEBOOKER_PORTAL__USERNAME).")
    except Exception as e:
        console.print(f"[red]✗[/red] Settings validation failed: {e}")
        raise typer.Exit(code=1)
