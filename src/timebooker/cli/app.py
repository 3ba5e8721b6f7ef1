"""Unified CLI entry point for timebooker.

Config precedence: settings.default.toml -> settings.local.toml -> env vars (TIMEBOOKER_* with double underscores) -> CLI flags.
"""

from __future__ import annotations

import typer

from timebooker.cli.book import book_app
from timebooker.cli.settings_cmd import settings_app

try:
    from importlib.metadata import version

    VERSION = version("timebooker")
except Exception:
    VERSION = "unknown"

APP_HELP = (
    "timebooker — books recurring time entries in a rexx time-management portal. "
    "Config precedence: settings.default.toml -> settings.local.toml -> env vars (TIMEBOOKER_* with __) -> CLI flags."
)

app = typer.Typer(add_completion=True, help=APP_HELP)

app.add_typer(book_app, name="book")
app.add_typer(settings_app, name="settings")


@app.command("job")
def job() -> None:
    """Run one unattended booking batch configured from TIMEBOOKER_JOB__* env vars."""
    from timebooker.worker.jobs import main

    exit_code = main()
    if exit_code != 0:
        raise typer.Exit(code=exit_code)


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context, version: bool = typer.Option(False, "--version", help="Show version and exit.")) -> None:
    """Show help when no subcommand is provided."""
    if version:
        typer.echo(f"timebooker {VERSION}")
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


if __name__ == "__main__":
    app()
