"""Main CLI entry point for Review Digest.

This module provides the Typer application. All settings come from the
environment (see reviewdigest.config); the commands take no options.

Usage:
    reviewdigest schedule    # post the digest every day at the configured time
    reviewdigest run-once    # post the digest now
    reviewdigest relay       # start the playground relay bot
"""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.panel import Panel

from reviewdigest.config import ConfigError, DigestConfig, load_config, load_relay_config
from reviewdigest.logging import get_logger, setup_logging
from reviewdigest.pipeline import DigestPipeline
from reviewdigest.relay.bot import run_relay
from reviewdigest.scheduler import DailySchedule, DigestScheduler

app = typer.Typer(
    name="reviewdigest",
    help="Review Digest: daily merge request digests for Slack",
    no_args_is_help=True,
)

console = Console()
logger = get_logger(__name__)


def _load_digest_config() -> DigestConfig:
    try:
        config = load_config()
    except ConfigError as e:
        console.print(f"[red]Error loading configuration:[/red] {e}")
        raise typer.Exit(code=1)
    setup_logging(config.logging)
    return config


@app.command()
def schedule() -> None:
    """Post the digest once a day until interrupted.

    The fire time and UTC offset come from DIGEST_SCHEDULE__* variables
    (11:30 at UTC+6 by default).
    """
    config = _load_digest_config()
    daily = DailySchedule.from_config(config.schedule)

    console.print(
        Panel(
            f"[bold cyan]Review Digest Scheduler[/bold cyan]\n\n"
            f"[bold]Project:[/bold] {config.gitlab.project_id}\n"
            f"[bold]Fires at:[/bold] {daily.hour:02d}:{daily.minute:02d} {daily.tz.tzname(None)}",
            title="Starting Scheduler",
            border_style="cyan",
        )
    )

    async def run_scheduler() -> None:
        scheduler = DigestScheduler(DigestPipeline.from_config(config), daily)
        scheduler.install_signal_handlers()
        await scheduler.run_forever()

    try:
        asyncio.run(run_scheduler())
    except Exception as e:
        logger.error("scheduler_fatal_error", error=str(e), exc_info=True)
        console.print(f"[red]Fatal error:[/red] {e}")
        raise typer.Exit(code=1)

    console.print("[green]Scheduler stopped[/green]")


@app.command("run-once")
def run_once() -> None:
    """Fetch, format and post the digest immediately."""
    config = _load_digest_config()
    pipeline = DigestPipeline.from_config(config)

    result = asyncio.run(pipeline.run_once())

    if result.ok:
        console.print(
            f"[green]Digest posted[/green] ({result.request_count} open merge requests)"
        )
        return

    console.print(f"[red]Digest not posted ({result.status.value}):[/red] {result.error}")
    raise typer.Exit(code=1)


@app.command()
def relay() -> None:
    """Start the chat bot relaying code to the Go playground."""
    try:
        config = load_relay_config()
    except ConfigError as e:
        console.print(f"[red]Error loading configuration:[/red] {e}")
        raise typer.Exit(code=1)
    setup_logging(config.logging)

    console.print(f"[bold cyan]Relay bot running[/bold cyan] [dim](trigger: {config.trigger})[/dim]")
    asyncio.run(run_relay(config))
    console.print("[green]Relay bot stopped[/green]")


if __name__ == "__main__":
    app()
