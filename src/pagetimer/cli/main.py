"""CLI entry point for pagetimer.

Uses Click to expose the ``pagetimer`` command group: inspect or clear the
persisted countdown, or drive a headless page through a navigation script.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Callable, Sequence, TypeVar

import click

import pagetimer
from pagetimer.app import build_countdown, launch
from pagetimer.cli.terminal import TerminalDisabler, TerminalDisplay
from pagetimer.config import DEFAULT_CONFIG_DIR, Settings, load_settings
from pagetimer.core.display import format_remaining
from pagetimer.core.errors import PageTimerError
from pagetimer.core.page import READY_LOADING, Page
from pagetimer.core.scheduler import AsyncioScheduler
from pagetimer.log import configure_logging

T = TypeVar("T")


def _run(action: Callable[[], T]) -> T:
    """Execute *action*, converting expected failures to a CLI error.

    On ``ValueError`` (bad settings) or ``PageTimerError`` the message is
    printed to stderr and the process exits with code 1.
    """
    try:
        return action()
    except (ValueError, PageTimerError) as exc:
        click.echo(str(exc), err=True)
        sys.exit(1)


def _settings(ctx: click.Context) -> Settings:
    return _run(lambda: load_settings(ctx.obj["config_dir"], ctx.obj["overrides"]))


@click.group()
@click.version_option(version=pagetimer.__version__, prog_name="pagetimer")
@click.option(
    "--config-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=DEFAULT_CONFIG_DIR,
    show_default=True,
    help="Directory holding config.yaml and the persisted timer record.",
)
@click.option("--duration", type=click.IntRange(min=1), default=None, help="Countdown length in seconds.")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
)
@click.option("--log-json", is_flag=True, help="Emit log events as JSON lines.")
@click.pass_context
def cli(
    ctx: click.Context,
    config_dir: Path,
    duration: int | None,
    log_level: str,
    log_json: bool,
) -> None:
    """pagetimer: a navigation-aware countdown that survives reloads."""
    configure_logging(level=log_level, format_json=log_json)
    ctx.ensure_object(dict)
    ctx.obj["config_dir"] = config_dir
    ctx.obj["overrides"] = {"duration_ms": duration * 1000 if duration is not None else None}


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the persisted countdown's status."""
    record = build_countdown(_settings(ctx), scheduler=None).peek()
    if record is None:
        click.echo("No active timer")
        sys.exit(1)
    if record.is_expired:
        click.echo("Timer expired")
        sys.exit(1)
    click.echo(f"{format_remaining(record.remaining_time)} remaining")


@cli.command()
@click.pass_context
def clear(ctx: click.Context) -> None:
    """Remove the persisted countdown."""
    build_countdown(_settings(ctx), scheduler=None).clear_stored()
    click.echo("Timer cleared")


@cli.command()
@click.argument("urls", nargs=-1, required=True)
@click.option(
    "--dwell",
    type=click.FloatRange(min=0),
    default=5.0,
    show_default=True,
    help="Seconds to stay on each URL.",
)
@click.pass_context
def run(ctx: click.Context, urls: tuple[str, ...], dwell: float) -> None:
    """Load the first of URLS in a headless page, then navigate to the rest."""
    settings = _settings(ctx)
    final_state = _run(lambda: asyncio.run(_drive(settings, urls, dwell)))
    click.echo(f"Final state: {final_state}")


async def _drive(settings: Settings, urls: Sequence[str], dwell: float) -> str:
    scheduler = AsyncioScheduler()
    page = Page(urls[0], ready_state=READY_LOADING)
    bootstrap = launch(page, scheduler, settings, TerminalDisplay(), TerminalDisabler())
    page.finish_loading()

    for url in urls[1:]:
        await asyncio.sleep(dwell)
        page.history.push_state(url)
    await asyncio.sleep(dwell)

    coordinator = bootstrap.coordinator
    if coordinator is None:
        raise PageTimerError(f"coordinator could not be started after {bootstrap.attempts} attempts")
    state = coordinator.state.value
    coordinator.close()
    return state
