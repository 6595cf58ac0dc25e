"""Command-line interface for one-off filler lookups."""

from __future__ import annotations

import asyncio
import logging
import sys

import click

from .common.types import ShowQuery
from .config import Settings
from .service import FillerService


async def _lookup(
    settings: Settings, query: ShowQuery
) -> tuple[int | None, frozenset[int] | None]:
    async with FillerService.from_settings(settings) as service:
        session = service.session(query.titles, query.year)
        fillers = await session.wait()
        return session.identifier, fillers


@click.command()
@click.argument("title")
@click.option(
    "--alt-title",
    "alt_titles",
    multiple=True,
    help="Alternate title to match against search candidates (repeatable)",
)
@click.option("--year", type=int, default=None, help="First-air year of the show")
@click.option(
    "--episode",
    type=int,
    default=None,
    help="Report the status of a single episode instead of the full list",
)
@click.option(
    "--request-interval",
    envvar="FILLER_REQUEST_INTERVAL",
    show_envvar=True,
    type=click.FloatRange(min=0.0),
    default=0.35,
    show_default=True,
    help="Minimum spacing in seconds between episode-listing requests",
)
@click.option(
    "--max-attempts",
    envvar="FILLER_MAX_ATTEMPTS",
    show_envvar=True,
    type=click.IntRange(min=1),
    default=5,
    show_default=True,
    help="Attempts per episode page before giving up",
)
@click.option(
    "--log-level",
    envvar="LOG_LEVEL",
    show_envvar=True,
    type=click.Choice(
        ["critical", "error", "warning", "info", "debug", "notset"],
        case_sensitive=False,
    ),
    default="warning",
    show_default=True,
    help="Logging level for console output",
)
def main(
    title: str,
    alt_titles: tuple[str, ...],
    year: int | None,
    episode: int | None,
    request_interval: float,
    max_attempts: int,
    log_level: str,
) -> None:
    """Look up the filler episodes of TITLE."""

    logging.basicConfig(level=getattr(logging, log_level.upper(), logging.INFO))

    settings = Settings(
        FILLER_REQUEST_INTERVAL=request_interval,
        FILLER_MAX_ATTEMPTS=max_attempts,
    )
    query = ShowQuery.from_titles(title, *alt_titles, year=year)
    mal_id, fillers = asyncio.run(_lookup(settings, query))

    if mal_id is None:
        click.echo(f"Could not resolve {query.primary_title!r}", err=True)
        sys.exit(1)
    if fillers is None:
        click.echo(f"Failed to fetch episodes for MAL ID {mal_id}", err=True)
        sys.exit(1)

    click.echo(f"MAL ID: {mal_id}")
    if episode is not None:
        label = "filler" if episode in fillers else "not filler"
        click.echo(f"Episode {episode}: {label}")
        return
    if fillers:
        click.echo("Filler episodes: " + ", ".join(str(n) for n in sorted(fillers)))
    else:
        click.echo("Filler episodes: none")


if __name__ == "__main__":
    main()
