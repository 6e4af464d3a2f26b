"""CLI entrypoint for gator."""

import logging
from collections.abc import Callable
from pathlib import Path

import rich_click as click

from gator import __version__
from gator.config import ConfigError, Settings
from gator.controllers import (
    AddFeedCommand,
    AggregateCommand,
    BrowseCommand,
    CommandError,
    FeedUrlCommand,
    GatorCliController,
    StoreCommand,
    UserCommand,
)
from gator.storage.errors import StoreError

click.rich_click.USE_MARKDOWN = True
CONTROLLER = GatorCliController()
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

db_path_option = click.option(
    "--db-path",
    type=click.Path(path_type=Path),
    default=None,
    help="SQLite DB path.",
)


@click.group()
@click.version_option(version=__version__, prog_name="gator")
def gator() -> None:
    """Personal RSS feed aggregator."""


@gator.command("register")
@db_path_option
@click.argument("name")
def register(db_path: Path | None, name: str) -> None:
    """Create a user and log in as it."""

    _run(lambda: CONTROLLER.register(UserCommand(db_path=db_path, name=name)))


@gator.command("login")
@db_path_option
@click.argument("name")
def login(db_path: Path | None, name: str) -> None:
    """Switch the current user."""

    _run(lambda: CONTROLLER.login(UserCommand(db_path=db_path, name=name)))


@gator.command("users")
@db_path_option
def users(db_path: Path | None) -> None:
    """List registered users."""

    _run(lambda: CONTROLLER.users(StoreCommand(db_path=db_path)))


@gator.command("reset")
@db_path_option
@click.confirmation_option(prompt="Delete all users, feeds and posts?")
def reset(db_path: Path | None) -> None:
    """Delete every user together with their feeds, follows and posts."""

    _run(lambda: CONTROLLER.reset(StoreCommand(db_path=db_path)))


@gator.command("addfeed")
@db_path_option
@click.argument("name")
@click.argument("url")
def add_feed(db_path: Path | None, name: str, url: str) -> None:
    """Add a feed and follow it as the current user."""

    _run(lambda: CONTROLLER.add_feed(AddFeedCommand(db_path=db_path, name=name, url=url)))


@gator.command("feeds")
@db_path_option
def feeds(db_path: Path | None) -> None:
    """List all feeds with the user who added them."""

    _run(lambda: CONTROLLER.feeds(StoreCommand(db_path=db_path)))


@gator.command("follow")
@db_path_option
@click.argument("url")
def follow(db_path: Path | None, url: str) -> None:
    """Follow an existing feed by URL."""

    _run(lambda: CONTROLLER.follow(FeedUrlCommand(db_path=db_path, url=url)))


@gator.command("following")
@db_path_option
def following(db_path: Path | None) -> None:
    """List feeds the current user follows."""

    _run(lambda: CONTROLLER.following(StoreCommand(db_path=db_path)))


@gator.command("unfollow")
@db_path_option
@click.argument("url")
def unfollow(db_path: Path | None, url: str) -> None:
    """Stop following a feed by URL."""

    _run(lambda: CONTROLLER.unfollow(FeedUrlCommand(db_path=db_path, url=url)))


@gator.command("browse")
@db_path_option
@click.argument("limit", type=click.IntRange(min=1), default=2, required=False)
def browse(db_path: Path | None, limit: int) -> None:
    """Show the newest posts from followed feeds."""

    _run(lambda: CONTROLLER.browse(BrowseCommand(db_path=db_path, limit=limit)))


@gator.command("agg")
@db_path_option
@click.argument("interval", required=False)
@click.option(
    "--max-cycles",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after this many cycles instead of running until interrupted.",
)
def aggregate(db_path: Path | None, interval: str | None, max_cycles: int | None) -> None:
    """Poll the most stale feed every INTERVAL (e.g. `30s`, `1m`, `1h`).

    Falls back to `GATOR_POLL_INTERVAL` when INTERVAL is omitted.
    """

    try:
        _run(lambda: _aggregate(db_path=db_path, interval=interval, max_cycles=max_cycles))
    except KeyboardInterrupt:
        click.echo("Aggregation stopped.")


def _aggregate(*, db_path: Path | None, interval: str | None, max_cycles: int | None) -> list[str]:
    _configure_logging(Settings.from_env(db_path=db_path).log_level)
    return CONTROLLER.aggregate(
        AggregateCommand(db_path=db_path, interval=interval, max_cycles=max_cycles),
    )


def _run(action: Callable[[], list[str]]) -> None:
    try:
        lines = action()
    except ConfigError as error:
        raise click.UsageError(str(error)) from error
    except (CommandError, StoreError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    gator()
