"""Controllers for gator CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from gator.config import Settings, read_current_user, validate_feed_url, write_current_user
from gator.ingestion.fetcher import FeedFetcher
from gator.ingestion.scheduler import Scheduler
from gator.ingestion.step import IngestionStep
from gator.models import UserRecord
from gator.repository import EntryStore
from gator.storage.errors import DuplicateRecordError, DuplicateURLError

DEFAULT_BROWSE_LIMIT = 2


class CommandError(RuntimeError):
    """User-facing command failure."""


@dataclass(slots=True)
class StoreCommand:
    """CLI inputs for commands that only need the database."""

    db_path: Path | None


@dataclass(slots=True)
class UserCommand:
    """CLI inputs for register and login."""

    db_path: Path | None
    name: str


@dataclass(slots=True)
class AddFeedCommand:
    """CLI inputs for addfeed."""

    db_path: Path | None
    name: str
    url: str


@dataclass(slots=True)
class FeedUrlCommand:
    """CLI inputs for follow and unfollow."""

    db_path: Path | None
    url: str


@dataclass(slots=True)
class BrowseCommand:
    """CLI inputs for browse."""

    db_path: Path | None
    limit: int = DEFAULT_BROWSE_LIMIT


@dataclass(slots=True)
class AggregateCommand:
    """CLI inputs for the aggregation loop."""

    db_path: Path | None
    interval: str | None
    max_cycles: int | None = None


class GatorCliController:
    """Coordinates gator command execution."""

    def register(self, command: UserCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        name = _require_text(command.name, "user name")
        with _store(settings) as store:
            try:
                user = store.create_user(name)
            except DuplicateRecordError as error:
                raise CommandError(f"User '{name}' already exists.") from error
        write_current_user(settings.session_path, user.name)
        return [f"User '{user.name}' registered and logged in (id={user.id})."]

    def login(self, command: UserCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        name = _require_text(command.name, "user name")
        with _store(settings) as store:
            user = store.get_user(name)
        if user is None:
            raise CommandError(f"User '{name}' does not exist.")
        write_current_user(settings.session_path, user.name)
        return [f"Logged in as '{user.name}'."]

    def users(self, command: StoreCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        current = read_current_user(settings.session_path)
        with _store(settings) as store:
            users = store.list_users()
        if not users:
            return ["No users found."]
        return [
            f"* {user.name} (current)" if user.name == current else f"* {user.name}"
            for user in users
        ]

    def reset(self, command: StoreCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _store(settings) as store:
            deleted = store.delete_all_users()
        return [f"Reset complete: users_deleted={deleted}"]

    def add_feed(self, command: AddFeedCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        name = _require_text(command.name, "feed name")
        url = command.url.strip()
        validate_feed_url(url)
        with _store(settings) as store:
            user = _current_user(store, settings)
            try:
                feed = store.create_feed(name=name, url=url, user_id=user.id)
            except DuplicateURLError as error:
                raise CommandError(f"A feed with URL {url} already exists.") from error
            follow = store.create_feed_follow(user_id=user.id, feed_id=feed.id)

        return [
            "Feed created:",
            f"  id={feed.id}",
            f"  name={feed.name}",
            f"  url={feed.url}",
            f"  user_id={feed.user_id}",
            f"  created_at={feed.created_at.isoformat()}",
            f"Now following '{follow.feed_name}' as '{follow.user_name}'.",
        ]

    def feeds(self, command: StoreCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _store(settings) as store:
            listings = store.list_feeds()
        if not listings:
            return ["No feeds found."]

        lines = [f"Feeds: {len(listings)}"]
        for listing in listings:
            fetched = listing.feed.last_fetched_at
            lines.append(
                f"  {listing.feed.name} url={listing.feed.url} "
                f"added_by={listing.user_name} "
                f"last_fetched={fetched.isoformat() if fetched is not None else 'never'}",
            )
        return lines

    def follow(self, command: FeedUrlCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        url = command.url.strip()
        with _store(settings) as store:
            user = _current_user(store, settings)
            feed = store.get_feed_by_url(url)
            if feed is None:
                raise CommandError(f"No feed with URL {url}. Add it with `gator addfeed`.")
            try:
                follow = store.create_feed_follow(user_id=user.id, feed_id=feed.id)
            except DuplicateRecordError as error:
                raise CommandError(f"Already following {url}.") from error
        return [f"Now following '{follow.feed_name}' as '{follow.user_name}'."]

    def following(self, command: StoreCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _store(settings) as store:
            user = _current_user(store, settings)
            follows = store.list_feed_follows_for_user(user.id)
        if not follows:
            return ["You are not following any feeds."]
        return ["Feeds you are following:", *(f"- {follow.feed_name}" for follow in follows)]

    def unfollow(self, command: FeedUrlCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        url = command.url.strip()
        with _store(settings) as store:
            user = _current_user(store, settings)
            removed = store.delete_feed_follow(user_id=user.id, feed_url=url)
        if not removed:
            raise CommandError(f"You are not following {url}.")
        return [f"Unfollowed feed with URL: {url}"]

    def browse(self, command: BrowseCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _store(settings) as store:
            user = _current_user(store, settings)
            listings = store.list_posts_for_user(user.id, limit=command.limit)

        lines = [f"Found {len(listings)} posts for user {user.name}:"]
        for listing in listings:
            post = listing.post
            published = format_published(post.published_at)
            lines.extend(
                [
                    f"{published} from {listing.feed_name}",
                    f"--- {post.title} ---",
                    f"    {post.description or ''}",
                    f"Link: {post.url}",
                    "=====================================",
                ],
            )
        return lines

    def aggregate(self, command: AggregateCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        interval = settings.resolve_poll_interval(command.interval)
        settings.validate_for_fetch()

        with (
            _store(settings) as store,
            FeedFetcher(
                timeout_seconds=settings.fetch.request_timeout_seconds,
                user_agent=settings.fetch.user_agent,
            ) as fetcher,
        ):
            scheduler = Scheduler(
                store=store,
                step=IngestionStep(store=store, source=fetcher),
                followed_only=settings.fetch.followed_only,
            )
            summary = scheduler.run(interval, max_cycles=command.max_cycles)

        return [
            "Aggregation finished: "
            f"cycles={summary.cycles} idle={summary.idle_cycles} "
            f"feeds_ingested={summary.feeds_ingested} feeds_failed={summary.feeds_failed} "
            f"posts_created={summary.posts_created} cycle_errors={summary.cycle_errors}",
        ]


def format_published(value: datetime | None) -> str:
    """Short browse date such as `Mon Jan 2`, without zero-padding the day."""

    if value is None:
        return "undated"
    return f"{value:%a %b} {value.day}"


@contextmanager
def _store(settings: Settings) -> Iterator[EntryStore]:
    store = EntryStore(settings.db_path, busy_timeout_ms=settings.sqlite_busy_timeout_ms)
    try:
        store.init_schema()
        yield store
    finally:
        store.close()


def _current_user(store: EntryStore, settings: Settings) -> UserRecord:
    name = read_current_user(settings.session_path)
    if name is None:
        raise CommandError("No user is logged in. Run `gator register` or `gator login` first.")
    user = store.get_user(name)
    if user is None:
        raise CommandError(f"Current user '{name}' does not exist. Run `gator login` again.")
    return user


def _require_text(value: str, label: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise CommandError(f"A {label} is required.")
    return normalized
