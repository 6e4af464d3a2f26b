"""SQLModel-backed entry store for users, feeds, follows and posts."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from uuid import uuid4

from sqlalchemy import case, exists
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, col, delete, select

from gator.models import (
    FeedFollowRecord,
    FeedListing,
    FeedRecord,
    PostListing,
    PostRecord,
    PostWrite,
    UserRecord,
)
from gator.storage.alembic_runner import upgrade_head
from gator.storage.common import (
    build_sqlite_engine,
    connect_sqlite_with_policy,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from gator.storage.errors import DuplicateRecordError, DuplicateURLError, StoreError
from gator.storage.sqlmodel_models import Feed, FeedFollow, Post, User

logger = logging.getLogger(__name__)
DEFAULT_BUSY_TIMEOUT_MS = 5_000
_SQLITE_UNIQUE_RE = re.compile(r"UNIQUE constraint failed: (?P<columns>[\w.]+(?:, [\w.]+)*)")


class EntryStore:
    """Facade that persists gator entities using SQLModel and Alembic."""

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)

        # Keep low-level connection for tests and ad-hoc debugging queries.
        self._connection = connect_sqlite_with_policy(
            db_path=db_path,
            busy_timeout_ms=busy_timeout_ms,
        )

    def close(self) -> None:
        self._connection.close()
        self.engine.dispose()

    def init_schema(self) -> None:
        upgrade_head(self.db_path)

    # Users

    def create_user(self, name: str) -> UserRecord:
        now = to_db_datetime(utc_now())
        row = User(id=str(uuid4()), name=name, created_at=now, updated_at=now)
        with self._session() as session:
            session.add(row)
            session.commit()
            session.refresh(row)
            return _user_record(row)

    def get_user(self, name: str) -> UserRecord | None:
        with self._session() as session:
            row = session.exec(select(User).where(User.name == name)).one_or_none()
            if row is None:
                return None
            return _user_record(row)

    def list_users(self) -> list[UserRecord]:
        with self._session() as session:
            rows = session.exec(select(User).order_by(col(User.name).asc())).all()
            return [_user_record(row) for row in rows]

    def delete_all_users(self) -> int:
        """Delete every user; feeds, follows and posts go with them via cascades."""

        with self._session() as session:
            result = session.exec(delete(User))
            session.commit()
            deleted = int(result.rowcount or 0)
        logger.info("Deleted %d users and their feeds.", deleted)
        return deleted

    # Feeds

    def create_feed(self, *, name: str, url: str, user_id: str) -> FeedRecord:
        now = to_db_datetime(utc_now())
        row = Feed(
            id=str(uuid4()),
            name=name,
            url=url,
            user_id=user_id,
            created_at=now,
            updated_at=now,
        )
        with self._session() as session:
            session.add(row)
            session.commit()
            session.refresh(row)
            return _feed_record(row)

    def get_feed_by_url(self, url: str) -> FeedRecord | None:
        with self._session() as session:
            row = session.exec(select(Feed).where(Feed.url == url)).one_or_none()
            if row is None:
                return None
            return _feed_record(row)

    def list_feeds(self) -> list[FeedListing]:
        with self._session() as session:
            rows = session.exec(
                select(Feed, User.name)
                .join(User, col(User.id) == col(Feed.user_id))
                .order_by(col(Feed.created_at).asc(), col(Feed.id).asc()),
            ).all()
            return [FeedListing(feed=_feed_record(feed), user_name=name) for feed, name in rows]

    def mark_feed_fetched(self, feed_id: str, fetched_at: datetime) -> FeedRecord:
        """Stamp a fetch attempt on the feed, pushing it to the back of the staleness order."""

        with self._session() as session:
            row = session.get(Feed, feed_id)
            if row is None:
                raise StoreError(message=f"Feed not found: {feed_id}", code="feed_not_found")
            stamp = to_db_datetime(fetched_at)
            row.last_fetched_at = stamp
            row.updated_at = stamp
            session.add(row)
            session.commit()
            session.refresh(row)
            return _feed_record(row)

    def next_feed_to_fetch(self, *, followed_only: bool = False) -> FeedRecord | None:
        """Return the most stale feed, or None when there is nothing to fetch.

        Feeds that were never fetched come first, then the oldest
        ``last_fetched_at``. Ties are broken by id so the choice is stable.
        With ``followed_only`` feeds nobody follows are ignored.
        """

        statement = (
            select(Feed)
            .order_by(
                case((col(Feed.last_fetched_at).is_(None), 0), else_=1),
                col(Feed.last_fetched_at).asc(),
                col(Feed.id).asc(),
            )
            .limit(1)
        )
        if followed_only:
            statement = statement.where(exists().where(col(FeedFollow.feed_id) == col(Feed.id)))

        with self._session() as session:
            row = session.exec(statement).first()
            if row is None:
                return None
            return _feed_record(row)

    # Follows

    def create_feed_follow(self, *, user_id: str, feed_id: str) -> FeedFollowRecord:
        now = to_db_datetime(utc_now())
        row = FeedFollow(
            id=str(uuid4()),
            user_id=user_id,
            feed_id=feed_id,
            created_at=now,
            updated_at=now,
        )
        with self._session() as session:
            session.add(row)
            session.commit()
            follow_id = row.id

        for follow in self.list_feed_follows_for_user(user_id):
            if follow.id == follow_id:
                return follow
        raise StoreError(message=f"Feed follow vanished: {follow_id}", code="follow_missing")

    def list_feed_follows_for_user(self, user_id: str) -> list[FeedFollowRecord]:
        with self._session() as session:
            rows = session.exec(
                select(FeedFollow, User.name, Feed.name)
                .join(User, col(User.id) == col(FeedFollow.user_id))
                .join(Feed, col(Feed.id) == col(FeedFollow.feed_id))
                .where(FeedFollow.user_id == user_id)
                .order_by(col(FeedFollow.created_at).asc(), col(FeedFollow.id).asc()),
            ).all()
            return [
                FeedFollowRecord(
                    id=follow.id,
                    user_id=follow.user_id,
                    feed_id=follow.feed_id,
                    created_at=to_utc_aware_datetime(follow.created_at),
                    updated_at=to_utc_aware_datetime(follow.updated_at),
                    user_name=user_name,
                    feed_name=feed_name,
                )
                for follow, user_name, feed_name in rows
            ]

    def delete_feed_follow(self, *, user_id: str, feed_url: str) -> bool:
        with self._session() as session:
            follow = session.exec(
                select(FeedFollow)
                .join(Feed, col(Feed.id) == col(FeedFollow.feed_id))
                .where(FeedFollow.user_id == user_id, Feed.url == feed_url),
            ).one_or_none()
            if follow is None:
                return False
            session.delete(follow)
            session.commit()
            return True

    # Posts

    def create_post(self, post: PostWrite) -> PostRecord:
        """Insert a post; raises DuplicateURLError when the URL was already stored."""

        row = Post(
            id=post.id,
            feed_id=post.feed_id,
            title=post.title,
            description=post.description,
            url=post.url,
            published_at=(
                to_db_datetime(post.published_at) if post.published_at is not None else None
            ),
            created_at=to_db_datetime(post.created_at),
            updated_at=to_db_datetime(post.updated_at),
        )
        with self._session() as session:
            session.add(row)
            session.commit()
            session.refresh(row)
            return _post_record(row)

    def list_posts_for_user(self, user_id: str, *, limit: int) -> list[PostListing]:
        """Newest posts from feeds the user follows; undated posts sort last."""

        with self._session() as session:
            rows = session.exec(
                select(Post, Feed.name)
                .join(Feed, col(Feed.id) == col(Post.feed_id))
                .join(FeedFollow, col(FeedFollow.feed_id) == col(Feed.id))
                .where(FeedFollow.user_id == user_id)
                .order_by(
                    case((col(Post.published_at).is_(None), 1), else_=0),
                    col(Post.published_at).desc(),
                    col(Post.created_at).desc(),
                )
                .limit(max(1, limit)),
            ).all()
            return [PostListing(post=_post_record(post), feed_name=name) for post, name in rows]

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with Session(self.engine) as session:
            try:
                yield session
            except IntegrityError as error:
                session.rollback()
                raise _integrity_error(error) from error
            except SQLAlchemyError as error:
                session.rollback()
                raise StoreError(message=str(error), code="database") from error


def _integrity_error(error: IntegrityError) -> StoreError:
    message = str(error.orig)
    table: str | None = None
    column: str | None = None

    match = _SQLITE_UNIQUE_RE.search(message)
    if match is not None:
        qualified = match.group("columns").split(", ")
        table, column = qualified[-1].split(".", 1)

    if table is None:
        return StoreError(message=message, code="integrity")
    if column == "url":
        return DuplicateURLError(
            message=f"Duplicate URL in {table}",
            code="duplicate_url",
            table=table,
            column=column,
        )
    return DuplicateRecordError(
        message=f"Duplicate {table}.{column}",
        code="duplicate",
        table=table,
        column=column,
    )


def _user_record(row: User) -> UserRecord:
    return UserRecord(
        id=row.id,
        name=row.name,
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )


def _feed_record(row: Feed) -> FeedRecord:
    return FeedRecord(
        id=row.id,
        name=row.name,
        url=row.url,
        user_id=row.user_id,
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
        last_fetched_at=(
            to_utc_aware_datetime(row.last_fetched_at) if row.last_fetched_at is not None else None
        ),
    )


def _post_record(row: Post) -> PostRecord:
    return PostRecord(
        id=row.id,
        feed_id=row.feed_id,
        title=row.title,
        url=row.url,
        description=row.description,
        published_at=(
            to_utc_aware_datetime(row.published_at) if row.published_at is not None else None
        ),
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )
