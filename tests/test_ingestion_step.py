from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import allure
import pytest

from conftest import StepClock
from gator.ingestion.base import FetchError, ParseError
from gator.ingestion.step import IngestionStep, parse_published_at
from gator.models import (
    FeedDocument,
    FeedItem,
    FeedRecord,
    IngestionStatus,
    PostRecord,
    PostWrite,
)
from gator.repository import EntryStore
from gator.storage.errors import StoreError

pytestmark = [
    allure.epic("Feed Ingestion"),
    allure.feature("Ingestion Step"),
]

PUB_DATE = "Mon, 02 Jan 2006 15:04:05 -0700"


class _StaticSource:
    def __init__(
        self,
        document: FeedDocument | None = None,
        error: Exception | None = None,
    ) -> None:
        self.document = document
        self.error = error
        self.calls: list[str] = []

    def fetch(self, url: str) -> FeedDocument:
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        assert self.document is not None
        return self.document


class _FailingPostStore:
    """Delegates to a real store but fails inserts for selected URLs."""

    def __init__(self, store: EntryStore, failing_urls: set[str]) -> None:
        self._store = store
        self._failing_urls = failing_urls

    def create_post(self, post: PostWrite) -> PostRecord:
        if post.url in self._failing_urls:
            raise StoreError(message="disk I/O error", code="database")
        return self._store.create_post(post)

    def mark_feed_fetched(self, feed_id: str, fetched_at: datetime) -> FeedRecord:
        return self._store.mark_feed_fetched(feed_id, fetched_at)

    def next_feed_to_fetch(self, *, followed_only: bool = False) -> FeedRecord | None:
        return self._store.next_feed_to_fetch(followed_only=followed_only)


def _feed(store: EntryStore) -> FeedRecord:
    user = store.create_user("alice")
    return store.create_feed(name="Example", url="https://example.com/rss", user_id=user.id)


def _document(*items: FeedItem) -> FeedDocument:
    return FeedDocument(title="Example", items=list(items))


def _item(slug: str, pub_date: str | None = PUB_DATE) -> FeedItem:
    return FeedItem(
        title=f"Post {slug}",
        link=f"https://example.com/{slug}",
        description=f"About {slug}",
        pub_date=pub_date,
    )


def _post_count(store: EntryStore) -> int:
    row = store._connection.execute("SELECT COUNT(*) AS total FROM posts").fetchone()
    return int(row["total"])


def test_ingest_stores_new_items_and_skips_known_urls_silently(
    store: EntryStore,
    caplog: pytest.LogCaptureFixture,
) -> None:
    feed = _feed(store)
    now = datetime(2026, 10, 17, 9, 0, tzinfo=UTC)
    store.create_post(
        PostWrite(
            id=str(uuid4()),
            feed_id=feed.id,
            title="Already here",
            url="https://example.com/b",
            created_at=now,
            updated_at=now,
        ),
    )
    source = _StaticSource(_document(_item("a"), _item("b"), _item("c")))
    step = IngestionStep(store=store, source=source, clock=StepClock())

    with caplog.at_level(logging.DEBUG, logger="gator"):
        summary = step.ingest(feed)

    assert summary.status is IngestionStatus.COLLECTED
    assert (summary.items_seen, summary.created) == (3, 2)
    assert (summary.duplicates, summary.failed) == (1, 0)
    assert _post_count(store) == 3
    assert not [record for record in caplog.records if record.levelno >= logging.WARNING]
    assert source.calls == [feed.url]


def test_reingesting_the_same_document_creates_nothing(store: EntryStore) -> None:
    feed = _feed(store)
    source = _StaticSource(_document(_item("a"), _item("b")))
    step = IngestionStep(store=store, source=source, clock=StepClock())

    first = step.ingest(feed)
    second = step.ingest(feed)

    assert first.created == 2
    assert second.created == 0
    assert second.duplicates == 2
    assert _post_count(store) == 2


def test_ingest_marks_feed_fetched_with_clock_value(store: EntryStore) -> None:
    feed = _feed(store)
    clock = StepClock(datetime(2026, 10, 17, 10, 0, tzinfo=UTC))
    step = IngestionStep(store=store, source=_StaticSource(_document()), clock=clock)

    summary = step.ingest(feed)

    assert summary.status is IngestionStatus.COLLECTED
    marked = store.get_feed_by_url(feed.url)
    assert marked is not None
    assert marked.last_fetched_at == datetime(2026, 10, 17, 10, 0, tzinfo=UTC)


def test_unparseable_pub_date_stores_post_without_date(store: EntryStore) -> None:
    feed = _feed(store)
    store.create_feed_follow(user_id=feed.user_id, feed_id=feed.id)
    source = _StaticSource(
        _document(_item("dated"), _item("garbled", pub_date="yesterday-ish"), _item("bare", None)),
    )
    step = IngestionStep(store=store, source=source, clock=StepClock())

    summary = step.ingest(feed)

    assert summary.created == 3
    posts = {
        listing.post.url: listing.post
        for listing in store.list_posts_for_user(feed.user_id, limit=10)
    }
    assert posts["https://example.com/dated"].published_at == datetime(
        2006, 1, 2, 22, 4, 5, tzinfo=UTC
    )
    assert posts["https://example.com/garbled"].published_at is None
    assert posts["https://example.com/bare"].published_at is None


@pytest.mark.parametrize(
    "error",
    [
        FetchError(message="HTTP 500 fetching feed", code="500", status_code=500),
        ParseError(message="Invalid RSS XML", code="invalid_feed_xml"),
    ],
)
def test_fetch_failure_still_moves_feed_back_in_queue(
    store: EntryStore,
    caplog: pytest.LogCaptureFixture,
    error: Exception,
) -> None:
    feed = _feed(store)
    step = IngestionStep(store=store, source=_StaticSource(error=error), clock=StepClock())

    with caplog.at_level(logging.WARNING, logger="gator"):
        summary = step.ingest(feed)

    assert summary.status is IngestionStatus.FETCH_FAILED
    assert summary.items_seen == 0
    assert _post_count(store) == 0
    marked = store.get_feed_by_url(feed.url)
    assert marked is not None
    assert marked.last_fetched_at is not None
    warnings = [record for record in caplog.records if record.levelno == logging.WARNING]
    assert any("Couldn't collect feed Example" in record.getMessage() for record in warnings)


def test_mark_failure_skips_fetch(
    store: EntryStore,
    caplog: pytest.LogCaptureFixture,
) -> None:
    now = datetime(2026, 10, 17, 9, 0, tzinfo=UTC)
    ghost = FeedRecord(
        id="missing",
        name="Ghost",
        url="https://ghost.example.com/rss",
        user_id="nobody",
        created_at=now,
        updated_at=now,
    )
    source = _StaticSource(_document(_item("a")))
    step = IngestionStep(store=store, source=source, clock=StepClock())

    with caplog.at_level(logging.ERROR, logger="gator"):
        summary = step.ingest(ghost)

    assert summary.status is IngestionStatus.MARK_FAILED
    assert source.calls == []
    assert "Couldn't mark feed Ghost fetched" in caplog.text


def test_item_level_store_failure_does_not_stop_siblings(
    store: EntryStore,
    caplog: pytest.LogCaptureFixture,
) -> None:
    feed = _feed(store)
    failing_store = _FailingPostStore(store, {"https://example.com/b"})
    source = _StaticSource(_document(_item("a"), _item("b"), _item("c")))
    step = IngestionStep(store=failing_store, source=source, clock=StepClock())

    with caplog.at_level(logging.ERROR, logger="gator"):
        summary = step.ingest(feed)

    assert summary.status is IngestionStatus.COLLECTED
    assert (summary.created, summary.duplicates, summary.failed) == (2, 0, 1)
    assert _post_count(store) == 2
    assert "Couldn't create post https://example.com/b" in caplog.text


def test_items_without_link_are_skipped(store: EntryStore) -> None:
    feed = _feed(store)
    source = _StaticSource(_document(FeedItem(title="No link", link=""), _item("ok")))
    step = IngestionStep(store=store, source=source, clock=StepClock())

    summary = step.ingest(feed)

    assert (summary.items_seen, summary.created, summary.failed) == (2, 1, 1)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (PUB_DATE, datetime(2006, 1, 2, 22, 4, 5, tzinfo=UTC)),
        ("Sat, 17 Oct 2026 09:30:00 +0000", datetime(2026, 10, 17, 9, 30, tzinfo=UTC)),
        ("  Sat, 17 Oct 2026 11:30:00 +0200  ", datetime(2026, 10, 17, 9, 30, tzinfo=UTC)),
        ("Sat, 17 Oct 2026 09:30:00 GMT", None),
        ("Sat, 17 Oct 2026 09:30:00 Z", None),
        ("Sat, 17 Oct 2026 09:30:00 +00:00", None),
        ("Sat, 17 Oct 2026 09:30:00 +000", None),
        ("2026-10-17T09:30:00Z", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_published_at(raw: str | None, expected: datetime | None) -> None:
    assert parse_published_at(raw) == expected


def test_parse_published_at_returns_utc() -> None:
    parsed = parse_published_at("Sat, 17 Oct 2026 11:30:00 +0200")

    assert parsed is not None
    assert parsed.utcoffset() == timedelta(0)


def test_never_fetched_feed_goes_first_then_yields_to_older_one(store: EntryStore) -> None:
    user = store.create_user("alice")
    feed_a = store.create_feed(name="A", url="http://a.test/feed", user_id=user.id)
    feed_b = store.create_feed(name="B", url="http://b.test/feed", user_id=user.id)
    store.mark_feed_fetched(feed_b.id, datetime.now(tz=UTC) - timedelta(hours=1))
    step = IngestionStep(store=store, source=_StaticSource(_document(_item("a"))))

    selected = store.next_feed_to_fetch()
    assert selected is not None
    assert selected.id == feed_a.id

    step.ingest(selected)

    following = store.next_feed_to_fetch()
    assert following is not None
    assert following.id == feed_b.id
