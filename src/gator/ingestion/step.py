"""One ingestion step: mark, fetch and persist the items of a single feed."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import UTC, datetime
from uuid import uuid4

from gator.ingestion.base import FeedError, FeedSource, PostStore
from gator.models import (
    FeedIngestionSummary,
    FeedItem,
    FeedRecord,
    IngestionStatus,
    PostWrite,
)
from gator.storage.common import utc_now
from gator.storage.errors import DuplicateURLError, StoreError

logger = logging.getLogger(__name__)

# RFC 1123 with a numeric zone, e.g. "Mon, 02 Jan 2006 15:04:05 -0700".
PUBLISHED_AT_FORMAT = "%a, %d %b %Y %H:%M:%S %z"
# strptime also takes "Z" and "+00:00" for %z; only four-digit offsets are valid here.
_NUMERIC_ZONE_RE = re.compile(r" [+-]\d{4}$")


class IngestionStep:
    """Fetches one feed and stores its unseen items as posts."""

    def __init__(
        self,
        *,
        store: PostStore,
        source: FeedSource,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.source = source
        self.clock = clock

    def ingest(self, feed: FeedRecord) -> FeedIngestionSummary:
        summary = FeedIngestionSummary(feed_id=feed.id, status=IngestionStatus.COLLECTED)

        # Must precede the fetch: failing feeds still move to the back of the staleness order.
        try:
            self.store.mark_feed_fetched(feed.id, self.clock())
        except StoreError as error:
            logger.error("Couldn't mark feed %s fetched: %s", feed.name, error)
            summary.status = IngestionStatus.MARK_FAILED
            return summary

        try:
            document = self.source.fetch(feed.url)
        except FeedError as error:
            logger.warning(
                "Couldn't collect feed %s (%s): %s [%s]",
                feed.name,
                feed.url,
                error,
                error.code,
            )
            summary.status = IngestionStatus.FETCH_FAILED
            return summary

        for item in document.items:
            summary.items_seen += 1
            self._store_item(feed=feed, item=item, summary=summary)

        logger.info(
            "Feed %s collected: items=%d created=%d duplicates=%d failed=%d",
            feed.name,
            summary.items_seen,
            summary.created,
            summary.duplicates,
            summary.failed,
        )
        return summary

    def _store_item(
        self,
        *,
        feed: FeedRecord,
        item: FeedItem,
        summary: FeedIngestionSummary,
    ) -> None:
        if not item.link:
            logger.warning("Skipping item without link in feed %s: %r", feed.name, item.title)
            summary.failed += 1
            return

        now = self.clock()
        post = PostWrite(
            id=str(uuid4()),
            feed_id=feed.id,
            title=item.title,
            url=item.link,
            description=item.description,
            published_at=parse_published_at(item.pub_date),
            created_at=now,
            updated_at=now,
        )
        try:
            self.store.create_post(post)
        except DuplicateURLError:
            logger.debug("Post already stored: %s", item.link)
            summary.duplicates += 1
            return
        except StoreError as error:
            logger.error("Couldn't create post %s for feed %s: %s", item.link, feed.name, error)
            summary.failed += 1
            return
        summary.created += 1


def parse_published_at(raw_value: str | None) -> datetime | None:
    """Parse an item's pubDate; anything not in PUBLISHED_AT_FORMAT yields None."""

    if not raw_value:
        return None
    text = raw_value.strip()
    if _NUMERIC_ZONE_RE.search(text) is None:
        return None
    try:
        parsed = datetime.strptime(text, PUBLISHED_AT_FORMAT)
    except ValueError:
        return None
    return parsed.astimezone(UTC)
