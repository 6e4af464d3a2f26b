"""Domain models shared by the store, the fetcher and the ingestion loop."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class IngestionStatus(str, Enum):
    """Outcome of one ingestion step."""

    COLLECTED = "collected"
    FETCH_FAILED = "fetch_failed"
    MARK_FAILED = "mark_failed"


@dataclass(slots=True)
class UserRecord:
    id: str
    name: str
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class FeedRecord:
    """Stored feed with its staleness marker."""

    id: str
    name: str
    url: str
    user_id: str
    created_at: datetime
    updated_at: datetime
    last_fetched_at: datetime | None = None


@dataclass(slots=True)
class FeedListing:
    """Feed joined with the name of the user who added it."""

    feed: FeedRecord
    user_name: str


@dataclass(slots=True)
class FeedFollowRecord:
    id: str
    user_id: str
    feed_id: str
    created_at: datetime
    updated_at: datetime
    user_name: str
    feed_name: str


@dataclass(slots=True)
class PostWrite:
    """Fields of a new post, prepared by the ingestion step."""

    id: str
    feed_id: str
    title: str
    url: str
    created_at: datetime
    updated_at: datetime
    description: str | None = None
    published_at: datetime | None = None


@dataclass(slots=True)
class PostRecord:
    id: str
    feed_id: str
    title: str
    url: str
    created_at: datetime
    updated_at: datetime
    description: str | None = None
    published_at: datetime | None = None


@dataclass(slots=True)
class PostListing:
    """Post joined with the name of its feed, for browsing."""

    post: PostRecord
    feed_name: str


@dataclass(slots=True)
class FeedItem:
    """One `<item>` of a syndication document, dates kept as source text."""

    title: str
    link: str
    description: str | None = None
    pub_date: str | None = None


@dataclass(slots=True)
class FeedDocument:
    """Parsed RSS channel."""

    title: str
    link: str | None = None
    description: str | None = None
    items: list[FeedItem] = field(default_factory=list)


@dataclass(slots=True)
class FeedIngestionSummary:
    """Counters for one ingestion step."""

    feed_id: str
    status: IngestionStatus
    items_seen: int = 0
    created: int = 0
    duplicates: int = 0
    failed: int = 0
