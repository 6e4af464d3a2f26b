"""Collaborator contracts and errors for the ingestion engine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from gator.models import FeedDocument, FeedRecord, PostRecord, PostWrite


@dataclass(slots=True)
class FeedError(Exception):
    """Base feed fetch error."""

    message: str
    code: str = "feed_error"

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class FetchError(FeedError):
    """Transport failure, timeout or non-2xx response."""

    status_code: int | None = None


@dataclass(slots=True)
class ParseError(FeedError):
    """Response body is not a usable RSS document."""


class FeedSource(Protocol):
    """Interface for fetching one feed document."""

    def fetch(self, url: str) -> FeedDocument:
        """Fetch and parse the feed at ``url``."""
        raise NotImplementedError


class PostStore(Protocol):
    """Store operations the ingestion engine depends on."""

    def create_post(self, post: PostWrite) -> PostRecord:
        """Insert a post; raise DuplicateURLError when its URL is already stored."""
        raise NotImplementedError

    def mark_feed_fetched(self, feed_id: str, fetched_at: datetime) -> FeedRecord:
        """Record a fetch attempt for the feed."""
        raise NotImplementedError

    def next_feed_to_fetch(self, *, followed_only: bool = False) -> FeedRecord | None:
        """Return the most stale feed or None."""
        raise NotImplementedError
