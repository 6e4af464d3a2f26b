"""HTTP fetch and RSS parsing for one feed URL."""

from __future__ import annotations

import html
import logging

import httpx
from defusedxml import DefusedXmlException, ElementTree

from gator.config import DEFAULT_USER_AGENT
from gator.ingestion.base import FetchError, ParseError
from gator.models import FeedDocument, FeedItem

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 10.0
UNTITLED = "Untitled"
_ACCEPT = "application/rss+xml, application/xml;q=0.9, text/xml;q=0.8, */*;q=0.1"


class FeedFetcher:
    """HTTP client wrapper that turns a feed URL into a parsed document.

    There are no retries here: a failed feed waits for its next turn in the
    staleness order.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._timeout = httpx.Timeout(
            timeout_seconds,
            connect=min(DEFAULT_CONNECT_TIMEOUT_SECONDS, timeout_seconds),
        )
        self._client = httpx.Client(
            timeout=self._timeout,
            headers={"User-Agent": user_agent, "Accept": _ACCEPT},
            transport=transport,
            follow_redirects=True,
        )

    def fetch(self, url: str) -> FeedDocument:
        """Fetch ``url`` and parse it; raises FetchError or ParseError."""

        body = self._request(url)
        return parse_feed_document(body, url)

    def _request(self, url: str) -> bytes:
        try:
            response = self._client.get(url)
        except httpx.TimeoutException as exc:
            raise FetchError(message=f"Timeout fetching {url}", code="timeout") from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise FetchError(
                message=f"Transport error fetching {url}: {exc}",
                code="transport",
            ) from exc

        if not response.is_success:
            raise FetchError(
                message=f"HTTP {response.status_code} fetching {url}",
                code=str(response.status_code),
                status_code=response.status_code,
            )
        logger.debug(
            "Fetched %s (status=%d bytes=%d content_type=%s)",
            url,
            response.status_code,
            len(response.content),
            response.headers.get("content-type", ""),
        )
        return response.content

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> FeedFetcher:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def parse_feed_document(raw_xml: str | bytes, feed_url: str) -> FeedDocument:
    """Parse an RSS 2.0 payload into a channel title and its items in document order."""

    try:
        root = ElementTree.fromstring(raw_xml)
    except (ElementTree.ParseError, DefusedXmlException) as error:
        raise ParseError(
            message=f"Invalid RSS XML from {feed_url}: {error}",
            code="invalid_feed_xml",
        ) from error

    root_name = _local_name(root.tag)
    if root_name == "rss":
        channel = _child(root, "channel")
        if channel is None:
            raise ParseError(
                message=f"RSS document from {feed_url} has no <channel>",
                code="missing_channel",
            )
    elif root_name == "channel":
        channel = root
    else:
        raise ParseError(
            message=f"Unsupported feed format from {feed_url}: <{root_name}>",
            code="unsupported_feed_format",
        )

    items: list[FeedItem] = []
    for element in channel:
        if _local_name(element.tag) != "item":
            continue
        items.append(
            FeedItem(
                title=_unescaped(_child_text(element, "title")) or UNTITLED,
                link=_child_text(element, "link") or "",
                description=_unescaped(_child_text(element, "description")),
                pub_date=_child_text(element, "pubDate"),
            ),
        )

    return FeedDocument(
        title=_unescaped(_child_text(channel, "title")) or "",
        link=_child_text(channel, "link"),
        description=_unescaped(_child_text(channel, "description")),
        items=items,
    )


def _child(element: ElementTree.Element, name: str) -> ElementTree.Element | None:
    target = name.lower()
    for child in element:
        if _local_name(child.tag) == target:
            return child
    return None


def _child_text(element: ElementTree.Element, name: str) -> str | None:
    target = name.lower()
    for child in element:
        if _local_name(child.tag) != target:
            continue
        if child.text and child.text.strip():
            return child.text.strip()
        full_text = "".join(child.itertext()).strip()
        if full_text:
            return full_text
    return None


def _unescaped(value: str | None) -> str | None:
    if value is None:
        return None
    return html.unescape(value)


def _local_name(tag: str) -> str:
    if "}" in tag:
        return tag.rsplit("}", 1)[1].lower()
    return tag.lower()
