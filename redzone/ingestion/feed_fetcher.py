"""
Feed Fetcher
============

Retrieves a feed document over HTTP and parses it into raw items.

RSS 2.0, Atom, Media RSS and the iTunes namespace are understood. Every
failure mode (network, timeout, non-2xx, malformed document) surfaces as a
single FeedFetchError; an empty feed is a valid result.
"""

import asyncio
import ssl
import time
import xml.etree.ElementTree as ET
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp
import certifi
import feedparser
from bs4 import BeautifulSoup

from ..config.settings import get_settings
from ..utils.exceptions import ErrorCode, FeedFetchError
from ..utils.logging import get_logger_for_component

MEDIA_NS = "http://search.yahoo.com/mrss/"
ATOM_NS = "http://www.w3.org/2005/Atom"


@dataclass
class RawFeedItem:
    """One feed entry as published, before normalization."""

    link: Optional[str] = None
    guid: Optional[str] = None
    title: Optional[str] = None
    content: Optional[str] = None
    content_snippet: Optional[str] = None
    summary: Optional[str] = None
    published: Optional[str] = None
    published_parsed: Optional[time.struct_time] = None
    enclosure: Optional[Dict[str, Optional[str]]] = None
    media_group_thumbnail: Optional[str] = None
    media_thumbnail: Optional[str] = None
    itunes_image: Optional[str] = None
    author: Optional[str] = None
    categories: List[str] = field(default_factory=list)


def html_to_text(markup: Optional[str]) -> Optional[str]:
    """Plain-text rendering of an HTML fragment, None when nothing is left."""
    if not markup:
        return None
    text = BeautifulSoup(markup, "html.parser").get_text(separator=" ", strip=True)
    return " ".join(text.split()) or None


class FeedFetcher:
    """Async feed fetcher backed by aiohttp and feedparser."""

    def __init__(self, timeout: Optional[float] = None, user_agent: Optional[str] = None):
        """Initialize feed fetcher.

        Args:
            timeout: Total request timeout in seconds (default from config)
            user_agent: User-Agent header (default from config)
        """
        settings = get_settings()
        self.timeout = timeout or settings.limits.fetch_timeout
        self.user_agent = user_agent or settings.processing.user_agent
        self.logger = get_logger_for_component("feed_fetcher")

        self.ssl_context = ssl.create_default_context(cafile=certifi.where())

    @asynccontextmanager
    async def get_session(self):
        """Get configured aiohttp session."""
        connector = aiohttp.TCPConnector(
            ssl=self.ssl_context,
            limit_per_host=5,
        )

        timeout = aiohttp.ClientTimeout(total=self.timeout)

        headers = {
            "User-Agent": self.user_agent,
            "Accept": "application/rss+xml, application/atom+xml, application/xml, text/xml, */*",
        }

        async with aiohttp.ClientSession(
            connector=connector, timeout=timeout, headers=headers
        ) as session:
            yield session

    async def fetch(
        self, feed_url: str, session: Optional[aiohttp.ClientSession] = None
    ) -> List[RawFeedItem]:
        """Fetch and parse a single feed.

        Args:
            feed_url: Feed URL
            session: Shared aiohttp session; a private one is opened when omitted

        Returns:
            Items in feed order, possibly empty

        Raises:
            FeedFetchError: If the feed cannot be retrieved or parsed
        """
        if session is None:
            async with self.get_session() as own_session:
                return await self.fetch(feed_url, own_session)

        if not feed_url.lower().startswith(("http://", "https://")):
            raise FeedFetchError(
                f"Unsupported feed URL scheme: {feed_url}",
                feed_url=feed_url,
                error_code=ErrorCode.FEED_INVALID_URL,
                recoverable=False,
            )

        start_time = time.time()
        self.logger.debug(f"Fetching feed: {feed_url}")

        try:
            async with session.get(feed_url) as response:
                if not 200 <= response.status < 300:
                    raise FeedFetchError(
                        f"HTTP {response.status}: {response.reason}",
                        feed_url=feed_url,
                        error_code=ErrorCode.FEED_HTTP_ERROR,
                    )
                body = await response.read()
                headers = dict(response.headers)

        except asyncio.TimeoutError as e:
            raise FeedFetchError(
                f"Request timeout after {self.timeout}s",
                feed_url=feed_url,
                error_code=ErrorCode.FEED_FETCH_TIMEOUT,
            ) from e
        except aiohttp.ClientError as e:
            raise FeedFetchError(
                f"Network error: {e}",
                feed_url=feed_url,
                error_code=ErrorCode.FEED_NETWORK_ERROR,
            ) from e

        items = self.parse_document(body, feed_url, response_headers=headers)

        self.logger.info(
            f"Fetched {len(items)} items from {feed_url} "
            f"in {time.time() - start_time:.2f}s"
        )
        return items

    def parse_document(
        self,
        content: Any,
        feed_url: str,
        response_headers: Optional[Dict[str, str]] = None,
    ) -> List[RawFeedItem]:
        """Parse a feed document without touching the network.

        Args:
            content: Document as bytes or str
            feed_url: Feed URL, for error reporting
            response_headers: HTTP headers, lets feedparser honor the charset

        Raises:
            FeedFetchError: If the document is malformed and yields no entries
        """
        feed_data = feedparser.parse(content, response_headers=response_headers or {})
        entries = feed_data.get("entries", [])

        # Encoding and content-type complaints still leave a usable parse
        malformed = feed_data.get("bozo") and not isinstance(
            feed_data.get("bozo_exception"), feedparser.ThingsNobodyCaresAboutButMe
        )
        if not entries and (malformed or not feed_data.get("version")):
            cause = feed_data.get("bozo_exception") or "not a recognizable feed"
            raise FeedFetchError(
                f"Feed parse error: {cause}",
                feed_url=feed_url,
                error_code=ErrorCode.FEED_PARSE_ERROR,
            )
        if feed_data.get("bozo"):
            self.logger.info(f"Feed parsed with warnings ({feed_data.get('bozo_exception')}): {feed_url}")

        group_thumbnails = self._media_group_thumbnails(content, len(entries))

        return [
            self._to_raw_item(entry, group_thumbnails[index])
            for index, entry in enumerate(entries)
        ]

    def _to_raw_item(self, entry: Any, media_group_thumbnail: Optional[str]) -> RawFeedItem:
        content_body = None
        if entry.get("content"):
            content_body = entry.content[0].get("value") or None
        if not content_body:
            content_body = entry.get("description") or None

        enclosure = None
        if entry.get("enclosures"):
            first = entry.enclosures[0]
            enclosure = {
                "url": first.get("href") or first.get("url"),
                "type": first.get("type"),
            }

        media_thumbnail = None
        if entry.get("media_thumbnail"):
            media_thumbnail = entry.media_thumbnail[0].get("url") or None

        itunes_image = None
        image = entry.get("image")
        if isinstance(image, dict):
            itunes_image = image.get("href") or image.get("url")
        elif isinstance(image, str):
            itunes_image = image

        categories = [
            tag.get("term") for tag in entry.get("tags", []) if tag.get("term")
        ]

        return RawFeedItem(
            link=entry.get("link") or None,
            guid=entry.get("id") or None,
            title=entry.get("title") or None,
            content=content_body,
            content_snippet=html_to_text(content_body),
            summary=entry.get("summary") or None,
            published=entry.get("published") or entry.get("updated"),
            published_parsed=entry.get("published_parsed") or entry.get("updated_parsed"),
            enclosure=enclosure,
            media_group_thumbnail=media_group_thumbnail,
            media_thumbnail=media_thumbnail,
            itunes_image=itunes_image,
            author=entry.get("author") or None,
            categories=categories,
        )

    def _media_group_thumbnails(self, content: Any, entry_count: int) -> List[Optional[str]]:
        """Thumbnail URL nested in each entry's media:group, aligned by index.

        feedparser merges media:group children into the entry, so the group
        origin is recovered with a second namespace-aware pass. Any
        disagreement with feedparser's entry count leaves all slots empty.
        """
        empty: List[Optional[str]] = [None] * entry_count
        if not entry_count:
            return empty

        try:
            if isinstance(content, str):
                content = content.encode("utf-8")
            root = ET.fromstring(content)
        except (ET.ParseError, ValueError):
            return empty

        nodes = root.findall("./channel/item") or root.findall(f"./{{{ATOM_NS}}}entry")
        if len(nodes) != entry_count:
            self.logger.debug(
                f"media:group pass saw {len(nodes)} entries, feedparser saw {entry_count}"
            )
            return empty

        thumbnails = []
        for node in nodes:
            thumb = node.find(f"./{{{MEDIA_NS}}}group/{{{MEDIA_NS}}}thumbnail")
            url = thumb.get("url") if thumb is not None else None
            thumbnails.append(url or None)
        return thumbnails
