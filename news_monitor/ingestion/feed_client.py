"""
Remote feed fetch operation.

Fetches an RSS/Atom document over HTTP, parses it with feedparser and
normalizes the entries into Article models. Handles:
- Browser-like request headers (some publishers block bot agents)
- HTML stripping for descriptions
- Image discovery (media:content, media:thumbnail, enclosures, <img> tags)
- A per-URL TTL cache of parsed articles

Used by both the fetch orchestrator and the source validator.
"""

import hashlib
import html
import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import feedparser
from bs4 import BeautifulSoup

from news_monitor.config.settings import get_settings
from news_monitor.errors import FetchError
from news_monitor.ingestion.config import IngestionConfig
from news_monitor.ingestion.http_client import HTTPClient, HTTPClientError, RetryConfig
from news_monitor.ingestion.schemas import Article

logger = logging.getLogger(__name__)

FEED_ACCEPT_HEADER = "application/rss+xml, application/xml, text/xml, */*"
MAX_DESCRIPTION_LENGTH = 500


@dataclass
class FeedResult:
    """Articles returned by a feed fetch.

    Attributes:
        articles: Parsed articles, newest first as published by the feed, capped to the limit.
        cached: Whether the result came from the client cache.
        total: Number of articles the feed contained before capping.
    """

    articles: list[Article]
    cached: bool
    total: int


def stable_hash(value: str) -> str:
    """
    Generate a stable, deterministic hash from a string.

    SHA256 truncated to 16 hex characters; deterministic across
    process restarts, unlike the built-in hash().
    """
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:16]


def clean_html(html_content: str | None) -> str:
    """Extract whitespace-normalized text from an HTML fragment."""
    if not html_content:
        return ""

    soup = BeautifulSoup(html_content, "html.parser")
    for element in soup(["script", "style"]):
        element.decompose()

    text = html.unescape(soup.get_text(separator=" "))
    text = re.sub(r"\s+([.,;:!?])", r"\1", text)
    text = re.sub(r"\s+", " ", text)
    return text.strip()


def _parse_timestamp(entry: dict[str, Any]) -> datetime:
    """Parse the entry timestamp, falling back to now."""
    for name in ("published", "updated", "created"):
        parsed = entry.get(f"{name}_parsed")
        if parsed:
            try:
                return datetime(*parsed[:6], tzinfo=timezone.utc)
            except (TypeError, ValueError):
                pass

        raw = entry.get(name)
        if raw:
            try:
                value = parsedate_to_datetime(raw)
            except (TypeError, ValueError):
                continue
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            return value

    return datetime.now(timezone.utc)


def _entry_html(entry: dict[str, Any]) -> str:
    """Return the richest HTML body available on the entry."""
    content = entry.get("content")
    if content:
        try:
            return content[0].get("value", "") or ""
        except (IndexError, AttributeError, TypeError):
            pass
    return entry.get("summary", "") or ""


def extract_images(entry: dict[str, Any]) -> list[str]:
    """Collect image URLs from an entry, in discovery order without duplicates.

    Looks at media:content, media:thumbnail, image enclosures and
    <img> tags inside the entry body.
    """
    found: list[str] = []

    for media in entry.get("media_content", []) or []:
        url = media.get("url")
        medium = media.get("medium", "")
        media_type = media.get("type", "")
        if url and (medium == "image" or media_type.startswith("image/") or not (medium or media_type)):
            found.append(url)

    for thumb in entry.get("media_thumbnail", []) or []:
        if thumb.get("url"):
            found.append(thumb["url"])

    for link in entry.get("links", []) or []:
        if link.get("rel") == "enclosure" and link.get("type", "").startswith("image/"):
            if link.get("href"):
                found.append(link["href"])

    body = _entry_html(entry)
    if body and "<img" in body:
        soup = BeautifulSoup(body, "html.parser")
        for img in soup.find_all("img"):
            src = img.get("src")
            if src:
                found.append(src)

    seen: set[str] = set()
    unique: list[str] = []
    for url in found:
        if url not in seen:
            seen.add(url)
            unique.append(url)
    return unique


def parse_feed(content: str | bytes, feed_url: str) -> list[Article]:
    """
    Parse an RSS/Atom document into articles.

    Entries without a title or link are skipped.

    Raises:
        FetchError: If the document is not a feed at all.
    """
    parsed = feedparser.parse(content)

    if parsed.bozo and not parsed.entries:
        reason = getattr(parsed, "bozo_exception", None)
        raise FetchError(feed_url, f"Malformed feed: {reason or 'no entries could be parsed'}")

    articles: list[Article] = []
    for entry in parsed.entries:
        title = clean_html(entry.get("title", ""))
        link = entry.get("link", "")
        if not title or not link:
            logger.debug("Skipping entry without link or title in feed %s", feed_url)
            continue

        description = clean_html(entry.get("summary", "") or _entry_html(entry))
        if len(description) > MAX_DESCRIPTION_LENGTH:
            description = description[:MAX_DESCRIPTION_LENGTH].rstrip() + "..."

        images = extract_images(entry)
        articles.append(
            Article(
                id=stable_hash(str(entry.get("id") or link)),
                title=title,
                description=description,
                url=link,
                published_at=_parse_timestamp(entry),
                image_url=images[0] if images else None,
                images=images,
            )
        )

    return articles


class FeedClient:
    """
    Fetches and parses feeds with a short-lived per-URL cache.

    Example:
        client = FeedClient()
        result = await client.fetch_feed("https://example.com/feed", limit=5)
        for article in result.articles:
            print(article.title)
    """

    def __init__(
        self,
        config: IngestionConfig | None = None,
        retry_config: RetryConfig | None = None,
    ) -> None:
        self._config = config or IngestionConfig()

        # HTTP retry configuration from settings
        settings = get_settings()
        self._retry_config = retry_config or RetryConfig(
            max_retries=settings.max_http_retries,
            max_backoff_seconds=settings.max_backoff_seconds,
        )
        self._cache: dict[str, tuple[float, list[Article]]] = {}

    def _get_cached(self, url: str) -> list[Article] | None:
        entry = self._cache.get(url)
        if entry is None:
            return None

        cached_at, articles = entry
        if time.monotonic() - cached_at > self._config.cache_ttl_seconds:
            del self._cache[url]
            return None
        return articles

    def invalidate_cache(self, url: str | None = None) -> None:
        """Drop one cached feed, or all of them."""
        if url is None:
            self._cache.clear()
        else:
            self._cache.pop(url, None)

    async def fetch_feed(
        self,
        url: str,
        limit: int,
        use_cache: bool = True,
    ) -> FeedResult:
        """
        Fetch a feed and return at most ``limit`` articles.

        Args:
            url: Feed location
            limit: Maximum number of articles to return
            use_cache: Serve from the TTL cache when possible

        Raises:
            FetchError: On HTTP failure, timeout or unparseable content
        """
        if use_cache and self._config.cache_ttl_seconds > 0:
            cached = self._get_cached(url)
            if cached is not None:
                logger.debug("Feed cache hit for %s", url)
                return FeedResult(articles=cached[:limit], cached=True, total=len(cached))

        headers = {
            "User-Agent": self._config.user_agent,
            "Accept": FEED_ACCEPT_HEADER,
        }
        try:
            async with HTTPClient(
                self._retry_config,
                timeout=self._config.request_timeout_seconds,
                headers=headers,
            ) as client:
                response = await client.get(url)
        except HTTPClientError as e:
            raise FetchError(url, f"Failed to fetch feed: {e}", status_code=e.status_code) from e

        articles = parse_feed(response.content, url)
        logger.debug("Parsed %d articles from %s", len(articles), url)

        if self._config.cache_ttl_seconds > 0:
            self._cache[url] = (time.monotonic(), articles)

        return FeedResult(articles=articles[:limit], cached=False, total=len(articles))
