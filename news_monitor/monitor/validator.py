"""Trial fetch of a candidate feed before it is added as a source."""

import asyncio
from dataclasses import dataclass, field
from urllib.parse import urlparse

import structlog

from news_monitor.errors import FetchError
from news_monitor.ingestion.config import IngestionConfig
from news_monitor.ingestion.feed_client import FeedClient
from news_monitor.ingestion.http_client import RetryConfig
from news_monitor.ingestion.schemas import Article
from news_monitor.monitor.config import MonitorConfig
from news_monitor.sources.schemas import is_http_url

logger = structlog.get_logger(__name__)

NO_ARTICLES_MESSAGE = "No articles found in feed"


@dataclass
class ValidationResult:
    """Outcome of a trial fetch.

    Attributes:
        valid: The URL served a feed with at least one item.
        articles: Preview of the first few items (empty when invalid).
        error: Human-readable reason when invalid.
        suggested_name: Display name derived from the feed hostname.
    """

    valid: bool
    articles: list[Article] = field(default_factory=list)
    error: str | None = None
    suggested_name: str | None = None


def suggest_name(feed_url: str) -> str | None:
    """First hostname label, capitalized (``https://www.digi.no/rss`` -> ``Digi``)."""
    try:
        hostname = urlparse(feed_url).hostname
    except ValueError:
        return None
    if not hostname:
        return None
    if hostname.startswith("www."):
        hostname = hostname[4:]
    label = hostname.split(".")[0]
    return label[:1].upper() + label[1:] if label else None


class SourceValidator:
    """
    Checks that a URL serves a readable feed.

    Makes exactly one request, bypassing the feed cache, and never
    touches the source registry.

    Usage:
        result = await SourceValidator().validate("https://example.com/feed")
        if result.valid:
            print(result.suggested_name, [a.title for a in result.articles])
    """

    def __init__(
        self,
        feed_client: FeedClient | None = None,
        config: MonitorConfig | None = None,
        ingestion_config: IngestionConfig | None = None,
    ) -> None:
        self._config = config or MonitorConfig()
        self._feed_client = feed_client or FeedClient(
            ingestion_config, retry_config=RetryConfig(max_retries=0),
        )

    async def validate(self, feed_url: str) -> ValidationResult:
        """Run a trial fetch and report whether the feed is usable."""
        feed_url = (feed_url or "").strip()
        if not feed_url:
            return ValidationResult(valid=False, error="Feed URL is required")
        if not is_http_url(feed_url):
            return ValidationResult(valid=False, error=f"Not an http(s) URL: {feed_url}")

        timeout = self._config.fetch_timeout_seconds
        try:
            result = await asyncio.wait_for(
                self._feed_client.fetch_feed(
                    feed_url, self._config.preview_limit, use_cache=False,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            return ValidationResult(valid=False, error=f"Timed out after {timeout:g}s")
        except FetchError as e:
            logger.info("Feed validation failed", url=feed_url, error=str(e))
            return ValidationResult(valid=False, error=str(e))

        if not result.articles:
            return ValidationResult(valid=False, error=NO_ARTICLES_MESSAGE)

        return ValidationResult(
            valid=True,
            articles=result.articles[: self._config.preview_limit],
            suggested_name=suggest_name(feed_url),
        )
