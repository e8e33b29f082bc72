"""Remote feed fetching: HTTP client with retries, feed parsing, article schema."""

from news_monitor.ingestion.config import IngestionConfig
from news_monitor.ingestion.feed_client import FeedClient, FeedResult, parse_feed
from news_monitor.ingestion.http_client import HTTPClient, HTTPClientError, RetryConfig
from news_monitor.ingestion.schemas import Article

__all__ = [
    "Article",
    "FeedClient",
    "FeedResult",
    "HTTPClient",
    "HTTPClientError",
    "IngestionConfig",
    "RetryConfig",
    "parse_feed",
]
