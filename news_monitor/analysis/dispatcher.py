"""
Auto-analysis of freshly fetched articles.

New articles are sent to the analysis endpoint in small concurrent
batches. Once every batch has finished, the items scoring at or above
the threshold are forwarded one by one to the notify endpoint.

Articles are skipped when:
- their URL was analyzed before (remembered on disk, capped)
- they are already stored in the news history
- another analysis of the same URL is running
"""

import asyncio
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from news_monitor.analysis.config import AnalysisConfig
from news_monitor.analytics.repository import HistoryRepository
from news_monitor.errors import PersistenceError
from news_monitor.ingestion.http_client import HTTPClient, HTTPClientError, RetryConfig
from news_monitor.ingestion.schemas import Article
from news_monitor.observability.metrics import MetricsCollector, get_metrics

logger = structlog.get_logger(__name__)

ALREADY_EXISTS_ERROR = "Article already exists"


def _error_body(error: HTTPClientError) -> dict[str, Any] | None:
    """JSON error payload of a rejected request, if it carried one."""
    if not error.response_body:
        return None
    try:
        body = json.loads(error.response_body)
    except ValueError:
        return None
    if isinstance(body, dict) and body.get("error"):
        return body
    return None


class AnalyzedUrlMemory:
    """Insertion-ordered set of analyzed URLs persisted as a JSON list."""

    def __init__(self, path: Path | None, max_size: int = 500) -> None:
        self._path = path
        self._max_size = max_size
        self._urls: dict[str, None] = {}

    def __contains__(self, url: str) -> bool:
        return url in self._urls

    def __len__(self) -> int:
        return len(self._urls)

    def load(self) -> None:
        """Read remembered URLs; a missing or corrupt file leaves the memory empty."""
        if self._path is None or not self._path.exists():
            return
        try:
            with open(self._path) as f:
                urls = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Could not read analyzed URL memory", path=str(self._path), error=str(e))
            return
        self._urls = {str(u): None for u in urls[-self._max_size:]}

    def add(self, url: str) -> None:
        self._urls.pop(url, None)
        self._urls[url] = None
        while len(self._urls) > self._max_size:
            del self._urls[next(iter(self._urls))]
        self._save()

    def clear(self) -> None:
        self._urls.clear()
        if self._path is not None and self._path.exists():
            try:
                self._path.unlink()
            except OSError as e:
                logger.warning("Could not remove analyzed URL memory", error=str(e))

    def _save(self) -> None:
        if self._path is None:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "w") as f:
                json.dump(list(self._urls), f)
        except OSError as e:
            logger.warning("Could not write analyzed URL memory", path=str(self._path), error=str(e))


@dataclass
class AnalysisStatus:
    """Running counters shown next to the monitor."""

    analyzing: bool = False
    analyzed_count: int = 0
    failed_count: int = 0
    last_analyzed_url: str | None = None


@dataclass
class AnalysisOutcome:
    """Result of analyzing one article."""

    success: bool
    news_id: str | None = None
    score: float | None = None


class AnalysisDispatcher:
    """
    Sends new articles for analysis and forwards the relevant ones.

    Usage:
        dispatcher = AnalysisDispatcher(AnalysisConfig(), history_repo)
        qualified = await dispatcher.analyze_new_articles(articles, "TechCrunch")
    """

    def __init__(
        self,
        config: AnalysisConfig | None = None,
        history: HistoryRepository | None = None,
        memory: AnalyzedUrlMemory | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._config = config or AnalysisConfig()
        self._history = history
        self._metrics = metrics or get_metrics()
        if memory is None:
            memory = AnalyzedUrlMemory(self._config.memory_path, self._config.max_remembered_urls)
            memory.load()
        self._memory = memory
        self._pending: set[str] = set()
        self._active_runs = 0
        self.status = AnalysisStatus()

    @property
    def enabled(self) -> bool:
        return bool(self._config.analyze_url)

    @property
    def memory(self) -> AnalyzedUrlMemory:
        return self._memory

    def clear(self) -> None:
        """Forget analyzed URLs and reset the counters."""
        self._memory.clear()
        self.status = AnalysisStatus(analyzing=self.status.analyzing)

    async def analyze_new_articles(self, articles: list[Article], source_name: str) -> list[str]:
        """
        Analyze articles not seen before, then forward those above the threshold.

        Returns:
            News ids that were forwarded
        """
        if not self.enabled:
            return []

        fresh = [
            a for a in articles
            if a.url not in self._memory and a.url not in self._pending
        ]
        if not fresh:
            return []

        self._pending.update(a.url for a in fresh)
        self._active_runs += 1
        self.status.analyzing = True
        qualified: list[str] = []
        batch_size = self._config.batch_size
        try:
            for start in range(0, len(fresh), batch_size):
                batch = fresh[start:start + batch_size]
                logger.info(
                    "Analyzing batch",
                    source=source_name,
                    batch=start // batch_size + 1,
                    size=len(batch),
                )
                outcomes = await asyncio.gather(
                    *(self.analyze_article(a, source_name, skip_notify=True) for a in batch)
                )
                qualified.extend(
                    o.news_id for o in outcomes
                    if o.success and o.news_id and o.score is not None
                    and o.score >= self._config.score_threshold
                )
                if start + batch_size < len(fresh) and self._config.batch_delay_seconds:
                    await asyncio.sleep(self._config.batch_delay_seconds)

            if qualified:
                logger.info("Articles passed threshold", source=source_name, count=len(qualified))
                await self.notify(qualified)
        finally:
            self._pending.difference_update(a.url for a in fresh)
            self._active_runs -= 1
            self.status.analyzing = self._active_runs > 0

        return qualified

    async def analyze_article(
        self,
        article: Article,
        source_name: str,
        skip_notify: bool = False,
    ) -> AnalysisOutcome:
        """Send one article to the analysis endpoint."""
        if not self.enabled or article.url in self._memory:
            return AnalysisOutcome(success=False)

        if await self._already_stored(article.url):
            logger.debug("Article already stored, skipping", url=article.url)
            self._memory.add(article.url)
            self._metrics.record_analysis("skipped")
            return AnalysisOutcome(success=False)

        payload = {
            "url": article.url,
            "title": article.title,
            "description": article.description,
            "imageUrl": article.image_url,
            "sourceName": source_name,
            "skipTelegram": skip_notify,
        }
        try:
            data = await self._post(self._config.analyze_url, payload)
        except HTTPClientError as e:
            data = _error_body(e)
            if data is None:
                return self._failed(article, str(e))
        except ValueError as e:
            return self._failed(article, str(e))

        error = data.get("error")
        if error == ALREADY_EXISTS_ERROR:
            self._memory.add(article.url)
            self._metrics.record_analysis("skipped")
            return AnalysisOutcome(success=False)
        if error:
            return self._failed(article, str(error))

        self._memory.add(article.url)
        score = (data.get("analysis") or {}).get("relevance_score")
        self.status.analyzed_count += 1
        self.status.last_analyzed_url = article.url
        self._metrics.record_analysis("analyzed")
        logger.info("Article analyzed", url=article.url, score=score)

        return AnalysisOutcome(
            success=True,
            news_id=str(data["newsId"]) if data.get("newsId") is not None else None,
            score=float(score) if score is not None else None,
        )

    async def notify(self, news_ids: list[str]) -> int:
        """Forward analyzed items one by one. Returns how many were accepted."""
        if not self._config.notify_url or not news_ids:
            return 0

        sent = 0
        for index, news_id in enumerate(news_ids):
            try:
                await self._post(self._config.notify_url, {"newsId": news_id})
                sent += 1
            except (HTTPClientError, ValueError) as e:
                logger.warning("Failed to forward item", news_id=news_id, error=str(e))
            if index + 1 < len(news_ids) and self._config.notify_delay_seconds:
                await asyncio.sleep(self._config.notify_delay_seconds)
        return sent

    async def _already_stored(self, url: str) -> bool:
        if self._history is None:
            return False
        try:
            return await self._history.article_exists(url)
        except PersistenceError as e:
            logger.warning("Duplicate check failed, analyzing anyway", url=url, error=str(e))
            return False

    async def _post(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if self._config.auth_token:
            headers["Authorization"] = f"Bearer {self._config.auth_token}"
        async with HTTPClient(
            RetryConfig(max_retries=0),
            timeout=self._config.request_timeout_seconds,
            headers=headers,
        ) as client:
            response = await client.post(url, json_body=payload)
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected response from {url}")
        return data

    def _failed(self, article: Article, message: str) -> AnalysisOutcome:
        self.status.failed_count += 1
        self._metrics.record_analysis("failed")
        logger.warning("Analysis failed", url=article.url, error=message)
        return AnalysisOutcome(success=False)
