"""
News Gateway

Fetches headlines for the date and symbol selected in the time machine.

Sources are tried in order (RSS feeds, Reddit, Hacker News); the first one
that yields anything wins. Inside a source the channels run concurrently
and each is capped, then the merged batch is deduplicated, sorted newest
first and cut to the overall limit.

Failures are never raised: no news is a normal state, so when every source
comes back empty a small set of synthetic articles for the date is returned
instead. ``fetch_report`` returns what failed alongside the articles, and
``last_failures`` keeps the report of the latest completed call.

Example Usage:
    news_gateway = NewsGateway.from_config(HttpClient())
    news = await news_gateway.get_news_for_date('2020-01-01', 'AAPL')
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, List, NamedTuple, Optional, Sequence

from ..config import config as default_config
from ..models.stock import NewsItem
from ..utils.dates import DateLike, iso_day
from ..utils.http import HttpClient
from .mock_data import mock_news
from .news_sources import HackerNewsSource, NewsSource, RedditSource, RSSFeedSource

logger = logging.getLogger(__name__)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)

class NewsReport(NamedTuple):
    items: List[NewsItem]
    failures: Dict[str, str]

class NewsGateway:
    """
    Ordered cascade over news sources with a synthetic fallback
    """
    def __init__(
        self,
        sources: Sequence[NewsSource],
        limit: int = 10,
        per_source: int = 5,
        timeout: float = 8.0,
    ):
        self.sources = list(sources)
        self.limit = limit
        self.per_source = per_source
        self.timeout = timeout
        self.last_failures: Dict[str, str] = {}
        logger.info(f"Initializing NewsGateway with sources {[s.name for s in self.sources]}")

    @classmethod
    def from_config(cls, http: HttpClient, settings=default_config) -> "NewsGateway":
        return cls(
            sources=[RSSFeedSource(http), RedditSource(http), HackerNewsSource(http)],
            limit=settings.NEWS_LIMIT,
            per_source=settings.NEWS_PER_SOURCE,
            timeout=settings.PROVIDER_TIMEOUT,
        )

    async def get_news_for_date(self, date: DateLike, symbol: Optional[str] = None) -> List[NewsItem]:
        """Get up to ``limit`` articles, newest first. Never raises for missing news."""
        report = await self.fetch_report(date, symbol)
        # Snapshot of the most recent completed fetch, for the health endpoint
        self.last_failures = report.failures
        return report.items

    async def fetch_report(self, date: DateLike, symbol: Optional[str] = None) -> NewsReport:
        """
        Like ``get_news_for_date`` but also returns what failed during this
        call, keyed by source or ``source:channel``.
        """
        day = iso_day(date)
        failures: Dict[str, str] = {}
        logger.info(f"Starting news fetch for {symbol or 'market'} on {day}")

        for source in self.sources:
            try:
                batch = await asyncio.wait_for(
                    source.fetch_news(day, symbol, self.per_source), self.timeout
                )
            except Exception as e:
                logger.warning(f"News source {source.name} failed, trying next: {str(e)}")
                failures[source.name] = str(e) or type(e).__name__
                continue

            for channel, error in batch.errors.items():
                failures[f"{source.name}:{channel}"] = error

            articles = self._finalize(batch.items)
            if articles:
                logger.info(f"Returning {len(articles)} articles from {source.name}")
                return NewsReport(articles, failures)
            logger.info(f"News source {source.name} returned nothing")

        logger.warning(f"All news sources failed for {day}, using fallback articles")
        return NewsReport(mock_news(day, symbol)[:self.limit], failures)

    def _finalize(self, items: List[NewsItem]) -> List[NewsItem]:
        unique_news = self._remove_duplicates(items)
        unique_news.sort(key=self._published, reverse=True)
        return unique_news[:self.limit]

    def _remove_duplicates(self, news_list: List[NewsItem]) -> List[NewsItem]:
        """Remove duplicate articles by id and by title"""
        unique_news = []
        seen_ids = set()
        seen_titles = set()

        for news in news_list:
            title = news.title.strip().lower()
            if news.id in seen_ids or title in seen_titles:
                continue
            seen_ids.add(news.id)
            seen_titles.add(title)
            unique_news.append(news)

        return unique_news

    @staticmethod
    def _published(news: NewsItem) -> datetime:
        try:
            moment = datetime.fromisoformat(news.published_at.replace('Z', '+00:00'))
        except ValueError:
            return _OLDEST
        return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)
