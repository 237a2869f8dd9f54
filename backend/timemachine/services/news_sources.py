"""
News source adapters used by the NewsGateway cascade.

Each source is made of channels (RSS feeds, subreddits, the Hacker News top
list). Channels are fetched concurrently and each one is capped before the
results are merged, so one noisy feed cannot crowd out the others and one
broken feed does not sink the source.

Data Sources:
- RSS feeds (Yahoo Finance, MarketWatch, Bloomberg) via the rss2json API
- Reddit hot posts from investing subreddits
- Hacker News top stories
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Dict, List, NamedTuple, Optional

from bs4 import BeautifulSoup

from ..models.stock import NewsItem
from ..utils.http import HttpClient

logger = logging.getLogger(__name__)

def clean_text(html: Optional[str], max_length: int = 200) -> str:
    """Strip markup from a feed description and cut it to max_length"""
    if not html:
        return ""
    text = BeautifulSoup(html, 'html.parser').get_text(" ", strip=True)
    return text[:max_length] + "..." if len(text) > max_length else text

def to_iso(value) -> str:
    """Best-effort conversion of feed dates (RFC 822, ISO, unix seconds) to ISO 8601 UTC"""
    if value is None or value == "":
        return datetime.now(timezone.utc).isoformat()
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()
    try:
        moment = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        try:
            moment = parsedate_to_datetime(str(value))
        except (TypeError, ValueError):
            logger.debug(f"Unparseable feed date: {value}")
            return datetime.now(timezone.utc).isoformat()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat()


class NewsSourceError(Exception):
    """Every channel of a news source failed"""

    def __init__(self, message: str, errors: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.errors = errors or {}


class NewsBatch(NamedTuple):
    """Items merged from one fetch, with the channels that failed during it"""
    items: List[NewsItem]
    errors: Dict[str, str]


class NewsSource(ABC):
    """A news-like source made of independently fetched channels."""

    name = "unknown"

    def __init__(self, http: HttpClient):
        self.http = http

    @abstractmethod
    def channels(self) -> List[str]:
        """Channel identifiers, in priority order."""

    @abstractmethod
    async def fetch_channel(self, index: int, channel: str, limit: int) -> List[NewsItem]:
        """Fetch at most ``limit`` items from one channel."""

    async def fetch_news(self, date: str, symbol: Optional[str] = None, limit: int = 5) -> NewsBatch:
        """
        Fetch every channel concurrently and merge them in channel order.

        Live sources only know "what is hot now", so date and symbol are not
        used for filtering. Channel failures come back in the batch, keyed by
        channel. Raises NewsSourceError when all channels fail.
        """
        channels = self.channels()
        results = await asyncio.gather(
            *[self.fetch_channel(i, channel, limit) for i, channel in enumerate(channels)],
            return_exceptions=True
        )

        errors: Dict[str, str] = {}
        items: List[NewsItem] = []
        for channel, result in zip(channels, results):
            if isinstance(result, Exception):
                logger.warning(f"{self.name} channel {channel} failed: {str(result)}")
                errors[channel] = str(result) or type(result).__name__
                continue
            items.extend(result[:limit])

        if channels and len(errors) == len(channels):
            raise NewsSourceError(f"All {self.name} channels failed", errors)

        logger.info(f"Retrieved {len(items)} articles from {self.name}")
        return NewsBatch(items, errors)


class RSSFeedSource(NewsSource):
    """Financial RSS feeds converted to JSON by rss2json"""

    name = "rss"
    converter_url = "https://api.rss2json.com/v1/api.json"
    feeds = [
        'https://feeds.finance.yahoo.com/rss/2.0/headline',
        'https://feeds.marketwatch.com/marketwatch/topstories/',
        'https://feeds.bloomberg.com/markets/news.rss',
    ]

    def channels(self) -> List[str]:
        return list(self.feeds)

    async def fetch_channel(self, index: int, channel: str, limit: int) -> List[NewsItem]:
        data = await self.http.get_json(self.converter_url, {'rss_url': channel})
        items = (data or {}).get('items') or []

        articles = []
        for i, item in enumerate(items[:limit]):
            if not item.get('title'):
                continue
            articles.append(NewsItem(
                id=f"rss-{index}-{i}",
                title=item['title'].strip(),
                description=clean_text(item.get('description') or item.get('content')),
                url=item.get('link') or '#',
                published_at=to_iso(item.get('pubDate')),
                source=((data.get('feed') or {}).get('title')) or 'RSS Feed',
                url_to_image=item.get('thumbnail') or None,
            ))
        return articles


class RedditSource(NewsSource):
    """Hot posts from investing subreddits"""

    name = "reddit"
    subreddits = ['stocks', 'investing', 'SecurityAnalysis', 'ValueInvesting']

    def channels(self) -> List[str]:
        return list(self.subreddits)

    async def fetch_channel(self, index: int, channel: str, limit: int) -> List[NewsItem]:
        data = await self.http.get_json(f"https://www.reddit.com/r/{channel}/hot.json", {'limit': limit})
        children = ((data or {}).get('data') or {}).get('children') or []

        articles = []
        for i, child in enumerate(children[:limit]):
            post = child.get('data') or {}
            if not post.get('title'):
                continue
            thumbnail = post.get('thumbnail') or ''
            articles.append(NewsItem(
                id=f"reddit-{channel}-{i}",
                title=post['title'],
                description=clean_text(post.get('selftext') or post['title']),
                url=f"https://reddit.com{post.get('permalink', '')}",
                published_at=to_iso(post.get('created_utc')),
                source=f"r/{channel}",
                url_to_image=thumbnail if thumbnail.startswith('http') else None,
            ))
        return articles


class HackerNewsSource(NewsSource):
    """Hacker News top stories from the Firebase API"""

    name = "hacker_news"
    base_url = "https://hacker-news.firebaseio.com/v0"

    def channels(self) -> List[str]:
        return ['topstories']

    async def fetch_channel(self, index: int, channel: str, limit: int) -> List[NewsItem]:
        story_ids = await self.http.get_json(f"{self.base_url}/{channel}.json")
        if not isinstance(story_ids, list):
            return []

        # Some entries are jobs or polls, look a little further than needed
        candidates = story_ids[:limit * 2]
        stories = await asyncio.gather(
            *[self.http.get_json(f"{self.base_url}/item/{story_id}.json") for story_id in candidates],
            return_exceptions=True
        )

        articles = []
        for story_id, story in zip(candidates, stories):
            if isinstance(story, Exception):
                logger.debug(f"Hacker News story {story_id} failed: {str(story)}")
                continue
            if not story or story.get('type') != 'story' or not story.get('title'):
                continue
            articles.append(NewsItem(
                id=f"hn-{story_id}",
                title=story['title'],
                description=clean_text(story.get('text') or story['title']),
                url=story.get('url') or f"https://news.ycombinator.com/item?id={story_id}",
                published_at=to_iso(story.get('time')),
                source='Hacker News',
            ))
            if len(articles) >= limit:
                break
        return articles
