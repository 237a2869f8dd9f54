"""Offline stand-ins for HTTP, providers and gateways used across the suite."""

import asyncio
from typing import Any, Dict, List, Optional

from timemachine.models.stock import HistoricalBar, NewsItem, Quote
from timemachine.services.news_sources import NewsSource
from timemachine.services.quote_providers import HistoryProvider, QuoteProvider


def make_quote(symbol: str = "AAPL", price: float = 100.0, source: str = "fake") -> Quote:
    return Quote(
        symbol=symbol,
        name=symbol,
        price=price,
        change=1.0,
        change_percent=1.0,
        volume=1000,
        high=price + 1,
        low=price - 1,
        open=price,
        previous_close=price - 1,
        source=source,
    )


def make_bar(day: str, close: float = 100.0, symbol: str = "AAPL") -> HistoricalBar:
    return HistoricalBar(
        symbol=symbol,
        date=day,
        open=close,
        high=close + 1,
        low=close - 1,
        close=close,
        volume=1000,
        adjusted_close=close,
    )


def make_news(item_id: str, title: str, published_at: str, source: str = "fake") -> NewsItem:
    return NewsItem(
        id=item_id,
        title=title,
        description=title,
        url=f"https://example.com/{item_id}",
        published_at=published_at,
        source=source,
    )


class StubHttp:
    """
    Answers get_json from a table of URL substrings. A value may be a
    payload, an exception to raise, or a callable taking (url, params).
    """

    def __init__(self, routes: Optional[Dict[str, Any]] = None):
        self.routes = routes or {}
        self.calls: List[tuple] = []

    async def get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        self.calls.append((url, dict(params or {})))
        for pattern, response in self.routes.items():
            if pattern in url:
                if isinstance(response, Exception):
                    raise response
                if callable(response):
                    return response(url, params or {})
                return response
        raise RuntimeError(f"no stub route for {url}")


class FakeQuoteProvider(QuoteProvider):
    def __init__(self, name: str, result: Optional[Quote] = None, error: Optional[Exception] = None,
                 available: bool = True, delay: float = 0):
        self.name = name
        self.result = result
        self.error = error
        self._available = available
        self.delay = delay
        self.calls = 0

    @property
    def available(self) -> bool:
        return self._available

    async def fetch_quote(self, symbol: str) -> Optional[Quote]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


class FakeHistoryProvider(HistoryProvider):
    def __init__(self, name: str, bars: Optional[List[HistoricalBar]] = None,
                 error: Optional[Exception] = None):
        self.name = name
        self.bars = bars or []
        self.error = error
        self.calls = 0

    async def fetch_history(self, symbol: str, start: str, end: str) -> List[HistoricalBar]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.bars)


class FakePrimary(FakeQuoteProvider, HistoryProvider):
    """Keyed provider double: quotes, history, intraday and search"""

    def __init__(self, quote: Optional[Quote] = None, bars: Optional[List[HistoricalBar]] = None,
                 intraday: Any = None, search: Any = None):
        super().__init__("alpha_vantage", result=quote)
        self.bars = bars or []
        self.intraday = intraday
        self.search = search
        self.history_calls = 0

    async def fetch_history(self, symbol: str, start: str, end: str) -> List[HistoricalBar]:
        self.history_calls += 1
        return list(self.bars)

    async def fetch_intraday(self, symbol: str, day: str) -> List[HistoricalBar]:
        if isinstance(self.intraday, Exception):
            raise self.intraday
        return self.intraday or []

    async def search_symbols(self, query: str):
        if isinstance(self.search, Exception):
            raise self.search
        return self.search or []


class FakeNewsSource(NewsSource):
    """
    News source whose channels map straight to canned items or errors. A
    channel may also be an async callable, awaited on every fetch.
    """

    def __init__(self, name: str, channel_results: Dict[str, Any]):
        super().__init__(http=None)
        self.name = name
        self.channel_results = channel_results
        self.calls = 0

    def channels(self) -> List[str]:
        return list(self.channel_results)

    async def fetch_channel(self, index: int, channel: str, limit: int) -> List[NewsItem]:
        self.calls += 1
        result = self.channel_results[channel]
        if callable(result):
            result = await result()
        if isinstance(result, Exception):
            raise result
        return list(result)


class FakeMarketData:
    """
    Gateway double for the session and live feed. Closes are per symbol;
    a symbol listed in ``gates`` blocks until its event is set.
    """

    def __init__(self, closes: Optional[Dict[str, float]] = None, error: Optional[Exception] = None):
        self.closes = closes or {}
        self.error = error
        self.gates: Dict[str, asyncio.Event] = {}
        self.history_calls: List[tuple] = []
        self.quote_calls = 0

    async def get_historical(self, symbol, start_date, end_date):
        self.history_calls.append((symbol, str(start_date), str(end_date)))
        if symbol in self.gates:
            await self.gates[symbol].wait()
        if self.error is not None:
            raise self.error
        close = self.closes.get(symbol, 100.0)
        return [make_bar(str(start_date), close - 1, symbol), make_bar(str(end_date), close, symbol)]

    async def get_current_quote(self, symbol, force_refresh=False):
        self.quote_calls += 1
        if symbol in self.gates:
            await self.gates[symbol].wait()
        if self.error is not None:
            raise self.error
        return make_quote(symbol, self.closes.get(symbol, 100.0))


class FakeNewsGateway:
    def __init__(self, items: Optional[List[NewsItem]] = None):
        self.items = items if items is not None else [
            make_news("n-1", "Markets rally", "2020-01-01T10:00:00Z")
        ]
        self.calls: List[tuple] = []
        self.last_failures: Dict[str, str] = {}

    async def get_news_for_date(self, date, symbol=None):
        self.calls.append((date, symbol))
        return list(self.items)
