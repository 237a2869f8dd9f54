"""
Quote and history provider adapters used by the MarketDataGateway cascade.

Every adapter implements the same small interface so the gateway can walk an
ordered list of them without caring where the data comes from:

- fetch_quote(symbol) returns a Quote, or None when the source simply has no
  data for the symbol. Transport and parse errors raise.
- fetch_history(symbol, start, end) returns a list of HistoricalBar, empty
  when nothing falls in the range.

Sources (all free, keys optional):
- Yahoo Finance chart API
- Finnhub (finnhub-python client, needs FINNHUB_API_KEY)
- IEX Cloud public test token
- Polygon.io demo key
- yfinance (scrapes Yahoo, used as the last live source)
Alpha Vantage lives in alphavantage_service.py.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional

import finnhub
import pandas as pd
import yfinance as yf

from ..models.stock import HistoricalBar, Quote
from ..utils.http import HttpClient

logger = logging.getLogger(__name__)

def to_unix(day: str, end_of_day: bool = False) -> int:
    moment = datetime.combine(date.fromisoformat(day), time.max if end_of_day else time.min)
    return int(moment.replace(tzinfo=timezone.utc).timestamp())

def in_range(day: str, start: str, end: str) -> bool:
    return start <= day[:10] <= end


class QuoteProvider(ABC):
    """A source of current quotes."""

    name = "unknown"

    @property
    def available(self) -> bool:
        """False when the provider cannot be used at all (e.g. missing key)"""
        return True

    @abstractmethod
    async def fetch_quote(self, symbol: str) -> Optional[Quote]:
        """Return the current quote, or None when the symbol is unknown."""


class HistoryProvider(ABC):
    """A source of daily bars."""

    name = "unknown"

    @property
    def available(self) -> bool:
        return True

    @abstractmethod
    async def fetch_history(self, symbol: str, start: str, end: str) -> List[HistoricalBar]:
        """Return daily bars between start and end (inclusive, YYYY-MM-DD)."""


class YahooFinanceProvider(QuoteProvider, HistoryProvider):
    """Yahoo Finance v8 chart endpoint, no key required"""

    name = "yahoo_finance"
    base_url = "https://query1.finance.yahoo.com/v8/finance/chart"

    def __init__(self, http: HttpClient):
        self.http = http

    async def fetch_quote(self, symbol: str) -> Optional[Quote]:
        data = await self.http.get_json(f"{self.base_url}/{symbol}")
        result = ((data or {}).get('chart') or {}).get('result') or []
        if not result or not result[0].get('meta'):
            return None

        meta = result[0]['meta']
        price = meta.get('regularMarketPrice')
        previous_close = meta.get('previousClose') or meta.get('chartPreviousClose')
        if not price or not previous_close:
            return None

        change = price - previous_close
        return Quote(
            symbol=meta.get('symbol', symbol),
            name=meta.get('longName') or symbol,
            price=price,
            change=change,
            change_percent=(change / previous_close) * 100,
            volume=meta.get('regularMarketVolume') or 0,
            high=meta.get('regularMarketDayHigh') or price,
            low=meta.get('regularMarketDayLow') or price,
            open=meta.get('regularMarketOpen') or price,
            previous_close=previous_close,
            source=self.name,
        )

    async def fetch_history(self, symbol: str, start: str, end: str) -> List[HistoricalBar]:
        params = {
            'period1': to_unix(start),
            'period2': to_unix(end, end_of_day=True),
            'interval': '1d',
        }
        data = await self.http.get_json(f"{self.base_url}/{symbol}", params)
        result = ((data or {}).get('chart') or {}).get('result') or []
        if not result:
            return []

        chart = result[0]
        timestamps = chart.get('timestamp') or []
        indicators = chart.get('indicators') or {}
        quotes = indicators.get('quote') or [{}]
        quote = quotes[0]
        adjclose = ((indicators.get('adjclose') or [{}])[0]).get('adjclose')

        bars = []
        for i, ts in enumerate(timestamps):
            try:
                o, h, l, c = quote['open'][i], quote['high'][i], quote['low'][i], quote['close'][i]
            except (KeyError, IndexError):
                continue
            # Yahoo leaves gaps as nulls on halted days
            if None in (o, h, l, c):
                continue
            volumes = quote.get('volume') or []
            bars.append(HistoricalBar(
                symbol=symbol,
                date=datetime.fromtimestamp(ts, tz=timezone.utc).date().isoformat(),
                open=o,
                high=h,
                low=l,
                close=c,
                volume=int((volumes[i] if i < len(volumes) else 0) or 0),
                adjusted_close=adjclose[i] if adjclose and i < len(adjclose) and adjclose[i] is not None else c,
            ))
        return bars


class FinnhubProvider(QuoteProvider):
    """Finnhub quote endpoint through the official client"""

    name = "finnhub"

    def __init__(self, api_key: Optional[str] = None, client=None):
        self.client = client or (finnhub.Client(api_key=api_key) if api_key else None)
        if self.client is None:
            logger.info("FINNHUB_API_KEY not set, Finnhub provider disabled")

    @property
    def available(self) -> bool:
        return self.client is not None

    async def fetch_quote(self, symbol: str) -> Optional[Quote]:
        quote = await asyncio.to_thread(self.client.quote, symbol)
        # Finnhub answers unknown symbols with all zeros
        if not quote or not quote.get('c'):
            return None
        return Quote(
            symbol=symbol,
            name=symbol,
            price=quote['c'],
            change=quote.get('d') or 0,
            change_percent=quote.get('dp') or 0,
            volume=int(quote.get('v') or 0),
            high=quote.get('h') or quote['c'],
            low=quote.get('l') or quote['c'],
            open=quote.get('o') or quote['c'],
            previous_close=quote.get('pc') or quote['c'],
            source=self.name,
        )


class IEXCloudProvider(QuoteProvider, HistoryProvider):
    """IEX Cloud with the public test token"""

    name = "iex_cloud"
    base_url = "https://cloud.iexapis.com/stable/stock"

    def __init__(self, http: HttpClient, token: str = "pk_test"):
        self.http = http
        self.token = token

    async def fetch_quote(self, symbol: str) -> Optional[Quote]:
        data = await self.http.get_json(f"{self.base_url}/{symbol}/quote", {'token': self.token})
        if not isinstance(data, dict) or not data.get('latestPrice'):
            return None
        price = data['latestPrice']
        return Quote(
            symbol=data.get('symbol', symbol),
            name=data.get('companyName') or symbol,
            price=price,
            change=data.get('change') or 0,
            change_percent=(data.get('changePercent') or 0) * 100,
            volume=int(data.get('volume') or 0),
            high=data.get('high') or price,
            low=data.get('low') or price,
            open=data.get('open') or price,
            previous_close=data.get('previousClose') or price,
            source=self.name,
        )

    async def fetch_history(self, symbol: str, start: str, end: str) -> List[HistoricalBar]:
        # The free chart endpoint only serves fixed ranges, filter locally
        data = await self.http.get_json(f"{self.base_url}/{symbol}/chart/1m", {'token': self.token})
        if not isinstance(data, list):
            return []
        return [
            HistoricalBar(
                symbol=symbol,
                date=item['date'],
                open=item['open'],
                high=item['high'],
                low=item['low'],
                close=item['close'],
                volume=int(item.get('volume') or 0),
                adjusted_close=item['close'],
            )
            for item in data
            if item.get('date') and in_range(item['date'], start, end)
        ]


class PolygonProvider(QuoteProvider):
    """Polygon.io last quote, demo key. Only gives a price, no daily stats"""

    name = "polygon"
    base_url = "https://api.polygon.io/v1/last_quote/stocks"

    def __init__(self, http: HttpClient, api_key: str = "demo"):
        self.http = http
        self.api_key = api_key

    async def fetch_quote(self, symbol: str) -> Optional[Quote]:
        data = await self.http.get_json(f"{self.base_url}/{symbol}", {'apikey': self.api_key})
        if not isinstance(data, dict) or data.get('status') != 'OK' or not data.get('results'):
            return None
        result = data['results']
        price = result.get('P')
        if not price:
            return None
        return Quote(
            symbol=symbol,
            name=symbol,
            price=price,
            change=0,
            change_percent=0,
            volume=int(result.get('S') or 0),
            high=price,
            low=price,
            open=price,
            previous_close=price,
            source=self.name,
        )


class YFinanceProvider(QuoteProvider, HistoryProvider):
    """yfinance, run in a worker thread since the library is blocking"""

    name = "yfinance"

    async def fetch_quote(self, symbol: str) -> Optional[Quote]:
        return await asyncio.to_thread(self._quote, symbol)

    async def fetch_history(self, symbol: str, start: str, end: str) -> List[HistoricalBar]:
        return await asyncio.to_thread(self._history, symbol, start, end)

    def _quote(self, symbol: str) -> Optional[Quote]:
        ticker = yf.Ticker(symbol)
        hist = ticker.history(period="5d")
        if hist.empty:
            return None

        current_price = float(hist['Close'].iloc[-1])
        prev_close = float(hist['Close'].iloc[-2]) if len(hist) > 1 else current_price
        change = current_price - prev_close
        return Quote(
            symbol=symbol,
            name=symbol,
            price=current_price,
            change=change,
            change_percent=(change / prev_close) * 100 if prev_close else 0,
            volume=int(hist['Volume'].iloc[-1]),
            high=float(hist['High'].iloc[-1]),
            low=float(hist['Low'].iloc[-1]),
            open=float(hist['Open'].iloc[-1]),
            previous_close=prev_close,
            source=self.name,
        )

    def _history(self, symbol: str, start: str, end: str) -> List[HistoricalBar]:
        ticker = yf.Ticker(symbol)
        # yfinance treats end as exclusive
        end_exclusive = (date.fromisoformat(end) + timedelta(days=1)).isoformat()
        hist = ticker.history(start=start, end=end_exclusive, auto_adjust=False)
        if hist.empty:
            return []

        bars = []
        for day, row in hist.iterrows():
            if pd.isna(row[['Open', 'High', 'Low', 'Close']]).any():
                continue
            close = float(row['Close'])
            bars.append(HistoricalBar(
                symbol=symbol,
                date=day.strftime('%Y-%m-%d'),
                open=float(row['Open']),
                high=float(row['High']),
                low=float(row['Low']),
                close=close,
                volume=int(row['Volume']),
                adjusted_close=float(row['Adj Close']) if 'Adj Close' in row else close,
            ))
        return bars
