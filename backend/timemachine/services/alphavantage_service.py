"""
Alpha Vantage Service

Alpha Vantage plays two roles in the cascade:
- with the public ``demo`` key it is one more free source for quotes and
  daily history (it only answers for a handful of symbols)
- with ALPHA_VANTAGE_API_KEY set it is the rate-limited primary provider the
  gateway falls back to once every free source has failed, and the only
  source for symbol search and intraday bars

Free Tier Limits:
- 25 requests per day
- 5 API requests per minute

Rate limiting is not tracked here; the gateway owns the RateLimiter.

Get your free API key at: https://www.alphavantage.co/support/#api-key
"""

import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from ..exceptions import SearchFailedError
from ..models.stock import HistoricalBar, Quote, SearchResult
from ..utils.http import HttpClient
from .quote_providers import HistoryProvider, QuoteProvider, in_range

logger = logging.getLogger(__name__)

# "compact" only covers the last 100 trading days
COMPACT_WINDOW_DAYS = 140

class AlphaVantageError(Exception):
    """Alpha Vantage answered with a throttling or premium-only notice"""

class AlphaVantageService(QuoteProvider, HistoryProvider):
    """
    Alpha Vantage API client for quotes, daily/intraday bars and search
    """

    base_url = "https://www.alphavantage.co/query"

    def __init__(self, http: HttpClient, api_key: Optional[str] = None, name: Optional[str] = None):
        self.http = http
        self.api_key = api_key or "demo"
        self.name = name or ("alpha_vantage" if api_key else "alpha_vantage_free")
        logger.info(f"Alpha Vantage initialized as {self.name} with key: {self.api_key[:4]}...")

    @property
    def has_key(self) -> bool:
        return self.api_key != "demo"

    async def _query(self, **params) -> Dict[str, Any]:
        data = await self.http.get_json(self.base_url, dict(params, apikey=self.api_key))
        if not isinstance(data, dict):
            raise AlphaVantageError("Unexpected Alpha Vantage response")
        notice = data.get('Note') or data.get('Information')
        if notice:
            raise AlphaVantageError(notice)
        return data

    async def fetch_quote(self, symbol: str) -> Optional[Quote]:
        """
        Get real-time quote for a single symbol using Global Quote function
        """
        data = await self._query(function='GLOBAL_QUOTE', symbol=symbol)
        if data.get('Error Message'):
            return None
        return self._format_quote(data, symbol)

    async def fetch_history(self, symbol: str, start: str, end: str) -> List[HistoricalBar]:
        """
        Get daily adjusted bars, filtered to [start, end] since the API has no
        range parameter
        """
        recent = date.fromisoformat(start) >= date.today() - timedelta(days=COMPACT_WINDOW_DAYS)
        data = await self._query(
            function='TIME_SERIES_DAILY_ADJUSTED',
            symbol=symbol,
            outputsize='compact' if recent else 'full',
        )
        if data.get('Error Message'):
            return []
        return self._format_daily(data, symbol, start, end)

    async def fetch_intraday(self, symbol: str, day: str, interval: str = "5min") -> List[HistoricalBar]:
        """
        Get intraday bars for one day (1min, 5min, 15min, 30min, 60min intervals)
        """
        data = await self._query(
            function='TIME_SERIES_INTRADAY',
            symbol=symbol,
            interval=interval,
            outputsize='compact',
        )
        if data.get('Error Message'):
            return []
        return self._format_intraday(data, symbol, day, interval)

    async def search_symbols(self, query: str) -> List[SearchResult]:
        """
        Search for symbols using the SYMBOL_SEARCH function.

        Raises SearchFailedError on transport failure or an error payload.
        """
        try:
            data = await self.http.get_json(
                self.base_url,
                {'function': 'SYMBOL_SEARCH', 'keywords': query, 'apikey': self.api_key}
            )
        except Exception as e:
            logger.error(f"Alpha Vantage search error for '{query}': {str(e)}")
            raise SearchFailedError("Failed to search stocks") from e

        if not isinstance(data, dict):
            raise SearchFailedError("Failed to search stocks")
        error = data.get('Error Message') or data.get('Note') or data.get('Information')
        if error:
            logger.error(f"Alpha Vantage search rejected '{query}': {error}")
            raise SearchFailedError(f"Failed to search stocks: {error}")

        return [
            SearchResult(
                symbol=match.get("1. symbol", ""),
                name=match.get("2. name", ""),
                type=match.get("3. type", ""),
                region=match.get("4. region", ""),
                currency=match.get("8. currency", ""),
            )
            for match in data.get("bestMatches", [])
        ]

    def _format_quote(self, data: Dict[str, Any], symbol: str) -> Optional[Quote]:
        """Format Alpha Vantage quote data to match our internal format"""
        quote = data.get("Global Quote")
        if not quote or not quote.get("05. price"):
            return None

        # Alpha Vantage uses numbered keys
        return Quote(
            symbol=quote.get("01. symbol", symbol),
            name=symbol,
            price=float(quote["05. price"]),
            change=float(quote.get("09. change", 0)),
            change_percent=float(quote.get("10. change percent", "0%").replace("%", "")),
            volume=int(float(quote.get("06. volume", 0))),
            high=float(quote.get("03. high", 0)),
            low=float(quote.get("04. low", 0)),
            open=float(quote.get("02. open", 0)),
            previous_close=float(quote.get("08. previous close", 0)),
            source=self.name,
        )

    def _format_daily(self, data: Dict[str, Any], symbol: str, start: str, end: str) -> List[HistoricalBar]:
        """Format daily historical data"""
        time_series = data.get("Time Series (Daily)")
        if not time_series:
            return []

        bars = []
        for day, values in time_series.items():
            if not in_range(day, start, end):
                continue
            close = float(values.get("4. close", 0))
            bars.append(HistoricalBar(
                symbol=symbol,
                date=day,
                open=float(values.get("1. open", 0)),
                high=float(values.get("2. high", 0)),
                low=float(values.get("3. low", 0)),
                close=close,
                volume=int(float(values.get("6. volume", values.get("5. volume", 0)))),
                adjusted_close=float(values.get("5. adjusted close", close)),
            ))

        # Alpha Vantage lists most recent first
        bars.sort(key=lambda bar: bar.date)
        return bars

    def _format_intraday(self, data: Dict[str, Any], symbol: str, day: str, interval: str) -> List[HistoricalBar]:
        """Format intraday data"""
        time_series = data.get(f"Time Series ({interval})")
        if not time_series:
            return []

        bars = []
        for timestamp, values in time_series.items():
            if timestamp[:10] != day:
                continue
            close = float(values.get("4. close", 0))
            bars.append(HistoricalBar(
                symbol=symbol,
                date=timestamp,
                open=float(values.get("1. open", 0)),
                high=float(values.get("2. high", 0)),
                low=float(values.get("3. low", 0)),
                close=close,
                volume=int(float(values.get("5. volume", 0))),
                adjusted_close=close,
            ))

        bars.sort(key=lambda bar: bar.date)
        return bars
