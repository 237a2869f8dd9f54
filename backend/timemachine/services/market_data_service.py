"""
Market Data Gateway

Coordinates the quote and history providers with an ordered fallback
cascade:

1. Free sources, strictly in order: Yahoo Finance, Finnhub, IEX Cloud,
   Alpha Vantage (demo key), Polygon, yfinance
2. The keyed Alpha Vantage primary, guarded by a sliding-window RateLimiter
3. Synthetic data, so the frontend always has something to draw

A provider that raises, times out or returns nothing is a soft failure: it
is logged, counted in the status report and the next provider is tried.
Only a denied rate limit (RateLimitedError) and a failed search
(SearchFailedError) ever reach the caller.

Example usage:
    gateway = MarketDataGateway.from_config(HttpClient())
    quote = await gateway.get_current_quote('AAPL')
    bars = await gateway.get_historical('AAPL', '2020-01-01', '2020-01-31')
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

from ..config import config as default_config
from ..exceptions import DataUnavailableError, RateLimitedError, SearchFailedError
from ..models.stock import HistoricalBar, Quote, SearchResult
from ..utils.dates import DateLike, iso_day
from ..utils.http import HttpClient
from ..utils.rate_limiter import RateLimiter
from ..utils.smart_cache import SmartCache, cache_key
from .alphavantage_service import AlphaVantageService
from .mock_data import generate_mock_historical, mock_quote
from .quote_providers import (
    FinnhubProvider, HistoryProvider, IEXCloudProvider, PolygonProvider,
    QuoteProvider, YahooFinanceProvider, YFinanceProvider,
)

logger = logging.getLogger(__name__)

def normalize_bars(bars: Iterable[HistoricalBar], start: str, end: str) -> List[HistoricalBar]:
    """
    Keep bars inside [start, end], one per date, ascending.

    Applied to every provider's output whatever its native order or range
    support.
    """
    by_date: Dict[str, HistoricalBar] = {}
    for bar in bars:
        day = bar.date[:10]
        if start <= day <= end and day not in by_date:
            by_date[day] = bar
    return [by_date[day] for day in sorted(by_date)]


class MarketDataGateway:
    """
    Ordered provider cascade for quotes and daily history
    """

    def __init__(
        self,
        quote_providers: Sequence[QuoteProvider],
        history_providers: Sequence[HistoryProvider],
        primary: Optional[AlphaVantageService] = None,
        search_provider: Optional[AlphaVantageService] = None,
        rate_limiter: Optional[RateLimiter] = None,
        cache: Optional[SmartCache] = None,
        timeout: float = 8.0,
    ):
        self.quote_providers = list(quote_providers)
        self.history_providers = list(history_providers)
        self.primary = primary
        self.search_provider = search_provider or primary
        self.rate_limiter = rate_limiter or RateLimiter()
        self.cache = cache
        self.timeout = timeout

        names = {p.name for p in self.quote_providers + self.history_providers}
        if primary is not None:
            names.add(primary.name)
        self.provider_status: Dict[str, Dict[str, Any]] = {
            name: {'successes': 0, 'failures': 0, 'last_error': None, 'last_success': None}
            for name in names
        }

        logger.info(
            f"Market data gateway initialized: quotes={[p.name for p in self.quote_providers]}, "
            f"history={[p.name for p in self.history_providers]}, "
            f"primary={primary.name if primary else None}"
        )

    @classmethod
    def from_config(cls, http: HttpClient, settings=default_config) -> "MarketDataGateway":
        """Build the default cascade. Missing API keys only disable the providers that need them."""
        yahoo = YahooFinanceProvider(http)
        iex = IEXCloudProvider(http)
        alpha_free = AlphaVantageService(http)
        yfinance = YFinanceProvider()

        primary = None
        if settings.ALPHA_VANTAGE_API_KEY:
            primary = AlphaVantageService(http, api_key=settings.ALPHA_VANTAGE_API_KEY)
        else:
            logger.warning("ALPHA_VANTAGE_API_KEY not found, running on free sources only")

        return cls(
            quote_providers=[
                yahoo,
                FinnhubProvider(settings.FINNHUB_API_KEY),
                iex,
                alpha_free,
                PolygonProvider(http),
                yfinance,
            ],
            history_providers=[yahoo, alpha_free, iex, yfinance],
            primary=primary,
            search_provider=primary or alpha_free,
            rate_limiter=RateLimiter(settings.RATE_LIMIT_MAX_CALLS, settings.RATE_LIMIT_WINDOW),
            cache=SmartCache(),
            timeout=settings.PROVIDER_TIMEOUT,
        )

    async def get_current_quote(self, symbol: str, force_refresh: bool = False) -> Quote:
        """
        Get a quote from the first provider that has one.

        Never fails for lack of data: falls back to a synthetic quote. Raises
        RateLimitedError only when the keyed primary is needed but its quota
        is exhausted.
        """
        symbol = symbol.upper().strip()
        cache_k = cache_key("quote", symbol)
        if self.cache is not None and not force_refresh:
            cached = self.cache.get(cache_k)
            if cached:
                logger.debug(f"Returning cached quote for {symbol}")
                return cached

        for provider in self.quote_providers:
            if not provider.available:
                continue
            quote = await self._attempt(provider.name, lambda: provider.fetch_quote(symbol), self._valid_quote)
            if quote is not None:
                logger.debug(f"Quote for {symbol} from {provider.name}")
                self._cache_set(cache_k, quote)
                return quote

        if self.primary is not None:
            quote = await self._call_primary(lambda: self.primary.fetch_quote(symbol), self._valid_quote)
            if quote is not None:
                self._cache_set(cache_k, quote)
                return quote

        logger.error(f"All APIs failed for quote {symbol}, using mock data")
        return mock_quote(symbol)

    async def get_historical(self, symbol: str, start_date: DateLike, end_date: DateLike) -> List[HistoricalBar]:
        """
        Get daily bars between start_date and end_date inclusive, ascending.

        Falls back to a synthetic series when every source fails. An empty
        list is still a valid answer (e.g. an inverted range).
        """
        symbol = symbol.upper().strip()
        start, end = iso_day(start_date), iso_day(end_date)
        if start > end:
            logger.warning(f"Empty historical range for {symbol}: {start} > {end}")
            return []

        cache_k = cache_key("historical", symbol, start=start, end=end)
        if self.cache is not None:
            cached = self.cache.get(cache_k)
            if cached:
                logger.debug(f"Returning cached historical data for {symbol}")
                return cached

        def history_from(provider: HistoryProvider) -> Callable[[], Awaitable[List[HistoricalBar]]]:
            async def fetch():
                return normalize_bars(await provider.fetch_history(symbol, start, end), start, end)
            return fetch

        for provider in self.history_providers:
            if not provider.available:
                continue
            bars = await self._attempt(provider.name, history_from(provider), bool)
            if bars:
                logger.debug(f"Historical data for {symbol} from {provider.name}: {len(bars)} bars")
                self._cache_set(cache_k, bars)
                return bars

        if self.primary is not None:
            bars = await self._call_primary(history_from(self.primary), bool)
            if bars:
                self._cache_set(cache_k, bars)
                return bars

        logger.error(f"All APIs failed for historical data {symbol}, using mock data")
        return generate_mock_historical(symbol, start, end)

    async def search_symbols(self, query: str) -> List[SearchResult]:
        """
        Single-shot symbol search, no cascade. Raises SearchFailedError.
        """
        cache_k = cache_key("search", query=query.strip().lower())
        if self.cache is not None:
            cached = self.cache.get(cache_k)
            if cached is not None:
                return cached

        if self.search_provider is None:
            raise SearchFailedError("Symbol search is not configured")
        results = await self.search_provider.search_symbols(query)
        logger.info(f"Search for '{query}' returned {len(results)} results")
        self._cache_set(cache_k, results)
        return results

    async def get_intraday(self, symbol: str, day: DateLike) -> List[HistoricalBar]:
        """
        5-minute bars for one day from Alpha Vantage. Raises
        DataUnavailableError when nothing comes back.
        """
        symbol = symbol.upper().strip()
        target = iso_day(day)
        source = self.primary or self.search_provider
        if source is None:
            raise DataUnavailableError("Intraday data is not configured")
        cache_k = cache_key("intraday", symbol, day=target)
        if self.cache is not None:
            cached = self.cache.get(cache_k)
            if cached:
                return cached

        try:
            bars = await asyncio.wait_for(source.fetch_intraday(symbol, target), self.timeout)
        except Exception as e:
            logger.error(f"Intraday fetch failed for {symbol} on {target}: {str(e)}")
            raise DataUnavailableError("Failed to fetch intraday data") from e

        if not bars:
            raise DataUnavailableError(f"No intraday data found for {symbol} on {target}")
        self._cache_set(cache_k, bars)
        return bars

    def get_service_status(self) -> Dict[str, Any]:
        """Per-provider success/failure counts plus limiter and cache state"""
        return {
            'providers': self.provider_status,
            'primary_configured': self.primary is not None,
            'rate_limit': self.rate_limiter.get_status(),
            'cache_stats': self.cache.get_stats() if self.cache is not None else None,
            'timestamp': datetime.now().isoformat()
        }

    async def _call_primary(self, fetch: Callable[[], Awaitable[Any]], is_valid: Callable[[Any], bool]) -> Any:
        if not self.rate_limiter.can_make_call():
            wait_time = self.rate_limiter.get_wait_time()
            logger.warning(f"Rate limit reached for {self.primary.name}, wait {wait_time:.1f}s")
            raise RateLimitedError(wait_time, self.primary.name)

        self.rate_limiter.record_call()
        return await self._attempt(self.primary.name, fetch, is_valid)

    async def _attempt(self, name: str, fetch: Callable[[], Awaitable[Any]], is_valid: Callable[[Any], bool]) -> Any:
        """Run one provider call; any failure is contained here and reported as None"""
        status = self.provider_status.setdefault(
            name, {'successes': 0, 'failures': 0, 'last_error': None, 'last_success': None}
        )
        try:
            result = await asyncio.wait_for(fetch(), self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"API {name} timed out after {self.timeout}s")
            status['failures'] += 1
            status['last_error'] = 'timeout'
            return None
        except Exception as e:
            logger.warning(f"API {name} failed: {str(e)}")
            status['failures'] += 1
            status['last_error'] = str(e)
            return None

        if result is None or not is_valid(result):
            logger.info(f"API {name} returned no data")
            status['failures'] += 1
            status['last_error'] = 'no data'
            return None

        status['successes'] += 1
        status['last_success'] = datetime.now().isoformat()
        return result

    @staticmethod
    def _valid_quote(quote: Quote) -> bool:
        return quote.price > 0

    def _cache_set(self, key: str, data: Any) -> None:
        if self.cache is not None:
            self.cache.set(key, data)
