"""
Live price feed for the chart next to the time machine.

Keeps a rolling window of recent price points per symbol. The window starts
out filled with synthetic points so the chart has a shape immediately, then
each refresh asks the MarketDataGateway for a quote and pushes one point,
dropping the oldest.

A refresh never fails: if the gateway raises (including a rate limit on the
keyed provider) the synthetic quote is used for that tick.
"""

import asyncio
import logging
from collections import deque
from datetime import datetime
from typing import Callable, Deque, Dict, List, Optional, Set

from ..config import config
from ..models.stock import LivePoint
from .market_data_service import MarketDataGateway
from .mock_data import generate_mock_live_data, mock_quote

logger = logging.getLogger(__name__)

class LivePriceFeed:
    def __init__(
        self,
        market_data: MarketDataGateway,
        window: int = config.LIVE_WINDOW,
        interval: float = config.LIVE_REFRESH_INTERVAL,
        clock: Callable[[], datetime] = datetime.now,
    ):
        if window <= 0:
            raise ValueError("window must be positive")
        self.market_data = market_data
        self.window_size = window
        self.interval = interval
        self.clock = clock
        self._windows: Dict[str, Deque[LivePoint]] = {}
        self._refreshing: Set[str] = set()
        self._tasks: Dict[str, asyncio.Task] = {}

    def points(self, symbol: str) -> List[LivePoint]:
        """Current window for ``symbol``, oldest first"""
        return list(self._window(symbol.upper()))

    async def refresh(self, symbol: str) -> List[LivePoint]:
        """
        Fetch one quote and append it to the window.

        A refresh for a symbol that already has one outstanding is skipped
        and the window is returned unchanged.
        """
        symbol = symbol.upper()
        window = self._window(symbol)
        if symbol in self._refreshing:
            logger.debug(f"Refresh for {symbol} already running, skipping")
            return list(window)

        self._refreshing.add(symbol)
        try:
            try:
                quote = await self.market_data.get_current_quote(symbol)
            except Exception as e:
                logger.warning(f"Live quote for {symbol} failed, using mock price: {str(e)}")
                quote = mock_quote(symbol)

            now = self.clock()
            window.append(LivePoint(
                timestamp=now.isoformat(),
                price=quote.price,
                volume=quote.volume,
                time=now.strftime("%H:%M:%S"),
            ))
        finally:
            self._refreshing.discard(symbol)

        return list(window)

    def start(self, symbol: str) -> asyncio.Task:
        """Poll ``symbol`` every ``interval`` seconds until stopped"""
        symbol = symbol.upper()
        task = self._tasks.get(symbol)
        if task is not None and not task.done():
            return task
        logger.info(f"Starting live feed for {symbol} every {self.interval}s")
        task = asyncio.create_task(self._poll(symbol))
        self._tasks[symbol] = task
        return task

    async def stop(self, symbol: Optional[str] = None) -> None:
        """Stop polling ``symbol``, or every symbol when none is given"""
        symbols = [symbol.upper()] if symbol else list(self._tasks)
        for name in symbols:
            task = self._tasks.pop(name, None)
            if task is None:
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.info(f"Stopped live feed for {name}")

    async def _poll(self, symbol: str) -> None:
        while True:
            await self.refresh(symbol)
            await asyncio.sleep(self.interval)

    def _window(self, symbol: str) -> Deque[LivePoint]:
        if symbol not in self._windows:
            self._windows[symbol] = deque(
                generate_mock_live_data(
                    symbol,
                    points=self.window_size,
                    interval_seconds=self.interval,
                    now=self.clock(),
                ),
                maxlen=self.window_size,
            )
        return self._windows[symbol]
