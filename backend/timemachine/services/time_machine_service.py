"""
Time Machine Session

Holds what the user is looking at (date, time, symbol), the data loaded for
it, and the simulated trade log.

Selection changes bump a version number. Every load is tagged with the
version it was started for, and a load that finishes after the selection
has moved on is thrown away, so a slow response for an old symbol can never
overwrite the current one. Each setter goes through ``select``, which starts
a fresh load and cancels the one it supersedes.

Trades are appended to the log and the portfolio is recomputed from the
whole log by the PortfolioLedger at the latest known price.

Example usage:
    session = TimeMachineSession(market_data, news)
    await session.select(date='2021-03-01', symbol='MSFT')
    execution = session.submit_order('buy', 10)
    session.snapshot()
"""

import asyncio
import itertools
import logging
import time
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Union

from pydantic import ValidationError

from ..config import config
from ..exceptions import NoPriceAvailableError, TradeValidationError
from ..models.portfolio import RejectedTrade, Trade, TradeDraft, TradeExecution, TradeSide
from ..models.session import Selection, SessionState
from ..models.stock import HistoricalBar, NewsItem
from ..utils.dates import DateLike, iso_day
from .market_data_service import MarketDataGateway
from .news_service import NewsGateway
from .portfolio_service import PortfolioLedger, initial_portfolio

logger = logging.getLogger(__name__)

class TimeMachineSession:
    """
    Session-level coordinator for one user's time machine
    """
    def __init__(
        self,
        market_data: MarketDataGateway,
        news: NewsGateway,
        starting_cash: float = config.STARTING_CASH,
        history_window_days: int = config.HISTORY_WINDOW_DAYS,
        selected_date: DateLike = config.DEFAULT_DATE,
        selected_time: str = config.DEFAULT_TIME,
        selected_symbol: str = config.DEFAULT_SYMBOL,
    ):
        self.market_data = market_data
        self.news_gateway = news
        self.starting_cash = starting_cash
        self.history_window_days = history_window_days

        self.selected_date = iso_day(selected_date)
        self.selected_time = selected_time
        self.selected_symbol = selected_symbol.upper()
        # Display flag only, nothing advances the clock
        self.is_playing = False

        self.current_price: Optional[float] = None
        self.last_prices: Dict[str, float] = {}
        self.historical_data: List[HistoricalBar] = []
        self.news: List[NewsItem] = []
        self.trades: List[Trade] = []
        self.rejected_trades: List[RejectedTrade] = []
        self.portfolio = initial_portfolio(starting_cash)
        self.loading = False
        self.error: Optional[str] = None

        self._version = 0
        self._inflight: Optional[asyncio.Task] = None
        self._trade_sequence = itertools.count(1)

    @property
    def selection(self) -> Selection:
        return Selection(
            version=self._version,
            date=self.selected_date,
            time=self.selected_time,
            symbol=self.selected_symbol,
        )

    def set_date(self, value: DateLike) -> asyncio.Task:
        """Select another day and reload its data. Returns the load task."""
        return self.select(date=value)

    def set_time(self, value: str) -> asyncio.Task:
        return self.select(time=value)

    def set_symbol(self, symbol: str) -> asyncio.Task:
        return self.select(symbol=symbol)

    def select(
        self,
        date: Optional[DateLike] = None,
        time: Optional[str] = None,
        symbol: Optional[str] = None,
    ) -> asyncio.Task:
        """
        Change the selection and start loading data for it.

        Must be called from a running event loop. Every argument is checked
        before anything changes, so a ValueError leaves the selection as it
        was. Cancels the load for the previous selection if it is still
        running and returns the new load's task, which callers may await or
        cancel.
        """
        new_date = iso_day(date) if date is not None else self.selected_date
        if time is not None:
            datetime.strptime(time, "%H:%M")
        new_symbol = self.selected_symbol
        if symbol is not None:
            new_symbol = symbol.upper().strip()
            if not new_symbol:
                raise ValueError("Symbol must not be empty")

        self.selected_date = new_date
        self.selected_time = time if time is not None else self.selected_time
        self.selected_symbol = new_symbol
        self._version += 1

        if self._inflight is not None and not self._inflight.done():
            logger.debug("Cancelling load for superseded selection")
            self._inflight.cancel()

        self._inflight = asyncio.create_task(self.load(self.selection))
        return self._inflight

    async def load(self, selection: Optional[Selection] = None) -> bool:
        """
        Load the history window and news for ``selection`` concurrently.

        Returns False when the result was discarded because the selection
        changed while it was loading. ``loading`` is cleared when the load
        for the current selection ends, however it ends.
        """
        selection = selection or self.selection
        end = date.fromisoformat(selection.date)
        start = end - timedelta(days=self.history_window_days)

        self.loading = True
        self.error = None
        try:
            history, news = await asyncio.gather(
                self.market_data.get_historical(selection.symbol, start, end),
                self.news_gateway.get_news_for_date(selection.date, selection.symbol),
                return_exceptions=True,
            )

            if selection.version != self._version:
                logger.info(f"Discarding stale data for {selection.symbol} on {selection.date}")
                return False

            error = None
            if isinstance(history, Exception):
                logger.warning(f"Historical data failed for {selection.symbol}: {str(history)}")
                error = str(history)
                history = []
            if isinstance(news, Exception):
                logger.warning(f"News failed for {selection.date}: {str(news)}")
                error = error or str(news)
                news = []

            self.historical_data = history
            self.news = news
            self.current_price = history[-1].close if history else None
            if self.current_price is not None:
                self.last_prices[selection.symbol] = self.current_price
            self.error = error
            self._revalue()
            return True
        except asyncio.CancelledError:
            logger.debug(f"Load for {selection.symbol} on {selection.date} cancelled")
            raise
        finally:
            if selection.version == self._version:
                self.loading = False

    def execute_trade(self, draft: TradeDraft) -> TradeExecution:
        """
        Record a trade and recompute the portfolio from the full log.

        The trade always joins the log; if the ledger could not apply it the
        returned execution says so and why.
        """
        trade = Trade(
            **draft.model_dump(),
            id=self._next_trade_id(),
            timestamp=datetime.now().isoformat(),
        )
        self.trades.append(trade)
        self._revalue()

        rejection = next((r for r in self.rejected_trades if r.trade.id == trade.id), None)
        if rejection is None:
            logger.info(f"Executed {trade.side.value} {trade.quantity} {trade.symbol} @ {trade.price:.2f}")
        return TradeExecution(
            trade=trade,
            accepted=rejection is None,
            rejection=rejection,
            portfolio=self.portfolio,
        )

    def submit_order(
        self,
        side: Union[TradeSide, str],
        quantity: int,
        symbol: Optional[str] = None,
    ) -> TradeExecution:
        """
        Trade the selected symbol at the current price on the selected date.
        """
        if self.current_price is None:
            raise NoPriceAvailableError("No current price available")
        try:
            draft = TradeDraft(
                symbol=(symbol or self.selected_symbol).upper(),
                side=TradeSide(side),
                quantity=quantity,
                price=self.current_price,
                date=self.selected_date,
            )
        except (ValidationError, ValueError) as e:
            raise TradeValidationError(f"Invalid trade: {str(e)}") from e
        return self.execute_trade(draft)

    def reset(self) -> None:
        """Clear the trade log and return to starting cash. The selection is kept."""
        self.trades = []
        self.rejected_trades = []
        self.portfolio = initial_portfolio(self.starting_cash)
        logger.info("Portfolio reset")

    def toggle_play_pause(self) -> bool:
        self.is_playing = not self.is_playing
        return self.is_playing

    def snapshot(self) -> SessionState:
        return SessionState(
            selected_date=self.selected_date,
            selected_time=self.selected_time,
            selected_symbol=self.selected_symbol,
            is_playing=self.is_playing,
            current_price=self.current_price,
            historical_data=self.historical_data,
            news=self.news,
            portfolio=self.portfolio,
            trades=self.trades,
            loading=self.loading,
            error=self.error,
        )

    async def close(self) -> None:
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
            try:
                await self._inflight
            except asyncio.CancelledError:
                pass

    def _revalue(self) -> None:
        result = PortfolioLedger.apply(
            self.trades,
            self.starting_cash,
            self.current_price or 0.0,
            prices=self.last_prices,
        )
        self.portfolio = result.portfolio
        self.rejected_trades = result.rejected

    def _next_trade_id(self) -> str:
        return f"trade-{int(time.time() * 1000)}-{next(self._trade_sequence)}"
