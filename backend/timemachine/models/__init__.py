from .stock import Quote, HistoricalBar, SearchResult, NewsItem, LivePoint
from .portfolio import (
    TradeSide, TradeDraft, Trade, Position, Portfolio,
    RejectionReason, RejectedTrade, LedgerResult, TradeExecution,
)
from .session import Selection, SessionState
