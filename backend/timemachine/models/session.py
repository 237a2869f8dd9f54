from pydantic import BaseModel, Field
from typing import List, Optional
from .portfolio import Portfolio, Trade
from .stock import HistoricalBar, NewsItem

class Selection(BaseModel):
    version: int
    date: str
    time: str
    symbol: str

class SessionState(BaseModel):
    selected_date: str
    selected_time: str
    selected_symbol: str
    is_playing: bool
    current_price: Optional[float] = None
    historical_data: List[HistoricalBar] = Field(default_factory=list)
    news: List[NewsItem] = Field(default_factory=list)
    portfolio: Portfolio
    trades: List[Trade] = Field(default_factory=list)
    loading: bool = False
    error: Optional[str] = None
