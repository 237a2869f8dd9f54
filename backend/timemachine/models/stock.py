from pydantic import BaseModel, Field
from typing import Optional

class Quote(BaseModel):
    symbol: str
    name: str
    price: float
    change: float
    change_percent: float
    volume: int
    high: float
    low: float
    open: float
    previous_close: float
    source: str = "unknown"

class HistoricalBar(BaseModel):
    symbol: str
    date: str = Field(..., description="YYYY-MM-DD for daily bars, 'YYYY-MM-DD HH:MM:SS' for intraday")
    open: float
    high: float
    low: float
    close: float
    volume: int
    adjusted_close: float

class SearchResult(BaseModel):
    symbol: str
    name: str
    type: str
    region: str
    currency: str

class NewsItem(BaseModel):
    id: str
    title: str
    description: str
    url: str
    published_at: str
    source: str
    url_to_image: Optional[str] = None

class LivePoint(BaseModel):
    timestamp: str
    price: float
    volume: int
    time: str
