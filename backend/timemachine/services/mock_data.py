"""
Synthetic market data used when every live source is unavailable.

The values are random, only the shape is guaranteed: correct fields,
ascending order and the expected number of points. That is enough for the
frontend to keep rendering when the app is offline.
"""

from datetime import datetime, timedelta
from typing import List, Optional

import numpy as np

from ..models.stock import HistoricalBar, LivePoint, NewsItem, Quote
from ..utils.dates import parse_day

MOCK_BASE_PRICE = 150.0
MOCK_LIVE_PRICE = 175.50

def _rng(seed: Optional[int] = None) -> np.random.Generator:
    return np.random.default_rng(seed)

def mock_quote(symbol: str) -> Quote:
    """Fixed quote used as the last resort of the quote cascade"""
    return Quote(
        symbol=symbol,
        name=symbol,
        price=175.50,
        change=2.30,
        change_percent=1.33,
        volume=45000000,
        high=176.20,
        low=173.10,
        open=174.00,
        previous_close=173.20,
        source="mock",
    )

def generate_mock_historical(
    symbol: str,
    start_date,
    end_date,
    base_price: float = MOCK_BASE_PRICE,
    seed: Optional[int] = None
) -> List[HistoricalBar]:
    """
    Random walk with one bar per calendar day in [start_date, end_date].

    Each day opens at the previous day's close. Prices are rounded to cents
    and never drop below 0.01.
    """
    rng = _rng(seed)
    start = parse_day(start_date)
    end = parse_day(end_date)

    bars = []
    previous_close = round(base_price, 2)
    current = start
    while current <= end:
        open_price = previous_close
        close = max(0.01, round(open_price + rng.uniform(-1.5, 1.5), 2))
        high = round(max(open_price, close) + rng.uniform(0, 2), 2)
        low = max(0.01, round(min(open_price, close) - rng.uniform(0, 2), 2))
        bars.append(HistoricalBar(
            symbol=symbol,
            date=current.isoformat(),
            open=open_price,
            high=high,
            low=low,
            close=close,
            volume=int(rng.integers(100_000, 1_100_000)),
            adjusted_close=close,
        ))
        previous_close = close
        current += timedelta(days=1)

    return bars

def generate_mock_live_data(
    symbol: str,
    base_price: float = MOCK_LIVE_PRICE,
    points: int = 20,
    interval_seconds: float = 30,
    now: Optional[datetime] = None,
    seed: Optional[int] = None
) -> List[LivePoint]:
    """Rolling window of points ending at ``now``, oldest first, price within ±1 of base"""
    rng = _rng(seed)
    now = now or datetime.now()

    data = []
    for i in range(points - 1, -1, -1):
        moment = now - timedelta(seconds=i * interval_seconds)
        price = base_price + rng.uniform(-1, 1)
        data.append(LivePoint(
            timestamp=moment.isoformat(),
            price=round(price, 2),
            volume=int(rng.integers(100_000, 1_100_000)),
            time=moment.strftime("%H:%M:%S"),
        ))
    return data

def mock_news(date_str: str, symbol: Optional[str] = None) -> List[NewsItem]:
    """Three canned articles for the given date; absence of news is not an error"""
    subject = symbol or "Stock Market"
    return [
        NewsItem(
            id="mock-1",
            title=f"{subject} Shows Strong Performance",
            description=(
                f"Market analysis shows positive trends for {symbol or 'major stocks'} on {date_str}. "
                "Investors are optimistic about future growth prospects."
            ),
            url="https://example.com/mock-news-1",
            published_at=f"{date_str}T16:45:00Z",
            source="Financial Times",
            url_to_image="https://images.unsplash.com/photo-1611974789855-9c2a0a7236a3?w=400",
        ),
        NewsItem(
            id="mock-2",
            title="Market Update: Trading Volume Increases",
            description=(
                "Trading volume has increased significantly, indicating strong investor "
                "interest in the current market conditions."
            ),
            url="https://example.com/mock-news-2",
            published_at=f"{date_str}T14:30:00Z",
            source="Bloomberg",
            url_to_image="https://images.unsplash.com/photo-1551288049-bebda4e38f71?w=400",
        ),
        NewsItem(
            id="mock-3",
            title="Economic Indicators Point to Growth",
            description=(
                "Recent economic data suggests continued growth in the financial sector, "
                "with positive implications for investors."
            ),
            url="https://example.com/mock-news-3",
            published_at=f"{date_str}T10:00:00Z",
            source="Reuters",
            url_to_image="https://images.unsplash.com/photo-1593642632823-8f785ba67e45?w=400",
        ),
    ]
