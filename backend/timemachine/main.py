"""
Stock Time Machine Backend API

Pick a date in the past, see what a stock was doing around then and what
the news looked like, and paper-trade it with a simulated portfolio.

What you can do here:
- Get quotes, daily history and intraday bars (with automatic fallbacks)
- Search for symbols
- Read market news for a date
- Drive a time machine session: choose date/time/symbol, trade, reset
- Watch a live price window refreshed every 30 seconds

API Guide:
- /: Welcome message and endpoint list
- /api/health: Provider health, rate limit and cache status
- /api/stocks/quote/{symbol}: Current quote
- /api/stocks/search/{query}: Symbol search
- /api/stocks/{symbol}/historical: Daily bars between start and end
- /api/stocks/{symbol}/intraday: 5 minute bars for one day
- /api/stocks/{symbol}/live: Live price window
- /api/news: News for a date
- /api/session: Time machine state, selection, trades and reset

How to run the server for development:
    uvicorn timemachine.main:app --host 0.0.0.0 --port 8000

    # Check out the docs
    http://localhost:8000/docs
"""

import asyncio
import logging
import math
import time
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from typing import List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .config import config
from .exceptions import (
    DataUnavailableError, NoPriceAvailableError, RateLimitedError,
    SearchFailedError, TradeValidationError,
)
from .models.portfolio import TradeExecution, TradeSide
from .models.session import SessionState
from .models.stock import HistoricalBar, LivePoint, NewsItem, Quote, SearchResult
from .services.live_price_service import LivePriceFeed
from .services.market_data_service import MarketDataGateway
from .services.news_service import NewsGateway
from .services.time_machine_service import TimeMachineSession
from .utils.dates import iso_day
from .utils.http import HttpClient

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Initialize services with error handling
try:
    http_client = HttpClient(proxy_url=config.PROXY_URL, timeout=config.PROVIDER_TIMEOUT)
    market_data = MarketDataGateway.from_config(http_client)
    news_gateway = NewsGateway.from_config(http_client)
    session = TimeMachineSession(market_data, news_gateway)
    live_feed = LivePriceFeed(market_data)
    logger.info("All services initialized successfully")
except Exception as e:
    logger.error(f"Error initializing services: {str(e)}", exc_info=True)
    raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Load the default selection so the first snapshot has data
    session.select()
    yield
    await live_feed.stop()
    await session.close()
    await http_client.close()
    logger.info("Services shut down")


app = FastAPI(title="Stock Time Machine API", lifespan=lifespan)

logger.info(f"Configured CORS origins: {config.CORS_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
    max_age=3600,
)

# Add request logging middleware
@app.middleware("http")
async def log_requests(request, call_next):
    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time
    logger.info(f"{request.method} {request.url.path} - Status: {response.status_code} - Duration: {duration:.2f}s")
    return response

# Add error handling middleware
@app.middleware("http")
async def catch_exceptions_middleware(request, call_next):
    try:
        return await call_next(request)
    except Exception as e:
        logger.error(f"Unhandled error: {str(e)}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "error": str(e)}
        )


class SelectionRequest(BaseModel):
    date: Optional[str] = None
    time: Optional[str] = None
    symbol: Optional[str] = None

class OrderRequest(BaseModel):
    side: TradeSide
    quantity: int
    symbol: Optional[str] = None


def rate_limited(e: RateLimitedError) -> HTTPException:
    return HTTPException(
        status_code=429,
        detail=str(e),
        headers={"Retry-After": str(math.ceil(e.wait_time))},
    )

def parse_day(value: str, field: str) -> str:
    try:
        return iso_day(value)
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Invalid {field}: {value}")


@app.get("/")
async def root():
    """Welcome message and a map of the API"""
    return {
        "message": "Welcome to the Stock Time Machine API",
        "endpoints": [
            "/api/health - Provider health, rate limit and cache status",
            "/api/stocks/quote/{symbol} - Quote with multi-source fallback",
            "/api/stocks/search/{query} - Symbol search",
            "/api/stocks/{symbol}/historical?start=&end= - Daily bars",
            "/api/stocks/{symbol}/intraday?date= - 5 minute bars for one day",
            "/api/stocks/{symbol}/live - Live price window",
            "/api/news?date=&symbol= - News for a date",
            "/api/session - Time machine session",
        ]
    }

@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "market_data": market_data.get_service_status(),
        "news_failures": news_gateway.last_failures,
    }

@app.get("/api/stocks/quote/{symbol}", response_model=Quote)
async def get_quote(symbol: str, force_refresh: bool = False):
    """
    Quote from the first provider that answers

    Args:
        symbol: Stock symbol (e.g., AAPL)
        force_refresh: Skip cache and force fresh data
    """
    try:
        return await market_data.get_current_quote(symbol, force_refresh=force_refresh)
    except RateLimitedError as e:
        raise rate_limited(e)

@app.get("/api/stocks/search/{query}", response_model=List[SearchResult])
async def search_stocks(query: str):
    """Look up stocks by name or symbol"""
    try:
        return await market_data.search_symbols(query)
    except SearchFailedError as e:
        logger.error(f"Error searching stocks for '{query}': {str(e)}")
        raise HTTPException(status_code=502, detail=str(e))

@app.get("/api/stocks/{symbol}/historical", response_model=List[HistoricalBar])
async def get_historical(symbol: str, start: Optional[str] = None, end: Optional[str] = None):
    """Daily bars, ascending. Defaults to the 30 days ending today."""
    end_day = parse_day(end, "end") if end else date.today().isoformat()
    start_day = (
        parse_day(start, "start") if start
        else (date.fromisoformat(end_day) - timedelta(days=config.HISTORY_WINDOW_DAYS)).isoformat()
    )
    try:
        return await market_data.get_historical(symbol, start_day, end_day)
    except RateLimitedError as e:
        raise rate_limited(e)

@app.get("/api/stocks/{symbol}/intraday", response_model=List[HistoricalBar])
async def get_intraday(symbol: str, date: str):
    day = parse_day(date, "date")
    try:
        return await market_data.get_intraday(symbol, day)
    except DataUnavailableError as e:
        raise HTTPException(status_code=404, detail=str(e))

@app.get("/api/stocks/{symbol}/live", response_model=List[LivePoint])
async def get_live(symbol: str):
    """Refresh the live window once and return it, oldest first"""
    return await live_feed.refresh(symbol)

@app.get("/api/news", response_model=List[NewsItem])
async def get_news(date: Optional[str] = None, symbol: Optional[str] = None):
    """News for a date, defaults to the session's selected date"""
    day = parse_day(date, "date") if date else session.selected_date
    return await news_gateway.get_news_for_date(day, symbol)

@app.get("/api/session", response_model=SessionState)
async def get_session():
    return session.snapshot()

@app.post("/api/session/selection", response_model=SessionState)
async def update_selection(request: SelectionRequest):
    """Change date, time and/or symbol and wait for the new data"""
    try:
        task = session.select(date=request.date, time=request.time, symbol=request.symbol)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    try:
        await task
    except asyncio.CancelledError:
        # A newer selection replaced this one while it was loading
        logger.info("Selection superseded before it finished loading")
    return session.snapshot()

@app.post("/api/session/play")
async def toggle_play():
    return {"is_playing": session.toggle_play_pause()}

@app.post("/api/session/trades", response_model=TradeExecution)
async def submit_trade(order: OrderRequest):
    try:
        return session.submit_order(order.side, order.quantity, order.symbol)
    except NoPriceAvailableError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except TradeValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

@app.post("/api/session/reset", response_model=SessionState)
async def reset_session():
    session.reset()
    return session.snapshot()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config.HOST, port=config.PORT)
