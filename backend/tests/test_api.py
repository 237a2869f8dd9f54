"""HTTP API tests with the services swapped for offline fakes."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from stubs import FakeMarketData, FakeNewsGateway, make_bar
from timemachine import main
from timemachine.exceptions import DataUnavailableError, RateLimitedError, SearchFailedError
from timemachine.models.stock import SearchResult
from timemachine.services.live_price_service import LivePriceFeed
from timemachine.services.time_machine_service import TimeMachineSession


class ApiMarketData(FakeMarketData):
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.quote_error = None
        self.search_error = None

    async def get_current_quote(self, symbol, force_refresh=False):
        if self.quote_error is not None:
            raise self.quote_error
        return await super().get_current_quote(symbol, force_refresh)

    async def search_symbols(self, query):
        if self.search_error is not None:
            raise self.search_error
        return [SearchResult(symbol="AAPL", name="Apple Inc", type="Equity", region="United States", currency="USD")]

    async def get_intraday(self, symbol, day):
        if day == "2020-01-04":
            raise DataUnavailableError(f"No intraday data found for {symbol} on {day}")
        return [make_bar(f"{day} 09:35:00", symbol=symbol)]

    def get_service_status(self):
        return {"providers": {}, "primary_configured": False}


@pytest.fixture
def services(monkeypatch):
    market_data = ApiMarketData(closes={"AAPL": 150.0, "MSFT": 300.0})
    news = FakeNewsGateway()
    session = TimeMachineSession(market_data, news, starting_cash=100000)
    monkeypatch.setattr(main, "market_data", market_data)
    monkeypatch.setattr(main, "news_gateway", news)
    monkeypatch.setattr(main, "session", session)
    monkeypatch.setattr(main, "live_feed", LivePriceFeed(market_data, window=20))
    return market_data, news, session


@pytest_asyncio.fixture
async def client(services):
    transport = ASGITransport(app=main.app)
    async with AsyncClient(transport=transport, base_url="http://test") as api_client:
        yield api_client


@pytest.mark.asyncio
async def test_root_lists_endpoints(client):
    response = await client.get("/")
    assert response.status_code == 200
    assert any("/api/session" in endpoint for endpoint in response.json()["endpoints"])


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_quote(client):
    response = await client.get("/api/stocks/quote/AAPL")
    assert response.status_code == 200
    assert response.json()["price"] == 150.0


@pytest.mark.asyncio
async def test_rate_limited_quote_is_429_with_retry_after(client, services):
    services[0].quote_error = RateLimitedError(29.2)

    response = await client.get("/api/stocks/quote/AAPL")

    assert response.status_code == 429
    assert response.headers["retry-after"] == "30"
    assert "Rate limit exceeded" in response.json()["detail"]


@pytest.mark.asyncio
async def test_search_success_and_failure(client, services):
    response = await client.get("/api/stocks/search/apple")
    assert response.status_code == 200
    assert response.json()[0]["symbol"] == "AAPL"

    services[0].search_error = SearchFailedError("Failed to search stocks")
    response = await client.get("/api/stocks/search/apple")
    assert response.status_code == 502


@pytest.mark.asyncio
async def test_historical_with_explicit_range(client, services):
    response = await client.get("/api/stocks/AAPL/historical", params={"start": "2020-01-01", "end": "2020-01-31"})

    assert response.status_code == 200
    assert [bar["date"] for bar in response.json()] == ["2020-01-01", "2020-01-31"]


@pytest.mark.asyncio
async def test_historical_rejects_bad_dates(client):
    response = await client.get("/api/stocks/AAPL/historical", params={"start": "yesterday"})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_intraday_unavailable_is_404(client):
    ok = await client.get("/api/stocks/AAPL/intraday", params={"date": "2020-01-03"})
    missing = await client.get("/api/stocks/AAPL/intraday", params={"date": "2020-01-04"})

    assert ok.status_code == 200
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_live_window(client):
    response = await client.get("/api/stocks/AAPL/live")

    assert response.status_code == 200
    points = response.json()
    assert len(points) == 20
    assert points[-1]["price"] == 150.0


@pytest.mark.asyncio
async def test_news_defaults_to_selected_date(client, services):
    response = await client.get("/api/news", params={"symbol": "AAPL"})

    assert response.status_code == 200
    assert services[1].calls == [("2020-01-01", "AAPL")]


@pytest.mark.asyncio
async def test_trade_before_any_price_is_409(client):
    response = await client.post("/api/session/trades", json={"side": "buy", "quantity": 1})
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_session_flow(client):
    response = await client.post("/api/session/selection", json={"symbol": "msft", "date": "2020-06-30"})
    assert response.status_code == 200
    state = response.json()
    assert state["selected_symbol"] == "MSFT"
    assert state["current_price"] == 300.0

    response = await client.post("/api/session/trades", json={"side": "buy", "quantity": 2})
    assert response.status_code == 200
    execution = response.json()
    assert execution["accepted"] is True
    assert execution["portfolio"]["cash"] == pytest.approx(99400)

    response = await client.post("/api/session/trades", json={"side": "buy", "quantity": 0})
    assert response.status_code == 422

    response = await client.post("/api/session/trades", json={"side": "sell", "quantity": 5})
    assert response.json()["accepted"] is False
    assert response.json()["rejection"]["reason"] == "insufficient_shares"

    response = await client.post("/api/session/play")
    assert response.json() == {"is_playing": True}

    response = await client.post("/api/session/reset")
    assert response.json()["trades"] == []
    assert response.json()["portfolio"]["cash"] == 100000

    response = await client.get("/api/session")
    assert response.json()["selected_date"] == "2020-06-30"


@pytest.mark.asyncio
async def test_invalid_selection_is_422(client):
    response = await client.post("/api/session/selection", json={"date": "not-a-date"})
    assert response.status_code == 422
