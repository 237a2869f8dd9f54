"""Provider adapter parsing tests against canned payloads."""

import pytest

from stubs import StubHttp
from timemachine.exceptions import SearchFailedError
from timemachine.services.alphavantage_service import AlphaVantageError, AlphaVantageService
from timemachine.services.quote_providers import (
    FinnhubProvider, IEXCloudProvider, PolygonProvider, YahooFinanceProvider, to_unix,
)
from timemachine.utils.http import HttpClient


def yahoo_chart(**chart):
    return {"chart": {"result": [chart], "error": None}}


@pytest.mark.asyncio
async def test_yahoo_quote_from_chart_meta():
    http = StubHttp({"finance/chart": yahoo_chart(meta={
        "symbol": "AAPL",
        "regularMarketPrice": 110.0,
        "previousClose": 100.0,
        "regularMarketVolume": 12345,
    })})

    quote = await YahooFinanceProvider(http).fetch_quote("AAPL")

    assert quote.price == 110.0
    assert quote.change == pytest.approx(10.0)
    assert quote.change_percent == pytest.approx(10.0)
    assert quote.volume == 12345
    assert quote.source == "yahoo_finance"


@pytest.mark.asyncio
async def test_yahoo_quote_without_result_is_none():
    http = StubHttp({"finance/chart": {"chart": {"result": None, "error": {"code": "Not Found"}}}})
    assert await YahooFinanceProvider(http).fetch_quote("NOPE") is None


@pytest.mark.asyncio
async def test_yahoo_history_skips_null_bars_and_uses_adjclose():
    stamps = [to_unix("2020-01-02") + 14 * 3600, to_unix("2020-01-03") + 14 * 3600, to_unix("2020-01-06") + 14 * 3600]
    http = StubHttp({"finance/chart": yahoo_chart(
        timestamp=stamps,
        indicators={
            "quote": [{
                "open": [10.0, None, 12.0],
                "high": [11.0, None, 13.0],
                "low": [9.0, None, 11.0],
                "close": [10.5, None, 12.5],
                "volume": [100, None, 300],
            }],
            "adjclose": [{"adjclose": [10.4, None, 12.4]}],
        },
    )})

    bars = await YahooFinanceProvider(http).fetch_history("AAPL", "2020-01-01", "2020-01-31")

    assert [bar.date for bar in bars] == ["2020-01-02", "2020-01-06"]
    assert bars[0].adjusted_close == 10.4
    assert bars[1].volume == 300
    params = http.calls[0][1]
    assert params["period1"] == to_unix("2020-01-01")
    assert params["interval"] == "1d"


def daily_series():
    return {
        "Meta Data": {"2. Symbol": "IBM"},
        "Time Series (Daily)": {
            "2020-01-06": {"1. open": "3", "2. high": "4", "3. low": "2", "4. close": "3.5",
                           "5. adjusted close": "3.4", "6. volume": "300"},
            "2020-01-03": {"1. open": "2", "2. high": "3", "3. low": "1", "4. close": "2.5",
                           "5. adjusted close": "2.4", "6. volume": "200"},
            "2019-12-31": {"1. open": "1", "2. high": "2", "3. low": "0.5", "4. close": "1.5",
                           "5. adjusted close": "1.4", "6. volume": "100"},
        },
    }


@pytest.mark.asyncio
async def test_alpha_vantage_history_is_filtered_and_ascending():
    http = StubHttp({"alphavantage": daily_series()})
    service = AlphaVantageService(http, api_key="secret")

    bars = await service.fetch_history("IBM", "2020-01-01", "2020-01-31")

    assert [bar.date for bar in bars] == ["2020-01-03", "2020-01-06"]
    assert bars[0].adjusted_close == 2.4
    params = http.calls[0][1]
    assert params["function"] == "TIME_SERIES_DAILY_ADJUSTED"
    assert params["outputsize"] == "full"
    assert params["apikey"] == "secret"


@pytest.mark.asyncio
async def test_alpha_vantage_note_is_an_error():
    http = StubHttp({"alphavantage": {"Note": "Thank you for using Alpha Vantage! Our standard API call frequency is 5 calls per minute"}})
    with pytest.raises(AlphaVantageError):
        await AlphaVantageService(http).fetch_quote("IBM")


@pytest.mark.asyncio
async def test_alpha_vantage_quote_parsing():
    http = StubHttp({"alphavantage": {"Global Quote": {
        "01. symbol": "IBM", "02. open": "120.0", "03. high": "125.0", "04. low": "119.0",
        "05. price": "124.0", "06. volume": "5000", "08. previous close": "121.0",
        "09. change": "3.0", "10. change percent": "2.4793%",
    }}})
    service = AlphaVantageService(http)

    quote = await service.fetch_quote("IBM")

    assert service.name == "alpha_vantage_free"
    assert not service.has_key
    assert quote.price == 124.0
    assert quote.change_percent == pytest.approx(2.4793)
    assert quote.source == "alpha_vantage_free"


@pytest.mark.asyncio
async def test_alpha_vantage_unknown_symbol_quote_is_none():
    http = StubHttp({"alphavantage": {"Error Message": "Invalid API call."}})
    assert await AlphaVantageService(http).fetch_quote("NOPE") is None


@pytest.mark.asyncio
async def test_alpha_vantage_intraday_keeps_requested_day():
    http = StubHttp({"alphavantage": {"Time Series (5min)": {
        "2024-03-01 16:00:00": {"1. open": "2", "2. high": "3", "3. low": "1", "4. close": "2", "5. volume": "10"},
        "2024-03-01 09:35:00": {"1. open": "1", "2. high": "2", "3. low": "1", "4. close": "1.5", "5. volume": "20"},
        "2024-02-29 16:00:00": {"1. open": "1", "2. high": "1", "3. low": "1", "4. close": "1", "5. volume": "5"},
    }}})

    bars = await AlphaVantageService(http, api_key="k").fetch_intraday("IBM", "2024-03-01")

    assert [bar.date for bar in bars] == ["2024-03-01 09:35:00", "2024-03-01 16:00:00"]


@pytest.mark.asyncio
async def test_alpha_vantage_search_results():
    http = StubHttp({"alphavantage": {"bestMatches": [{
        "1. symbol": "TSCO.LON", "2. name": "Tesco PLC", "3. type": "Equity",
        "4. region": "United Kingdom", "8. currency": "GBX",
    }]}})

    results = await AlphaVantageService(http, api_key="k").search_symbols("tesco")

    assert results[0].symbol == "TSCO.LON"
    assert results[0].currency == "GBX"
    assert http.calls[0][1]["keywords"] == "tesco"


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [
    {"Error Message": "Invalid API call."},
    {"Information": "Premium endpoint"},
    RuntimeError("connection reset"),
])
async def test_alpha_vantage_search_failures(payload):
    http = StubHttp({"alphavantage": payload})
    with pytest.raises(SearchFailedError):
        await AlphaVantageService(http, api_key="k").search_symbols("tesco")


@pytest.mark.asyncio
async def test_iex_history_filters_fixed_range_locally():
    http = StubHttp({"chart/1m": [
        {"date": "2020-01-02", "open": 1, "high": 2, "low": 1, "close": 2, "volume": 10},
        {"date": "2020-02-03", "open": 1, "high": 2, "low": 1, "close": 2, "volume": 10},
    ]})

    bars = await IEXCloudProvider(http).fetch_history("AAPL", "2020-01-01", "2020-01-31")

    assert [bar.date for bar in bars] == ["2020-01-02"]
    assert http.calls[0][1] == {"token": "pk_test"}


@pytest.mark.asyncio
async def test_polygon_quote_requires_ok_status():
    ok = StubHttp({"polygon": {"status": "OK", "results": {"P": 99.5, "S": 3}}})
    bad = StubHttp({"polygon": {"status": "ERROR"}})

    quote = await PolygonProvider(ok).fetch_quote("AAPL")
    assert quote.price == 99.5
    assert await PolygonProvider(bad).fetch_quote("AAPL") is None


class FakeFinnhubClient:
    def __init__(self, payload):
        self.payload = payload

    def quote(self, symbol):
        return self.payload


@pytest.mark.asyncio
async def test_finnhub_quote_and_unknown_symbol():
    provider = FinnhubProvider(client=FakeFinnhubClient({"c": 50.0, "d": 1.0, "dp": 2.0, "h": 51, "l": 49, "o": 49.5, "pc": 49.0}))
    quote = await provider.fetch_quote("AAPL")
    assert quote.price == 50.0
    assert quote.previous_close == 49.0

    zeros = FinnhubProvider(client=FakeFinnhubClient({"c": 0, "d": None, "dp": None}))
    assert await zeros.fetch_quote("NOPE") is None


def test_finnhub_without_key_is_unavailable():
    assert FinnhubProvider(api_key=None).available is False


def test_http_client_routes_through_proxy():
    direct = HttpClient()
    proxied = HttpClient(proxy_url="http://localhost:3000/api/proxy")

    assert direct.build_url("https://a.test/x", {"q": "1"}) == "https://a.test/x?q=1"
    assert proxied.build_url("https://a.test/x", {"q": "1"}) == (
        "http://localhost:3000/api/proxy?url=https%3A%2F%2Fa.test%2Fx%3Fq%3D1"
    )
