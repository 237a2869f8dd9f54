import pathlib
import sys

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

TESTS = pathlib.Path(__file__).resolve().parent
if str(TESTS) not in sys.path:
    sys.path.insert(0, str(TESTS))

from stubs import FakeMarketData, FakeNewsGateway  # noqa: E402
from timemachine.services.time_machine_service import TimeMachineSession  # noqa: E402


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def market_data() -> FakeMarketData:
    return FakeMarketData(closes={"AAPL": 150.0, "MSFT": 300.0})


@pytest.fixture
def news_gateway() -> FakeNewsGateway:
    return FakeNewsGateway()


@pytest.fixture
def session(market_data, news_gateway) -> TimeMachineSession:
    return TimeMachineSession(market_data, news_gateway, starting_cash=100000)
