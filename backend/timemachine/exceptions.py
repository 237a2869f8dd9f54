"""Errors raised across the time machine services."""

import math


class TimeMachineError(Exception):
    """Base class for errors surfaced to the session or API boundary"""


class RateLimitedError(TimeMachineError):
    """The rate-limited primary provider has used up its quota"""

    def __init__(self, wait_time: float, provider: str = "alpha_vantage"):
        self.wait_time = wait_time
        self.provider = provider
        super().__init__(
            f"Rate limit exceeded for {provider}. Please wait {math.ceil(wait_time)} seconds."
        )


class SearchFailedError(TimeMachineError):
    """Symbol search failed or the provider returned an error payload"""


class DataUnavailableError(TimeMachineError):
    """A single-shot data request (e.g. intraday bars) produced nothing"""


class NoPriceAvailableError(TimeMachineError):
    """A trade was requested before any price was known for the selection"""


class TradeValidationError(TimeMachineError):
    """A trade request failed boundary validation (quantity, price, side)"""
