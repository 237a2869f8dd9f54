"""
Calendar day helpers shared by the gateways and the session.

Days travel through the app as ISO ``YYYY-MM-DD`` strings. Anything longer
(a timestamp) is cut to its day.
"""

from datetime import date, datetime
from typing import Union

DateLike = Union[str, date, datetime]

def parse_day(value: DateLike) -> date:
    """Raises ValueError when ``value`` is not an ISO date"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])

def iso_day(value: DateLike) -> str:
    return parse_day(value).isoformat()
