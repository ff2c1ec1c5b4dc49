"""
The one overlap predicate used by every component.

Intervals are half-open ``[start, end)``: two intervals do not conflict
when one ends exactly where the other starts.
"""

from datetime import datetime
from typing import Any, Union

Interval = Union[tuple[datetime, datetime], Any]


def _bounds(interval: Interval) -> tuple[datetime, datetime]:
    if isinstance(interval, tuple):
        return interval
    return interval.start, interval.end


def overlaps(a: Interval, b: Interval) -> bool:
    """True when ``a`` and ``b`` share at least one instant.

    Accepts ``(start, end)`` tuples or anything with ``start``/``end``
    attributes (slots, bookings, appointments, hearings).
    """
    a_start, a_end = _bounds(a)
    b_start, b_end = _bounds(b)
    return a_start < b_end and a_end > b_start
