"""Working day arithmetic with UK bank holiday support.

A working day is Monday to Friday, excluding bank holidays for the
configured UK region (England and Wales by default).
"""

from __future__ import annotations

from datetime import date, timedelta
from functools import lru_cache

import holidays

DEFAULT_REGION = "ENG"


@lru_cache(maxsize=32)
def get_bank_holidays(year: int, region: str = DEFAULT_REGION) -> frozenset[date]:
    """Cache bank holiday sets per (year, region)."""
    return frozenset(holidays.country_holidays("GB", subdiv=region, years=year).keys())


def is_working_day(day: date, region: str = DEFAULT_REGION) -> bool:
    """Check if a date is a weekday and not a bank holiday."""
    if day.weekday() >= 5:
        return False
    return day not in get_bank_holidays(day.year, region)


def count_working_days(start: date, end: date, region: str = DEFAULT_REGION) -> int:
    """Count working days from ``start`` to ``end`` inclusive.

    Returns 0 when ``end`` is before ``start``; callers that must reject
    such ranges validate before calling.
    """
    if end < start:
        return 0

    count = 0
    current = start
    while current <= end:
        if is_working_day(current, region):
            count += 1
        current += timedelta(days=1)
    return count


def count_weekdays(start: date, end: date) -> int:
    """Count Monday to Friday dates from ``start`` to ``end`` inclusive."""
    if end < start:
        return 0

    full_weeks, remainder = divmod((end - start).days + 1, 7)
    count = full_weeks * 5
    for offset in range(remainder):
        if (start + timedelta(days=full_weeks * 7 + offset)).weekday() < 5:
            count += 1
    return count
