"""
Period Resolver
Computes the current date window, its length-matched previous window, and the
quick-filter preset ranges.
"""
# rcm_dashboard/utils/period_resolver.py

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Optional, Sequence, Tuple

import pandas as pd

logger = logging.getLogger(__name__)


# ============================================================================
# CLOCK
# ============================================================================

class Clock:
    """Source of "today" for quick filters and default ranges."""

    def today(self) -> date:
        raise NotImplementedError


class SystemClock(Clock):
    def today(self) -> date:
        return date.today()


class FixedClock(Clock):
    """Clock pinned to one day (tests, reproducible reports)."""

    def __init__(self, day: date):
        self._day = day

    def today(self) -> date:
        return self._day


# ============================================================================
# PERIOD WINDOWS
# ============================================================================

@dataclass(frozen=True)
class PeriodWindow:
    """Current window and the immediately preceding window of equal length."""

    current_start: date
    current_end: date
    previous_start: Optional[date]
    previous_end: Optional[date]

    @property
    def duration_days(self) -> int:
        return max(1, (self.current_end - self.current_start).days + 1)

    @property
    def has_previous(self) -> bool:
        return self.previous_start is not None and self.previous_end is not None


def _shift(day: Optional[date], days: int) -> Optional[date]:
    """Add days to a date; None when the result leaves the calendar."""
    if day is None:
        return None
    try:
        return day + timedelta(days=days)
    except OverflowError:
        return None


def resolve_period(start: date, end: date) -> PeriodWindow:
    """
    Resolve the current and previous comparison windows.

    durationDays = max(1, inclusive days from start to end). The previous
    window ends the day before ``start`` and spans the same number of days.
    When that anchored computation leaves the calendar, the previous window is
    instead shifted back by the full duration from ``start``. If that also
    fails the previous window is empty (None boundaries).

    Args:
        start: First day of the current window
        end: Last day of the current window (inclusive)

    Returns:
        PeriodWindow with both windows
    """
    duration_days = max(1, (end - start).days + 1)

    previous_end = _shift(start, -1)
    previous_start = _shift(previous_end, -(duration_days - 1))

    if previous_start is None or previous_end is None:
        previous_start = _shift(start, -duration_days)
        previous_end = _shift(previous_start, duration_days - 1)
        logger.debug(f"Anchored previous window invalid for {start}; using duration shift")

    if previous_start is None or previous_end is None:
        logger.warning(f"No previous window can be computed for {start} - {end}")
        previous_start = previous_end = None

    return PeriodWindow(
        current_start=start,
        current_end=end,
        previous_start=previous_start,
        previous_end=previous_end,
    )


# ============================================================================
# QUICK FILTERS
# ============================================================================

class QuickFilter(str, Enum):
    NONE = "none"
    DAY_PREV_DAY = "day_prev_day"
    DAY_LAST_MONTH_SAME_DAY = "day_last_month_same"
    DAY_LAST_YEAR_SAME_DAY = "day_last_year_same"
    WEEK_LAST_WEEK = "week_last_week"
    WEEK_LAST_MONTH_WEEK = "week_last_month"
    WEEK_LAST_YEAR_WEEK = "week_last_year"
    MONTH_LAST_MONTH = "month_last_month"
    MONTH_LAST_YEAR_SAME_MONTH = "month_last_year_same"
    YEAR_PREV_YEAR_1 = "year_prev_1"
    YEAR_PREV_YEAR_2 = "year_prev_2"
    YEAR_PREV_YEAR_3 = "year_prev_3"


DASHBOARD_QUICK_FILTERS = tuple(QuickFilter)

DETAIL_PAGE_QUICK_FILTERS = (
    QuickFilter.NONE,
    QuickFilter.DAY_PREV_DAY,
    QuickFilter.WEEK_LAST_WEEK,
    QuickFilter.MONTH_LAST_MONTH,
    QuickFilter.YEAR_PREV_YEAR_1,
    QuickFilter.YEAR_PREV_YEAR_2,
    QuickFilter.YEAR_PREV_YEAR_3,
)

# Detail pages pin the year presets to these calendar years
DETAIL_PAGE_FIXED_YEARS = (2025, 2024, 2023)

_YEAR_PRESETS = (QuickFilter.YEAR_PREV_YEAR_1, QuickFilter.YEAR_PREV_YEAR_2, QuickFilter.YEAR_PREV_YEAR_3)


def months_back(day: date, months: int) -> date:
    """Calendar month arithmetic, clamping to the target month's last day."""
    return (pd.Timestamp(day) - pd.DateOffset(months=months)).date()


def years_back(day: date, years: int) -> date:
    return (pd.Timestamp(day) - pd.DateOffset(years=years)).date()


def month_bounds(day: date) -> Tuple[date, date]:
    start = day.replace(day=1)
    end = (pd.Timestamp(start) + pd.offsets.MonthEnd(0)).date()
    return start, end


def week_bounds(day: date) -> Tuple[date, date]:
    """Sunday-to-Saturday week containing ``day``."""
    start = day - timedelta(days=(day.weekday() + 1) % 7)
    return start, start + timedelta(days=6)


def default_range(clock: Clock) -> Tuple[date, date]:
    """First day of the month three months back through the end of last month."""
    last_month_end = clock.today().replace(day=1) - timedelta(days=1)
    start, _ = month_bounds(months_back(last_month_end, 2))
    return start, last_month_end


def resolve_quick_filter(
    quick_filter: QuickFilter,
    clock: Clock,
    fixed_years: Optional[Sequence[int]] = None
) -> Tuple[date, date]:
    """
    Resolve a quick-filter preset to a (start, end) date range.

    Args:
        quick_filter: Preset to resolve
        clock: Source of "today"
        fixed_years: Literal calendar years for the three year presets; when
            None they are the current year and the two years before it

    Returns:
        Inclusive (start, end) dates
    """
    quick_filter = QuickFilter(quick_filter)
    today = clock.today()

    if quick_filter == QuickFilter.NONE:
        return default_range(clock)

    if quick_filter == QuickFilter.DAY_PREV_DAY:
        day = today - timedelta(days=1)
        return day, day
    if quick_filter == QuickFilter.DAY_LAST_MONTH_SAME_DAY:
        day = months_back(today, 1)
        return day, day
    if quick_filter == QuickFilter.DAY_LAST_YEAR_SAME_DAY:
        day = years_back(today, 1)
        return day, day

    if quick_filter == QuickFilter.WEEK_LAST_WEEK:
        return week_bounds(today - timedelta(weeks=1))
    if quick_filter == QuickFilter.WEEK_LAST_MONTH_WEEK:
        return week_bounds(months_back(today, 1))
    if quick_filter == QuickFilter.WEEK_LAST_YEAR_WEEK:
        return week_bounds(years_back(today, 1))

    if quick_filter == QuickFilter.MONTH_LAST_MONTH:
        return month_bounds(months_back(today, 1))
    if quick_filter == QuickFilter.MONTH_LAST_YEAR_SAME_MONTH:
        return month_bounds(years_back(today, 1))

    offset = _YEAR_PRESETS.index(quick_filter)
    if fixed_years is not None:
        year = fixed_years[offset]
    else:
        year = today.year - offset
    return date(year, 1, 1), date(year, 12, 31)
