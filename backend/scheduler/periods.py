"""DHIS2 period resolution.

Turns a schedule's period settings into the list of DHIS2 period ids a
sync pass covers. Canonical formats per period type:

    day      YYYYMMDD   20240315
    week     YYYYWww    2024W11   (ISO week and ISO week-year)
    month    YYYYMM     202403
    quarter  YYYYQq     2024Q1
    year     YYYY       2024
"""

from __future__ import annotations

import calendar
import re
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterable

from .errors import ConfigurationError


class PeriodType(str, Enum):
    """DHIS2 period granularity."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


class RunFor(str, Enum):
    """Whether a pass targets the current or the previous period."""

    CURRENT = "current"
    PREVIOUS = "previous"


CANONICAL_PATTERNS: dict[PeriodType, re.Pattern[str]] = {
    PeriodType.DAY: re.compile(r"^\d{8}$"),
    PeriodType.WEEK: re.compile(r"^\d{4}W([1-9]|[0-4]\d|5[0-3])$"),
    PeriodType.MONTH: re.compile(r"^\d{4}(0[1-9]|1[0-2])$"),
    PeriodType.QUARTER: re.compile(r"^\d{4}Q[1-4]$"),
    PeriodType.YEAR: re.compile(r"^\d{4}$"),
}


def _add_months(value: date, months: int) -> date:
    index = value.year * 12 + (value.month - 1) + months
    year, month_index = divmod(index, 12)
    month = month_index + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def shift_period(value: date, period_type: PeriodType, offset: int) -> date:
    """Move ``value`` by ``offset`` whole periods of ``period_type``."""
    if period_type is PeriodType.DAY:
        return value + timedelta(days=offset)
    if period_type is PeriodType.WEEK:
        return value + timedelta(weeks=offset)
    if period_type is PeriodType.MONTH:
        return _add_months(value, offset)
    if period_type is PeriodType.QUARTER:
        return _add_months(value, 3 * offset)
    return _add_months(value, 12 * offset)


def format_period(value: date, period_type: PeriodType) -> str:
    """Format a date as the DHIS2 period id containing it."""
    if period_type is PeriodType.DAY:
        return value.strftime("%Y%m%d")
    if period_type is PeriodType.WEEK:
        iso_year, iso_week, _ = value.isocalendar()
        return f"{iso_year}W{iso_week:02d}"
    if period_type is PeriodType.MONTH:
        return value.strftime("%Y%m")
    if period_type is PeriodType.QUARTER:
        return f"{value.year}Q{(value.month - 1) // 3 + 1}"
    return f"{value.year}"


def normalize_period(value: str, period_type: PeriodType) -> str:
    """Accept a canonical period id or an ISO date and return the period id.

    Raises:
        ConfigurationError: If the value is neither.
    """
    candidate = str(value).strip()
    if CANONICAL_PATTERNS[period_type].match(candidate):
        return candidate
    try:
        parsed = date.fromisoformat(candidate[:10])
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid {period_type.value} period: '{value}'"
        ) from e
    return format_period(parsed, period_type)


def resolve_periods(
    period_type: PeriodType | str,
    run_for: RunFor | str = RunFor.CURRENT,
    periods: Iterable[str] | None = None,
    now: datetime | date | None = None,
) -> list[str]:
    """Resolve the periods a sync pass should process.

    Explicit periods win and are normalized to the canonical format;
    duplicates are dropped while order is kept. Without explicit periods
    exactly one period is computed from ``now``, shifted back one unit
    when ``run_for`` is previous.
    """
    period_type = PeriodType(period_type)
    run_for = RunFor(run_for)

    explicit = [p for p in (periods or []) if str(p).strip()]
    if explicit:
        resolved: list[str] = []
        for period in explicit:
            normalized = normalize_period(period, period_type)
            if normalized not in resolved:
                resolved.append(normalized)
        return resolved

    if now is None:
        now = datetime.now()
    today = now.date() if isinstance(now, datetime) else now
    offset = -1 if run_for is RunFor.PREVIOUS else 0
    return [format_period(shift_period(today, period_type, offset), period_type)]
