"""
Reporting window derivation.

Two modes are supported:
  * calendar months, selected as (year, month);
  * report cycles, selected by cycle start date. EOR payroll in the United
    States runs semi-monthly while every other country runs monthly, so a
    cycle is split into halves only when a US payslip is present in it.

All windows are UTC and inclusive at both ends.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, time, timezone
from typing import Iterable, Optional, Tuple

from exceptions import InputInvalid
from models import Payslip, PeriodWindow

US_COUNTRY_CODES = frozenset({"US", "USA", "UNITED STATES", "UNITED STATES OF AMERICA"})
SECOND_HALF_START_DAY = 16


def _start_of(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def _end_of(day: date) -> datetime:
    return datetime.combine(day, time.max, tzinfo=timezone.utc)


def _last_day(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def month_label(year: int, month: int) -> str:
    return f"{calendar.month_name[month]} {year}"


def month_window(year: int, month: int) -> PeriodWindow:
    """Window covering the whole calendar month, labelled '<MonthName> <Year>'."""
    if not 1 <= month <= 12:
        raise InputInvalid(f"Month must be between 1 and 12, got {month}")
    return PeriodWindow(
        start=_start_of(date(year, month, 1)),
        end=_end_of(_last_day(year, month)),
        label=month_label(year, month),
    )


def previous_month(year: int, month: int) -> Tuple[int, int]:
    if month == 1:
        return year - 1, 12
    return year, month - 1


def parse_period(value: str) -> Tuple[int, int]:
    """Parse a 'YYYY-MM' selection into (year, month)."""
    try:
        year_text, month_text = value.strip().split("-")
        year, month = int(year_text), int(month_text)
    except (AttributeError, ValueError):
        raise InputInvalid(f"Invalid period {value!r}; expected YYYY-MM") from None
    if not 1 <= month <= 12:
        raise InputInvalid(f"Invalid period {value!r}; month must be 01-12")
    return year, month


def has_us_worker(cycle_start: date, payslips: Iterable[Payslip]) -> bool:
    """True when any payslip of the cycle's month belongs to a US worker."""
    for payslip in payslips:
        if payslip.cycle_start is not None and (
            payslip.cycle_start.year,
            payslip.cycle_start.month,
        ) != (cycle_start.year, cycle_start.month):
            continue
        country = (payslip.worker_country or "").strip().upper()
        if country in US_COUNTRY_CODES:
            return True
    return False


def cycle_window(
    cycle_start: date, payslips: Optional[Iterable[Payslip]] = None
) -> PeriodWindow:
    """
    Window for a payroll report cycle.

    The identifier is YYYY-MM and the window covers the whole month. With a US
    payslip in the cycle it gains a half-month suffix: -1 (days 1-15) for a
    start before the 16th, -2 (day 16 to month end) otherwise, and the label is
    suffixed with (1st Half) / (2nd Half).
    """
    cycle_id = f"{cycle_start.year:04d}-{cycle_start.month:02d}"
    label = month_label(cycle_start.year, cycle_start.month)
    start_day = cycle_start.replace(day=1)
    end_day = _last_day(cycle_start.year, cycle_start.month)

    if has_us_worker(cycle_start, payslips or ()):
        if cycle_start.day < SECOND_HALF_START_DAY:
            cycle_id += "-1"
            label += " (1st Half)"
            end_day = cycle_start.replace(day=SECOND_HALF_START_DAY - 1)
        else:
            cycle_id += "-2"
            label += " (2nd Half)"
            start_day = cycle_start.replace(day=SECOND_HALF_START_DAY)

    return PeriodWindow(
        start=_start_of(start_day),
        end=_end_of(end_day),
        label=label,
        cycle_id=cycle_id,
    )
