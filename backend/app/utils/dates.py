from __future__ import annotations

import calendar
from datetime import date, timedelta


def monday_of(d: date) -> date:
    return d - timedelta(days=d.weekday())


def add_days(d: date, n: int) -> date:
    return d + timedelta(days=n)


def daterange(start: date, end: date):
    day = start
    while day <= end:
        yield day
        day = day + timedelta(days=1)


def normalize_range(start: date, end: date) -> tuple[date, date]:
    if start > end:
        return end, start
    return start, end


def prev_period(start: date, end: date) -> tuple[date, date]:
    """Same length as [start, end], ending the day before start."""
    length = (end - start).days + 1
    prev_end = start - timedelta(days=1)
    return prev_end - timedelta(days=length - 1), prev_end


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def month_bounds(year: int, month: int) -> tuple[date, date]:
    return date(year, month, 1), date(year, month, days_in_month(year, month))


def add_months(d: date, n: int) -> date:
    """First day of the month n months away from d."""
    idx = d.year * 12 + (d.month - 1) + n
    return date(idx // 12, idx % 12 + 1, 1)


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def iso_week_key(d: date) -> str:
    y, w, _ = d.isocalendar()
    return f"{y:04d}-W{w:02d}"


def day_type(d: date) -> str:
    # Fri, Sat, Sun
    return "weekend" if d.weekday() >= 4 else "weekday"


def team_for(d: date) -> str:
    return "wk" if d.weekday() <= 3 else "we"


def quarter_bounds(d: date) -> tuple[date, date]:
    q0 = (d.month - 1) // 3 * 3 + 1
    start = date(d.year, q0, 1)
    end_month = add_months(start, 3) - timedelta(days=1)
    return start, end_month


PRESETS = (
    "today",
    "yesterday",
    "last7",
    "thisWeek",
    "prevWeek",
    "last30",
    "currentMonth",
    "prevMonth",
    "thisQuarter",
    "lastQuarter",
    "currentYear",
    "prevYear",
)


def preset_range(name: str, today: date) -> tuple[date, date]:
    if name == "today":
        return today, today
    if name == "yesterday":
        y = today - timedelta(days=1)
        return y, y
    if name == "last7":
        return today - timedelta(days=6), today
    if name == "thisWeek":
        return monday_of(today), today
    if name == "prevWeek":
        mon = monday_of(today) - timedelta(days=7)
        return mon, mon + timedelta(days=6)
    if name == "last30":
        return today - timedelta(days=29), today
    if name == "currentMonth":
        return date(today.year, today.month, 1), today
    if name == "prevMonth":
        first = add_months(today, -1)
        return month_bounds(first.year, first.month)
    if name == "thisQuarter":
        return quarter_bounds(today)[0], today
    if name == "lastQuarter":
        start, _ = quarter_bounds(today)
        return quarter_bounds(start - timedelta(days=1))
    if name == "currentYear":
        return date(today.year, 1, 1), today
    if name == "prevYear":
        return date(today.year - 1, 1, 1), date(today.year - 1, 12, 31)
    raise ValueError(f"unknown preset: {name}")
