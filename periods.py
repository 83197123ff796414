from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from models import BudgetPeriod


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date


def _month_bounds(today: date) -> tuple[date, date]:
    first = today.replace(day=1)
    if first.month == 12:
        next_month = first.replace(year=first.year + 1, month=1)
    else:
        next_month = first.replace(month=first.month + 1)
    return first, next_month - date.resolution


def month_period(year: int, month: int) -> Period:
    first, last = _month_bounds(date(year, month, 1))
    return Period(f"{year:04d}-{month:02d}", first, last)


def resolve_period(
    period: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
) -> Period:
    today = today or date.today()
    if not period or period == "all":
        return Period("all", date(1970, 1, 1), today)
    if period == "last_month":
        first_this = today.replace(day=1)
        last_month_end = first_this - date.resolution
        last_month_start = last_month_end.replace(day=1)
        return Period("last_month", last_month_start, last_month_end)
    if period == "custom":
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period("custom", start_date, end_date)

    first, last = _month_bounds(today)
    return Period("this_month", first, last)


def budget_period(
    period: Optional[str],
    today: date,
    *,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> Period:
    """Return the budget window that contains ``today``.

    Weekly windows run Monday to Sunday, monthly and yearly windows follow the
    calendar. Unknown period names are treated as monthly. The window is
    clipped to the budget's own start and end dates when they fall inside it.
    """
    slug = (period or "").strip().lower()
    if slug == BudgetPeriod.weekly.value:
        start = today - timedelta(days=today.weekday())
        end = start + timedelta(days=6)
    elif slug == BudgetPeriod.yearly.value:
        start = date(today.year, 1, 1)
        end = date(today.year, 12, 31)
    else:
        slug = BudgetPeriod.monthly.value
        start, end = _month_bounds(today)

    if start_date and start_date > start:
        start = start_date
    if end_date and end_date < end:
        end = end_date
    return Period(slug, start, end)
