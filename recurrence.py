from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Optional
from zoneinfo import ZoneInfo

from config import get_settings
from models import Bill, RecurringPeriod

if TYPE_CHECKING:  # pragma: no cover
    from store import Store


logger = logging.getLogger(__name__)

_MONTHS_PER_STEP = {
    RecurringPeriod.monthly: 1,
    RecurringPeriod.quarterly: 3,
    RecurringPeriod.yearly: 12,
}


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def add_months(base: date, months: int) -> date:
    """Shift ``base`` by whole months, clamping to the last day of short months."""
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    day = min(base.day, days_in_month(year, month))
    return date(year, month, day)


def parse_period(value: Optional[str]) -> RecurringPeriod:
    if value is None:
        return RecurringPeriod.none
    if isinstance(value, RecurringPeriod):
        return value
    normalized = value.strip().lower()
    if not normalized:
        return RecurringPeriod.none
    try:
        return RecurringPeriod(normalized)
    except ValueError:
        logger.debug("recurrence: unknown period %r, using monthly", value)
        return RecurringPeriod.monthly


def is_recurring(value: Optional[str]) -> bool:
    return parse_period(value) not in (RecurringPeriod.none, RecurringPeriod.once)


def advance(anchor: date, period: Optional[str], steps: int = 1) -> date:
    """Return ``anchor`` moved forward by ``steps`` whole periods.

    Every step count is computed from the anchor itself, so an anchor on the
    31st keeps landing on the 31st in long months even after a short one.
    """
    kind = parse_period(period)
    if kind in (RecurringPeriod.none, RecurringPeriod.once) or steps == 0:
        return anchor
    if kind == RecurringPeriod.weekly:
        return anchor + timedelta(weeks=steps)
    return add_months(anchor, _MONTHS_PER_STEP[kind] * steps)


def next_occurrence(
    anchor: date,
    period: Optional[str],
    reference: date,
    was_just_paid: bool = False,
) -> date:
    """Project the due date of a recurring bill relative to ``reference``.

    A paid bill moves exactly one period past its anchor, however old the
    anchor is. Otherwise an anchor still ahead of ``reference`` is returned
    as is, and an older one is stepped forward until it reaches ``reference``.
    One-time bills never move.
    """
    if not is_recurring(period):
        return anchor
    if was_just_paid:
        return advance(anchor, period, 1)
    if anchor > reference:
        return anchor

    steps = 0
    candidate = anchor
    while candidate < reference:
        steps += 1
        candidate = advance(anchor, period, steps)
    return candidate


def latest_occurrence(anchor: date, period: Optional[str], reference: date) -> date:
    """Return the last occurrence on or before ``reference``, or ``anchor`` if none."""
    if not is_recurring(period) or anchor >= reference:
        return anchor
    steps = 0
    while advance(anchor, period, steps + 1) <= reference:
        steps += 1
    return advance(anchor, period, steps)


@dataclass(frozen=True)
class UpcomingOccurrence:
    id: int
    user_id: int
    name: str
    amount_cents: int
    due_date: date
    original_start_date: Optional[date]
    recurring_period: Optional[str]
    is_paid: bool
    reminder_days: int
    category_id: Optional[int]
    notes: Optional[str]
    is_recurring_occurrence: bool = False
    original_due_date: Optional[date] = None

    @classmethod
    def from_bill(cls, bill: Bill) -> "UpcomingOccurrence":
        return cls(
            id=bill.id,
            user_id=bill.user_id,
            name=bill.name,
            amount_cents=bill.amount_cents,
            due_date=bill.due_date,
            original_start_date=bill.original_start_date,
            recurring_period=bill.recurring_period,
            is_paid=bill.is_paid,
            reminder_days=bill.reminder_days,
            category_id=bill.category_id,
            notes=bill.notes,
        )

    def projected(self, due_date: date, anchor: date) -> "UpcomingOccurrence":
        return replace(
            self,
            due_date=due_date,
            is_paid=False,
            is_recurring_occurrence=True,
            original_due_date=anchor,
        )

    def days_until_due(self, today: date) -> int:
        return (self.due_date - today).days


class UpcomingBillAggregator:
    def __init__(self, store: "Store") -> None:
        self.store = store

    def get_upcoming_bills(
        self, owner_id: int, window_days: int, today: Optional[date] = None
    ) -> list[UpcomingOccurrence]:
        today = today or local_today()
        window_end = today + timedelta(days=max(window_days, 0))

        stored = self.store.get_unpaid_bills_due_between(owner_id, today, window_end)
        upcoming = [UpcomingOccurrence.from_bill(bill) for bill in stored]
        seen = {occ.id for occ in upcoming}

        for bill in self.store.get_recurring_bills(owner_id):
            if bill.id in seen or not is_recurring(bill.recurring_period):
                continue
            anchor = bill.original_start_date or bill.due_date
            due = next_occurrence(
                anchor, bill.recurring_period, today, was_just_paid=bill.is_paid
            )
            if due < today:
                # paid occurrence is long gone, resume from the current cycle
                due = next_occurrence(anchor, bill.recurring_period, today)
            if not today <= due <= window_end:
                logger.debug(
                    "upcoming_bills: bill=%s next=%s outside window", bill.id, due
                )
                continue
            seen.add(bill.id)
            upcoming.append(UpcomingOccurrence.from_bill(bill).projected(due, anchor))

        upcoming.sort(key=lambda occ: (occ.due_date, occ.id))
        logger.debug(
            "upcoming_bills: owner=%s window=%s..%s stored=%s total=%s",
            owner_id,
            today,
            window_end,
            len(stored),
            len(upcoming),
        )
        return upcoming
