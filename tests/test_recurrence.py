from datetime import date

import pytest

from models import RecurringPeriod
from recurrence import (
    add_months,
    advance,
    is_recurring,
    latest_occurrence,
    next_occurrence,
    parse_period,
)


def test_unpaid_monthly_bill_steps_past_today():
    anchor = date(2024, 1, 10)
    assert next_occurrence(anchor, "monthly", date(2024, 3, 15)) == date(2024, 4, 10)


def test_paid_bill_moves_one_period_regardless_of_reference():
    anchor = date(2024, 1, 10)
    for reference in (date(2023, 12, 1), date(2024, 3, 15), date(2025, 6, 1)):
        assert next_occurrence(
            anchor, "monthly", reference, was_just_paid=True
        ) == date(2024, 2, 10)


def test_future_anchor_is_returned_unchanged():
    anchor = date(2024, 5, 1)
    assert next_occurrence(anchor, "weekly", date(2024, 4, 1)) == anchor


def test_anchor_equal_to_reference_is_due_today():
    anchor = date(2024, 3, 15)
    assert next_occurrence(anchor, "monthly", anchor) == anchor


@pytest.mark.parametrize("period", ["none", "once", None, "", "ONCE"])
def test_non_recurring_bill_never_moves(period):
    anchor = date(2024, 1, 10)
    assert next_occurrence(anchor, period, date(2024, 3, 15)) == anchor
    assert next_occurrence(anchor, period, date(2024, 3, 15), was_just_paid=True) == anchor


@pytest.mark.parametrize(
    "period,expected",
    [
        ("weekly", date(2024, 3, 20)),
        ("monthly", date(2024, 4, 10)),
        ("quarterly", date(2024, 4, 10)),
        ("yearly", date(2025, 1, 10)),
    ],
)
def test_each_period_lands_on_or_after_reference(period, expected):
    anchor = date(2024, 1, 10)
    reference = date(2024, 3, 15)
    result = next_occurrence(anchor, period, reference)
    assert result == expected
    assert result >= reference


def test_result_is_a_whole_number_of_periods_from_anchor():
    anchor = date(2023, 11, 30)
    reference = date(2024, 7, 2)
    result = next_occurrence(anchor, "monthly", reference)
    assert any(advance(anchor, "monthly", n) == result for n in range(0, 24))
    assert advance(anchor, "monthly", 7) < reference <= result


def test_month_end_anchor_clamps_and_recovers():
    anchor = date(2024, 1, 31)
    assert advance(anchor, "monthly", 1) == date(2024, 2, 29)
    assert advance(anchor, "monthly", 2) == date(2024, 3, 31)
    assert advance(anchor, "monthly", 3) == date(2024, 4, 30)
    assert next_occurrence(anchor, "monthly", date(2024, 2, 15)) == date(2024, 2, 29)


def test_leap_day_yearly_anchor_clamps():
    assert add_months(date(2024, 2, 29), 12) == date(2025, 2, 28)
    assert advance(date(2024, 2, 29), "yearly", 4) == date(2028, 2, 29)


def test_unknown_period_behaves_like_monthly():
    anchor = date(2024, 1, 10)
    reference = date(2024, 3, 15)
    assert parse_period("fortnightly") == RecurringPeriod.monthly
    assert next_occurrence(anchor, "fortnightly", reference) == next_occurrence(
        anchor, "monthly", reference
    )


def test_is_recurring():
    assert is_recurring("monthly")
    assert is_recurring("Weekly")
    assert is_recurring("something-else")
    assert not is_recurring("none")
    assert not is_recurring("once")
    assert not is_recurring(None)


def test_latest_occurrence_on_or_before_reference():
    anchor = date(2024, 1, 10)

    assert latest_occurrence(anchor, "monthly", date(2024, 3, 15)) == date(2024, 3, 10)
    assert latest_occurrence(anchor, "monthly", date(2024, 3, 10)) == date(2024, 3, 10)
    assert latest_occurrence(anchor, "weekly", date(2024, 1, 16)) == date(2024, 1, 10)
    assert latest_occurrence(anchor, "monthly", date(2024, 1, 1)) == anchor
    assert latest_occurrence(anchor, "none", date(2024, 6, 1)) == anchor
