"""Budget spend aggregation and threshold crossing detection.

Alerts are edge-triggered: a transaction fires an alert only when it moves the
category's spend from below a boundary (the budget's alert threshold, or 100%)
to at or above it. Later transactions that keep spend above a boundary stay
silent, so each crossing is reported once per budget period.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from models import Budget, Transaction

if TYPE_CHECKING:  # pragma: no cover
    from store import Store


logger = logging.getLogger(__name__)

DEFAULT_ALERT_THRESHOLD = 80


class BudgetAlertState(str, Enum):
    below_threshold = "below_threshold"
    at_threshold = "at_threshold"
    exceeded = "exceeded"


def percent_of(spent_cents: int, budget_cents: int) -> float:
    return spent_cents / budget_cents * 100


def round_percent(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def classify(percent: float, threshold: float) -> BudgetAlertState:
    if percent >= 100:
        return BudgetAlertState.exceeded
    if percent >= threshold:
        return BudgetAlertState.at_threshold
    return BudgetAlertState.below_threshold


@dataclass(frozen=True)
class BudgetAlert:
    category_id: int
    category_name: str
    budget_amount_cents: int
    spent_amount_cents: int
    percent_spent: int
    alert_threshold: int
    is_exceeded: bool


@dataclass(frozen=True)
class AlertDecision:
    threshold: Optional[BudgetAlert] = None
    exceeded: Optional[BudgetAlert] = None

    def alerts(self) -> list[BudgetAlert]:
        return [a for a in (self.threshold, self.exceeded) if a is not None]

    def __bool__(self) -> bool:
        return self.threshold is not None or self.exceeded is not None


class SpendAggregator:
    def __init__(self, store: "Store") -> None:
        self.store = store

    def spend_by_category(
        self,
        owner_id: int,
        category_id: int,
        period_start: date,
        period_end: date,
    ) -> int:
        transactions = self.store.get_transactions_in_range(
            owner_id, period_start, period_end
        )
        return sum(
            txn.amount_cents
            for txn in transactions
            if not txn.is_income
            and txn.category_id == category_id
            and period_start <= txn.date <= period_end
        )


class ThresholdAlertDetector:
    def __init__(
        self, store: "Store", aggregator: Optional[SpendAggregator] = None
    ) -> None:
        self.store = store
        self.aggregator = aggregator or SpendAggregator(store)

    def _skip_reason(
        self,
        transaction: Transaction,
        budget: Optional[Budget],
        period_start: date,
        period_end: date,
    ) -> Optional[str]:
        if transaction.is_income:
            return "income"
        if transaction.category_id is None:
            return "uncategorized"
        if not period_start <= transaction.date <= period_end:
            return "outside_period"
        if budget is None or budget.category_id != transaction.category_id:
            return "no_budget"
        if budget.amount_cents <= 0:
            return "empty_budget"
        return None

    def detect(
        self,
        transaction: Transaction,
        budget: Optional[Budget],
        period_start: date,
        period_end: date,
    ) -> AlertDecision:
        reason = self._skip_reason(transaction, budget, period_start, period_end)
        if reason:
            logger.debug(
                "budget_alert_skip: transaction=%s reason=%s", transaction.id, reason
            )
            return AlertDecision()

        spent_after = self.aggregator.spend_by_category(
            transaction.user_id, budget.category_id, period_start, period_end
        )
        spent_before = spent_after - transaction.amount_cents
        threshold = budget.alert_threshold or DEFAULT_ALERT_THRESHOLD
        percent_before = percent_of(spent_before, budget.amount_cents)
        percent_after = percent_of(spent_after, budget.amount_cents)
        state_before = classify(percent_before, threshold)
        state_after = classify(percent_after, threshold)

        fire_threshold = (
            state_before == BudgetAlertState.below_threshold
            and state_after == BudgetAlertState.at_threshold
        )
        fire_exceeded = (
            state_before != BudgetAlertState.exceeded
            and state_after == BudgetAlertState.exceeded
        )
        if not (fire_threshold or fire_exceeded):
            return AlertDecision()

        category = self.store.get_category_by_id(budget.category_id)
        if category is None:
            logger.error(
                "budget_alert_abort: category=%s not found", budget.category_id
            )
            return AlertDecision()

        def build(is_exceeded: bool) -> BudgetAlert:
            return BudgetAlert(
                category_id=budget.category_id,
                category_name=category.name,
                budget_amount_cents=budget.amount_cents,
                spent_amount_cents=spent_after,
                percent_spent=round_percent(percent_after),
                alert_threshold=threshold,
                is_exceeded=is_exceeded,
            )

        logger.info(
            "budget_alert_crossing: category=%s before=%.1f%% after=%.1f%% state=%s",
            category.name,
            percent_before,
            percent_after,
            state_after.value,
        )
        return AlertDecision(
            threshold=build(False) if fire_threshold else None,
            exceeded=build(True) if fire_exceeded else None,
        )
