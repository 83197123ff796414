from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session, joinedload

from alerts import (
    DEFAULT_ALERT_THRESHOLD,
    BudgetAlert,
    ThresholdAlertDetector,
    classify,
    percent_of,
    round_percent,
)
from config import get_settings
from database import build_session_factory
from models import Account, Bill, Budget, Category, Transaction, User
from notifier import Notifier
from periods import Period, budget_period, month_period
from recurrence import (
    UpcomingBillAggregator,
    UpcomingOccurrence,
    advance,
    is_recurring,
    latest_occurrence,
    local_today,
)
from schemas import (
    AccountIn,
    BillIn,
    BudgetIn,
    CategoryIn,
    TransactionIn,
    UserIn,
)
from store import Store


logger = logging.getLogger(__name__)

DEFAULT_REMINDER_DAYS = 3


def get_current_user_id() -> int:
    return 1


class UserService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def get(self) -> User:
        user = self.session.get(User, self.user_id)
        if not user:
            raise ValueError("User not found")
        return user

    def update_profile(self, data: UserIn) -> User:
        user = self.session.get(User, self.user_id)
        if not user:
            user = User(id=self.user_id, username=data.username.strip())
            self.session.add(user)
        user.username = data.username.strip()
        user.full_name = data.full_name
        user.email = data.email.strip() if data.email else None
        self.session.commit()
        self.session.refresh(user)
        return user


class CategoryService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.name)
        )
        return self.session.scalars(stmt).all()

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise ValueError("Category not found")
        return category

    def create(self, data: CategoryIn) -> Category:
        existing = self.session.scalar(
            select(Category).where(
                Category.user_id == self.user_id,
                func.lower(Category.name) == data.name.strip().lower(),
            )
        )
        if existing:
            raise ValueError("Category with this name already exists")
        category = Category(
            user_id=self.user_id,
            name=data.name.strip(),
            color=data.color,
            icon=data.icon,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def rename(self, category_id: int, name: str) -> Category:
        category = self.get(category_id)
        category.name = name.strip()
        self.session.commit()
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        in_use = any(
            self.session.scalar(
                select(func.count(model.id)).where(model.category_id == category_id)
            )
            for model in (Transaction, Budget, Bill)
        )
        if in_use:
            raise ValueError("Category is still in use")
        self.session.delete(category)
        self.session.commit()


class AccountService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self) -> list[Account]:
        stmt = (
            select(Account)
            .where(Account.user_id == self.user_id)
            .order_by(Account.name, Account.id)
        )
        return self.session.scalars(stmt).all()

    def get(self, account_id: int) -> Account:
        account = self.session.get(Account, account_id)
        if not account or account.user_id != self.user_id:
            raise ValueError("Account not found")
        return account

    def create(self, data: AccountIn) -> Account:
        account = Account(
            user_id=self.user_id,
            name=data.name.strip(),
            type=data.type.strip(),
            balance_cents=data.balance_cents,
            currency=data.currency.upper(),
            description=data.description,
        )
        self.session.add(account)
        self.session.commit()
        self.session.refresh(account)
        return account

    def update(self, account_id: int, data: AccountIn) -> Account:
        account = self.get(account_id)
        account.name = data.name.strip()
        account.type = data.type.strip()
        account.balance_cents = data.balance_cents
        account.currency = data.currency.upper()
        account.description = data.description
        self.session.commit()
        self.session.refresh(account)
        return account

    def delete(self, account_id: int) -> None:
        account = self.get(account_id)
        in_use = self.session.scalar(
            select(func.count(Transaction.id)).where(
                Transaction.account_id == account_id
            )
        )
        if in_use:
            raise ValueError("Account still has transactions")
        self.session.delete(account)
        self.session.commit()


class TransactionService:
    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        alerts: Optional["BudgetAlertService"] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.alerts = alerts

    def list(self, period: Period, limit: int = 50, offset: int = 0) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(
                Transaction.user_id == self.user_id,
                Transaction.deleted_at.is_(None),
                Transaction.date.between(period.start, period.end),
            )
            .order_by(Transaction.date.desc(), Transaction.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return self.session.scalars(stmt).all()

    def list_between(self, start: date, end: date) -> list[Transaction]:
        if start > end:
            raise ValueError("Start date must be before end date")
        stmt = (
            select(Transaction)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.deleted_at.is_(None),
                Transaction.date.between(start, end),
            )
            .order_by(Transaction.date.desc(), Transaction.id.desc())
        )
        return self.session.scalars(stmt).all()

    def _check_refs(self, data: TransactionIn) -> None:
        if data.category_id is not None:
            category = self.session.get(Category, data.category_id)
            if not category or category.user_id != self.user_id:
                raise ValueError("Category not found")
        if data.account_id is not None:
            account = self.session.get(Account, data.account_id)
            if not account or account.user_id != self.user_id:
                raise ValueError("Account not found")

    def create(self, data: TransactionIn) -> tuple[Transaction, list[BudgetAlert]]:
        self._check_refs(data)
        txn = Transaction(
            user_id=self.user_id,
            date=data.date,
            amount_cents=data.amount_cents,
            description=data.description,
            account_id=data.account_id,
            category_id=data.category_id,
            is_income=data.is_income,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn, self._check_alerts(txn)

    def update(self, transaction_id: int, data: TransactionIn) -> Transaction:
        """Overwrite a transaction. Edits never raise budget alerts."""
        txn = self.get(transaction_id)
        self._check_refs(data)
        txn.date = data.date
        txn.amount_cents = data.amount_cents
        txn.description = data.description
        txn.account_id = data.account_id
        txn.category_id = data.category_id
        txn.is_income = data.is_income
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def _check_alerts(self, txn: Transaction) -> list[BudgetAlert]:
        if self.alerts is None:
            return []
        try:
            return self.alerts.check_transaction(txn)
        except Exception:
            logger.exception("budget_alert_check_failed: transaction=%s", txn.id)
            return []

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.scalar(
            select(Transaction).where(
                Transaction.user_id == self.user_id,
                Transaction.id == transaction_id,
                Transaction.deleted_at.is_(None),
            )
        )
        if not txn:
            raise ValueError("Transaction not found")
        return txn

    def soft_delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        txn.deleted_at = datetime.utcnow()
        self.session.commit()


class BudgetService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def _check_category(self, category_id: int) -> None:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise ValueError("Category not found")

    def list_all(self) -> list[Budget]:
        stmt = (
            select(Budget)
            .options(joinedload(Budget.category))
            .where(Budget.user_id == self.user_id)
            .order_by(Budget.start_date.desc(), Budget.id.desc())
        )
        return self.session.scalars(stmt).all()

    def get(self, budget_id: int) -> Budget:
        budget = self.session.get(Budget, budget_id)
        if not budget or budget.user_id != self.user_id:
            raise ValueError("Budget not found")
        return budget

    def create(self, data: BudgetIn) -> Budget:
        self._check_category(data.category_id)
        if self.active_budget_for_category(data.category_id, data.start_date):
            raise ValueError("An active budget already exists for this category")
        budget = Budget(
            user_id=self.user_id,
            category_id=data.category_id,
            amount_cents=data.amount_cents,
            period=data.period.value,
            alert_threshold=data.alert_threshold,
            start_date=data.start_date,
            end_date=data.end_date,
        )
        self.session.add(budget)
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def update(self, budget_id: int, data: BudgetIn) -> Budget:
        budget = self.get(budget_id)
        if data.category_id != budget.category_id:
            self._check_category(data.category_id)
        budget.category_id = data.category_id
        budget.amount_cents = data.amount_cents
        budget.period = data.period.value
        budget.alert_threshold = data.alert_threshold
        budget.start_date = data.start_date
        budget.end_date = data.end_date
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def delete(self, budget_id: int) -> None:
        budget = self.get(budget_id)
        self.session.delete(budget)
        self.session.commit()

    def active_budget_for_category(
        self, category_id: int, on_date: date
    ) -> Optional[Budget]:
        for budget in self.list_all():
            if budget.category_id != category_id or budget.start_date > on_date:
                continue
            if budget.end_date is None or budget.end_date >= on_date:
                return budget
        return None

    def _spent(self, category_id: int, period: Period) -> int:
        stmt = select(func.coalesce(func.sum(Transaction.amount_cents), 0)).where(
            Transaction.user_id == self.user_id,
            Transaction.deleted_at.is_(None),
            Transaction.is_income.is_(False),
            Transaction.category_id == category_id,
            Transaction.date.between(period.start, period.end),
        )
        return int(self.session.execute(stmt).scalar_one() or 0)

    def spending(self, today: Optional[date] = None) -> list[dict[str, object]]:
        today = today or local_today()
        rows: list[dict[str, object]] = []
        for budget in self.list_all():
            if budget.start_date > today or (
                budget.end_date is not None and budget.end_date < today
            ):
                continue
            period = budget_period(
                budget.period,
                today,
                start_date=budget.start_date,
                end_date=budget.end_date,
            )
            spent = self._spent(budget.category_id, period)
            threshold = budget.alert_threshold or DEFAULT_ALERT_THRESHOLD
            percent = percent_of(spent, budget.amount_cents) if budget.amount_cents else 0.0
            rows.append(
                {
                    "budget_id": budget.id,
                    "category_id": budget.category_id,
                    "category_name": budget.category.name if budget.category else None,
                    "period": period.slug,
                    "period_start": period.start,
                    "period_end": period.end,
                    "budget_amount_cents": budget.amount_cents,
                    "spent_amount_cents": spent,
                    "remaining_cents": budget.amount_cents - spent,
                    "percent_spent": round_percent(percent),
                    "alert_threshold": threshold,
                    "state": classify(percent, threshold).value,
                }
            )
        return rows

    def alert_status(self, today: Optional[date] = None) -> list[BudgetAlert]:
        """Budgets currently at or over their threshold, for display only."""
        alerts: list[BudgetAlert] = []
        for row in self.spending(today):
            if row["state"] == "below_threshold" or row["category_name"] is None:
                continue
            alerts.append(
                BudgetAlert(
                    category_id=row["category_id"],
                    category_name=row["category_name"],
                    budget_amount_cents=row["budget_amount_cents"],
                    spent_amount_cents=row["spent_amount_cents"],
                    percent_spent=row["percent_spent"],
                    alert_threshold=row["alert_threshold"],
                    is_exceeded=row["state"] == "exceeded",
                )
            )
        return alerts


class SummaryService:
    """Income, expense and savings totals for a calendar month or year."""

    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    @staticmethod
    def _split_columns():
        income = func.coalesce(
            func.sum(
                case(
                    (Transaction.is_income.is_(True), Transaction.amount_cents),
                    else_=0,
                )
            ),
            0,
        ).label("income")
        expenses = func.coalesce(
            func.sum(
                case(
                    (Transaction.is_income.is_(False), Transaction.amount_cents),
                    else_=0,
                )
            ),
            0,
        ).label("expenses")
        return income, expenses

    def _filters(self, start: date, end: date) -> tuple:
        return (
            Transaction.user_id == self.user_id,
            Transaction.deleted_at.is_(None),
            Transaction.date.between(start, end),
        )

    def monthly(self, year: int, month: int) -> dict[str, object]:
        if not 1 <= month <= 12:
            raise ValueError("Month must be between 1 and 12")
        period = month_period(year, month)
        row = self.session.execute(
            select(*self._split_columns()).where(*self._filters(period.start, period.end))
        ).one()
        income, expenses = int(row.income), int(row.expenses)

        total = func.sum(Transaction.amount_cents)
        stmt = (
            select(Category.id, Category.name, total.label("total"))
            .join(Category, Transaction.category_id == Category.id)
            .where(
                *self._filters(period.start, period.end),
                Transaction.is_income.is_(False),
            )
            .group_by(Category.id, Category.name)
            .order_by(total.desc(), Category.name)
        )
        categorized = [
            {
                "category_id": row.id,
                "category_name": row.name,
                "amount_cents": int(row.total or 0),
            }
            for row in self.session.execute(stmt)
        ]
        return {
            "year": year,
            "month": month,
            "income_cents": income,
            "expenses_cents": expenses,
            "savings_cents": income - expenses,
            "categorized_expenses": categorized,
        }

    def yearly(self, year: int) -> dict[str, object]:
        start, end = date(year, 1, 1), date(year, 12, 31)
        month = func.strftime("%m", Transaction.date).label("month")
        stmt = (
            select(month, *self._split_columns())
            .where(*self._filters(start, end))
            .group_by("month")
        )
        totals: dict[int, tuple[int, int]] = {}
        for row in self.session.execute(stmt):
            totals[int(row.month)] = (int(row.income), int(row.expenses))

        breakdown = []
        for number in range(1, 13):
            income, expenses = totals.get(number, (0, 0))
            breakdown.append(
                {"month": number, "income_cents": income, "expenses_cents": expenses}
            )
        income = sum(item["income_cents"] for item in breakdown)
        expenses = sum(item["expenses_cents"] for item in breakdown)
        return {
            "year": year,
            "income_cents": income,
            "expenses_cents": expenses,
            "savings_cents": income - expenses,
            "monthly_breakdown": breakdown,
        }


class BillService:
    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        aggregator: Optional[UpcomingBillAggregator] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.aggregator = aggregator or UpcomingBillAggregator(
            Store(build_session_factory(session.get_bind()))
        )

    def _check_category(self, category_id: Optional[int]) -> None:
        if category_id is None:
            return
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise ValueError("Category not found")

    def list_all(self) -> list[Bill]:
        stmt = (
            select(Bill)
            .where(Bill.user_id == self.user_id)
            .order_by(Bill.due_date, Bill.id)
        )
        return self.session.scalars(stmt).all()

    def get(self, bill_id: int) -> Bill:
        bill = self.session.get(Bill, bill_id)
        if not bill or bill.user_id != self.user_id:
            raise ValueError("Bill not found")
        return bill

    def create(self, data: BillIn) -> Bill:
        self._check_category(data.category_id)
        bill = Bill(user_id=self.user_id, **data.model_dump())
        if bill.original_start_date is None:
            bill.original_start_date = data.due_date
        self.session.add(bill)
        self.session.commit()
        self.session.refresh(bill)
        return bill

    def update(self, bill_id: int, data: BillIn) -> Bill:
        bill = self.get(bill_id)
        if data.category_id != bill.category_id:
            self._check_category(data.category_id)
        for field, value in data.model_dump().items():
            setattr(bill, field, value)
        if bill.original_start_date is None:
            bill.original_start_date = data.due_date
        self.session.commit()
        self.session.refresh(bill)
        return bill

    def delete(self, bill_id: int) -> None:
        bill = self.get(bill_id)
        self.session.delete(bill)
        self.session.commit()

    def mark_paid(
        self, bill_id: int, today: Optional[date] = None
    ) -> tuple[Bill, Optional[date]]:
        """Record a payment and return the bill with its next due date.

        The paid occurrence is the stored ``due_date``, or one period past the
        anchor when that occurrence was already paid. An overdue bill pays the
        latest occurrence on or before ``today`` instead. The anchor is pinned
        to the paid occurrence and ``due_date`` rolls to the next period.
        """
        bill = self.get(bill_id)
        if not is_recurring(bill.recurring_period):
            bill.is_paid = True
            self.session.commit()
            return bill, None

        today = today or local_today()
        anchor = bill.original_start_date or bill.due_date
        if bill.is_paid:
            paid_on = advance(anchor, bill.recurring_period, 1)
        else:
            paid_on = bill.due_date
        if paid_on < today:
            paid_on = max(
                paid_on, latest_occurrence(anchor, bill.recurring_period, today)
            )
        next_due = advance(paid_on, bill.recurring_period, 1)

        bill.original_start_date = paid_on
        bill.due_date = next_due
        bill.is_paid = True
        self.session.commit()
        self.session.refresh(bill)
        logger.info(
            "bill_paid: bill=%s occurrence=%s next_due=%s", bill.id, paid_on, next_due
        )
        return bill, next_due

    def upcoming(
        self, window_days: Optional[int] = None, today: Optional[date] = None
    ) -> list[UpcomingOccurrence]:
        if window_days is None:
            window_days = get_settings().upcoming_window_days
        return self.aggregator.get_upcoming_bills(self.user_id, window_days, today)


class BudgetAlertService:
    """Runs crossing detection for a freshly written transaction and mails the owner."""

    def __init__(
        self,
        store: Store,
        detector: ThresholdAlertDetector,
        notifier: Notifier,
    ) -> None:
        self.store = store
        self.detector = detector
        self.notifier = notifier

    def check_transaction(
        self, transaction: Transaction, today: Optional[date] = None
    ) -> list[BudgetAlert]:
        if transaction.is_income or transaction.category_id is None:
            return []
        today = today or local_today()
        budget = self.store.get_active_budget(
            transaction.user_id, transaction.category_id, today
        )
        if budget is None:
            logger.debug(
                "budget_alert_skip: no budget for category=%s", transaction.category_id
            )
            return []
        period = budget_period(
            budget.period, today, start_date=budget.start_date, end_date=budget.end_date
        )
        alerts = self.detector.detect(
            transaction, budget, period.start, period.end
        ).alerts()
        if not alerts:
            return []

        user = self.store.get_user_by_id(transaction.user_id)
        if user is None or not user.email:
            logger.error(
                "budget_alert_abort: user=%s not found or has no email",
                transaction.user_id,
            )
            return alerts
        for alert in alerts:
            self._dispatch(user, alert)
        return alerts

    def _dispatch(self, user: User, alert: BudgetAlert) -> None:
        kind = "exceeded" if alert.is_exceeded else "threshold"
        try:
            sent = self.notifier.send_budget_alert(
                user.email,
                alert.category_name,
                alert.budget_amount_cents,
                alert.spent_amount_cents,
                alert.alert_threshold,
                alert.is_exceeded,
                user_name=user.full_name or user.username,
            )
        except Exception:
            logger.exception(
                "budget_alert_send_failed: kind=%s category=%s",
                kind,
                alert.category_name,
            )
            return
        if sent:
            logger.info(
                "budget_alert_sent: kind=%s category=%s to=%s",
                kind,
                alert.category_name,
                user.email,
            )
        else:
            logger.warning(
                "budget_alert_not_sent: kind=%s category=%s to=%s",
                kind,
                alert.category_name,
                user.email,
            )


class BillReminderService:
    def __init__(
        self,
        store: Store,
        aggregator: UpcomingBillAggregator,
        notifier: Notifier,
        lookahead_days: Optional[int] = None,
    ) -> None:
        self.store = store
        self.aggregator = aggregator
        self.notifier = notifier
        self.lookahead_days = (
            lookahead_days
            if lookahead_days is not None
            else get_settings().reminder_lookahead_days
        )

    def check_owner(self, owner_id: int, today: Optional[date] = None) -> int:
        user = self.store.get_user_by_id(owner_id)
        if user is None or not user.email:
            logger.error("bill_reminder_skip: user=%s has no email", owner_id)
            return 0
        today = today or local_today()
        window = max(
            [self.lookahead_days]
            + [b.reminder_days or 0 for b in self.store.get_bills_by_owner(owner_id)]
        )

        sent = 0
        for occ in self.aggregator.get_upcoming_bills(owner_id, window, today):
            days_to_due = occ.days_until_due(today)
            if days_to_due > (occ.reminder_days or DEFAULT_REMINDER_DAYS):
                continue
            try:
                ok = self.notifier.send_bill_reminder(
                    user.email,
                    occ.name,
                    occ.amount_cents,
                    occ.due_date,
                    days_to_due,
                    user_name=user.full_name or user.username,
                )
            except Exception:
                logger.exception("bill_reminder_failed: bill=%s", occ.id)
                continue
            if ok:
                sent += 1
                logger.info(
                    "bill_reminder_sent: bill=%s due=%s to=%s",
                    occ.id,
                    occ.due_date,
                    user.email,
                )
        return sent

    def send_all(self, today: Optional[date] = None) -> int:
        users = self.store.list_users()
        logger.info("bill_reminders: processing users=%s", len(users))
        return sum(self.check_owner(user.id, today) for user in users)
