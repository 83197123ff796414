"""Read-only record repository used by the projection and alerting code.

Every query runs in its own short-lived session. Database errors are logged
and turn into empty results so that a failing read never breaks the dashboard
or the transaction write path.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Optional, TypeVar

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from models import Bill, Budget, Category, RecurringPeriod, Transaction, User


logger = logging.getLogger(__name__)

T = TypeVar("T")

NON_RECURRING_PERIODS = (RecurringPeriod.none.value, RecurringPeriod.once.value, "")


class Store:
    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory

    def _read(self, label: str, query: Callable[[Session], T], default: T) -> T:
        try:
            with self.session_factory() as session:
                return query(session)
        except SQLAlchemyError:
            logger.exception("store_read_failed: query=%s", label)
            return default

    def get_bills_by_owner(self, owner_id: int) -> list[Bill]:
        stmt = select(Bill).where(Bill.user_id == owner_id).order_by(Bill.due_date)
        return self._read(
            "bills_by_owner", lambda s: list(s.scalars(stmt).all()), []
        )

    def get_unpaid_bills_due_between(
        self, owner_id: int, start: date, end: date
    ) -> list[Bill]:
        stmt = (
            select(Bill)
            .where(
                Bill.user_id == owner_id,
                Bill.is_paid.is_(False),
                Bill.due_date.between(start, end),
            )
            .order_by(Bill.due_date, Bill.id)
        )
        return self._read(
            "unpaid_bills_due_between", lambda s: list(s.scalars(stmt).all()), []
        )

    def get_recurring_bills(self, owner_id: int) -> list[Bill]:
        stmt = (
            select(Bill)
            .where(
                Bill.user_id == owner_id,
                Bill.recurring_period.is_not(None),
                func.lower(Bill.recurring_period).not_in(NON_RECURRING_PERIODS),
            )
            .order_by(Bill.id)
        )
        return self._read(
            "recurring_bills", lambda s: list(s.scalars(stmt).all()), []
        )

    def get_transactions_in_range(
        self, owner_id: int, start: date, end: date
    ) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(
                Transaction.user_id == owner_id,
                Transaction.deleted_at.is_(None),
                Transaction.date.between(start, end),
            )
            .order_by(Transaction.date, Transaction.id)
        )
        return self._read(
            "transactions_in_range", lambda s: list(s.scalars(stmt).all()), []
        )

    def get_budgets_by_owner(self, owner_id: int) -> list[Budget]:
        stmt = (
            select(Budget)
            .where(Budget.user_id == owner_id)
            .order_by(Budget.start_date.desc(), Budget.id.desc())
        )
        return self._read(
            "budgets_by_owner", lambda s: list(s.scalars(stmt).all()), []
        )

    def get_active_budget(
        self, owner_id: int, category_id: int, on_date: date
    ) -> Optional[Budget]:
        stmt = (
            select(Budget)
            .where(
                Budget.user_id == owner_id,
                Budget.category_id == category_id,
                Budget.start_date <= on_date,
                or_(Budget.end_date.is_(None), Budget.end_date >= on_date),
            )
            .order_by(Budget.start_date.desc(), Budget.id.desc())
            .limit(1)
        )
        return self._read("active_budget", lambda s: s.scalar(stmt), None)

    def get_category_by_id(self, category_id: int) -> Optional[Category]:
        return self._read(
            "category_by_id", lambda s: s.get(Category, category_id), None
        )

    def get_user_by_id(self, user_id: int) -> Optional[User]:
        return self._read("user_by_id", lambda s: s.get(User, user_id), None)

    def list_users(self) -> list[User]:
        stmt = select(User).order_by(User.id)
        return self._read("list_users", lambda s: list(s.scalars(stmt).all()), [])
