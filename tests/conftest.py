from datetime import date
from typing import Optional

import pytest

from database import Base, build_engine, build_session_factory
from models import Budget, Category, User
from store import Store


class FakeNotifier:
    def __init__(self, result: bool = True, error: Optional[Exception] = None) -> None:
        self.result = result
        self.error = error
        self.budget_alerts: list[dict] = []
        self.bill_reminders: list[dict] = []

    def send_budget_alert(
        self,
        owner_email,
        category_name,
        budget_amount_cents,
        spent_amount_cents,
        threshold,
        is_exceeded,
        user_name=None,
    ):
        if self.error:
            raise self.error
        self.budget_alerts.append(
            {
                "to": owner_email,
                "category_name": category_name,
                "budget_amount_cents": budget_amount_cents,
                "spent_amount_cents": spent_amount_cents,
                "threshold": threshold,
                "is_exceeded": is_exceeded,
                "user_name": user_name,
            }
        )
        return self.result

    def send_bill_reminder(
        self,
        owner_email,
        bill_name,
        amount_cents,
        due_date,
        days_to_due,
        user_name=None,
    ):
        if self.error:
            raise self.error
        self.bill_reminders.append(
            {
                "to": owner_email,
                "bill_name": bill_name,
                "amount_cents": amount_cents,
                "due_date": due_date,
                "days_to_due": days_to_due,
                "user_name": user_name,
            }
        )
        return self.result


@pytest.fixture
def engine(tmp_path):
    eng = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def session(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def store(session_factory):
    return Store(session_factory)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def owner(session):
    user = User(id=1, username="alex", full_name="Alex Doe", email="alex@example.com")
    session.add(user)
    session.commit()
    return user


@pytest.fixture
def groceries(session, owner):
    category = Category(user_id=owner.id, name="Groceries")
    session.add(category)
    session.commit()
    return category


@pytest.fixture
def groceries_budget(session, groceries):
    budget = Budget(
        user_id=1,
        category_id=groceries.id,
        amount_cents=50000,
        period="monthly",
        alert_threshold=80,
        start_date=date(2024, 1, 1),
    )
    session.add(budget)
    session.commit()
    return budget
