from datetime import date

from database import build_engine, build_session_factory
from models import Bill, Budget, Category
from store import Store


def test_reads_fail_soft_when_schema_is_missing(tmp_path):
    eng = build_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    store = Store(build_session_factory(eng))

    assert store.get_bills_by_owner(1) == []
    assert store.get_recurring_bills(1) == []
    assert store.get_transactions_in_range(1, date(2024, 1, 1), date(2024, 1, 31)) == []
    assert store.get_category_by_id(1) is None
    assert store.get_user_by_id(1) is None
    assert store.get_active_budget(1, 1, date(2024, 1, 1)) is None
    eng.dispose()


def test_recurring_bills_excludes_one_time_periods(session, store, owner):
    for name, period in [
        ("Rent", "monthly"),
        ("Legacy", "Fortnightly"),
        ("Deposit", "once"),
        ("Fee", "none"),
        ("Blank", None),
    ]:
        session.add(
            Bill(
                user_id=1,
                name=name,
                amount_cents=100,
                due_date=date(2024, 1, 1),
                recurring_period=period,
            )
        )
    session.commit()

    names = sorted(b.name for b in store.get_recurring_bills(1))

    assert names == ["Legacy", "Rent"]


def test_active_budget_respects_date_range(session, store, groceries):
    session.add_all(
        [
            Budget(
                user_id=1,
                category_id=groceries.id,
                amount_cents=40000,
                start_date=date(2023, 1, 1),
                end_date=date(2023, 12, 31),
            ),
            Budget(
                user_id=1,
                category_id=groceries.id,
                amount_cents=50000,
                start_date=date(2024, 1, 1),
            ),
        ]
    )
    session.commit()

    assert store.get_active_budget(1, groceries.id, date(2023, 6, 1)).amount_cents == 40000
    assert store.get_active_budget(1, groceries.id, date(2024, 6, 1)).amount_cents == 50000
    assert store.get_active_budget(1, groceries.id, date(2022, 6, 1)) is None


def test_category_lookup(store, groceries):
    found = store.get_category_by_id(groceries.id)

    assert isinstance(found, Category)
    assert found.name == "Groceries"
    assert store.get_category_by_id(999) is None


def test_budgets_by_owner_newest_first(session, store, groceries):
    session.add_all(
        [
            Budget(user_id=1, category_id=groceries.id, amount_cents=1, start_date=date(2023, 1, 1)),
            Budget(user_id=1, category_id=groceries.id, amount_cents=2, start_date=date(2024, 1, 1)),
            Budget(user_id=2, category_id=groceries.id, amount_cents=3, start_date=date(2024, 1, 1)),
        ]
    )
    session.commit()

    assert [b.amount_cents for b in store.get_budgets_by_owner(1)] == [2, 1]
