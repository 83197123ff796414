from datetime import date

import pytest

from schemas import AccountIn, TransactionIn
from services import AccountService, TransactionService


def _checking(session):
    return AccountService(session).create(
        AccountIn(name=" Checking ", type="checking", balance_cents=250000, currency="eur")
    )


def test_create_normalizes_fields(session, owner):
    account = _checking(session)

    assert account.name == "Checking"
    assert account.currency == "EUR"
    assert account.balance_cents == 250000


def test_list_is_scoped_to_owner(session, owner):
    _checking(session)
    AccountService(session, user_id=2).create(AccountIn(name="Other", type="savings"))

    assert [a.name for a in AccountService(session).list_all()] == ["Checking"]


def test_update_and_delete(session, owner):
    account = _checking(session)
    service = AccountService(session)

    updated = service.update(
        account.id, AccountIn(name="Joint", type="checking", balance_cents=-1500)
    )
    assert updated.name == "Joint"
    assert updated.balance_cents == -1500
    assert updated.currency == "USD"

    service.delete(account.id)
    with pytest.raises(ValueError):
        service.get(account.id)


def test_account_with_transactions_cannot_be_deleted(session, owner):
    account = _checking(session)
    txn, _ = TransactionService(session).create(
        TransactionIn(date=date(2024, 3, 1), amount_cents=500, account_id=account.id)
    )

    assert txn.account_id == account.id
    with pytest.raises(ValueError):
        AccountService(session).delete(account.id)


def test_other_owners_account_is_not_found(session, owner):
    account = _checking(session)

    with pytest.raises(ValueError):
        AccountService(session, user_id=2).get(account.id)
    with pytest.raises(ValueError):
        TransactionService(session, user_id=2).create(
            TransactionIn(date=date(2024, 3, 1), amount_cents=1, account_id=account.id)
        )


def test_currency_must_be_three_letters():
    with pytest.raises(ValueError):
        AccountIn(name="Cash", type="cash", currency="EURO")
