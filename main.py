from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from sqlalchemy.orm import Session

from alerts import BudgetAlert, ThresholdAlertDetector
from config import get_settings
from database import SessionLocal
from models import Account, Bill, Budget, Category, Transaction, User
from notifier import SmtpNotifier
from periods import Period, resolve_period
from recurrence import UpcomingBillAggregator, UpcomingOccurrence, local_today
from scheduler import SchedulerManager
from schemas import AccountIn, BillIn, BudgetIn, CategoryIn, TransactionIn, UserIn
from services import (
    AccountService,
    BillService,
    BudgetAlertService,
    BudgetService,
    CategoryService,
    SummaryService,
    TransactionService,
    UserService,
)
from store import Store

app = FastAPI(title="Findash")

_store = Store(SessionLocal)
_alert_service = BudgetAlertService(
    _store, ThresholdAlertDetector(_store), SmtpNotifier()
)
_bill_aggregator = UpcomingBillAggregator(_store)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_alert_service() -> BudgetAlertService:
    return _alert_service


def get_bill_aggregator() -> UpcomingBillAggregator:
    return _bill_aggregator


scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def period_from_request(request: Request) -> Period:
    period_slug = request.query_params.get("period")
    start = request.query_params.get("start")
    end = request.query_params.get("end")
    try:
        return resolve_period(period_slug, start, end)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def user_payload(user: User) -> dict[str, object]:
    return {
        "id": user.id,
        "username": user.username,
        "full_name": user.full_name,
        "email": user.email,
    }


def category_payload(category: Category) -> dict[str, object]:
    return {
        "id": category.id,
        "name": category.name,
        "color": category.color,
        "icon": category.icon,
    }


def account_payload(account: Account) -> dict[str, object]:
    return {
        "id": account.id,
        "name": account.name,
        "type": account.type,
        "balance_cents": account.balance_cents,
        "currency": account.currency,
        "description": account.description,
    }


def transaction_payload(txn: Transaction) -> dict[str, object]:
    return {
        "id": txn.id,
        "date": txn.date.isoformat(),
        "amount_cents": txn.amount_cents,
        "description": txn.description,
        "account_id": txn.account_id,
        "category_id": txn.category_id,
        "is_income": txn.is_income,
    }


def budget_payload(budget: Budget) -> dict[str, object]:
    return {
        "id": budget.id,
        "category_id": budget.category_id,
        "amount_cents": budget.amount_cents,
        "period": budget.period,
        "alert_threshold": budget.alert_threshold,
        "start_date": budget.start_date.isoformat(),
        "end_date": budget.end_date.isoformat() if budget.end_date else None,
    }


def alert_payload(alert: BudgetAlert) -> dict[str, object]:
    return {
        "category_id": alert.category_id,
        "category_name": alert.category_name,
        "budget_amount_cents": alert.budget_amount_cents,
        "spent_amount_cents": alert.spent_amount_cents,
        "percent_spent": alert.percent_spent,
        "alert_threshold": alert.alert_threshold,
        "is_exceeded": alert.is_exceeded,
    }


def bill_payload(bill: Bill) -> dict[str, object]:
    return {
        "id": bill.id,
        "name": bill.name,
        "amount_cents": bill.amount_cents,
        "due_date": bill.due_date.isoformat(),
        "original_start_date": (
            bill.original_start_date.isoformat() if bill.original_start_date else None
        ),
        "recurring_period": bill.recurring_period,
        "is_paid": bill.is_paid,
        "reminder_days": bill.reminder_days,
        "category_id": bill.category_id,
        "notes": bill.notes,
    }


def occurrence_payload(occ: UpcomingOccurrence, today: date) -> dict[str, object]:
    return {
        "id": occ.id,
        "name": occ.name,
        "amount_cents": occ.amount_cents,
        "due_date": occ.due_date.isoformat(),
        "days_until_due": occ.days_until_due(today),
        "recurring_period": occ.recurring_period,
        "is_paid": occ.is_paid,
        "reminder_days": occ.reminder_days,
        "category_id": occ.category_id,
        "notes": occ.notes,
        "is_recurring_occurrence": occ.is_recurring_occurrence,
        "original_due_date": (
            occ.original_due_date.isoformat() if occ.original_due_date else None
        ),
    }


@app.get("/api/me")
def api_me(db: Session = Depends(get_db)):
    try:
        return user_payload(UserService(db).get())
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.put("/api/me")
def api_update_me(data: UserIn, db: Session = Depends(get_db)):
    return user_payload(UserService(db).update_profile(data))


@app.get("/api/categories")
def api_categories(db: Session = Depends(get_db)):
    return [category_payload(c) for c in CategoryService(db).list_all()]


@app.post("/api/categories", status_code=201)
def api_create_category(data: CategoryIn, db: Session = Depends(get_db)):
    try:
        category = CategoryService(db).create(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return category_payload(category)


@app.patch("/api/categories/{category_id}")
def api_rename_category(
    category_id: int, data: CategoryIn, db: Session = Depends(get_db)
):
    try:
        category = CategoryService(db).rename(category_id, data.name)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return category_payload(category)


@app.delete("/api/categories/{category_id}", status_code=204)
def api_delete_category(category_id: int, db: Session = Depends(get_db)):
    try:
        CategoryService(db).delete(category_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/api/accounts")
def api_accounts(db: Session = Depends(get_db)):
    return [account_payload(a) for a in AccountService(db).list_all()]


@app.post("/api/accounts", status_code=201)
def api_create_account(data: AccountIn, db: Session = Depends(get_db)):
    return account_payload(AccountService(db).create(data))


@app.put("/api/accounts/{account_id}")
def api_update_account(account_id: int, data: AccountIn, db: Session = Depends(get_db)):
    try:
        account = AccountService(db).update(account_id, data)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return account_payload(account)


@app.delete("/api/accounts/{account_id}", status_code=204)
def api_delete_account(account_id: int, db: Session = Depends(get_db)):
    try:
        AccountService(db).delete(account_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/api/transactions")
def api_transactions(request: Request, db: Session = Depends(get_db)):
    period = period_from_request(request)
    page = int(request.query_params.get("page", "1"))
    page = max(page, 1)
    limit = int(request.query_params.get("limit", "50"))
    limit = min(max(limit, 1), 100)
    offset = (page - 1) * limit
    items = TransactionService(db).list(period, limit=limit + 1, offset=offset)
    has_more = len(items) > limit
    items = items[:limit]

    return {
        "items": [transaction_payload(txn) for txn in items],
        "page": page,
        "limit": limit,
        "has_more": has_more,
    }


@app.get("/api/transactions/date-range")
def api_transactions_between(
    start_date: date = Query(...),
    end_date: date = Query(...),
    db: Session = Depends(get_db),
):
    try:
        items = TransactionService(db).list_between(start_date, end_date)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return [transaction_payload(txn) for txn in items]


@app.post("/api/transactions", status_code=201)
def api_create_transaction(
    data: TransactionIn,
    db: Session = Depends(get_db),
    alerts: BudgetAlertService = Depends(get_alert_service),
):
    try:
        txn, fired = TransactionService(db, alerts=alerts).create(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    payload = transaction_payload(txn)
    payload["alerts"] = [alert_payload(a) for a in fired]
    return payload


@app.put("/api/transactions/{transaction_id}")
def api_update_transaction(
    transaction_id: int, data: TransactionIn, db: Session = Depends(get_db)
):
    service = TransactionService(db)
    try:
        service.get(transaction_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    try:
        txn = service.update(transaction_id, data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return transaction_payload(txn)


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def api_delete_transaction(transaction_id: int, db: Session = Depends(get_db)):
    try:
        TransactionService(db).soft_delete(transaction_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/api/budgets")
def api_budgets(db: Session = Depends(get_db)):
    return [budget_payload(b) for b in BudgetService(db).list_all()]


@app.post("/api/budgets", status_code=201)
def api_create_budget(data: BudgetIn, db: Session = Depends(get_db)):
    try:
        budget = BudgetService(db).create(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return budget_payload(budget)


@app.get("/api/budgets/spending")
def api_budget_spending(db: Session = Depends(get_db)):
    rows = BudgetService(db).spending()
    for row in rows:
        row["period_start"] = row["period_start"].isoformat()
        row["period_end"] = row["period_end"].isoformat()
    return rows


@app.get("/api/budgets/alerts")
def api_budget_alerts(db: Session = Depends(get_db)):
    return [alert_payload(a) for a in BudgetService(db).alert_status()]


@app.put("/api/budgets/{budget_id}")
def api_update_budget(budget_id: int, data: BudgetIn, db: Session = Depends(get_db)):
    try:
        budget = BudgetService(db).update(budget_id, data)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return budget_payload(budget)


@app.delete("/api/budgets/{budget_id}", status_code=204)
def api_delete_budget(budget_id: int, db: Session = Depends(get_db)):
    try:
        BudgetService(db).delete(budget_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/api/analytics/monthly-summary")
def api_monthly_summary(
    year: int = Query(..., ge=1, le=9999),
    month: int = Query(..., ge=1, le=12),
    db: Session = Depends(get_db),
):
    return SummaryService(db).monthly(year, month)


@app.get("/api/analytics/yearly-summary")
def api_yearly_summary(
    year: int = Query(..., ge=1, le=9999), db: Session = Depends(get_db)
):
    return SummaryService(db).yearly(year)


@app.get("/api/bills")
def api_bills(db: Session = Depends(get_db)):
    return [bill_payload(b) for b in BillService(db).list_all()]


@app.post("/api/bills", status_code=201)
def api_create_bill(data: BillIn, db: Session = Depends(get_db)):
    try:
        bill = BillService(db).create(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return bill_payload(bill)


@app.get("/api/bills/upcoming")
def api_upcoming_bills(
    days: Optional[int] = Query(default=None, ge=0, le=366),
    db: Session = Depends(get_db),
    aggregator: UpcomingBillAggregator = Depends(get_bill_aggregator),
):
    window = days if days is not None else get_settings().upcoming_window_days
    today = local_today()
    service = BillService(db, aggregator=aggregator)
    return [occurrence_payload(o, today) for o in service.upcoming(window, today)]


@app.put("/api/bills/{bill_id}")
def api_update_bill(bill_id: int, data: BillIn, db: Session = Depends(get_db)):
    try:
        bill = BillService(db).update(bill_id, data)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return bill_payload(bill)


@app.post("/api/bills/{bill_id}/pay")
def api_pay_bill(bill_id: int, db: Session = Depends(get_db)):
    try:
        bill, next_due = BillService(db).mark_paid(bill_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    payload = bill_payload(bill)
    payload["next_due_date"] = next_due.isoformat() if next_due else None
    return payload


@app.delete("/api/bills/{bill_id}", status_code=204)
def api_delete_bill(bill_id: int, db: Session = Depends(get_db)):
    try:
        BillService(db).delete(bill_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
