import logging
from typing import Optional, Union

from fastapi import Depends, FastAPI, HTTPException, Request
from sqlalchemy.orm import Session

from config import get_settings
from database import SessionLocal
from models import Transaction, TransactionStatus, TransactionType
from periods import local_today, resolve_period
from scheduler import SchedulerManager
from schemas import (
    BudgetPeriodIn,
    ExpenseIn,
    ExpensePatch,
    IncomeIn,
    IncomePatch,
    TagsIn,
)
from services import (
    AccountService,
    BudgetService,
    ExpenseLedger,
    IncomeLedger,
    NotFoundError,
    PrimaryPersistenceError,
    SummaryService,
    TransactionFilters,
    TransactionLedger,
    budget_period_payload,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Finance Ledger")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    if get_settings().scheduler_enabled:
        scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, PrimaryPersistenceError):
        return HTTPException(status_code=500, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def _transaction_payload(txn: Transaction) -> dict:
    payload = {
        "id": txn.id,
        "type": txn.type.value,
        "account_id": txn.account_id,
        "category_id": txn.category_id,
        "category": txn.category.name if txn.category else None,
        "name": txn.name,
        "amount_cents": txn.amount_cents,
        "date": txn.date.isoformat(),
        "status": txn.status.value,
        "notes": txn.notes,
        "tags": [tag.id for tag in txn.tags],
    }
    if txn.type == TransactionType.income:
        payload.update(
            is_salary=txn.is_salary,
            salary_installment=txn.salary_installment,
            salary_installments_total=txn.salary_installments_total,
        )
    else:
        payload.update(
            is_invoice_payment=txn.is_invoice_payment,
            source_card_id=txn.source_card_id,
        )
    return payload


def _mutation_payload(ledger: TransactionLedger, txn: Transaction) -> dict:
    return {
        "item": _transaction_payload(txn),
        "effects": [effect.as_dict() for effect in ledger.effects],
    }


def filters_from_request(request: Request) -> TransactionFilters:
    params = request.query_params
    try:
        period = resolve_period(params.get("period"), params.get("start"), params.get("end"))
        status = TransactionStatus(params["status"]) if params.get("status") else None
        category_id = int(params["category_id"]) if params.get("category_id") else None
        account_id = int(params["account_id"]) if params.get("account_id") else None
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return TransactionFilters(
        start=period.start if period else None,
        end=period.end if period else None,
        category_id=category_id,
        account_id=account_id,
        status=status,
    )


def _month_year(month: Optional[int], year: Optional[int]) -> tuple[int, int]:
    today = local_today()
    return month or today.month, year or today.year


def _check_references(
    db: Session,
    account_id: int,
    is_invoice_payment: bool = False,
    source_card_id: Optional[int] = None,
) -> None:
    accounts = AccountService(db)
    accounts.require_for_transaction(account_id)
    if is_invoice_payment and source_card_id is not None:
        accounts.check_invoice_payment(account_id, source_card_id)


def _list(ledger: TransactionLedger, request: Request) -> dict:
    filters = filters_from_request(request)
    page = max(int(request.query_params.get("page", "1")), 1)
    limit = min(max(int(request.query_params.get("limit", "50")), 1), 100)
    # One extra row tells whether another page exists.
    offset = (page - 1) * limit
    items = ledger.list(filters, limit=limit + 1, offset=offset)
    has_more = len(items) > limit
    return {
        "items": [_transaction_payload(txn) for txn in items[:limit]],
        "page": page,
        "limit": limit,
        "has_more": has_more,
    }


def _create(ledger: TransactionLedger, db: Session, data: Union[IncomeIn, ExpenseIn]) -> dict:
    try:
        _check_references(
            db,
            data.account_id,
            getattr(data, "is_invoice_payment", False),
            getattr(data, "source_card_id", None),
        )
        txn = ledger.create(data)
    except (ValueError, PrimaryPersistenceError) as exc:
        raise _http_error(exc) from exc
    return _mutation_payload(ledger, txn)


def _update(
    ledger: TransactionLedger,
    db: Session,
    transaction_id: int,
    patch: Union[IncomePatch, ExpensePatch],
) -> dict:
    fields = patch.model_fields_set
    try:
        current = ledger.get(transaction_id)
        if fields & {"account_id", "is_invoice_payment", "source_card_id"}:
            _check_references(
                db,
                patch.account_id or current.account_id,
                getattr(patch, "is_invoice_payment", None)
                if "is_invoice_payment" in fields
                else current.is_invoice_payment,
                getattr(patch, "source_card_id", None)
                if "source_card_id" in fields
                else current.source_card_id,
            )
        txn = ledger.update(transaction_id, patch)
    except (ValueError, PrimaryPersistenceError) as exc:
        raise _http_error(exc) from exc
    return _mutation_payload(ledger, txn)


def _delete(ledger: TransactionLedger, transaction_id: int) -> dict:
    try:
        ledger.delete(transaction_id)
    except (ValueError, PrimaryPersistenceError) as exc:
        raise _http_error(exc) from exc
    return {
        "deleted": transaction_id,
        "effects": [effect.as_dict() for effect in ledger.effects],
    }


def _get(ledger: TransactionLedger, transaction_id: int) -> dict:
    try:
        txn = ledger.get(transaction_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return _transaction_payload(txn)


def _set_tags(ledger: TransactionLedger, transaction_id: int, data: TagsIn) -> dict:
    try:
        txn = ledger.set_tags(transaction_id, data.tags)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return _transaction_payload(txn)


@app.get("/api/incomes/summary")
def income_summary(
    month: Optional[int] = None, year: Optional[int] = None, db: Session = Depends(get_db)
):
    month, year = _month_year(month, year)
    try:
        summary = IncomeLedger(db).monthly_summary(month, year)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return {"month": month, "year": year, **summary}


@app.get("/api/incomes")
def list_incomes(request: Request, db: Session = Depends(get_db)):
    return _list(IncomeLedger(db), request)


@app.post("/api/incomes", status_code=201)
def create_income(data: IncomeIn, db: Session = Depends(get_db)):
    return _create(IncomeLedger(db), db, data)


@app.get("/api/incomes/{transaction_id}")
def get_income(transaction_id: int, db: Session = Depends(get_db)):
    return _get(IncomeLedger(db), transaction_id)


@app.patch("/api/incomes/{transaction_id}")
def update_income(transaction_id: int, patch: IncomePatch, db: Session = Depends(get_db)):
    return _update(IncomeLedger(db), db, transaction_id, patch)


@app.delete("/api/incomes/{transaction_id}")
def delete_income(transaction_id: int, db: Session = Depends(get_db)):
    return _delete(IncomeLedger(db), transaction_id)


@app.put("/api/incomes/{transaction_id}/tags")
def set_income_tags(transaction_id: int, data: TagsIn, db: Session = Depends(get_db)):
    return _set_tags(IncomeLedger(db), transaction_id, data)


@app.get("/api/expenses/summary")
def expense_summary(
    month: Optional[int] = None, year: Optional[int] = None, db: Session = Depends(get_db)
):
    month, year = _month_year(month, year)
    try:
        summary = ExpenseLedger(db).monthly_summary(month, year)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return {"month": month, "year": year, **summary}


@app.get("/api/expenses")
def list_expenses(request: Request, db: Session = Depends(get_db)):
    return _list(ExpenseLedger(db), request)


@app.post("/api/expenses", status_code=201)
def create_expense(data: ExpenseIn, db: Session = Depends(get_db)):
    return _create(ExpenseLedger(db), db, data)


@app.get("/api/expenses/{transaction_id}")
def get_expense(transaction_id: int, db: Session = Depends(get_db)):
    return _get(ExpenseLedger(db), transaction_id)


@app.patch("/api/expenses/{transaction_id}")
def update_expense(transaction_id: int, patch: ExpensePatch, db: Session = Depends(get_db)):
    return _update(ExpenseLedger(db), db, transaction_id, patch)


@app.delete("/api/expenses/{transaction_id}")
def delete_expense(transaction_id: int, db: Session = Depends(get_db)):
    return _delete(ExpenseLedger(db), transaction_id)


@app.put("/api/expenses/{transaction_id}/tags")
def set_expense_tags(transaction_id: int, data: TagsIn, db: Session = Depends(get_db)):
    return _set_tags(ExpenseLedger(db), transaction_id, data)


@app.get("/api/budget")
def get_budget(
    month: Optional[int] = None, year: Optional[int] = None, db: Session = Depends(get_db)
):
    month, year = _month_year(month, year)
    try:
        period = BudgetService(db).get_period(month, year)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return budget_period_payload(period)


@app.put("/api/budget")
def update_budget(data: BudgetPeriodIn, db: Session = Depends(get_db)):
    period = BudgetService(db).update_period(data)
    return budget_period_payload(period)


@app.post("/api/budget/reconcile")
def reconcile_budget(
    month: Optional[int] = None, year: Optional[int] = None, db: Session = Depends(get_db)
):
    month, year = _month_year(month, year)
    try:
        period = BudgetService(db).reconcile(month, year)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return budget_period_payload(period)


@app.get("/api/budget/history")
def budget_history(limit: int = 12, db: Session = Depends(get_db)):
    limit = min(max(limit, 1), 120)
    return {"items": [budget_period_payload(p) for p in BudgetService(db).history(limit)]}


@app.get("/api/budget/annual")
def budget_annual(year: Optional[int] = None, db: Session = Depends(get_db)):
    return BudgetService(db).annual_summary(year or local_today().year)


@app.get("/api/budget/statistics")
def budget_statistics(db: Session = Depends(get_db)):
    return BudgetService(db).statistics()


@app.get("/api/dashboard")
def dashboard(
    month: Optional[int] = None, year: Optional[int] = None, db: Session = Depends(get_db)
):
    try:
        return SummaryService(db).dashboard(month, year)
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.post("/api/accounts/{account_id}/reconcile")
def reconcile_account(account_id: int, db: Session = Depends(get_db)):
    try:
        account = AccountService(db).reconcile_balance(account_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return {
        "id": account.id,
        "name": account.name,
        "balance_cents": account.balance_cents,
        "opening_balance_cents": account.opening_balance_cents,
    }
