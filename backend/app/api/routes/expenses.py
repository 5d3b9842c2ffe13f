from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.api.deps import db, current_user, require_admin, require_writer, request_ticket
from app.models.company import Company
from app.models.expense import Expense
from app.schemas.expense import ExpenseCreate, ExpenseJournalOut, ExpenseOut, ExpenseUpdate
from app.services.audit import log_event
from app.services.csv_export import csv_response
from app.services.expense_journal import ExpenseFilters, expense_journal, export_expenses_csv, list_categories
from app.services.request_guard import finish
from app.utils.timezone import today_local

router = APIRouter(prefix="/expenses", tags=["expenses"])


def _filters(
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    company_id: int | None = Query(default=None),
    category: str | None = Query(default=None),
    pay: str | None = Query(default=None, pattern="^(cash|kaspi)$"),
    search: str | None = Query(default=None),
    include_extra_in_totals: bool = Query(default=False),
) -> ExpenseFilters:
    return ExpenseFilters(
        date_from=date_from,
        date_to=date_to,
        company_id=company_id,
        category=category,
        pay=pay,
        search=search,
        include_extra_in_totals=include_extra_in_totals,
    )


def _audit_details(r: Expense) -> dict:
    return {
        "date": str(r.date),
        "company_id": r.company_id,
        "category": r.category,
        "cash_amount": str(r.cash_amount),
        "kaspi_amount": str(r.kaspi_amount),
    }


@router.get("", response_model=ExpenseJournalOut)
def list_expenses(
    f: ExpenseFilters = Depends(_filters),
    s: Session = Depends(db),
    u=Depends(current_user),
    ticket=Depends(request_ticket("expenses")),
):
    return finish(ticket, expense_journal(s, f))


@router.get("/categories", response_model=list[str])
def categories(s: Session = Depends(db), u=Depends(current_user)):
    return list_categories(s)


@router.get("/export")
def export_expenses(f: ExpenseFilters = Depends(_filters), s: Session = Depends(db), u=Depends(current_user)):
    return csv_response(f"expenses_{today_local()}.csv", export_expenses_csv(s, f))


@router.get("/{expense_id}", response_model=ExpenseOut)
def get_expense(expense_id: int, s: Session = Depends(db), u=Depends(current_user)):
    r = s.get(Expense, expense_id)
    if not r:
        raise HTTPException(status_code=404, detail="expense_not_found")
    return r


@router.post("", response_model=ExpenseOut)
def create_expense(body: ExpenseCreate, s: Session = Depends(db), u=Depends(require_writer)):
    if not s.get(Company, body.company_id):
        raise HTTPException(status_code=404, detail="company_not_found")
    r = Expense(**body.model_dump())
    s.add(r)
    s.commit()
    s.refresh(r)
    log_event(
        s,
        username=u.get("sub"),
        action="expense.create",
        entity_type="expense",
        entity_id=r.id,
        details=_audit_details(r),
    )
    return r


@router.put("/{expense_id}", response_model=ExpenseOut)
def update_expense(expense_id: int, body: ExpenseUpdate, s: Session = Depends(db), u=Depends(require_writer)):
    r = s.get(Expense, expense_id)
    if not r:
        raise HTTPException(status_code=404, detail="expense_not_found")
    if not s.get(Company, body.company_id):
        raise HTTPException(status_code=404, detail="company_not_found")
    before = _audit_details(r)
    for k, v in body.model_dump().items():
        setattr(r, k, v)
    s.add(r)
    s.commit()
    s.refresh(r)
    log_event(
        s,
        username=u.get("sub"),
        action="expense.update",
        entity_type="expense",
        entity_id=r.id,
        details={"before": before, "after": _audit_details(r)},
    )
    return r


@router.delete("/{expense_id}")
def delete_expense(expense_id: int, s: Session = Depends(db), u=Depends(require_admin)):
    r = s.get(Expense, expense_id)
    if not r:
        raise HTTPException(status_code=404, detail="expense_not_found")
    details = _audit_details(r)
    s.delete(r)
    s.commit()
    log_event(
        s,
        username=u.get("sub"),
        action="expense.delete",
        entity_type="expense",
        entity_id=expense_id,
        details=details,
    )
    return {"ok": True}
