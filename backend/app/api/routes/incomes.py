from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.api.deps import db, current_user, require_admin, require_writer, request_ticket
from app.models.company import Company
from app.models.income import Income
from app.models.operator import Operator
from app.schemas.income import IncomeCreate, IncomeJournalOut, IncomeOut, IncomeUpdate, PayMethod, Shift
from app.services.audit import log_event
from app.services.csv_export import csv_response
from app.services.income_journal import IncomeFilters, export_incomes_csv, income_journal
from app.services.request_guard import finish
from app.utils.timezone import today_local

router = APIRouter(prefix="/incomes", tags=["incomes"])


def _filters(
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    company_id: int | None = Query(default=None),
    shift: Shift | None = Query(default=None),
    operator: str | None = Query(default=None, description="operator id or 'none'"),
    pay: PayMethod | None = Query(default=None),
    search: str | None = Query(default=None),
    hide_extra: bool = Query(default=False),
    include_extra_in_totals: bool = Query(default=False),
) -> IncomeFilters:
    op: int | str | None = None
    if operator:
        op = "none" if operator == "none" else _int_or_400(operator, "operator_invalid")
    return IncomeFilters(
        date_from=date_from,
        date_to=date_to,
        company_id=company_id,
        shift=shift,
        operator=op,
        pay=pay,
        search=search,
        hide_extra=hide_extra,
        include_extra_in_totals=include_extra_in_totals,
    )


def _int_or_400(v: str, detail: str) -> int:
    try:
        return int(v)
    except ValueError:
        raise HTTPException(status_code=400, detail=detail)


def _check_refs(s: Session, body: IncomeCreate) -> None:
    if not s.get(Company, body.company_id):
        raise HTTPException(status_code=404, detail="company_not_found")
    if body.operator_id is not None and not s.get(Operator, body.operator_id):
        raise HTTPException(status_code=404, detail="operator_not_found")


def _audit_details(r: Income) -> dict:
    return {
        "date": str(r.date),
        "company_id": r.company_id,
        "operator_id": r.operator_id,
        "shift": r.shift,
        "cash_amount": str(r.cash_amount),
        "kaspi_amount": str(r.kaspi_amount),
        "online_amount": str(r.online_amount),
        "card_amount": str(r.card_amount),
    }


@router.get("", response_model=IncomeJournalOut)
def list_incomes(
    f: IncomeFilters = Depends(_filters),
    s: Session = Depends(db),
    u=Depends(current_user),
    ticket=Depends(request_ticket("incomes")),
):
    return finish(ticket, income_journal(s, f))


@router.get("/export")
def export_incomes(f: IncomeFilters = Depends(_filters), s: Session = Depends(db), u=Depends(current_user)):
    return csv_response(f"incomes_{today_local()}.csv", export_incomes_csv(s, f))


@router.get("/{income_id}", response_model=IncomeOut)
def get_income(income_id: int, s: Session = Depends(db), u=Depends(current_user)):
    r = s.get(Income, income_id)
    if not r:
        raise HTTPException(status_code=404, detail="income_not_found")
    return r


@router.post("", response_model=IncomeOut)
def create_income(body: IncomeCreate, s: Session = Depends(db), u=Depends(require_writer)):
    _check_refs(s, body)
    r = Income(**body.model_dump())
    s.add(r)
    s.commit()
    s.refresh(r)
    log_event(
        s,
        username=u.get("sub"),
        action="income.create",
        entity_type="income",
        entity_id=r.id,
        details=_audit_details(r),
    )
    return r


@router.put("/{income_id}", response_model=IncomeOut)
def update_income(income_id: int, body: IncomeUpdate, s: Session = Depends(db), u=Depends(require_admin)):
    r = s.get(Income, income_id)
    if not r:
        raise HTTPException(status_code=404, detail="income_not_found")
    _check_refs(s, body)
    before = _audit_details(r)
    for k, v in body.model_dump().items():
        setattr(r, k, v)
    s.add(r)
    s.commit()
    s.refresh(r)
    log_event(
        s,
        username=u.get("sub"),
        action="income.update",
        entity_type="income",
        entity_id=r.id,
        details={"before": before, "after": _audit_details(r)},
    )
    return r


@router.delete("/{income_id}")
def delete_income(income_id: int, s: Session = Depends(db), u=Depends(require_admin)):
    r = s.get(Income, income_id)
    if not r:
        raise HTTPException(status_code=404, detail="income_not_found")
    details = _audit_details(r)
    s.delete(r)
    s.commit()
    log_event(
        s,
        username=u.get("sub"),
        action="income.delete",
        entity_type="income",
        entity_id=income_id,
        details=details,
    )
    return {"ok": True}
