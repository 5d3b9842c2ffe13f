from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from sqlalchemy import select

from app.api.deps import db, current_user, require_admin, require_writer
from app.models.debt import Debt
from app.models.operator import Operator
from app.models.salary import OperatorSalaryAdjustment, OperatorSalaryRule
from app.schemas.salary import (
    AdjustmentCreate,
    AdjustmentOut,
    DebtCreate,
    DebtOut,
    PayrollOut,
    SalaryRuleIn,
    SalaryRuleOut,
    SnapshotIn,
    SnapshotOut,
)
from app.services.audit import log_event
from app.services.payroll import (
    compute_payroll,
    find_operator,
    operator_payroll_detail,
    render_snapshot,
    salary_snapshot,
)
from app.services.telegram import TelegramError, send_message
from app.utils.dates import normalize_range

router = APIRouter(prefix="/salary", tags=["salary"])


@router.get("/rules", response_model=list[SalaryRuleOut])
def list_rules(s: Session = Depends(db), u=Depends(current_user)):
    q = select(OperatorSalaryRule).order_by(OperatorSalaryRule.company_code, OperatorSalaryRule.shift_type)
    return s.execute(q).scalars().all()


@router.put("/rules", response_model=SalaryRuleOut)
def upsert_rule(body: SalaryRuleIn, s: Session = Depends(db), u=Depends(require_admin)):
    rule = s.execute(
        select(OperatorSalaryRule).where(
            OperatorSalaryRule.company_code == body.company_code,
            OperatorSalaryRule.shift_type == body.shift_type,
        )
    ).scalar_one_or_none()
    created = rule is None
    if rule is None:
        rule = OperatorSalaryRule(company_code=body.company_code, shift_type=body.shift_type)
    for k, v in body.model_dump().items():
        setattr(rule, k, v)
    s.add(rule)
    s.commit()
    s.refresh(rule)
    log_event(
        s,
        username=u.get("sub"),
        action="salary_rule.create" if created else "salary_rule.update",
        entity_type="salary_rule",
        entity_id=rule.id,
        details={k: (str(v) if v is not None else None) for k, v in body.model_dump().items()},
    )
    return rule


@router.get("/adjustments", response_model=list[AdjustmentOut])
def list_adjustments(
    date_from: date = Query(...),
    date_to: date = Query(...),
    operator_id: int | None = Query(default=None),
    s: Session = Depends(db),
    u=Depends(current_user),
):
    date_from, date_to = normalize_range(date_from, date_to)
    q = select(OperatorSalaryAdjustment).where(
        OperatorSalaryAdjustment.date >= date_from, OperatorSalaryAdjustment.date <= date_to
    )
    if operator_id is not None:
        q = q.where(OperatorSalaryAdjustment.operator_id == operator_id)
    return s.execute(q.order_by(OperatorSalaryAdjustment.date.desc(), OperatorSalaryAdjustment.id.desc())).scalars().all()


@router.post("/adjustments", response_model=AdjustmentOut)
def create_adjustment(body: AdjustmentCreate, s: Session = Depends(db), u=Depends(require_writer)):
    if not s.get(Operator, body.operator_id):
        raise HTTPException(status_code=404, detail="operator_not_found")
    a = OperatorSalaryAdjustment(**body.model_dump())
    s.add(a)
    s.commit()
    s.refresh(a)
    log_event(
        s,
        username=u.get("sub"),
        action="adjustment.create",
        entity_type="salary_adjustment",
        entity_id=a.id,
        details={"operator_id": a.operator_id, "date": str(a.date), "kind": a.kind, "amount": str(a.amount)},
    )
    return a


@router.delete("/adjustments/{adjustment_id}")
def delete_adjustment(adjustment_id: int, s: Session = Depends(db), u=Depends(require_admin)):
    a = s.get(OperatorSalaryAdjustment, adjustment_id)
    if not a:
        raise HTTPException(status_code=404, detail="adjustment_not_found")
    details = {"operator_id": a.operator_id, "date": str(a.date), "kind": a.kind, "amount": str(a.amount)}
    s.delete(a)
    s.commit()
    log_event(
        s,
        username=u.get("sub"),
        action="adjustment.delete",
        entity_type="salary_adjustment",
        entity_id=adjustment_id,
        details=details,
    )
    return {"ok": True}


@router.get("/debts", response_model=list[DebtOut])
def list_debts(
    week_start: date | None = Query(default=None),
    operator_id: int | None = Query(default=None),
    status: str | None = Query(default="active"),
    s: Session = Depends(db),
    u=Depends(current_user),
):
    q = select(Debt)
    if week_start is not None:
        q = q.where(Debt.week_start == week_start)
    if operator_id is not None:
        q = q.where(Debt.operator_id == operator_id)
    if status:
        q = q.where(Debt.status == status)
    return s.execute(q.order_by(Debt.week_start.desc(), Debt.id.desc())).scalars().all()


@router.post("/debts", response_model=DebtOut)
def create_debt(body: DebtCreate, s: Session = Depends(db), u=Depends(require_writer)):
    if not s.get(Operator, body.operator_id):
        raise HTTPException(status_code=404, detail="operator_not_found")
    d = Debt(**body.model_dump(), status="active")
    s.add(d)
    s.commit()
    s.refresh(d)
    log_event(
        s,
        username=u.get("sub"),
        action="debt.create",
        entity_type="debt",
        entity_id=d.id,
        details={"operator_id": d.operator_id, "week_start": str(d.week_start), "amount": str(d.amount)},
    )
    return d


@router.post("/debts/{debt_id}/close", response_model=DebtOut)
def close_debt(debt_id: int, s: Session = Depends(db), u=Depends(require_writer)):
    d = s.get(Debt, debt_id)
    if not d:
        raise HTTPException(status_code=404, detail="debt_not_found")
    if d.status == "closed":
        raise HTTPException(status_code=409, detail="debt_already_closed")
    d.status = "closed"
    s.add(d)
    s.commit()
    s.refresh(d)
    log_event(s, username=u.get("sub"), action="debt.close", entity_type="debt", entity_id=d.id)
    return d


@router.delete("/debts/{debt_id}")
def delete_debt(debt_id: int, s: Session = Depends(db), u=Depends(require_admin)):
    d = s.get(Debt, debt_id)
    if not d:
        raise HTTPException(status_code=404, detail="debt_not_found")
    details = {"operator_id": d.operator_id, "week_start": str(d.week_start), "amount": str(d.amount)}
    s.delete(d)
    s.commit()
    log_event(
        s,
        username=u.get("sub"),
        action="debt.delete",
        entity_type="debt",
        entity_id=debt_id,
        details=details,
    )
    return {"ok": True}


@router.get("/payroll", response_model=PayrollOut)
def payroll(
    date_from: date = Query(...),
    date_to: date = Query(...),
    s: Session = Depends(db),
    u=Depends(current_user),
):
    date_from, date_to = normalize_range(date_from, date_to)
    return compute_payroll(s, date_from, date_to)


@router.get("/operators/{operator_id}")
def operator_detail(
    operator_id: int,
    date_from: date = Query(...),
    date_to: date = Query(...),
    s: Session = Depends(db),
    u=Depends(current_user),
):
    if not s.get(Operator, operator_id):
        raise HTTPException(status_code=404, detail="operator_not_found")
    date_from, date_to = normalize_range(date_from, date_to)
    return operator_payroll_detail(s, operator_id, date_from, date_to)


@router.post("/snapshot", response_model=SnapshotOut)
def snapshot(body: SnapshotIn, s: Session = Depends(db), u=Depends(require_writer)):
    op = find_operator(s, body.operator_id)
    if op is None:
        raise HTTPException(status_code=404, detail="operator_not_found")
    if body.send and not op.telegram_chat_id:
        raise HTTPException(status_code=400, detail="operator_has_no_chat_id")

    date_from, date_to = normalize_range(body.date_from, body.date_to)
    snap = salary_snapshot(s, op, date_from, date_to, week_start=body.week_start)
    text = render_snapshot(snap, body.last_item.model_dump() if body.last_item else None)

    if body.send:
        try:
            send_message(op.telegram_chat_id, text)
        except TelegramError as e:
            raise HTTPException(status_code=502, detail="telegram_send_failed") from e
        log_event(
            s,
            username=u.get("sub"),
            action="salary_snapshot.send",
            entity_type="operator",
            entity_id=op.id,
            details={"date_from": str(date_from), "date_to": str(date_to), "final_salary": snap["final_salary"]},
        )

    return {"ok": True, "sent": body.send, "operator_id": op.id, "text": text, "snapshot": snap}
