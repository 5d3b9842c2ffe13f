from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from sqlalchemy import select

from app.api.deps import db, current_user, require_admin, require_writer
from app.models.staff import Staff, StaffSalaryPayment
from app.schemas.staff import PaymentCreate, PaymentOut, StaffCreate, StaffMonthOut, StaffOut
from app.services.audit import log_event
from app.services.staff import month_summary, suggest_slot
from app.utils.timezone import today_local

router = APIRouter(prefix="/staff", tags=["staff"])


@router.get("", response_model=list[StaffOut])
def list_staff(s: Session = Depends(db), u=Depends(current_user)):
    return s.execute(select(Staff).order_by(Staff.full_name.asc())).scalars().all()


@router.post("", response_model=StaffOut)
def create_staff(body: StaffCreate, s: Session = Depends(db), u=Depends(require_admin)):
    m = Staff(**body.model_dump())
    s.add(m)
    s.commit()
    s.refresh(m)
    log_event(
        s,
        username=u.get("sub"),
        action="staff.create",
        entity_type="staff",
        entity_id=m.id,
        details={"full_name": m.full_name, "monthly_salary": str(m.monthly_salary)},
    )
    return m


@router.patch("/{staff_id}", response_model=StaffOut)
def update_staff(staff_id: int, body: StaffCreate, s: Session = Depends(db), u=Depends(require_admin)):
    m = s.get(Staff, staff_id)
    if not m:
        raise HTTPException(status_code=404, detail="staff_not_found")
    for k, v in body.model_dump().items():
        setattr(m, k, v)
    s.add(m)
    s.commit()
    s.refresh(m)
    log_event(s, username=u.get("sub"), action="staff.update", entity_type="staff", entity_id=m.id)
    return m


@router.post("/{staff_id}/toggle", response_model=StaffOut)
def toggle_staff(staff_id: int, s: Session = Depends(db), u=Depends(require_admin)):
    m = s.get(Staff, staff_id)
    if not m:
        raise HTTPException(status_code=404, detail="staff_not_found")
    m.is_active = not m.is_active
    s.add(m)
    s.commit()
    s.refresh(m)
    log_event(
        s,
        username=u.get("sub"),
        action="staff.toggle",
        entity_type="staff",
        entity_id=m.id,
        details={"is_active": m.is_active},
    )
    return m


@router.get("/month", response_model=StaffMonthOut)
def staff_month(
    month: date | None = Query(default=None),
    s: Session = Depends(db),
    u=Depends(current_user),
):
    return month_summary(s, month or today_local())


@router.post("/payments", response_model=PaymentOut)
def create_payment(body: PaymentCreate, s: Session = Depends(db), u=Depends(require_writer)):
    if not s.get(Staff, body.staff_id):
        raise HTTPException(status_code=404, detail="staff_not_found")
    p = StaffSalaryPayment(
        staff_id=body.staff_id,
        pay_date=body.pay_date,
        slot=body.slot or suggest_slot(body.pay_date),
        amount=body.amount,
        comment=(body.comment or "").strip() or None,
    )
    s.add(p)
    s.commit()
    s.refresh(p)
    log_event(
        s,
        username=u.get("sub"),
        action="staff_payment.create",
        entity_type="staff_payment",
        entity_id=p.id,
        details={"staff_id": p.staff_id, "pay_date": str(p.pay_date), "slot": p.slot, "amount": str(p.amount)},
    )
    return p


@router.delete("/payments/{payment_id}")
def delete_payment(payment_id: int, s: Session = Depends(db), u=Depends(require_admin)):
    p = s.get(StaffSalaryPayment, payment_id)
    if not p:
        raise HTTPException(status_code=404, detail="payment_not_found")
    details = {"staff_id": p.staff_id, "pay_date": str(p.pay_date), "amount": str(p.amount)}
    s.delete(p)
    s.commit()
    log_event(
        s,
        username=u.get("sub"),
        action="staff_payment.delete",
        entity_type="staff_payment",
        entity_id=payment_id,
        details=details,
    )
    return {"ok": True}
