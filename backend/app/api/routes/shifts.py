from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.api.deps import db, current_user, require_admin, require_writer
from app.models.company import Company
from app.models.shift import Shift
from app.schemas.shift import ShiftCellIn, ShiftCreate, ShiftOut
from app.services.audit import log_event
from app.services.shifts import find_slot, set_cell, week_schedule
from app.utils.timezone import today_local

router = APIRouter(prefix="/shifts", tags=["shifts"])

CELL_ACTIONS = {"created": "shift.create", "updated": "shift.update", "deleted": "shift.delete"}


def _require_company(s: Session, company_id: int) -> Company:
    c = s.get(Company, company_id)
    if not c:
        raise HTTPException(status_code=404, detail="company_not_found")
    return c


@router.get("/week")
def get_week(day: date | None = Query(default=None), s: Session = Depends(db), u=Depends(current_user)):
    return week_schedule(s, day or today_local())


@router.post("", response_model=ShiftOut)
def create_shift(body: ShiftCreate, s: Session = Depends(db), u=Depends(require_writer)):
    if body.date < today_local():
        raise HTTPException(status_code=400, detail="shift_in_past")
    _require_company(s, body.company_id)
    if find_slot(s, body.company_id, body.date, body.shift_type):
        raise HTTPException(status_code=409, detail="shift_taken")
    row = Shift(**body.model_dump())
    s.add(row)
    try:
        s.commit()
    except IntegrityError:
        s.rollback()
        raise HTTPException(status_code=409, detail="shift_taken")
    s.refresh(row)
    log_event(
        s,
        username=u.get("sub"),
        action="shift.create",
        entity_type="shift",
        entity_id=row.id,
        details={"date": str(row.date), "company_id": row.company_id, "shift_type": row.shift_type, "operator_name": row.operator_name},
    )
    return row


@router.put("/cell")
def put_cell(body: ShiftCellIn, s: Session = Depends(db), u=Depends(require_writer)):
    _require_company(s, body.company_id)
    before = find_slot(s, body.company_id, body.date, body.shift_type)
    old_name = before.operator_name if before else None
    action, row = set_cell(s, body.company_id, body.date, body.shift_type, body.operator_name)
    if action == "unchanged":
        return {"action": action, "shift": ShiftOut.model_validate(row) if row else None}
    s.flush()
    shift_id = row.id
    s.commit()
    if action != "deleted":
        s.refresh(row)
    log_event(
        s,
        username=u.get("sub"),
        action=CELL_ACTIONS[action],
        entity_type="shift",
        entity_id=shift_id,
        details={"date": str(body.date), "company_id": body.company_id, "shift_type": body.shift_type, "before": old_name, "after": body.operator_name or None},
    )
    return {"action": action, "shift": None if action == "deleted" else ShiftOut.model_validate(row)}


@router.delete("/{shift_id}")
def delete_shift(shift_id: int, s: Session = Depends(db), u=Depends(require_admin)):
    row = s.get(Shift, shift_id)
    if not row:
        raise HTTPException(status_code=404, detail="shift_not_found")
    details = {"date": str(row.date), "company_id": row.company_id, "shift_type": row.shift_type, "operator_name": row.operator_name}
    s.delete(row)
    s.commit()
    log_event(s, username=u.get("sub"), action="shift.delete", entity_type="shift", entity_id=shift_id, details=details)
    return {"ok": True}
