from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from sqlalchemy import select
from app.api.deps import db, current_user, require_admin
from app.schemas.operator import OperatorCreate, OperatorUpdate, OperatorOut
from app.models.operator import Operator
from app.services.audit import log_event

router = APIRouter(prefix="/operators", tags=["operators"])

@router.get("", response_model=list[OperatorOut])
def list_operators(
    active_only: bool = Query(default=False),
    s: Session = Depends(db),
    u=Depends(current_user),
):
    q = select(Operator).order_by(Operator.name.asc())
    if active_only:
        q = q.where(Operator.is_active.is_(True))
    return s.execute(q).scalars().all()

@router.post("", response_model=OperatorOut)
def create_operator(body: OperatorCreate, s: Session = Depends(db), u=Depends(require_admin)):
    op = Operator(**body.model_dump())
    s.add(op)
    s.commit()
    s.refresh(op)
    log_event(
        s,
        username=u.get("sub"),
        action="operator.create",
        entity_type="operator",
        entity_id=op.id,
        details={"name": op.name, "role": op.role},
    )
    return op

@router.patch("/{operator_id}", response_model=OperatorOut)
def update_operator(operator_id: int, body: OperatorUpdate, s: Session = Depends(db), u=Depends(require_admin)):
    op = s.get(Operator, operator_id)
    if not op:
        raise HTTPException(status_code=404, detail="operator_not_found")
    patch = body.model_dump(exclude_unset=True)
    if "name" in patch:
        name = (patch["name"] or "").strip()
        if not name:
            raise HTTPException(status_code=400, detail="operator_name_required")
        patch["name"] = name
    if "short_name" in patch:
        patch["short_name"] = (patch["short_name"] or "").strip() or None
    if "telegram_chat_id" in patch:
        chat = (patch["telegram_chat_id"] or "").strip() or None
        if chat is not None and not chat.lstrip("-").isdigit():
            raise HTTPException(status_code=400, detail="telegram_chat_id_invalid")
        patch["telegram_chat_id"] = chat
    for k, v in patch.items():
        setattr(op, k, v)
    s.add(op)
    s.commit()
    s.refresh(op)
    log_event(
        s,
        username=u.get("sub"),
        action="operator.update",
        entity_type="operator",
        entity_id=op.id,
        details={"fields": sorted(patch.keys())},
    )
    return op

@router.delete("/{operator_id}")
def delete_operator(operator_id: int, s: Session = Depends(db), u=Depends(require_admin)):
    op = s.get(Operator, operator_id)
    if not op:
        raise HTTPException(status_code=404, detail="operator_not_found")
    details = {"name": op.name}
    s.delete(op)
    s.commit()
    log_event(
        s,
        username=u.get("sub"),
        action="operator.delete",
        entity_type="operator",
        entity_id=operator_id,
        details=details,
    )
    return {"ok": True}
