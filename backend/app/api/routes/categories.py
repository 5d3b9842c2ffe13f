from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from sqlalchemy import select
from app.api.deps import db, current_user, require_admin, require_writer
from app.schemas.expense_category import CategoryIn, CategoryOut
from app.models.expense_category import DEFAULT_TYPE, ExpenseCategory
from app.services.audit import log_event

router = APIRouter(prefix="/expense-categories", tags=["expense-categories"])


def _clash(s: Session, name: str, exclude_id: int | None = None) -> bool:
    q = select(ExpenseCategory).where(ExpenseCategory.name == name)
    if exclude_id is not None:
        q = q.where(ExpenseCategory.id != exclude_id)
    return s.execute(q).scalars().first() is not None


@router.get("", response_model=list[CategoryOut])
def list_categories(search: str | None = Query(default=None), s: Session = Depends(db), u=Depends(current_user)):
    rows = s.execute(select(ExpenseCategory).order_by(ExpenseCategory.name.asc())).scalars().all()
    if search and search.strip():
        needle = search.strip().lower()
        rows = [c for c in rows if needle in c.name.lower()]
    return rows


@router.post("", response_model=CategoryOut)
def create_category(body: CategoryIn, s: Session = Depends(db), u=Depends(require_writer)):
    if _clash(s, body.name):
        raise HTTPException(status_code=409, detail="category_exists")
    c = ExpenseCategory(name=body.name, type=body.type or DEFAULT_TYPE)
    s.add(c)
    s.commit()
    s.refresh(c)
    log_event(
        s,
        username=u.get("sub"),
        action="category.create",
        entity_type="expense_category",
        entity_id=c.id,
        details={"name": c.name, "type": c.type},
    )
    return c


@router.patch("/{category_id}", response_model=CategoryOut)
def update_category(category_id: int, body: CategoryIn, s: Session = Depends(db), u=Depends(require_writer)):
    c = s.get(ExpenseCategory, category_id)
    if not c:
        raise HTTPException(status_code=404, detail="category_not_found")
    if _clash(s, body.name, exclude_id=category_id):
        raise HTTPException(status_code=409, detail="category_exists")
    before = {"name": c.name, "type": c.type}
    c.name = body.name
    # editing may clear the type, unlike creation
    c.type = body.type
    s.commit()
    s.refresh(c)
    log_event(
        s,
        username=u.get("sub"),
        action="category.update",
        entity_type="expense_category",
        entity_id=c.id,
        details={"before": before, "after": {"name": c.name, "type": c.type}},
    )
    return c


@router.delete("/{category_id}")
def delete_category(category_id: int, s: Session = Depends(db), u=Depends(require_admin)):
    c = s.get(ExpenseCategory, category_id)
    if not c:
        raise HTTPException(status_code=404, detail="category_not_found")
    details = {"name": c.name, "type": c.type}
    s.delete(c)
    s.commit()
    log_event(
        s,
        username=u.get("sub"),
        action="category.delete",
        entity_type="expense_category",
        entity_id=category_id,
        details=details,
    )
    return {"ok": True}
