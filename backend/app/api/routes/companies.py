from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from sqlalchemy import select, func
from app.api.deps import db, current_user, require_admin
from app.schemas.company import CompanyCreate, CompanyOut
from app.models.company import Company
from app.models.expense import Expense
from app.models.income import Income
from app.services.audit import log_event
from app.services.companies import is_extra_company

router = APIRouter(prefix="/companies", tags=["companies"])

def _company_out(c: Company) -> dict:
    return {
        "id": c.id,
        "name": c.name,
        "code": c.code,
        "is_extra": is_extra_company(c),
        "created_at": c.created_at,
    }

@router.get("", response_model=list[CompanyOut])
def list_companies(s: Session = Depends(db), u=Depends(current_user)):
    rows = s.execute(select(Company).order_by(Company.name.asc())).scalars().all()
    return [_company_out(c) for c in rows]

@router.post("", response_model=CompanyOut)
def create_company(body: CompanyCreate, s: Session = Depends(db), u=Depends(require_admin)):
    exists = s.execute(select(Company).where(Company.name == body.name)).scalar_one_or_none()
    if exists:
        raise HTTPException(status_code=409, detail="company_exists")
    c = Company(name=body.name, code=body.code)
    s.add(c)
    s.commit()
    s.refresh(c)
    log_event(
        s,
        username=u.get("sub"),
        action="company.create",
        entity_type="company",
        entity_id=c.id,
        details={"name": c.name, "code": c.code},
    )
    return _company_out(c)

@router.patch("/{company_id}", response_model=CompanyOut)
def update_company(company_id: int, body: CompanyCreate, s: Session = Depends(db), u=Depends(require_admin)):
    c = s.get(Company, company_id)
    if not c:
        raise HTTPException(status_code=404, detail="company_not_found")
    clash = s.execute(select(Company).where(Company.name == body.name, Company.id != company_id)).scalar_one_or_none()
    if clash:
        raise HTTPException(status_code=409, detail="company_exists")
    before = {"name": c.name, "code": c.code}
    c.name = body.name
    c.code = body.code
    s.add(c)
    s.commit()
    s.refresh(c)
    log_event(
        s,
        username=u.get("sub"),
        action="company.update",
        entity_type="company",
        entity_id=c.id,
        details={"before": before, "after": {"name": c.name, "code": c.code}},
    )
    return _company_out(c)

@router.delete("/{company_id}")
def delete_company(company_id: int, s: Session = Depends(db), u=Depends(require_admin)):
    c = s.get(Company, company_id)
    if not c:
        raise HTTPException(status_code=404, detail="company_not_found")
    used = s.execute(select(func.count()).select_from(Income).where(Income.company_id == company_id)).scalar_one()
    used += s.execute(select(func.count()).select_from(Expense).where(Expense.company_id == company_id)).scalar_one()
    if used:
        raise HTTPException(status_code=409, detail="company_in_use")
    details = {"name": c.name, "code": c.code}
    s.delete(c)
    s.commit()
    log_event(
        s,
        username=u.get("sub"),
        action="company.delete",
        entity_type="company",
        entity_id=company_id,
        details=details,
    )
    return {"ok": True}
