from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.api.deps import db, current_user, require_admin
from app.models.kpi_plan import KpiPlan
from app.schemas.kpi import KpiGenerateIn, KpiPlanOut, KpiPlanUpdate
from app.services.audit import log_event
from app.services.kpi import generate_plans, list_plans, monthly_forecast
from app.utils.dates import add_months
from app.utils.timezone import today_local

router = APIRouter(prefix="/kpi", tags=["kpi"])


@router.get("/forecast")
def forecast(
    target: date | None = Query(default=None, description="any day of the target month"),
    s: Session = Depends(db),
    u=Depends(current_user),
):
    target = target or add_months(today_local(), 1)
    return monthly_forecast(s, target)


@router.get("/plans", response_model=list[KpiPlanOut])
def plans(period_start: date = Query(...), s: Session = Depends(db), u=Depends(current_user)):
    return list_plans(s, period_start)


@router.post("/plans/generate", response_model=list[KpiPlanOut])
def generate(body: KpiGenerateIn, s: Session = Depends(db), u=Depends(require_admin)):
    rows = generate_plans(s, body.period_start, body.growth_pct)
    log_event(
        s,
        username=u.get("sub"),
        action="kpi.generate",
        entity_type="kpi_plan",
        details={"period_start": str(body.period_start), "growth_pct": body.growth_pct, "rows": len(rows)},
    )
    return list_plans(s, body.period_start)


@router.patch("/plans/{plan_id}", response_model=KpiPlanOut)
def update_plan(plan_id: int, body: KpiPlanUpdate, s: Session = Depends(db), u=Depends(require_admin)):
    p = s.get(KpiPlan, plan_id)
    if not p:
        raise HTTPException(status_code=404, detail="plan_not_found")
    patch = body.model_dump(exclude_unset=True)
    # a locked plan only accepts unlocking
    if p.is_locked and set(patch) - {"is_locked"}:
        raise HTTPException(status_code=409, detail="plan_locked")
    for k, v in patch.items():
        if v is not None:
            setattr(p, k, v)
    s.add(p)
    s.commit()
    s.refresh(p)
    log_event(
        s,
        username=u.get("sub"),
        action="kpi.update",
        entity_type="kpi_plan",
        entity_id=p.id,
        details={k: (str(v) if v is not None else None) for k, v in patch.items()},
    )
    return p
