from pydantic import BaseModel, field_validator
from datetime import date, datetime

class KpiGenerateIn(BaseModel):
    period_start: date
    growth_pct: float = 5

    @field_validator("period_start")
    @classmethod
    def first_of_month(cls, v: date):
        return v.replace(day=1)

class KpiPlanUpdate(BaseModel):
    turnover_target_month: float | None = None
    turnover_target_week: float | None = None
    shifts_target_month: float | None = None
    shifts_target_week: float | None = None
    is_locked: bool | None = None

class KpiPlanOut(BaseModel):
    id: int
    period_start: date
    period_type: str
    company_code: str | None
    shift_type: str | None
    owner_role: str
    owner_id: int | None
    turnover_target_month: float
    turnover_target_week: float
    shifts_target_month: float
    shifts_target_week: float
    meta: dict | None
    is_locked: bool
    created_at: datetime | None = None

    class Config:
        from_attributes = True
