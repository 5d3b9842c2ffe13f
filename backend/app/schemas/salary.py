from pydantic import BaseModel, field_validator
from datetime import date, datetime
from typing import Literal

from app.schemas.common import check_amount, trim_or_none

AdjustmentKind = Literal["debt", "fine", "bonus", "advance"]
ShiftType = Literal["day", "night"]

class SalaryRuleIn(BaseModel):
    company_code: Literal["arena", "ramen", "extra"]
    shift_type: ShiftType
    base_per_shift: float | None = None
    threshold1_turnover: float | None = None
    threshold1_bonus: float | None = None
    threshold2_turnover: float | None = None
    threshold2_bonus: float | None = None
    is_active: bool = True

    @field_validator(
        "base_per_shift", "threshold1_turnover", "threshold1_bonus", "threshold2_turnover", "threshold2_bonus"
    )
    @classmethod
    def amount_ok(cls, v: float | None):
        if v is None:
            return None
        return check_amount(v)

class SalaryRuleOut(SalaryRuleIn):
    id: int

    class Config:
        from_attributes = True

class AdjustmentCreate(BaseModel):
    operator_id: int
    date: date
    amount: float
    kind: AdjustmentKind
    comment: str | None = None

    @field_validator("amount")
    @classmethod
    def positive(cls, v: float):
        v = check_amount(v)
        if v <= 0:
            raise ValueError("amount must be positive")
        return v

    @field_validator("comment")
    @classmethod
    def comment_trim(cls, v: str | None):
        return trim_or_none(v)

class AdjustmentOut(BaseModel):
    id: int
    operator_id: int
    date: date
    amount: float
    kind: str
    comment: str | None
    created_at: datetime | None = None

    class Config:
        from_attributes = True

class DebtCreate(BaseModel):
    operator_id: int
    amount: float
    week_start: date
    comment: str | None = None

    @field_validator("amount")
    @classmethod
    def positive(cls, v: float):
        v = check_amount(v)
        if v <= 0:
            raise ValueError("amount must be positive")
        return v

    @field_validator("week_start")
    @classmethod
    def must_be_monday(cls, v: date):
        if v.weekday() != 0:
            raise ValueError("week_start must be a Monday")
        return v

class DebtOut(BaseModel):
    id: int
    operator_id: int
    amount: float
    week_start: date
    status: str
    comment: str | None
    created_at: datetime | None = None

    class Config:
        from_attributes = True

class PayrollOperatorOut(BaseModel):
    operator_id: int
    operator_name: str
    shifts: int
    base_per_shift: float
    total_turnover: float
    base_salary: float
    bonus_salary: float
    total_salary: float
    manual_plus: float
    manual_minus: float
    advances: float
    final_salary: float

class PayrollOut(BaseModel):
    date_from: date
    date_to: date
    operators: list[PayrollOperatorOut]
    total_salary: float
    total_turnover: float

class LastItemIn(BaseModel):
    name: str
    qty: float = 1
    total: float = 0

class SnapshotIn(BaseModel):
    # operators.id or telegram_chat_id
    operator_id: str
    date_from: date
    date_to: date
    week_start: date | None = None
    last_item: LastItemIn | None = None
    send: bool = True

    @field_validator("operator_id", mode="before")
    @classmethod
    def operator_str(cls, v):
        v = str(v if v is not None else "").strip()
        if not v:
            raise ValueError("operator_id is required")
        return v

class SnapshotOut(BaseModel):
    ok: bool = True
    sent: bool
    operator_id: int
    text: str
    snapshot: dict
