from pydantic import BaseModel, field_validator
from datetime import date, datetime
from typing import Literal

from app.schemas.common import check_amount, trim_or_none

StaffRole = Literal["manager", "marketer", "owner", "other"]
PaySlot = Literal["first", "second", "other"]

class StaffCreate(BaseModel):
    full_name: str
    short_name: str | None = None
    role: StaffRole = "other"
    monthly_salary: float = 0
    is_active: bool = True

    @field_validator("full_name")
    @classmethod
    def name_trim(cls, v: str):
        v = v.strip()
        if not v:
            raise ValueError("full_name is required")
        return v

    @field_validator("short_name")
    @classmethod
    def short_trim(cls, v: str | None):
        return trim_or_none(v)

    @field_validator("monthly_salary")
    @classmethod
    def salary_ok(cls, v: float):
        return check_amount(v)

class StaffOut(BaseModel):
    id: int
    full_name: str
    short_name: str | None
    role: str
    monthly_salary: float
    is_active: bool

    class Config:
        from_attributes = True

class PaymentCreate(BaseModel):
    staff_id: int
    pay_date: date
    slot: PaySlot | None = None
    amount: float
    comment: str | None = None

    @field_validator("amount")
    @classmethod
    def positive(cls, v: float):
        v = check_amount(v)
        if v <= 0:
            raise ValueError("amount must be positive")
        return v

class PaymentOut(BaseModel):
    id: int
    staff_id: int
    pay_date: date
    slot: str
    amount: float
    comment: str | None
    created_at: datetime | None = None

    class Config:
        from_attributes = True

class StaffMonthRow(BaseModel):
    id: int
    full_name: str
    short_name: str | None
    is_active: bool
    monthly_salary: float
    paid: float
    left: float
    percent: float
    is_overpaid: bool

class StaffMonthOut(BaseModel):
    month: str
    total_budget: float
    total_paid: float
    total_left: float
    progress: float
    staff: list[StaffMonthRow]
    payments: list[PaymentOut]
