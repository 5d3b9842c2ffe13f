from pydantic import BaseModel, field_validator, model_validator
from datetime import date, datetime
from typing import Literal

from app.schemas.common import check_amount, trim_or_none

Shift = Literal["day", "night"]
PayMethod = Literal["cash", "kaspi", "online", "card"]

class IncomeCreate(BaseModel):
    date: date
    company_id: int
    operator_id: int | None = None
    shift: Shift = "day"
    zone: str | None = None
    cash_amount: float = 0
    kaspi_amount: float = 0
    online_amount: float = 0
    card_amount: float = 0
    comment: str | None = None

    @field_validator("cash_amount", "kaspi_amount", "online_amount", "card_amount")
    @classmethod
    def amount_ok(cls, v: float):
        return check_amount(v)

    @field_validator("zone", "comment")
    @classmethod
    def text_trim(cls, v: str | None):
        return trim_or_none(v)

    @model_validator(mode="after")
    def some_amount(self):
        if self.cash_amount + self.kaspi_amount + self.online_amount + self.card_amount <= 0:
            raise ValueError("at least one amount must be positive")
        return self

class IncomeUpdate(IncomeCreate):
    pass

class IncomeOut(BaseModel):
    id: int
    date: date
    company_id: int
    operator_id: int | None
    shift: str
    zone: str | None
    cash_amount: float
    kaspi_amount: float
    online_amount: float
    card_amount: float
    comment: str | None
    created_at: datetime | None = None

    class Config:
        from_attributes = True

class IncomeRowOut(BaseModel):
    """A journal row. Extra rows may be merged, in which case id is None."""

    id: int | None
    date: date
    company_id: int
    company_name: str | None
    operator_id: int | None
    operator_name: str | None
    shift: str
    zone: str | None
    cash_amount: float
    kaspi_amount: float
    online_amount: float
    card_amount: float
    total: float
    comment: str | None
    is_extra: bool = False
    merged_count: int = 1

class IncomeTotals(BaseModel):
    cash: float = 0
    kaspi: float = 0
    online: float = 0
    card: float = 0
    total: float = 0
    day_total: float = 0
    night_total: float = 0
    avg: float = 0
    top_operator: str | None = None
    top_operator_amount: float = 0
    top_zone: str | None = None
    top_zone_amount: float = 0

class IncomeJournalOut(BaseModel):
    rows: list[IncomeRowOut]
    totals: IncomeTotals
    hit_limit: bool
