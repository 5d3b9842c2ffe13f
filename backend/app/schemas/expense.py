from pydantic import BaseModel, field_validator, model_validator
from datetime import date, datetime

from app.schemas.common import check_amount, trim_or_none

class ExpenseCreate(BaseModel):
    date: date
    company_id: int
    category: str | None = None
    cash_amount: float = 0
    kaspi_amount: float = 0
    comment: str | None = None

    @field_validator("cash_amount", "kaspi_amount")
    @classmethod
    def amount_ok(cls, v: float):
        return check_amount(v)

    @field_validator("category", "comment")
    @classmethod
    def text_trim(cls, v: str | None):
        return trim_or_none(v)

    @model_validator(mode="after")
    def some_amount(self):
        if self.cash_amount + self.kaspi_amount <= 0:
            raise ValueError("at least one amount must be positive")
        return self

class ExpenseUpdate(ExpenseCreate):
    pass

class ExpenseOut(BaseModel):
    id: int
    date: date
    company_id: int
    category: str | None
    cash_amount: float
    kaspi_amount: float
    comment: str | None
    created_at: datetime | None = None

    class Config:
        from_attributes = True

class ExpenseRowOut(ExpenseOut):
    company_name: str | None = None
    total: float = 0
    is_extra: bool = False

class ExpenseTotals(BaseModel):
    cash: float = 0
    kaspi: float = 0
    total: float = 0
    top_category: str | None = None
    top_category_amount: float = 0

class ExpenseJournalOut(BaseModel):
    rows: list[ExpenseRowOut]
    totals: ExpenseTotals
    hit_limit: bool
