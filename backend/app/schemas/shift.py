from datetime import date, datetime

from pydantic import BaseModel, field_validator

from app.schemas.common import trim_or_none
from app.schemas.income import Shift as ShiftType


class ShiftCreate(BaseModel):
    date: date
    company_id: int
    shift_type: ShiftType = "day"
    operator_name: str
    comment: str | None = None

    @field_validator("operator_name")
    @classmethod
    def name_trim(cls, v: str):
        v = v.strip()
        if not v:
            raise ValueError("operator_name is required")
        return v

    @field_validator("comment")
    @classmethod
    def comment_trim(cls, v: str | None):
        return trim_or_none(v)


class ShiftCellIn(BaseModel):
    """One grid cell. An empty operator name clears the cell."""

    date: date
    company_id: int
    shift_type: ShiftType
    operator_name: str = ""

    @field_validator("operator_name")
    @classmethod
    def name_trim(cls, v: str | None):
        return (v or "").strip()


class ShiftOut(BaseModel):
    id: int
    date: date
    company_id: int
    shift_type: str
    operator_name: str
    comment: str | None = None

    class Config:
        from_attributes = True
