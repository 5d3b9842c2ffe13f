from pydantic import BaseModel, field_validator
from datetime import datetime

from app.schemas.common import trim_or_none


class CategoryIn(BaseModel):
    name: str
    type: str | None = None

    @field_validator("name")
    @classmethod
    def name_trim(cls, v: str):
        v = v.strip()
        if not v:
            raise ValueError("name is required")
        return v

    @field_validator("type")
    @classmethod
    def type_trim(cls, v: str | None):
        return trim_or_none(v)


class CategoryOut(BaseModel):
    id: int
    name: str
    type: str | None
    created_at: datetime | None = None

    class Config:
        from_attributes = True
