from pydantic import BaseModel, field_validator
from datetime import datetime

from app.schemas.common import trim_or_none

class CompanyCreate(BaseModel):
    name: str
    code: str | None = None

    @field_validator("name")
    @classmethod
    def name_trim(cls, v: str):
        v = v.strip()
        if not v:
            raise ValueError("name is required")
        return v

    @field_validator("code")
    @classmethod
    def code_normalize(cls, v: str | None):
        v = trim_or_none(v)
        return v.lower() if v else None

class CompanyOut(BaseModel):
    id: int
    name: str
    code: str | None
    is_extra: bool = False
    created_at: datetime

    class Config:
        from_attributes = True
