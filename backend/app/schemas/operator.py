from pydantic import BaseModel, field_validator
from datetime import datetime
from typing import Literal

from app.schemas.common import trim_or_none

OperatorRole = Literal["worker", "admin"]

class OperatorCreate(BaseModel):
    name: str
    short_name: str | None = None
    role: OperatorRole = "worker"
    telegram_chat_id: str | None = None
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def name_trim(cls, v: str):
        v = v.strip()
        if not v:
            raise ValueError("name is required")
        return v

    @field_validator("short_name")
    @classmethod
    def short_trim(cls, v: str | None):
        return trim_or_none(v)

    @field_validator("telegram_chat_id")
    @classmethod
    def chat_id_digits(cls, v: str | None):
        v = trim_or_none(v)
        if v is None:
            return None
        if not v.lstrip("-").isdigit():
            raise ValueError("telegram_chat_id must be numeric")
        return v

class OperatorUpdate(BaseModel):
    name: str | None = None
    short_name: str | None = None
    role: OperatorRole | None = None
    telegram_chat_id: str | None = None
    is_active: bool | None = None

class OperatorOut(BaseModel):
    id: int
    name: str
    short_name: str | None
    role: str
    telegram_chat_id: str | None
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True
