from pydantic import BaseModel
from datetime import datetime


class AuditOut(BaseModel):
    id: int
    created_at: datetime
    username: str
    action: str
    entity_type: str
    entity_id: int | None = None
    details: dict | None = None

    class Config:
        from_attributes = True


class AuditPageOut(BaseModel):
    """A page of the audit trail, newest first. total counts every matching row."""

    items: list[AuditOut]
    total: int
    limit: int
    offset: int
