from sqlalchemy import Integer, DateTime, func, String, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base


class AuditLog(Base):
    """One row per mutation of journals, payroll, staff, KPI plans, users and companies."""

    __tablename__ = "audit_logs"
    __table_args__ = (Index("ix_audit_logs_entity", "entity_type", "entity_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    created_at: Mapped[DateTime] = mapped_column(DateTime, server_default=func.now(), index=True)
    # login name, or "system" for cron and background jobs
    username: Mapped[str] = mapped_column(String(64), index=True)
    # "<entity>.<verb>", e.g. income.create, debt.close, weekly_report.send
    action: Mapped[str] = mapped_column(String(64), index=True)
    # income | expense | debt | salary_adjustment | kpi_plan | staff | ...
    entity_type: Mapped[str] = mapped_column(String(64), index=True)
    entity_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # before/after snapshots or the request parameters of the change
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
