from sqlalchemy import Integer, Date, DateTime, Boolean, func, Numeric, String, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base

class KpiPlan(Base):
    __tablename__ = "kpi_plans"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    period_start: Mapped[Date] = mapped_column(Date, index=True)
    period_type: Mapped[str] = mapped_column(String(8), default="month")
    company_code: Mapped[str | None] = mapped_column(String(32), nullable=True)
    shift_type: Mapped[str | None] = mapped_column(String(8), nullable=True)
    # collective | operator | supervisor | marketing
    owner_role: Mapped[str] = mapped_column(String(16))
    owner_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    turnover_target_month: Mapped[float] = mapped_column(Numeric(14, 2), default=0)
    turnover_target_week: Mapped[float] = mapped_column(Numeric(14, 2), default=0)
    shifts_target_month: Mapped[float] = mapped_column(Numeric(10, 2), default=0)
    shifts_target_week: Mapped[float] = mapped_column(Numeric(10, 2), default=0)
    meta: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    is_locked: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[DateTime] = mapped_column(DateTime, server_default=func.now())


Index("ix_kpi_plans_period_owner", KpiPlan.period_start, KpiPlan.owner_role)
