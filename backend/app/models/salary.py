from sqlalchemy import Integer, Date, DateTime, Boolean, func, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base

class OperatorSalaryRule(Base):
    __tablename__ = "operator_salary_rules"
    __table_args__ = (UniqueConstraint("company_code", "shift_type", name="uq_salary_rule_company_shift"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_code: Mapped[str] = mapped_column(String(32))
    shift_type: Mapped[str] = mapped_column(String(8))
    base_per_shift: Mapped[float | None] = mapped_column(Numeric(14, 2), nullable=True)
    threshold1_turnover: Mapped[float | None] = mapped_column(Numeric(14, 2), nullable=True)
    threshold1_bonus: Mapped[float | None] = mapped_column(Numeric(14, 2), nullable=True)
    threshold2_turnover: Mapped[float | None] = mapped_column(Numeric(14, 2), nullable=True)
    threshold2_bonus: Mapped[float | None] = mapped_column(Numeric(14, 2), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[DateTime] = mapped_column(DateTime, server_default=func.now())

class OperatorSalaryAdjustment(Base):
    __tablename__ = "operator_salary_adjustments"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    operator_id: Mapped[int] = mapped_column(ForeignKey("operators.id", ondelete="CASCADE"), index=True)
    date: Mapped[Date] = mapped_column(Date, index=True)
    amount: Mapped[float] = mapped_column(Numeric(14, 2))
    # debt | fine | bonus | advance
    kind: Mapped[str] = mapped_column(String(16))
    comment: Mapped[str | None] = mapped_column(String(256), nullable=True)
    created_at: Mapped[DateTime] = mapped_column(DateTime, server_default=func.now())
