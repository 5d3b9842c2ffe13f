from sqlalchemy import String, Integer, Date, DateTime, Boolean, ForeignKey, Numeric, func
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base

class Staff(Base):
    __tablename__ = "staff"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    full_name: Mapped[str] = mapped_column(String(128))
    short_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    role: Mapped[str] = mapped_column(String(16), default="other")
    monthly_salary: Mapped[float] = mapped_column(Numeric(14, 2), default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[DateTime] = mapped_column(DateTime, server_default=func.now())

class StaffSalaryPayment(Base):
    __tablename__ = "staff_salary_payments"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    staff_id: Mapped[int] = mapped_column(ForeignKey("staff.id", ondelete="CASCADE"), index=True)
    pay_date: Mapped[Date] = mapped_column(Date, index=True)
    # first | second | other
    slot: Mapped[str] = mapped_column(String(16), default="first")
    amount: Mapped[float] = mapped_column(Numeric(14, 2))
    comment: Mapped[str | None] = mapped_column(String(256), nullable=True)
    created_at: Mapped[DateTime] = mapped_column(DateTime, server_default=func.now())
