from sqlalchemy import Integer, Date, DateTime, Boolean, func, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base

class Income(Base):
    __tablename__ = "incomes"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    date: Mapped[Date] = mapped_column(Date, index=True)
    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="RESTRICT"), index=True)
    operator_id: Mapped[int | None] = mapped_column(
        ForeignKey("operators.id", ondelete="SET NULL"), nullable=True, index=True
    )
    shift: Mapped[str] = mapped_column(String(8), default="day")
    zone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    cash_amount: Mapped[float] = mapped_column(Numeric(14, 2), default=0)
    kaspi_amount: Mapped[float] = mapped_column(Numeric(14, 2), default=0)
    online_amount: Mapped[float] = mapped_column(Numeric(14, 2), default=0)
    card_amount: Mapped[float] = mapped_column(Numeric(14, 2), default=0)
    comment: Mapped[str | None] = mapped_column(String(512), nullable=True)
    is_virtual: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[DateTime] = mapped_column(DateTime, server_default=func.now())
