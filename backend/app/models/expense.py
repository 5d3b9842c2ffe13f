from sqlalchemy import Integer, Date, DateTime, func, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base

class Expense(Base):
    __tablename__ = "expenses"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    date: Mapped[Date] = mapped_column(Date, index=True)
    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="RESTRICT"), index=True)
    category: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    cash_amount: Mapped[float] = mapped_column(Numeric(14, 2), default=0)
    kaspi_amount: Mapped[float] = mapped_column(Numeric(14, 2), default=0)
    comment: Mapped[str | None] = mapped_column(String(512), nullable=True)
    created_at: Mapped[DateTime] = mapped_column(DateTime, server_default=func.now())
