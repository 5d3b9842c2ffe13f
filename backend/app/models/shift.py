from sqlalchemy import Integer, Date, DateTime, func, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base


class Shift(Base):
    __tablename__ = "shifts"
    __table_args__ = (UniqueConstraint("company_id", "date", "shift_type", name="uq_shifts_slot"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    date: Mapped[Date] = mapped_column(Date, index=True)
    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), index=True)
    # day | night
    shift_type: Mapped[str] = mapped_column(String(8))
    # free text, the schedule is planned before operators are registered
    operator_name: Mapped[str] = mapped_column(String(128))
    comment: Mapped[str | None] = mapped_column(String(512), nullable=True)
    created_at: Mapped[DateTime] = mapped_column(DateTime, server_default=func.now())
