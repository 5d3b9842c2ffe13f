from sqlalchemy import String, Integer, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base

DEFAULT_TYPE = "Общее"


class ExpenseCategory(Base):
    """Reference list of expense articles; expenses keep the name as plain text."""

    __tablename__ = "expense_categories"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), unique=True, index=True)
    # grouping label shown next to the name, e.g. Аренда, Зарплата
    type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[DateTime] = mapped_column(DateTime, server_default=func.now())
