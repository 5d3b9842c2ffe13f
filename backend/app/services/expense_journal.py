from __future__ import annotations

import logging
import time
from collections import defaultdict
from dataclasses import dataclass
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.expense import Expense
from app.models.expense_category import ExpenseCategory
from app.services.analytics import num
from app.services.companies import company_map, is_extra_company
from app.services.csv_export import plain_number, render_csv

logger = logging.getLogger(__name__)

NO_CATEGORY = "Без категории"
CSV_HEADER = ["Дата", "Компания", "Категория", "Cash", "Kaspi", "Итого", "Комментарий"]
COMMENT_COLUMN = CSV_HEADER.index("Комментарий")


@dataclass
class ExpenseFilters:
    date_from: date | None = None
    date_to: date | None = None
    company_id: int | None = None
    category: str | None = None
    pay: str | None = None
    search: str | None = None
    include_extra_in_totals: bool = False


def expense_total(r: Expense) -> float:
    return num(r.cash_amount) + num(r.kaspi_amount)


def fetch_expenses(s: Session, f: ExpenseFilters, limit: int | None = None) -> list[Expense]:
    limit = limit or settings.expenses_row_limit
    q = select(Expense)
    if f.date_from is not None:
        q = q.where(Expense.date >= f.date_from)
    if f.date_to is not None:
        q = q.where(Expense.date <= f.date_to)
    if f.company_id is not None:
        q = q.where(Expense.company_id == f.company_id)
    if f.category:
        q = q.where(Expense.category == f.category)
    if f.pay == "cash":
        q = q.where(Expense.cash_amount > 0)
    elif f.pay == "kaspi":
        q = q.where(Expense.kaspi_amount > 0)
    q = q.order_by(Expense.date.desc(), Expense.id.desc()).limit(limit)

    t0 = time.perf_counter()
    rows = list(s.execute(q).scalars().all())
    logger.debug("expenses fetched rows=%s limit=%s in %.1fms", len(rows), limit, (time.perf_counter() - t0) * 1000)
    return rows


def _search(rows: list[Expense], term: str | None) -> list[Expense]:
    term = (term or "").strip().lower()
    if not term:
        return rows
    return [
        r
        for r in rows
        if (r.comment and term in r.comment.lower()) or (r.category and term in r.category.lower())
    ]


def list_categories(s: Session) -> list[str]:
    """Reference categories plus any free-text category already used on an expense."""
    used = s.execute(select(Expense.category).where(Expense.category.is_not(None)).distinct()).scalars().all()
    known = s.execute(select(ExpenseCategory.name)).scalars().all()
    return sorted({c for c in (*used, *known) if c})


def expense_journal(s: Session, f: ExpenseFilters) -> dict:
    limit = settings.expenses_row_limit
    raw = fetch_expenses(s, f, limit)
    rows = _search(raw, f.search)
    companies = company_map(s)
    extra_ids = {cid for cid, c in companies.items() if is_extra_company(c)}

    cash = kaspi = 0.0
    by_cat: dict[str, float] = defaultdict(float)
    out = []
    for r in rows:
        c = companies.get(r.company_id)
        is_extra = r.company_id in extra_ids
        out.append(
            {
                "id": r.id,
                "date": r.date,
                "company_id": r.company_id,
                "company_name": c.name if c else None,
                "category": r.category,
                "cash_amount": num(r.cash_amount),
                "kaspi_amount": num(r.kaspi_amount),
                "total": expense_total(r),
                "comment": r.comment,
                "created_at": r.created_at,
                "is_extra": is_extra,
            }
        )
        if is_extra and f.company_id is None and not f.include_extra_in_totals:
            continue
        cash += num(r.cash_amount)
        kaspi += num(r.kaspi_amount)
        by_cat[r.category or NO_CATEGORY] += expense_total(r)

    top_cat, top_amount = None, 0.0
    for cat, amount in by_cat.items():
        if amount > top_amount:
            top_cat, top_amount = cat, amount

    return {
        "rows": out,
        "totals": {
            "cash": cash,
            "kaspi": kaspi,
            "total": cash + kaspi,
            "top_category": top_cat,
            "top_category_amount": top_amount,
        },
        "hit_limit": len(raw) >= limit,
    }


def export_expenses_csv(s: Session, f: ExpenseFilters) -> bytes:
    rows = _search(fetch_expenses(s, f), f.search)
    companies = company_map(s)
    lines = []
    for r in rows:
        c = companies.get(r.company_id)
        lines.append(
            [
                r.date.isoformat(),
                c.name if c else "",
                r.category or "",
                plain_number(num(r.cash_amount)),
                plain_number(num(r.kaspi_amount)),
                plain_number(expense_total(r)),
                r.comment or "",
            ]
        )
    return render_csv(lines, header=CSV_HEADER, quoted_columns=(COMMENT_COLUMN,))
