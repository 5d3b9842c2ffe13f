from __future__ import annotations

from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.income import Income
from app.services.analytics import num
from app.services.companies import company_map, company_code
from app.utils.dates import add_months, month_key


def split_taxable(code: str | None, cash: float, non_cash: float) -> tuple[float, float]:
    """Returns (taxable, ignored) for one income row of a company."""
    if code == "arena":
        return non_cash, cash
    if code == "ramen":
        return cash + non_cash, 0.0
    return 0.0, cash + non_cash


def tax_summary(s: Session, date_from: date, date_to: date) -> dict:
    rate = settings.tax_rate
    companies = company_map(s)
    rows = (
        s.execute(
            select(Income)
            .where(Income.date >= date_from, Income.date <= date_to)
            .order_by(Income.date.asc())
        )
        .scalars()
        .all()
    )

    months: dict[str, dict] = {}
    cur = date(date_from.year, date_from.month, 1)
    while cur <= date_to:
        k = month_key(cur)
        months[k] = {"month": k, "taxable_income": 0.0, "ignored_income": 0.0, "tax_amount": 0.0}
        cur = add_months(cur, 1)

    total_taxable = total_ignored = 0.0
    for r in rows:
        cash = num(r.cash_amount)
        # card payments go through the same terminal as kaspi
        non_cash = num(r.kaspi_amount) + num(r.card_amount)
        taxable, ignored = split_taxable(company_code(companies.get(r.company_id)), cash, non_cash)
        total_taxable += taxable
        total_ignored += ignored
        m = months.get(month_key(r.date))
        if m is not None:
            m["taxable_income"] += taxable
            m["ignored_income"] += ignored
            m["tax_amount"] += taxable * rate

    return {
        "rate": rate,
        "total_taxable": total_taxable,
        "total_ignored": total_ignored,
        "total_tax": total_taxable * rate,
        "months": [months[k] for k in sorted(months)],
    }
