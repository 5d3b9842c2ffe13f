from dataclasses import asdict
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.api.deps import db, current_user, period, request_ticket
from app.services.csv_export import csv_response
from app.services.expense_analysis import expense_analysis
from app.services.income_analytics import weekday_weekend_stats
from app.services.operator_analytics import operator_analytics
from app.services.request_guard import finish
from app.services.tax import tax_summary
from app.services.weekly_balance import BalanceQuery, export_balances_csv, operator_balances

router = APIRouter(prefix="/analytics", tags=["analytics"])

BALANCE_SORT_KEYS = "^(name|netCash|netNonCash|netTotal|turnover|avg|shifts)$"


@router.get("/income")
def income_stats(
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    s: Session = Depends(db),
    u=Depends(current_user),
    ticket=Depends(request_ticket("analytics.income")),
):
    return finish(ticket, weekday_weekend_stats(s, date_from, date_to))


@router.get("/expenses")
def expenses(
    rng: tuple[date, date] = Depends(period),
    group_by: str = Query(default="day", pattern="^(day|week|month)$"),
    company_id: int | None = Query(default=None),
    category: str | None = Query(default=None),
    search: str | None = Query(default=None),
    s: Session = Depends(db),
    u=Depends(current_user),
    ticket=Depends(request_ticket("analytics.expenses")),
):
    date_from, date_to = rng
    data = expense_analysis(
        s, date_from, date_to, group_by=group_by, company_id=company_id, category=category, search=search
    )
    return finish(ticket, data)


@router.get("/tax")
def tax(
    rng: tuple[date, date] = Depends(period),
    s: Session = Depends(db),
    u=Depends(current_user),
    ticket=Depends(request_ticket("analytics.tax")),
):
    return finish(ticket, tax_summary(s, *rng))


@router.get("/operators")
def operators(
    rng: tuple[date, date] = Depends(period),
    s: Session = Depends(db),
    u=Depends(current_user),
    ticket=Depends(request_ticket("analytics.operators")),
):
    return finish(ticket, operator_analytics(s, *rng))


def _balance_query(
    rng: tuple[date, date] = Depends(period),
    include_arena: bool = Query(default=True),
    include_ramen: bool = Query(default=True),
    include_extra: bool = Query(default=True),
    show_inactive: bool = Query(default=False),
    search: str | None = Query(default=None),
    sort_key: str = Query(default="netTotal", pattern=BALANCE_SORT_KEYS),
    sort_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
) -> BalanceQuery:
    if not (include_arena or include_ramen or include_extra):
        raise HTTPException(status_code=400, detail="no_company_selected")
    return BalanceQuery(
        date_from=rng[0],
        date_to=rng[1],
        include_arena=include_arena,
        include_ramen=include_ramen,
        include_extra=include_extra,
        show_inactive=show_inactive,
        search=search,
        sort_key=sort_key,
        sort_dir=sort_dir,
    )


@router.get("/balances")
def balances(
    q: BalanceQuery = Depends(_balance_query),
    s: Session = Depends(db),
    u=Depends(current_user),
    ticket=Depends(request_ticket("analytics.balances")),
):
    result = operator_balances(s, q)
    result["rows"] = [asdict(r) for r in result["rows"]]
    result["date_from"] = q.date_from
    result["date_to"] = q.date_to
    return finish(ticket, result)


@router.get("/balances/export")
def balances_export(q: BalanceQuery = Depends(_balance_query), s: Session = Depends(db), u=Depends(current_user)):
    payload = export_balances_csv(operator_balances(s, q), q.date_from, q.date_to)
    return csv_response(f"operators_balance_{q.date_from}_{q.date_to}.csv", payload)
