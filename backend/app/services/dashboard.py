from __future__ import annotations

from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.expense import Expense
from app.models.income import Income
from app.services.analytics import num, pct_change, rnd
from app.services.companies import operator_map
from app.utils.dates import daterange, normalize_range, prev_period

FEED_SIZE = 7

STATUS_TEXT = {
    "excellent": (
        "Отличные показатели: вы в плюсе и растёте.",
        "Закрепляйте: усиливайте лучшее (пиковые часы/зоны), слабое — оптимизируйте.",
    ),
    "healthy": (
        "Устойчивая работа: прибыль есть, всё под контролем.",
        "Поднимайте маржу: пересмотрите цены/пакеты и режьте “тихие” расходы.",
    ),
    "warning": (
        "Прибыль под давлением: расходы заметно съедают выручку.",
        "Ревизия затрат + фокус на прибыльные позиции. Остальное — на паузу.",
    ),
    "critical": (
        "Риск убытков: вы слишком близко к минусу.",
        "Срочно: резать лишнее, проверять цены/скидки, усиливать загрузку пиков.",
    ),
}


def fetch_paged(s: Session, stmt, page_size: int, limit: int) -> tuple[list, bool]:
    """Pull rows page by page until a short page or the limit. Returns (rows, limited)."""
    out: list = []
    offset = 0
    while len(out) < limit:
        size = min(page_size, limit - offset)
        chunk = s.execute(stmt.offset(offset).limit(size)).scalars().all()
        out.extend(chunk)
        if len(chunk) < size:
            break
        offset += size
    return out[:limit], len(out) >= limit


def empty_totals() -> dict:
    return {
        "income_cash": 0.0,
        "income_kaspi": 0.0,
        "income_online": 0.0,
        "income_card": 0.0,
        "income_total": 0.0,
        "expense_cash": 0.0,
        "expense_kaspi": 0.0,
        "expense_total": 0.0,
        "profit": 0.0,
        "net_cash": 0.0,
        "net_kaspi": 0.0,
        "net_total": 0.0,
    }


def finalize_totals(t: dict) -> dict:
    t["profit"] = t["income_total"] - t["expense_total"]
    t["net_cash"] = t["income_cash"] - t["expense_cash"]
    t["net_kaspi"] = t["income_kaspi"] + t["income_online"] + t["income_card"] - t["expense_kaspi"]
    t["net_total"] = t["profit"]
    return t


def health_score(current: dict, previous: dict) -> dict:
    income = current["income_total"]
    expense = current["expense_total"]
    margin = current["profit"] / income * 100 if income > 0 else 0.0
    if expense > 0:
        efficiency = income / expense
    else:
        efficiency = 10.0 if income > 0 else 0.0

    income_change = pct_change(income, previous["income_total"])
    profit_change = pct_change(current["profit"], previous["profit"])

    score = 50.0
    score += min(25.0, max(-25.0, margin))
    score += 6 if income_change > 0 else -6
    score += 10 if profit_change > 0 else -10
    if efficiency > 1.2:
        score += 6
    if efficiency < 1.05 and income > 0:
        score -= 8
    if current["profit"] < 0:
        score -= 20
    score = min(100, max(0, rnd(score)))

    if score >= 80:
        status = "excellent"
    elif score >= 55:
        status = "healthy"
    elif score >= 35:
        status = "warning"
    else:
        status = "critical"
    summary, recommendation = STATUS_TEXT[status]
    return {
        "score": score,
        "status": status,
        "summary": summary,
        "recommendation": recommendation,
        "margin": margin,
        "efficiency": efficiency,
        "income_change": income_change,
        "profit_change": profit_change,
    }


def dashboard(s: Session, date_from: date, date_to: date) -> dict:
    date_from, date_to = normalize_range(date_from, date_to)
    prev_from, prev_to = prev_period(date_from, date_to)
    page, limit = settings.dashboard_page_size, settings.dashboard_row_limit

    incomes, inc_limited = fetch_paged(
        s,
        select(Income)
        .where(Income.date >= prev_from, Income.date <= date_to)
        .order_by(Income.date.desc(), Income.id.desc()),
        page,
        limit,
    )
    expenses, exp_limited = fetch_paged(
        s,
        select(Expense)
        .where(Expense.date >= prev_from, Expense.date <= date_to)
        .order_by(Expense.date.desc(), Expense.id.desc()),
        page,
        limit,
    )
    operators = operator_map(s)

    current, previous = empty_totals(), empty_totals()
    chart = {d: {"date": d, "income": 0.0, "expense": 0.0, "profit": 0.0} for d in daterange(date_from, date_to)}
    feed: list[dict] = []
    tx_count = 0

    for r in incomes:
        cash, kaspi, online, card = num(r.cash_amount), num(r.kaspi_amount), num(r.online_amount), num(r.card_amount)
        total = cash + kaspi + online + card
        if total <= 0:
            continue
        if date_from <= r.date <= date_to:
            t = current
            chart[r.date]["income"] += total
            tx_count += 1
            op = operators.get(r.operator_id) if r.operator_id is not None else None
            feed.append(
                {
                    "id": r.id,
                    "date": r.date,
                    "company_id": r.company_id,
                    "kind": "income",
                    "title": r.comment or (op.name if op else None) or "Продажа",
                    "amount": total,
                }
            )
        elif prev_from <= r.date <= prev_to:
            t = previous
        else:
            continue
        t["income_total"] += total
        t["income_cash"] += cash
        t["income_kaspi"] += kaspi
        t["income_online"] += online
        t["income_card"] += card

    for r in expenses:
        cash, kaspi = num(r.cash_amount), num(r.kaspi_amount)
        total = cash + kaspi
        if total <= 0:
            continue
        if date_from <= r.date <= date_to:
            t = current
            chart[r.date]["expense"] += total
            tx_count += 1
            feed.append(
                {
                    "id": r.id,
                    "date": r.date,
                    "company_id": r.company_id,
                    "kind": "expense",
                    "title": r.category or r.comment or "Расход",
                    "amount": total,
                }
            )
        elif prev_from <= r.date <= prev_to:
            t = previous
        else:
            continue
        t["expense_total"] += total
        t["expense_cash"] += cash
        t["expense_kaspi"] += kaspi

    finalize_totals(current)
    finalize_totals(previous)
    for p in chart.values():
        p["profit"] = p["income"] - p["expense"]

    feed.sort(key=lambda x: (x["date"], x["amount"]), reverse=True)

    return {
        "date_from": date_from,
        "date_to": date_to,
        "prev_from": prev_from,
        "prev_to": prev_to,
        "current": current,
        "previous": previous,
        "chart": [chart[d] for d in sorted(chart)],
        "insight": health_score(current, previous),
        "transactions_count": tx_count,
        "feed": feed[:FEED_SIZE],
        "limited": inc_limited or exp_limited,
    }
