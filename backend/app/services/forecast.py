from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.expense import Expense
from app.models.income import Income
from app.services.analytics import linear_regression, mean_abs_deviation, median, num, rnd, MAD_TO_SIGMA
from app.utils.dates import daterange
from app.utils.timezone import today_local

DAY_NAMES = ["Пн", "Вт", "Ср", "Чт", "Пт", "Сб", "Вс"]
FORECAST_DAYS = 30
TREND_WINDOW = 30
MAX_ANOMALIES = 5
ANOMALY_Z = 3
EXPENSE_SPIKE_FACTOR = 3
EXPENSE_SPIKE_MIN = 10000


def daily_history(s: Session, start: date, end: date) -> list[dict]:
    """One point per day from start to end, days without rows are zeros."""
    inc: dict[date, float] = defaultdict(float)
    for r in s.execute(select(Income).where(Income.date >= start, Income.date <= end)).scalars():
        inc[r.date] += num(r.cash_amount) + num(r.kaspi_amount) + num(r.card_amount)
    exp: dict[date, float] = defaultdict(float)
    for r in s.execute(select(Expense).where(Expense.date >= start, Expense.date <= end)).scalars():
        exp[r.date] += num(r.cash_amount) + num(r.kaspi_amount)

    return [
        {
            "date": d,
            "income": inc.get(d, 0.0),
            "expense": exp.get(d, 0.0),
            "day_of_week": d.weekday(),
            "day_name": DAY_NAMES[d.weekday()],
        }
        for d in daterange(start, end)
    ]


def weekday_profile(points: list[dict]) -> list[dict]:
    incomes: list[list[float]] = [[] for _ in range(7)]
    expenses: list[list[float]] = [[] for _ in range(7)]
    for p in points:
        incomes[p["day_of_week"]].append(p["income"])
        expenses[p["day_of_week"]].append(p["expense"])

    out = []
    for dow in range(7):
        med_inc = median(incomes[dow])
        out.append(
            {
                "day_of_week": dow,
                "day_name": DAY_NAMES[dow],
                "income": med_inc,
                "expense": median(expenses[dow]),
                "sigma": mean_abs_deviation(incomes[dow], med_inc) * MAD_TO_SIGMA,
                "count": len(incomes[dow]),
                "is_estimated": len(incomes[dow]) < 2,
            }
        )
    return out


def detect_anomalies(points: list[dict], profile: list[dict]) -> list[dict]:
    found = []
    for p in points:
        avg = profile[p["day_of_week"]]
        if avg["income"] == 0:
            continue
        z = abs(p["income"] - avg["income"]) / avg["sigma"] if avg["sigma"] > 0 else 0
        expense_high = p["expense"] > avg["expense"] * EXPENSE_SPIKE_FACTOR and p["expense"] > EXPENSE_SPIKE_MIN
        if not (z > ANOMALY_Z or expense_high):
            continue
        if expense_high:
            kind = "expense_high"
        elif p["income"] > avg["income"]:
            kind = "income_high"
        else:
            kind = "income_low"
        found.append(
            {
                "date": p["date"],
                "type": kind,
                "amount": p["expense"] if kind == "expense_high" else p["income"],
                "avg_for_day": avg["expense"] if kind == "expense_high" else avg["income"],
            }
        )
    found.reverse()
    return found[:MAX_ANOMALIES]


def analyze_history(history: list[dict], today: date) -> dict | None:
    if not history:
        return None
    past = [p for p in history if p["date"] < today]
    data = past or history
    weeks = max(1, len(data) // 7)
    profile = weekday_profile(data)

    recent = [p["income"] for p in data if p["income"] > 0][-TREND_WINDOW:]
    slope, _ = linear_regression(recent)

    last = history[-1]["date"]
    forecast = []
    total_inc = total_exp = 0.0
    for i in range(1, FORECAST_DAYS + 1):
        d = last + timedelta(days=i)
        base = profile[d.weekday()]
        income = max(0.0, base["income"] + slope * i)
        expense = base["expense"]
        forecast.append(
            {"date": d, "income": income, "expense": expense, "day_of_week": d.weekday(), "day_name": DAY_NAMES[d.weekday()]}
        )
        total_inc += income
        total_exp += expense

    n = len(data)
    return {
        "day_profile": profile,
        "forecast": forecast,
        "history": history,
        "total_forecast_income": total_inc,
        "total_forecast_profit": total_inc - total_exp,
        "anomalies": detect_anomalies(data, profile),
        "confidence": min(100, rnd(weeks / 4 * 100)),
        "total_data_points": n,
        "avg_income": sum(p["income"] for p in data) / n,
        "avg_expense": sum(p["expense"] for p in data) / n,
        "data_range_start": history[0]["date"],
        "data_range_end": last,
        "trend": slope,
    }


def ai_analysis(s: Session, today: date | None = None) -> dict | None:
    today = today or today_local()
    start = settings.analysis_start_date
    if start > today:
        return None
    return analyze_history(daily_history(s, start, today), today)


def expenses_by_category(s: Session, date_from: date, date_to: date) -> dict[str, float]:
    out: dict[str, float] = defaultdict(float)
    rows = s.execute(select(Expense).where(Expense.date >= date_from, Expense.date <= date_to)).scalars()
    for r in rows:
        out[r.category or "Прочее"] += num(r.cash_amount) + num(r.kaspi_amount)
    return dict(out)
