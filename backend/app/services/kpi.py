from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.models.income import Income
from app.models.kpi_plan import KpiPlan
from app.models.operator import Operator
from app.services.analytics import holt_forecast, num, rnd
from app.services.companies import PAYROLL_CODES, company_code, company_map
from app.utils.dates import add_months, days_in_month, month_bounds
from app.utils.timezone import today_local

ROLE_LABELS = {
    "collective": "Коллектив",
    "operator": "Оператор",
    "supervisor": "Руководитель операторов",
    "marketing": "Маркетолог",
}


def turnover(r: Income) -> float:
    return num(r.cash_amount) + num(r.kaspi_amount) + num(r.card_amount)


def calculate_forecast(target: date, prev1_raw: float, prev2_raw: float, today: date | None = None) -> dict:
    today = today or today_local()
    prev1 = add_months(target, -1)

    prev1_estimated = prev1_raw
    is_partial = False
    if prev1.year == today.year and prev1.month == today.month:
        total_days = days_in_month(prev1.year, prev1.month)
        passed = min(total_days, max(1, today.day))
        if passed < total_days:
            prev1_estimated = rnd(prev1_raw / passed * total_days)
            is_partial = True

    forecast = holt_forecast([prev2_raw, prev1_estimated])
    trend = (forecast - prev1_estimated) / prev1_estimated * 100 if prev1_estimated > 0 else 0.0
    return {
        "forecast": forecast,
        "prev1_estimated": prev1_estimated,
        "is_partial": is_partial,
        "trend": trend,
    }


def monthly_forecast(s: Session, target: date, today: date | None = None) -> dict:
    target = target.replace(day=1)
    m1 = add_months(target, -1)
    m2 = add_months(target, -2)
    _, end = month_bounds(m1.year, m1.month)

    companies = company_map(s)
    sums: dict[date, dict[str, float]] = {m1: defaultdict(float), m2: defaultdict(float)}
    rows = s.execute(select(Income).where(Income.date >= m2, Income.date <= end)).scalars().all()
    for r in rows:
        code = company_code(companies.get(r.company_id))
        if code not in PAYROLL_CODES:
            continue
        sums[r.date.replace(day=1)][code] += turnover(r)

    out = {}
    totals = {"prev2": 0.0, "prev1": 0.0, "forecast": 0.0}
    any_partial = False
    for code in PAYROLL_CODES:
        val2 = sums[m2][code]
        val1 = sums[m1][code]
        calc = calculate_forecast(target, val1, val2, today=today)
        out[code] = {
            "prev2": val2,
            "prev1_raw": val1,
            "prev1_estimated": calc["prev1_estimated"],
            "is_partial": calc["is_partial"],
            "forecast": calc["forecast"],
            "trend": calc["trend"],
        }
        totals["prev2"] += val2
        totals["prev1"] += calc["prev1_estimated"]
        totals["forecast"] += calc["forecast"]
        any_partial = any_partial or calc["is_partial"]

    totals["trend"] = (totals["forecast"] - totals["prev1"]) / totals["prev1"] * 100 if totals["prev1"] > 0 else 0.0
    return {
        "target": target,
        "prev1_month": m1,
        "prev2_month": m2,
        "companies": out,
        "totals": totals,
        "is_any_partial": any_partial,
    }


@dataclass
class _Agg:
    turnover: float = 0.0
    shifts: set = field(default_factory=set)


def _plan_row(period_start: date, weeks: float, *, role: str, code: str | None, owner_id: int | None,
              t_month: float, s_month: float, meta: dict) -> KpiPlan:
    return KpiPlan(
        period_start=period_start,
        period_type="month",
        company_code=code,
        shift_type=None,
        owner_role=role,
        owner_id=owner_id,
        turnover_target_month=t_month,
        turnover_target_week=rnd(t_month / weeks),
        shifts_target_month=s_month,
        shifts_target_week=rnd(s_month / weeks, 2),
        meta=meta,
        is_locked=False,
    )


def build_plans(s: Session, period_start: date, growth_pct: float = 5) -> list[KpiPlan]:
    period_start = period_start.replace(day=1)
    m1 = add_months(period_start, -1)
    m2 = add_months(period_start, -2)

    companies = company_map(s)
    by_company: dict[tuple[str, date], _Agg] = defaultdict(_Agg)
    by_operator: dict[tuple[int, str, date], _Agg] = defaultdict(_Agg)

    rows = s.execute(select(Income).where(Income.date >= m2, Income.date < period_start)).scalars().all()
    for r in rows:
        code = company_code(companies.get(r.company_id))
        if code not in PAYROLL_CODES:
            continue
        month = r.date.replace(day=1)
        shift = "night" if r.shift == "night" else "day"
        shift_key = (r.operator_id, code, r.date, shift)
        amount = turnover(r)

        agg = by_company[(code, month)]
        agg.turnover += amount
        agg.shifts.add(shift_key)
        if r.operator_id:
            agg = by_operator[(r.operator_id, code, month)]
            agg.turnover += amount
            agg.shifts.add(shift_key)

    factor = 1 + (growth_pct or 0) / 100
    weeks = days_in_month(period_start.year, period_start.month) / 7
    meta = {"baseline": {"m2": m2.isoformat(), "m1": m1.isoformat()}, "growthPct": growth_pct}

    def baseline(a: _Agg | None, b: _Agg | None) -> tuple[float, float]:
        a = a or _Agg()
        b = b or _Agg()
        return (a.turnover + b.turnover) / 2, (len(a.shifts) + len(b.shifts)) / 2

    plans: list[KpiPlan] = []
    total_month = 0
    for code in PAYROLL_CODES:
        base_t, base_s = baseline(by_company.get((code, m2)), by_company.get((code, m1)))
        t_month = rnd(base_t * factor)
        total_month += t_month
        plans.append(
            _plan_row(period_start, weeks, role="collective", code=code, owner_id=None,
                      t_month=t_month, s_month=rnd(base_s * factor), meta=dict(meta))
        )

    operators = s.execute(select(Operator).where(Operator.is_active.is_(True)).order_by(Operator.id)).scalars().all()
    for op in operators:
        for code in PAYROLL_CODES:
            base_t, base_s = baseline(by_operator.get((op.id, code, m2)), by_operator.get((op.id, code, m1)))
            if base_t <= 0 and base_s <= 0:
                continue
            plans.append(
                _plan_row(period_start, weeks, role="operator", code=code, owner_id=op.id,
                          t_month=rnd(base_t * factor), s_month=rnd(base_s * factor), meta=dict(meta))
            )

    for role in ("supervisor", "marketing"):
        plans.append(
            _plan_row(period_start, weeks, role=role, code=None, owner_id=None,
                      t_month=total_month, s_month=0,
                      meta={"note": "Отвечает за выполнение коллективного плана", **meta})
        )
    return plans


def plan_key(p: KpiPlan) -> tuple:
    return (p.owner_role, p.company_code, p.shift_type, p.owner_id)


def generate_plans(s: Session, period_start: date, growth_pct: float = 5) -> list[KpiPlan]:
    """Replaces the unlocked month plans for period_start.

    Locked plans stay and no fresh plan is built for their slot.
    """
    period_start = period_start.replace(day=1)
    locked = {
        plan_key(p)
        for p in s.execute(
            select(KpiPlan).where(
                KpiPlan.period_start == period_start,
                KpiPlan.period_type == "month",
                KpiPlan.is_locked.is_(True),
            )
        ).scalars()
    }
    plans = [p for p in build_plans(s, period_start, growth_pct) if plan_key(p) not in locked]

    s.execute(
        delete(KpiPlan).where(
            KpiPlan.period_start == period_start,
            KpiPlan.period_type == "month",
            KpiPlan.is_locked.is_(False),
        )
    )
    s.add_all(plans)
    s.commit()
    for p in plans:
        s.refresh(p)
    return plans


def list_plans(s: Session, period_start: date) -> list[KpiPlan]:
    return (
        s.execute(
            select(KpiPlan)
            .where(KpiPlan.period_start == period_start.replace(day=1), KpiPlan.period_type == "month")
            .order_by(KpiPlan.owner_role, KpiPlan.company_code, KpiPlan.id)
        )
        .scalars()
        .all()
    )
