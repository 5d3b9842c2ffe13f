from __future__ import annotations

from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.debt import Debt
from app.models.income import Income
from app.models.salary import OperatorSalaryAdjustment
from app.services.analytics import num
from app.services.companies import PAYROLL_CODES, company_code, company_map, operator_map, operator_display_name


def operator_analytics(s: Session, date_from: date, date_to: date) -> dict:
    """Turnover, shift counts and net salary effect per operator for a period.

    Every income row counts as one shift. Advances are reported but do not
    change the net effect.
    """
    companies = company_map(s)
    operators = operator_map(s)

    incomes = s.execute(select(Income).where(Income.date >= date_from, Income.date <= date_to)).scalars().all()
    adjustments = s.execute(
        select(OperatorSalaryAdjustment).where(
            OperatorSalaryAdjustment.date >= date_from, OperatorSalaryAdjustment.date <= date_to
        )
    ).scalars().all()
    debts = s.execute(
        select(Debt).where(Debt.week_start >= date_from, Debt.week_start <= date_to, Debt.status == "active")
    ).scalars().all()

    by_op: dict[int, dict] = {}
    days: dict[int, set] = {}

    def ensure(op_id: int) -> dict:
        row = by_op.get(op_id)
        if row is None:
            row = by_op[op_id] = {
                "operator_id": op_id,
                "operator_name": operator_display_name(operators.get(op_id)),
                "shifts": 0,
                "days": 0,
                "total_turnover": 0.0,
                "avg_per_shift": 0.0,
                "share": 0.0,
                "auto_debts": 0.0,
                "manual_minus": 0.0,
                "manual_plus": 0.0,
                "advances": 0.0,
                "net_effect": 0.0,
            }
        return row

    total_turnover = 0.0
    total_shifts = 0
    for r in incomes:
        if r.operator_id is None:
            continue
        if company_code(companies.get(r.company_id)) not in PAYROLL_CODES:
            continue
        total = num(r.cash_amount) + num(r.kaspi_amount) + num(r.card_amount)
        op = ensure(r.operator_id)
        op["shifts"] += 1
        op["total_turnover"] += total
        total_turnover += total
        total_shifts += 1
        days.setdefault(r.operator_id, set()).add(r.date)

    total_auto_debts = 0.0
    for d in debts:
        amount = num(d.amount)
        if amount <= 0:
            continue
        ensure(d.operator_id)["auto_debts"] += amount
        total_auto_debts += amount

    total_minus = total_plus = 0.0
    for a in adjustments:
        amount = num(a.amount)
        if amount <= 0:
            continue
        op = ensure(a.operator_id)
        if a.kind == "bonus":
            op["manual_plus"] += amount
            total_plus += amount
        elif a.kind == "advance":
            op["advances"] += amount
        else:
            op["manual_minus"] += amount
            total_minus += amount

    rows = []
    for op_id, op in by_op.items():
        op["days"] = len(days.get(op_id, ()))
        op["avg_per_shift"] = op["total_turnover"] / op["shifts"] if op["shifts"] else 0.0
        op["share"] = op["total_turnover"] / total_turnover if total_turnover > 0 else 0.0
        op["net_effect"] = op["manual_plus"] - op["manual_minus"] - op["auto_debts"]
        rows.append(op)
    rows.sort(key=lambda r: r["total_turnover"], reverse=True)

    return {
        "rows": rows,
        "total_turnover": total_turnover,
        "total_shifts": total_shifts,
        "total_auto_debts": total_auto_debts,
        "total_minus": total_minus,
        "total_plus": total_plus,
    }
