from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.company import Company
from app.models.debt import Debt
from app.models.income import Income
from app.models.operator import Operator
from app.models.salary import OperatorSalaryAdjustment, OperatorSalaryRule
from app.services.analytics import num, rnd
from app.services.companies import PAYROLL_CODES, company_code, company_map, operator_map
from app.utils.dates import monday_of


@dataclass
class ShiftAgg:
    operator_id: int
    company_id: int
    company_code: str
    date: date
    shift: str
    turnover: float = 0.0


@dataclass
class SalaryBreakdown:
    shifts: int = 0
    base_salary: float = 0.0
    bonus_salary: float = 0.0
    turnover: float = 0.0
    manual_plus: float = 0.0
    manual_minus: float = 0.0
    advances: float = 0.0
    week_debts: float = 0.0
    shift_rows: list[dict] = field(default_factory=list)

    @property
    def total_salary(self) -> float:
        return self.base_salary + self.bonus_salary

    @property
    def final_salary(self) -> float:
        return self.total_salary + self.manual_plus - self.manual_minus - self.advances - self.week_debts


def load_rules(s: Session) -> dict[str, OperatorSalaryRule]:
    rules = s.execute(select(OperatorSalaryRule).where(OperatorSalaryRule.is_active.is_(True))).scalars().all()
    return {f"{r.company_code}_{r.shift_type}": r for r in rules}


def shift_pay(rule: OperatorSalaryRule | None, turnover: float) -> tuple[float, float]:
    """(base, bonus) for one shift. Unset or zero thresholds never fire."""
    if rule is None or rule.base_per_shift is None:
        base = float(settings.default_base_per_shift)
    else:
        base = num(rule.base_per_shift)
    bonus = 0.0
    if rule is not None:
        t1 = num(rule.threshold1_turnover)
        if t1 and turnover >= t1:
            bonus += num(rule.threshold1_bonus)
        t2 = num(rule.threshold2_turnover)
        if t2 and turnover >= t2:
            bonus += num(rule.threshold2_bonus)
    return base, bonus


def aggregate_shifts(
    rows: list[Income], companies: dict[int, Company], skip_empty: bool = False
) -> list[ShiftAgg]:
    """Collapse income rows to one entry per operator, company, date and shift."""
    out: dict[tuple, ShiftAgg] = {}
    for r in rows:
        if r.operator_id is None:
            continue
        code = company_code(companies.get(r.company_id))
        if code not in PAYROLL_CODES:
            continue
        shift = "night" if r.shift == "night" else "day"
        total = num(r.cash_amount) + num(r.kaspi_amount) + num(r.card_amount)
        if skip_empty and total <= 0:
            continue
        key = (r.operator_id, r.company_id, r.date, shift)
        agg = out.get(key)
        if agg is None:
            agg = out[key] = ShiftAgg(r.operator_id, r.company_id, code, r.date, shift)
        agg.turnover += total
    return list(out.values())


def _incomes(s: Session, date_from: date, date_to: date, operator_id: int | None = None) -> list[Income]:
    q = select(Income).where(Income.date >= date_from, Income.date <= date_to)
    if operator_id is not None:
        q = q.where(Income.operator_id == operator_id)
    return list(s.execute(q.order_by(Income.date.asc(), Income.id.asc())).scalars().all())


def _adjustments(s: Session, date_from: date, date_to: date, operator_id: int | None = None):
    q = select(OperatorSalaryAdjustment).where(
        OperatorSalaryAdjustment.date >= date_from, OperatorSalaryAdjustment.date <= date_to
    )
    if operator_id is not None:
        q = q.where(OperatorSalaryAdjustment.operator_id == operator_id)
    return s.execute(q).scalars().all()


def apply_adjustment(b: SalaryBreakdown, kind: str, amount: float) -> None:
    if amount <= 0:
        return
    if kind == "bonus":
        b.manual_plus += amount
    elif kind == "advance":
        b.advances += amount
    else:
        b.manual_minus += amount


def _breakdowns(s: Session, date_from: date, date_to: date, operator_id: int | None = None):
    companies = company_map(s)
    rules = load_rules(s)
    by_op: dict[int, SalaryBreakdown] = {}
    base_per_shift: dict[int, float] = {}

    for sh in aggregate_shifts(_incomes(s, date_from, date_to, operator_id), companies):
        base, bonus = shift_pay(rules.get(f"{sh.company_code}_{sh.shift}"), sh.turnover)
        b = by_op.setdefault(sh.operator_id, SalaryBreakdown())
        base_per_shift.setdefault(sh.operator_id, base)
        b.shifts += 1
        b.base_salary += base
        b.bonus_salary += bonus
        b.turnover += sh.turnover
        c = companies.get(sh.company_id)
        b.shift_rows.append(
            {
                "date": sh.date,
                "shift": sh.shift,
                "company_id": sh.company_id,
                "company_name": c.name if c else None,
                "company_code": sh.company_code,
                "turnover": sh.turnover,
                "base": base,
                "bonus": bonus,
                "salary": base + bonus,
            }
        )

    for a in _adjustments(s, date_from, date_to, operator_id):
        b = by_op.get(a.operator_id)
        # adjustments only count for operators who worked in the period
        if b is None:
            continue
        apply_adjustment(b, a.kind, num(a.amount))

    return by_op, base_per_shift


def compute_payroll(s: Session, date_from: date, date_to: date) -> dict:
    by_op, base_per_shift = _breakdowns(s, date_from, date_to)
    operators = operator_map(s)

    rows = []
    for op_id, b in by_op.items():
        op = operators.get(op_id)
        rows.append(
            {
                "operator_id": op_id,
                "operator_name": op.name if op else f"#{op_id}",
                "shifts": b.shifts,
                "base_per_shift": base_per_shift.get(op_id, float(settings.default_base_per_shift)),
                "total_turnover": b.turnover,
                "base_salary": b.base_salary,
                "bonus_salary": b.bonus_salary,
                "total_salary": b.total_salary,
                "manual_plus": b.manual_plus,
                "manual_minus": b.manual_minus,
                "advances": b.advances,
                "final_salary": b.final_salary,
            }
        )
    rows.sort(key=lambda r: r["operator_name"].lower())

    return {
        "date_from": date_from,
        "date_to": date_to,
        "operators": rows,
        "total_salary": sum(r["final_salary"] for r in rows),
        "total_turnover": sum(r["total_turnover"] for r in rows),
    }


def operator_payroll_detail(s: Session, operator_id: int, date_from: date, date_to: date) -> dict:
    by_op, _ = _breakdowns(s, date_from, date_to, operator_id)
    b = by_op.get(operator_id) or SalaryBreakdown()
    rows = sorted(b.shift_rows, key=lambda r: (r["date"], r["shift"]))
    return {
        "operator_id": operator_id,
        "shifts": rows,
        "shift_count": b.shifts,
        "total_turnover": b.turnover,
        "total_salary": b.total_salary,
        "avg_turnover": b.turnover / b.shifts if b.shifts else 0.0,
        "avg_salary": b.total_salary / b.shifts if b.shifts else 0.0,
        "manual_plus": b.manual_plus,
        "manual_minus": b.manual_minus,
        "advances": b.advances,
        "final_salary": b.final_salary,
    }


def find_operator(s: Session, raw: str) -> Operator | None:
    """Look an operator up by id, or by telegram chat id when the value is all digits
    and no operator has that id."""
    raw = (raw or "").strip()
    if not raw:
        return None
    if raw.isdigit():
        op = s.execute(select(Operator).where(Operator.telegram_chat_id == raw)).scalars().first()
        if op is not None:
            return op
        return s.get(Operator, int(raw))
    return None


def week_debts(s: Session, operator_id: int, week_start: date) -> float:
    rows = s.execute(
        select(Debt.amount).where(
            Debt.operator_id == operator_id,
            Debt.week_start == week_start,
            Debt.status == "active",
        )
    ).scalars().all()
    return sum(v for v in (num(x) for x in rows) if v > 0)


def salary_snapshot(
    s: Session, operator: Operator, date_from: date, date_to: date, week_start: date | None = None
) -> dict:
    """Weekly payout for one operator, including the week's active debts."""
    week_start = week_start or monday_of(date_from)
    companies = company_map(s)
    rules = load_rules(s)

    b = SalaryBreakdown()
    per_shift: dict[tuple, float] = defaultdict(float)
    for sh in aggregate_shifts(_incomes(s, date_from, date_to, operator.id), companies, skip_empty=True):
        per_shift[(sh.company_code, sh.date, sh.shift)] += sh.turnover
    for (code, _, shift), turnover in per_shift.items():
        base, bonus = shift_pay(rules.get(f"{code}_{shift}"), turnover)
        b.shifts += 1
        b.base_salary += base
        b.bonus_salary += bonus
        b.turnover += turnover

    for a in _adjustments(s, date_from, date_to, operator.id):
        apply_adjustment(b, a.kind, num(a.amount))
    b.week_debts = week_debts(s, operator.id, week_start)

    return {
        "operator_id": operator.id,
        "operator_name": operator.short_name or operator.name or "Оператор",
        "date_from": date_from,
        "date_to": date_to,
        "week_start": week_start,
        "week_end": week_start + timedelta(days=6),
        "shifts": b.shifts,
        "turnover": b.turnover,
        "base_salary": b.base_salary,
        "bonus_salary": b.bonus_salary,
        "total_salary": b.total_salary,
        "manual_plus": b.manual_plus,
        "manual_minus": b.manual_minus,
        "advances": b.advances,
        "auto_debts": b.week_debts,
        "final_salary": b.final_salary,
    }


def escape_html(v: str) -> str:
    return v.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def format_money(n: float) -> str:
    return f"{rnd(n):,}".replace(",", "\u00a0") + " ₸"


def render_snapshot(snap: dict, last_item: dict | None = None) -> str:
    name = escape_html(snap["operator_name"])
    period = f"{snap['date_from']} — {snap['date_to']}"

    text = f"👤 <b>{name}</b>\n"
    text += f"📅 Период: <code>{escape_html(period)}</code>\n"
    text += f"🗓 Неделя: <code>{snap['week_start']} — {snap['week_end']}</code>\n\n"

    if last_item and last_item.get("name"):
        text += (
            f"🛒 Сегодня в долг: <b>{escape_html(str(last_item['name']))}</b> x{last_item.get('qty', 1)}"
            f" = <b>{format_money(num(last_item.get('total')))}</b>\n\n"
        )

    text += f"📌 Смен: <b>{snap['shifts']}</b>\n"
    text += f"💼 База: <b>{format_money(snap['base_salary'])}</b>\n"
    text += f"✅ Авто-бонусы: <b>{format_money(snap['bonus_salary'])}</b>\n"
    text += f"🧾 Долги недели: <b>{format_money(snap['auto_debts'])}</b>\n"
    if snap["manual_minus"] > 0:
        text += f"➖ Долги/штрафы: <b>{format_money(snap['manual_minus'])}</b>\n"
    if snap["advances"] > 0:
        text += f"💸 Авансы: <b>{format_money(snap['advances'])}</b>\n"
    if snap["manual_plus"] > 0:
        text += f"🎁 Премии: <b>{format_money(snap['manual_plus'])}</b>\n"
    text += f"\n💰 <b>К выплате: {format_money(snap['final_salary'])}</b>"
    return text
