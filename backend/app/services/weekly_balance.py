from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.debt import Debt
from app.models.income import Income
from app.models.salary import OperatorSalaryAdjustment
from app.services.analytics import num, rnd
from app.services.companies import company_code, company_map, operator_map
from app.services.csv_export import render_csv
from app.utils.dates import monday_of
from app.utils.timezone import now_local

SORT_KEYS = ("netCash", "netNonCash", "netTotal", "turnover", "avg", "shifts", "name")
PROJECTION_FACTOR = 1.1
MAX_INSIGHTS = 5


@dataclass
class BalanceQuery:
    date_from: date
    date_to: date
    include_arena: bool = True
    include_ramen: bool = True
    include_extra: bool = True
    show_inactive: bool = False
    search: str | None = None
    sort_key: str = "netTotal"
    sort_dir: str = "desc"

    @property
    def allowed_codes(self) -> set[str]:
        codes = set()
        if self.include_arena:
            codes.add("arena")
        if self.include_ramen:
            codes.add("ramen")
        if self.include_extra:
            codes.add("extra")
        return codes


@dataclass
class OperatorBalance:
    operator_id: int
    operator_name: str
    operator_short_name: str | None
    shifts: int = 0
    days: int = 0
    total_turnover: float = 0.0
    cash_income: float = 0.0
    kaspi_income: float = 0.0
    online_income: float = 0.0
    card_income: float = 0.0
    non_cash_income: float = 0.0
    auto_debts: float = 0.0
    manual_minus: float = 0.0
    total_debts: float = 0.0
    manual_plus: float = 0.0
    advances: float = 0.0
    net_cash: float = 0.0
    net_non_cash: float = 0.0
    net_effect: float = 0.0
    avg_per_shift: float = 0.0
    share: float = 0.0
    daily_data: list[dict] = field(default_factory=list)
    payment_breakdown: list[dict] = field(default_factory=list)
    balance_history: list[dict] = field(default_factory=list)


def format_money_compact(n: float) -> str:
    a = abs(n)
    if a >= 1_000_000_000:
        return f"{n / 1_000_000_000:.1f} млрд"
    if a >= 1_000_000:
        return f"{n / 1_000_000:.1f} млн"
    if a >= 1_000:
        return f"{n / 1_000:.1f} тыс"
    return str(rnd(n))


def _sort_value(op: OperatorBalance, key: str):
    return {
        "name": op.operator_name,
        "netCash": op.net_cash,
        "netNonCash": op.net_non_cash,
        "netTotal": op.net_effect,
        "turnover": op.total_turnover,
        "avg": op.avg_per_shift,
        "shifts": op.shifts,
    }[key]


def operator_balances(s: Session, q: BalanceQuery) -> dict:
    companies = company_map(s)
    operators = operator_map(s)
    allowed = q.allowed_codes

    def eligible(op_id: int | None) -> bool:
        if op_id is None:
            return False
        meta = operators.get(op_id)
        if meta is None:
            return False
        return q.show_inactive or bool(meta.is_active)

    incomes = s.execute(
        select(Income).where(Income.date >= q.date_from, Income.date <= q.date_to).order_by(Income.date.asc())
    ).scalars().all()
    adjustments = s.execute(
        select(OperatorSalaryAdjustment).where(
            OperatorSalaryAdjustment.date >= q.date_from, OperatorSalaryAdjustment.date <= q.date_to
        )
    ).scalars().all()
    debts = s.execute(
        select(Debt).where(
            Debt.week_start >= monday_of(q.date_from),
            Debt.week_start <= monday_of(q.date_to),
            Debt.status == "active",
        )
    ).scalars().all()

    by_op: dict[int, OperatorBalance] = {}
    days: dict[int, set] = defaultdict(set)
    shifts: dict[int, set] = defaultdict(set)
    daily: dict[int, dict[date, dict]] = defaultdict(dict)

    def ensure(op_id: int) -> OperatorBalance:
        op = by_op.get(op_id)
        if op is None:
            meta = operators[op_id]
            op = by_op[op_id] = OperatorBalance(
                operator_id=op_id, operator_name=meta.name, operator_short_name=meta.short_name
            )
        return op

    total_cash = total_non_cash = total_debts = total_advances = total_bonuses = 0.0

    for r in incomes:
        if not eligible(r.operator_id):
            continue
        if company_code(companies.get(r.company_id)) not in allowed:
            continue
        cash, kaspi, online, card = num(r.cash_amount), num(r.kaspi_amount), num(r.online_amount), num(r.card_amount)
        non_cash = kaspi + online + card
        total = cash + non_cash
        if total <= 0:
            continue
        op = ensure(r.operator_id)
        op.total_turnover += total
        op.cash_income += cash
        op.kaspi_income += kaspi
        op.online_income += online
        op.card_income += card
        op.non_cash_income += non_cash
        total_cash += cash
        total_non_cash += non_cash

        days[r.operator_id].add(r.date)
        shifts[r.operator_id].add(f"{r.date}|{r.shift or 'na'}|{r.company_id}|{r.operator_id}")
        d = daily[r.operator_id].setdefault(r.date, {"date": r.date, "cash": 0.0, "non_cash": 0.0, "total": 0.0})
        d["cash"] += cash
        d["non_cash"] += non_cash
        d["total"] += total

    for d in debts:
        if not eligible(d.operator_id):
            continue
        amount = num(d.amount)
        if amount <= 0:
            continue
        op = ensure(d.operator_id)
        op.auto_debts += amount
        op.total_debts += amount
        total_debts += amount

    for a in adjustments:
        if not eligible(a.operator_id):
            continue
        amount = num(a.amount)
        if amount <= 0:
            continue
        op = ensure(a.operator_id)
        if a.kind == "bonus":
            op.manual_plus += amount
            total_bonuses += amount
        elif a.kind == "advance":
            op.advances += amount
            total_advances += amount
        else:
            op.manual_minus += amount
            op.total_debts += amount
            total_debts += amount

    income_all = total_cash + total_non_cash
    for op_id, op in by_op.items():
        op.days = len(days.get(op_id, ()))
        op.shifts = len(shifts.get(op_id, ()))
        op.avg_per_shift = op.total_turnover / op.shifts if op.shifts else 0.0
        op.share = op.total_turnover / income_all if income_all > 0 else 0.0
        # debts and fines are settled from cash, advances from non-cash
        op.net_cash = op.cash_income - op.total_debts
        op.net_non_cash = op.non_cash_income - op.advances
        op.net_effect = op.net_cash + op.net_non_cash + op.manual_plus

        op.daily_data = [daily[op_id][k] for k in sorted(daily.get(op_id, {}))]
        op.payment_breakdown = [
            item
            for item in (
                {"name": "Наличные", "value": op.cash_income},
                {"name": "Kaspi", "value": op.kaspi_income},
                {"name": "Online", "value": op.online_income},
                {"name": "Карта", "value": op.card_income},
            )
            if item["value"] > 0
        ]
        running_cash = running_non_cash = 0.0
        history = []
        for d in op.daily_data:
            running_cash += d["cash"]
            running_non_cash += d["non_cash"]
            history.append({"date": d["date"], "cash_balance": running_cash, "non_cash_balance": running_non_cash})
        op.balance_history = history

    net_total = income_all - (total_debts + total_advances) + total_bonuses
    balances = {
        "total_cash_income": total_cash,
        "total_non_cash_income": total_non_cash,
        "total_debts": total_debts,
        "total_advances": total_advances,
        "total_bonuses": total_bonuses,
        "net_cash_balance": total_cash - total_debts,
        "net_non_cash_balance": total_non_cash - total_advances,
        "net_total_balance": net_total,
        "projected_cash_balance": (total_cash - total_debts) * PROJECTION_FACTOR,
        "projected_non_cash_balance": (total_non_cash - total_advances) * PROJECTION_FACTOR,
        "projected_total_balance": net_total * PROJECTION_FACTOR,
    }

    rows = list(by_op.values())
    term = (q.search or "").strip().lower()
    if term:
        rows = [
            r
            for r in rows
            if term in (r.operator_name or "").lower() or term in (r.operator_short_name or "").lower()
        ]
    sort_key = q.sort_key if q.sort_key in SORT_KEYS else "netTotal"
    if sort_key == "name":
        rows.sort(key=lambda r: (r.operator_name or "").lower(), reverse=q.sort_dir == "desc")
    else:
        rows.sort(key=lambda r: _sort_value(r, sort_key), reverse=q.sort_dir != "asc")

    totals = {
        "turnover": sum(r.total_turnover for r in rows),
        "cash_income": sum(r.cash_income for r in rows),
        "non_cash_income": sum(r.non_cash_income for r in rows),
        "debts": sum(r.total_debts for r in rows),
        "advances": sum(r.advances for r in rows),
        "bonuses": sum(r.manual_plus for r in rows),
        "net_cash": sum(r.net_cash for r in rows),
        "net_non_cash": sum(r.net_non_cash for r in rows),
        "net_total": sum(r.net_effect for r in rows),
        "shifts": sum(r.shifts for r in rows),
        "days": sum(r.days for r in rows),
    }

    return {
        "rows": rows,
        "global_balances": balances,
        "totals_filtered": totals,
        "insights": balance_insights(rows, balances),
    }


def balance_insights(rows: list[OperatorBalance], g: dict) -> list[dict]:
    out: list[dict] = []
    if not rows:
        return out

    net = g["net_total_balance"]
    if net < 0:
        out.append(
            {
                "type": "danger",
                "title": "Отрицательное общее сальдо",
                "description": f"Общий баланс отрицательный: {format_money_compact(net)}. Требуется анализ расходов.",
                "metric": format_money_compact(net),
                "trend": "down",
            }
        )
    elif net > 0:
        out.append(
            {
                "type": "success",
                "title": "Положительное сальдо",
                "description": f"Общий баланс положительный: {format_money_compact(net)}. Хороший результат.",
                "metric": format_money_compact(net),
                "trend": "up",
            }
        )

    if g["net_cash_balance"] < 0:
        v = g["net_cash_balance"]
        out.append(
            {
                "type": "warning",
                "title": "Отрицательное сальдо наличных",
                "description": f"Долги превышают наличные поступления на {format_money_compact(abs(v))}",
                "metric": format_money_compact(v),
            }
        )
    if g["net_non_cash_balance"] < 0:
        v = g["net_non_cash_balance"]
        out.append(
            {
                "type": "warning",
                "title": "Отрицательное сальдо безнала",
                "description": f"Авансы превышают безналичные поступления на {format_money_compact(abs(v))}",
                "metric": format_money_compact(v),
            }
        )

    best = max(rows, key=lambda r: r.net_effect)
    if best.net_effect > 0:
        out.append(
            {
                "type": "success",
                "title": "Лучший по сальдо",
                "description": f"{best.operator_name} — чистый остаток {format_money_compact(best.net_effect)}",
                "metric": format_money_compact(best.net_effect),
                "operator_id": best.operator_id,
            }
        )
    worst = min(rows, key=lambda r: r.net_effect)
    if worst.net_effect < 0:
        out.append(
            {
                "type": "danger",
                "title": "Критическое сальдо",
                "description": f"{worst.operator_name} должен {format_money_compact(abs(worst.net_effect))}",
                "metric": format_money_compact(worst.net_effect),
                "operator_id": worst.operator_id,
            }
        )

    projected = g["projected_total_balance"]
    if projected > net * 1.5:
        out.append(
            {
                "type": "opportunity",
                "title": "Оптимистичный прогноз",
                "description": f"При сохранении темпов сальдо вырастет до {format_money_compact(projected)}",
                "metric": format_money_compact(projected),
                "trend": "up",
            }
        )
    return out[:MAX_INSIGHTS]


def export_balances_csv(result: dict, date_from: date, date_to: date) -> bytes:
    g = result["global_balances"]
    lines: list[list] = [
        ["АНАЛИТИКА ОПЕРАТОРОВ - САЛЬДО"],
        ["Сгенерирован", now_local().strftime("%d.%m.%Y, %H:%M:%S")],
        ["Период", f"{date_from} — {date_to}"],
        [],
        ["ГЛОБАЛЬНОЕ САЛЬДО"],
        ["Показатель", "Значение"],
        ["Наличные доход", rnd(g["total_cash_income"])],
        ["Безналичные доход", rnd(g["total_non_cash_income"])],
        ["Всего доход", rnd(g["total_cash_income"] + g["total_non_cash_income"])],
        ["Долги и штрафы", rnd(g["total_debts"])],
        ["Авансы", rnd(g["total_advances"])],
        ["Премии", rnd(g["total_bonuses"])],
        ["САЛЬДО НАЛИЧНЫХ", rnd(g["net_cash_balance"])],
        ["САЛЬДО БЕЗНАЛА", rnd(g["net_non_cash_balance"])],
        ["ОБЩЕЕ САЛЬДО", rnd(g["net_total_balance"])],
        [],
        ["ДЕТАЛЬНАЯ ТАБЛИЦА"],
        [
            "Оператор",
            "Смен",
            "Дней",
            "Выручка",
            "Нал доход",
            "Безнал доход",
            "Долги",
            "Авансы",
            "Премии",
            "САЛЬДО НАЛ",
            "САЛЬДО БЕЗНАЛ",
            "САЛЬДО ОБЩЕЕ",
        ],
    ]
    for op in result["rows"]:
        lines.append(
            [
                op.operator_name,
                op.shifts,
                op.days,
                rnd(op.total_turnover),
                rnd(op.cash_income),
                rnd(op.non_cash_income),
                rnd(op.total_debts),
                rnd(op.advances),
                rnd(op.manual_plus),
                rnd(op.net_cash),
                rnd(op.net_non_cash),
                rnd(op.net_effect),
            ]
        )
    return render_csv(lines)
