from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, time

import xlsxwriter
from xlsxwriter.utility import xl_col_to_name
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.expense import Expense
from app.models.income import Income
from app.services.analytics import num, rnd
from app.services.companies import company_map, is_extra_company
from app.services.dashboard import empty_totals, finalize_totals
from app.utils.dates import days_in_month, iso_week_key, monday_of, month_key, normalize_range, prev_period

GROUP_MODES = ("day", "week", "month", "year")
MAX_DUPLICATES = 20
MAX_INSIGHTS = 5


def bucket_key(d: date, mode: str) -> tuple[str, date]:
    """Returns (label, sort date) of the time bucket holding d."""
    if mode == "day":
        return d.isoformat(), d
    if mode == "week":
        return iso_week_key(d), monday_of(d)
    if mode == "month":
        return month_key(d), d.replace(day=1)
    if mode == "year":
        return f"{d.year:04d}", date(d.year, 1, 1)
    raise ValueError(f"unknown group mode: {mode}")


def _empty_bucket(label: str, sort_date: date) -> dict:
    return {
        "label": label,
        "sort_date": sort_date,
        "income": 0.0,
        "expense": 0.0,
        "profit": 0.0,
        "income_cash": 0.0,
        "income_kaspi": 0.0,
        "income_online": 0.0,
        "income_card": 0.0,
        "income_non_cash": 0.0,
        "expense_cash": 0.0,
        "expense_kaspi": 0.0,
    }


def _margin(t: dict) -> float:
    return t["profit"] / t["income_total"] * 100 if t["income_total"] > 0 else 0.0


def report_insights(current: dict, previous: dict, categories: list[dict], anomalies: list[dict]) -> list[dict]:
    out: list[dict] = []

    margin = _margin(current)
    prev_margin = _margin(previous)
    if margin < 15:
        out.append(
            {
                "type": "warning",
                "title": "Низкая маржинальность",
                "description": f"Ваша маржа {margin:.1f}% — ниже рекомендуемых 20-25%. Проверьте расходы.",
                "metric": f"{margin:.1f}%",
                "trend": "up" if margin > prev_margin else "down",
                "action": "Оптимизировать расходы",
            }
        )
    elif margin > 35:
        out.append(
            {
                "type": "success",
                "title": "Отличная маржинальность",
                "description": f"Маржа {margin:.1f}% — выше среднего. Отличная эффективность бизнеса.",
                "metric": f"{margin:.1f}%",
                "trend": "up",
            }
        )

    cash_ratio = current["income_cash"] / current["income_total"] if current["income_total"] > 0 else 0.0
    if cash_ratio < 0.3:
        out.append(
            {
                "type": "opportunity",
                "title": "Высокая доля безнала",
                "description": f"{(1 - cash_ratio) * 100:.0f}% выручки — безнал. Рассмотрите скидки за наличные.",
                "metric": f"{cash_ratio * 100:.0f}% нал",
                "trend": "neutral",
                "action": "Стимулировать наличные",
            }
        )

    if categories and current["expense_total"] > 0:
        top = categories[0]
        share = top["amount"] / current["expense_total"] * 100
        if share > 40:
            out.append(
                {
                    "type": "warning",
                    "title": "Концентрация расходов",
                    "description": f'Категория "{top["category"]}" составляет {share:.0f}% всех расходов. Риск нестабильности.',
                    "metric": f"{share:.0f}%",
                    "trend": "neutral",
                    "action": "Диверсифицировать",
                }
            )

    prev_income = previous["income_total"]
    change = (current["income_total"] - prev_income) / prev_income * 100 if prev_income > 0 else 0.0
    if abs(change) > 20:
        growing = change > 0
        out.append(
            {
                "type": "success" if growing else "warning",
                "title": "Резкий рост выручки" if growing else "Падение выручки",
                "description": (
                    f"Выручка выросла на {change:.1f}% vs прошлый период"
                    if growing
                    else f"Выручка упала на {abs(change):.1f}% — требует внимания"
                ),
                "metric": f"{'+' if growing else ''}{change:.1f}%",
                "trend": "up" if growing else "down",
                "action": "Масштабировать" if growing else "Анализировать причины",
            }
        )

    high = [a for a in anomalies if a["severity"] == "high"]
    if high:
        out.append(
            {
                "type": "warning",
                "title": "Обнаружены аномалии",
                "description": f"Найдено {len(high)} критических отклонений требующих проверки",
                "metric": f"{len(high)} шт",
                "trend": "down",
                "action": "Проверить сейчас",
            }
        )
    return out[:MAX_INSIGHTS]


def month_end_forecast(totals: dict, date_from: date, date_to: date) -> dict | None:
    """Straight-line projection of a month-to-date range to the end of its month.

    Only ranges that start on the 1st and end inside the same month are
    projected. Confidence grows from 60 to 90 as the month fills up.
    """
    if date_from.day != 1 or (date_from.year, date_from.month) != (date_to.year, date_to.month):
        return None
    dim = days_in_month(date_to.year, date_to.month)
    days = (date_to - date_from).days + 1
    remaining = max(0, dim - date_to.day)
    avg_income = totals["income_total"] / days
    avg_profit = totals["profit"] / days
    return {
        "remaining_days": remaining,
        "forecast_income": rnd(totals["income_total"] + avg_income * remaining),
        "forecast_profit": rnd(totals["profit"] + avg_profit * remaining),
        "confidence": min(90.0, 60 + days / dim * 30),
    }


def report_summary(
    s: Session,
    date_from: date,
    date_to: date,
    *,
    company_id: int | None = None,
    include_extra: bool = False,
    group_by: str = "day",
) -> dict:
    if group_by not in GROUP_MODES:
        raise ValueError(f"unknown group mode: {group_by}")
    date_from, date_to = normalize_range(date_from, date_to)
    prev_from, prev_to = prev_period(date_from, date_to)

    companies = company_map(s)
    names = {cid: c.name for cid, c in companies.items()}

    def skip(cid: int) -> bool:
        if company_id is not None or include_extra:
            return False
        return is_extra_company(companies.get(cid))

    inc_stmt = select(Income).where(Income.date >= prev_from, Income.date <= date_to).order_by(Income.date, Income.id)
    exp_stmt = select(Expense).where(Expense.date >= prev_from, Expense.date <= date_to).order_by(Expense.date, Expense.id)
    if company_id is not None:
        inc_stmt = inc_stmt.where(Income.company_id == company_id)
        exp_stmt = exp_stmt.where(Expense.company_id == company_id)
    incomes = s.execute(inc_stmt).scalars().all()
    expenses = s.execute(exp_stmt).scalars().all()

    current = empty_totals()
    previous = empty_totals()
    buckets: dict[str, dict] = {}
    daily_income: dict[date, float] = defaultdict(float)
    daily_expense: dict[date, float] = defaultdict(float)
    by_category: dict[str, float] = defaultdict(float)
    by_company: dict[int, float] = defaultdict(float)
    signatures: dict[tuple, int] = defaultdict(int)
    income_rows: list[Income] = []
    expense_rows: list[Expense] = []

    def bucket(d: date) -> dict:
        label, sort_date = bucket_key(d, group_by)
        if label not in buckets:
            buckets[label] = _empty_bucket(label, sort_date)
        return buckets[label]

    for r in incomes:
        if skip(r.company_id):
            continue
        cash, kaspi = num(r.cash_amount), num(r.kaspi_amount)
        online, card = num(r.online_amount), num(r.card_amount)
        non_cash = kaspi + online + card
        total = cash + non_cash
        if total <= 0:
            continue

        t = current if r.date >= date_from else previous
        t["income_cash"] += cash
        t["income_kaspi"] += kaspi
        t["income_online"] += online
        t["income_card"] += card
        t["income_total"] += total
        if r.date < date_from:
            continue

        income_rows.append(r)
        daily_income[r.date] += total
        b = bucket(r.date)
        b["income"] += total
        b["income_cash"] += cash
        b["income_kaspi"] += kaspi
        b["income_online"] += online
        b["income_card"] += card
        b["income_non_cash"] += non_cash
        by_company[r.company_id] += total
        signatures[(r.date, r.company_id, r.shift, cash, kaspi, online, card)] += 1

    for r in expenses:
        if skip(r.company_id):
            continue
        cash, kaspi = num(r.cash_amount), num(r.kaspi_amount)
        total = cash + kaspi
        if total <= 0:
            continue

        t = current if r.date >= date_from else previous
        t["expense_cash"] += cash
        t["expense_kaspi"] += kaspi
        t["expense_total"] += total
        if r.date < date_from:
            continue

        expense_rows.append(r)
        daily_expense[r.date] += total
        by_category[r.category or "Без категории"] += total
        b = bucket(r.date)
        b["expense"] += total
        b["expense_cash"] += cash
        b["expense_kaspi"] += kaspi

    finalize_totals(current)
    finalize_totals(previous)

    anomalies: list[dict] = []
    avg_income = current["income_total"] / (len(daily_income) or 1)
    avg_expense = current["expense_total"] / (len(daily_expense) or 1)
    for d, amount in daily_income.items():
        if amount > avg_income * 2:
            anomalies.append(
                {"type": "income_spike", "date": d.isoformat(), "severity": "medium", "value": amount,
                 "description": f"Аномальный всплеск выручки: {amount:,.0f} ₸".replace(",", " ")}
            )
    for d, amount in daily_expense.items():
        if amount > avg_expense * 2.5:
            anomalies.append(
                {"type": "expense_spike", "date": d.isoformat(), "severity": "high", "value": amount,
                 "description": f"Аномальный расход: {amount:,.0f} ₸".replace(",", " ")}
            )

    timeline = sorted(buckets.values(), key=lambda b: b["sort_date"])
    for b in timeline:
        b["profit"] = b["income"] - b["expense"]
        if b["profit"] < avg_income * 0.1 and b["income"] > 0:
            anomalies.append(
                {"type": "low_profit", "date": b["label"], "severity": "medium", "value": b["profit"],
                 "description": f"Низкая маржинальность: {b['profit'] / b['income'] * 100:.1f}%"}
            )

    duplicate_hits = 0
    duplicates: list[dict] = []
    for (d, cid, shift, cash, kaspi, online, card), n in signatures.items():
        if n <= 1:
            continue
        duplicate_hits += n - 1
        cname = names.get(cid, "—")
        duplicates.append(
            {"count": n,
             "text": f"{d} • {cname} • {shift} • нал {cash:g} • kaspi {kaspi:g} • online {online:g} • карта {card:g}"}
        )
        anomalies.append(
            {"type": "duplicate", "date": d.isoformat(), "severity": "low", "value": cash + kaspi + online + card,
             "description": f"Дубликат записи ({n} раз)"}
        )
    duplicates.sort(key=lambda x: x["count"], reverse=True)

    categories = [
        {"category": k, "amount": v}
        for k, v in sorted(by_category.items(), key=lambda kv: kv[1], reverse=True)
    ]
    income_by_company = [
        {"company_id": cid, "name": names.get(cid) or "Неизвестно", "amount": v}
        for cid, v in sorted(by_company.items(), key=lambda kv: kv[1], reverse=True)
    ]

    return {
        "date_from": date_from,
        "date_to": date_to,
        "prev_from": prev_from,
        "prev_to": prev_to,
        "group_by": group_by,
        "current": current,
        "previous": previous,
        "timeline": timeline,
        "categories": categories,
        "income_by_company": income_by_company,
        "anomalies": anomalies,
        "duplicate_hits": duplicate_hits,
        "duplicates": duplicates[:MAX_DUPLICATES],
        "insights": report_insights(current, previous, categories, anomalies),
        "forecast": month_end_forecast(current, date_from, date_to),
        "incomes": income_rows,
        "expenses": expense_rows,
        "company_names": names,
    }


def build_report_workbook(report: dict, out_file):
    wb = xlsxwriter.Workbook(out_file, {"in_memory": True})
    base_font = "Calibri"

    meta_label = wb.add_format({"bold": True, "font_name": base_font, "font_size": 11, "font_color": "#334155"})
    meta_value = wb.add_format({"font_name": base_font, "font_size": 11, "font_color": "#0f172a"})
    subtle = wb.add_format({"font_name": base_font, "font_size": 10, "font_color": "#64748b"})
    title = wb.add_format({"bold": True, "font_name": base_font, "font_size": 14, "font_color": "#0f172a"})
    header = wb.add_format(
        {
            "bold": True,
            "font_name": base_font,
            "font_size": 11,
            "bg_color": "#F1F5F9",
            "border": 1,
            "align": "center",
            "valign": "vcenter",
        }
    )
    date_fmt = wb.add_format({"font_name": base_font, "font_size": 11, "num_format": "yyyy-mm-dd", "border": 1})
    money = wb.add_format(
        {"font_name": base_font, "font_size": 11, "num_format": "#,##0.00", "border": 1, "align": "right"}
    )
    pct = wb.add_format({"font_name": base_font, "font_size": 11, "num_format": "0.0", "border": 1, "align": "right"})
    text_cell = wb.add_format({"font_name": base_font, "font_size": 11, "border": 1, "align": "left"})
    total_label = wb.add_format(
        {"bold": True, "font_name": base_font, "font_size": 11, "bg_color": "#F8FAFC", "border": 1, "align": "left"}
    )
    total_money = wb.add_format(
        {
            "bold": True,
            "font_name": base_font,
            "font_size": 11,
            "bg_color": "#F8FAFC",
            "border": 1,
            "num_format": "#,##0.00",
            "align": "right",
        }
    )
    stripe = wb.add_format({"bg_color": "#FBFDFF"})

    rng = f"{report['date_from']} to {report['date_to']}"
    generated = datetime.now().strftime("%Y-%m-%d %H:%M")

    def meta(ws):
        ws.write(0, 0, "Range", meta_label)
        ws.write(0, 1, rng, subtle)
        ws.write(1, 0, "Generated", meta_label)
        ws.write(1, 1, generated, subtle)

    def table(ws, headers: list[str], rows: list[list], formats: list, money_cols: list[int]):
        ws.set_row(3, 18)
        for c, h in enumerate(headers):
            ws.write(3, c, h, header)
        ws.freeze_panes(4, 1)

        r = 4
        for row in rows:
            for c, v in enumerate(row):
                fmt = formats[c]
                if isinstance(v, date):
                    ws.write_datetime(r, c, datetime.combine(v, time.min), fmt)
                elif isinstance(v, (int, float)):
                    ws.write_number(r, c, v, fmt)
                else:
                    ws.write(r, c, v if v is not None else "", fmt)
            r += 1

        last = r - 1
        if last < 4:
            ws.write(4, 0, "No rows for the selected range.", subtle)
            return
        ws.autofilter(3, 0, last, len(headers) - 1)
        ws.conditional_format(
            4, 0, last, len(headers) - 1, {"type": "formula", "criteria": "=MOD(ROW(),2)=0", "format": stripe}
        )
        ws.write(last + 1, 0, "Totals", total_label)
        for c in range(1, len(headers)):
            if c in money_cols:
                col = xl_col_to_name(c)
                ws.write_formula(last + 1, c, f"=SUM({col}5:{col}{last + 1})", total_money)
            else:
                ws.write_blank(last + 1, c, None, total_label)

    # Summary
    ws = wb.add_worksheet("Summary")
    ws.set_column(0, 0, 26)
    ws.set_column(1, 2, 20)
    ws.write(0, 0, "Financial Report", title)
    ws.write(2, 0, "Range", meta_label)
    ws.write(2, 1, rng, subtle)
    ws.write(3, 0, "Previous", meta_label)
    ws.write(3, 1, f"{report['prev_from']} to {report['prev_to']}", subtle)
    ws.write(4, 0, "Generated", meta_label)
    ws.write(4, 1, generated, subtle)

    ws.write(6, 0, "Metric", header)
    ws.write(6, 1, "Current", header)
    ws.write(6, 2, "Previous", header)
    metrics = [
        ("Income", "income_total"),
        ("Income cash", "income_cash"),
        ("Income Kaspi", "income_kaspi"),
        ("Income online", "income_online"),
        ("Income card", "income_card"),
        ("Expense", "expense_total"),
        ("Expense cash", "expense_cash"),
        ("Expense Kaspi", "expense_kaspi"),
        ("Profit", "profit"),
        ("Net cash", "net_cash"),
        ("Net Kaspi", "net_kaspi"),
    ]
    r = 7
    for label, key in metrics:
        ws.write(r, 0, label, text_cell)
        ws.write_number(r, 1, report["current"][key], money)
        ws.write_number(r, 2, report["previous"][key], money)
        r += 1
    ws.write(r, 0, "Margin %", text_cell)
    ws.write_number(r, 1, _margin(report["current"]), pct)
    ws.write_number(r, 2, _margin(report["previous"]), pct)
    r += 2
    ws.write(r, 0, "Duplicate rows", meta_label)
    ws.write(r, 1, report["duplicate_hits"], meta_value)
    r += 1
    ws.write(r, 0, "Anomalies", meta_label)
    ws.write(r, 1, len(report["anomalies"]), meta_value)
    fc = report.get("forecast")
    if fc:
        r += 1
        ws.write(r, 0, "Month-end income", meta_label)
        ws.write_number(r, 1, fc["forecast_income"], money)
        r += 1
        ws.write(r, 0, "Month-end profit", meta_label)
        ws.write_number(r, 1, fc["forecast_profit"], money)
        ws.write(r, 2, f"{fc['confidence']:.0f}% confidence, {fc['remaining_days']} days left", subtle)
    for ins in report["insights"]:
        r += 1
        ws.write(r, 0, ins["title"], meta_label)
        ws.write(r, 1, ins["description"], subtle)

    # Timeline
    ws = wb.add_worksheet("Timeline")
    ws.set_column(0, 0, 14)
    ws.set_column(1, 7, 16)
    meta(ws)
    table(
        ws,
        ["Period", "Income", "Cash", "Kaspi", "Online", "Card", "Expense", "Profit"],
        [
            [b["label"], b["income"], b["income_cash"], b["income_kaspi"], b["income_online"], b["income_card"],
             b["expense"], b["profit"]]
            for b in report["timeline"]
        ],
        [text_cell] + [money] * 7,
        money_cols=list(range(1, 8)),
    )

    # Categories
    ws = wb.add_worksheet("Categories")
    ws.set_column(0, 0, 28)
    ws.set_column(1, 2, 16)
    meta(ws)
    total_exp = report["current"]["expense_total"]
    table(
        ws,
        ["Category", "Amount", "Share %"],
        [[c["category"], c["amount"], c["amount"] / total_exp * 100 if total_exp > 0 else 0.0]
         for c in report["categories"]],
        [text_cell, money, pct],
        money_cols=[1],
    )

    names = report["company_names"]

    # Incomes
    ws = wb.add_worksheet("Incomes")
    ws.set_column(0, 0, 12)
    ws.set_column(1, 1, 22)
    ws.set_column(2, 3, 10)
    ws.set_column(4, 7, 14)
    ws.set_column(8, 8, 32)
    meta(ws)
    table(
        ws,
        ["Date", "Company", "Shift", "Zone", "Cash", "Kaspi", "Online", "Card", "Comment"],
        [
            [r.date, names.get(r.company_id, "—"), r.shift, r.zone or "", num(r.cash_amount), num(r.kaspi_amount),
             num(r.online_amount), num(r.card_amount), r.comment or ""]
            for r in report["incomes"]
        ],
        [date_fmt, text_cell, text_cell, text_cell, money, money, money, money, text_cell],
        money_cols=[4, 5, 6, 7],
    )

    # Expenses
    ws = wb.add_worksheet("Expenses")
    ws.set_column(0, 0, 12)
    ws.set_column(1, 2, 22)
    ws.set_column(3, 4, 14)
    ws.set_column(5, 5, 32)
    meta(ws)
    table(
        ws,
        ["Date", "Company", "Category", "Cash", "Kaspi", "Comment"],
        [
            [r.date, names.get(r.company_id, "—"), r.category or "Без категории", num(r.cash_amount),
             num(r.kaspi_amount), r.comment or ""]
            for r in report["expenses"]
        ],
        [date_fmt, text_cell, text_cell, money, money, text_cell],
        money_cols=[3, 4],
    )

    wb.close()
