from __future__ import annotations

import logging
import re
import time
from collections import defaultdict
from dataclasses import dataclass
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.income import Income
from app.services.analytics import num
from app.services.companies import company_map, operator_map, is_extra_company
from app.services.csv_export import plain_number, render_csv

logger = logging.getLogger(__name__)

EXTRA_SUFFIX_RE = re.compile(r"\s*•\s*(PS5|VR)\s*$", re.IGNORECASE)

CSV_HEADER = [
    "Дата",
    "Компания",
    "Оператор",
    "Смена",
    "Зона",
    "Cash",
    "Kaspi POS",
    "Kaspi Online",
    "Card",
    "Итого",
    "Комментарий",
]


@dataclass
class IncomeFilters:
    date_from: date | None = None
    date_to: date | None = None
    company_id: int | None = None
    shift: str | None = None
    # int id, "none" for rows without operator
    operator: int | str | None = None
    pay: str | None = None
    search: str | None = None
    hide_extra: bool = False
    include_extra_in_totals: bool = False


def income_total(r: Income) -> float:
    return num(r.cash_amount) + num(r.kaspi_amount) + num(r.online_amount) + num(r.card_amount)


def fetch_incomes(s: Session, f: IncomeFilters, limit: int | None = None) -> list[Income]:
    limit = limit or settings.incomes_row_limit
    q = select(Income)
    if f.date_from is not None:
        q = q.where(Income.date >= f.date_from)
    if f.date_to is not None:
        q = q.where(Income.date <= f.date_to)
    if f.company_id is not None:
        q = q.where(Income.company_id == f.company_id)
    if f.shift in ("day", "night"):
        q = q.where(Income.shift == f.shift)
    if f.operator == "none":
        q = q.where(Income.operator_id.is_(None))
    elif f.operator not in (None, ""):
        q = q.where(Income.operator_id == int(f.operator))
    if f.pay == "cash":
        q = q.where(Income.cash_amount > 0)
    elif f.pay == "kaspi":
        q = q.where(Income.kaspi_amount > 0)
    elif f.pay == "online":
        q = q.where(Income.online_amount > 0)
    elif f.pay == "card":
        q = q.where(Income.card_amount > 0)
    q = q.order_by(Income.date.desc(), Income.id.desc()).limit(limit)

    t0 = time.perf_counter()
    rows = list(s.execute(q).scalars().all())
    logger.debug("incomes fetched rows=%s limit=%s in %.1fms", len(rows), limit, (time.perf_counter() - t0) * 1000)
    return rows


def _strip_extra_suffix(comment: str | None) -> str | None:
    if not comment:
        return None
    return EXTRA_SUFFIX_RE.sub("", comment).strip() or None


def _row_dict(r: Income, companies, operators) -> dict:
    c = companies.get(r.company_id)
    op = operators.get(r.operator_id) if r.operator_id is not None else None
    return {
        "id": r.id,
        "date": r.date,
        "company_id": r.company_id,
        "company_name": c.name if c else None,
        "operator_id": r.operator_id,
        "operator_name": op.name if op else None,
        "shift": r.shift,
        "zone": r.zone,
        "cash_amount": num(r.cash_amount),
        "kaspi_amount": num(r.kaspi_amount),
        "online_amount": num(r.online_amount),
        "card_amount": num(r.card_amount),
        "total": income_total(r),
        "comment": r.comment,
        "is_extra": is_extra_company(c),
        "merged_count": 1,
    }


def group_extra_rows(rows: list[dict]) -> list[dict]:
    """Merge Extra rows sharing date, shift, operator and company into one row."""
    out: list[dict] = []
    groups: dict[str, dict] = {}
    comments: dict[str, list[str]] = defaultdict(list)

    for r in rows:
        if not r["is_extra"]:
            out.append(r)
            continue
        key = f"{r['date']}|{r['shift']}|{r['operator_id']}|{r['company_id']}"
        g = groups.get(key)
        if g is None:
            g = dict(r)
            g["id"] = r["id"]
            g["zone"] = "Extra"
            g["comment"] = None
            g["merged_count"] = 0
            for k in ("cash_amount", "kaspi_amount", "online_amount", "card_amount", "total"):
                g[k] = 0.0
            groups[key] = g
            out.append(g)
        for k in ("cash_amount", "kaspi_amount", "online_amount", "card_amount", "total"):
            g[k] += r[k]
        g["merged_count"] += 1
        c = _strip_extra_suffix(r["comment"])
        if c and c not in comments[key]:
            comments[key].append(c)

    for key, g in groups.items():
        g["comment"] = " | ".join(comments[key]) or None
        if g["merged_count"] > 1:
            g["id"] = None
    return out


def _matches(r: dict, term: str) -> bool:
    for field in ("comment", "zone", "operator_name", "company_name"):
        v = r.get(field)
        if v and term in v.lower():
            return True
    return False


def _count_in_totals(r: dict, f: IncomeFilters) -> bool:
    if not r["is_extra"]:
        return True
    return f.company_id is not None or f.include_extra_in_totals


def compute_totals(rows: list[dict], f: IncomeFilters, display_count: int) -> dict:
    t = {
        "cash": 0.0,
        "kaspi": 0.0,
        "online": 0.0,
        "card": 0.0,
        "total": 0.0,
        "day_total": 0.0,
        "night_total": 0.0,
    }
    by_operator: dict[str, float] = defaultdict(float)
    by_zone: dict[str, float] = defaultdict(float)

    for r in rows:
        if not _count_in_totals(r, f):
            continue
        t["cash"] += r["cash_amount"]
        t["kaspi"] += r["kaspi_amount"]
        t["online"] += r["online_amount"]
        t["card"] += r["card_amount"]
        t["total"] += r["total"]
        if r["shift"] == "night":
            t["night_total"] += r["total"]
        else:
            t["day_total"] += r["total"]
        by_operator[r["operator_name"] or "Без оператора"] += r["total"]
        by_zone[r["zone"] or "—"] += r["total"]

    t["avg"] = round(t["total"] / display_count) if display_count else 0
    t["top_operator"], t["top_operator_amount"] = _top(by_operator)
    t["top_zone"], t["top_zone_amount"] = _top(by_zone)
    return t


def _top(m: dict[str, float]) -> tuple[str | None, float]:
    if not m:
        return None, 0.0
    k = max(m, key=lambda x: m[x])
    return k, m[k]


def income_journal(s: Session, f: IncomeFilters) -> dict:
    limit = settings.incomes_row_limit
    raw = fetch_incomes(s, f, limit)
    companies = company_map(s)
    operators = operator_map(s)

    rows = [_row_dict(r, companies, operators) for r in raw]
    term = (f.search or "").strip().lower()
    if term:
        rows = [r for r in rows if _matches(r, term)]
    if f.hide_extra:
        rows = [r for r in rows if not r["is_extra"]]

    display = group_extra_rows(rows)
    return {
        "rows": display,
        "totals": compute_totals(rows, f, len(display)),
        "hit_limit": len(raw) >= limit,
    }


def export_incomes_csv(s: Session, f: IncomeFilters) -> bytes:
    journal = income_journal(s, f)
    lines: list[list] = []
    for r in journal["rows"]:
        if not _count_in_totals(r, f):
            continue
        lines.append(
            [
                r["date"].isoformat(),
                r["company_name"] or "",
                r["operator_name"] or "",
                r["shift"],
                r["zone"] or "",
                plain_number(r["cash_amount"]),
                plain_number(r["kaspi_amount"]),
                plain_number(r["online_amount"]),
                plain_number(r["card_amount"]),
                plain_number(r["total"]),
                r["comment"] or "",
            ]
        )
    return render_csv(lines, header=CSV_HEADER)
