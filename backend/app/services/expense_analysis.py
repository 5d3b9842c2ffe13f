from __future__ import annotations

from collections import defaultdict
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.expense import Expense
from app.services.analytics import group_key, num
from app.services.companies import company_map, extra_company_ids

OTHER_CATEGORY = "Прочее"


def expense_analysis(
    s: Session,
    date_from: date,
    date_to: date,
    group_by: str = "day",
    company_id: int | None = None,
    category: str | None = None,
    search: str | None = None,
) -> dict:
    q = (
        select(Expense)
        .where(Expense.date >= date_from, Expense.date <= date_to)
        .order_by(Expense.date.asc(), Expense.id.asc())
        .limit(settings.analytics_row_limit)
    )
    if company_id is not None:
        q = q.where(Expense.company_id == company_id)
    if category:
        q = q.where(Expense.category == category)
    term = (search or "").strip()
    if len(term) > 2:
        q = q.where(Expense.comment.ilike(f"%{term}%"))
    rows = s.execute(q).scalars().all()

    extra_ids = extra_company_ids(company_map(s))
    clean = [r for r in rows if r.company_id not in extra_ids]

    total_sum = 0.0
    by_category: dict[str, float] = defaultdict(float)
    buckets: dict[str, dict] = {}
    daily: dict[date, float] = defaultdict(float)

    for r in clean:
        amount = num(r.cash_amount) + num(r.kaspi_amount)
        total_sum += amount
        cat = r.category or OTHER_CATEGORY
        by_category[cat] += amount

        key = group_key(r.date, group_by)
        b = buckets.get(key)
        if b is None:
            b = buckets[key] = {"key": key, "total": 0.0, "by_category": defaultdict(float)}
        b["total"] += amount
        b["by_category"][cat] += amount

        daily[r.date] += amount

    timeline = [
        {"key": b["key"], "total": b["total"], "by_category": dict(b["by_category"])}
        for b in sorted(buckets.values(), key=lambda x: x["key"])
    ]
    heatmap = [{"date": d, "value": v} for d, v in sorted(daily.items())]
    categories = [{"name": k, "value": v} for k, v in sorted(by_category.items(), key=lambda kv: -kv[1])]

    top_day = None
    for item in heatmap:
        if top_day is None or item["value"] > top_day["value"]:
            top_day = item

    return {
        "group_by": group_by,
        "total": total_sum,
        "timeline": timeline,
        "heatmap": heatmap,
        "max_daily_spend": max([h["value"] for h in heatmap] + [0.0]),
        "categories": categories,
        "avg_spend": total_sum / len(timeline) if timeline else 0.0,
        "top_spender_day": top_day,
        "row_count": len(rows),
        "hit_limit": len(rows) >= settings.analytics_row_limit,
    }
