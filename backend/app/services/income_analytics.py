from __future__ import annotations

from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.income import Income
from app.services.analytics import RunningStats, num
from app.utils.dates import day_type, month_key


def weekday_weekend_stats(s: Session, date_from: date | None, date_to: date | None) -> dict:
    """Weekday (Mon-Thu) vs weekend (Fri-Sun) income per row, per month and overall."""
    q = select(Income).order_by(Income.date.desc(), Income.id.desc())
    if date_from is not None:
        q = q.where(Income.date >= date_from)
    if date_to is not None:
        q = q.where(Income.date <= date_to)
    rows = s.execute(q.limit(settings.analytics_row_limit)).scalars().all()

    months: dict[str, dict[str, RunningStats]] = {}
    overall = {"weekday": RunningStats(), "weekend": RunningStats()}

    for r in rows:
        total = num(r.cash_amount) + num(r.kaspi_amount) + num(r.card_amount)
        if total == 0:
            continue
        kind = day_type(r.date)
        m = months.setdefault(month_key(r.date), {"weekday": RunningStats(), "weekend": RunningStats()})
        m[kind].push(total)
        overall[kind].push(total)

    wd = overall["weekday"].as_dict()
    we = overall["weekend"].as_dict()
    multiplier = round(we["avg"] / wd["avg"], 2) if wd["avg"] > 0 else None

    return {
        "global": {"weekday": wd, "weekend": we, "multiplier": multiplier},
        "months": [
            {"month": k, "weekday": v["weekday"].as_dict(), "weekend": v["weekend"].as_dict()}
            for k, v in sorted(months.items(), key=lambda kv: kv[0], reverse=True)
        ],
        "row_count": len(rows),
    }
