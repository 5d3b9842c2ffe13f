from __future__ import annotations

from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.company import Company
from app.models.shift import Shift
from app.services.companies import is_extra_company
from app.utils.dates import monday_of

DAY_NAMES = ("понедельник", "вторник", "среда", "четверг", "пятница", "суббота", "воскресенье")
HIDDEN_CODE = "general"


def _visible(c: Company) -> bool:
    return (c.code or "").lower() != HIDDEN_CODE and (c.name or "").lower() != HIDDEN_CODE


def week_schedule(s: Session, any_day: date) -> dict:
    """Mon..Sun grid per company. Extra points work without a night shift."""
    start = monday_of(any_day)
    end = start + timedelta(days=6)
    days = [start + timedelta(days=i) for i in range(7)]

    companies = [c for c in s.execute(select(Company).order_by(Company.name)).scalars().all() if _visible(c)]
    rows = s.execute(select(Shift).where(Shift.date >= start, Shift.date <= end)).scalars().all()

    cells: dict[int, dict[str, dict]] = {}
    for r in rows:
        cells.setdefault(r.company_id, {}).setdefault(r.date.isoformat(), {})[r.shift_type] = {
            "id": r.id,
            "name": r.operator_name,
        }

    return {
        "week_start": start,
        "week_end": end,
        "days": [{"date": d, "day_name": DAY_NAMES[d.weekday()], "short": d.strftime("%d.%m")} for d in days],
        "companies": [
            {
                "id": c.id,
                "name": c.name,
                "code": c.code,
                "has_night": not is_extra_company(c),
                "cells": cells.get(c.id, {}),
            }
            for c in companies
        ],
    }


def find_slot(s: Session, company_id: int, d: date, shift_type: str) -> Shift | None:
    return s.execute(
        select(Shift).where(Shift.company_id == company_id, Shift.date == d, Shift.shift_type == shift_type)
    ).scalar_one_or_none()


def set_cell(s: Session, company_id: int, d: date, shift_type: str, operator_name: str) -> tuple[str, Shift | None]:
    """Apply an edit of one grid cell.

    Returns the action taken (created, updated, deleted, unchanged) and the row.
    The caller commits.
    """
    row = find_slot(s, company_id, d, shift_type)
    name = (operator_name or "").strip()
    if row is None:
        if not name:
            return "unchanged", None
        row = Shift(company_id=company_id, date=d, shift_type=shift_type, operator_name=name)
        s.add(row)
        return "created", row
    if not name:
        s.delete(row)
        return "deleted", row
    if row.operator_name == name:
        return "unchanged", row
    row.operator_name = name
    return "updated", row
