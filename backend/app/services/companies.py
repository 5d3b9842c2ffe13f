from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.company import Company
from app.models.operator import Operator

PAYROLL_CODES = ("arena", "ramen", "extra")


def is_extra_company(c: Company | None) -> bool:
    if c is None:
        return False
    code = (c.code or "").strip().lower()
    name = (c.name or "").lower()
    return code == "extra" or "extra" in name


def company_map(s: Session) -> dict[int, Company]:
    return {c.id: c for c in s.execute(select(Company)).scalars().all()}


def operator_map(s: Session) -> dict[int, Operator]:
    return {o.id: o for o in s.execute(select(Operator)).scalars().all()}


def extra_company_ids(companies: dict[int, Company]) -> set[int]:
    return {cid for cid, c in companies.items() if is_extra_company(c)}


def company_code(c: Company | None) -> str | None:
    if c is None or not c.code:
        return None
    return c.code.strip().lower()


def operator_display_name(op: Operator | None, fallback: str = "Без имени") -> str:
    if op is None:
        return fallback
    return (op.short_name or "").strip() or (op.name or "").strip() or fallback
