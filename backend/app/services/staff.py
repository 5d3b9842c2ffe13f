from __future__ import annotations

from collections import defaultdict
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.staff import Staff, StaffSalaryPayment
from app.services.analytics import num
from app.utils.dates import month_bounds, month_key


def suggest_slot(d: date) -> str:
    if d.day <= 5:
        return "first"
    if 15 <= d.day <= 20:
        return "second"
    return "other"


def month_summary(s: Session, month: date) -> dict:
    start, end = month_bounds(month.year, month.month)
    staff = s.execute(select(Staff).order_by(Staff.full_name)).scalars().all()
    payments = (
        s.execute(
            select(StaffSalaryPayment)
            .where(StaffSalaryPayment.pay_date >= start, StaffSalaryPayment.pay_date <= end)
            .order_by(StaffSalaryPayment.pay_date, StaffSalaryPayment.id)
        )
        .scalars()
        .all()
    )

    paid_by_staff: dict[int, float] = defaultdict(float)
    for p in payments:
        paid_by_staff[p.staff_id] += num(p.amount)

    rows = []
    total_budget = total_paid = 0.0
    for m in staff:
        salary = num(m.monthly_salary)
        paid = paid_by_staff.get(m.id, 0.0)
        if m.is_active:
            total_budget += salary
            total_paid += paid
        rows.append(
            {
                "id": m.id,
                "full_name": m.full_name,
                "short_name": m.short_name,
                "is_active": m.is_active,
                "monthly_salary": salary,
                "paid": paid,
                "left": salary - paid,
                "percent": min(100.0, paid / salary * 100) if salary > 0 else 0.0,
                "is_overpaid": paid > salary,
            }
        )

    return {
        "month": month_key(start),
        "total_budget": total_budget,
        "total_paid": total_paid,
        "total_left": max(0.0, total_budget - total_paid),
        "progress": total_paid / total_budget * 100 if total_budget > 0 else 0.0,
        "staff": rows,
        "payments": payments,
    }
