from datetime import date

import pytest
from fastapi import HTTPException
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.db.base import Base

from app.models.staff import Staff, StaffSalaryPayment
from app.models.audit_log import AuditLog

from app.api.routes import staff as staff_routes
from app.schemas.staff import PaymentCreate
from app.services.staff import month_summary, suggest_slot

ADMIN = {"sub": "tester", "role": "admin"}


@pytest.fixture(scope="session")
def engine():
    eng = create_engine("sqlite+pysqlite:///:memory:", future=True)
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture()
def session(engine):
    connection = engine.connect()
    trans = connection.begin()
    Session = sessionmaker(bind=connection, autoflush=False, autocommit=False, future=True)
    s = Session()
    try:
        yield s
    finally:
        s.close()
        trans.rollback()
        connection.close()


def _mk_staff(s, full_name, salary, is_active=True):
    m = Staff(full_name=full_name, monthly_salary=salary, is_active=is_active, role="other")
    s.add(m)
    s.commit()
    s.refresh(m)
    return m


def _add_payment(s, m, d, amount, slot="first"):
    s.add(StaffSalaryPayment(staff_id=m.id, pay_date=d, amount=amount, slot=slot))
    s.commit()


@pytest.mark.parametrize(
    "day,slot",
    [(1, "first"), (5, "first"), (6, "other"), (15, "second"), (20, "second"), (21, "other"), (31, "other")],
)
def test_suggest_slot(day, slot):
    assert suggest_slot(date(2024, 1, day)) == slot


def test_month_summary(session):
    a = _mk_staff(session, "Асель", 100000)
    b = _mk_staff(session, "Болат", 50000, is_active=False)
    c = _mk_staff(session, "Вика", 80000)

    _add_payment(session, a, date(2024, 4, 3), 60000)
    _add_payment(session, a, date(2024, 4, 18), 50000, slot="second")
    _add_payment(session, b, date(2024, 4, 3), 10000)
    _add_payment(session, c, date(2024, 4, 4), 20000)
    _add_payment(session, c, date(2024, 5, 2), 20000)

    out = month_summary(session, date(2024, 4, 17))
    assert out["month"] == "2024-04"
    # inactive staff stay out of the totals
    assert out["total_budget"] == pytest.approx(180000)
    assert out["total_paid"] == pytest.approx(130000)
    assert out["total_left"] == pytest.approx(50000)
    assert out["progress"] == pytest.approx(130000 / 180000 * 100)
    assert len(out["payments"]) == 4

    rows = {r["full_name"]: r for r in out["staff"]}
    assert list(rows) == ["Асель", "Болат", "Вика"]
    assert rows["Асель"]["is_overpaid"] is True
    assert rows["Асель"]["percent"] == 100.0
    assert rows["Асель"]["left"] == pytest.approx(-10000)
    assert rows["Вика"]["percent"] == pytest.approx(25.0)


def test_month_summary_empty(session):
    out = month_summary(session, date(2024, 4, 1))
    assert out["total_left"] == 0.0
    assert out["progress"] == 0.0
    assert out["staff"] == []


def test_payment_slot_defaults_from_date(session):
    a = _mk_staff(session, "Асель", 100000)
    p = staff_routes.create_payment(
        body=PaymentCreate(staff_id=a.id, pay_date=date(2024, 4, 16), amount=40000),
        s=session,
        u=ADMIN,
    )
    assert p.slot == "second"

    p = staff_routes.create_payment(
        body=PaymentCreate(staff_id=a.id, pay_date=date(2024, 4, 16), amount=1000, slot="other", comment="  "),
        s=session,
        u=ADMIN,
    )
    assert p.slot == "other"
    assert p.comment is None

    logs = session.query(AuditLog).filter(AuditLog.action == "staff_payment.create").all()
    assert len(logs) == 2


def test_payment_for_missing_staff(session):
    with pytest.raises(HTTPException) as e:
        staff_routes.create_payment(
            body=PaymentCreate(staff_id=999, pay_date=date(2024, 4, 1), amount=1), s=session, u=ADMIN
        )
    assert e.value.status_code == 404


def test_toggle_staff(session):
    a = _mk_staff(session, "Асель", 100000)
    assert staff_routes.toggle_staff(a.id, s=session, u=ADMIN).is_active is False
    assert staff_routes.toggle_staff(a.id, s=session, u=ADMIN).is_active is True
