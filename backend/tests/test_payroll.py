from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.db.base import Base

from app.models.company import Company
from app.models.operator import Operator
from app.models.income import Income
from app.models.debt import Debt
from app.models.salary import OperatorSalaryAdjustment, OperatorSalaryRule

from app.services import payroll
from app.services.payroll import (
    compute_payroll,
    find_operator,
    format_money,
    operator_payroll_detail,
    render_snapshot,
    salary_snapshot,
    shift_pay,
)


@pytest.fixture(scope="session")
def engine():
    eng = create_engine("sqlite+pysqlite:///:memory:", future=True)
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture()
def session(engine, monkeypatch):
    monkeypatch.setattr(payroll.settings, "default_base_per_shift", 8000)
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


def _mk_company(s, name, code=None):
    c = Company(name=name, code=code)
    s.add(c)
    s.commit()
    s.refresh(c)
    return c


def _mk_operator(s, name, short_name=None, chat_id=None):
    op = Operator(name=name, short_name=short_name, telegram_chat_id=chat_id, role="worker", is_active=True)
    s.add(op)
    s.commit()
    s.refresh(op)
    return op


def _mk_rule(s, code, shift, base=None, t1=None, b1=None, t2=None, b2=None):
    r = OperatorSalaryRule(
        company_code=code,
        shift_type=shift,
        base_per_shift=base,
        threshold1_turnover=t1,
        threshold1_bonus=b1,
        threshold2_turnover=t2,
        threshold2_bonus=b2,
        is_active=True,
    )
    s.add(r)
    s.commit()
    return r


def _add_income(s, d, company, operator, shift="day", cash=0, kaspi=0, online=0, card=0):
    s.add(
        Income(
            date=d,
            company_id=company.id,
            operator_id=operator.id if operator else None,
            shift=shift,
            cash_amount=cash,
            kaspi_amount=kaspi,
            online_amount=online,
            card_amount=card,
        )
    )
    s.commit()


def _add_adjustment(s, op, d, kind, amount):
    s.add(OperatorSalaryAdjustment(operator_id=op.id, date=d, kind=kind, amount=amount))
    s.commit()


def _setup(s):
    arena = _mk_company(s, "F16 Arena", "arena")
    other = _mk_company(s, "Кофейня")
    _mk_rule(s, "arena", "day", base=8000, t1=50000, b1=2000, t2=100000, b2=3000)

    a = _mk_operator(s, "Алия Нурланова", short_name="Алия", chat_id="555001")
    b = _mk_operator(s, "Бек")

    # two rows of the same shift collapse into one
    _add_income(s, date(2024, 4, 1), arena, a, cash=30000)
    _add_income(s, date(2024, 4, 1), arena, a, kaspi=30000)
    # no rule for night, falls back to the default base
    _add_income(s, date(2024, 4, 2), arena, a, shift="night", card=120000)
    # not a payroll company
    _add_income(s, date(2024, 4, 2), other, a, cash=99999)

    _add_adjustment(s, a, date(2024, 4, 3), "bonus", 1000)
    _add_adjustment(s, a, date(2024, 4, 3), "fine", 500)
    _add_adjustment(s, a, date(2024, 4, 3), "advance", 2000)
    # b has no shifts in the period, adjustment is ignored by the payroll
    _add_adjustment(s, b, date(2024, 4, 3), "bonus", 7000)
    return a, b


def test_shift_pay_thresholds():
    rule = OperatorSalaryRule(
        company_code="arena", shift_type="day", base_per_shift=5000,
        threshold1_turnover=50000, threshold1_bonus=2000,
        threshold2_turnover=0, threshold2_bonus=9999,
    )
    assert shift_pay(rule, 49999) == (5000, 0.0)
    assert shift_pay(rule, 50000) == (5000, 2000)
    # zero threshold never fires
    assert shift_pay(rule, 1_000_000) == (5000, 2000)


def test_shift_pay_without_rule_uses_default(session):
    assert shift_pay(None, 123456) == (8000.0, 0.0)


def test_compute_payroll(session):
    a, _ = _setup(session)
    out = compute_payroll(session, date(2024, 4, 1), date(2024, 4, 7))

    assert len(out["operators"]) == 1
    row = out["operators"][0]
    assert row["operator_id"] == a.id
    assert row["shifts"] == 2
    assert row["base_salary"] == pytest.approx(16000)
    assert row["bonus_salary"] == pytest.approx(2000)
    assert row["total_turnover"] == pytest.approx(180000)
    assert row["final_salary"] == pytest.approx(18000 + 1000 - 500 - 2000)
    assert out["total_salary"] == pytest.approx(16500)


def test_operator_detail_lists_shifts(session):
    a, _ = _setup(session)
    out = operator_payroll_detail(session, a.id, date(2024, 4, 1), date(2024, 4, 7))
    assert [r["shift"] for r in out["shifts"]] == ["day", "night"]
    assert out["shifts"][0]["salary"] == pytest.approx(10000)
    assert out["avg_turnover"] == pytest.approx(90000)
    assert out["final_salary"] == pytest.approx(16500)


def test_snapshot_includes_week_debts(session):
    a, _ = _setup(session)
    session.add(Debt(operator_id=a.id, amount=1500, week_start=date(2024, 4, 1), status="active"))
    session.add(Debt(operator_id=a.id, amount=800, week_start=date(2024, 4, 1), status="closed"))
    session.commit()

    snap = salary_snapshot(session, a, date(2024, 4, 1), date(2024, 4, 7))
    assert snap["operator_name"] == "Алия"
    assert snap["week_end"] == date(2024, 4, 7)
    assert snap["auto_debts"] == pytest.approx(1500)
    assert snap["final_salary"] == pytest.approx(15000)

    text = render_snapshot(snap, {"name": "Cola <0.5>", "qty": 2, "total": 900})
    assert "<b>Алия</b>" in text
    assert "Cola &lt;0.5&gt;" in text
    assert "Премии" in text
    assert text.endswith(f"К выплате: {format_money(15000)}</b>")


def test_find_operator(session):
    a, b = _setup(session)
    assert find_operator(session, "555001").id == a.id
    assert find_operator(session, f" {b.id} ").id == b.id
    assert find_operator(session, "abc") is None
    assert find_operator(session, "") is None


def test_format_money():
    assert format_money(1234567.4) == "1\u00a0234\u00a0567 ₸"
