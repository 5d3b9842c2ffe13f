from datetime import date

import pytest
from fastapi import HTTPException
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.db.base import Base

from app.models.audit_log import AuditLog
from app.models.company import Company
from app.models.debt import Debt
from app.models.income import Income
from app.models.kpi_plan import KpiPlan
from app.models.operator import Operator
from app.models.user import User

from app.api import deps
from app.api.routes import companies, cron, incomes, kpi, salary, users
from app.schemas.company import CompanyCreate
from app.schemas.income import IncomeCreate, IncomeUpdate
from app.schemas.kpi import KpiPlanUpdate
from app.schemas.salary import SnapshotIn
from app.schemas.user import UserUpdate
from app.services import telegram
from app.services.audit import list_events, log_event

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


def _mk_company(s, name="F16 Arena", code="arena"):
    c = Company(name=name, code=code)
    s.add(c)
    s.commit()
    s.refresh(c)
    return c


def _mk_operator(s, name="Алия", chat_id=None):
    op = Operator(name=name, telegram_chat_id=chat_id, role="worker", is_active=True)
    s.add(op)
    s.commit()
    s.refresh(op)
    return op


def _actions(s):
    return [r.action for r in s.query(AuditLog).order_by(AuditLog.id).all()]


# ---------------- period / guards ----------------


def test_period_resolution(monkeypatch):
    monkeypatch.setattr(deps, "today_local", lambda: date(2024, 5, 15))
    assert deps.period(date_from=None, date_to=None, preset=None) == (date(2024, 5, 1), date(2024, 5, 15))
    assert deps.period(date_from=None, date_to=None, preset="prevMonth") == (date(2024, 4, 1), date(2024, 4, 30))
    assert deps.period(date_from=date(2024, 3, 9), date_to=date(2024, 3, 1), preset=None) == (
        date(2024, 3, 1),
        date(2024, 3, 9),
    )
    assert deps.period(date_from=date(2024, 3, 9), date_to=None, preset=None) == (date(2024, 3, 9), date(2024, 3, 9))
    with pytest.raises(HTTPException) as e:
        deps.period(date_from=None, date_to=None, preset="forever")
    assert e.value.detail == "preset_invalid"


def test_roles():
    with pytest.raises(HTTPException) as e:
        deps.require_admin({"sub": "m", "role": "manager"})
    assert e.value.status_code == 403
    assert deps.require_writer({"sub": "m", "role": "manager"})["role"] == "manager"
    with pytest.raises(HTTPException) as e:
        deps.require_writer({"sub": "v", "role": "viewer"})
    assert e.value.detail == "read_only"


# ---------------- incomes ----------------


def test_income_crud_is_audited(session):
    c = _mk_company(session)
    op = _mk_operator(session)

    r = incomes.create_income(
        body=IncomeCreate(date=date(2024, 4, 1), company_id=c.id, operator_id=op.id, cash_amount=5000, zone=" PS5 "),
        s=session,
        u=ADMIN,
    )
    assert r.zone == "PS5"

    incomes.update_income(
        r.id,
        body=IncomeUpdate(date=date(2024, 4, 1), company_id=c.id, operator_id=op.id, kaspi_amount=7000),
        s=session,
        u=ADMIN,
    )
    assert float(session.get(Income, r.id).kaspi_amount) == 7000
    assert incomes.delete_income(r.id, s=session, u=ADMIN) == {"ok": True}

    assert _actions(session) == ["income.create", "income.update", "income.delete"]
    update = session.query(AuditLog).filter(AuditLog.action == "income.update").one()
    assert update.details["before"]["cash_amount"].startswith("5000")


def test_manager_cannot_change_incomes():
    from fastapi.testclient import TestClient

    from app.core.security import create_access_token
    from app.main import app

    app.dependency_overrides[deps.db] = lambda: None
    try:
        client = TestClient(app)
        headers = {"Authorization": f"Bearer {create_access_token(sub='mgr', role='manager')}"}
        body = {"date": "2024-04-01", "company_id": 1, "cash_amount": 100}
        r = client.put("/incomes/1", json=body, headers=headers)
        assert r.status_code == 403
        assert r.json()["detail"] == "admin_only"
        assert client.delete("/incomes/1", headers=headers).status_code == 403
    finally:
        app.dependency_overrides.clear()


def test_export_filenames(session, monkeypatch):
    from app.api.routes import analytics, expenses
    from app.services.expense_journal import ExpenseFilters
    from app.services.income_journal import IncomeFilters
    from app.services.weekly_balance import BalanceQuery

    monkeypatch.setattr(incomes, "today_local", lambda: date(2024, 4, 15))
    monkeypatch.setattr(expenses, "today_local", lambda: date(2024, 4, 15))

    resp = incomes.export_incomes(f=IncomeFilters(date_from=date(2024, 4, 1)), s=session, u=ADMIN)
    assert resp.headers["content-disposition"] == 'attachment; filename="incomes_2024-04-15.csv"'

    resp = expenses.export_expenses(f=ExpenseFilters(), s=session, u=ADMIN)
    assert resp.headers["content-disposition"] == 'attachment; filename="expenses_2024-04-15.csv"'
    assert resp.media_type.startswith("text/csv")

    q = BalanceQuery(date_from=date(2024, 4, 1), date_to=date(2024, 4, 7))
    resp = analytics.balances_export(q=q, s=session, u=ADMIN)
    assert resp.headers["content-disposition"] == 'attachment; filename="operators_balance_2024-04-01_2024-04-07.csv"'


def test_income_references_are_checked(session):
    c = _mk_company(session)
    with pytest.raises(HTTPException) as e:
        incomes.create_income(
            body=IncomeCreate(date=date(2024, 4, 1), company_id=c.id + 100, cash_amount=1), s=session, u=ADMIN
        )
    assert e.value.detail == "company_not_found"
    with pytest.raises(HTTPException) as e:
        incomes.create_income(
            body=IncomeCreate(date=date(2024, 4, 1), company_id=c.id, operator_id=999, cash_amount=1), s=session, u=ADMIN
        )
    assert e.value.detail == "operator_not_found"


def test_income_amounts_must_be_positive():
    with pytest.raises(ValueError):
        IncomeCreate(date=date(2024, 4, 1), company_id=1)


def test_income_operator_filter_parsing():
    kw = dict(
        date_from=None, date_to=None, company_id=None, shift=None, pay=None, search=None,
        hide_extra=False, include_extra_in_totals=False,
    )
    assert incomes._filters(operator="none", **kw).operator == "none"
    assert incomes._filters(operator="12", **kw).operator == 12
    with pytest.raises(HTTPException) as e:
        incomes._filters(operator="abc", **kw)
    assert e.value.detail == "operator_invalid"


# ---------------- companies / users ----------------


def test_company_in_use_cannot_be_deleted(session):
    out = companies.create_company(body=CompanyCreate(name="F16 Extra", code=" EXTRA "), s=session, u=ADMIN)
    assert out["code"] == "extra"
    assert out["is_extra"] is True

    with pytest.raises(HTTPException) as e:
        companies.create_company(body=CompanyCreate(name="F16 Extra"), s=session, u=ADMIN)
    assert e.value.status_code == 409

    session.add(Income(date=date(2024, 4, 1), company_id=out["id"], shift="day", cash_amount=1))
    session.commit()
    with pytest.raises(HTTPException) as e:
        companies.delete_company(out["id"], s=session, u=ADMIN)
    assert e.value.detail == "company_in_use"


def test_user_cannot_disable_or_delete_self(session):
    me = User(username="tester", password_hash="x", role="admin", is_active=True)
    session.add(me)
    session.commit()

    with pytest.raises(HTTPException) as e:
        users.update_user(me.id, body=UserUpdate(is_active=False), s=session, u=ADMIN)
    assert e.value.detail == "cannot_disable_self"
    with pytest.raises(HTTPException) as e:
        users.delete_user(me.id, s=session, u=ADMIN)
    assert e.value.detail == "cannot_delete_self"


# ---------------- salary ----------------


def test_close_debt_twice(session):
    op = _mk_operator(session)
    d = Debt(operator_id=op.id, amount=1000, week_start=date(2024, 4, 1), status="active")
    session.add(d)
    session.commit()

    assert salary.close_debt(d.id, s=session, u=ADMIN).status == "closed"
    with pytest.raises(HTTPException) as e:
        salary.close_debt(d.id, s=session, u=ADMIN)
    assert e.value.status_code == 409


def test_snapshot_requires_chat_id(session):
    op = _mk_operator(session)
    body = SnapshotIn(operator_id=op.id, date_from=date(2024, 4, 1), date_to=date(2024, 4, 7))
    with pytest.raises(HTTPException) as e:
        salary.snapshot(body=body, s=session, u=ADMIN)
    assert e.value.detail == "operator_has_no_chat_id"

    body = SnapshotIn(operator_id=op.id, date_from=date(2024, 4, 7), date_to=date(2024, 4, 1), send=False)
    out = salary.snapshot(body=body, s=session, u=ADMIN)
    assert out["sent"] is False
    assert out["snapshot"]["date_from"] == date(2024, 4, 1)
    assert "К выплате" in out["text"]


def test_snapshot_send_failure_is_502(session, monkeypatch):
    _mk_operator(session, chat_id="777")

    def fail(chat_id, text):
        raise telegram.TelegramError("boom")

    monkeypatch.setattr(salary, "send_message", fail)
    body = SnapshotIn(operator_id="777", date_from=date(2024, 4, 1), date_to=date(2024, 4, 7))
    with pytest.raises(HTTPException) as e:
        salary.snapshot(body=body, s=session, u=ADMIN)
    assert e.value.status_code == 502
    assert "salary_snapshot.send" not in _actions(session)


def test_snapshot_send_is_audited(session, monkeypatch):
    op = _mk_operator(session, chat_id="777")
    sent = []
    monkeypatch.setattr(salary, "send_message", lambda chat_id, text: sent.append(chat_id))
    body = SnapshotIn(operator_id=str(op.id), date_from=date(2024, 4, 1), date_to=date(2024, 4, 7))
    out = salary.snapshot(body=body, s=session, u=ADMIN)
    assert out["sent"] is True
    assert sent == ["777"]
    assert _actions(session) == ["salary_snapshot.send"]


# ---------------- kpi ----------------


def test_locked_plan_only_accepts_unlock(session):
    p = KpiPlan(period_start=date(2024, 5, 1), period_type="month", owner_role="collective", company_code="arena", is_locked=True)
    session.add(p)
    session.commit()

    with pytest.raises(HTTPException) as e:
        kpi.update_plan(p.id, body=KpiPlanUpdate(turnover_target_month=1), s=session, u=ADMIN)
    assert e.value.detail == "plan_locked"

    out = kpi.update_plan(p.id, body=KpiPlanUpdate(is_locked=False), s=session, u=ADMIN)
    assert out.is_locked is False
    out = kpi.update_plan(p.id, body=KpiPlanUpdate(turnover_target_month=123), s=session, u=ADMIN)
    assert float(out.turnover_target_month) == 123


# ---------------- cron / audit ----------------


def test_cron_secret(monkeypatch):
    monkeypatch.setattr(cron.settings, "cron_secret", "s3cret")
    cron.require_cron(authorization="Bearer s3cret")
    for bad in (None, "Bearer nope", "s3cret"):
        with pytest.raises(HTTPException) as e:
            cron.require_cron(authorization=bad)
        assert e.value.status_code == 401

    monkeypatch.setattr(cron.settings, "cron_secret", None)
    with pytest.raises(HTTPException):
        cron.require_cron(authorization="Bearer ")


def test_cron_dry_run_is_not_audited(session, monkeypatch):
    monkeypatch.setattr(cron, "send_weekly", lambda s, dry_run=False: {
        "ok": True, "dry_run": dry_run, "period": {"date_from": date(2024, 4, 1), "date_to": date(2024, 4, 7)},
        "sent": 0, "failed": 0,
    })
    cron.send_weekly_reports(dry_run=True, s=session)
    assert _actions(session) == []

    cron.send_weekly_reports(dry_run=False, s=session)
    row = session.query(AuditLog).one()
    assert row.username == "system"
    assert row.action == "weekly_report.send"


def test_list_events_filters(session):
    log_event(session, username="a", action="income.create", entity_type="income", entity_id=1)
    log_event(session, username="a", action="income.delete", entity_type="income", entity_id=1)
    log_event(session, username="b", action="debt.close", entity_type="debt", entity_id=2)

    rows, total = list_events(session, action="income.")
    assert total == 2
    assert {r.action for r in rows} == {"income.create", "income.delete"}

    rows, total = list_events(session, username="b")
    assert total == 1 and rows[0].entity_type == "debt"

    rows, total = list_events(session, limit=1, offset=1)
    assert total == 3
    assert len(rows) == 1

    rows, total = list_events(session, entity_type="income", entity_id=1)
    assert total == 2


def test_app_wiring():
    from fastapi.testclient import TestClient

    from app.main import app

    paths = {r.path for r in app.routes}
    for p in (
        "/auth/login",
        "/incomes",
        "/expenses/categories",
        "/salary/snapshot",
        "/analytics/balances/export",
        "/analysis/advice",
        "/dashboard",
        "/reports/xlsx",
        "/kpi/plans/generate",
        "/staff/month",
        "/audit",
        "/expense-categories",
        "/shifts/week",
        "/shifts/cell",
        "/cron/send-weekly",
    ):
        assert p in paths

    client = TestClient(app)
    assert client.get("/health").json() == {"status": "ok"}
    assert client.get("/cron/send-weekly").status_code == 401


def test_login_flow(session):
    from app.api.routes import auth
    from app.core.security import decode_token, hash_password
    from app.schemas.auth import LoginIn

    session.add(User(username="kassa", password_hash=hash_password("secret1"), role="manager", is_active=True))
    session.add(User(username="old", password_hash=hash_password("secret1"), role="viewer", is_active=False))
    session.commit()

    out = auth.login(body=LoginIn(username=" kassa ", password="secret1"), s=session)
    assert out["role"] == "manager"
    claims = decode_token(out["access_token"])
    assert claims["sub"] == "kassa"
    assert auth.me(u=claims) == {"username": "kassa", "role": "manager", "can_write": True}
    assert session.query(AuditLog).filter(AuditLog.action == "auth.login").count() == 1

    with pytest.raises(HTTPException) as e:
        auth.login(body=LoginIn(username="kassa", password="wrong!"), s=session)
    assert e.value.status_code == 401
    with pytest.raises(HTTPException) as e:
        auth.login(body=LoginIn(username="old", password="secret1"), s=session)
    assert e.value.detail == "user_disabled"


def test_superseded_dashboard_call_is_stale(session):
    from app.api.routes import dashboard as dashboard_routes
    from app.services.request_guard import guard

    guard.reset()
    ticket_for = deps.request_ticket("dashboard")
    older = ticket_for(x_client_id="tab-1")
    newer = ticket_for(x_client_id="tab-1")
    other_tab = ticket_for(x_client_id="tab-2")
    rng = (date(2024, 4, 1), date(2024, 4, 7))

    with pytest.raises(HTTPException) as e:
        dashboard_routes.dashboard(rng=rng, s=session, u=ADMIN, ticket=older)
    assert e.value.status_code == 409
    assert e.value.detail == "stale_request"

    assert dashboard_routes.dashboard(rng=rng, s=session, u=ADMIN, ticket=newer)["date_from"] == date(2024, 4, 1)
    assert dashboard_routes.dashboard(rng=rng, s=session, u=ADMIN, ticket=other_tab)["date_to"] == date(2024, 4, 7)
    assert len(guard) == 0
    assert ticket_for(x_client_id=None) is None
