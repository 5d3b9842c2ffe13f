from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.db.base import Base

# models must be imported before create_all
from app.models.company import Company
from app.models.operator import Operator
from app.models.income import Income
from app.models.expense import Expense

from app.services import income_journal as ij
from app.services.expense_journal import (
    ExpenseFilters,
    expense_journal,
    export_expenses_csv,
    list_categories,
)
from app.services.income_journal import (
    IncomeFilters,
    export_incomes_csv,
    group_extra_rows,
    income_journal,
)


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


def _mk_company(s, name, code=None):
    c = Company(name=name, code=code)
    s.add(c)
    s.commit()
    s.refresh(c)
    return c


def _mk_operator(s, name, short_name=None):
    op = Operator(name=name, short_name=short_name, role="worker", is_active=True)
    s.add(op)
    s.commit()
    s.refresh(op)
    return op


def _add_income(s, d, company, operator=None, shift="day", zone=None, cash=0, kaspi=0, online=0, card=0, comment=None):
    r = Income(
        date=d,
        company_id=company.id,
        operator_id=operator.id if operator else None,
        shift=shift,
        zone=zone,
        cash_amount=cash,
        kaspi_amount=kaspi,
        online_amount=online,
        card_amount=card,
        comment=comment,
    )
    s.add(r)
    s.commit()
    return r


def _add_expense(s, d, company, category=None, cash=0, kaspi=0, comment=None):
    r = Expense(date=d, company_id=company.id, category=category, cash_amount=cash, kaspi_amount=kaspi, comment=comment)
    s.add(r)
    s.commit()
    return r


def test_extra_rows_are_merged_and_kept_out_of_totals(session):
    arena = _mk_company(session, "F16 Arena", "arena")
    extra = _mk_company(session, "F16 Extra", "extra")
    op = _mk_operator(session, "Айдар")
    d = date(2024, 4, 2)

    _add_income(session, d, arena, op, cash=10000, kaspi=5000)
    _add_income(session, d, extra, op, zone="PS5", cash=3000, comment="вечер • PS5")
    _add_income(session, d, extra, op, zone="VR", kaspi=2000, comment="вечер • VR")

    out = income_journal(session, IncomeFilters(date_from=d, date_to=d))
    rows = out["rows"]
    assert len(rows) == 2

    merged = [r for r in rows if r["is_extra"]][0]
    assert merged["merged_count"] == 2
    assert merged["id"] is None
    assert merged["zone"] == "Extra"
    assert merged["comment"] == "вечер"
    assert merged["total"] == pytest.approx(5000)

    # extra is not counted without a company filter
    assert out["totals"]["total"] == pytest.approx(15000)
    assert out["totals"]["top_operator"] == "Айдар"
    assert out["hit_limit"] is False


def test_extra_counted_when_company_selected_or_requested(session):
    extra = _mk_company(session, "F16 Extra", "extra")
    d = date(2024, 4, 3)
    _add_income(session, d, extra, cash=4000)

    by_company = income_journal(session, IncomeFilters(company_id=extra.id))
    assert by_company["totals"]["total"] == pytest.approx(4000)

    included = income_journal(session, IncomeFilters(include_extra_in_totals=True))
    assert included["totals"]["cash"] == pytest.approx(4000)

    hidden = income_journal(session, IncomeFilters(hide_extra=True))
    assert hidden["rows"] == []


def test_single_extra_row_keeps_its_id():
    rows = [
        {
            "id": 7,
            "date": date(2024, 1, 1),
            "shift": "day",
            "operator_id": None,
            "company_id": 3,
            "zone": "PS5",
            "comment": None,
            "is_extra": True,
            "cash_amount": 1.0,
            "kaspi_amount": 0.0,
            "online_amount": 0.0,
            "card_amount": 0.0,
            "total": 1.0,
            "merged_count": 1,
        }
    ]
    out = group_extra_rows(rows)
    assert out[0]["id"] == 7
    assert out[0]["merged_count"] == 1


def test_income_filters_and_search(session):
    arena = _mk_company(session, "F16 Arena", "arena")
    op = _mk_operator(session, "Дана")
    d = date(2024, 4, 5)
    _add_income(session, d, arena, op, shift="night", cash=100, comment="турнир")
    _add_income(session, d, arena, None, shift="day", card=200)

    assert len(income_journal(session, IncomeFilters(shift="night"))["rows"]) == 1
    assert len(income_journal(session, IncomeFilters(operator="none"))["rows"]) == 1
    assert len(income_journal(session, IncomeFilters(operator=op.id))["rows"]) == 1
    assert len(income_journal(session, IncomeFilters(pay="card"))["rows"]) == 1
    assert len(income_journal(session, IncomeFilters(search="ТУРНИР"))["rows"]) == 1

    totals = income_journal(session, IncomeFilters())["totals"]
    assert totals["night_total"] == pytest.approx(100)
    assert totals["day_total"] == pytest.approx(200)
    assert totals["avg"] == 150


def test_income_row_limit_is_reported(session, monkeypatch):
    arena = _mk_company(session, "F16 Arena", "arena")
    for i in range(3):
        _add_income(session, date(2024, 4, 1 + i), arena, cash=10)
    monkeypatch.setattr(ij.settings, "incomes_row_limit", 2)

    out = income_journal(session, IncomeFilters())
    assert len(out["rows"]) == 2
    assert out["hit_limit"] is True
    # newest first
    assert out["rows"][0]["date"] == date(2024, 4, 3)


def test_income_csv_export(session):
    arena = _mk_company(session, "F16 Arena", "arena")
    _add_income(session, date(2024, 4, 1), arena, cash=1500, comment="a;b")

    text = export_incomes_csv(session, IncomeFilters()).decode("utf-8")
    lines = text.lstrip("\ufeff").split("\n")
    assert lines[0].startswith("Дата;Компания;Оператор")
    assert lines[1].startswith("2024-04-01;F16 Arena;;day;")
    assert lines[1].endswith(';1500;"a;b"')


def test_expense_journal_totals_and_categories(session):
    arena = _mk_company(session, "F16 Arena", "arena")
    extra = _mk_company(session, "F16 Extra", "extra")
    d = date(2024, 4, 2)
    _add_expense(session, d, arena, "Аренда", cash=50000)
    _add_expense(session, d, arena, "Еда", kaspi=7000, comment="обед")
    _add_expense(session, d, arena, None, cash=1000)
    _add_expense(session, d, extra, "Аренда", cash=99999)

    out = expense_journal(session, ExpenseFilters())
    assert len(out["rows"]) == 4
    assert out["totals"]["cash"] == pytest.approx(51000)
    assert out["totals"]["kaspi"] == pytest.approx(7000)
    assert out["totals"]["top_category"] == "Аренда"
    assert out["totals"]["top_category_amount"] == pytest.approx(50000)

    assert list_categories(session) == ["Аренда", "Еда"]
    assert len(expense_journal(session, ExpenseFilters(search="обед"))["rows"]) == 1
    assert len(expense_journal(session, ExpenseFilters(pay="kaspi"))["rows"]) == 1


def test_expense_csv_quotes_comments(session):
    arena = _mk_company(session, "F16 Arena", "arena")
    _add_expense(session, date(2024, 4, 2), arena, "Еда", cash=12.5, comment="кофе")

    lines = export_expenses_csv(session, ExpenseFilters()).decode("utf-8").lstrip("\ufeff").split("\n")
    assert lines[0] == "Дата;Компания;Категория;Cash;Kaspi;Итого;Комментарий"
    assert lines[1] == '2024-04-02;F16 Arena;Еда;12.5;0;12.5;"кофе"'
