import pytest
from fastapi import HTTPException

from app.services.csv_export import escape_csv, plain_number, render_csv, safe_filename
from app.services.request_guard import RequestGuard, StaleRequest, finish, guard


def test_only_latest_ticket_is_current():
    g = RequestGuard()
    first = g.begin("income")
    second = g.begin("income")
    other = g.begin("expenses")

    assert not g.is_current(first)
    assert g.is_current(second)
    assert g.is_current(other)
    with pytest.raises(StaleRequest):
        g.ensure_current(first)
    g.ensure_current(None)


def test_finish_rejects_superseded_ticket():
    guard.reset()
    old = guard.begin("dashboard:a")
    new = guard.begin("dashboard:a")

    assert finish(new, {"x": 1}) == {"x": 1}
    with pytest.raises(HTTPException) as e:
        finish(old, {"x": 0})
    assert e.value.status_code == 409
    assert e.value.detail == "stale_request"
    assert finish(None, [1]) == [1]


def test_escape_csv():
    assert escape_csv(None) == ""
    assert escape_csv("plain") == "plain"
    assert escape_csv("a;b") == '"a;b"'
    assert escape_csv('say "hi"') == '"say ""hi"""'
    assert escape_csv("two\nlines") == '"two\nlines"'


def test_render_csv_has_bom_and_semicolons():
    payload = render_csv([["Дата", "Сумма"], ["2024-01-01", 1500]])
    text = payload.decode("utf-8")
    assert text.startswith("\ufeff")
    assert text[1:].split("\n") == ["Дата;Сумма", "2024-01-01;1500"]


def test_safe_filename_and_plain_number():
    assert safe_filename("  отчёт за май.csv ") == ".csv"
    assert safe_filename("income report 2024.csv") == "income_report_2024.csv"
    assert safe_filename("") == "export"
    assert plain_number(1500.0) == "1500"
    assert plain_number(12.5) == "12.5"
    assert plain_number(None) == "0"


def test_finished_keys_are_released():
    g = RequestGuard()
    t = g.begin("tab-1:dashboard")
    assert len(g) == 1
    g.release(t)
    assert len(g) == 0

    old = g.begin("tab-1:dashboard")
    new = g.begin("tab-1:dashboard")
    g.release(old)
    assert len(g) == 1
    g.release(new)

    # a key reused after release never revives an older ticket
    again = g.begin("tab-1:dashboard")
    assert not g.is_current(old)
    assert g.is_current(again)


def test_guard_is_bounded():
    g = RequestGuard(max_keys=100)
    first = g.begin("client-0:dashboard")
    for i in range(1, 10_000):
        g.begin(f"client-{i}:dashboard")
    assert len(g) == 100
    assert not g.is_current(first)


def test_finish_releases_the_key():
    guard.reset()
    t = guard.begin("tab-9:reports")
    finish(t, {})
    assert len(guard) == 0


def test_render_csv_quoted_columns():
    payload = render_csv(
        [["2024-01-01", "a;b", ""], ["2024-01-02", "c", 'он сказал "да"']],
        header=["Дата", "Компания", "Комментарий"],
        quoted_columns=(2,),
    )
    lines = payload.decode("utf-8").lstrip("\ufeff").split("\n")
    assert lines == [
        "Дата;Компания;Комментарий",
        '2024-01-01;"a;b";""',
        '2024-01-02;c;"он сказал ""да"""',
    ]
