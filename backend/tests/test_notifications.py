import json
from datetime import date, datetime

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.db.base import Base

from app.models.company import Company
from app.models.operator import Operator
from app.models.income import Income

from app.services import advice, telegram, weekly_report
from app.services.advice import AdviceError, AdviceInput, EMPTY_ANSWER, NO_ANOMALIES, build_prompt, get_advice
from app.services.telegram import TelegramError, send_message
from app.services.weekly_report import maybe_send_weekly, previous_week, send_weekly

_RealClient = httpx.Client


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


def _mock_http(monkeypatch, handler):
    """Route every httpx.Client created by the code under test through handler."""
    calls = []

    def wrapped(request):
        calls.append(request)
        return handler(request)

    def factory(*args, **kwargs):
        return _RealClient(*args, transport=httpx.MockTransport(wrapped), **kwargs)

    monkeypatch.setattr(httpx, "Client", factory)
    return calls


def _mk_operator(s, name, chat_id=None, role="worker", is_active=True):
    op = Operator(name=name, telegram_chat_id=chat_id, role=role, is_active=is_active)
    s.add(op)
    s.commit()
    s.refresh(op)
    return op


# ---------------- telegram ----------------


def test_send_message_posts_html(monkeypatch):
    monkeypatch.setattr(telegram.settings, "telegram_bot_token", "T0KEN")
    calls = _mock_http(monkeypatch, lambda req: httpx.Response(200, json={"ok": True, "result": {"message_id": 1}}))

    out = send_message("12345", "<b>hi</b>")
    assert out["ok"] is True
    assert len(calls) == 1
    assert calls[0].url.path == "/botT0KEN/sendMessage"
    body = json.loads(calls[0].content)
    assert body == {"chat_id": "12345", "text": "<b>hi</b>", "parse_mode": "HTML", "disable_web_page_preview": True}


def test_send_message_ok_false_raises(monkeypatch):
    monkeypatch.setattr(telegram.settings, "telegram_bot_token", "T0KEN")
    _mock_http(monkeypatch, lambda req: httpx.Response(200, json={"ok": False, "description": "chat not found"}))
    with pytest.raises(TelegramError) as e:
        send_message("1", "x")
    assert "chat not found" in str(e.value)


def test_send_message_network_error(monkeypatch):
    monkeypatch.setattr(telegram.settings, "telegram_bot_token", "T0KEN")

    def boom(req):
        raise httpx.ConnectError("down", request=req)

    _mock_http(monkeypatch, boom)
    with pytest.raises(TelegramError):
        send_message("1", "x")


def test_send_message_without_token(monkeypatch):
    monkeypatch.setattr(telegram.settings, "telegram_bot_token", None)
    with pytest.raises(TelegramError):
        send_message("1", "x")


# ---------------- weekly report ----------------


def test_previous_week():
    assert previous_week(date(2024, 4, 10)) == (date(2024, 4, 1), date(2024, 4, 7))
    assert previous_week(date(2024, 4, 8)) == (date(2024, 4, 1), date(2024, 4, 7))


def test_send_weekly_dry_run(session, monkeypatch):
    arena = Company(name="F16 Arena", code="arena")
    session.add(arena)
    session.commit()
    a = _mk_operator(session, "Алия", chat_id="111")
    _mk_operator(session, "Бек")
    _mk_operator(session, "Маркетолог", chat_id="222", role="marketing")
    _mk_operator(session, "Уволен", chat_id="333", is_active=False)
    session.add(Income(date=date(2024, 4, 2), company_id=arena.id, operator_id=a.id, shift="day", cash_amount=1000))
    session.commit()

    sent = []
    monkeypatch.setattr(weekly_report, "send_message", lambda chat_id, text: sent.append((chat_id, text)))

    out = send_weekly(session, dry_run=True, today=date(2024, 4, 10))
    assert out["period"] == {"date_from": date(2024, 4, 1), "date_to": date(2024, 4, 7)}
    assert out["total_targets"] == 1
    assert out["sent"] == 1
    assert [x["name"] for x in out["skipped_no_chat_id"]] == ["Бек"]
    assert sent == []


def test_send_weekly_collects_errors(session, monkeypatch):
    _mk_operator(session, "Алия", chat_id="111")
    _mk_operator(session, "Дана", chat_id=" 222 ")
    monkeypatch.setattr(weekly_report.settings, "telegram_send_delay_ms", 0)

    sent = []

    def fake_send(chat_id, text):
        if chat_id == "111":
            raise TelegramError("blocked by user")
        sent.append((chat_id, text))

    monkeypatch.setattr(weekly_report, "send_message", fake_send)
    out = send_weekly(session, today=date(2024, 4, 10))
    assert out["sent"] == 1
    assert out["failed"] == 1
    assert out["errors"][0]["error"] == "blocked by user"
    assert sent[0][0] == "222"
    assert sent[0][1].startswith("📌 <b>Недельный отчёт</b>")


def test_maybe_send_weekly_once_per_week(monkeypatch):
    monkeypatch.setattr(weekly_report, "_last_sent_week", None)
    monkeypatch.setattr(weekly_report.settings, "weekly_report_weekday", 0)
    monkeypatch.setattr(weekly_report.settings, "weekly_report_hour", 10)
    calls = []
    monkeypatch.setattr(weekly_report, "send_weekly", lambda s, today=None: calls.append(today) or {"ok": True})

    monkeypatch.setattr(weekly_report, "now_local", lambda: datetime(2024, 4, 8, 9, 0))
    assert maybe_send_weekly(None) is None

    monkeypatch.setattr(weekly_report, "now_local", lambda: datetime(2024, 4, 8, 11, 0))
    assert maybe_send_weekly(None) == {"ok": True}
    assert maybe_send_weekly(None) is None
    assert calls == [date(2024, 4, 8)]


# ---------------- advice ----------------


def _advice_input(**kw):
    data = {
        "avg_income": 200000,
        "avg_expense": 150000,
        "predicted_profit": 1500000,
        "trend": -1200.4,
        "expenses_by_category": {"Аренда": 300000, "Еда": 100000},
        "anomalies": [],
    }
    data.update(kw)
    return AdviceInput(**data)


def test_build_prompt_contains_metrics():
    prompt = build_prompt(_advice_input())
    assert "Средняя выручка в день: 200 000 ₸" in prompt
    assert "Операционная маржа по прибыли: 25.0%" in prompt
    assert "Тренд выручки: падение на 1200 ₸ в день" in prompt
    assert "Крупнейшая категория: Аренда" in prompt
    assert "- Аренда: 300 000 ₸ (75.0%)" in prompt
    assert NO_ANOMALIES in prompt


def test_build_prompt_without_categories():
    prompt = build_prompt(_advice_input(expenses_by_category={}, anomalies=[{"date": "2024-04-01", "type": "income_low", "amount": 5000}]))
    assert "- Нет данных по категориям расходов" in prompt
    assert "- 2024-04-01: income_low (5 000 ₸)" in prompt


def test_get_advice_returns_text(monkeypatch):
    monkeypatch.setattr(advice.settings, "gemini_api_key", "k")
    monkeypatch.setattr(advice.settings, "gemini_model", "gemini-test")
    payload = {"candidates": [{"content": {"parts": [{"text": "Режьте аренду."}]}}]}
    calls = _mock_http(monkeypatch, lambda req: httpx.Response(200, json=payload))

    assert get_advice(_advice_input()) == "Режьте аренду."
    assert calls[0].url.path.endswith("/models/gemini-test:generateContent")
    assert calls[0].url.params["key"] == "k"
    body = json.loads(calls[0].content)
    assert body["generationConfig"] == {"temperature": 0.4, "maxOutputTokens": 700}


def test_get_advice_empty_answer(monkeypatch):
    monkeypatch.setattr(advice.settings, "gemini_api_key", "k")
    _mock_http(monkeypatch, lambda req: httpx.Response(200, json={"candidates": []}))
    assert get_advice(_advice_input()) == EMPTY_ANSWER


def test_get_advice_rate_limited(monkeypatch):
    monkeypatch.setattr(advice.settings, "gemini_api_key", "k")
    _mock_http(
        monkeypatch,
        lambda req: httpx.Response(429, json={"error": {"code": 429, "message": "quota exceeded"}}),
    )
    with pytest.raises(AdviceError) as e:
        get_advice(_advice_input())
    assert e.value.status == 429
    assert str(e.value) == "quota exceeded"


def test_get_advice_disabled(monkeypatch):
    monkeypatch.setattr(advice.settings, "gemini_api_key", None)
    with pytest.raises(AdviceError):
        get_advice(_advice_input())


def test_weekly_loop_runs_ticks_in_a_worker_thread(monkeypatch):
    import asyncio
    import threading

    monkeypatch.setattr(weekly_report.settings, "weekly_report_enabled", True)
    monkeypatch.setattr(weekly_report.settings, "weekly_report_interval_seconds", 3600)

    ticks = []
    monkeypatch.setattr(weekly_report, "run_weekly_tick", lambda: ticks.append(threading.get_ident()))

    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)
        if len(sleeps) > 1:
            raise asyncio.CancelledError()

    monkeypatch.setattr(weekly_report.asyncio, "sleep", fake_sleep)

    with pytest.raises(asyncio.CancelledError):
        asyncio.run(weekly_report.weekly_report_loop())
    assert sleeps == [3, 3600]
    assert len(ticks) == 1
    assert ticks[0] != threading.get_ident()


def test_weekly_loop_survives_failing_tick(monkeypatch):
    import asyncio

    monkeypatch.setattr(weekly_report.settings, "weekly_report_enabled", True)

    def broken():
        raise RuntimeError("db down")

    monkeypatch.setattr(weekly_report, "run_weekly_tick", broken)
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)
        if len(sleeps) > 2:
            raise asyncio.CancelledError()

    monkeypatch.setattr(weekly_report.asyncio, "sleep", fake_sleep)
    with pytest.raises(asyncio.CancelledError):
        asyncio.run(weekly_report.weekly_report_loop())
    assert len(sleeps) == 3
