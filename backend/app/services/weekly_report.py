from __future__ import annotations

import asyncio
import logging
import time
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import SessionLocal
from app.models.operator import Operator
from app.services.payroll import render_snapshot, salary_snapshot
from app.services.telegram import send_message
from app.utils.dates import monday_of
from app.utils.timezone import now_local, today_local

logger = logging.getLogger(__name__)

TARGET_ROLES = ("worker", "admin")


def previous_week(today: date) -> tuple[date, date]:
    this_monday = monday_of(today)
    return this_monday - timedelta(days=7), this_monday - timedelta(days=1)


def weekly_message(snapshot_text: str, date_from: date, date_to: date) -> str:
    return f"📌 <b>Недельный отчёт</b>\n📅 Период: <b>{date_from} — {date_to}</b>\n------------------\n" + snapshot_text


def send_weekly(s: Session, dry_run: bool = False, today: date | None = None) -> dict:
    date_from, date_to = previous_week(today or today_local())

    staff = (
        s.execute(select(Operator).where(Operator.is_active.is_(True)).order_by(Operator.id))
        .scalars()
        .all()
    )
    staff = [o for o in staff if o.role in TARGET_ROLES]
    targets = [o for o in staff if (o.telegram_chat_id or "").strip()]
    skipped = [{"id": o.id, "name": o.name} for o in staff if not (o.telegram_chat_id or "").strip()]

    sent = 0
    failed = 0
    errors: list[dict] = []
    delay = max(0, settings.telegram_send_delay_ms) / 1000

    for op in targets:
        try:
            snap = salary_snapshot(s, op, date_from, date_to, week_start=date_from)
            msg = weekly_message(render_snapshot(snap), date_from, date_to)
            if not dry_run:
                send_message(op.telegram_chat_id.strip(), msg)
                time.sleep(delay)
            sent += 1
        except Exception as e:
            logger.exception("weekly report to operator %s failed", op.id)
            failed += 1
            errors.append({"id": op.id, "name": op.name, "error": str(e)[:400]})

    logger.info(
        "weekly report %s..%s dry_run=%s sent=%s failed=%s skipped=%s",
        date_from, date_to, dry_run, sent, failed, len(skipped),
    )
    return {
        "ok": True,
        "dry_run": dry_run,
        "period": {"date_from": date_from, "date_to": date_to},
        "total_targets": len(targets),
        "sent": sent,
        "failed": failed,
        "skipped_no_chat_id": skipped,
        "errors": errors,
    }


_last_sent_week: date | None = None


def maybe_send_weekly(s: Session) -> dict | None:
    global _last_sent_week

    now = now_local()
    week = monday_of(now.date())
    if now.weekday() != settings.weekly_report_weekday or now.hour < settings.weekly_report_hour:
        return None
    if _last_sent_week == week:
        return None

    result = send_weekly(s, today=now.date())
    _last_sent_week = week
    return result


def run_weekly_tick() -> dict | None:
    with SessionLocal() as s:
        return maybe_send_weekly(s)


async def weekly_report_loop() -> None:
    if not settings.weekly_report_enabled:
        return

    interval = int(settings.weekly_report_interval_seconds or 3600)
    await asyncio.sleep(3)

    while True:
        try:
            # DB queries, Bot API posts and the per-message delay all block
            await asyncio.to_thread(run_weekly_tick)
        except Exception:
            logger.exception("weekly report tick failed")

        await asyncio.sleep(max(60, interval))
