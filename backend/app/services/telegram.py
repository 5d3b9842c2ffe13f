from __future__ import annotations

import logging

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)

API_URL = "https://api.telegram.org/bot{token}/sendMessage"


class TelegramError(RuntimeError):
    pass


def telegram_enabled() -> bool:
    return bool(settings.telegram_bot_token)


def send_message(chat_id: str, text: str, *, timeout_s: float = 15.0) -> dict:
    if not telegram_enabled():
        raise TelegramError("telegram bot token is not configured")

    url = API_URL.format(token=settings.telegram_bot_token)
    body = {
        "chat_id": str(chat_id),
        "text": text,
        "parse_mode": "HTML",
        "disable_web_page_preview": True,
    }
    try:
        with httpx.Client(timeout=timeout_s) as client:
            r = client.post(url, json=body)
    except httpx.HTTPError as e:
        raise TelegramError(f"telegram request failed: {e}") from e

    try:
        data = r.json()
    except ValueError:
        data = None

    # Telegram can answer 200 with ok=false
    if not isinstance(data, dict) or data.get("ok") is not True:
        raise TelegramError(f"telegram send failed: {str(data)[:400]}")
    return data
