from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx

from app.core.config import settings
from app.services.analytics import rnd

logger = logging.getLogger(__name__)

GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
NO_ANOMALIES = "Аномалий не обнаружено. Выручка и расходы ведут себя предсказуемо."
EMPTY_ANSWER = "ИИ не смог сформировать осмысленный ответ. Попробуйте позже."


class AdviceError(RuntimeError):
    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


@dataclass
class AdviceInput:
    avg_income: float
    avg_expense: float
    predicted_profit: float
    trend: float
    expenses_by_category: dict[str, float] = field(default_factory=dict)
    # [{"date": ..., "type": ..., "amount": ...}]
    anomalies: list[dict] = field(default_factory=list)


def ru_amount(x: float) -> str:
    return f"{rnd(x):,}".replace(",", " ")


def trend_word(trend: float) -> str:
    if trend > 0:
        return "рост"
    if trend < 0:
        return "падение"
    return "боковик"


def build_prompt(data: AdviceInput) -> str:
    cats = sorted((data.expenses_by_category or {}).items(), key=lambda kv: kv[1], reverse=True)
    total = sum(v for _, v in cats)
    top_name, top_amount = cats[0] if cats else ("—", 0.0)
    top_name = top_name or "—"
    top_share = top_amount / total * 100 if total > 0 else 0.0

    daily_profit = data.avg_income - data.avg_expense
    margin = daily_profit / data.avg_income * 100 if data.avg_income > 0 else 0.0
    expense_share = data.avg_expense / data.avg_income * 100 if data.avg_income > 0 else 0.0

    expenses_text = "\n".join(
        f"- {cat}: {ru_amount(amount)} ₸ ({(amount / total * 100) if total > 0 else 0:.1f}%)" for cat, amount in cats
    )
    if data.anomalies:
        anomalies_text = "\n".join(f"- {a['date']}: {a['type']} ({ru_amount(a['amount'])} ₸)" for a in data.anomalies)
    else:
        anomalies_text = NO_ANOMALIES

    return f"""
РОЛЬ:
Ты — жёсткий, прагматичный финансовый директор и антикризисный консультант
с 30–40 годами опыта в крупных корпорациях. Несколько компаний ты вытянул
из предбанкротного состояния. Ты не боишься говорить неприятную правду.
Ты не пишешь как студент, ты пишешь как человек, который отвечает за деньги.

НИКАКИХ фраз вида "как ИИ", никаких извинений, никаких рассуждений о себе.
Только сухой профессиональный анализ и конкретные управленческие выводы.

ОТРАСЛЕВЫЕ БЕНЧМАРКИ (компьютерные клубы / офлайн-развлечения):
- Целевая операционная маржа (после основных расходов): 20–30%+.
- ФОТ (зарплаты): до 30% от выручки.
- Аренда: до 15–20% от выручки.
- Маркетинг: 5–10% от выручки.
Если фактические значения выше — это уже зона риска.

ВХОДНЫЕ ДАННЫЕ (за последние ~30 дней, агрегированные):

1) ФИНАНСОВЫЕ ПОКАЗАТЕЛИ:
- Средняя выручка в день: {ru_amount(data.avg_income)} ₸
- Средний расход в день: {ru_amount(data.avg_expense)} ₸
- Средняя дневная прибыль: {ru_amount(daily_profit)} ₸
- Операционная маржа по прибыли: {margin:.1f}%
- Доля расходов от выручки: {expense_share:.1f}%
- Прогноз прибыли на следующий месяц: {ru_amount(data.predicted_profit)} ₸
- Тренд выручки: {trend_word(data.trend)} на {abs(data.trend):.0f} ₸ в день

2) СТРУКТУРА РАСХОДОВ:
- Всего расходов по категориям: {ru_amount(total)} ₸
- Крупнейшая категория: {top_name} — {ru_amount(top_amount)} ₸ ({top_share:.1f}% от всех затрат)
Детализация по категориям:
{expenses_text or '- Нет данных по категориям расходов'}

3) АНОМАЛИИ (выбросы по дням):
{anomalies_text}

ЗАДАЧА:
Проведи полноценный управленческий разбор: насколько бизнес сейчас жизнеспособен,
где он теряет деньги, и какие управленческие решения надо принимать.

ФОРМАТ ОТВЕТА (строго по структуре, Markdown):

1️⃣ **Краткий диагноз (1–3 жёстких предложения)**
Опиши состояние бизнеса так, как сказал бы акционерам: без смягчений и красивых формулировок.

2️⃣ **Финансовый анализ (по пунктам)**
Разбери по подпунктам:
- **Прибыльность и маржа.** Сравни текущую маржу и структуру расходов с бенчмарками, дай вывод: норма / погранично / плохо.
- **Структура затрат.** Отдельно прокомментируй крупнейшую категорию расходов ({top_name}) — это нормально для такого бизнеса или раздуто.
- **Динамика (тренд).** Что означает текущий тренд выручки и прибыли — ускорение, торможение, стагнация.
- **Устойчивость.** Насколько бизнес устойчив к просадке выручки на 20–30% (ответ качественный, но с опорой на цифры).

3️⃣ **Конкретные управленческие решения на 30 дней**
Дай список из 4–7 конкретных действий:
- минимум 2 пункта по **сокращению или переформатированию расходов** (но без банального "сократить все расходы");
- минимум 2 пункта по **росту выручки** (цены, акции, сегменты клиентов, работа с чек-моделями, загрузка ночи/дня);
- отделяй то, что даёт быстрый эффект (до 30 дней), от того, что работает как среднесрочная стратегия (2–3 месяца).

Каждый пункт должен быть в формате:
**[Суть действия] — [механика] — [ожидаемый эффект в деньгах / марже]**.

4️⃣ **Риски и аномалии**
Кратко оцени:
- какие из аномалий выглядят разовыми (объяснимыми),
- какие похожи на системную проблему (например, перекос в определённые дни или категории),
- к чему это приведёт, если ничего не делать.

5️⃣ **Что контролировать еженедельно (доска метрик)**
Дай список 5–7 ключевых метрик, которые владелец должен смотреть каждую неделю
(прям по названиям метрик: "Маржа по клубу, %", "Выручка по сменам день/ночь", и т.д.).

ТРЕБОВАНИЯ К СТИЛЮ:
- Пиши как опытный финансовый директор, а не как блогер и не как студент.
- Минимум эмоций, максимум сути. Допускаются жёсткие формулировки.
- Никаких длинных вступлений, сразу к делу.
- Не пересказывай входные данные — работай с выводами и управленческими решениями.
"""


def advice_enabled() -> bool:
    return bool(settings.gemini_api_key)


def get_advice(data: AdviceInput, *, timeout_s: float = 30.0) -> str:
    if not advice_enabled():
        raise AdviceError("gemini api key is not configured")

    body = {
        "contents": [{"parts": [{"text": build_prompt(data)}]}],
        "generationConfig": {"temperature": 0.4, "maxOutputTokens": 700},
    }
    url = GEMINI_URL.format(model=settings.gemini_model)

    try:
        with httpx.Client(timeout=timeout_s) as client:
            r = client.post(url, params={"key": settings.gemini_api_key}, json=body)
    except httpx.HTTPError as e:
        logger.exception("gemini request failed")
        raise AdviceError(f"connection error: {e}") from e

    try:
        payload = r.json()
    except ValueError:
        payload = {}

    err = payload.get("error") if isinstance(payload, dict) else None
    if r.status_code != 200 or err:
        status = (err or {}).get("code") or r.status_code
        logger.error("gemini error status=%s body=%s", status, payload)
        raise AdviceError((err or {}).get("message") or "unknown error", status=status)

    try:
        text = payload["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        text = None
    return text or EMPTY_ANSWER
