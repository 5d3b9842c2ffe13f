from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api.deps import db, current_user, request_ticket
from app.services.advice import AdviceError, AdviceInput, advice_enabled, get_advice
from app.services.forecast import ai_analysis, expenses_by_category
from app.services.request_guard import finish
from app.utils.timezone import today_local

router = APIRouter(prefix="/analysis", tags=["analysis"])

CATEGORY_WINDOW_DAYS = 30


@router.get("")
def analysis(
    s: Session = Depends(db),
    u=Depends(current_user),
    ticket=Depends(request_ticket("analysis")),
):
    result = ai_analysis(s)
    if result is None:
        raise HTTPException(status_code=404, detail="no_data")
    return finish(ticket, result)


@router.post("/advice")
def advice(s: Session = Depends(db), u=Depends(current_user)):
    if not advice_enabled():
        raise HTTPException(status_code=503, detail="advice_disabled")
    result = ai_analysis(s)
    if result is None:
        raise HTTPException(status_code=404, detail="no_data")

    today = today_local()
    data = AdviceInput(
        avg_income=result["avg_income"],
        avg_expense=result["avg_expense"],
        predicted_profit=result["total_forecast_profit"],
        trend=result["trend"],
        expenses_by_category=expenses_by_category(s, today - timedelta(days=CATEGORY_WINDOW_DAYS - 1), today),
        anomalies=[
            {"date": a["date"].isoformat(), "type": a["type"], "amount": a["amount"]} for a in result["anomalies"]
        ],
    )
    try:
        text = get_advice(data)
    except AdviceError as e:
        if e.status == 429:
            raise HTTPException(status_code=429, detail="advice_rate_limited") from e
        raise HTTPException(status_code=502, detail="advice_failed") from e
    return {"advice": text}
