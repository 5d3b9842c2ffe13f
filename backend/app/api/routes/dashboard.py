from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import db, current_user, period, request_ticket
from app.services.dashboard import dashboard as build_dashboard
from app.services.request_guard import finish

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("")
def dashboard(
    rng: tuple[date, date] = Depends(period),
    s: Session = Depends(db),
    u=Depends(current_user),
    ticket=Depends(request_ticket("dashboard")),
):
    return finish(ticket, build_dashboard(s, *rng))
