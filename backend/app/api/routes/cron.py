import secrets

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy.orm import Session

from app.api.deps import db
from app.core.config import settings
from app.services.audit import log_event
from app.services.weekly_report import send_weekly

router = APIRouter(prefix="/cron", tags=["cron"])


def require_cron(authorization: str | None = Header(default=None)):
    expected = settings.cron_secret
    if not expected or not secrets.compare_digest(authorization or "", f"Bearer {expected}"):
        raise HTTPException(status_code=401, detail="unauthorized")


@router.api_route("/send-weekly", methods=["GET", "POST"], dependencies=[Depends(require_cron)])
def send_weekly_reports(dry_run: bool = Query(default=False), s: Session = Depends(db)):
    result = send_weekly(s, dry_run=dry_run)
    if not dry_run:
        log_event(
            s,
            username=None,
            action="weekly_report.send",
            entity_type="operator",
            details={
                "date_from": str(result["period"]["date_from"]),
                "date_to": str(result["period"]["date_to"]),
                "sent": result["sent"],
                "failed": result["failed"],
            },
        )
    return result
