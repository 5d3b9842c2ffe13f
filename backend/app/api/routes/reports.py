from datetime import date
from io import BytesIO

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.api.deps import db, current_user, period, request_ticket
from app.services.csv_export import safe_filename
from app.services.reports import build_report_workbook, report_summary
from app.services.request_guard import finish

router = APIRouter(prefix="/reports", tags=["reports"])

GROUP_PATTERN = "^(day|week|month|year)$"


@router.get("")
def report(
    rng: tuple[date, date] = Depends(period),
    company_id: int | None = Query(default=None),
    include_extra: bool = Query(default=False),
    group_by: str = Query(default="day", pattern=GROUP_PATTERN),
    s: Session = Depends(db),
    u=Depends(current_user),
    ticket=Depends(request_ticket("reports")),
):
    data = report_summary(
        s, rng[0], rng[1], company_id=company_id, include_extra=include_extra, group_by=group_by
    )
    for k in ("incomes", "expenses", "company_names"):
        data.pop(k)
    return finish(ticket, data)


@router.get("/xlsx")
def report_xlsx(
    rng: tuple[date, date] = Depends(period),
    company_id: int | None = Query(default=None),
    include_extra: bool = Query(default=False),
    group_by: str = Query(default="day", pattern=GROUP_PATTERN),
    s: Session = Depends(db),
    u=Depends(current_user),
):
    data = report_summary(
        s, rng[0], rng[1], company_id=company_id, include_extra=include_extra, group_by=group_by
    )
    buf = BytesIO()
    build_report_workbook(data, buf)
    buf.seek(0)

    filename = safe_filename(f"report_{rng[0]}_to_{rng[1]}.xlsx")
    return StreamingResponse(
        buf,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
