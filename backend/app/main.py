from fastapi import FastAPI
import asyncio
import logging
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.api.routes.auth import router as auth_router
from app.api.routes.users import router as users_router
from app.api.routes.audit import router as audit_router
from app.api.routes.companies import router as companies_router
from app.api.routes.operators import router as operators_router
from app.api.routes.staff import router as staff_router
from app.api.routes.incomes import router as incomes_router
from app.api.routes.expenses import router as expenses_router
from app.api.routes.salary import router as salary_router
from app.api.routes.analytics import router as analytics_router
from app.api.routes.analysis import router as analysis_router
from app.api.routes.dashboard import router as dashboard_router
from app.api.routes.reports import router as reports_router
from app.api.routes.kpi import router as kpi_router
from app.api.routes.cron import router as cron_router
from app.api.routes.categories import router as categories_router
from app.api.routes.shifts import router as shifts_router
from app.services.weekly_report import weekly_report_loop

logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = FastAPI(title="F16 Finance")

origins = [o.strip() for o in (settings.cors_origins or "").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.get("/health")
@app.get("/api/health")
def health():
    return {"status": "ok"}

app.include_router(auth_router)
app.include_router(users_router)
app.include_router(audit_router)
app.include_router(companies_router)
app.include_router(operators_router)
app.include_router(staff_router)
app.include_router(incomes_router)
app.include_router(expenses_router)
app.include_router(salary_router)
app.include_router(analytics_router)
app.include_router(analysis_router)
app.include_router(dashboard_router)
app.include_router(reports_router)
app.include_router(kpi_router)
app.include_router(cron_router)
app.include_router(categories_router)
app.include_router(shifts_router)

def _weekly_report_done(task: asyncio.Task):
    if not task.cancelled() and task.exception() is not None:
        logging.getLogger(__name__).error("weekly report loop stopped", exc_info=task.exception())

@app.on_event("startup")
async def _start_weekly_report():
    app.state.weekly_report_task = None
    if settings.weekly_report_enabled:
        task = asyncio.create_task(weekly_report_loop())
        task.add_done_callback(_weekly_report_done)
        app.state.weekly_report_task = task

@app.on_event("shutdown")
async def _stop_weekly_report():
    task = getattr(app.state, "weekly_report_task", None)
    if task is not None:
        task.cancel()
