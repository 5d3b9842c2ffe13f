from datetime import date

from fastapi import Depends, Header, HTTPException, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session
from app.db.session import SessionLocal
from app.core.security import decode_token
from app.services.request_guard import RequestTicket, guard
from app.utils.dates import normalize_range, preset_range
from app.utils.timezone import today_local

bearer = HTTPBearer()

def db():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()

def current_user(creds: HTTPAuthorizationCredentials = Depends(bearer)):
    try:
        return decode_token(creds.credentials)
    except Exception:
        raise HTTPException(status_code=401, detail="invalid_token")

def require_admin(u=Depends(current_user)):
    if u.get("role") != "admin":
        raise HTTPException(status_code=403, detail="admin_only")
    return u

def require_writer(u=Depends(current_user)):
    if u.get("role") not in ("admin", "manager"):
        raise HTTPException(status_code=403, detail="read_only")
    return u

def request_ticket(scope: str):
    """Dependency factory: registers the call under (client, scope) so a newer
    call from the same client makes this one stale."""

    def _dep(x_client_id: str | None = Header(default=None)) -> RequestTicket | None:
        if not x_client_id:
            return None
        return guard.begin(f"{x_client_id}:{scope}")

    return _dep

def period(
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    preset: str | None = Query(default=None),
) -> tuple[date, date]:
    """Resolves the requested range: a named preset wins, then explicit dates,
    then the current month so far."""
    today = today_local()
    if preset:
        try:
            return preset_range(preset, today)
        except ValueError:
            raise HTTPException(status_code=400, detail="preset_invalid")
    if date_from is None and date_to is None:
        return preset_range("currentMonth", today)
    return normalize_range(date_from or date_to, date_to or date_from)
