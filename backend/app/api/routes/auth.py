from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from sqlalchemy import select
from app.api.deps import db, current_user
from app.schemas.auth import LoginIn, TokenOut, MeOut
from app.models.user import User
from app.core.security import verify_password, create_access_token
from app.services.audit import log_event

router = APIRouter(prefix="/auth", tags=["auth"])

WRITER_ROLES = ("admin", "manager")


@router.post("/login", response_model=TokenOut)
def login(body: LoginIn, s: Session = Depends(db)):
    u = s.execute(select(User).where(User.username == body.username)).scalar_one_or_none()
    if not u or not verify_password(body.password, u.password_hash):
        raise HTTPException(status_code=401, detail="bad_credentials")
    if not u.is_active:
        raise HTTPException(status_code=403, detail="user_disabled")
    # legacy accounts were created with role "user"
    role_out = "viewer" if (u.role or "").lower() == "user" else u.role
    token = create_access_token(sub=u.username, role=role_out)
    log_event(s, username=u.username, action="auth.login", entity_type="user", entity_id=u.id)
    return {"access_token": token, "username": u.username, "role": role_out}


@router.get("/me", response_model=MeOut)
def me(u=Depends(current_user)):
    role = u.get("role") or "viewer"
    return {"username": u.get("sub"), "role": role, "can_write": role in WRITER_ROLES}
