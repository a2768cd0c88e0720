import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from tradehub.core.errors import Unauthenticated
from tradehub.core.observability import log_business_event
from tradehub.core.permissions import Caller
from tradehub.core.rate_limit import (
    LOGIN_ATTEMPT_LIMIT,
    LOGIN_ATTEMPT_WINDOW_MINUTES,
    REGISTER_ATTEMPT_LIMIT,
    REGISTER_ATTEMPT_WINDOW_MINUTES,
    check_rate_limit,
    clear_attempts,
    record_attempt,
)
from tradehub.core.security import current_session_jti, get_current_caller, oauth2_scheme
from tradehub.db.session import get_db
from tradehub.schemas.auth import LoginIn, RegisterIn
from tradehub.services import accounts

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(payload: RegisterIn, request: Request, db: Session = Depends(get_db)):
    ip = _client_ip(request)
    check_rate_limit(db, ip, "register", REGISTER_ATTEMPT_LIMIT, REGISTER_ATTEMPT_WINDOW_MINUTES)
    record_attempt(db, ip, "register")
    result = accounts.register(db, payload, user_agent=request.headers.get("user-agent"))
    log_business_event(logger, request, event="auth.register", user_id=result["user"]["id"])
    return result


@router.post("/login")
def login(payload: LoginIn, request: Request, db: Session = Depends(get_db)):
    identifier = f"{_client_ip(request)}:{payload.username.strip().lower()}"
    check_rate_limit(db, identifier, "login", LOGIN_ATTEMPT_LIMIT, LOGIN_ATTEMPT_WINDOW_MINUTES)
    try:
        result = accounts.login(db, payload.username, payload.password, user_agent=request.headers.get("user-agent"))
    except Unauthenticated:
        record_attempt(db, identifier, "login")
        logger.info("login_failed identifier=%s", identifier)
        raise
    clear_attempts(db, identifier, "login")
    log_business_event(logger, request, event="auth.login", user_id=result["user"]["id"])
    return result


@router.post("/logout")
def logout(
    request: Request,
    token: str | None = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    removed = accounts.logout(db, caller, current_session_jti(token))
    log_business_event(logger, request, event="auth.logout", caller=caller, removed=removed)
    return {"message": "Logged out", "sessions_removed": removed}


@router.post("/logout-all")
def logout_all(
    request: Request,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    removed = accounts.logout_all(db, caller)
    log_business_event(logger, request, event="auth.logout_all", caller=caller, removed=removed)
    return {"message": "Logged out of all sessions", "sessions_removed": removed}


@router.get("/me")
def me(db: Session = Depends(get_db), caller: Caller = Depends(get_current_caller)):
    return accounts.serialize_account(accounts.get_user_or_404(db, caller.user_id))
