import logging

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from tradehub.core.observability import log_business_event
from tradehub.core.permissions import Caller, is_moderator, is_owner
from tradehub.core.security import get_current_caller, get_optional_caller
from tradehub.db.session import get_db
from tradehub.schemas.user import ProfileUpdate, VerificationRequestIn, VouchIn
from tradehub.services import accounts

router = APIRouter(prefix="/users", tags=["users"])
logger = logging.getLogger(__name__)


@router.get("/me")
def my_profile(db: Session = Depends(get_db), caller: Caller = Depends(get_current_caller)):
    return accounts.profile(db, caller.user_id, include_private=True)


@router.put("/me")
def update_my_profile(
    payload: ProfileUpdate,
    request: Request,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    profile = accounts.update_profile(db, caller, payload)
    log_business_event(logger, request, event="user.profile_update", caller=caller, fields=",".join(payload.changes()))
    return profile


@router.get("/search")
def search_users(
    q: str = Query(default=""),
    limit: int = Query(default=10, ge=1, le=50),
    db: Session = Depends(get_db),
):
    return {"items": accounts.search_users(db, q, limit=limit)}


@router.post("/me/verification-request")
def request_verification(
    payload: VerificationRequestIn,
    request: Request,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    result = accounts.request_verification(db, caller, payload.kind)
    log_business_event(logger, request, event="user.verification_request", caller=caller, kind=payload.kind)
    return result


@router.get("/{user_id}")
def get_profile(
    user_id: int,
    db: Session = Depends(get_db),
    caller: Caller | None = Depends(get_optional_caller),
):
    include_private = caller is not None and (is_owner(caller, user_id) or is_moderator(caller))
    return accounts.profile(db, user_id, include_private=include_private)


@router.get("/{user_id}/vouches")
def get_vouches(
    user_id: int,
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return {"items": accounts.list_vouches(db, user_id, limit=limit)}


@router.post("/{user_id}/vouches", status_code=status.HTTP_201_CREATED)
def vouch(
    user_id: int,
    payload: VouchIn,
    request: Request,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    result = accounts.vouch(db, caller, user_id, payload)
    log_business_event(logger, request, event="user.vouch", caller=caller, target_id=user_id, rating=payload.rating)
    return result
