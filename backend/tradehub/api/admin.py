import logging
from typing import Literal

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from tradehub.core.observability import log_business_event
from tradehub.core.permissions import Caller, permissions_matrix_payload
from tradehub.core.security import require_admin, require_moderator
from tradehub.db.session import get_db
from tradehub.schemas.moderation import BanIn, ReportResolveIn, RoleIn, VerificationDecisionIn
from tradehub.services import moderation

router = APIRouter(prefix="/admin", tags=["admin"])
logger = logging.getLogger(__name__)


@router.get("/stats")
def stats(db: Session = Depends(get_db), _moderator: Caller = Depends(require_moderator)):
    return moderation.admin_stats(db)


@router.get("/users")
def list_users(
    q: str = "",
    role: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1),
    db: Session = Depends(get_db),
    _moderator: Caller = Depends(require_moderator),
):
    return moderation.list_users(db, search=q, role=role, page=page, limit=limit)


@router.put("/users/{user_id}/role")
def set_role(
    user_id: int,
    payload: RoleIn,
    request: Request,
    db: Session = Depends(get_db),
    admin: Caller = Depends(require_admin),
):
    user = moderation.set_role(db, admin, user_id, payload.role, payload.reason)
    log_business_event(logger, request, event="admin.set_role", caller=admin, target_id=user_id, role=payload.role)
    return user


@router.put("/users/{user_id}/ban")
def ban_user(
    user_id: int,
    payload: BanIn,
    request: Request,
    db: Session = Depends(get_db),
    moderator: Caller = Depends(require_moderator),
):
    user = moderation.ban_user(db, moderator, user_id, payload.action, payload.reason)
    log_business_event(logger, request, event=f"admin.{payload.action}", caller=moderator, target_id=user_id)
    return user


@router.get("/verification-requests")
def verification_requests(
    kind: Literal["all", "verified", "middleman"] = "all",
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1),
    db: Session = Depends(get_db),
    _moderator: Caller = Depends(require_moderator),
):
    return moderation.verification_requests(db, kind=None if kind == "all" else kind, page=page, limit=limit)


@router.put("/users/{user_id}/verification")
def resolve_verification(
    user_id: int,
    payload: VerificationDecisionIn,
    request: Request,
    db: Session = Depends(get_db),
    moderator: Caller = Depends(require_moderator),
):
    user = moderation.resolve_verification(db, moderator, user_id, payload.outcome)
    log_business_event(
        logger, request, event="admin.verification", caller=moderator, target_id=user_id, outcome=payload.outcome
    )
    return user


@router.get("/reports")
def list_reports(
    status: Literal["pending", "reviewed", "resolved"] | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1),
    db: Session = Depends(get_db),
    _moderator: Caller = Depends(require_moderator),
):
    return moderation.list_reports(db, status=status, page=page, limit=limit)


@router.put("/reports/{report_id}")
def resolve_report(
    report_id: int,
    payload: ReportResolveIn,
    request: Request,
    db: Session = Depends(get_db),
    moderator: Caller = Depends(require_moderator),
):
    report = moderation.resolve_report(db, moderator, report_id, payload.status, payload.action, payload.note)
    log_business_event(
        logger,
        request,
        event="admin.report_resolve",
        caller=moderator,
        report_id=report_id,
        status=payload.status,
        action=payload.action,
    )
    return report


@router.get("/flagged")
def flagged(
    severity: Literal["all", "low", "medium", "high"] = "all",
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1),
    db: Session = Depends(get_db),
    _moderator: Caller = Depends(require_moderator),
):
    return moderation.list_flagged(db, severity=severity, page=page, limit=limit)


@router.delete("/resources/{kind}/{resource_id}")
def force_delete(
    kind: Literal["trade", "forum_post", "wishlist_item", "event"],
    resource_id: int,
    request: Request,
    db: Session = Depends(get_db),
    moderator: Caller = Depends(require_moderator),
):
    result = moderation.force_delete(db, moderator, kind, resource_id)
    log_business_event(logger, request, event="admin.force_delete", caller=moderator, kind=kind, resource_id=resource_id)
    return result


@router.get("/audit")
def audit_logs(
    action: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1),
    db: Session = Depends(get_db),
    _admin: Caller = Depends(require_admin),
):
    return moderation.list_audit_logs(db, action=action, page=page, limit=limit)


@router.get("/permissions")
def permissions_matrix(_moderator: Caller = Depends(require_moderator)):
    return permissions_matrix_payload()
