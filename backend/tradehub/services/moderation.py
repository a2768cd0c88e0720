"""Reports, severity, and staff actions on users and content."""

import logging
from functools import partial

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from tradehub.core.errors import Conflict, Denied, NotFound, ValidationError
from tradehub.core.paging import build_paged_response, paginate_query
from tradehub.core.permissions import (
    DENY_INSUFFICIENT_ROLE,
    MODERATION_ROLES,
    ROLES,
    Caller,
    enforce,
    is_owner,
    normalize_role,
)
from tradehub.core.utils import isoformat_or_none, utc_now_naive
from tradehub.db.models.admin_audit_log import AdminAuditLog
from tradehub.db.models.event import Event
from tradehub.db.models.forum import ForumPost
from tradehub.db.models.report import Report
from tradehub.db.models.trade import Trade
from tradehub.db.models.user import User
from tradehub.db.models.vouch import Vouch
from tradehub.db.models.wishlist import WishlistItem
from tradehub.services.accounts import get_user_or_404, serialize_account
from tradehub.services.lifecycle import (
    KINDS,
    OPEN_REPORT_STATUSES,
    delete_resource,
    find_resource,
    get_kind,
)

logger = logging.getLogger(__name__)

REPORT_STATUSES = ("pending", "reviewed", "resolved")
REPORT_TARGET_TYPES = ("user", *KINDS.keys())
DEFAULT_BAN_REASON = "No reason provided"

# (severity, minimum report count), highest first.
SEVERITY_THRESHOLDS: tuple[tuple[str, int], ...] = (("high", 5), ("medium", 3), ("low", 0))

_TARGET_LABEL_FIELDS = {
    "trade": "item_offered",
    "forum_post": "title",
    "wishlist_item": "item_name",
    "event": "title",
}


def severity_for_count(count: int) -> str:
    for severity, minimum in SEVERITY_THRESHOLDS:
        if count >= minimum:
            return severity
    return "low"


def severity_bounds(severity: str) -> tuple[int, int | None]:
    """Report-count range ``[low, high)`` that maps to ``severity``."""
    upper = None
    for name, minimum in SEVERITY_THRESHOLDS:
        if name == severity:
            return minimum, upper
        upper = minimum
    raise ValidationError(f"Unknown severity: {severity}")


def record_audit(
    db: Session,
    caller: Caller,
    action: str,
    *,
    target_user_id: int | None = None,
    target_type: str | None = None,
    target_id: int | None = None,
    meta: dict | None = None,
) -> None:
    db.add(
        AdminAuditLog(
            actor_user_id=caller.user_id,
            target_user_id=target_user_id,
            target_type=target_type,
            target_id=target_id,
            action=action,
            meta_json=meta,
            created_at=utc_now_naive(),
        )
    )


def _resolve_target(db: Session, target_type: str, target_id: int) -> tuple[int, str | None]:
    """Returns (responsible user id, display label) for an existing target."""
    if target_type == "user":
        user = get_user_or_404(db, target_id)
        return user.id, user.username
    kind = get_kind(target_type)
    obj = find_resource(db, kind, target_id)
    if obj is None:
        raise NotFound(f"{kind.label.capitalize()} not found")
    return kind.owner_id(obj), getattr(obj, _TARGET_LABEL_FIELDS[target_type])


def _target_label(db: Session, target_type: str, target_id: int) -> str | None:
    if target_type == "user":
        user = db.get(User, target_id)
        return user.username if user else None
    obj = find_resource(db, KINDS[target_type], target_id)
    return getattr(obj, _TARGET_LABEL_FIELDS[target_type]) if obj else None


def _serialize_report(report: Report, names: dict[int, str]) -> dict:
    return {
        "id": report.id,
        "target_type": report.target_type,
        "target_id": report.target_id,
        "reason": report.reason,
        "status": report.status,
        "action_taken": report.action_taken,
        "reported_user_id": report.reported_user_id,
        "reported_username": names.get(report.reported_user_id),
        "reported_by_user_id": report.reported_by_user_id,
        "reported_by_username": names.get(report.reported_by_user_id),
        "reviewed_by": report.reviewed_by,
        "created_at": isoformat_or_none(report.created_at),
        "updated_at": isoformat_or_none(report.updated_at),
    }


def _usernames(db: Session, ids) -> dict[int, str]:
    wanted = {i for i in ids if i is not None}
    if not wanted:
        return {}
    return {row.id: row.username for row in db.query(User.id, User.username).filter(User.id.in_(wanted)).all()}


def file_report(db: Session, caller: Caller, target_type: str, target_id: int, reason: str) -> dict:
    if target_type not in REPORT_TARGET_TYPES:
        raise ValidationError(f"Invalid target type. Must be one of: {', '.join(REPORT_TARGET_TYPES)}")
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Reason is required")

    responsible_id, _ = _resolve_target(db, target_type, target_id)
    if is_owner(caller, responsible_id):
        raise ValidationError("You cannot report yourself or your own content")

    duplicate = (
        db.query(Report.id)
        .filter(
            Report.reported_by_user_id == caller.user_id,
            Report.target_type == target_type,
            Report.target_id == target_id,
            Report.status == "pending",
        )
        .first()
    )
    if duplicate is not None:
        raise Conflict("You have already reported this")

    now = utc_now_naive()
    report = Report(
        reported_by_user_id=caller.user_id,
        reported_user_id=responsible_id,
        target_type=target_type,
        target_id=target_id,
        reason=reason,
        status="pending",
        created_at=now,
        updated_at=now,
    )
    db.add(report)
    db.commit()
    db.refresh(report)
    return _serialize_report(report, _usernames(db, [report.reported_user_id, report.reported_by_user_id]))


def list_reports(db: Session, *, status: str | None = None, page: int = 1, limit: int = 20) -> dict:
    if status and status not in REPORT_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(REPORT_STATUSES)}")
    query = db.query(Report)
    if status:
        query = query.filter(Report.status == status)
    query = query.order_by(Report.created_at.desc(), Report.id.desc())
    items, total, safe_page, safe_limit = paginate_query(query, page=page, limit=limit)
    names = _usernames(db, [r.reported_user_id for r in items] + [r.reported_by_user_id for r in items])
    return build_paged_response(
        items=[_serialize_report(r, names) for r in items],
        total=total,
        page=safe_page,
        limit=safe_limit,
    )


def list_flagged(db: Session, *, severity: str | None = None, page: int = 1, limit: int = 20) -> dict:
    """Targets with open reports, each with its report count and severity."""
    count_col = func.count(Report.id)
    query = (
        db.query(
            Report.target_type,
            Report.target_id,
            func.max(Report.reported_user_id).label("reported_user_id"),
            count_col.label("report_count"),
            func.max(Report.created_at).label("last_reported_at"),
        )
        .filter(Report.status.in_(OPEN_REPORT_STATUSES))
        .group_by(Report.target_type, Report.target_id)
    )
    if severity and severity != "all":
        lower, upper = severity_bounds(severity)
        query = query.having(count_col >= lower)
        if upper is not None:
            query = query.having(count_col < upper)
    query = query.order_by(count_col.desc(), func.max(Report.created_at).desc())

    rows, total, safe_page, safe_limit = paginate_query(query, page=page, limit=limit)
    names = _usernames(db, [row.reported_user_id for row in rows])
    items = [
        {
            "target_type": row.target_type,
            "target_id": row.target_id,
            "target_label": _target_label(db, row.target_type, row.target_id),
            "reported_user_id": row.reported_user_id,
            "reported_username": names.get(row.reported_user_id),
            "report_count": int(row.report_count),
            "severity": severity_for_count(int(row.report_count)),
            "last_reported_at": isoformat_or_none(row.last_reported_at),
        }
        for row in rows
    ]
    return build_paged_response(items=items, total=total, page=safe_page, limit=safe_limit)


def _set_ban_state(db: Session, user_id: int, *, banned: bool, reason: str | None = None) -> None:
    # Field-level UPDATE: only role and ban metadata are written.
    if banned:
        values = {
            User.role: "banned",
            User.ban_reason: reason or DEFAULT_BAN_REASON,
            User.banned_at: utc_now_naive(),
            User.updated_at: utc_now_naive(),
        }
    else:
        values = {User.ban_reason: None, User.banned_at: None, User.updated_at: utc_now_naive()}
    db.query(User).filter(User.id == user_id).update(values, synchronize_session=False)


def _guard_staff_target(caller: Caller, target: User) -> None:
    if is_owner(caller, target.id):
        raise ValidationError("You cannot perform this action on your own account")
    if normalize_role(target.role) in MODERATION_ROLES and normalize_role(caller.role) != "admin":
        raise Denied(DENY_INSUFFICIENT_ROLE, "Only admins can act on staff accounts")


def ban_user(db: Session, caller: Caller, target_id: int, action: str, reason: str | None = None) -> dict:
    enforce(caller, None, "moderate")
    target = get_user_or_404(db, target_id)
    _guard_staff_target(caller, target)

    if action == "ban":
        if target.role == "banned":
            raise Conflict("User is already banned")
        _set_ban_state(db, target.id, banned=True, reason=reason)
    elif action == "unban":
        if target.role != "banned":
            raise Conflict("User is not banned")
        _set_ban_state(db, target.id, banned=False)
        db.query(User).filter(User.id == target.id).update({User.role: "user"}, synchronize_session=False)
    else:
        raise ValidationError("Invalid action. Must be ban or unban")

    record_audit(db, caller, f"user.{action}", target_user_id=target.id, meta={"reason": reason})
    db.commit()
    db.refresh(target)
    return serialize_account(target)


def set_role(db: Session, caller: Caller, target_id: int, role: str, reason: str | None = None) -> dict:
    enforce(caller, None, "assign_role")
    if role not in ROLES:
        raise ValidationError(f"Invalid role. Must be one of: {', '.join(ROLES)}")
    target = get_user_or_404(db, target_id)
    if is_owner(caller, target.id):
        raise ValidationError("Cannot change your own role")

    previous = target.role
    db.query(User).filter(User.id == target.id).update({User.role: role}, synchronize_session=False)
    _set_ban_state(db, target.id, banned=role == "banned", reason=reason)
    record_audit(
        db,
        caller,
        "user.set_role",
        target_user_id=target.id,
        meta={"from": previous, "to": role, "reason": reason},
    )
    db.commit()
    db.refresh(target)
    return serialize_account(target)


def resolve_verification(db: Session, caller: Caller, target_id: int, outcome: str) -> dict:
    enforce(caller, None, "moderate")
    target = get_user_or_404(db, target_id)
    if target.role == "banned":
        raise ValidationError("Cannot verify a banned user")

    values: dict = {User.updated_at: utc_now_naive()}
    keep_role = normalize_role(target.role) in MODERATION_ROLES
    if outcome == "approve_verified":
        if not target.verification_requested:
            raise ValidationError("No pending verification request")
        values[User.verification_requested] = False
        if not keep_role:
            values[User.role] = "verified"
    elif outcome == "approve_middleman":
        if not target.middleman_requested:
            raise ValidationError("No pending middleman request")
        values[User.middleman_requested] = False
        if not keep_role:
            values[User.role] = "middleman"
    elif outcome == "reject":
        values[User.verification_requested] = False
        values[User.middleman_requested] = False
    else:
        raise ValidationError("Invalid outcome")

    db.query(User).filter(User.id == target.id).update(values, synchronize_session=False)
    record_audit(db, caller, f"verification.{outcome}", target_user_id=target.id)
    db.commit()
    db.refresh(target)
    return serialize_account(target)


def resolve_report(
    db: Session,
    caller: Caller,
    report_id: int,
    status: str,
    action: str = "none",
    note: str | None = None,
) -> dict:
    enforce(caller, None, "moderate")
    if status not in ("reviewed", "resolved"):
        raise ValidationError("Invalid status. Must be reviewed or resolved")
    report = db.get(Report, report_id)
    if report is None:
        raise NotFound("Report not found")

    target = None
    if action == "delete_content":
        if report.target_type == "user":
            raise ValidationError("Reports against users have no content to delete")
        kind = get_kind(report.target_type)
        target = find_resource(db, kind, report.target_id)
    elif action == "ban_user":
        offender = get_user_or_404(db, report.reported_user_id)
        if offender.role != "banned":
            ban_user(db, caller, offender.id, "ban", note or report.reason)
    elif action != "none":
        raise ValidationError("Invalid action")

    def close_report() -> None:
        report.status = status
        report.reviewed_by = caller.user_id
        report.action_taken = None if action == "none" else action
        report.updated_at = utc_now_naive()
        record_audit(
            db,
            caller,
            f"report.{status}",
            target_user_id=report.reported_user_id,
            target_type=report.target_type,
            target_id=report.target_id,
            meta={"report_id": report.id, "action": action, "note": note},
        )

    if target is not None:
        # Sibling reports on the deleted target are resolved by the cascade.
        delete_resource(db, kind, target, actor_id=caller.user_id, before_commit=close_report)
    else:
        close_report()
        db.commit()
    db.refresh(report)
    return _serialize_report(report, _usernames(db, [report.reported_user_id, report.reported_by_user_id]))


def force_delete(db: Session, caller: Caller, kind_name: str, resource_id: int) -> dict:
    enforce(caller, None, "moderate")
    kind = get_kind(kind_name)
    obj = find_resource(db, kind, resource_id)
    if obj is None:
        raise NotFound(f"{kind.label.capitalize()} not found")
    audit = partial(
        record_audit,
        db,
        caller,
        f"{kind.name}.force_delete",
        target_user_id=kind.owner_id(obj),
        target_type=kind.name,
        target_id=resource_id,
    )
    return delete_resource(db, kind, obj, actor_id=caller.user_id, before_commit=audit)


def list_users(
    db: Session,
    *,
    search: str | None = None,
    role: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    query = db.query(User)
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(User.username.ilike(pattern), User.email.ilike(pattern), User.roblox_username.ilike(pattern))
        )
    if role:
        query = query.filter(User.role == role)
    query = query.order_by(User.created_at.desc(), User.id.desc())
    items, total, safe_page, safe_limit = paginate_query(query, page=page, limit=limit)
    return build_paged_response(items=items, total=total, page=safe_page, limit=safe_limit, serializer=serialize_account)


def verification_requests(db: Session, *, kind: str | None = None, page: int = 1, limit: int = 20) -> dict:
    if kind == "verified":
        condition = User.verification_requested.is_(True)
    elif kind == "middleman":
        condition = User.middleman_requested.is_(True)
    else:
        condition = or_(User.verification_requested.is_(True), User.middleman_requested.is_(True))
    query = db.query(User).filter(condition).order_by(User.created_at.desc(), User.id.desc())
    items, total, safe_page, safe_limit = paginate_query(query, page=page, limit=limit)
    return build_paged_response(items=items, total=total, page=safe_page, limit=safe_limit, serializer=serialize_account)


def admin_stats(db: Session) -> dict:
    def count(model, *conditions) -> int:
        return int(db.query(func.count(model.id)).filter(*conditions).scalar() or 0)

    return {
        "total_users": count(User),
        "banned_users": count(User, User.role == "banned"),
        "pending_verifications": count(User, User.verification_requested.is_(True)),
        "pending_middleman_requests": count(User, User.middleman_requested.is_(True)),
        "total_trades": count(Trade),
        "open_trades": count(Trade, Trade.status == "open"),
        "total_forum_posts": count(ForumPost),
        "total_wishlist_items": count(WishlistItem),
        "total_events": count(Event),
        "total_vouches": count(Vouch),
        "pending_reports": count(Report, Report.status == "pending"),
    }


def list_audit_logs(db: Session, *, action: str | None = None, page: int = 1, limit: int = 50) -> dict:
    query = db.query(AdminAuditLog)
    if action:
        query = query.filter(AdminAuditLog.action == action)
    query = query.order_by(AdminAuditLog.created_at.desc(), AdminAuditLog.id.desc())
    items, total, safe_page, safe_limit = paginate_query(query, page=page, limit=limit)
    return build_paged_response(
        items=[
            {
                "id": log.id,
                "action": log.action,
                "actor_user_id": log.actor_user_id,
                "target_user_id": log.target_user_id,
                "target_type": log.target_type,
                "target_id": log.target_id,
                "meta": log.meta_json,
                "created_at": isoformat_or_none(log.created_at),
            }
            for log in items
        ],
        total=total,
        page=safe_page,
        limit=safe_limit,
    )
