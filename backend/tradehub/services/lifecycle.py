"""Shared lifecycle for owned resources: lookup, cascade delete, comments.

Each resource kind (trade, forum post, wishlist item, event) is described once
by a :class:`ResourceKind`; the per-kind services only add their own field
handling on top of it.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tradehub.core.errors import NotFound, Unexpected, ValidationError
from tradehub.core.permissions import Caller, enforce
from tradehub.core.storage import attachment_store
from tradehub.core.utils import isoformat_or_none, utc_now_naive
from tradehub.db.models.event import Event, EventComment, EventParticipant, EventVote
from tradehub.db.models.forum import ForumComment, ForumPost, ForumVote
from tradehub.db.models.report import Report
from tradehub.db.models.trade import Trade, TradeComment, TradeRating, TradeVote
from tradehub.db.models.user import User
from tradehub.db.models.wishlist import WishlistComment, WishlistItem, WishlistWatch

logger = logging.getLogger(__name__)

COMMENT_MAX_LENGTH = 1000
OPEN_REPORT_STATUSES = ("pending", "reviewed")


@dataclass(frozen=True)
class ResourceKind:
    name: str
    label: str
    model: type
    owner_attr: str
    comment_model: type
    child_fk: str
    vote_model: type | None = None
    like_model: type | None = None
    # Every (model, fk attribute) pair that must go when the parent goes.
    children: tuple[tuple[type, str], ...] = field(default_factory=tuple)
    image_attr: str | None = None

    def owner_id(self, obj: Any) -> int:
        return getattr(obj, self.owner_attr)


TRADE = ResourceKind(
    name="trade",
    label="trade",
    model=Trade,
    owner_attr="user_id",
    comment_model=TradeComment,
    child_fk="trade_id",
    vote_model=TradeVote,
    children=((TradeComment, "trade_id"), (TradeVote, "trade_id"), (TradeRating, "trade_id")),
    image_attr="images",
)
FORUM_POST = ResourceKind(
    name="forum_post",
    label="post",
    model=ForumPost,
    owner_attr="user_id",
    comment_model=ForumComment,
    child_fk="post_id",
    vote_model=ForumVote,
    children=((ForumComment, "post_id"), (ForumVote, "post_id")),
    image_attr="images",
)
WISHLIST_ITEM = ResourceKind(
    name="wishlist_item",
    label="wishlist item",
    model=WishlistItem,
    owner_attr="user_id",
    comment_model=WishlistComment,
    child_fk="wishlist_id",
    like_model=WishlistWatch,
    children=((WishlistComment, "wishlist_id"), (WishlistWatch, "wishlist_id")),
)
EVENT = ResourceKind(
    name="event",
    label="event",
    model=Event,
    owner_attr="created_by",
    comment_model=EventComment,
    child_fk="event_id",
    vote_model=EventVote,
    children=((EventComment, "event_id"), (EventVote, "event_id"), (EventParticipant, "event_id")),
)

KINDS: dict[str, ResourceKind] = {k.name: k for k in (TRADE, FORUM_POST, WISHLIST_ITEM, EVENT)}


def get_kind(name: str) -> ResourceKind:
    kind = KINDS.get(name)
    if kind is None:
        raise ValidationError(f"Unknown resource type: {name}")
    return kind


def find_resource(db: Session, kind: ResourceKind, resource_id: int):
    return db.get(kind.model, resource_id)


def get_resource_or_404(db: Session, kind: ResourceKind, resource_id: int):
    obj = find_resource(db, kind, resource_id)
    if obj is None:
        raise NotFound(f"{kind.label.capitalize()} not found")
    return obj


def load_for_action(db: Session, caller: Caller, kind: ResourceKind, resource_id: int, action: str):
    obj = find_resource(db, kind, resource_id)
    enforce(
        caller,
        kind.owner_id(obj) if obj is not None else None,
        action,
        exists=obj is not None,
        what=kind.label,
    )
    return obj


def public_profiles(db: Session, user_ids) -> dict[int, dict]:
    ids = {uid for uid in user_ids if uid is not None}
    if not ids:
        return {}
    rows = db.query(User.id, User.username, User.credibility_score).filter(User.id.in_(ids)).all()
    return {
        row.id: {"username": row.username, "credibility_score": row.credibility_score or 0}
        for row in rows
    }


def owner_fields(profiles: dict[int, dict], owner_id: int) -> dict:
    profile = profiles.get(owner_id) or {"username": None, "credibility_score": 0}
    return {"user_id": owner_id, **profile}


def child_counts(db: Session, model: type, fk_attr: str, parent_ids: list[int]) -> dict[int, int]:
    if not parent_ids:
        return {}
    fk = getattr(model, fk_attr)
    rows = db.query(fk, func.count(model.id)).filter(fk.in_(parent_ids)).group_by(fk).all()
    return {parent_id: int(count) for parent_id, count in rows}


def touch(obj) -> None:
    obj.updated_at = utc_now_naive()


def delete_resource(
    db: Session,
    kind: ResourceKind,
    obj,
    *,
    actor_id: int | None = None,
    before_commit: Callable[[], None] | None = None,
) -> dict:
    """Deletes ``obj`` and every dependent row as one unit of work.

    Children and parent are removed in the same transaction, and open reports
    against the resource are closed as resolved by ``actor_id``.
    ``before_commit`` runs inside that transaction, so its writes (audit rows,
    report updates) commit or roll back with the delete. Attachments are
    released afterwards and only on success.
    """
    resource_id = obj.id
    now = utc_now_naive()
    images = list(getattr(obj, kind.image_attr) or []) if kind.image_attr else []
    removed: dict[str, int] = {}
    try:
        for model, fk_attr in kind.children:
            count = (
                db.query(model)
                .filter(getattr(model, fk_attr) == resource_id)
                .delete(synchronize_session=False)
            )
            removed[model.__tablename__] = int(count or 0)
        reports_resolved = (
            db.query(Report)
            .filter(
                Report.target_type == kind.name,
                Report.target_id == resource_id,
                Report.status.in_(OPEN_REPORT_STATUSES),
            )
            .update(
                {
                    Report.status: "resolved",
                    Report.action_taken: "delete_content",
                    Report.reviewed_by: actor_id,
                    Report.updated_at: now,
                },
                synchronize_session=False,
            )
        )
        db.delete(obj)
        if before_commit is not None:
            before_commit()
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("cascade_delete_failed kind=%s id=%s", kind.name, resource_id)
        raise Unexpected(f"Failed to delete {kind.label}") from exc

    if images:
        attachment_store.release(images)
    return {
        "id": resource_id,
        "kind": kind.name,
        "removed": removed,
        "reports_resolved": int(reports_resolved or 0),
    }


def delete_owned(db: Session, caller: Caller, kind: ResourceKind, resource_id: int) -> dict:
    obj = load_for_action(db, caller, kind, resource_id, "delete")
    return delete_resource(db, kind, obj)


def serialize_comment(kind: ResourceKind, comment, profiles: dict[int, dict]) -> dict:
    return {
        "comment_id": comment.id,
        "resource_id": getattr(comment, kind.child_fk),
        "content": comment.content,
        "created_at": isoformat_or_none(comment.created_at),
        **owner_fields(profiles, comment.user_id),
    }


def add_comment(db: Session, caller: Caller, kind: ResourceKind, resource_id: int, content: str) -> dict:
    text = (content or "").strip()
    if not text:
        raise ValidationError("Comment content is required")
    if len(text) > COMMENT_MAX_LENGTH:
        raise ValidationError(f"Comment is too long (max {COMMENT_MAX_LENGTH} characters)")
    get_resource_or_404(db, kind, resource_id)

    comment = kind.comment_model(
        **{kind.child_fk: resource_id},
        user_id=caller.user_id,
        content=text,
        created_at=utc_now_naive(),
    )
    db.add(comment)
    db.commit()
    db.refresh(comment)
    return serialize_comment(kind, comment, public_profiles(db, [comment.user_id]))


def list_comments(db: Session, kind: ResourceKind, resource_id: int) -> dict:
    get_resource_or_404(db, kind, resource_id)
    model = kind.comment_model
    comments = (
        db.query(model)
        .filter(getattr(model, kind.child_fk) == resource_id)
        .order_by(model.created_at.desc(), model.id.desc())
        .all()
    )
    profiles = public_profiles(db, [c.user_id for c in comments])
    items = [serialize_comment(kind, c, profiles) for c in comments]
    return {"items": items, "count": len(items)}
