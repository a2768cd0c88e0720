import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tradehub.core.errors import ValidationError
from tradehub.core.utils import utc_now_naive
from tradehub.services.lifecycle import ResourceKind, get_resource_or_404

logger = logging.getLogger(__name__)

VOTE_TYPES = ("up", "down")


def _vote_model(kind: ResourceKind):
    if kind.vote_model is None:
        raise ValidationError(f"Voting is not supported for {kind.label}s")
    return kind.vote_model


def _like_model(kind: ResourceKind):
    if kind.like_model is None:
        raise ValidationError(f"Watching is not supported for {kind.label}s")
    return kind.like_model


def _find_vote(db: Session, kind: ResourceKind, resource_id: int, user_id: int):
    model = _vote_model(kind)
    return (
        db.query(model)
        .filter(getattr(model, kind.child_fk) == resource_id, model.user_id == user_id)
        .first()
    )


def _find_like(db: Session, kind: ResourceKind, resource_id: int, user_id: int):
    model = _like_model(kind)
    return (
        db.query(model)
        .filter(getattr(model, kind.child_fk) == resource_id, model.user_id == user_id)
        .first()
    )


def vote_counts(db: Session, kind: ResourceKind, resource_ids: list[int]) -> dict[int, dict[str, int]]:
    model = _vote_model(kind)
    counts = {rid: {"upvotes": 0, "downvotes": 0} for rid in resource_ids}
    if not resource_ids:
        return counts
    fk = getattr(model, kind.child_fk)
    rows = (
        db.query(fk, model.vote_type, func.count(model.id))
        .filter(fk.in_(resource_ids))
        .group_by(fk, model.vote_type)
        .all()
    )
    for rid, vote_type, count in rows:
        key = "upvotes" if vote_type == "up" else "downvotes"
        counts[rid][key] = int(count)
    return counts


def like_counts(db: Session, kind: ResourceKind, resource_ids: list[int]) -> dict[int, int]:
    model = _like_model(kind)
    if not resource_ids:
        return {}
    fk = getattr(model, kind.child_fk)
    rows = db.query(fk, func.count(model.id)).filter(fk.in_(resource_ids)).group_by(fk).all()
    counts = {rid: 0 for rid in resource_ids}
    counts.update({rid: int(count) for rid, count in rows})
    return counts


def vote_summary(db: Session, kind: ResourceKind, resource_id: int, user_id: int | None) -> dict:
    summary = dict(vote_counts(db, kind, [resource_id])[resource_id])
    existing = _find_vote(db, kind, resource_id, user_id) if user_id is not None else None
    summary["user_vote"] = existing.vote_type if existing else None
    return summary


def like_summary(db: Session, kind: ResourceKind, resource_id: int, user_id: int | None) -> dict:
    return {
        "count": like_counts(db, kind, [resource_id]).get(resource_id, 0),
        "liked": user_id is not None and _find_like(db, kind, resource_id, user_id) is not None,
    }


def toggle_vote(db: Session, kind: ResourceKind, resource_id: int, user_id: int, vote_type: str) -> dict:
    """Applies one vote request to the (resource, user) pair.

    none -> vote; same vote -> none (retract); other vote -> switched in place.
    Counts are always re-read after the write.
    """
    if vote_type not in VOTE_TYPES:
        raise ValidationError('Invalid vote type. Must be "up" or "down"')
    model = _vote_model(kind)
    get_resource_or_404(db, kind, resource_id)

    conflict = False
    existing = _find_vote(db, kind, resource_id, user_id)
    now = utc_now_naive()
    try:
        if existing is None:
            db.add(
                model(
                    **{kind.child_fk: resource_id},
                    user_id=user_id,
                    vote_type=vote_type,
                    created_at=now,
                    updated_at=now,
                )
            )
        elif existing.vote_type == vote_type:
            db.delete(existing)
        else:
            existing.vote_type = vote_type
            existing.updated_at = now
        db.commit()
    except IntegrityError:
        # A concurrent request from the same user already wrote the row.
        db.rollback()
        conflict = True
        logger.info("vote_conflict kind=%s resource_id=%s user_id=%s", kind.name, resource_id, user_id)

    summary = vote_summary(db, kind, resource_id, user_id)
    summary["conflict"] = conflict
    return summary


def toggle_like(db: Session, kind: ResourceKind, resource_id: int, user_id: int) -> dict:
    model = _like_model(kind)
    get_resource_or_404(db, kind, resource_id)

    conflict = False
    existing = _find_like(db, kind, resource_id, user_id)
    try:
        if existing is None:
            db.add(model(**{kind.child_fk: resource_id}, user_id=user_id, created_at=utc_now_naive()))
        else:
            db.delete(existing)
        db.commit()
    except IntegrityError:
        db.rollback()
        conflict = True
        logger.info("like_conflict kind=%s resource_id=%s user_id=%s", kind.name, resource_id, user_id)

    summary = like_summary(db, kind, resource_id, user_id)
    summary["conflict"] = conflict
    return summary
