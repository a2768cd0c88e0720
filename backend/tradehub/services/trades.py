from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tradehub.core.errors import Conflict, ValidationError
from tradehub.core.paging import build_paged_response, paginate_query
from tradehub.core.permissions import Caller, is_owner
from tradehub.core.utils import isoformat_or_none, utc_now_naive
from tradehub.db.models.trade import Trade, TradeComment, TradeRating
from tradehub.schemas.trade import TradeCreate, TradeRatingIn, TradeUpdate
from tradehub.services.lifecycle import (
    TRADE,
    child_counts,
    get_resource_or_404,
    load_for_action,
    owner_fields,
    public_profiles,
    touch,
)
from tradehub.services.reactions import vote_counts


def _serialize(trade: Trade, profiles: dict, comments: int = 0, votes: dict | None = None) -> dict:
    votes = votes or {"upvotes": 0, "downvotes": 0}
    return {
        "id": trade.id,
        "item_offered": trade.item_offered,
        "item_requested": trade.item_requested,
        "description": trade.description,
        "category": trade.category,
        "status": trade.status,
        "images": list(trade.images or []),
        "created_at": isoformat_or_none(trade.created_at),
        "updated_at": isoformat_or_none(trade.updated_at),
        "comment_count": comments,
        **votes,
        **owner_fields(profiles, trade.user_id),
    }


def _serialize_many(db: Session, trades: list[Trade]) -> list[dict]:
    ids = [t.id for t in trades]
    profiles = public_profiles(db, [t.user_id for t in trades])
    comments = child_counts(db, TradeComment, "trade_id", ids)
    votes = vote_counts(db, TRADE, ids)
    return [_serialize(t, profiles, comments.get(t.id, 0), votes.get(t.id)) for t in trades]


def serialize_one(db: Session, trade: Trade) -> dict:
    return _serialize_many(db, [trade])[0]


def list_trades(
    db: Session,
    *,
    page: int = 1,
    limit: int = 10,
    status: str | None = None,
    category: str | None = None,
    user_id: int | None = None,
) -> dict:
    query = db.query(Trade)
    if status:
        query = query.filter(Trade.status == status)
    if category:
        query = query.filter(Trade.category == category)
    if user_id is not None:
        query = query.filter(Trade.user_id == user_id)
    query = query.order_by(Trade.created_at.desc(), Trade.id.desc())
    items, total, safe_page, safe_limit = paginate_query(query, page=page, limit=limit)
    return build_paged_response(
        items=_serialize_many(db, items),
        total=total,
        page=safe_page,
        limit=safe_limit,
    )


def get_trade(db: Session, trade_id: int) -> dict:
    return serialize_one(db, get_resource_or_404(db, TRADE, trade_id))


def create_trade(db: Session, caller: Caller, payload: TradeCreate) -> dict:
    now = utc_now_naive()
    trade = Trade(
        user_id=caller.user_id,
        item_offered=payload.item_offered,
        item_requested=payload.item_requested or None,
        description=payload.description or None,
        category=payload.category,
        status="open",
        images=list(payload.images),
        created_at=now,
        updated_at=now,
    )
    db.add(trade)
    db.commit()
    db.refresh(trade)
    return serialize_one(db, trade)


def update_trade(db: Session, caller: Caller, trade_id: int, payload: TradeUpdate) -> dict:
    trade = load_for_action(db, caller, TRADE, trade_id, "update")
    changes = payload.changes()
    for name in ("item_offered", "category"):
        if name in changes:
            setattr(trade, name, changes[name])
    for name in ("item_requested", "description"):
        if name in changes:
            setattr(trade, name, changes[name] or None)
    if "images" in changes:
        trade.images = list(changes["images"] or [])
    touch(trade)
    db.commit()
    db.refresh(trade)
    return serialize_one(db, trade)


def set_trade_status(db: Session, caller: Caller, trade_id: int, status: str) -> dict:
    trade = load_for_action(db, caller, TRADE, trade_id, "set_status")
    trade.status = status
    touch(trade)
    db.commit()
    db.refresh(trade)
    return serialize_one(db, trade)


def rate_trade(db: Session, caller: Caller, trade_id: int, payload: TradeRatingIn) -> dict:
    trade = get_resource_or_404(db, TRADE, trade_id)
    if is_owner(caller, trade.user_id):
        raise ValidationError("You cannot rate your own trade")
    rating = TradeRating(
        trade_id=trade.id,
        rater_id=caller.user_id,
        rated_id=trade.user_id,
        rating=payload.rating,
        comment=payload.comment or None,
        created_at=utc_now_naive(),
    )
    db.add(rating)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("You have already rated this trade") from exc
    db.refresh(rating)
    return {
        "id": rating.id,
        "trade_id": rating.trade_id,
        "rater_id": rating.rater_id,
        "rated_id": rating.rated_id,
        "rating": rating.rating,
        "comment": rating.comment,
        "created_at": isoformat_or_none(rating.created_at),
    }
