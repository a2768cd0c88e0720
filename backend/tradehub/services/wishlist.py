from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from tradehub.core.errors import Conflict, ValidationError
from tradehub.core.paging import build_paged_response, paginate_query
from tradehub.core.permissions import Caller
from tradehub.core.utils import isoformat_or_none, utc_now_naive
from tradehub.db.models.wishlist import WishlistComment, WishlistItem
from tradehub.schemas.wishlist import WishlistCreate, WishlistUpdate
from tradehub.services.lifecycle import (
    WISHLIST_ITEM,
    child_counts,
    get_resource_or_404,
    load_for_action,
    owner_fields,
    public_profiles,
    touch,
)
from tradehub.services.reactions import like_counts

DEFAULT_MAX_PRICE = "Negotiable"
SORTABLE_FIELDS = {
    "created_at": WishlistItem.created_at,
    "updated_at": WishlistItem.updated_at,
    "item_name": WishlistItem.item_name,
    "priority": WishlistItem.priority,
}


def _serialize_many(db: Session, items: list[WishlistItem]) -> list[dict]:
    ids = [i.id for i in items]
    profiles = public_profiles(db, [i.user_id for i in items])
    comments = child_counts(db, WishlistComment, "wishlist_id", ids)
    watchers = like_counts(db, WISHLIST_ITEM, ids)
    return [
        {
            "id": item.id,
            "item_name": item.item_name,
            "description": item.description,
            "max_price": item.max_price,
            "category": item.category,
            "priority": item.priority,
            "created_at": isoformat_or_none(item.created_at),
            "updated_at": isoformat_or_none(item.updated_at),
            "watchers": watchers.get(item.id, 0),
            "comment_count": comments.get(item.id, 0),
            **owner_fields(profiles, item.user_id),
        }
        for item in items
    ]


def _ensure_unique_name(db: Session, owner_id: int, name: str, *, exclude_id: int | None = None) -> None:
    query = db.query(WishlistItem.id).filter(
        WishlistItem.user_id == owner_id,
        func.lower(WishlistItem.item_name) == name.strip().lower(),
    )
    if exclude_id is not None:
        query = query.filter(WishlistItem.id != exclude_id)
    if query.first() is not None:
        raise Conflict("You already have a wishlist item with this name")


def list_items(
    db: Session,
    *,
    page: int = 1,
    limit: int = 10,
    category: str | None = None,
    priority: str | None = None,
    search: str | None = None,
    user_id: int | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> dict:
    column = SORTABLE_FIELDS.get(sort_by)
    if column is None:
        raise ValidationError(f"Cannot sort by {sort_by}")
    query = db.query(WishlistItem)
    if category and category != "all":
        query = query.filter(WishlistItem.category == category)
    if priority and priority != "all":
        query = query.filter(WishlistItem.priority == priority)
    if user_id is not None:
        query = query.filter(WishlistItem.user_id == user_id)
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(WishlistItem.item_name.ilike(pattern), WishlistItem.description.ilike(pattern)))
    ordering = column.asc() if sort_order == "asc" else column.desc()
    query = query.order_by(ordering, WishlistItem.id.desc())
    items, total, safe_page, safe_limit = paginate_query(query, page=page, limit=limit)
    return build_paged_response(items=_serialize_many(db, items), total=total, page=safe_page, limit=safe_limit)


def get_item(db: Session, item_id: int) -> dict:
    return _serialize_many(db, [get_resource_or_404(db, WISHLIST_ITEM, item_id)])[0]


def create_item(db: Session, caller: Caller, payload: WishlistCreate) -> dict:
    _ensure_unique_name(db, caller.user_id, payload.item_name)
    now = utc_now_naive()
    item = WishlistItem(
        user_id=caller.user_id,
        item_name=payload.item_name,
        description=payload.description or "",
        max_price=payload.max_price or DEFAULT_MAX_PRICE,
        category=payload.category,
        priority=payload.priority,
        created_at=now,
        updated_at=now,
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    return _serialize_many(db, [item])[0]


def update_item(db: Session, caller: Caller, item_id: int, payload: WishlistUpdate) -> dict:
    item = load_for_action(db, caller, WISHLIST_ITEM, item_id, "update")
    changes = payload.changes()
    new_name = changes.get("item_name")
    if new_name is not None and new_name.lower() != item.item_name.lower():
        _ensure_unique_name(db, item.user_id, new_name, exclude_id=item.id)

    for name in ("item_name", "category", "priority"):
        if name in changes:
            setattr(item, name, changes[name])
    if "description" in changes:
        item.description = changes["description"] or ""
    if "max_price" in changes:
        item.max_price = changes["max_price"] or DEFAULT_MAX_PRICE
    touch(item)
    db.commit()
    db.refresh(item)
    return _serialize_many(db, [item])[0]
