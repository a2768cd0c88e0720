import logging
from typing import Literal

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from tradehub.core.observability import log_business_event
from tradehub.core.permissions import Caller
from tradehub.core.security import get_current_caller, get_optional_caller
from tradehub.db.session import get_db
from tradehub.schemas.common import CommentIn
from tradehub.schemas.wishlist import WishlistCreate, WishlistUpdate
from tradehub.services import wishlist
from tradehub.services.accounts import get_user_or_404
from tradehub.services.lifecycle import WISHLIST_ITEM, add_comment, delete_owned, get_resource_or_404, list_comments
from tradehub.services.reactions import like_summary, toggle_like

router = APIRouter(prefix="/wishlist", tags=["wishlist"])
logger = logging.getLogger(__name__)


@router.get("")
def list_items(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1),
    category: str | None = None,
    priority: str | None = None,
    search: str | None = None,
    sort_by: str = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    db: Session = Depends(get_db),
):
    return wishlist.list_items(
        db,
        page=page,
        limit=limit,
        category=category,
        priority=priority,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
    )


@router.get("/user/{user_id}")
def list_user_items(
    user_id: int,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1),
    db: Session = Depends(get_db),
):
    get_user_or_404(db, user_id)
    return wishlist.list_items(db, page=page, limit=limit, user_id=user_id)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_item(
    payload: WishlistCreate,
    request: Request,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    item = wishlist.create_item(db, caller, payload)
    log_business_event(logger, request, event="wishlist.create", caller=caller, item_id=item["id"])
    return item


@router.get("/{item_id}")
def get_item(item_id: int, db: Session = Depends(get_db)):
    return wishlist.get_item(db, item_id)


@router.put("/{item_id}")
def update_item(
    item_id: int,
    payload: WishlistUpdate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return wishlist.update_item(db, caller, item_id, payload)


@router.delete("/{item_id}")
def delete_item(
    item_id: int,
    request: Request,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    result = delete_owned(db, caller, WISHLIST_ITEM, item_id)
    log_business_event(logger, request, event="wishlist.delete", caller=caller, item_id=item_id)
    return {"message": "Wishlist item deleted", **result}


@router.get("/{item_id}/comments")
def get_comments(item_id: int, db: Session = Depends(get_db)):
    return list_comments(db, WISHLIST_ITEM, item_id)


@router.post("/{item_id}/comments", status_code=status.HTTP_201_CREATED)
def post_comment(
    item_id: int,
    payload: CommentIn,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return add_comment(db, caller, WISHLIST_ITEM, item_id, payload.content)


@router.get("/{item_id}/watch")
def get_watch(
    item_id: int,
    db: Session = Depends(get_db),
    caller: Caller | None = Depends(get_optional_caller),
):
    get_resource_or_404(db, WISHLIST_ITEM, item_id)
    return like_summary(db, WISHLIST_ITEM, item_id, caller.user_id if caller else None)


@router.post("/{item_id}/watch")
def watch(
    item_id: int,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return toggle_like(db, WISHLIST_ITEM, item_id, caller.user_id)
