import logging

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from tradehub.core.observability import log_business_event
from tradehub.core.permissions import Caller
from tradehub.core.security import get_current_caller, get_optional_caller
from tradehub.db.session import get_db
from tradehub.schemas.common import CommentIn, ForumCategory, VoteIn
from tradehub.schemas.forum import ForumPostCreate, ForumPostUpdate
from tradehub.services import forum
from tradehub.services.lifecycle import FORUM_POST, add_comment, delete_owned, get_resource_or_404, list_comments
from tradehub.services.reactions import toggle_vote, vote_summary

router = APIRouter(prefix="/forum", tags=["forum"])
logger = logging.getLogger(__name__)


@router.get("/posts")
def list_posts(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1),
    category: ForumCategory | None = None,
    db: Session = Depends(get_db),
):
    return forum.list_posts(db, page=page, limit=limit, category=category)


@router.post("/posts", status_code=status.HTTP_201_CREATED)
def create_post(
    payload: ForumPostCreate,
    request: Request,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    post = forum.create_post(db, caller, payload)
    log_business_event(logger, request, event="forum.create", caller=caller, post_id=post["id"])
    return post


@router.get("/posts/{post_id}")
def get_post(post_id: int, db: Session = Depends(get_db)):
    return forum.get_post(db, post_id)


@router.put("/posts/{post_id}")
def update_post(
    post_id: int,
    payload: ForumPostUpdate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return forum.update_post(db, caller, post_id, payload)


@router.delete("/posts/{post_id}")
def delete_post(
    post_id: int,
    request: Request,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    result = delete_owned(db, caller, FORUM_POST, post_id)
    log_business_event(logger, request, event="forum.delete", caller=caller, post_id=post_id)
    return {"message": "Post deleted", **result}


@router.get("/posts/{post_id}/comments")
def get_comments(post_id: int, db: Session = Depends(get_db)):
    return list_comments(db, FORUM_POST, post_id)


@router.post("/posts/{post_id}/comments", status_code=status.HTTP_201_CREATED)
def post_comment(
    post_id: int,
    payload: CommentIn,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return add_comment(db, caller, FORUM_POST, post_id, payload.content)


@router.get("/posts/{post_id}/votes")
def get_votes(
    post_id: int,
    db: Session = Depends(get_db),
    caller: Caller | None = Depends(get_optional_caller),
):
    get_resource_or_404(db, FORUM_POST, post_id)
    return vote_summary(db, FORUM_POST, post_id, caller.user_id if caller else None)


@router.post("/posts/{post_id}/vote")
def vote(
    post_id: int,
    payload: VoteIn,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return toggle_vote(db, FORUM_POST, post_id, caller.user_id, payload.vote_type)
