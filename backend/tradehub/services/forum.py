from sqlalchemy.orm import Session

from tradehub.core.paging import build_paged_response, paginate_query
from tradehub.core.permissions import Caller
from tradehub.core.utils import isoformat_or_none, utc_now_naive
from tradehub.db.models.forum import ForumComment, ForumPost
from tradehub.schemas.forum import ForumPostCreate, ForumPostUpdate
from tradehub.services.lifecycle import (
    FORUM_POST,
    child_counts,
    get_resource_or_404,
    load_for_action,
    owner_fields,
    public_profiles,
    touch,
)
from tradehub.services.reactions import vote_counts


def _serialize_many(db: Session, posts: list[ForumPost]) -> list[dict]:
    ids = [p.id for p in posts]
    profiles = public_profiles(db, [p.user_id for p in posts])
    comments = child_counts(db, ForumComment, "post_id", ids)
    votes = vote_counts(db, FORUM_POST, ids)
    return [
        {
            "id": post.id,
            "title": post.title,
            "content": post.content,
            "category": post.category,
            "images": list(post.images or []),
            "created_at": isoformat_or_none(post.created_at),
            "updated_at": isoformat_or_none(post.updated_at),
            "comment_count": comments.get(post.id, 0),
            **votes[post.id],
            **owner_fields(profiles, post.user_id),
        }
        for post in posts
    ]


def list_posts(db: Session, *, page: int = 1, limit: int = 10, category: str | None = None) -> dict:
    query = db.query(ForumPost)
    if category:
        query = query.filter(ForumPost.category == category)
    query = query.order_by(ForumPost.created_at.desc(), ForumPost.id.desc())
    items, total, safe_page, safe_limit = paginate_query(query, page=page, limit=limit)
    return build_paged_response(items=_serialize_many(db, items), total=total, page=safe_page, limit=safe_limit)


def get_post(db: Session, post_id: int) -> dict:
    return _serialize_many(db, [get_resource_or_404(db, FORUM_POST, post_id)])[0]


def create_post(db: Session, caller: Caller, payload: ForumPostCreate) -> dict:
    now = utc_now_naive()
    post = ForumPost(
        user_id=caller.user_id,
        title=payload.title,
        content=payload.content,
        category=payload.category,
        images=list(payload.images),
        created_at=now,
        updated_at=now,
    )
    db.add(post)
    db.commit()
    db.refresh(post)
    return _serialize_many(db, [post])[0]


def update_post(db: Session, caller: Caller, post_id: int, payload: ForumPostUpdate) -> dict:
    post = load_for_action(db, caller, FORUM_POST, post_id, "update")
    for name, value in payload.changes().items():
        if name == "images":
            value = list(value or [])
        setattr(post, name, value)
    touch(post)
    db.commit()
    db.refresh(post)
    return _serialize_many(db, [post])[0]
