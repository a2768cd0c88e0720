import os
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.orm import Query

from tradehub.core.utils import page_count

T = TypeVar("T")

DEFAULT_PAGE_LIMIT = 10
PAGE_LIMIT_MAX = int(os.getenv("PAGE_LIMIT_MAX", "100"))


def paginate_query(
    query: Query,
    *,
    page: int = 1,
    limit: int = DEFAULT_PAGE_LIMIT,
    max_limit: int = PAGE_LIMIT_MAX,
) -> tuple[list[T], int, int, int]:
    safe_page = max(1, page)
    safe_limit = max(1, min(limit, max_limit))
    total = query.order_by(None).count()
    items = query.offset((safe_page - 1) * safe_limit).limit(safe_limit).all()
    return items, total, safe_page, safe_limit


def build_paged_response(
    *,
    items: list[T],
    total: int,
    page: int,
    limit: int,
    serializer: Callable[[T], dict] | None = None,
) -> dict:
    if serializer is None:
        serialized = items
    else:
        serialized = [serializer(item) for item in items]
    return {
        "items": serialized,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": page_count(total, limit),
        },
    }
