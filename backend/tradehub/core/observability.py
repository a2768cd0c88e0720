import logging

from fastapi import Request

from tradehub.core.api_response import get_request_id
from tradehub.core.permissions import Caller


def log_business_event(
    logger: logging.Logger,
    request: Request | None,
    *,
    event: str,
    caller: Caller | None = None,
    **fields,
) -> None:
    request_id = get_request_id(request)
    chunks = [f"event={event}", f"request_id={request_id}"]
    if caller is not None:
        chunks.append(f"actor_id={caller.user_id}")
        chunks.append(f"actor_role={caller.role}")
    for key, value in fields.items():
        chunks.append(f"{key}={value}")
    logger.info("business_event %s", " ".join(chunks))
