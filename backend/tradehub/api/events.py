import logging

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from tradehub.core.observability import log_business_event
from tradehub.core.permissions import Caller
from tradehub.core.security import get_current_caller, get_optional_caller
from tradehub.db.session import get_db
from tradehub.schemas.common import CommentIn, EventType, VoteIn
from tradehub.schemas.event import EventCreate, EventUpdate
from tradehub.services import events
from tradehub.services.lifecycle import EVENT, add_comment, delete_owned, get_resource_or_404, list_comments
from tradehub.services.reactions import toggle_vote, vote_summary

router = APIRouter(prefix="/events", tags=["events"])
logger = logging.getLogger(__name__)


@router.get("")
def list_events(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1),
    type: EventType | None = None,
    status: str | None = None,
    db: Session = Depends(get_db),
):
    return events.list_events(db, page=page, limit=limit, type=type, status=status)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_event(
    payload: EventCreate,
    request: Request,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    event = events.create_event(db, caller, payload)
    log_business_event(logger, request, event="event.create", caller=caller, event_id=event["id"])
    return event


@router.get("/{event_id}")
def get_event(event_id: int, db: Session = Depends(get_db)):
    return events.get_event(db, event_id)


@router.put("/{event_id}")
def update_event(
    event_id: int,
    payload: EventUpdate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return events.update_event(db, caller, event_id, payload)


@router.delete("/{event_id}")
def delete_event(
    event_id: int,
    request: Request,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    result = delete_owned(db, caller, EVENT, event_id)
    log_business_event(logger, request, event="event.delete", caller=caller, event_id=event_id)
    return {"message": "Event deleted", **result}


@router.post("/{event_id}/join")
def join_event(
    event_id: int,
    request: Request,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    result = events.join_event(db, caller, event_id)
    log_business_event(logger, request, event="event.join", caller=caller, event_id=event_id)
    return result


@router.post("/{event_id}/leave")
def leave_event(
    event_id: int,
    request: Request,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    result = events.leave_event(db, caller, event_id)
    log_business_event(logger, request, event="event.leave", caller=caller, event_id=event_id)
    return result


@router.get("/{event_id}/comments")
def get_comments(event_id: int, db: Session = Depends(get_db)):
    return list_comments(db, EVENT, event_id)


@router.post("/{event_id}/comments", status_code=status.HTTP_201_CREATED)
def post_comment(
    event_id: int,
    payload: CommentIn,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return add_comment(db, caller, EVENT, event_id, payload.content)


@router.get("/{event_id}/votes")
def get_votes(
    event_id: int,
    db: Session = Depends(get_db),
    caller: Caller | None = Depends(get_optional_caller),
):
    get_resource_or_404(db, EVENT, event_id)
    return vote_summary(db, EVENT, event_id, caller.user_id if caller else None)


@router.post("/{event_id}/vote")
def vote(
    event_id: int,
    payload: VoteIn,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return toggle_vote(db, EVENT, event_id, caller.user_id, payload.vote_type)
