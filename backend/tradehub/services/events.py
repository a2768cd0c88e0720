from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tradehub.core.errors import Conflict, NotFound, ValidationError
from tradehub.core.paging import build_paged_response, paginate_query
from tradehub.core.permissions import Caller, enforce
from tradehub.core.utils import isoformat_or_none, naive_utc, utc_now_naive
from tradehub.db.models.event import Event, EventComment, EventParticipant
from tradehub.schemas.event import EventCreate, EventUpdate
from tradehub.services.lifecycle import (
    EVENT,
    child_counts,
    get_resource_or_404,
    load_for_action,
    owner_fields,
    public_profiles,
    touch,
)
from tradehub.services.reactions import vote_counts

EVENT_STATUSES = ("upcoming", "active", "ended")


def event_status(start: datetime, end: datetime, now: datetime | None = None) -> str:
    now = now or utc_now_naive()
    if now < start:
        return "upcoming"
    if now >= end:
        return "ended"
    return "active"


def _serialize_many(db: Session, events: list[Event]) -> list[dict]:
    ids = [e.id for e in events]
    profiles = public_profiles(db, [e.created_by for e in events])
    comments = child_counts(db, EventComment, "event_id", ids)
    participants = child_counts(db, EventParticipant, "event_id", ids)
    votes = vote_counts(db, EVENT, ids)
    now = utc_now_naive()
    items = []
    for event in events:
        creator = owner_fields(profiles, event.created_by)
        items.append(
            {
                "id": event.id,
                "title": event.title,
                "description": event.description,
                "type": event.type,
                "status": event_status(event.start_date, event.end_date, now),
                "start_date": isoformat_or_none(event.start_date),
                "end_date": isoformat_or_none(event.end_date),
                "prizes": list(event.prizes or []),
                "requirements": list(event.requirements or []),
                "max_participants": event.max_participants,
                "participant_count": participants.get(event.id, 0),
                "comment_count": comments.get(event.id, 0),
                "created_at": isoformat_or_none(event.created_at),
                "updated_at": isoformat_or_none(event.updated_at),
                **votes[event.id],
                **creator,
            }
        )
    return items


def list_events(
    db: Session,
    *,
    page: int = 1,
    limit: int = 20,
    type: str | None = None,
    status: str | None = None,
) -> dict:
    if status and status not in EVENT_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(EVENT_STATUSES)}")
    query = db.query(Event)
    if type:
        query = query.filter(Event.type == type)
    now = utc_now_naive()
    if status == "upcoming":
        query = query.filter(Event.start_date > now)
    elif status == "active":
        query = query.filter(Event.start_date <= now, Event.end_date > now)
    elif status == "ended":
        query = query.filter(Event.end_date <= now)
    query = query.order_by(Event.created_at.desc(), Event.id.desc())
    items, total, safe_page, safe_limit = paginate_query(query, page=page, limit=limit)
    return build_paged_response(items=_serialize_many(db, items), total=total, page=safe_page, limit=safe_limit)


def get_event(db: Session, event_id: int) -> dict:
    return _serialize_many(db, [get_resource_or_404(db, EVENT, event_id)])[0]


def create_event(db: Session, caller: Caller, payload: EventCreate) -> dict:
    enforce(caller, None, "moderate", what="event")
    now = utc_now_naive()
    event = Event(
        created_by=caller.user_id,
        title=payload.title,
        description=payload.description,
        type=payload.type,
        start_date=naive_utc(payload.start_date),
        end_date=naive_utc(payload.end_date),
        prizes=list(payload.prizes),
        requirements=list(payload.requirements),
        max_participants=payload.max_participants,
        created_at=now,
        updated_at=now,
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    return _serialize_many(db, [event])[0]


def update_event(db: Session, caller: Caller, event_id: int, payload: EventUpdate) -> dict:
    event = load_for_action(db, caller, EVENT, event_id, "update")
    changes = payload.changes()
    start = naive_utc(changes["start_date"]) if "start_date" in changes else event.start_date
    end = naive_utc(changes["end_date"]) if "end_date" in changes else event.end_date
    if start >= end:
        raise ValidationError("End date must be after start date")

    for name in ("title", "description", "type", "max_participants"):
        if name in changes:
            setattr(event, name, changes[name])
    for name in ("prizes", "requirements"):
        if name in changes:
            setattr(event, name, list(changes[name] or []))
    event.start_date = start
    event.end_date = end
    touch(event)
    db.commit()
    db.refresh(event)
    return _serialize_many(db, [event])[0]


def join_event(db: Session, caller: Caller, event_id: int) -> dict:
    event = get_resource_or_404(db, EVENT, event_id)
    if event_status(event.start_date, event.end_date) == "ended":
        raise ValidationError("This event has ended")

    already = (
        db.query(EventParticipant.id)
        .filter(EventParticipant.event_id == event.id, EventParticipant.user_id == caller.user_id)
        .first()
    )
    if already is not None:
        raise Conflict("You have already joined this event")

    count = child_counts(db, EventParticipant, "event_id", [event.id]).get(event.id, 0)
    if event.max_participants and count >= event.max_participants:
        raise Conflict("This event is full")

    db.add(EventParticipant(event_id=event.id, user_id=caller.user_id, joined_at=utc_now_naive()))
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("You have already joined this event") from exc
    return {
        "joined": True,
        "participant_count": child_counts(db, EventParticipant, "event_id", [event.id]).get(event.id, 0),
    }


def leave_event(db: Session, caller: Caller, event_id: int) -> dict:
    event = get_resource_or_404(db, EVENT, event_id)
    removed = (
        db.query(EventParticipant)
        .filter(EventParticipant.event_id == event.id, EventParticipant.user_id == caller.user_id)
        .delete(synchronize_session=False)
    )
    if not removed:
        db.rollback()
        raise NotFound("You have not joined this event")
    db.commit()
    return {
        "joined": False,
        "participant_count": child_counts(db, EventParticipant, "event_id", [event.id]).get(event.id, 0),
    }
