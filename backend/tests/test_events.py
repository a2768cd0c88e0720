from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError as SchemaError

from conftest import caller_for, make_user
from tradehub.core.errors import Conflict, Denied, NotFound, ValidationError
from tradehub.core.utils import utc_now_naive
from tradehub.db.models.event import Event
from tradehub.schemas.event import EventCreate, EventUpdate
from tradehub.services import events


def _payload(start: datetime, end: datetime, **fields) -> EventCreate:
    return EventCreate(title="Summer giveaway", description="Free hats", type="giveaway", start_date=start, end_date=end, **fields)


def test_status_is_derived_from_dates():
    now = datetime(2024, 6, 1, 12, 0)
    assert events.event_status(now + timedelta(hours=1), now + timedelta(hours=2), now) == "upcoming"
    assert events.event_status(now - timedelta(hours=1), now + timedelta(hours=1), now) == "active"
    assert events.event_status(now - timedelta(hours=2), now, now) == "ended"


def test_mixed_offset_dates_compare_as_utc():
    payload = _payload("2030-01-01T00:00:00", "2030-01-02T00:00:00Z")
    assert payload.end_date.tzinfo is not None
    with pytest.raises(SchemaError):
        _payload("2030-01-02T00:00:00", "2030-01-01T00:00:00Z")


def test_only_moderation_roles_create_events(db_session):
    user = make_user(db_session, username="user")
    moderator = make_user(db_session, username="mod", role="moderator")
    now = utc_now_naive()

    with pytest.raises(Denied):
        events.create_event(db_session, caller_for(user), _payload(now, now + timedelta(days=1)))
    created = events.create_event(db_session, caller_for(moderator), _payload(now - timedelta(hours=1), now + timedelta(days=1)))
    assert created["status"] == "active"
    assert created["user_id"] == moderator.id


def test_update_validates_merged_dates(db_session):
    moderator = make_user(db_session, username="mod", role="moderator")
    now = utc_now_naive()
    event = events.create_event(db_session, caller_for(moderator), _payload(now, now + timedelta(days=1)))

    with pytest.raises(ValidationError):
        events.update_event(db_session, caller_for(moderator), event["id"], EventUpdate(end_date=now - timedelta(days=1)))
    updated = events.update_event(db_session, caller_for(moderator), event["id"], EventUpdate(title="Winter giveaway"))
    assert updated["title"] == "Winter giveaway"


def test_join_and_leave(db_session):
    moderator = make_user(db_session, username="mod", role="moderator")
    first = make_user(db_session, username="first")
    second = make_user(db_session, username="second")
    now = utc_now_naive()
    event = events.create_event(
        db_session,
        caller_for(moderator),
        _payload(now + timedelta(hours=1), now + timedelta(days=1), max_participants=1),
    )

    assert events.join_event(db_session, caller_for(first), event["id"]) == {"joined": True, "participant_count": 1}
    with pytest.raises(Conflict):
        events.join_event(db_session, caller_for(first), event["id"])
    with pytest.raises(Conflict):
        events.join_event(db_session, caller_for(second), event["id"])

    assert events.leave_event(db_session, caller_for(first), event["id"]) == {"joined": False, "participant_count": 0}
    with pytest.raises(NotFound):
        events.leave_event(db_session, caller_for(first), event["id"])


def test_cannot_join_ended_event(db_session):
    moderator = make_user(db_session, username="mod", role="moderator")
    user = make_user(db_session, username="user")
    now = utc_now_naive()
    event = events.create_event(db_session, caller_for(moderator), _payload(now, now + timedelta(days=1)))
    db_session.query(Event).filter(Event.id == event["id"]).update(
        {Event.start_date: now - timedelta(days=2), Event.end_date: now - timedelta(days=1)}
    )
    db_session.commit()

    with pytest.raises(ValidationError):
        events.join_event(db_session, caller_for(user), event["id"])


def test_list_filters_by_status(db_session):
    moderator = make_user(db_session, username="mod", role="moderator")
    now = utc_now_naive()
    events.create_event(db_session, caller_for(moderator), _payload(now + timedelta(days=1), now + timedelta(days=2)))
    events.create_event(db_session, caller_for(moderator), _payload(now - timedelta(days=1), now + timedelta(days=1)))

    assert events.list_events(db_session, status="upcoming")["pagination"]["total"] == 1
    assert events.list_events(db_session, status="active")["pagination"]["total"] == 1
    assert events.list_events(db_session, status="ended")["pagination"]["total"] == 0
    with pytest.raises(ValidationError):
        events.list_events(db_session, status="someday")
