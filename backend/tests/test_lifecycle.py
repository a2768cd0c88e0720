import pytest
from pydantic import ValidationError as SchemaError
from sqlalchemy.exc import SQLAlchemyError

from conftest import caller_for, make_user
from tradehub.core.errors import Conflict, Denied, NotFound, Unexpected, ValidationError
from tradehub.db.models.trade import Trade, TradeComment, TradeRating, TradeVote
from tradehub.schemas.trade import TradeCreate, TradeRatingIn, TradeUpdate
from tradehub.services import lifecycle, trades
from tradehub.services.lifecycle import TRADE, add_comment, delete_owned, list_comments
from tradehub.services.reactions import toggle_vote


def _trade_with_children(db):
    owner = make_user(db, username="owner")
    other = make_user(db, username="other")
    trade = trades.create_trade(
        db,
        caller_for(owner),
        TradeCreate(item_offered="Dominus", category="limiteds", images=["/uploads/trades/a.png"]),
    )
    add_comment(db, caller_for(other), TRADE, trade["id"], "interested")
    toggle_vote(db, TRADE, trade["id"], other.id, "up")
    trades.rate_trade(db, caller_for(other), trade["id"], TradeRatingIn(rating=5))
    return owner, other, trade["id"]


def test_owner_delete_removes_resource_and_every_child(db_session, monkeypatch):
    released = []
    monkeypatch.setattr(lifecycle.attachment_store, "release", lambda refs: released.extend(refs) or len(refs))
    owner, _, trade_id = _trade_with_children(db_session)

    result = delete_owned(db_session, caller_for(owner), TRADE, trade_id)

    assert result["removed"] == {"trade_comments": 1, "trade_votes": 1, "trade_ratings": 1}
    assert db_session.get(Trade, trade_id) is None
    for model in (TradeComment, TradeVote, TradeRating):
        assert db_session.query(model).filter(model.trade_id == trade_id).count() == 0
    assert released == ["/uploads/trades/a.png"]


def test_failed_cascade_rolls_back_everything(db_session, monkeypatch):
    released = []
    monkeypatch.setattr(lifecycle.attachment_store, "release", lambda refs: released.extend(refs) or 0)
    owner, _, trade_id = _trade_with_children(db_session)

    def failing_commit():
        raise SQLAlchemyError("disk full")

    monkeypatch.setattr(db_session, "commit", failing_commit)
    with pytest.raises(Unexpected):
        delete_owned(db_session, caller_for(owner), TRADE, trade_id)
    monkeypatch.undo()

    assert db_session.get(Trade, trade_id) is not None
    assert db_session.query(TradeComment).filter(TradeComment.trade_id == trade_id).count() == 1
    assert db_session.query(TradeVote).filter(TradeVote.trade_id == trade_id).count() == 1
    assert released == []


def test_non_owner_cannot_delete_but_moderator_can(db_session):
    _, other, trade_id = _trade_with_children(db_session)
    moderator = make_user(db_session, username="mod", role="moderator")

    with pytest.raises(Denied):
        delete_owned(db_session, caller_for(other), TRADE, trade_id)
    delete_owned(db_session, caller_for(moderator), TRADE, trade_id)
    assert db_session.get(Trade, trade_id) is None


def test_delete_missing_resource_is_not_found(db_session):
    user = make_user(db_session, username="alice")
    with pytest.raises(NotFound):
        delete_owned(db_session, caller_for(user), TRADE, 999)


def test_update_is_owner_only_and_partial(db_session):
    owner, other, trade_id = _trade_with_children(db_session)
    moderator = make_user(db_session, username="mod", role="moderator")

    updated = trades.update_trade(db_session, caller_for(owner), trade_id, TradeUpdate(description="fresh"))
    assert updated["description"] == "fresh"
    assert updated["item_offered"] == "Dominus"

    for caller in (caller_for(other), caller_for(moderator)):
        with pytest.raises(Denied):
            trades.update_trade(db_session, caller, trade_id, TradeUpdate(description="hijack"))


def test_cleared_required_field_is_rejected():
    with pytest.raises(SchemaError):
        TradeUpdate(item_offered=None)
    assert TradeUpdate(description=None).changes() == {"description": None}


def test_moderator_can_change_status(db_session):
    _, other, trade_id = _trade_with_children(db_session)
    moderator = make_user(db_session, username="mod", role="moderator")

    with pytest.raises(Denied):
        trades.set_trade_status(db_session, caller_for(other), trade_id, "cancelled")
    result = trades.set_trade_status(db_session, caller_for(moderator), trade_id, "completed")
    assert result["status"] == "completed"


def test_rating_rules(db_session):
    owner, other, trade_id = _trade_with_children(db_session)
    with pytest.raises(ValidationError):
        trades.rate_trade(db_session, caller_for(owner), trade_id, TradeRatingIn(rating=4))
    with pytest.raises(Conflict):
        trades.rate_trade(db_session, caller_for(other), trade_id, TradeRatingIn(rating=4))


def test_comments_are_validated_and_listed_newest_first(db_session):
    owner, other, trade_id = _trade_with_children(db_session)
    with pytest.raises(ValidationError):
        add_comment(db_session, caller_for(owner), TRADE, trade_id, "   ")
    with pytest.raises(ValidationError):
        add_comment(db_session, caller_for(owner), TRADE, trade_id, "x" * 1001)
    with pytest.raises(NotFound):
        add_comment(db_session, caller_for(owner), TRADE, 999, "hello")

    latest = add_comment(db_session, caller_for(owner), TRADE, trade_id, "still available")
    listing = list_comments(db_session, TRADE, trade_id)
    assert listing["count"] == 2
    assert listing["items"][0]["comment_id"] == latest["comment_id"]
    assert listing["items"][0]["username"] == "owner"
