import pytest

from conftest import caller_for, make_user
from tradehub.core.errors import NotFound, ValidationError
from tradehub.db.models.forum import ForumVote
from tradehub.schemas.forum import ForumPostCreate
from tradehub.schemas.wishlist import WishlistCreate
from tradehub.services import forum, reactions, wishlist
from tradehub.services.lifecycle import FORUM_POST, WISHLIST_ITEM
from tradehub.services.reactions import toggle_like, toggle_vote, vote_summary


@pytest.fixture()
def post_and_voter(db_session):
    author = make_user(db_session, username="author")
    voter = make_user(db_session, username="voter")
    post = forum.create_post(db_session, caller_for(author), ForumPostCreate(title="Tips", content="Read the rules"))
    return post["id"], voter.id


def test_vote_state_machine(db_session, post_and_voter):
    post_id, voter_id = post_and_voter

    first = toggle_vote(db_session, FORUM_POST, post_id, voter_id, "up")
    assert (first["upvotes"], first["downvotes"], first["user_vote"]) == (1, 0, "up")

    switched = toggle_vote(db_session, FORUM_POST, post_id, voter_id, "down")
    assert (switched["upvotes"], switched["downvotes"], switched["user_vote"]) == (0, 1, "down")

    retracted = toggle_vote(db_session, FORUM_POST, post_id, voter_id, "down")
    assert (retracted["upvotes"], retracted["downvotes"], retracted["user_vote"]) == (0, 0, None)
    assert retracted["conflict"] is False


def test_counts_never_double_count_a_user(db_session, post_and_voter):
    post_id, voter_id = post_and_voter
    for vote_type in ("up", "down", "up", "up", "down", "down", "up"):
        result = toggle_vote(db_session, FORUM_POST, post_id, voter_id, vote_type)
        assert result["upvotes"] + result["downvotes"] <= 1
        assert db_session.query(ForumVote).filter(ForumVote.post_id == post_id).count() <= 1


def test_votes_from_different_users_accumulate(db_session, post_and_voter):
    post_id, voter_id = post_and_voter
    other = make_user(db_session, username="other")
    toggle_vote(db_session, FORUM_POST, post_id, voter_id, "up")
    toggle_vote(db_session, FORUM_POST, post_id, other.id, "up")

    summary = vote_summary(db_session, FORUM_POST, post_id, None)
    assert summary == {"upvotes": 2, "downvotes": 0, "user_vote": None}


def test_concurrent_insert_reports_conflict_with_fresh_state(db_session, post_and_voter, monkeypatch):
    post_id, voter_id = post_and_voter
    toggle_vote(db_session, FORUM_POST, post_id, voter_id, "up")

    # Simulate a request that read "no vote" before a parallel request wrote one.
    real_find = reactions._find_vote
    calls = {"n": 0}

    def stale_find(db, kind, resource_id, user_id):
        calls["n"] += 1
        if calls["n"] == 1:
            return None
        return real_find(db, kind, resource_id, user_id)

    monkeypatch.setattr(reactions, "_find_vote", stale_find)
    result = toggle_vote(db_session, FORUM_POST, post_id, voter_id, "down")

    assert result["conflict"] is True
    assert (result["upvotes"], result["downvotes"], result["user_vote"]) == (1, 0, "up")
    assert db_session.query(ForumVote).filter(ForumVote.post_id == post_id).count() == 1


def test_vote_rejects_bad_input(db_session, post_and_voter):
    post_id, voter_id = post_and_voter
    with pytest.raises(ValidationError):
        toggle_vote(db_session, FORUM_POST, post_id, voter_id, "sideways")
    with pytest.raises(NotFound):
        toggle_vote(db_session, FORUM_POST, 999, voter_id, "up")
    with pytest.raises(ValidationError):
        toggle_vote(db_session, WISHLIST_ITEM, post_id, voter_id, "up")


def test_watch_toggle(db_session):
    owner = make_user(db_session, username="owner")
    watcher = make_user(db_session, username="watcher")
    item = wishlist.create_item(db_session, caller_for(owner), WishlistCreate(item_name="Valkyrie", category="accessories"))

    on = toggle_like(db_session, WISHLIST_ITEM, item["id"], watcher.id)
    assert on == {"count": 1, "liked": True, "conflict": False}
    off = toggle_like(db_session, WISHLIST_ITEM, item["id"], watcher.id)
    assert off == {"count": 0, "liked": False, "conflict": False}
