import pytest

from conftest import caller_for, make_user
from tradehub.core.errors import Conflict, Denied, ValidationError
from tradehub.schemas.wishlist import WishlistCreate, WishlistUpdate
from tradehub.services import wishlist


def _create(db, user, name, **fields):
    payload = WishlistCreate(item_name=name, category=fields.pop("category", "limiteds"), **fields)
    return wishlist.create_item(db, caller_for(user), payload)


def test_defaults_are_applied(db_session):
    owner = make_user(db_session, username="owner")
    item = _create(db_session, owner, "Sparkle Time Fedora")
    assert item["max_price"] == "Negotiable"
    assert item["description"] == ""
    assert item["priority"] == "medium"
    assert item["watchers"] == 0
    assert item["username"] == "owner"


def test_names_are_unique_per_owner_case_insensitively(db_session):
    owner = make_user(db_session, username="owner")
    other = make_user(db_session, username="other")
    _create(db_session, owner, "Dominus Empyreus")

    with pytest.raises(Conflict):
        _create(db_session, owner, "dominus empyreus")
    assert _create(db_session, other, "Dominus Empyreus")["user_id"] == other.id


def test_rename_checks_uniqueness_but_allows_case_change(db_session):
    owner = make_user(db_session, username="owner")
    first = _create(db_session, owner, "Korblox")
    _create(db_session, owner, "Headless")

    with pytest.raises(Conflict):
        wishlist.update_item(db_session, caller_for(owner), first["id"], WishlistUpdate(item_name="HEADLESS"))
    renamed = wishlist.update_item(db_session, caller_for(owner), first["id"], WishlistUpdate(item_name="KORBLOX"))
    assert renamed["item_name"] == "KORBLOX"


def test_only_owner_updates(db_session):
    owner = make_user(db_session, username="owner")
    admin = make_user(db_session, username="admin", role="admin")
    item = _create(db_session, owner, "Korblox")
    with pytest.raises(Denied):
        wishlist.update_item(db_session, caller_for(admin), item["id"], WishlistUpdate(priority="high"))


def test_listing_filters_search_and_sort(db_session):
    owner = make_user(db_session, username="owner")
    _create(db_session, owner, "Alpha Hat", priority="low", description="shiny")
    _create(db_session, owner, "Beta Gear", category="gear", priority="high")
    _create(db_session, owner, "Gamma Hat", priority="high")

    by_name = wishlist.list_items(db_session, sort_by="item_name", sort_order="asc")
    assert [i["item_name"] for i in by_name["items"]] == ["Alpha Hat", "Beta Gear", "Gamma Hat"]
    assert by_name["pagination"] == {"page": 1, "limit": 10, "total": 3, "pages": 1}

    assert wishlist.list_items(db_session, category="gear")["pagination"]["total"] == 1
    assert wishlist.list_items(db_session, priority="high")["pagination"]["total"] == 2
    assert wishlist.list_items(db_session, search="shiny")["items"][0]["item_name"] == "Alpha Hat"

    with pytest.raises(ValidationError):
        wishlist.list_items(db_session, sort_by="password_hash")
