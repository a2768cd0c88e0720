import pytest

from tradehub.core.errors import Denied, NotFound
from tradehub.core.permissions import (
    DENY_INSUFFICIENT_ROLE,
    DENY_NOT_OWNER,
    DENY_RESOURCE_NOT_FOUND,
    Caller,
    authorize,
    enforce,
    is_owner,
    normalize_id,
    normalize_role,
    permissions_matrix_payload,
)

OWNER = Caller(user_id=1, username="owner", role="user")
STRANGER = Caller(user_id=2, username="stranger", role="verified")
MODERATOR = Caller(user_id=3, username="mod", role="moderator")
ADMIN = Caller(user_id=4, username="admin", role="admin")


def test_normalize_role_unknown_defaults_to_user():
    assert normalize_role("root-admin") == "user"
    assert normalize_role(None) == "user"
    assert normalize_role(" Moderator ") == "moderator"


def test_ownership_compares_canonical_ids():
    class Ref:
        id = "1"

    assert normalize_id("1") == 1
    assert normalize_id(True) is None
    assert is_owner(OWNER, "1")
    assert is_owner(OWNER, Ref())
    assert not is_owner(OWNER, None)
    assert not is_owner(OWNER, "abc")


def test_read_is_open_to_everyone():
    for caller in (OWNER, STRANGER, MODERATOR, ADMIN):
        assert authorize(caller, 1, "read").allowed


def test_update_is_owner_only_even_for_staff():
    assert authorize(OWNER, 1, "update").allowed
    for caller in (STRANGER, MODERATOR, ADMIN):
        decision = authorize(caller, 1, "update")
        assert not decision.allowed
        assert decision.reason == DENY_NOT_OWNER


@pytest.mark.parametrize("action", ["delete", "set_status"])
def test_delete_and_status_allow_owner_or_moderation_roles(action):
    assert authorize(OWNER, 1, action).allowed
    assert authorize(MODERATOR, 1, action).allowed
    assert authorize(ADMIN, 1, action).allowed
    assert authorize(STRANGER, 1, action).reason == DENY_NOT_OWNER


def test_role_gated_actions():
    assert authorize(MODERATOR, None, "moderate").allowed
    assert authorize(STRANGER, None, "moderate").reason == DENY_INSUFFICIENT_ROLE
    assert authorize(ADMIN, None, "assign_role").allowed
    assert authorize(MODERATOR, None, "assign_role").reason == DENY_INSUFFICIENT_ROLE


def test_missing_resource_wins_over_every_other_reason():
    for caller in (OWNER, STRANGER, ADMIN):
        decision = authorize(caller, None, "update", exists=False)
        assert decision.reason == DENY_RESOURCE_NOT_FOUND


def test_enforce_maps_decisions_to_domain_errors():
    with pytest.raises(NotFound):
        enforce(OWNER, None, "delete", exists=False, what="trade")
    with pytest.raises(Denied) as exc_info:
        enforce(STRANGER, 1, "delete", what="trade")
    assert exc_info.value.reason == DENY_NOT_OWNER
    assert exc_info.value.details == {"reason": DENY_NOT_OWNER}
    enforce(OWNER, 1, "update")


def test_permissions_matrix_payload_lists_roles_and_actions():
    payload = permissions_matrix_payload()
    assert payload["roles"] == ["user", "verified", "middleman", "moderator", "admin", "banned"]
    assert {row["action"] for row in payload["actions"]} == {
        "read",
        "update",
        "delete",
        "set_status",
        "moderate",
        "assign_role",
    }
