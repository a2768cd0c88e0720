from dataclasses import dataclass
from typing import Any, Literal

from tradehub.core.errors import Denied, NotFound

Role = Literal["user", "verified", "middleman", "moderator", "admin", "banned"]
Action = Literal["read", "update", "delete", "set_status", "moderate", "assign_role"]

ROLES: tuple[str, ...] = ("user", "verified", "middleman", "moderator", "admin", "banned")
MODERATION_ROLES: frozenset[str] = frozenset({"admin", "moderator"})
ROLE_ASSIGNERS: frozenset[str] = frozenset({"admin"})

DENY_NOT_OWNER = "NotOwner"
DENY_INSUFFICIENT_ROLE = "InsufficientRole"
DENY_RESOURCE_NOT_FOUND = "ResourceNotFound"


@dataclass(frozen=True)
class Caller:
    """The resolved identity of an authenticated request."""

    user_id: int
    username: str
    role: str


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str | None = None


ALLOW = Decision(True)


def normalize_role(role: str | None) -> str:
    value = (role or "").strip().lower()
    if value in ROLES:
        return value
    return "user"


def normalize_id(value: Any) -> int | None:
    """Canonical form for every id that takes part in an ownership check."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    owner_id = getattr(value, "id", None)
    if owner_id is not None and not isinstance(value, (str, bytes)):
        return normalize_id(owner_id)
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def is_owner(caller: Caller, owner_id: Any) -> bool:
    caller_id = normalize_id(caller.user_id)
    return caller_id is not None and caller_id == normalize_id(owner_id)


def is_moderator(caller: Caller) -> bool:
    return normalize_role(caller.role) in MODERATION_ROLES


def authorize(caller: Caller, owner_id: Any, action: Action, *, exists: bool = True) -> Decision:
    if not exists:
        return Decision(False, DENY_RESOURCE_NOT_FOUND)
    if action == "read":
        return ALLOW
    if action == "update":
        return ALLOW if is_owner(caller, owner_id) else Decision(False, DENY_NOT_OWNER)
    if action in {"delete", "set_status"}:
        if is_owner(caller, owner_id) or is_moderator(caller):
            return ALLOW
        return Decision(False, DENY_NOT_OWNER)
    if action == "moderate":
        return ALLOW if is_moderator(caller) else Decision(False, DENY_INSUFFICIENT_ROLE)
    if action == "assign_role":
        if normalize_role(caller.role) in ROLE_ASSIGNERS:
            return ALLOW
        return Decision(False, DENY_INSUFFICIENT_ROLE)
    return Decision(False, DENY_INSUFFICIENT_ROLE)


def enforce(caller: Caller, owner_id: Any, action: Action, *, exists: bool = True, what: str = "resource") -> None:
    decision = authorize(caller, owner_id, action, exists=exists)
    if decision.allowed:
        return
    if decision.reason == DENY_RESOURCE_NOT_FOUND:
        raise NotFound(f"{what.capitalize()} not found")
    if decision.reason == DENY_NOT_OWNER:
        raise Denied(decision.reason, f"Not authorized to {action.replace('_', ' ')} this {what}")
    raise Denied(decision.reason, "Insufficient role for this action")


POLICY_MATRIX: list[dict] = [
    {"action": "read", "allowed": "anyone"},
    {"action": "update", "allowed": "owner"},
    {"action": "delete", "allowed": "owner, moderator, admin"},
    {"action": "set_status", "allowed": "owner, moderator, admin"},
    {"action": "moderate", "allowed": "moderator, admin"},
    {"action": "assign_role", "allowed": "admin"},
]


def permissions_matrix_payload() -> dict:
    return {"roles": list(ROLES), "actions": POLICY_MATRIX}
