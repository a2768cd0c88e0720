"""Domain error taxonomy.

Services raise only these. ``main.py`` is the single place that maps an
error's ``code`` to an HTTP status and the error envelope.
"""

from typing import Any


class DomainError(Exception):
    code = "error"
    status_code = 500
    default_message = "Request failed"

    def __init__(self, message: str | None = None, *, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationError(DomainError):
    code = "validation_error"
    status_code = 400
    default_message = "Validation error"


class Unauthenticated(DomainError):
    code = "unauthenticated"
    status_code = 401
    default_message = "Could not validate credentials"


class Forbidden(DomainError):
    """Account standing gate (banned or deactivated)."""

    code = "forbidden"
    status_code = 403
    default_message = "Account is not allowed to use the service"


class Denied(DomainError):
    """Authenticated but refused by the ownership/role policy."""

    code = "denied"
    status_code = 403
    default_message = "Not authorized"

    def __init__(self, reason: str, message: str | None = None):
        super().__init__(message, details={"reason": reason})
        self.reason = reason


class NotFound(DomainError):
    code = "not_found"
    status_code = 404
    default_message = "Resource not found"


class Conflict(DomainError):
    code = "conflict"
    status_code = 409
    default_message = "Conflicting resource state"


class Unexpected(DomainError):
    code = "internal_error"
    status_code = 500
    default_message = "Internal server error"
