from fastapi import Request
from fastapi.exceptions import RequestValidationError

from tradehub.core.errors import DomainError


def get_request_id(request: Request | None) -> str:
    if request is None:
        return "-"
    rid = getattr(request.state, "request_id", None)
    return str(rid) if rid else "-"


def error_response_payload(request: Request, *, code: str, message: str, details=None) -> dict:
    return {
        "ok": False,
        "error": {"code": code, "message": message, "details": details},
        "request_id": get_request_id(request),
    }


def domain_error_payload(request: Request, exc: DomainError) -> dict:
    return error_response_payload(request, code=exc.code, message=exc.message, details=exc.details)


def validation_error_details(exc: RequestValidationError) -> list[dict]:
    # Error contexts can hold exception instances, which are not JSON serializable.
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
