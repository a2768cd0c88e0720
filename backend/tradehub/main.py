import os
import logging
import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from tradehub.api.admin import router as admin_router
from tradehub.api.auth import router as auth_router
from tradehub.api.events import router as events_router
from tradehub.api.forum import router as forum_router
from tradehub.api.reports import router as reports_router
from tradehub.api.trades import router as trades_router
from tradehub.api.users import router as users_router
from tradehub.api.wishlist import router as wishlist_router
from tradehub.core.admin_sync import get_runtime_admin_emails, sync_admin_users
from tradehub.core.api_response import (
    domain_error_payload,
    error_response_payload,
    get_request_id,
    validation_error_details,
)
from tradehub.core.errors import DomainError
from tradehub.db import models  # noqa: F401  registers every table on Base.metadata
from tradehub.db.base import Base
from tradehub.db.session import SessionLocal, engine

logger = logging.getLogger(__name__)
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

EXPOSE_ERROR_DETAILS = os.getenv("EXPOSE_ERROR_DETAILS", "false").strip().lower() in {"1", "true", "yes", "on"}


def _cors_origins() -> list[str]:
    raw = os.getenv("CORS_ORIGINS", "*")
    return [origin.strip() for origin in raw.split(",") if origin.strip()] or ["*"]


@asynccontextmanager
async def lifespan(_: FastAPI):
    Base.metadata.create_all(bind=engine)
    admin_emails = get_runtime_admin_emails()
    if admin_emails:
        db: Session = SessionLocal()
        try:
            result = sync_admin_users(db, admin_emails, os.getenv("ADMIN_PASSWORD"))
            logger.info(
                "admin_sync created=%s promoted=%s skipped=%s",
                result.created,
                result.promoted,
                result.skipped_create_without_password,
            )
        finally:
            db.close()
    yield


app = FastAPI(title="TradeHub API", lifespan=lifespan)
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(trades_router)
app.include_router(forum_router)
app.include_router(wishlist_router)
app.include_router(events_router)
app.include_router(reports_router)
app.include_router(admin_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or uuid4().hex
    request.state.request_id = request_id
    started_at = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - started_at) * 1000
    response.headers["X-Request-ID"] = request_id
    logger.info(
        "http_request request_id=%s method=%s path=%s status=%s duration_ms=%.2f",
        request_id,
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    return response


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    if exc.status_code >= 500:
        logger.error("domain_error request_id=%s code=%s message=%s", get_request_id(request), exc.code, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=domain_error_payload(request, exc),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    detail = exc.detail
    message = detail if isinstance(detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response_payload(
            request,
            code=f"http_{exc.status_code}",
            message=message,
            details=detail,
        ),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content=error_response_payload(
            request,
            code="validation_error",
            message="Validation error",
            details=validation_error_details(exc),
        ),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error request_id=%s", get_request_id(request), exc_info=exc)
    return JSONResponse(
        status_code=500,
        content=error_response_payload(
            request,
            code="internal_error",
            message="Internal server error",
            details=repr(exc) if EXPOSE_ERROR_DETAILS else None,
        ),
    )


@app.get("/health")
def health(request: Request):
    return {"ok": True, "status": "ok", "request_id": get_request_id(request)}
