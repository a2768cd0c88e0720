import os
from datetime import timedelta

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from tradehub.core.utils import utc_now_naive
from tradehub.db.models.auth_attempt import AuthAttempt

LOGIN_ATTEMPT_LIMIT = int(os.getenv("LOGIN_ATTEMPT_LIMIT", "10"))
LOGIN_ATTEMPT_WINDOW_MINUTES = int(os.getenv("LOGIN_ATTEMPT_WINDOW_MINUTES", "15"))
REGISTER_ATTEMPT_LIMIT = int(os.getenv("REGISTER_ATTEMPT_LIMIT", "5"))
REGISTER_ATTEMPT_WINDOW_MINUTES = int(os.getenv("REGISTER_ATTEMPT_WINDOW_MINUTES", "60"))


def check_rate_limit(db: Session, identifier: str, action: str, limit: int, window_minutes: int) -> None:
    since = utc_now_naive() - timedelta(minutes=window_minutes)
    attempts = (
        db.query(AuthAttempt)
        .filter(
            AuthAttempt.identifier == identifier,
            AuthAttempt.action == action,
            AuthAttempt.created_at >= since,
        )
        .count()
    )
    if attempts >= limit:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests. Try again later.",
        )


def record_attempt(db: Session, identifier: str, action: str) -> None:
    db.add(
        AuthAttempt(
            identifier=identifier,
            action=action,
            created_at=utc_now_naive(),
        )
    )
    db.commit()


def clear_attempts(db: Session, identifier: str, action: str) -> None:
    db.query(AuthAttempt).filter(
        AuthAttempt.identifier == identifier,
        AuthAttempt.action == action,
    ).delete(synchronize_session=False)
    db.commit()
