import logging
import os
import uuid
from datetime import datetime, timedelta, timezone

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from tradehub.core.errors import Forbidden, Unauthenticated
from tradehub.core.permissions import Caller, enforce, normalize_id, normalize_role
from tradehub.core.utils import utc_now_naive
from tradehub.db.models.user import User
from tradehub.db.models.user_session import UserSession
from tradehub.db.session import get_db

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))

logger = logging.getLogger(__name__)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def _get_secret_key() -> str:
    secret = os.getenv("SECRET_KEY")
    if not secret:
        raise RuntimeError("SECRET_KEY is not set")
    return secret


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    return pwd_context.verify(password, hashed)


def create_access_token(user_id: int, jti: str, *, expires_at: datetime | None = None) -> str:
    expire = expires_at or (datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    payload = {"sub": str(user_id), "jti": jti, "exp": expire}
    return jwt.encode(payload, _get_secret_key(), algorithm=ALGORITHM)


def issue_session(db: Session, user: User, *, user_agent: str | None = None) -> str:
    """Appends a session to the user's session list and returns its bearer token."""
    now = utc_now_naive()
    expires_at = now + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    jti = uuid.uuid4().hex
    db.add(
        UserSession(
            user_id=user.id,
            jti=jti,
            user_agent=(user_agent or "")[:255] or None,
            created_at=now,
            expires_at=expires_at,
        )
    )
    return create_access_token(user.id, jti, expires_at=expires_at.replace(tzinfo=timezone.utc))


def decode_token(token: str) -> tuple[int, str]:
    try:
        payload = jwt.decode(token, _get_secret_key(), algorithms=[ALGORITHM])
    except ExpiredSignatureError as exc:
        raise Unauthenticated("Token expired") from exc
    except JWTError as exc:
        raise Unauthenticated("Invalid token") from exc
    user_id = normalize_id(payload.get("sub"))
    jti = payload.get("jti")
    if user_id is None or not jti:
        raise Unauthenticated("Invalid token")
    return user_id, str(jti)


def check_account_standing(user: User) -> None:
    # Two independent gates: a banned role and a cleared active flag.
    if normalize_role(user.role) == "banned":
        raise Forbidden("Account is banned")
    if not user.is_active:
        raise Forbidden("Account is deactivated")


def authenticate(db: Session, token: str | None) -> Caller:
    if not token:
        raise Unauthenticated("Access denied. No token provided.")
    user_id, jti = decode_token(token.strip())

    user = db.get(User, user_id)
    if user is None:
        raise Unauthenticated("User not found")

    session = (
        db.query(UserSession)
        .filter(UserSession.user_id == user.id, UserSession.jti == jti)
        .first()
    )
    if session is None or session.expires_at < utc_now_naive():
        raise Unauthenticated("Invalid token")

    check_account_standing(user)
    return Caller(user_id=user.id, username=user.username, role=normalize_role(user.role))


def current_session_jti(token: str | None) -> str:
    _, jti = decode_token(token or "")
    return jti


def get_current_caller(
    token: str | None = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> Caller:
    return authenticate(db, token)


def get_optional_caller(
    token: str | None = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> Caller | None:
    if not token:
        return None
    # Public reads treat banned or deactivated accounts as anonymous.
    try:
        return authenticate(db, token)
    except (Unauthenticated, Forbidden):
        return None


def require_moderator(caller: Caller = Depends(get_current_caller)) -> Caller:
    enforce(caller, None, "moderate")
    return caller


def require_admin(caller: Caller = Depends(get_current_caller)) -> Caller:
    enforce(caller, None, "assign_role")
    return caller
