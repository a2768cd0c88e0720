import logging

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tradehub.core.errors import Conflict, NotFound, Unauthenticated, ValidationError
from tradehub.core.permissions import Caller, is_owner
from tradehub.core.security import check_account_standing, hash_password, issue_session, verify_password
from tradehub.core.utils import EMAIL_RE, isoformat_or_none, normalize_email, utc_now_naive
from tradehub.db.models.trade import Trade
from tradehub.db.models.user import User
from tradehub.db.models.user_session import UserSession
from tradehub.db.models.vouch import Vouch
from tradehub.db.models.wishlist import WishlistItem
from tradehub.schemas.auth import RegisterIn
from tradehub.schemas.user import ProfileUpdate, VouchIn

logger = logging.getLogger(__name__)


def serialize_account(user: User) -> dict:
    """Fields the account owner (and staff) may see."""
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "roblox_username": user.roblox_username,
        "role": user.role,
        "credibility_score": user.credibility_score or 0,
        "is_active": bool(user.is_active),
        "verification_requested": bool(user.verification_requested),
        "middleman_requested": bool(user.middleman_requested),
        "ban_reason": user.ban_reason,
        "banned_at": isoformat_or_none(user.banned_at),
        "last_login": isoformat_or_none(user.last_login),
        "created_at": isoformat_or_none(user.created_at),
    }


def serialize_public(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "roblox_username": user.roblox_username,
        "role": user.role,
        "credibility_score": user.credibility_score or 0,
        "avatar_url": user.avatar_url,
        "bio": user.bio,
        "discord_username": user.discord_username,
        "timezone": user.timezone,
        "created_at": isoformat_or_none(user.created_at),
    }


def get_user_or_404(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


def register(db: Session, payload: RegisterIn, *, user_agent: str | None = None) -> dict:
    email = normalize_email(payload.email)
    if not EMAIL_RE.match(email):
        raise ValidationError("Invalid email format")

    existing = (
        db.query(User.id)
        .filter(or_(func.lower(User.username) == payload.username.lower(), User.email == email))
        .first()
    )
    if existing is not None:
        raise Conflict("Username or email already exists")

    now = utc_now_naive()
    user = User(
        username=payload.username,
        email=email,
        password_hash=hash_password(payload.password),
        roblox_username=payload.roblox_username or None,
        role="user",
        credibility_score=0,
        is_active=True,
        verification_requested=False,
        middleman_requested=False,
        last_login=now,
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("Username or email already exists") from exc
    token = issue_session(db, user, user_agent=user_agent)
    db.commit()
    db.refresh(user)
    return {"token": token, "user": serialize_account(user)}


def login(db: Session, login_name: str, password: str, *, user_agent: str | None = None) -> dict:
    identifier = login_name.strip()
    user = (
        db.query(User)
        .filter(or_(User.username == identifier, User.email == normalize_email(identifier)))
        .first()
    )
    if user is None or not verify_password(password, user.password_hash):
        raise Unauthenticated("Invalid credentials")
    check_account_standing(user)

    user.last_login = utc_now_naive()
    token = issue_session(db, user, user_agent=user_agent)
    db.commit()
    db.refresh(user)
    return {"token": token, "user": serialize_account(user)}


def logout(db: Session, caller: Caller, jti: str) -> int:
    removed = (
        db.query(UserSession)
        .filter(UserSession.user_id == caller.user_id, UserSession.jti == jti)
        .delete(synchronize_session=False)
    )
    db.commit()
    return int(removed or 0)


def logout_all(db: Session, caller: Caller) -> int:
    removed = (
        db.query(UserSession)
        .filter(UserSession.user_id == caller.user_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    return int(removed or 0)


def _vouch_stats(db: Session, user_id: int) -> tuple[int, float]:
    total, average = (
        db.query(func.count(Vouch.id), func.avg(Vouch.rating))
        .filter(Vouch.vouched_user_id == user_id)
        .one()
    )
    return int(total or 0), round(float(average), 1) if average is not None else 0.0


def profile(db: Session, user_id: int, *, include_private: bool = False) -> dict:
    user = get_user_or_404(db, user_id)
    total_vouches, average_rating = _vouch_stats(db, user.id)
    data = serialize_account(user) if include_private else {}
    data.update(serialize_public(user))
    data.update(
        {
            "total_trades": db.query(func.count(Trade.id)).filter(Trade.user_id == user.id).scalar() or 0,
            "total_wishlist_items": (
                db.query(func.count(WishlistItem.id)).filter(WishlistItem.user_id == user.id).scalar() or 0
            ),
            "total_vouches": total_vouches,
            "average_rating": average_rating,
        }
    )
    return data


def update_profile(db: Session, caller: Caller, payload: ProfileUpdate) -> dict:
    user = get_user_or_404(db, caller.user_id)
    changes = payload.changes()
    new_username = changes.get("username")
    if new_username and new_username.lower() != user.username.lower():
        taken = (
            db.query(User.id)
            .filter(func.lower(User.username) == new_username.lower(), User.id != user.id)
            .first()
        )
        if taken is not None:
            raise Conflict("Username already taken")
    for name, value in changes.items():
        setattr(user, name, value if name == "username" else (value or None))
    user.updated_at = utc_now_naive()
    db.commit()
    db.refresh(user)
    return serialize_public(user)


def search_users(db: Session, query: str, *, limit: int = 10) -> list[dict]:
    term = (query or "").strip()
    if len(term) < 2:
        raise ValidationError("Search query must be at least 2 characters")
    pattern = f"%{term}%"
    users = (
        db.query(User)
        .filter(or_(User.username.ilike(pattern), User.roblox_username.ilike(pattern)))
        .order_by(User.credibility_score.desc(), User.id.asc())
        .limit(max(1, min(limit, 50)))
        .all()
    )
    return [serialize_public(u) for u in users]


def recompute_credibility(db: Session, user_id: int) -> int:
    """Credibility is derived from received vouches: sum of (rating - 3)."""
    score = (
        db.query(func.coalesce(func.sum(Vouch.rating - 3), 0))
        .filter(Vouch.vouched_user_id == user_id)
        .scalar()
    )
    db.query(User).filter(User.id == user_id).update(
        {User.credibility_score: int(score or 0)},
        synchronize_session=False,
    )
    return int(score or 0)


def vouch(db: Session, caller: Caller, target_id: int, payload: VouchIn) -> dict:
    target = get_user_or_404(db, target_id)
    if is_owner(caller, target.id):
        raise ValidationError("You cannot vouch for yourself")

    entry = Vouch(
        vouched_user_id=target.id,
        given_by_user_id=caller.user_id,
        rating=payload.rating,
        comment=payload.comment or None,
        created_at=utc_now_naive(),
    )
    db.add(entry)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("You have already vouched for this user") from exc
    score = recompute_credibility(db, target.id)
    db.commit()
    logger.info("vouch_recorded target_id=%s giver_id=%s score=%s", target.id, caller.user_id, score)
    total_vouches, average_rating = _vouch_stats(db, target.id)
    return {
        "id": entry.id,
        "rating": entry.rating,
        "comment": entry.comment,
        "credibility_score": score,
        "total_vouches": total_vouches,
        "average_rating": average_rating,
    }


def list_vouches(db: Session, user_id: int, *, limit: int = 20) -> list[dict]:
    get_user_or_404(db, user_id)
    rows = (
        db.query(Vouch, User.username)
        .join(User, User.id == Vouch.given_by_user_id)
        .filter(Vouch.vouched_user_id == user_id)
        .order_by(Vouch.created_at.desc(), Vouch.id.desc())
        .limit(max(1, min(limit, 100)))
        .all()
    )
    return [
        {
            "id": v.id,
            "rating": v.rating,
            "comment": v.comment,
            "given_by": username,
            "given_by_user_id": v.given_by_user_id,
            "created_at": isoformat_or_none(v.created_at),
        }
        for v, username in rows
    ]


def request_verification(db: Session, caller: Caller, kind: str) -> dict:
    user = get_user_or_404(db, caller.user_id)
    if kind == "verified":
        if user.role in {"verified", "middleman", "moderator", "admin"}:
            raise Conflict("Account is already verified")
        user.verification_requested = True
    else:
        if user.role == "middleman":
            raise Conflict("Account is already a middleman")
        user.middleman_requested = True
    user.updated_at = utc_now_naive()
    db.commit()
    db.refresh(user)
    return {
        "verification_requested": bool(user.verification_requested),
        "middleman_requested": bool(user.middleman_requested),
    }
