import os
from dataclasses import dataclass

from sqlalchemy.orm import Session

from tradehub.core.security import hash_password
from tradehub.core.utils import EMAIL_RE, normalize_email, utc_now_naive
from tradehub.db.models.user import User


def parse_admin_emails(raw: str) -> list[str]:
    emails = [normalize_email(x) for x in raw.split(",") if x.strip()]
    return sorted({email for email in emails if EMAIL_RE.match(email)})


def get_runtime_admin_emails() -> list[str]:
    return parse_admin_emails(os.getenv("ADMIN_EMAILS", ""))


@dataclass
class AdminSyncResult:
    created: int = 0
    promoted: int = 0
    skipped_create_without_password: int = 0


def _free_username(db: Session, email: str) -> str:
    base = email.split("@", 1)[0][:40] or "admin"
    candidate = base
    suffix = 1
    while db.query(User.id).filter(User.username == candidate).first() is not None:
        suffix += 1
        candidate = f"{base}{suffix}"
    return candidate


def sync_admin_users(db: Session, admin_emails: list[str], admin_password: str | None) -> AdminSyncResult:
    """Promotes (or creates) the bootstrap admin accounts listed in ADMIN_EMAILS."""
    result = AdminSyncResult()
    if not admin_emails:
        return result

    existing = db.query(User).filter(User.email.in_(admin_emails)).all()
    by_email = {u.email.lower(): u for u in existing}
    now = utc_now_naive()

    for email in admin_emails:
        user = by_email.get(email)
        if user:
            changed = False
            if user.role != "admin":
                user.role = "admin"
                user.ban_reason = None
                user.banned_at = None
                changed = True
            if not user.is_active:
                user.is_active = True
                changed = True
            if changed:
                user.updated_at = now
                result.promoted += 1
            continue

        if not admin_password:
            result.skipped_create_without_password += 1
            continue

        db.add(
            User(
                username=_free_username(db, email),
                email=email,
                password_hash=hash_password(admin_password),
                role="admin",
                credibility_score=0,
                is_active=True,
                verification_requested=False,
                middleman_requested=False,
                created_at=now,
                updated_at=now,
            )
        )
        db.flush()
        result.created += 1

    db.commit()
    return result
