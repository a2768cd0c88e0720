from tradehub.db.models.admin_audit_log import AdminAuditLog
from tradehub.db.models.auth_attempt import AuthAttempt
from tradehub.db.models.event import Event, EventComment, EventParticipant, EventVote
from tradehub.db.models.forum import ForumComment, ForumPost, ForumVote
from tradehub.db.models.report import Report
from tradehub.db.models.trade import Trade, TradeComment, TradeRating, TradeVote
from tradehub.db.models.user import User
from tradehub.db.models.user_session import UserSession
from tradehub.db.models.vouch import Vouch
from tradehub.db.models.wishlist import WishlistComment, WishlistItem, WishlistWatch

__all__ = [
    "AdminAuditLog",
    "AuthAttempt",
    "Event",
    "EventComment",
    "EventParticipant",
    "EventVote",
    "ForumComment",
    "ForumPost",
    "ForumVote",
    "Report",
    "Trade",
    "TradeComment",
    "TradeRating",
    "TradeVote",
    "User",
    "UserSession",
    "Vouch",
    "WishlistComment",
    "WishlistItem",
    "WishlistWatch",
]
