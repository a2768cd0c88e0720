from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from tradehub.db.base import Base


class Vouch(Base):
    __tablename__ = "vouches"
    __table_args__ = (
        UniqueConstraint("vouched_user_id", "given_by_user_id", name="uq_vouches_target_giver"),
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_vouches_rating"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    vouched_user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    given_by_user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    rating: Mapped[int] = mapped_column(Integer)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, index=True)
