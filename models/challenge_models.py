from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, DateTime, ForeignKey, Index, CheckConstraint
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID
from enum import Enum

from models.users_models import Base


class ChallengeStatus(str, Enum):
    ACTIVE = "active"
    VERIFIED = "verified"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    SUPERSEDED = "superseded"


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; every stored timestamp is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class OTPChallenge(Base):
    __tablename__ = "otp_challenges"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    email: Mapped[Optional[str]] = mapped_column(String(255), index=True, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), index=True, nullable=True)
    code: Mapped[str] = mapped_column(String(6), nullable=False)

    status: Mapped[ChallengeStatus] = mapped_column(String(20), default=ChallengeStatus.ACTIVE, nullable=False)
    attempts_remaining: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    user_id: Mapped[Optional[UUID]] = mapped_column(ForeignKey("users.id"), nullable=True)
    superseded_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    __table_args__ = (
        CheckConstraint("attempts_remaining >= 0", name="ck_attempts_non_negative"),
        CheckConstraint(
            "(email IS NULL) != (phone IS NULL)",
            name="ck_single_target",
        ),
        Index("idx_challenge_target_created", "email", "phone", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<OTPChallenge(id='{self.id}', status='{self.status}', attempts_remaining={self.attempts_remaining})>"

    @property
    def channel(self) -> str:
        return "email" if self.email else "phone"

    @property
    def target(self) -> str:
        return self.email or self.phone

    def is_expired(self, now: datetime) -> bool:
        return now >= as_utc(self.expires_at)
