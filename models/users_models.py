from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from datetime import datetime
from sqlalchemy import String, Boolean, DateTime, func
from typing import Optional
from uuid import UUID
import uuid


class Base(DeclarativeBase):
    pass

class User(Base):
    """Identity record created or updated once a target has been verified."""

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid.uuid4, index=True, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(
        String(255),
        index=True,
        unique=True,
        nullable=True
    )
    phone: Mapped[Optional[str]] = mapped_column(
        String(20),
        index=True,
        unique=True,
        nullable=True
    )

    is_email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_phone_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', phone='{self.phone}')>"

    def __str__(self) -> str:
        return self.email or self.phone or str(self.id)

    def mark_verified(self, channel: str) -> None:
        """Flag the given channel ("email" or "phone") as verified."""
        if channel == "email":
            self.is_email_verified = True
        elif channel == "phone":
            self.is_phone_verified = True
