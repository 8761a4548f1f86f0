from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from datetime import datetime
from enum import Enum
from uuid import UUID

PHONE_PATTERN = r"^\+[0-9]{10,15}$"
CODE_PATTERN = r"^[0-9]{6}$"


class VerificationOutcome(str, Enum):
    ACCEPTED = "accepted"
    WRONG_CODE = "wrong_code"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    NOT_FOUND = "not_found"


# ==================== REQUESTS ====================

class GenerateOTPRequest(BaseModel):
    email: EmailStr | None = None
    phone: str | None = Field(default=None, pattern=PHONE_PATTERN)

    @model_validator(mode="after")
    def exactly_one_target(self):
        if (self.email is None) == (self.phone is None):
            raise ValueError("Provide either an email or a phone number, not both")
        return self

    @property
    def target(self) -> str:
        return self.email or self.phone


class VerifyOTPRequest(BaseModel):
    challenge_id: str = Field(min_length=1, max_length=36)
    code: str = Field(pattern=CODE_PATTERN)


class ResendOTPRequest(BaseModel):
    challenge_id: str = Field(min_length=1, max_length=36)


# ==================== RESPONSES ====================

class ChallengeDescriptor(BaseModel):
    """What a client holds for one issued challenge. Never mutated; a resend yields a new one."""
    model_config = ConfigDict(frozen=True)

    challenge_id: str
    expires_at: datetime
    attempts_remaining: int
    channel: str
    code: str | None = None
    delivery_failed: bool = False
    warning: str | None = None


class IdentitySnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: UUID
    target: str
    email: str | None = None
    phone: str | None = None
    verified_at: datetime


class VerificationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    challenge_id: str
    outcome: VerificationOutcome
    attempts_remaining: int | None = None
    identity_snapshot: IdentitySnapshot | None = None
    verified_at: datetime | None = None

    @property
    def accepted(self) -> bool:
        return self.outcome == VerificationOutcome.ACCEPTED


class APIResponse(BaseModel):
    success: bool
    message: str
    data: dict | None = None
