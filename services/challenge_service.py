"""
Challenge Manager.

Owns the OTP challenge lifecycle: issuing codes, checking submitted codes
against the attempt budget and validity window, and superseding a
challenge when the user asks for a new code.

Every mutation of a challenge happens while holding that challenge's
process-local lock and inside one database transaction, and every status
change is a conditional UPDATE so that concurrent workers cannot both
consume the last attempt or verify a challenge that was just superseded.
"""
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol
from uuid import UUID
import hmac
import logging
import os
import secrets
import string
import threading
import uuid

from dotenv import load_dotenv
from fastapi import Depends
from sqlalchemy import case, func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import get_db
from exceptions import ChallengeNotFound, InternalError, InvalidState, OTPError, RateLimited
from models.challenge_models import ChallengeStatus, OTPChallenge, as_utc
from schemas.challenge_schemas import (
    ChallengeDescriptor,
    IdentitySnapshot,
    VerificationOutcome,
    VerificationResult,
)
from services.notification_service import NotificationSender, get_notification_sender
from services.users_services import UserService

load_dotenv()

logger = logging.getLogger(__name__)

OTP_LENGTH = 6
MAX_ATTEMPTS = 3
OTP_VALIDITY = timedelta(minutes=5)
RATE_LIMIT_WINDOW = timedelta(hours=1)
OTP_REQUESTS_PER_HOUR = int(os.getenv("OTP_REQUESTS_PER_HOUR", "3"))


def is_diagnostic_mode() -> bool:
    """Outside production the raw code is echoed back to the caller."""
    return os.getenv("ENVIRONMENT", "development").lower() != "production"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_otp_code(length: int = OTP_LENGTH) -> str:
    return "".join(secrets.choice(string.digits) for _ in range(length))


def codes_match(submitted: str, expected: str) -> bool:
    return hmac.compare_digest(submitted.encode("utf-8"), expected.encode("utf-8"))


class IdentityStore(Protocol):
    def upsert_verified_identity(self, target: str) -> UUID: ...


class Notifier(Protocol):
    def deliver(self, target: str, code: str) -> bool: ...


class ChallengeLocks:
    """Process-wide registry of keyed locks (challenge ids, targets), dropped once nobody holds them."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, list] = {}

    @contextmanager
    def hold(self, challenge_id: str):
        with self._guard:
            entry = self._locks.setdefault(challenge_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[challenge_id]

    def __len__(self) -> int:
        return len(self._locks)


challenge_locks = ChallengeLocks()


class ChallengeService:
    """Service class for the OTP challenge state machine"""

    def __init__(
        self,
        db: Session,
        notifier: Notifier,
        identity_store: IdentityStore,
        clock: Callable[[], datetime] = utcnow,
        diagnostic: Optional[bool] = None,
        requests_per_hour: int = OTP_REQUESTS_PER_HOUR,
    ):
        self.db = db
        self.notifier = notifier
        self.identity_store = identity_store
        self.clock = clock
        self.diagnostic = is_diagnostic_mode() if diagnostic is None else diagnostic
        self.requests_per_hour = requests_per_hour

    # ==================== CREATE ====================

    def create_challenge(self, target: str) -> ChallengeDescriptor:
        # rate-limit count and insert must not interleave for one target
        with challenge_locks.hold(f"target:{target}"):
            now = self.clock()
            try:
                self._check_rate_limit(target, now)
                challenge = self._new_challenge(target, now)
                self.db.commit()
            except OTPError:
                self.db.rollback()
                raise
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.exception("Failed to save OTP for %s", target)
                raise InternalError() from e

        logger.info("OTP challenge %s issued for %s, expires at %s", challenge.id, target, challenge.expires_at)
        return self._issue(challenge)

    def _check_rate_limit(self, target: str, now: datetime) -> None:
        column = OTPChallenge.phone if target.startswith("+") else OTPChallenge.email
        recent = (
            self.db.query(func.count(OTPChallenge.id))
            .filter(column == target, OTPChallenge.created_at > now - RATE_LIMIT_WINDOW)
            .scalar()
        )
        if recent >= self.requests_per_hour:
            logger.warning("Rate limit hit for %s (%d requests in the last hour)", target, recent)
            raise RateLimited()

    def _new_challenge(self, target: str, now: datetime) -> OTPChallenge:
        is_phone = target.startswith("+")
        challenge = OTPChallenge(
            id=str(uuid.uuid4()),
            email=None if is_phone else target,
            phone=target if is_phone else None,
            code=generate_otp_code(),
            status=ChallengeStatus.ACTIVE.value,
            attempts_remaining=MAX_ATTEMPTS,
            created_at=now,
            expires_at=now + OTP_VALIDITY,
        )
        self.db.add(challenge)
        return challenge

    def _issue(self, challenge: OTPChallenge) -> ChallengeDescriptor:
        """Deliver a freshly committed challenge and describe it to the caller."""
        if self.diagnostic:
            logger.info("[DEV] OTP code for challenge %s: %s", challenge.id, challenge.code)

        delivered = self.notifier.deliver(challenge.target, challenge.code)
        return ChallengeDescriptor(
            challenge_id=challenge.id,
            expires_at=as_utc(challenge.expires_at),
            attempts_remaining=challenge.attempts_remaining,
            channel=challenge.channel,
            code=challenge.code if self.diagnostic else None,
            delivery_failed=not delivered,
            warning=None if delivered else "We could not deliver your code. Try resending it.",
        )

    # ==================== VERIFY ====================

    def verify(self, challenge_id: str, submitted_code: str) -> VerificationResult:
        with challenge_locks.hold(challenge_id):
            try:
                result = self._verify_locked(challenge_id, submitted_code)
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.exception("Verification of challenge %s failed", challenge_id)
                raise InternalError() from e
            except Exception:
                self.db.rollback()
                raise

        logger.info("Verification of challenge %s: %s", challenge_id, result.outcome.value)
        return result

    def _verify_locked(self, challenge_id: str, submitted_code: str) -> VerificationResult:
        now = self.clock()
        challenge = self._get_for_update(challenge_id)
        if challenge is None:
            return VerificationResult(challenge_id=challenge_id, outcome=VerificationOutcome.NOT_FOUND)
        while True:
            result = self._evaluate(challenge, submitted_code, now)
            if result is not None:
                return result
            # another worker changed the row between our read and our write
            self.db.refresh(challenge)

    def _evaluate(self, challenge: OTPChallenge, submitted_code: str, now: datetime) -> Optional[VerificationResult]:
        if challenge.status == ChallengeStatus.SUPERSEDED or challenge.superseded_by:
            return self._result(challenge, VerificationOutcome.NOT_FOUND)

        if challenge.is_expired(now):
            if challenge.status == ChallengeStatus.ACTIVE:
                if not self._transition(challenge, ChallengeStatus.ACTIVE, ChallengeStatus.EXPIRED):
                    return None
            return self._result(challenge, VerificationOutcome.EXPIRED)

        if challenge.status == ChallengeStatus.EXPIRED:
            return self._result(challenge, VerificationOutcome.EXPIRED)

        if challenge.status == ChallengeStatus.VERIFIED:
            return self._replay(challenge, submitted_code)

        if challenge.status == ChallengeStatus.EXHAUSTED or challenge.attempts_remaining <= 0:
            return self._result(challenge, VerificationOutcome.EXHAUSTED, attempts_remaining=0)

        if not codes_match(submitted_code, challenge.code):
            if not self._consume_attempt(challenge):
                return None
            self.db.refresh(challenge)
            logger.warning(
                "Wrong code for challenge %s, %d attempts remaining",
                challenge.id,
                challenge.attempts_remaining,
            )
            return self._result(
                challenge,
                VerificationOutcome.WRONG_CODE,
                attempts_remaining=challenge.attempts_remaining,
            )

        if not self._transition(challenge, ChallengeStatus.ACTIVE, ChallengeStatus.VERIFIED, verified_at=now):
            return None
        return self._accept(challenge, now)

    def _accept(self, challenge: OTPChallenge, now: datetime) -> VerificationResult:
        # only the worker that won the active -> verified transition gets here
        user_id = self.identity_store.upsert_verified_identity(challenge.target)
        self.db.execute(
            update(OTPChallenge)
            .where(OTPChallenge.id == challenge.id)
            .values(user_id=user_id)
            .execution_options(synchronize_session=False)
        )
        self.db.refresh(challenge)
        return self._accepted_result(challenge)

    def _replay(self, challenge: OTPChallenge, submitted_code: str) -> VerificationResult:
        """Answer for an already verified challenge without touching it or the identity store."""
        if codes_match(submitted_code, challenge.code):
            return self._accepted_result(challenge)
        return self._result(
            challenge,
            VerificationOutcome.WRONG_CODE,
            attempts_remaining=challenge.attempts_remaining,
        )

    def _accepted_result(self, challenge: OTPChallenge) -> VerificationResult:
        verified_at = as_utc(challenge.verified_at)
        snapshot = IdentitySnapshot(
            user_id=challenge.user_id,
            target=challenge.target,
            email=challenge.email,
            phone=challenge.phone,
            verified_at=verified_at,
        )
        return self._result(
            challenge,
            VerificationOutcome.ACCEPTED,
            identity_snapshot=snapshot,
            verified_at=verified_at,
        )

    @staticmethod
    def _result(challenge: OTPChallenge, outcome: VerificationOutcome, **fields) -> VerificationResult:
        return VerificationResult(challenge_id=challenge.id, outcome=outcome, **fields)

    def _consume_attempt(self, challenge: OTPChallenge) -> bool:
        """Compare-and-decrement; exhausts the challenge in the same statement when the last attempt goes."""
        stmt = (
            update(OTPChallenge)
            .where(
                OTPChallenge.id == challenge.id,
                OTPChallenge.status == ChallengeStatus.ACTIVE.value,
                OTPChallenge.attempts_remaining == challenge.attempts_remaining,
                OTPChallenge.attempts_remaining > 0,
            )
            .values(
                attempts_remaining=OTPChallenge.attempts_remaining - 1,
                status=case(
                    (OTPChallenge.attempts_remaining <= 1, ChallengeStatus.EXHAUSTED.value),
                    else_=ChallengeStatus.ACTIVE.value,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1

    def _transition(self, challenge: OTPChallenge, from_status: ChallengeStatus, to_status: ChallengeStatus, **values) -> bool:
        stmt = (
            update(OTPChallenge)
            .where(OTPChallenge.id == challenge.id, OTPChallenge.status == from_status.value)
            .values(status=to_status.value, **values)
            .execution_options(synchronize_session=False)
        )
        if self.db.execute(stmt).rowcount != 1:
            return False
        self.db.refresh(challenge)
        return True

    def _get_for_update(self, challenge_id: str) -> Optional[OTPChallenge]:
        return (
            self.db.query(OTPChallenge)
            .filter(OTPChallenge.id == challenge_id)
            .populate_existing()
            .with_for_update()
            .first()
        )

    # ==================== RESEND ====================

    def resend(self, challenge_id: str) -> ChallengeDescriptor:
        with challenge_locks.hold(challenge_id):
            now = self.clock()
            try:
                previous = self._get_for_update(challenge_id)
                self._ensure_resendable(previous)

                replacement = self._new_challenge(previous.target, now)
                stmt = (
                    update(OTPChallenge)
                    .where(
                        OTPChallenge.id == previous.id,
                        OTPChallenge.status != ChallengeStatus.VERIFIED.value,
                        OTPChallenge.status != ChallengeStatus.SUPERSEDED.value,
                        OTPChallenge.superseded_by.is_(None),
                    )
                    .values(status=ChallengeStatus.SUPERSEDED.value, superseded_by=replacement.id)
                    .execution_options(synchronize_session=False)
                )
                if self.db.execute(stmt).rowcount != 1:
                    self.db.rollback()
                    self._ensure_resendable(self._get_for_update(challenge_id))
                    raise ChallengeNotFound()
                self.db.commit()
            except OTPError:
                self.db.rollback()
                raise
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.exception("Resend of challenge %s failed", challenge_id)
                raise InternalError() from e

        logger.info("OTP challenge %s superseded by %s", challenge_id, replacement.id)
        return self._issue(replacement)

    @staticmethod
    def _ensure_resendable(challenge: Optional[OTPChallenge]) -> None:
        if challenge is None or challenge.status == ChallengeStatus.SUPERSEDED or challenge.superseded_by:
            raise ChallengeNotFound()
        if challenge.status == ChallengeStatus.VERIFIED:
            raise InvalidState()


# ==================== DEPENDENCY INJECTION ====================

def get_challenge_service(
    db: Session = Depends(get_db),
    notifier: NotificationSender = Depends(get_notification_sender),
) -> ChallengeService:
    """Dependency injection for ChallengeService"""
    return ChallengeService(db, notifier, UserService(db))
