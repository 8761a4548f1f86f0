"""
Verification flow controller.

Drives one user through request -> enter code -> result against the OTP
backend. The backend is the only judge of a code: this module assembles
digits, tracks which challenge it currently holds and turns verdicts into
messages.

Network round-trips are split into a `begin`/`apply` pair so that a
response can be matched against whatever challenge is held when it
arrives; `verify()` and `resend()` run both halves through an ApiClient.
"""
from dataclasses import dataclass, replace
from typing import Optional, Union
import logging

from pydantic import ValidationError

from client.api_client import ApiClient, ApiError
from client.code_input import CodeInput, IncompleteCodeError
from schemas.challenge_schemas import (
    ChallengeDescriptor,
    GenerateOTPRequest,
    IdentitySnapshot,
    VerificationOutcome,
    VerificationResult,
)

logger = logging.getLogger(__name__)

NEEDS_NEW_CODE = "Request a new code to continue."


# ==================== STATES ====================

@dataclass(frozen=True)
class Requesting:
    error: Optional[str] = None
    message: Optional[str] = None


@dataclass(frozen=True)
class Entering:
    descriptor: ChallengeDescriptor
    verify_pending: bool = False
    resend_pending: bool = False
    needs_resend: bool = False
    error: Optional[str] = None
    message: Optional[str] = None

    @property
    def challenge_id(self) -> str:
        return self.descriptor.challenge_id


@dataclass(frozen=True)
class Completed:
    identity: IdentitySnapshot
    message: str = "Verification successful"


FlowState = Union[Requesting, Entering, Completed]


@dataclass(frozen=True)
class PendingVerify:
    challenge_id: str
    code: str


class InvalidTransition(RuntimeError):
    pass


def verdict_message(result: VerificationResult) -> str:
    outcome = result.outcome
    if outcome == VerificationOutcome.ACCEPTED:
        return "Verification successful"
    if outcome == VerificationOutcome.WRONG_CODE:
        if result.attempts_remaining is None:
            return "Invalid code. Please try again."
        return f"Invalid code. {result.attempts_remaining} attempts remaining."
    if outcome == VerificationOutcome.EXPIRED:
        return f"This code has expired. {NEEDS_NEW_CODE}"
    if outcome == VerificationOutcome.EXHAUSTED:
        return f"Too many incorrect attempts. {NEEDS_NEW_CODE}"
    return "This verification request is no longer valid. Please start again."


class FlowController:
    def __init__(self, api: Optional[ApiClient] = None):
        self.api = api
        self.state: FlowState = Requesting()
        self.code_input = CodeInput()
        # raw outcome of the last verdict or local rejection
        self.last_outcome: Optional[str] = None

    # ==================== REQUEST PHASE ====================

    def request_code(self, email: Optional[str] = None, phone: Optional[str] = None) -> FlowState:
        if not isinstance(self.state, Requesting):
            raise InvalidTransition(f"Cannot request a code from {type(self.state).__name__}")
        try:
            GenerateOTPRequest(email=email, phone=phone)
        except ValidationError:
            return self._reject_request("validation_error", "Enter a valid email address or a phone number like +919876543210.")

        try:
            descriptor = self._api().create_challenge(email=email, phone=phone)
        except ApiError as e:
            return self._reject_request(e.code, e.message)
        return self.start(descriptor)

    def start(self, descriptor: ChallengeDescriptor) -> FlowState:
        self.code_input.clear()
        self.last_outcome = None
        self.state = Entering(descriptor=descriptor, message=descriptor.warning)
        return self.state

    def restart(self) -> FlowState:
        self.code_input.clear()
        self.state = Requesting()
        return self.state

    def _reject_request(self, error: str, message: str) -> FlowState:
        self.last_outcome = error
        self.state = Requesting(error=error, message=message)
        return self.state

    # ==================== CODE ENTRY ====================

    def type_digit(self, char: str) -> bool:
        return isinstance(self.state, Entering) and self.code_input.type(char)

    def enter_digit(self, index: int, char: str) -> bool:
        return isinstance(self.state, Entering) and self.code_input.enter(index, char)

    def paste(self, text: str) -> bool:
        return isinstance(self.state, Entering) and self.code_input.paste(text)

    def backspace(self):
        if isinstance(self.state, Entering):
            self.code_input.backspace()

    def move_left(self):
        if isinstance(self.state, Entering):
            self.code_input.move_left()

    def move_right(self):
        if isinstance(self.state, Entering):
            self.code_input.move_right()

    @property
    def can_submit(self) -> bool:
        state = self.state
        return (
            isinstance(state, Entering)
            and not (state.verify_pending or state.resend_pending or state.needs_resend)
            and self.code_input.is_complete
        )

    # ==================== VERIFY ====================

    def submit(self) -> Optional[PendingVerify]:
        """Start a verification of the held challenge, or record why it cannot start."""
        state = self._entering()
        if state.resend_pending:
            self._local_error(state, "resend_pending", "Please wait for the new code.")
            return None
        if state.needs_resend:
            self._local_error(state, state.error, NEEDS_NEW_CODE)
            return None
        if state.verify_pending:
            return None
        try:
            code = self.code_input.code()
        except IncompleteCodeError as e:
            self._local_error(state, e.code, e.message)
            return None

        self.state = replace(state, verify_pending=True, error=None, message=None)
        return PendingVerify(challenge_id=state.challenge_id, code=code)

    def apply_verify_response(self, result: VerificationResult) -> bool:
        """
        Apply a verdict if it belongs to the challenge held right now.

        Returns False when the verdict is discarded: after a confirmed resend
        a late answer for the old challenge must not move the flow, even an
        accepted one.
        """
        state = self.state
        if not isinstance(state, Entering) or state.challenge_id != result.challenge_id:
            logger.info("Discarding verify response for stale challenge %s", result.challenge_id)
            return False

        self.last_outcome = result.outcome.value
        message = verdict_message(result)
        outcome = result.outcome

        if outcome == VerificationOutcome.ACCEPTED:
            self.code_input.clear()
            self.state = Completed(identity=result.identity_snapshot, message=message)
        elif outcome == VerificationOutcome.WRONG_CODE:
            self.code_input.clear()
            self.state = replace(state, verify_pending=False, error=outcome.value, message=message)
        elif outcome in (VerificationOutcome.EXPIRED, VerificationOutcome.EXHAUSTED):
            self.state = replace(
                state, verify_pending=False, needs_resend=True, error=outcome.value, message=message
            )
        else:
            self.code_input.clear()
            self.state = Requesting(error=outcome.value, message=message)
        return True

    def fail_verify(self, challenge_id: str, error: ApiError) -> bool:
        state = self.state
        if not isinstance(state, Entering) or state.challenge_id != challenge_id:
            return False
        self.last_outcome = error.code
        self.state = replace(state, verify_pending=False, error=error.code, message=error.message)
        return True

    def verify(self) -> FlowState:
        pending = self.submit()
        if pending is None:
            return self.state
        try:
            result = self._api().verify(pending.challenge_id, pending.code)
        except ApiError as e:
            self.fail_verify(pending.challenge_id, e)
        else:
            self.apply_verify_response(result)
        return self.state

    # ==================== RESEND ====================

    def begin_resend(self) -> Optional[str]:
        """Block submission and return the challenge id to resend, or None if one is already in flight."""
        state = self._entering()
        if state.resend_pending:
            return None
        self.state = replace(state, resend_pending=True, error=None, message=None)
        return state.challenge_id

    def apply_resend_response(self, descriptor: ChallengeDescriptor) -> bool:
        state = self.state
        if not isinstance(state, Entering) or not state.resend_pending:
            logger.info("Discarding resend response for %s", descriptor.challenge_id)
            return False
        # swap in the new descriptor wholesale; nothing from the old challenge survives
        self.code_input.clear()
        self.last_outcome = None
        self.state = Entering(descriptor=descriptor, message=descriptor.warning or "A new code has been sent.")
        return True

    def fail_resend(self, error: ApiError) -> bool:
        state = self.state
        if not isinstance(state, Entering) or not state.resend_pending:
            return False
        self.last_outcome = error.code
        if error.code == "not_found":
            self.code_input.clear()
            self.state = Requesting(error=error.code, message="This verification request is no longer valid. Please start again.")
        else:
            self.state = replace(state, resend_pending=False, error=error.code, message=error.message or "Failed to resend OTP.")
        return True

    def resend(self) -> FlowState:
        challenge_id = self.begin_resend()
        if challenge_id is None:
            return self.state
        try:
            descriptor = self._api().resend(challenge_id)
        except ApiError as e:
            self.fail_resend(e)
        else:
            self.apply_resend_response(descriptor)
        return self.state

    # ==================== HELPERS ====================

    def _entering(self) -> Entering:
        if not isinstance(self.state, Entering):
            raise InvalidTransition(f"No challenge held in {type(self.state).__name__}")
        return self.state

    def _local_error(self, state: Entering, error: str, message: str):
        self.last_outcome = error
        self.state = replace(state, error=error, message=message)

    def _api(self) -> ApiClient:
        if self.api is None:
            self.api = ApiClient()
        return self.api
