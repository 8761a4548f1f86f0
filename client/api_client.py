import logging
import os
import httpx
from dotenv import load_dotenv

from schemas.challenge_schemas import ChallengeDescriptor, VerificationOutcome, VerificationResult

load_dotenv()

logger = logging.getLogger(__name__)

BACKEND_URL = os.getenv("BACKEND_URL", "http://127.0.0.1:8001")

VERIFY_OUTCOMES = {outcome.value for outcome in VerificationOutcome}


class ApiError(Exception):
    """A request the server refused or could not answer."""

    def __init__(self, code: str, message: str, status_code: int | None = None):
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(f"{code}: {message}")


def _error_detail(response: httpx.Response) -> dict:
    try:
        detail = response.json().get("detail")
    except ValueError:
        detail = None
    if isinstance(detail, dict):
        return detail
    if response.status_code == 422:
        return {"error": "validation_error", "message": "Invalid request data"}
    return {"error": "internal_error", "message": "Something went wrong. Please try again later."}


class ApiClient:
    """Talks to the OTP backend over HTTP."""

    def __init__(self, http: httpx.Client | None = None, base_url: str = BACKEND_URL, timeout: float = 5.0):
        self.http = http or httpx.Client(base_url=base_url, timeout=timeout)

    def _post(self, path: str, payload: dict) -> httpx.Response:
        try:
            return self.http.post(path, json=payload)
        except httpx.HTTPError as e:
            logger.error("Error connecting to the backend at %s: %s", path, e)
            raise ApiError("network_error", "Could not reach the server. Check your connection.") from e

    def _raise_for_status(self, response: httpx.Response):
        if response.is_success:
            return
        detail = _error_detail(response)
        raise ApiError(detail.get("error", "internal_error"), detail.get("message", ""), response.status_code)

    def create_challenge(self, email: str | None = None, phone: str | None = None) -> ChallengeDescriptor:
        payload = {"email": email} if email is not None else {"phone": phone}
        response = self._post("/api/otp/generate", payload)
        self._raise_for_status(response)
        return ChallengeDescriptor.model_validate(response.json()["data"])

    def verify(self, challenge_id: str, code: str) -> VerificationResult:
        """Every verdict comes back as a VerificationResult; only transport and server faults raise."""
        response = self._post("/api/otp/verify", {"challenge_id": challenge_id, "code": code})
        if response.is_success:
            return VerificationResult.model_validate(response.json()["data"])

        detail = _error_detail(response)
        if detail.get("error") not in VERIFY_OUTCOMES:
            raise ApiError(detail.get("error", "internal_error"), detail.get("message", ""), response.status_code)
        return VerificationResult(
            challenge_id=challenge_id,
            outcome=detail["error"],
            attempts_remaining=detail.get("attempts_remaining"),
        )

    def resend(self, challenge_id: str) -> ChallengeDescriptor:
        response = self._post("/api/otp/resend", {"challenge_id": challenge_id})
        self._raise_for_status(response)
        return ChallengeDescriptor.model_validate(response.json()["data"])

    def close(self):
        self.http.close()
