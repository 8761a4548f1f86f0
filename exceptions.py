from fastapi import status


class OTPError(Exception):
    """Base exception for all OTP challenge errors."""

    code = "internal_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Something went wrong. Please try again later."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_detail(self) -> dict:
        return {"error": self.code, "message": self.message}


class ValidationError(OTPError):
    """Malformed email, phone number or code."""

    code = "validation_error"
    status_code = 422
    default_message = "Invalid request data"


class ChallengeNotFound(OTPError):
    """Unknown challenge id, or one that has been superseded by a resend."""

    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "OTP not found. Please request a new code."


class InvalidState(OTPError):
    code = "invalid_state"
    status_code = status.HTTP_409_CONFLICT
    default_message = "OTP already verified"


class RateLimited(OTPError):
    code = "rate_limited"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many OTP requests. Please try again after an hour"


class DeliveryError(OTPError):
    """
    The notification sender could not hand the code over.

    Never fatal to challenge creation: the service catches it and reports
    a warning on the descriptor instead.
    """

    code = "delivery_failure"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "We could not deliver your code. Try resending it."


class InternalError(OTPError):
    pass
