from fastapi import APIRouter, Depends, HTTPException, status
import logging

from exceptions import OTPError
from schemas.challenge_schemas import (
    APIResponse,
    GenerateOTPRequest,
    ResendOTPRequest,
    VerificationOutcome,
    VerificationResult,
    VerifyOTPRequest,
)
from services.challenge_service import ChallengeService, get_challenge_service

logger = logging.getLogger(__name__)

otp_router = APIRouter(prefix="/api/otp", tags=["otp"])

REJECTION_STATUS = {
    VerificationOutcome.WRONG_CODE: status.HTTP_400_BAD_REQUEST,
    VerificationOutcome.EXPIRED: status.HTTP_410_GONE,
    VerificationOutcome.EXHAUSTED: status.HTTP_429_TOO_MANY_REQUESTS,
    VerificationOutcome.NOT_FOUND: status.HTTP_404_NOT_FOUND,
}


def rejection_message(result: VerificationResult) -> str:
    if result.outcome == VerificationOutcome.WRONG_CODE:
        return f"Invalid OTP code. {result.attempts_remaining} attempts remaining"
    if result.outcome == VerificationOutcome.EXPIRED:
        return "OTP has expired. Please request a new code"
    if result.outcome == VerificationOutcome.EXHAUSTED:
        return "Maximum verification attempts exceeded. Please request a new code"
    return "OTP not found"


def raise_for_error(error: OTPError):
    raise HTTPException(status_code=error.status_code, detail=error.to_detail())


# ==================== OTP CHALLENGES ====================

@otp_router.post("/generate", response_model=APIResponse)
def generate_otp(
    request: GenerateOTPRequest,
    challenge_service: ChallengeService = Depends(get_challenge_service),
):
    try:
        descriptor = challenge_service.create_challenge(request.target)
    except OTPError as e:
        raise_for_error(e)

    message = descriptor.warning or "OTP sent successfully"
    return APIResponse(success=True, message=message, data=descriptor.model_dump(mode="json", exclude_none=True))


@otp_router.post("/verify", response_model=APIResponse)
def verify_otp(
    request: VerifyOTPRequest,
    challenge_service: ChallengeService = Depends(get_challenge_service),
):
    try:
        result = challenge_service.verify(request.challenge_id, request.code)
    except OTPError as e:
        raise_for_error(e)

    if not result.accepted:
        detail = {"error": result.outcome.value, "message": rejection_message(result)}
        if result.attempts_remaining is not None:
            detail["attempts_remaining"] = result.attempts_remaining
        raise HTTPException(status_code=REJECTION_STATUS[result.outcome], detail=detail)

    return APIResponse(
        success=True,
        message="OTP verified successfully",
        data=result.model_dump(mode="json", exclude_none=True),
    )


@otp_router.post("/resend", response_model=APIResponse)
def resend_otp(
    request: ResendOTPRequest,
    challenge_service: ChallengeService = Depends(get_challenge_service),
):
    try:
        descriptor = challenge_service.resend(request.challenge_id)
    except OTPError as e:
        raise_for_error(e)

    message = descriptor.warning or "OTP resent successfully"
    return APIResponse(success=True, message=message, data=descriptor.model_dump(mode="json", exclude_none=True))
