import logging
import os
import httpx
from dotenv import load_dotenv

from exceptions import DeliveryError

load_dotenv()

logger = logging.getLogger(__name__)

TWILIO_API_URL = "https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json"
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_PHONE_NUMBER = os.getenv("TWILIO_PHONE_NUMBER")


def is_sms_configured() -> bool:
    return bool(TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN and TWILIO_PHONE_NUMBER)


def send_sms(to: str, body: str, client: httpx.Client | None = None) -> str:
    """Send an SMS through the Twilio Messages API and return the message SID."""
    if not is_sms_configured():
        raise DeliveryError("Twilio credentials not configured")

    url = TWILIO_API_URL.format(account_sid=TWILIO_ACCOUNT_SID)
    data = {"To": to, "From": TWILIO_PHONE_NUMBER, "Body": body}

    try:
        response = (client or httpx).post(
            url,
            data=data,
            auth=(TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN),
            headers={"Accept": "application/json"},
            timeout=10.0,
        )
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.error("Twilio request to %s failed: %s", to, e)
        raise DeliveryError(f"Failed to send SMS: {e}") from e

    try:
        payload = response.json()
    except ValueError:
        payload = {}

    if response.status_code >= 400:
        logger.error("Twilio error (%s) for %s: %s", payload.get("code"), to, payload.get("message"))
        raise DeliveryError(f"Twilio error ({payload.get('code')}): {payload.get('message')}")

    logger.info("SMS sent to %s, SID: %s, status: %s", to, payload.get("sid"), payload.get("status"))
    return payload.get("sid", "")


def send_otp_sms(phone: str, code: str, validity_minutes: int = 5) -> str:
    message = (
        f"Your OTP verification code is: {code}\n\n"
        f"This code will expire in {validity_minutes} minutes.\n\n"
        "Do not share this code with anyone."
    )
    return send_sms(phone, message)
