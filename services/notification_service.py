import logging
from typing import Callable

from exceptions import DeliveryError
from utils.email_utlis import send_otp_email
from utils.sms_utils import send_otp_sms

logger = logging.getLogger(__name__)


class NotificationSender:
    """Delivers OTP codes over the channel the target belongs to."""

    def __init__(
        self,
        email_sender: Callable[[str, str], object] = send_otp_email,
        sms_sender: Callable[[str, str], object] = send_otp_sms,
    ):
        self.email_sender = email_sender
        self.sms_sender = sms_sender

    def deliver(self, target: str, code: str) -> bool:
        """
        Hand the code to the email or SMS sender.

        Returns False on any delivery failure; never raises, since a failed
        delivery must not undo the challenge that was already stored.
        """
        sender = self.sms_sender if target.startswith("+") else self.email_sender
        try:
            sender(target, code)
        except DeliveryError as e:
            logger.warning("OTP delivery to %s failed: %s", target, e.message)
            return False
        return True


# ==================== DEPENDENCY INJECTION ====================

def get_notification_sender() -> NotificationSender:
    """Dependency injection for NotificationSender"""
    return NotificationSender()
