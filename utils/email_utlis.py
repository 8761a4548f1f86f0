import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
import logging
import ssl
import os
import certifi
from dotenv import load_dotenv

from exceptions import DeliveryError

load_dotenv()

logger = logging.getLogger(__name__)

# Email settings (example with Gmail SMTP)
SMTP_SERVER = os.getenv("SMTP_SERVER")
SMTP_PORT = os.getenv("SMTP_PORT")
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
SMTP_REPLY_TO = os.getenv("SMTP_REPLY_TO")


def is_email_configured() -> bool:
    return bool(SMTP_SERVER and SMTP_USER and SMTP_PASSWORD)


def build_otp_message(email: str, code: str, validity_minutes: int) -> MIMEMultipart:
    # Create the email content (plain + HTML alternative)
    message = MIMEMultipart("alternative")
    message["From"] = SMTP_USER or ""
    message["To"] = email
    message["Subject"] = "Your verification code"
    if SMTP_REPLY_TO:
        message["Reply-To"] = SMTP_REPLY_TO

    plain_text_body = (
        f"Your OTP verification code is: {code}\n\n"
        f"This code will expire in {validity_minutes} minutes.\n\n"
        "Do not share this code with anyone."
    )
    html_body = (
        f"<html><body>"
        f"<p>Your OTP verification code is:</p>"
        f"<p style=\"font-size:24px;font-weight:bold;letter-spacing:4px\">{code}</p>"
        f"<p>This code will expire in {validity_minutes} minutes.</p>"
        f"<p>Do not share this code with anyone.</p>"
        f"</body></html>"
    )

    message.attach(MIMEText(plain_text_body, "plain"))
    message.attach(MIMEText(html_body, "html"))
    return message


def send_otp_email(email: str, code: str, validity_minutes: int = 5):
    if not is_email_configured():
        raise DeliveryError("Email delivery is not configured")

    message = build_otp_message(email, code, validity_minutes)
    try:
        # Connect to SMTP server
        context = ssl.create_default_context(cafile=certifi.where())
        server = smtplib.SMTP(SMTP_SERVER, int(SMTP_PORT) if SMTP_PORT else 587, timeout=10)
        try:
            server.starttls(context=context)
            server.login(SMTP_USER, SMTP_PASSWORD)
            server.sendmail(SMTP_USER, email, message.as_string())
        finally:
            server.quit()
    except (smtplib.SMTPException, OSError, ValueError) as e:
        logger.error("Email to %s failed: %s", email, e)
        raise DeliveryError(f"Email failed: {e}") from e

    logger.info("OTP email sent to %s", email)
