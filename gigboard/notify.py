"""Notification collaborator: OTP delivery over email and SMS.

Sends are fire-and-forget from the caller's point of view. ``send_email`` and
``send_sms`` return False when delivery failed; they do not raise.
"""

import threading
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Tuple

import httpx

from gigboard.logging_config import get_logger

logger = get_logger("gigboard.notify")

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"
RESEND_API_URL = "https://api.resend.com/emails"


class Notifier(Protocol):
    def send_email(self, to: str, subject: str, body: str) -> bool:
        ...

    def send_sms(self, to: str, body: str) -> bool:
        ...


def _mask(contact: str) -> str:
    """Keep enough of an address to correlate logs without leaking it."""
    if "@" in contact:
        local, _, domain = contact.partition("@")
        return f"{local[:2]}***@{domain}"
    return f"***{contact[-4:]}" if len(contact) > 4 else "***"


def format_phone(phone: str, default_country_code: str = "+91") -> str:
    """Normalise a local number to E.164."""
    phone = phone.strip().replace(" ", "").replace("-", "")
    if phone.startswith("+"):
        return phone
    return f"{default_country_code}{phone.lstrip('0')}"


class HttpNotifier:
    """Email through an HTTP mail API, SMS through the Twilio REST API."""

    def __init__(
        self,
        email_api_key: Optional[str] = None,
        email_from: Optional[str] = None,
        twilio_account_sid: Optional[str] = None,
        twilio_auth_token: Optional[str] = None,
        twilio_from_number: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        self.email_api_key = email_api_key
        self.email_from = email_from
        self.twilio_account_sid = twilio_account_sid
        self.twilio_auth_token = twilio_auth_token
        self.twilio_from_number = twilio_from_number
        self._client = client or httpx.Client(timeout=timeout)

    def send_email(self, to: str, subject: str, body: str) -> bool:
        if not self.email_api_key or not self.email_from:
            logger.warning(f"Email not configured; dropping message | to={_mask(to)}")
            return False
        try:
            response = self._client.post(
                RESEND_API_URL,
                headers={"Authorization": f"Bearer {self.email_api_key}"},
                json={"from": self.email_from, "to": [to], "subject": subject, "text": body},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Email send failed | to={_mask(to)} | error={e}")
            return False
        logger.info(f"Email sent | to={_mask(to)}")
        return True

    def send_sms(self, to: str, body: str) -> bool:
        if not (self.twilio_account_sid and self.twilio_auth_token and self.twilio_from_number):
            logger.warning(f"SMS not configured; dropping message | to={_mask(to)}")
            return False
        url = f"{TWILIO_API_BASE}/Accounts/{self.twilio_account_sid}/Messages.json"
        try:
            response = self._client.post(
                url,
                auth=(self.twilio_account_sid, self.twilio_auth_token),
                data={"From": self.twilio_from_number, "To": format_phone(to), "Body": body},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"SMS send failed | to={_mask(to)} | error={e}")
            return False
        logger.info(f"SMS sent | to={_mask(to)}")
        return True


@dataclass
class LoggingNotifier:
    """Records messages instead of sending them. Used in tests and local dev."""

    emails: List[Tuple[str, str, str]] = field(default_factory=list)
    sms: List[Tuple[str, str]] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def send_email(self, to: str, subject: str, body: str) -> bool:
        with self._lock:
            self.emails.append((to, subject, body))
        logger.info(f"Email queued (not sent) | to={_mask(to)} | subject={subject}")
        return True

    def send_sms(self, to: str, body: str) -> bool:
        with self._lock:
            self.sms.append((to, body))
        logger.info(f"SMS queued (not sent) | to={_mask(to)}")
        return True


def otp_email(code: str, purpose: str) -> Tuple[str, str]:
    """Subject and body for a verification-code email."""
    subject = "Your gigboard verification code"
    body = (
        f"Your verification code for {purpose.replace('-', ' ')} is {code}.\n"
        "It expires in 10 minutes. If you did not request it, ignore this email."
    )
    return subject, body


def otp_sms(code: str) -> str:
    return f"Your gigboard verification code is {code}. It expires in 10 minutes."
