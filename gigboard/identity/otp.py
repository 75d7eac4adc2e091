"""
Short-lived numeric codes for email and phone verification.

One live code per (subject, purpose). A code expires after ten minutes,
allows three wrong guesses before it is burned, and can be re-sent at most
five times. Job completion codes do not go through here; they live on the
job itself.
"""

import copy
import hmac
import secrets
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, Optional, Protocol, Tuple

from gigboard.errors import ServiceError
from gigboard.logging_config import get_logger

logger = get_logger("gigboard.otp")

CODE_DIGITS = 6
CODE_TTL = timedelta(minutes=10)
MAX_ATTEMPTS = 3
MAX_RESENDS = 5


def generate_numeric_code(digits: int = CODE_DIGITS) -> str:
    """Random numeric code with no leading zero, from a CSPRNG."""
    if digits < 1:
        raise ValueError("digits must be positive")
    low = 10 ** (digits - 1)
    return str(low + secrets.randbelow(9 * low))


class OTPPurpose(str, Enum):
    REGISTRATION = "registration"
    EMAIL_UPDATE = "email-update"
    PHONE_UPDATE = "phone-update"


@dataclass
class OTPRecord:
    subject: str
    purpose: str
    code: str
    expires_at: datetime
    attempts: int = 0
    resend_count: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.now(timezone.utc)) >= self.expires_at

    def to_dict(self) -> dict:
        return {
            "subject": self.subject,
            "purpose": self.purpose,
            "code": self.code,
            "expires_at": self.expires_at.isoformat(),
            "attempts": self.attempts,
            "resend_count": self.resend_count,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OTPRecord":
        def _dt(value):
            if isinstance(value, datetime):
                return value
            return datetime.fromisoformat(str(value).replace("Z", "+00:00"))

        return cls(
            subject=data["subject"],
            purpose=data["purpose"],
            code=data["code"],
            expires_at=_dt(data["expires_at"]),
            attempts=int(data.get("attempts") or 0),
            resend_count=int(data.get("resend_count") or 0),
            created_at=_dt(data.get("created_at") or datetime.now(timezone.utc)),
        )


# === Errors ===


class OTPError(ServiceError):
    code = "INVALID_OTP"


class OTPNotFoundError(OTPError):
    """No live code for the subject (never sent, already used or expired)."""

    code = "INVALID_OTP"


class OTPExpiredError(OTPError):
    code = "OTP_EXPIRED"


class OTPAttemptsExceededError(OTPError):
    code = "MAX_ATTEMPTS_REACHED"


class IncorrectOTPError(OTPError):
    code = "INCORRECT_OTP"


class OTPResendLimitError(OTPError):
    code = "RESEND_LIMIT_REACHED"
    status_code = 429


# === Storage ===


class OTPStorage(Protocol):
    def get(self, subject: str, purpose: str) -> Optional[OTPRecord]:
        ...

    def put(self, record: OTPRecord) -> None:
        """Insert or replace the record for (subject, purpose)."""
        ...

    def increment_attempts(self, subject: str, purpose: str) -> Optional[OTPRecord]:
        """Atomically add one failed attempt. Returns the updated record."""
        ...

    def delete(self, subject: str, purpose: str) -> None:
        ...


class InMemoryOTPStorage:
    def __init__(self):
        self._records: Dict[Tuple[str, str], OTPRecord] = {}
        self._lock = threading.Lock()

    def get(self, subject: str, purpose: str) -> Optional[OTPRecord]:
        with self._lock:
            record = self._records.get((subject, purpose))
            return copy.copy(record) if record else None

    def put(self, record: OTPRecord) -> None:
        with self._lock:
            self._records[(record.subject, record.purpose)] = copy.copy(record)

    def increment_attempts(self, subject: str, purpose: str) -> Optional[OTPRecord]:
        with self._lock:
            record = self._records.get((subject, purpose))
            if record is None:
                return None
            record.attempts += 1
            return copy.copy(record)

    def delete(self, subject: str, purpose: str) -> None:
        with self._lock:
            self._records.pop((subject, purpose), None)


# === Service ===


def normalize_subject(subject: str) -> str:
    return subject.strip().lower()


class OTPService:
    """Issue and verify verification codes."""

    def __init__(
        self,
        storage: OTPStorage,
        ttl: timedelta = CODE_TTL,
        max_attempts: int = MAX_ATTEMPTS,
        max_resends: int = MAX_RESENDS,
        digits: int = CODE_DIGITS,
    ):
        self.storage = storage
        self.ttl = ttl
        self.max_attempts = max_attempts
        self.max_resends = max_resends
        self.digits = digits

    def issue(self, subject: str, purpose: OTPPurpose | str) -> str:
        """Mint a fresh code for ``subject``, replacing any live one.

        Re-issuing while a previous code is still live counts as a resend.
        """
        subject = normalize_subject(subject)
        purpose = OTPPurpose(purpose).value
        now = datetime.now(timezone.utc)

        existing = self.storage.get(subject, purpose)
        resend_count = 0
        if existing is not None and not existing.is_expired(now):
            if existing.resend_count >= self.max_resends:
                raise OTPResendLimitError(
                    "Too many codes requested. Please wait before trying again."
                )
            resend_count = existing.resend_count + 1

        record = OTPRecord(
            subject=subject,
            purpose=purpose,
            code=generate_numeric_code(self.digits),
            expires_at=now + self.ttl,
            resend_count=resend_count,
        )
        self.storage.put(record)
        logger.info(f"OTP issued | purpose={purpose} | resend={resend_count}")
        return record.code

    def verify(self, subject: str, purpose: OTPPurpose | str, code: str) -> None:
        """Check ``code``; the record is consumed on success.

        Raises an :class:`OTPError` subclass on failure.
        """
        subject = normalize_subject(subject)
        purpose = OTPPurpose(purpose).value

        record = self.storage.get(subject, purpose)
        if record is None:
            raise OTPNotFoundError("Invalid or expired OTP")
        if record.is_expired():
            self.storage.delete(subject, purpose)
            raise OTPExpiredError("This OTP has expired. Please request a new code.")
        if record.attempts >= self.max_attempts:
            self.storage.delete(subject, purpose)
            raise OTPAttemptsExceededError("Too many failed attempts. Please request a new code.")

        if not hmac.compare_digest(record.code, str(code).strip()):
            updated = self.storage.increment_attempts(subject, purpose) or replace(
                record, attempts=record.attempts + 1
            )
            remaining = max(0, self.max_attempts - updated.attempts)
            if remaining > 0:
                message = (
                    f"The OTP you entered is incorrect. You have {remaining} "
                    f"{'attempt' if remaining == 1 else 'attempts'} remaining."
                )
            else:
                message = "You have used all your OTP attempts. Please request a new code."
            raise IncorrectOTPError(message, remaining_attempts=remaining, can_retry=remaining > 0)

        self.storage.delete(subject, purpose)
