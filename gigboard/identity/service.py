"""
Account service.

Registration with email verification, login, profile maintenance, contact
changes behind an OTP, and the admin-side block/verification switches.
"""

import re
import uuid
from typing import Any, Dict, Mapping, Optional, Union

from gigboard.errors import (
    ConflictError,
    DuplicateRecordError,
    ForbiddenError,
    NotFoundError,
    ServiceError,
    ValidationError,
)
from gigboard.geo import Address
from gigboard.identity.models import (
    Client,
    IdentityDocument,
    Role,
    VerificationStatus,
    Worker,
    utc_now,
)
from gigboard.identity.otp import OTPPurpose, OTPService
from gigboard.identity.passwords import MIN_PASSWORD_LENGTH, hash_password, verify_password
from gigboard.identity.storage import AnyUser, IdentityStorage, role_value
from gigboard.logging_config import get_logger, log_auth_event
from gigboard.media import AADHAAR_FOLDER, PROFILE_PICTURES_FOLDER, MediaError, MediaStore
from gigboard.notify import Notifier, otp_email, otp_sms
from gigboard.skills import normalize_skills

logger = get_logger("gigboard.accounts")

USER_ROLES = (Role.CLIENT.value, Role.WORKER.value)
PROFILE_FIELDS = {"name", "address"}
WORKER_PROFILE_FIELDS = PROFILE_FIELDS | {"skills", "experience", "bio"}
AADHAAR_PATTERN = re.compile(r"^\d{12}$")


# === Errors ===


class AccountNotFoundError(NotFoundError):
    code = "USER_NOT_FOUND"


class DuplicateAccountError(ConflictError):
    code = "ACCOUNT_EXISTS"


class ContactInUseError(ConflictError):
    code = "CONTACT_IN_USE"


class RegistrationIncompleteError(ServiceError):
    code = "REGISTRATION_INCOMPLETE"
    status_code = 401


class EmailNotVerifiedError(ForbiddenError):
    code = "EMAIL_NOT_VERIFIED"


class AccountBlockedError(ForbiddenError):
    code = "ACCOUNT_BLOCKED"


class InvalidCredentialsError(ServiceError):
    code = "INVALID_CREDENTIALS"
    status_code = 401


class InvalidPasswordError(ServiceError):
    code = "INVALID_CURRENT_PASSWORD"


class UploadError(ServiceError):
    code = "UPLOAD_ERROR"
    status_code = 502


def _missing(fields: Mapping[str, Any]) -> None:
    """Raise a ValidationError naming every empty field."""
    missing = [name for name, value in fields.items() if value is None or str(value).strip() == ""]
    if not missing:
        return
    verb = "is" if len(missing) == 1 else "are"
    names = missing[0] if len(missing) == 1 else f"{', '.join(missing[:-1])} and {missing[-1]}"
    raise ValidationError(f"{names} {verb} required", fields=missing)


def check_role(role: Union[Role, str]) -> str:
    value = role_value(role)
    if value not in USER_ROLES:
        raise ValidationError("Invalid role. Must be client or worker.")
    return value


class AccountService:
    """Accounts for clients and workers."""

    def __init__(
        self,
        storage: IdentityStorage,
        otp: OTPService,
        notifier: Notifier,
        media: Optional[MediaStore] = None,
    ):
        self.storage = storage
        self.otp = otp
        self.notifier = notifier
        self.media = media

    # === Lookup ===

    def get_user(self, role: Union[Role, str], user_id: str) -> AnyUser:
        user = self.storage.get_user(check_role(role), user_id)
        if user is None:
            raise AccountNotFoundError(f"{role_value(role).capitalize()} profile not found")
        return user

    def _update(self, role: str, user_id: str, changes: Mapping[str, Any]) -> AnyUser:
        try:
            updated = self.storage.update_user(role, user_id, changes)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        if updated is None:
            raise AccountNotFoundError(f"{role.capitalize()} profile not found")
        return updated

    # === Registration and login ===

    def register(
        self,
        role: Union[Role, str],
        name: str,
        email: str,
        phone: str,
        password: str,
        **profile: Any,
    ) -> AnyUser:
        """Create a temporary account and email a verification code.

        A still-temporary account with the same email or phone is replaced.
        """
        _missing({"name": name, "email": email, "phone": phone, "role": role, "password": password})
        role = check_role(role)
        email = email.strip().lower()
        phone = phone.strip()
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
            )

        existing = self.storage.find_by_contact(role, email, phone)
        if existing is not None:
            if not existing.is_temporary:
                field = "email" if existing.email == email else "phone"
                log_auth_event("register", existing.id, False, reason=f"{field}_taken")
                raise DuplicateAccountError(
                    f"An account with this {field} already exists. "
                    f"Try logging in or use a different {field}.",
                    field=field,
                )
            self.storage.delete_user(role, existing.id)
            logger.info(f"Replaced unfinished registration | id={existing.id}")

        fields: Dict[str, Any] = {
            "id": str(uuid.uuid4()),
            "name": name,
            "email": email,
            "phone": phone,
            "password_hash": hash_password(password),
            "is_temporary": True,
        }
        if profile.get("address") is not None:
            fields["address"] = _as_address(profile["address"])
        try:
            if role == Role.WORKER.value:
                user = Worker(
                    **fields,
                    skills=normalize_skills(profile.get("skills")),
                    experience=profile.get("experience"),
                    bio=profile.get("bio"),
                )
            else:
                user = Client(**fields)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        try:
            user = self.storage.insert_user(user)
        except DuplicateRecordError as e:
            raise DuplicateAccountError("An account with this email or phone already exists") from e

        code = self.otp.issue(email, OTPPurpose.REGISTRATION)
        subject, body = otp_email(code, OTPPurpose.REGISTRATION.value)
        self.notifier.send_email(email, subject, body)
        log_auth_event("register", user.id, True)
        return user

    def verify_registration(self, email: str, code: str) -> AnyUser:
        """Confirm the emailed code; the account becomes permanent."""
        _missing({"email": email, "OTP": code})
        self.otp.verify(email, OTPPurpose.REGISTRATION, code)

        user = self.storage.find_by_email(email)
        if user is None:
            raise AccountNotFoundError("No account found for this email")
        user = self._update(
            user.role.value, user.id, {"is_temporary": False, "email_verified": True}
        )
        log_auth_event("verify_registration", user.id, True)
        return user

    def authenticate(self, identifier: str, password: str) -> AnyUser:
        """Log in with an email or phone number."""
        _missing({"email/phone": identifier, "password": password})
        identifier = identifier.strip()

        user = None
        for role in USER_ROLES:
            user = self.storage.find_by_contact(role, identifier, identifier)
            if user is not None:
                break

        if user is None:
            log_auth_event("login", "unknown", False, reason="no_account")
            raise AccountNotFoundError(
                "No account found with this email/phone. Please check your details or sign up."
            )
        if user.is_temporary:
            raise RegistrationIncompleteError(
                "Please complete your registration first. Check your email for the verification code."
            )
        if not user.email_verified:
            raise EmailNotVerifiedError("Please verify your email before logging in.")
        if user.blocked:
            log_auth_event("login", user.id, False, reason="blocked")
            raise AccountBlockedError("This account has been blocked. Contact support.")
        if not verify_password(password, user.password_hash):
            log_auth_event("login", user.id, False, reason="bad_password")
            raise InvalidCredentialsError("Incorrect password. Please try again or reset your password.")

        log_auth_event("login", user.id, True)
        return user

    # === Profile ===

    def update_profile(self, role: Union[Role, str], user_id: str, changes: Mapping[str, Any]) -> AnyUser:
        """Update editable profile fields. Unknown and protected keys are ignored."""
        role = check_role(role)
        allowed = WORKER_PROFILE_FIELDS if role == Role.WORKER.value else PROFILE_FIELDS
        updates = {k: v for k, v in changes.items() if k in allowed and v is not None}
        if "address" in updates:
            updates["address"] = _as_address(updates["address"])
        if "skills" in updates:
            updates["skills"] = normalize_skills(updates["skills"])
        if not updates:
            return self.get_user(role, user_id)
        return self._update(role, user_id, updates)

    def update_profile_picture(
        self, role: Union[Role, str], user_id: str, data: bytes, filename: str
    ) -> AnyUser:
        role = check_role(role)
        user = self.get_user(role, user_id)
        ref = self._upload(data, filename, f"{PROFILE_PICTURES_FOLDER}/{user_id}")
        # Old picture is released only after the new one is stored
        if user.profile_picture_handle:
            self.media.delete(user.profile_picture_handle)
        return self._update(
            role, user_id, {"profile_picture_url": ref.url, "profile_picture_handle": ref.handle}
        )

    def submit_identity_document(
        self, role: Union[Role, str], user_id: str, number: str, data: bytes, filename: str
    ) -> AnyUser:
        """Store an Aadhaar number and scan; verification goes back to pending."""
        role = check_role(role)
        _missing({"aadhaar number": number})
        number = re.sub(r"[\s-]", "", number)
        if not AADHAAR_PATTERN.match(number):
            raise ValidationError("Please enter a valid 12-digit Aadhaar number")

        user = self.get_user(role, user_id)
        ref = self._upload(data, filename, f"{AADHAAR_FOLDER}/{user_id}")
        if user.aadhaar.document_handle:
            self.media.delete(user.aadhaar.document_handle)

        document = IdentityDocument(
            number=number,
            document_url=ref.url,
            document_handle=ref.handle,
            verification_status=VerificationStatus.PENDING.value,
            submitted_at=utc_now(),
        )
        return self._update(role, user_id, {"aadhaar": document})

    def _upload(self, data: bytes, filename: str, folder: str):
        if self.media is None:
            raise UploadError("File uploads are not configured")
        try:
            return self.media.upload(data, filename, folder)
        except MediaError as e:
            raise UploadError("Upload failed. Please try again.") from e

    def change_password(
        self, role: Union[Role, str], user_id: str, current_password: str, new_password: str
    ) -> None:
        _missing({"current password": current_password, "new password": new_password})
        if current_password == new_password:
            raise ValidationError("New password must be different from your current password")
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"New password must be at least {MIN_PASSWORD_LENGTH} characters long"
            )

        role = check_role(role)
        user = self.get_user(role, user_id)
        if not verify_password(current_password, user.password_hash):
            log_auth_event("change_password", user_id, False, reason="bad_current_password")
            raise InvalidPasswordError("The current password you entered is incorrect.")

        self._update(role, user_id, {"password_hash": hash_password(new_password)})
        log_auth_event("change_password", user_id, True)

    # === Contact changes ===

    def _ensure_contact_free(self, role: str, user_id: str, channel: str, value: str) -> None:
        email = value if channel == "email" else None
        phone = value if channel == "phone" else None
        owner = self.storage.find_by_contact(role, email, phone)
        if owner is not None and owner.id != user_id:
            raise ContactInUseError(
                f"This {channel} is already associated with another account.", field=channel
            )

    def send_contact_otp(self, role: Union[Role, str], user_id: str, channel: str, value: str) -> None:
        """Send a code to a new email address or phone number."""
        role = check_role(role)
        if channel not in ("email", "phone"):
            raise ValidationError("channel must be email or phone")
        _missing({channel: value})
        value = value.strip().lower() if channel == "email" else value.strip()
        self.get_user(role, user_id)
        self._ensure_contact_free(role, user_id, channel, value)

        if channel == "email":
            code = self.otp.issue(value, OTPPurpose.EMAIL_UPDATE)
            subject, body = otp_email(code, OTPPurpose.EMAIL_UPDATE.value)
            self.notifier.send_email(value, subject, body)
        else:
            code = self.otp.issue(value, OTPPurpose.PHONE_UPDATE)
            self.notifier.send_sms(value, otp_sms(code))
        logger.info(f"Contact OTP sent | user={user_id} | channel={channel}")

    def verify_contact_otp(
        self, role: Union[Role, str], user_id: str, channel: str, value: str, code: str
    ) -> AnyUser:
        """Check the code and switch the account to the new, verified contact."""
        role = check_role(role)
        if channel not in ("email", "phone"):
            raise ValidationError("channel must be email or phone")
        _missing({channel: value, "OTP": code})
        value = value.strip().lower() if channel == "email" else value.strip()

        purpose = OTPPurpose.EMAIL_UPDATE if channel == "email" else OTPPurpose.PHONE_UPDATE
        self.otp.verify(value, purpose, code)
        self._ensure_contact_free(role, user_id, channel, value)

        changes = {channel: value, f"{channel}_verified": True}
        user = self._update(role, user_id, changes)
        logger.info(f"Contact updated | user={user_id} | channel={channel}")
        return user

    # === Admin ===

    def set_blocked(self, role: Union[Role, str], user_id: str, blocked: bool) -> AnyUser:
        role = check_role(role)
        user = self._update(role, user_id, {"blocked": blocked})
        logger.info(f"User {'blocked' if blocked else 'unblocked'} | role={role} | user={user_id}")
        return user

    def set_verification(
        self, role: Union[Role, str], user_id: str, status: Union[VerificationStatus, str]
    ) -> AnyUser:
        role = check_role(role)
        status = VerificationStatus(status).value
        user = self.get_user(role, user_id)
        document = IdentityDocument(
            number=user.aadhaar.number,
            document_url=user.aadhaar.document_url,
            document_handle=user.aadhaar.document_handle,
            verification_status=status,
            submitted_at=user.aadhaar.submitted_at,
        )
        updated = self._update(role, user_id, {"aadhaar": document})
        logger.info(f"Identity verification {status} | role={role} | user={user_id}")
        return updated


def _as_address(value: Any) -> Address:
    """Accept an Address, a dict, or a bare city string."""
    if isinstance(value, Address):
        return value
    if isinstance(value, str):
        return Address(city=value.strip() or None)
    if isinstance(value, dict):
        return Address.from_dict(value)
    raise ValidationError("Invalid address format")
