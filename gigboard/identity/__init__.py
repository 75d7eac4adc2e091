"""Clients, workers and verification codes."""

from gigboard.identity.models import Client, IdentityDocument, Role, VerificationStatus, Worker
from gigboard.identity.otp import InMemoryOTPStorage, OTPPurpose, OTPService, generate_numeric_code
from gigboard.identity.storage import IdentityStorage, InMemoryIdentityStorage

__all__ = [
    "Client",
    "Worker",
    "Role",
    "IdentityDocument",
    "VerificationStatus",
    "IdentityStorage",
    "InMemoryIdentityStorage",
    "OTPPurpose",
    "OTPService",
    "InMemoryOTPStorage",
    "generate_numeric_code",
]
