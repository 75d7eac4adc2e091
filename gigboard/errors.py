"""Base error type shared by the service layers.

Each subclass carries a stable machine-readable ``code`` and the HTTP status
the API renders it with, so callers can tell "retry", "refresh" and "fix your
input" apart without parsing messages.
"""

from typing import Any


class ServiceError(Exception):
    """Base class for expected, user-facing failures."""

    code = "ERROR"
    status_code = 400

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body: dict[str, Any] = {"success": False, "code": self.code, "detail": self.message}
        if self.details:
            body.update(self.details)
        return body


class ValidationError(ServiceError):
    """Missing or malformed input."""

    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(ServiceError):
    code = "NOT_FOUND"
    status_code = 404


class ConflictError(ServiceError):
    """The record changed underneath the request."""

    code = "CONFLICT"
    status_code = 409


class ForbiddenError(ServiceError):
    code = "FORBIDDEN"
    status_code = 403


class DuplicateRecordError(Exception):
    """Raised by storage backends when an insert hits a uniqueness constraint."""
