"""Job lifecycle engine.

Models:
- Job: A unit of work posted by a client
- JobStatus: posted, assigned, active, completed
- JobStateTransition: Audit log entry for state changes
- Review: A rating left after completion

Services:
- JobService: create, claim, start, complete, cancel, listings
- ReviewService: rate_worker, rate_client
"""

from gigboard.lifecycle.config import LifecycleConfig
from gigboard.lifecycle.models import (
    Job,
    JobStateTransition,
    JobStatus,
    Review,
    ReviewType,
)
from gigboard.lifecycle.reviews import ReviewService
from gigboard.lifecycle.service import (
    ActiveJobExistsError,
    AlreadyRatedError,
    ClaimConflictError,
    InvalidOTPError,
    InvalidStateError,
    JobNotFoundError,
    JobService,
    JobServiceError,
    JobUnavailableError,
    OTPNotGeneratedError,
    OTPRequiredError,
    SkillMismatchError,
    WorkerNotFoundError,
)
from gigboard.lifecycle.storage import (
    InMemoryJobStorage,
    InMemoryReviewStorage,
    JobStorage,
    ReviewStorage,
)

__all__ = [
    # Models
    "Job",
    "JobStatus",
    "JobStateTransition",
    "Review",
    "ReviewType",
    # Storage
    "JobStorage",
    "ReviewStorage",
    "InMemoryJobStorage",
    "InMemoryReviewStorage",
    # Services
    "LifecycleConfig",
    "JobService",
    "ReviewService",
    # Errors
    "JobServiceError",
    "JobNotFoundError",
    "WorkerNotFoundError",
    "ClaimConflictError",
    "JobUnavailableError",
    "ActiveJobExistsError",
    "SkillMismatchError",
    "InvalidStateError",
    "OTPRequiredError",
    "OTPNotGeneratedError",
    "InvalidOTPError",
    "AlreadyRatedError",
]
