"""Job lifecycle data models.

A job moves through ``posted -> assigned -> active -> completed``. Workers can
hand an assigned or active job back to the pool (``posted``), and clients can
delete a job while it is still ``posted`` or ``assigned``. ``completed`` is
terminal.
"""

import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from gigboard.geo import Address
from gigboard.skills import is_known_skill

MAX_TITLE_LENGTH = 200
MAX_REVIEW_LENGTH = 500


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _format_dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class JobStatus(str, Enum):
    """Stored job status values."""

    POSTED = "posted"
    ASSIGNED = "assigned"
    ACTIVE = "active"
    COMPLETED = "completed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


# Pseudo-status recorded in the audit trail when a job is hard-deleted
DELETED = "deleted"

# Statuses in which a worker "holds" a job
HELD_STATUSES = (JobStatus.ASSIGNED.value, JobStatus.ACTIVE.value)
# Statuses that carry a worker reference
WORKER_STATUSES = (JobStatus.ASSIGNED.value, JobStatus.ACTIVE.value, JobStatus.COMPLETED.value)
# Statuses from which the owning client may delete the job
CANCELLABLE_STATUSES = (JobStatus.POSTED.value, JobStatus.ASSIGNED.value)

_JOB_STATUS_VALUES = {s.value for s in JobStatus}
_PAYMENT_STATUS_VALUES = {s.value for s in PaymentStatus}


@dataclass
class Job:
    """A unit of work posted by a client."""

    id: str
    client_id: str
    title: str
    description: str
    skill: str
    address: Address
    urgency: bool = False
    worker_id: Optional[str] = None
    status: str = JobStatus.POSTED.value
    image_url: Optional[str] = None
    image_handle: Optional[str] = None
    completion_otp: Optional[str] = None
    payment_status: str = PaymentStatus.PENDING.value
    payment_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.status, JobStatus):
            self.status = self.status.value
        if self.status not in _JOB_STATUS_VALUES:
            raise ValueError(f"Invalid status: {self.status}")
        if self.payment_status not in _PAYMENT_STATUS_VALUES:
            raise ValueError(f"Invalid payment status: {self.payment_status}")
        if not self.title or not self.title.strip():
            raise ValueError("Title is required")
        if len(self.title) > MAX_TITLE_LENGTH:
            raise ValueError(f"Title too long (max {MAX_TITLE_LENGTH} chars)")
        if not self.description or not self.description.strip():
            raise ValueError("Description is required")
        if not is_known_skill(self.skill):
            raise ValueError(f"Unknown skill: {self.skill}")
        if isinstance(self.address, dict):
            self.address = Address.from_dict(self.address)
        if self.address.is_empty():
            raise ValueError("Address needs a city or coordinates")

        holds_worker = self.status in WORKER_STATUSES
        if holds_worker and not self.worker_id:
            raise ValueError(f"A {self.status} job must have a worker")
        if not holds_worker and self.worker_id:
            raise ValueError(f"A {self.status} job cannot have a worker")
        if self.completion_otp is not None and self.status != JobStatus.ACTIVE.value:
            raise ValueError("Completion code only exists while a job is active")

    @property
    def is_claimable(self) -> bool:
        return self.status == JobStatus.POSTED.value and self.worker_id is None

    def to_dict(self) -> Dict[str, Any]:
        """Serialise to a storage row (datetimes as ISO strings)."""
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["address"] = self.address.to_dict()
        for key in ("created_at", "updated_at", "assigned_at", "started_at", "completed_at"):
            data[key] = _format_dt(data[key])
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Job":
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values["address"] = Address.from_dict(data.get("address"))
        for key in ("created_at", "updated_at", "assigned_at", "started_at", "completed_at"):
            values[key] = _parse_dt(values.get(key))
        values["urgency"] = bool(values.get("urgency", False))
        return cls(**values)


@dataclass
class JobStateTransition:
    """Audit log entry for one job status change."""

    id: str
    job_id: str
    to_status: str
    from_status: Optional[str] = None
    actor_id: Optional[str] = None
    reason: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "actor_id": self.actor_id,
            "reason": self.reason,
            "created_at": _format_dt(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobStateTransition":
        return cls(
            id=data["id"],
            job_id=data["job_id"],
            from_status=data.get("from_status"),
            to_status=data["to_status"],
            actor_id=data.get("actor_id"),
            reason=data.get("reason"),
            created_at=_parse_dt(data.get("created_at")) or utc_now(),
        )


class ReviewType(str, Enum):
    """Direction of a rating."""

    CLIENT_TO_WORKER = "client-to-worker"
    WORKER_TO_CLIENT = "worker-to-client"


@dataclass
class Review:
    """A rating left by one party of a completed job for the other."""

    id: str
    job_id: str
    client_id: str
    worker_id: str
    review_type: str
    rating: int
    review: str = ""
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.review_type, ReviewType):
            self.review_type = self.review_type.value
        if self.review_type not in {t.value for t in ReviewType}:
            raise ValueError(f"Invalid review type: {self.review_type}")
        if isinstance(self.rating, bool) or not isinstance(self.rating, int):
            raise ValueError("Rating must be an integer")
        if not 1 <= self.rating <= 5:
            raise ValueError("Rating must be between 1 and 5")
        self.review = self.review or ""
        if len(self.review) > MAX_REVIEW_LENGTH:
            raise ValueError(f"Review too long (max {MAX_REVIEW_LENGTH} chars)")

    def to_dict(self) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["created_at"] = _format_dt(self.created_at)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Review":
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values["created_at"] = _parse_dt(values.get("created_at"))
        return cls(**values)
