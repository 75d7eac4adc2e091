"""
Job and review storage layer.

Every job mutation goes through a conditional write: ``update_job_where`` and
``delete_job_where`` apply their change only if the stored row still matches
``expected``, in one indivisible step. Backends must not implement them as a
read followed by a write.

``expected`` maps a field name to:

- ``None``: the field must be null
- a tuple, list, set or frozenset: the field must equal one of the members
- any other value: the field must equal it
"""

import copy
import dataclasses
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from gigboard.errors import DuplicateRecordError
from gigboard.lifecycle.models import Job, JobStateTransition, Review

logger = logging.getLogger(__name__)


def matches(record: Any, expected: Mapping[str, Any]) -> bool:
    """Check a record against a conditional-write predicate."""
    for name, wanted in expected.items():
        actual = getattr(record, name)
        if wanted is None:
            if actual is not None:
                return False
        elif isinstance(wanted, (tuple, list, set, frozenset)):
            if actual not in wanted:
                return False
        elif actual != wanted:
            return False
    return True


class JobStorage(Protocol):
    """Protocol for job persistence backends."""

    def insert_job(self, job: Job) -> Job:
        """Insert a new job. Returns the stored job."""
        ...

    def get_job(self, job_id: str) -> Optional[Job]:
        """Get a job by ID."""
        ...

    def update_job_where(
        self, job_id: str, expected: Mapping[str, Any], changes: Mapping[str, Any]
    ) -> Optional[Job]:
        """Apply ``changes`` if the job matches ``expected``.

        Returns the updated job, or None if nothing matched.
        """
        ...

    def delete_job_where(self, job_id: str, expected: Mapping[str, Any]) -> Optional[Job]:
        """Delete the job if it matches ``expected``. Returns the deleted job."""
        ...

    def list_jobs(
        self,
        statuses: Optional[Sequence[str]] = None,
        client_id: Optional[str] = None,
        worker_id: Optional[str] = None,
        skills: Optional[Sequence[str]] = None,
        urgent_only: bool = False,
        unassigned_only: bool = False,
        order_by: str = "created_at",
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Job]:
        """List jobs with optional filters, newest first by ``order_by``."""
        ...

    def count_jobs(
        self,
        statuses: Optional[Sequence[str]] = None,
        client_id: Optional[str] = None,
        worker_id: Optional[str] = None,
    ) -> int:
        """Count jobs matching the filters."""
        ...

    def count_jobs_by_status(self, client_id: Optional[str] = None) -> Dict[str, int]:
        """Job counts keyed by status."""
        ...

    def count_jobs_by_skill(self) -> Dict[str, int]:
        """Job counts keyed by skill."""
        ...

    # Transitions (audit log)
    def save_transition(self, transition: JobStateTransition) -> str:
        """Save a state transition record. Returns the transition ID."""
        ...

    def get_transitions(self, job_id: str) -> List[JobStateTransition]:
        """Get all state transitions for a job, oldest first."""
        ...


class ReviewStorage(Protocol):
    """Protocol for review persistence backends."""

    def insert_review(self, review: Review) -> Review:
        """Insert a review. Raises DuplicateRecordError if (job, direction) exists."""
        ...

    def get_review(self, job_id: str, review_type: str) -> Optional[Review]:
        """Get the review for one job and direction."""
        ...

    def list_reviews(
        self,
        job_ids: Optional[Sequence[str]] = None,
        review_type: Optional[str] = None,
        worker_id: Optional[str] = None,
        client_id: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Review]:
        """List reviews, newest first."""
        ...

    def count_reviews(self) -> int:
        ...

    def delete_review(self, review_id: str) -> bool:
        """Delete a review. Returns True if it existed."""
        ...


def _sort_key(value: Optional[datetime]) -> datetime:
    return value or datetime.min.replace(tzinfo=timezone.utc)


class InMemoryJobStorage:
    """In-memory job storage for testing and local development.

    A single lock serialises every write, which gives conditional writes the
    same all-or-nothing behaviour a database row update has.
    """

    def __init__(self):
        self._jobs: Dict[str, Job] = {}
        self._transitions: Dict[str, List[JobStateTransition]] = {}
        self._lock = threading.RLock()

    def _utc_now(self) -> datetime:
        return datetime.now(timezone.utc)

    # === Jobs ===

    def insert_job(self, job: Job) -> Job:
        with self._lock:
            if job.id in self._jobs:
                raise DuplicateRecordError(f"Job {job.id} already exists")
            now = self._utc_now()
            stored = dataclasses.replace(
                job, created_at=job.created_at or now, updated_at=job.updated_at or now
            )
            self._jobs[stored.id] = stored
            return copy.deepcopy(stored)

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            return copy.deepcopy(job) if job else None

    def update_job_where(
        self, job_id: str, expected: Mapping[str, Any], changes: Mapping[str, Any]
    ) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or not matches(job, expected):
                return None
            updated = dataclasses.replace(job, **{**changes, "updated_at": self._utc_now()})
            self._jobs[job_id] = updated
            return copy.deepcopy(updated)

    def delete_job_where(self, job_id: str, expected: Mapping[str, Any]) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or not matches(job, expected):
                return None
            del self._jobs[job_id]
            return copy.deepcopy(job)

    def _filter(
        self,
        statuses: Optional[Sequence[str]] = None,
        client_id: Optional[str] = None,
        worker_id: Optional[str] = None,
        skills: Optional[Sequence[str]] = None,
        urgent_only: bool = False,
        unassigned_only: bool = False,
    ) -> List[Job]:
        jobs = list(self._jobs.values())
        if statuses is not None:
            jobs = [j for j in jobs if j.status in statuses]
        if client_id is not None:
            jobs = [j for j in jobs if j.client_id == client_id]
        if worker_id is not None:
            jobs = [j for j in jobs if j.worker_id == worker_id]
        if skills is not None:
            jobs = [j for j in jobs if j.skill in skills]
        if urgent_only:
            jobs = [j for j in jobs if j.urgency]
        if unassigned_only:
            jobs = [j for j in jobs if j.worker_id is None]
        return jobs

    def list_jobs(
        self,
        statuses: Optional[Sequence[str]] = None,
        client_id: Optional[str] = None,
        worker_id: Optional[str] = None,
        skills: Optional[Sequence[str]] = None,
        urgent_only: bool = False,
        unassigned_only: bool = False,
        order_by: str = "created_at",
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Job]:
        with self._lock:
            jobs = self._filter(statuses, client_id, worker_id, skills, urgent_only, unassigned_only)
            jobs.sort(key=lambda j: _sort_key(getattr(j, order_by)), reverse=True)
            end = None if limit is None else offset + limit
            return copy.deepcopy(jobs[offset:end])

    def count_jobs(
        self,
        statuses: Optional[Sequence[str]] = None,
        client_id: Optional[str] = None,
        worker_id: Optional[str] = None,
    ) -> int:
        with self._lock:
            return len(self._filter(statuses, client_id, worker_id))

    def count_jobs_by_status(self, client_id: Optional[str] = None) -> Dict[str, int]:
        with self._lock:
            counts: Dict[str, int] = {}
            for job in self._filter(client_id=client_id):
                counts[job.status] = counts.get(job.status, 0) + 1
            return counts

    def count_jobs_by_skill(self) -> Dict[str, int]:
        with self._lock:
            counts: Dict[str, int] = {}
            for job in self._jobs.values():
                counts[job.skill] = counts.get(job.skill, 0) + 1
            return counts

    # === Transitions ===

    def save_transition(self, transition: JobStateTransition) -> str:
        with self._lock:
            self._transitions.setdefault(transition.job_id, []).append(transition)
            return transition.id

    def get_transitions(self, job_id: str) -> List[JobStateTransition]:
        with self._lock:
            transitions = self._transitions.get(job_id, [])
            return sorted(transitions, key=lambda t: t.created_at)


class InMemoryReviewStorage:
    """In-memory review storage with a unique (job_id, review_type) key."""

    def __init__(self):
        self._reviews: Dict[str, Review] = {}
        self._lock = threading.RLock()

    def insert_review(self, review: Review) -> Review:
        with self._lock:
            for existing in self._reviews.values():
                if existing.job_id == review.job_id and existing.review_type == review.review_type:
                    raise DuplicateRecordError(
                        f"Review {review.review_type} already exists for job {review.job_id}"
                    )
            stored = dataclasses.replace(
                review, created_at=review.created_at or datetime.now(timezone.utc)
            )
            self._reviews[stored.id] = stored
            return copy.deepcopy(stored)

    def get_review(self, job_id: str, review_type: str) -> Optional[Review]:
        with self._lock:
            for review in self._reviews.values():
                if review.job_id == job_id and review.review_type == review_type:
                    return copy.deepcopy(review)
            return None

    def list_reviews(
        self,
        job_ids: Optional[Sequence[str]] = None,
        review_type: Optional[str] = None,
        worker_id: Optional[str] = None,
        client_id: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Review]:
        with self._lock:
            reviews = list(self._reviews.values())
            if job_ids is not None:
                reviews = [r for r in reviews if r.job_id in job_ids]
            if review_type is not None:
                reviews = [r for r in reviews if r.review_type == review_type]
            if worker_id is not None:
                reviews = [r for r in reviews if r.worker_id == worker_id]
            if client_id is not None:
                reviews = [r for r in reviews if r.client_id == client_id]
            reviews.sort(key=lambda r: _sort_key(r.created_at), reverse=True)
            end = None if limit is None else offset + limit
            return copy.deepcopy(reviews[offset:end])

    def count_reviews(self) -> int:
        with self._lock:
            return len(self._reviews)

    def delete_review(self, review_id: str) -> bool:
        with self._lock:
            return self._reviews.pop(review_id, None) is not None
