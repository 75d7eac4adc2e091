"""
Job lifecycle service.

Business logic for posting, claiming, starting, completing and cancelling
jobs. Every state change is issued to storage as one conditional write; when
the write matches nothing, the job is re-read only to choose which error to
raise.
"""

import math
import uuid
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from gigboard.errors import ConflictError, ServiceError, ValidationError
from gigboard.geo import Address, DistanceEstimator
from gigboard.identity.otp import generate_numeric_code
from gigboard.identity.storage import IdentityStorage
from gigboard.lifecycle.config import LifecycleConfig
from gigboard.lifecycle.models import (
    CANCELLABLE_STATUSES,
    DELETED,
    HELD_STATUSES,
    WORKER_STATUSES,
    Job,
    JobStateTransition,
    JobStatus,
    PaymentStatus,
    ReviewType,
    new_id,
    utc_now,
)
from gigboard.lifecycle.storage import JobStorage, ReviewStorage
from gigboard.logging_config import get_logger, log_job_event
from gigboard.media import JOB_IMAGES_FOLDER, MediaError, MediaStore
from gigboard.skills import ALL_SERVICES, FOR_YOU, is_known_skill

logger = get_logger("gigboard.lifecycle")


# === Errors ===


class JobServiceError(ServiceError):
    """Base exception for job service errors."""

    code = "JOB_ERROR"


class JobNotFoundError(JobServiceError):
    """Job missing, or not owned by / assigned to the caller."""

    code = "JOB_NOT_FOUND"
    status_code = 404


class WorkerNotFoundError(JobServiceError):
    code = "WORKER_NOT_FOUND"
    status_code = 404


class ClaimConflictError(JobServiceError, ConflictError):
    """Another request won the race for this job."""

    code = "CONFLICT"
    status_code = 409


class JobUnavailableError(JobServiceError):
    code = "JOB_UNAVAILABLE"


class ActiveJobExistsError(JobServiceError):
    code = "ACTIVE_JOB_EXISTS"


class SkillMismatchError(JobServiceError):
    code = "SKILL_MISMATCH"


class InvalidStateError(JobServiceError):
    """Operation not allowed from the job's current status."""

    code = "INVALID_STATE"


class OTPRequiredError(JobServiceError):
    code = "OTP_REQUIRED"


class OTPNotGeneratedError(JobServiceError):
    code = "OTP_NOT_GENERATED"


class InvalidOTPError(JobServiceError):
    code = "INVALID_OTP"


class AlreadyRatedError(JobServiceError):
    code = "ALREADY_RATED"


NOT_ASSIGNED_MESSAGE = "Job not found or you are not assigned to this job"


# === Views ===


def job_view(job: Job, **extra: Any) -> Dict[str, Any]:
    """Serialise a job for API responses. The completion code is never included."""
    data = job.to_dict()
    data.pop("completion_otp", None)
    data.pop("image_handle", None)
    data.update(extra)
    return data


def paginate(page: int, limit: int, total: int) -> Dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
    }


class JobService:
    """Service for the job lifecycle.

    Collaborators:
    - ``storage``: jobs and the transition audit log
    - ``identity``: worker lookup and the completed-jobs counter
    - ``reviews``: used only to annotate dashboard listings
    - ``distance``: travel distance for the available-jobs listing
    - ``media``: job images (optional)
    """

    def __init__(
        self,
        storage: JobStorage,
        identity: IdentityStorage,
        reviews: Optional[ReviewStorage] = None,
        distance: Optional[DistanceEstimator] = None,
        media: Optional[MediaStore] = None,
        config: Optional[LifecycleConfig] = None,
    ):
        self.storage = storage
        self.identity = identity
        self.reviews = reviews
        self.distance = distance or DistanceEstimator()
        self.media = media
        self.config = config or LifecycleConfig()

    # === Internal helpers ===

    def _record_transition(
        self,
        job_id: str,
        from_status: Optional[str],
        to_status: str,
        actor_id: Optional[str],
        reason: Optional[str] = None,
    ) -> None:
        transition = JobStateTransition(
            id=new_id(),
            job_id=job_id,
            from_status=from_status,
            to_status=to_status,
            actor_id=actor_id,
            reason=reason,
        )
        try:
            self.storage.save_transition(transition)
        except Exception as e:
            logger.warning(f"Failed to record transition | job={job_id} | to={to_status} | error={e}")

    def _page_bounds(self, page: int, limit: Optional[int], default: int) -> Tuple[int, int]:
        page = max(1, int(page or 1))
        limit = int(limit or default)
        if limit < 1:
            raise ValidationError("limit must be positive")
        return page, min(limit, self.config.max_page_size)

    def _status_filter(self, status: Optional[str], default: Optional[Sequence[str]]) -> Optional[List[str]]:
        if not status or status == "all":
            return list(default) if default is not None else None
        if status not in {s.value for s in JobStatus}:
            raise ValidationError(f"Invalid status: {status}")
        return [status]

    # === Posting ===

    def create_job(
        self,
        client_id: str,
        title: str,
        description: str,
        skill: str,
        address: Union[Address, Dict[str, Any], None],
        urgency: bool = False,
        image: Optional[Tuple[bytes, str]] = None,
    ) -> Job:
        """Post a new job.

        ``image`` is ``(data, filename)``. A failed upload does not block
        posting; the job is created without an image.
        """
        title = (title or "").strip()
        description = (description or "").strip()
        skill = (skill or "").strip()
        if not title or not description or not skill:
            raise ValidationError("Skill, title, and description are required")
        if not is_known_skill(skill):
            raise ValidationError(f"Unknown skill: {skill}")

        if isinstance(address, dict):
            address = Address.from_dict(address)
        if address is None or address.is_empty():
            raise ValidationError("Address is required for job posting")

        job_id = new_id()
        image_url = image_handle = None
        if image is not None and self.media is not None:
            data, filename = image
            try:
                ref = self.media.upload(data, filename, f"{JOB_IMAGES_FOLDER}/{job_id}")
                image_url, image_handle = ref.url, ref.handle
            except MediaError as e:
                logger.warning(f"Job created without image due to upload error | job={job_id} | error={e}")

        # TODO: replace the payment stub once a payment gateway is integrated
        payment_status = PaymentStatus.PENDING.value
        payment_id = None
        if self.config.auto_complete_payment:
            payment_status = PaymentStatus.COMPLETED.value
            payment_id = f"pay_{uuid.uuid4()}"

        try:
            job = Job(
                id=job_id,
                client_id=client_id,
                title=title,
                description=description,
                skill=skill,
                address=address,
                urgency=bool(urgency),
                image_url=image_url,
                image_handle=image_handle,
                payment_status=payment_status,
                payment_id=payment_id,
            )
        except ValueError as e:
            raise ValidationError(str(e)) from e

        job = self.storage.insert_job(job)
        self._record_transition(job.id, None, JobStatus.POSTED.value, client_id, "created")
        log_job_event("created", job.id, client_id, skill=skill, urgent=job.urgency)
        return job

    def get_job(self, job_id: str) -> Job:
        """Get a job by ID. Raises JobNotFoundError if it does not exist."""
        job = self.storage.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    # === Claim ===

    def accept_job(self, job_id: str, worker_id: str) -> Job:
        """Claim a posted job for ``worker_id``.

        The claim is a single conditional write on ``status=posted`` and
        ``worker_id IS NULL``, so of any number of concurrent callers exactly
        one wins. Worker existence and skill are checked after the claim; a
        failure there releases the job again.
        """
        # Not atomic with the claim: two simultaneous claims by one worker on
        # different jobs can both pass this check.
        if self.storage.count_jobs(statuses=HELD_STATUSES, worker_id=worker_id) > 0:
            raise ActiveJobExistsError(
                "You already have an active job. Complete it before accepting a new one."
            )

        claimed = self.storage.update_job_where(
            job_id,
            {"status": JobStatus.POSTED.value, "worker_id": None},
            {
                "status": JobStatus.ASSIGNED.value,
                "worker_id": worker_id,
                "assigned_at": utc_now(),
            },
        )
        if claimed is None:
            current = self.storage.get_job(job_id)
            if current is None:
                raise JobNotFoundError("Job not found")
            if current.worker_id is not None:
                log_job_event("claim_lost", job_id, worker_id, winner=current.worker_id)
                raise ClaimConflictError(
                    "Another worker selected this job before you", conflict=True
                )
            raise JobUnavailableError("Job is no longer available")

        worker = self.identity.get_worker(worker_id)
        if worker is None:
            self._rollback_claim(claimed, worker_id, "worker not found")
            raise WorkerNotFoundError("Worker not found")
        if not worker.has_skill(claimed.skill):
            self._rollback_claim(claimed, worker_id, "skill mismatch")
            raise SkillMismatchError("You do not have the required skill for this job")

        self._record_transition(
            job_id, JobStatus.POSTED.value, JobStatus.ASSIGNED.value, worker_id, "claimed"
        )
        log_job_event("claimed", job_id, worker_id)
        return claimed

    def _rollback_claim(self, job: Job, worker_id: str, reason: str) -> None:
        """Release a claim that failed its post-claim checks.

        Conditional on the job still being assigned to ``worker_id``. Best
        effort: a failed write is logged and not retried.
        """
        try:
            reverted = self.storage.update_job_where(
                job.id,
                {"status": JobStatus.ASSIGNED.value, "worker_id": worker_id},
                {"status": JobStatus.POSTED.value, "worker_id": None, "assigned_at": None},
            )
        except Exception as e:
            logger.error(
                f"Claim rollback failed | job={job.id} | worker={worker_id} | reason={reason} | error={e}"
            )
            return

        if reverted is None:
            logger.error(
                f"Claim rollback matched nothing | job={job.id} | worker={worker_id} | reason={reason}"
            )
            return
        self._record_transition(
            job.id, JobStatus.ASSIGNED.value, JobStatus.POSTED.value, worker_id, f"rollback: {reason}"
        )
        log_job_event("claim_rolled_back", job.id, worker_id, reason=reason)

    # === Client transitions ===

    def start_job(self, job_id: str, client_id: str) -> Job:
        """Move an assigned job to active. Owning client only."""
        started = self.storage.update_job_where(
            job_id,
            {"client_id": client_id, "status": JobStatus.ASSIGNED.value},
            {"status": JobStatus.ACTIVE.value, "started_at": utc_now()},
        )
        if started is None:
            current = self.storage.get_job(job_id)
            if current is None or current.client_id != client_id:
                raise JobNotFoundError("Job not found")
            if current.status != JobStatus.ASSIGNED.value:
                raise InvalidStateError("Job must be assigned to start")
            raise ClaimConflictError("Job changed while starting, please retry")

        self._record_transition(
            job_id, JobStatus.ASSIGNED.value, JobStatus.ACTIVE.value, client_id, "started"
        )
        log_job_event("started", job_id, client_id, worker=started.worker_id)
        return started

    def complete_job(self, job_id: str, client_id: str, otp: Optional[str]) -> Job:
        """Complete an active job with the code the worker generated.

        The code comparison is part of the conditional write; a stale or
        regenerated code can never complete the job.
        """
        otp = str(otp).strip() if otp is not None else ""
        if not otp:
            raise OTPRequiredError("OTP is required to complete the job")

        completed = self.storage.update_job_where(
            job_id,
            {"client_id": client_id, "status": JobStatus.ACTIVE.value, "completion_otp": otp},
            {
                "status": JobStatus.COMPLETED.value,
                "completion_otp": None,
                "completed_at": utc_now(),
            },
        )
        if completed is None:
            current = self.storage.get_job(job_id)
            if current is None or current.client_id != client_id:
                raise JobNotFoundError("Job not found")
            if current.status != JobStatus.ACTIVE.value:
                raise InvalidStateError("Job must be active to complete")
            if current.completion_otp is None:
                raise OTPNotGeneratedError(
                    "No OTP generated for this job. Ask the worker to generate one."
                )
            if current.completion_otp != otp:
                log_job_event("complete_rejected", job_id, client_id, reason="otp_mismatch")
                raise InvalidOTPError("Invalid OTP. Please check and try again.")
            raise ClaimConflictError("Job changed while completing, please retry")

        try:
            self.identity.increment_completed_jobs(completed.worker_id)
        except Exception as e:
            logger.warning(
                f"Failed to bump completed-jobs counter | worker={completed.worker_id} | error={e}"
            )

        self._record_transition(
            job_id, JobStatus.ACTIVE.value, JobStatus.COMPLETED.value, client_id, "completed"
        )
        log_job_event("completed", job_id, client_id, worker=completed.worker_id)
        return completed

    def cancel_job(self, job_id: str, client_id: str) -> Job:
        """Delete a posted or assigned job. Owning client only.

        Returns the deleted job. The job image is released afterwards on a
        best-effort basis.
        """
        deleted = self.storage.delete_job_where(
            job_id, {"client_id": client_id, "status": CANCELLABLE_STATUSES}
        )
        if deleted is None:
            current = self.storage.get_job(job_id)
            if current is None or current.client_id != client_id:
                raise JobNotFoundError("Job not found")
            raise InvalidStateError(f"Cannot cancel a job that is already {current.status}")

        if deleted.image_handle and self.media is not None:
            if not self.media.delete(deleted.image_handle):
                logger.warning(f"Job image not released | job={job_id} | handle={deleted.image_handle}")

        self._record_transition(job_id, deleted.status, DELETED, client_id, "cancelled by client")
        log_job_event("cancelled", job_id, client_id, previous=deleted.status)
        return deleted

    # === Worker transitions ===

    def generate_completion_otp(self, job_id: str, worker_id: str) -> str:
        """Mint a fresh completion code for an active job, replacing any prior one."""
        code = generate_numeric_code(self.config.completion_otp_digits)
        updated = self.storage.update_job_where(
            job_id,
            {"worker_id": worker_id, "status": JobStatus.ACTIVE.value},
            {"completion_otp": code},
        )
        if updated is None:
            current = self.storage.get_job(job_id)
            if current is None or current.worker_id != worker_id:
                raise JobNotFoundError(NOT_ASSIGNED_MESSAGE)
            raise InvalidStateError("Job must be active to generate completion OTP")

        self._record_transition(
            job_id, JobStatus.ACTIVE.value, JobStatus.ACTIVE.value, worker_id, "completion code issued"
        )
        log_job_event("otp_generated", job_id, worker_id)
        return code

    def cancel_job_by_worker(self, job_id: str, worker_id: str) -> Job:
        """Hand an assigned or active job back to the pool."""
        released = previous = None
        # One conditional write per held status so the audit entry knows where
        # the job came from
        for previous in HELD_STATUSES:
            released = self.storage.update_job_where(
                job_id,
                {"worker_id": worker_id, "status": previous},
                {
                    "status": JobStatus.POSTED.value,
                    "worker_id": None,
                    "assigned_at": None,
                    "completion_otp": None,
                },
            )
            if released is not None:
                break
        if released is None:
            current = self.storage.get_job(job_id)
            if current is None or current.worker_id != worker_id:
                raise JobNotFoundError(NOT_ASSIGNED_MESSAGE)
            raise InvalidStateError(f"Cannot cancel a job with status: {current.status}")

        self._record_transition(job_id, previous, JobStatus.POSTED.value, worker_id, "released by worker")
        log_job_event("released", job_id, worker_id)
        return released

    # === Listings ===

    def list_available_jobs(
        self,
        worker_id: str,
        page: int = 1,
        limit: Optional[int] = None,
        skill: Optional[str] = None,
        max_distance: Optional[float] = None,
        urgent_only: bool = False,
        sort_by: str = "distance",
    ) -> Dict[str, Any]:
        """Posted, unclaimed jobs for a worker, with distances.

        ``skill`` is a literal skill, ``"For you"`` (the worker's own skills)
        or ``"All Services"``. Jobs farther than ``max_distance`` km are
        dropped; jobs without coordinates are kept with ``distance=None``.
        """
        worker = self.identity.get_worker(worker_id)
        if worker is None:
            raise WorkerNotFoundError("Worker not found")

        page, limit = self._page_bounds(page, limit, self.config.available_jobs_page_size)
        if max_distance is None:
            max_distance = self.config.default_max_distance_km
        if max_distance <= 0:
            raise ValidationError("max_distance must be positive")

        skills: Optional[List[str]] = None
        if skill == FOR_YOU:
            skills = list(worker.skills)
        elif skill and skill != ALL_SERVICES:
            skills = [skill]

        jobs = self.storage.list_jobs(
            statuses=[JobStatus.POSTED.value],
            skills=skills,
            urgent_only=urgent_only,
            unassigned_only=True,
        )

        origin = worker.address.location
        if origin is not None and origin.is_valid():
            distances = self.distance.distances_from(
                origin, [(job.id, job.address.location) for job in jobs]
            )
            entries = [(job, distances.get(job.id)) for job in jobs]
            entries = [(job, d) for job, d in entries if d is None or d <= max_distance]
            if sort_by == "distance":
                # Stable sort keeps recency order for ties and unknown distances
                entries.sort(key=lambda entry: (entry[1] is None, entry[1] or 0.0))
        else:
            entries = [(job, None) for job in jobs]

        total = len(entries)
        start = (page - 1) * limit
        window = entries[start : start + limit]

        return {
            "jobs": [
                job_view(job, distance=round(d, 2) if d is not None else None)
                for job, d in window
            ],
            "pagination": paginate(page, limit, total),
            "filters": {
                "available_skills": list(worker.skills),
                "current_city": worker.address.city,
                "worker_location": origin.to_dict() if origin else None,
            },
        }

    def _review_map(self, job_ids: List[str], review_type: str) -> Dict[str, Any]:
        if self.reviews is None or not job_ids:
            return {}
        return {r.job_id: r for r in self.reviews.list_reviews(job_ids=job_ids, review_type=review_type)}

    def list_client_jobs(
        self,
        client_id: str,
        page: int = 1,
        limit: Optional[int] = None,
        status: Optional[str] = None,
    ) -> Dict[str, Any]:
        """The client's jobs, newest first, with the rating they gave each worker."""
        page, limit = self._page_bounds(page, limit, self.config.dashboard_page_size)
        statuses = self._status_filter(status, None)

        jobs = self.storage.list_jobs(
            statuses=statuses,
            client_id=client_id,
            order_by="created_at",
            limit=limit,
            offset=(page - 1) * limit,
        )
        total = self.storage.count_jobs(statuses=statuses, client_id=client_id)
        reviews = self._review_map([j.id for j in jobs], ReviewType.CLIENT_TO_WORKER.value)

        views = []
        for job in jobs:
            review = reviews.get(job.id)
            worker = self.identity.get_worker(job.worker_id) if job.worker_id else None
            views.append(
                job_view(
                    job,
                    worker=_party_summary(worker, include_skills=True),
                    worker_rating=review.rating if review else 0,
                    worker_review=review.review if review else "",
                    review_date=review.created_at.isoformat() if review and review.created_at else None,
                )
            )

        return {
            "jobs": views,
            "stats": self.storage.count_jobs_by_status(client_id=client_id),
            "pagination": paginate(page, limit, total),
        }

    def list_worker_jobs(
        self,
        worker_id: str,
        page: int = 1,
        limit: Optional[int] = None,
        status: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Jobs the worker holds or finished, most recently updated first."""
        page, limit = self._page_bounds(page, limit, self.config.dashboard_page_size)
        statuses = self._status_filter(status, WORKER_STATUSES)

        jobs = self.storage.list_jobs(
            statuses=statuses,
            worker_id=worker_id,
            order_by="updated_at",
            limit=limit,
            offset=(page - 1) * limit,
        )
        total = self.storage.count_jobs(statuses=statuses, worker_id=worker_id)
        reviews = self._review_map([j.id for j in jobs], ReviewType.WORKER_TO_CLIENT.value)

        views = []
        for job in jobs:
            review = reviews.get(job.id)
            client = self.identity.get_client(job.client_id)
            views.append(
                job_view(
                    job,
                    client=_party_summary(client, include_address=True),
                    client_rating=review.rating if review else 0,
                    client_review=review.review if review else "",
                    review_date=review.created_at.isoformat() if review and review.created_at else None,
                )
            )

        return {"jobs": views, "pagination": paginate(page, limit, total)}

    # === Dashboard stats ===

    def _average_rating(self, **filters: Any) -> Tuple[float, int]:
        if self.reviews is None:
            return 0.0, 0
        ratings = [r.rating for r in self.reviews.list_reviews(**filters)]
        if not ratings:
            return 0.0, 0
        return round(sum(ratings) / len(ratings), 1), len(ratings)

    def worker_stats(self, worker_id: str) -> Dict[str, Any]:
        total = self.storage.count_jobs(worker_id=worker_id)
        completed = self.storage.count_jobs(statuses=[JobStatus.COMPLETED.value], worker_id=worker_id)
        rating, review_count = self._average_rating(
            worker_id=worker_id, review_type=ReviewType.CLIENT_TO_WORKER.value
        )
        return {
            "total_jobs": total,
            "completed_jobs": completed,
            "completion_rate": round(completed / total * 100) if total else 0,
            "rating": rating,
            "review_count": review_count,
        }

    def client_stats(self, client_id: str) -> Dict[str, Any]:
        counts = self.storage.count_jobs_by_status(client_id=client_id)
        open_statuses = (JobStatus.POSTED.value,) + HELD_STATUSES
        rating, review_count = self._average_rating(
            client_id=client_id, review_type=ReviewType.WORKER_TO_CLIENT.value
        )
        return {
            "total_jobs": sum(counts.values()),
            "completed_jobs": counts.get(JobStatus.COMPLETED.value, 0),
            "active_jobs": sum(counts.get(s, 0) for s in open_statuses),
            "rating": rating,
            "review_count": review_count,
        }


def _party_summary(user, include_skills: bool = False, include_address: bool = False) -> Optional[dict]:
    if user is None:
        return None
    summary = {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "phone": user.phone,
        "profile_picture_url": user.profile_picture_url,
    }
    if include_skills:
        summary["skills"] = list(getattr(user, "skills", []))
    if include_address:
        summary["address"] = user.address.to_dict()
    return summary
