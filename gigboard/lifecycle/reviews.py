"""Ratings exchanged between the two parties of a completed job."""

from typing import Optional

from gigboard.errors import DuplicateRecordError, ValidationError
from gigboard.lifecycle.config import LifecycleConfig
from gigboard.lifecycle.models import JobStatus, Review, ReviewType, new_id
from gigboard.lifecycle.service import AlreadyRatedError, InvalidStateError, JobNotFoundError
from gigboard.lifecycle.storage import JobStorage, ReviewStorage
from gigboard.logging_config import get_logger

logger = get_logger("gigboard.reviews")


class ReviewService:
    """One review per job and direction; reviews are never edited."""

    def __init__(
        self,
        jobs: JobStorage,
        reviews: ReviewStorage,
        config: Optional[LifecycleConfig] = None,
    ):
        self.jobs = jobs
        self.reviews = reviews
        self.config = config or LifecycleConfig()

    def _validate(self, rating, review: Optional[str]) -> str:
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationError("Rating must be between 1 and 5")
        review = (review or "").strip()
        if len(review) > self.config.max_review_length:
            raise ValidationError(
                f"Review cannot exceed {self.config.max_review_length} characters"
            )
        return review

    def _rate(
        self,
        job_id: str,
        actor_id: str,
        review_type: ReviewType,
        rating,
        review: Optional[str],
    ) -> Review:
        text = self._validate(rating, review)

        job = self.jobs.get_job(job_id)
        owner = None
        if job is not None:
            owner = job.client_id if review_type == ReviewType.CLIENT_TO_WORKER else job.worker_id
        if job is None or owner != actor_id:
            raise JobNotFoundError("Job not found")
        if job.status != JobStatus.COMPLETED.value:
            raise InvalidStateError("Can only rate completed jobs")

        target = "Worker" if review_type == ReviewType.CLIENT_TO_WORKER else "Client"
        if self.reviews.get_review(job_id, review_type.value) is not None:
            raise AlreadyRatedError(f"{target} already rated for this job")

        try:
            stored = self.reviews.insert_review(
                Review(
                    id=new_id(),
                    job_id=job.id,
                    client_id=job.client_id,
                    worker_id=job.worker_id,
                    review_type=review_type.value,
                    rating=rating,
                    review=text,
                )
            )
        except DuplicateRecordError as e:
            raise AlreadyRatedError(f"{target} already rated for this job") from e

        logger.info(
            f"Review stored | job={job_id} | type={review_type.value} | rating={rating} | by={actor_id}"
        )
        return stored

    def rate_worker(self, job_id: str, client_id: str, rating, review: Optional[str] = None) -> Review:
        """Client rates the worker who completed their job."""
        return self._rate(job_id, client_id, ReviewType.CLIENT_TO_WORKER, rating, review)

    def rate_client(self, job_id: str, worker_id: str, rating, review: Optional[str] = None) -> Review:
        """Worker rates the client whose job they completed."""
        return self._rate(job_id, worker_id, ReviewType.WORKER_TO_CLIENT, rating, review)
