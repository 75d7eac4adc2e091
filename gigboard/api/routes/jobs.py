"""Job routes.

Clients post, start, complete and cancel jobs; workers browse, claim,
release and generate completion codes. Both sides rate each other once a job
is completed.
"""

import asyncio
import json
from typing import Literal

from fastapi import APIRouter, File, Form, Query, Request, UploadFile
from pydantic import BaseModel, Field

from gigboard.errors import ValidationError
from gigboard.identity.models import Role
from gigboard.lifecycle.models import JobStatus
from gigboard.lifecycle.service import JobNotFoundError, job_view
from gigboard.logging_config import get_logger
from gigboard.media import MAX_UPLOAD_BYTES, is_image_upload

from ..auth import CurrentClient, CurrentUser, CurrentWorker
from ..deps import ServicesDep
from ..rate_limit import limiter

logger = get_logger("gigboard.routes.jobs")
router = APIRouter(prefix="/jobs", tags=["jobs"])


# =============================================================================
# Request Models
# =============================================================================


class CompleteJobRequest(BaseModel):
    """Client submits the code the worker shared with them."""

    otp: str | None = None


class RatingRequest(BaseModel):
    rating: int
    review: str | None = Field(None, max_length=500)


def _parse_address(raw: str) -> dict:
    try:
        address = json.loads(raw)
    except (TypeError, ValueError):
        raise ValidationError("Invalid address format")
    if not isinstance(address, dict):
        raise ValidationError("Invalid address format")
    return address


async def read_upload(
    image: UploadFile | None, accept=is_image_upload, kind: str = "image"
) -> tuple[bytes, str] | None:
    """Read an optional upload, enforcing type and the 10MB limit."""
    if image is None or not image.filename:
        return None
    if not accept(image.filename, image.content_type):
        raise ValidationError(f"Only {kind} files are allowed")
    data = await image.read(MAX_UPLOAD_BYTES + 1)
    if len(data) > MAX_UPLOAD_BYTES:
        raise ValidationError("File must be 10MB or smaller")
    return data, image.filename


# =============================================================================
# Client endpoints
# =============================================================================


@router.post("/create")
@limiter.limit("20/minute")
async def create_job(
    request: Request,
    user: CurrentClient,
    services: ServicesDep,
    title: str = Form(""),
    description: str = Form(""),
    skill: str = Form(""),
    address: str = Form(""),
    urgency: bool = Form(False),
    image: UploadFile | None = File(None),
):
    """Post a job (multipart form; ``address`` is a JSON string)."""
    logger.info(f"POST /jobs/create | client={user.user_id} | skill={skill}")
    if not address:
        raise ValidationError("Address is required for job posting")

    parsed_address = _parse_address(address)
    upload = await read_upload(image)
    # Media upload is blocking I/O
    job = await asyncio.to_thread(
        services.jobs.create_job,
        client_id=user.user_id,
        title=title,
        description=description,
        skill=skill,
        address=parsed_address,
        urgency=urgency,
        image=upload,
    )
    return {
        "success": True,
        "message": "Job posted successfully",
        "job": {
            "id": job.id,
            "title": job.title,
            "status": job.status,
            "image_url": job.image_url,
        },
    }


@router.get("/client")
async def list_client_jobs(
    user: CurrentClient,
    services: ServicesDep,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: JobStatus | Literal["all"] | None = Query(None),
):
    """The caller's posted jobs, newest first."""
    status_value = status.value if isinstance(status, JobStatus) else status
    result = services.jobs.list_client_jobs(user.user_id, page=page, limit=limit, status=status_value)
    return {"success": True, **result}


@router.put("/{job_id}/start")
@limiter.limit("30/minute")
async def start_job(request: Request, job_id: str, user: CurrentClient, services: ServicesDep):
    logger.info(f"PUT /jobs/{job_id}/start | client={user.user_id}")
    job = services.jobs.start_job(job_id, user.user_id)
    return {"success": True, "message": "Job started successfully", "job": job_view(job)}


@router.post("/{job_id}/complete")
@limiter.limit("30/minute")
async def complete_job(
    request: Request,
    job_id: str,
    body: CompleteJobRequest,
    user: CurrentClient,
    services: ServicesDep,
):
    """Complete an active job with the worker's completion code."""
    logger.info(f"POST /jobs/{job_id}/complete | client={user.user_id}")
    job = services.jobs.complete_job(job_id, user.user_id, body.otp)
    return {"success": True, "message": "Job completed successfully", "job": job_view(job)}


@router.put("/{job_id}/cancel")
@limiter.limit("30/minute")
async def cancel_job(request: Request, job_id: str, user: CurrentClient, services: ServicesDep):
    """Delete a posted or assigned job."""
    logger.info(f"PUT /jobs/{job_id}/cancel | client={user.user_id}")
    job = services.jobs.cancel_job(job_id, user.user_id)
    return {
        "success": True,
        "message": "Job cancelled successfully",
        "job": {"id": job.id, "status": "deleted"},
    }


@router.post("/{job_id}/rate-worker")
@limiter.limit("30/minute")
async def rate_worker(
    request: Request,
    job_id: str,
    body: RatingRequest,
    user: CurrentClient,
    services: ServicesDep,
):
    review = services.reviews.rate_worker(job_id, user.user_id, body.rating, body.review)
    return {
        "success": True,
        "message": "Worker rated successfully",
        "review": {"id": review.id, "rating": review.rating},
    }


# =============================================================================
# Worker endpoints
# =============================================================================


@router.get("/available")
async def list_available_jobs(
    user: CurrentWorker,
    services: ServicesDep,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    skill: str | None = Query(None),
    max_distance: float = Query(25.0, gt=0),
    urgency: bool = Query(False),
    sort_by: Literal["distance", "recent"] = Query("distance"),
):
    """Posted jobs near the worker. ``skill`` also accepts "For you" and "All Services".

    Distance lookups call out to the routing API, so the listing runs in a
    worker thread to keep the event loop free.
    """
    result = await asyncio.to_thread(
        services.jobs.list_available_jobs,
        user.user_id,
        page=page,
        limit=limit,
        skill=skill,
        max_distance=max_distance,
        urgent_only=urgency,
        sort_by=sort_by,
    )
    return {"success": True, **result}


@router.get("/worker")
async def list_worker_jobs(
    user: CurrentWorker,
    services: ServicesDep,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: JobStatus | Literal["all"] | None = Query(None),
):
    """Jobs the caller holds or has completed, most recently updated first."""
    status_value = status.value if isinstance(status, JobStatus) else status
    result = services.jobs.list_worker_jobs(user.user_id, page=page, limit=limit, status=status_value)
    return {"success": True, **result}


@router.post("/{job_id}/accept")
@limiter.limit("30/minute")
async def accept_job(request: Request, job_id: str, user: CurrentWorker, services: ServicesDep):
    """Claim a posted job. Exactly one concurrent caller wins."""
    logger.info(f"POST /jobs/{job_id}/accept | worker={user.user_id}")
    job = services.jobs.accept_job(job_id, user.user_id)
    return {"success": True, "message": "Job accepted successfully", "job": job_view(job)}


@router.get("/{job_id}/generate-otp")
@limiter.limit("20/minute")
async def generate_completion_otp(
    request: Request, job_id: str, user: CurrentWorker, services: ServicesDep
):
    """Mint a completion code for the worker to share with the client."""
    code = services.jobs.generate_completion_otp(job_id, user.user_id)
    return {
        "success": True,
        "otp": code,
        "message": "Share this OTP with the client to complete the job.",
    }


@router.put("/{job_id}/cancel-worker")
@limiter.limit("30/minute")
async def cancel_job_by_worker(
    request: Request, job_id: str, user: CurrentWorker, services: ServicesDep
):
    """Give the job back to the pool."""
    logger.info(f"PUT /jobs/{job_id}/cancel-worker | worker={user.user_id}")
    job = services.jobs.cancel_job_by_worker(job_id, user.user_id)
    return {
        "success": True,
        "message": "Job cancelled successfully. The job is now available for other workers.",
        "job": {"id": job.id, "status": job.status},
    }


@router.post("/{job_id}/rate-client")
@limiter.limit("30/minute")
async def rate_client(
    request: Request,
    job_id: str,
    body: RatingRequest,
    user: CurrentWorker,
    services: ServicesDep,
):
    review = services.reviews.rate_client(job_id, user.user_id, body.rating, body.review)
    return {
        "success": True,
        "message": "Client rated successfully",
        "review": {"id": review.id, "rating": review.rating},
    }


# =============================================================================
# Shared
# =============================================================================


@router.get("/{job_id}")
async def get_job(job_id: str, user: CurrentUser, services: ServicesDep):
    """A job visible to the caller: their own, their assignment, or an open listing."""
    job = services.jobs.get_job(job_id)
    visible = (
        job.client_id == user.user_id
        or job.worker_id == user.user_id
        or (user.role == Role.WORKER.value and job.is_claimable)
        or user.role == Role.ADMIN.value
    )
    if not visible:
        raise JobNotFoundError(f"Job {job_id} not found")
    return {"success": True, "job": job_view(job)}
