"""Admin routes for marketplace oversight.

All routes except ``/admin/login`` require an admin token.
"""

from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query, Request, Response
from pydantic import BaseModel

from gigboard.errors import NotFoundError
from gigboard.identity.models import Role, VerificationStatus
from gigboard.lifecycle.models import JobStatus, ReviewType
from gigboard.lifecycle.service import job_view, paginate
from gigboard.logging_config import get_logger, log_auth_event

from ..auth import (
    AdminUser,
    AuthenticationError,
    create_access_token,
    set_auth_cookie,
    verify_admin_password,
)
from ..cache import TTLCache
from ..config import Settings, get_settings
from ..deps import ServicesDep
from ..rate_limit import limiter

logger = get_logger("gigboard.admin")

router = APIRouter(prefix="/admin", tags=["admin"])

ADMIN_SUBJECT = "admin"
USER_ROLES = (Role.CLIENT.value, Role.WORKER.value)


# Dashboard counters (30 second TTL)
_stats_cache = TTLCache(ttl_seconds=30)


class AdminLogin(BaseModel):
    password: str


# =============================================================================
# Login
# =============================================================================


@router.post("/login")
@limiter.limit("5/minute")
async def admin_login(
    request: Request,
    response: Response,
    body: AdminLogin,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Exchange the shared admin password for an admin token."""
    if not verify_admin_password(body.password, settings.admin_password):
        log_auth_event("admin_login", ADMIN_SUBJECT, False, reason="bad_password")
        raise AuthenticationError("Invalid admin password")
    token = create_access_token(ADMIN_SUBJECT, Role.ADMIN, settings)
    set_auth_cookie(response, token, settings)
    log_auth_event("admin_login", ADMIN_SUBJECT, True)
    return {"success": True, "token": token}


# =============================================================================
# Dashboard
# =============================================================================


@router.get("/stats")
async def get_stats(admin: AdminUser, services: ServicesDep):
    """Headline counters (cached for 30 seconds)."""
    cached = _stats_cache.get("stats")
    if cached is not None:
        return cached

    jobs_by_status = services.job_storage.count_jobs_by_status()
    pending = sum(
        services.identity.count_users(role, verification_status=VerificationStatus.PENDING.value)
        for role in USER_ROLES
    )
    result = {
        "success": True,
        "stats": {
            "total_clients": services.identity.count_users(Role.CLIENT),
            "total_workers": services.identity.count_users(Role.WORKER),
            "total_jobs": sum(jobs_by_status.values()),
            "jobs_by_status": jobs_by_status,
            "total_reviews": services.review_storage.count_reviews(),
            "pending_verifications": pending,
        },
    }
    _stats_cache.set("stats", result)
    return result


@router.get("/distribution/skills")
async def skill_distribution(admin: AdminUser, services: ServicesDep):
    """Workers and jobs per skill."""
    workers = services.identity.count_workers_by_skill()
    jobs = services.job_storage.count_jobs_by_skill()
    skills = sorted(set(workers) | set(jobs))
    return {
        "success": True,
        "distribution": [
            {"skill": skill, "workers": workers.get(skill, 0), "jobs": jobs.get(skill, 0)}
            for skill in skills
        ],
    }


# =============================================================================
# Users
# =============================================================================


@router.get("/users")
async def list_users(
    admin: AdminUser,
    services: ServicesDep,
    role: Literal["client", "worker"] = Query("worker"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    users = services.identity.list_users(role, limit=limit, offset=(page - 1) * limit)
    total = services.identity.count_users(role)
    return {
        "success": True,
        "users": [user.to_public_dict() for user in users],
        "pagination": paginate(page, limit, total),
    }


@router.put("/users/{role}/{user_id}/block")
async def block_user(role: str, user_id: str, admin: AdminUser, services: ServicesDep):
    user = services.accounts.set_blocked(role, user_id, True)
    return {"success": True, "message": "User blocked", "user": user.to_public_dict()}


@router.put("/users/{role}/{user_id}/unblock")
async def unblock_user(role: str, user_id: str, admin: AdminUser, services: ServicesDep):
    user = services.accounts.set_blocked(role, user_id, False)
    return {"success": True, "message": "User unblocked", "user": user.to_public_dict()}


# =============================================================================
# Jobs
# =============================================================================


@router.get("/jobs")
async def list_jobs(
    admin: AdminUser,
    services: ServicesDep,
    status: JobStatus | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    statuses = [status.value] if status else None
    jobs = services.job_storage.list_jobs(
        statuses=statuses, limit=limit, offset=(page - 1) * limit
    )
    total = services.job_storage.count_jobs(statuses=statuses)
    return {
        "success": True,
        "jobs": [job_view(job) for job in jobs],
        "pagination": paginate(page, limit, total),
    }


@router.get("/jobs/stats")
async def job_stats(admin: AdminUser, services: ServicesDep):
    return {
        "success": True,
        "by_status": services.job_storage.count_jobs_by_status(),
        "by_skill": services.job_storage.count_jobs_by_skill(),
    }


# =============================================================================
# Reviews
# =============================================================================


@router.get("/reviews")
async def list_reviews(
    admin: AdminUser,
    services: ServicesDep,
    review_type: ReviewType | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    type_value = review_type.value if review_type else None
    reviews = services.review_storage.list_reviews(
        review_type=type_value, limit=limit, offset=(page - 1) * limit
    )
    return {
        "success": True,
        "reviews": [review.to_dict() for review in reviews],
        "pagination": paginate(page, limit, services.review_storage.count_reviews()),
    }


@router.delete("/reviews/{review_id}")
async def delete_review(review_id: str, admin: AdminUser, services: ServicesDep):
    if not services.review_storage.delete_review(review_id):
        raise NotFoundError(f"Review {review_id} not found")
    logger.info(f"DELETE /admin/reviews/{review_id}")
    return {"success": True, "message": "Review deleted"}


# =============================================================================
# Identity verification
# =============================================================================


@router.get("/verification/pending")
async def pending_verifications(admin: AdminUser, services: ServicesDep):
    """Accounts with an Aadhaar submission awaiting review."""
    pending = []
    for role in USER_ROLES:
        for user in services.identity.list_users(
            role, verification_status=VerificationStatus.PENDING.value
        ):
            pending.append(user.to_public_dict())
    return {"success": True, "users": pending, "total": len(pending)}


@router.put("/verification/{role}/{user_id}/approve")
async def approve_verification(role: str, user_id: str, admin: AdminUser, services: ServicesDep):
    user = services.accounts.set_verification(role, user_id, VerificationStatus.VERIFIED)
    return {
        "success": True,
        "message": "Verification approved",
        "verification_status": user.aadhaar.verification_status,
    }


@router.put("/verification/{role}/{user_id}/reject")
async def reject_verification(role: str, user_id: str, admin: AdminUser, services: ServicesDep):
    user = services.accounts.set_verification(role, user_id, VerificationStatus.REJECTED)
    return {
        "success": True,
        "message": "Verification rejected",
        "verification_status": user.aadhaar.verification_status,
    }
