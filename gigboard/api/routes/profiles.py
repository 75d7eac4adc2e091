"""Profile routes shared by clients and workers.

Both roles get the same endpoints under their own prefix; only the editable
fields and the stats differ.
"""

import asyncio
from typing import Any

from fastapi import APIRouter, File, Form, Request, UploadFile
from pydantic import BaseModel, Field

from gigboard.errors import ValidationError
from gigboard.identity.models import Role
from gigboard.logging_config import get_logger
from gigboard.media import is_document_upload

from ..auth import CurrentClient, CurrentWorker
from ..deps import ServicesDep
from ..rate_limit import limiter
from .jobs import read_upload

logger = get_logger("gigboard.routes.profiles")


class ProfileUpdate(BaseModel):
    name: str | None = None
    address: dict[str, Any] | str | None = None
    # Ignored for clients
    skills: list[str] | None = None
    experience: int | None = Field(None, ge=0)
    bio: str | None = None


class EmailOTPRequest(BaseModel):
    email: str


class VerifyEmailOTPRequest(BaseModel):
    email: str
    otp: str


class PhoneOTPRequest(BaseModel):
    phone: str


class VerifyPhoneOTPRequest(BaseModel):
    phone: str
    otp: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


def _scoped(role: Role):
    """Prefix the handler name with the role; rate limits are keyed by handler name."""

    def decorate(func):
        func.__name__ = f"{role.value}_{func.__name__}"
        return func

    return decorate


def build_profile_router(role: Role, current) -> APIRouter:
    """Profile endpoints for one role; ``current`` is the role's auth dependency."""
    router = APIRouter(prefix=f"/{role.value}s", tags=[f"{role.value}s"])
    scoped = _scoped(role)

    @router.get("/profile")
    async def get_profile(user: current, services: ServicesDep):
        profile = services.accounts.get_user(role, user.user_id)
        return {"success": True, role.value: profile.to_public_dict()}

    @router.put("/profile")
    @limiter.limit("20/minute")
    @scoped
    async def update_profile(
        request: Request, body: ProfileUpdate, user: current, services: ServicesDep
    ):
        profile = services.accounts.update_profile(
            role, user.user_id, body.model_dump(exclude_none=True)
        )
        logger.info(f"PUT /{role.value}s/profile | user={user.user_id}")
        return {
            "success": True,
            "message": "Profile updated successfully",
            role.value: profile.to_public_dict(),
        }

    @router.post("/profile-picture")
    @limiter.limit("10/minute")
    @scoped
    async def upload_profile_picture(
        request: Request,
        user: current,
        services: ServicesDep,
        profile_picture: UploadFile | None = File(None),
    ):
        upload = await read_upload(profile_picture)
        if upload is None:
            raise ValidationError("No file uploaded")
        profile = await asyncio.to_thread(
            services.accounts.update_profile_picture, role, user.user_id, *upload
        )
        return {
            "success": True,
            "message": "Profile picture updated successfully",
            "profile_picture_url": profile.profile_picture_url,
        }

    @router.post("/aadhaar-verification")
    @limiter.limit("5/minute")
    @scoped
    async def submit_aadhaar(
        request: Request,
        user: current,
        services: ServicesDep,
        aadhaar_number: str = Form(""),
        aadhaar_document: UploadFile | None = File(None),
    ):
        """Submit an Aadhaar number and scan for manual review."""
        upload = await read_upload(
            aadhaar_document, accept=is_document_upload, kind="image or PDF"
        )
        if upload is None:
            raise ValidationError("Aadhaar document is required")
        profile = await asyncio.to_thread(
            services.accounts.submit_identity_document,
            role, user.user_id, aadhaar_number, *upload
        )
        return {
            "success": True,
            "message": "Aadhaar submitted for verification",
            "verification_status": profile.aadhaar.verification_status,
        }

    @router.get("/stats")
    async def get_stats(user: current, services: ServicesDep):
        if role == Role.WORKER:
            stats = services.jobs.worker_stats(user.user_id)
        else:
            stats = services.jobs.client_stats(user.user_id)
        return {"success": True, "stats": stats}

    @router.post("/send-email-otp")
    @limiter.limit("5/minute")
    @scoped
    async def send_email_otp(
        request: Request, body: EmailOTPRequest, user: current, services: ServicesDep
    ):
        await asyncio.to_thread(
            services.accounts.send_contact_otp, role, user.user_id, "email", body.email
        )
        return {"success": True, "message": "OTP sent to your new email address"}

    @router.post("/verify-email-otp")
    @limiter.limit("10/minute")
    @scoped
    async def verify_email_otp(
        request: Request, body: VerifyEmailOTPRequest, user: current, services: ServicesDep
    ):
        profile = services.accounts.verify_contact_otp(
            role, user.user_id, "email", body.email, body.otp
        )
        return {"success": True, "message": "Email updated successfully", "email": profile.email}

    @router.post("/send-phone-otp")
    @limiter.limit("5/minute")
    @scoped
    async def send_phone_otp(
        request: Request, body: PhoneOTPRequest, user: current, services: ServicesDep
    ):
        await asyncio.to_thread(
            services.accounts.send_contact_otp, role, user.user_id, "phone", body.phone
        )
        return {"success": True, "message": "OTP sent to your new phone number"}

    @router.post("/verify-phone-otp")
    @limiter.limit("10/minute")
    @scoped
    async def verify_phone_otp(
        request: Request, body: VerifyPhoneOTPRequest, user: current, services: ServicesDep
    ):
        profile = services.accounts.verify_contact_otp(
            role, user.user_id, "phone", body.phone, body.otp
        )
        return {"success": True, "message": "Phone updated successfully", "phone": profile.phone}

    @router.post("/change-password")
    @limiter.limit("5/minute")
    @scoped
    async def change_password(
        request: Request, body: ChangePasswordRequest, user: current, services: ServicesDep
    ):
        await asyncio.to_thread(
            services.accounts.change_password,
            role, user.user_id, body.current_password, body.new_password
        )
        return {"success": True, "message": "Password changed successfully"}

    return router


workers_router = build_profile_router(Role.WORKER, CurrentWorker)
clients_router = build_profile_router(Role.CLIENT, CurrentClient)
