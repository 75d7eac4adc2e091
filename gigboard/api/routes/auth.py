"""Authentication routes.

Password hashing and OTP delivery block, so those service calls run in a
worker thread.
"""

import asyncio
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, Field

from gigboard.logging_config import get_logger

from ..auth import (
    CurrentUser,
    clear_auth_cookie,
    create_access_token,
    set_auth_cookie,
)
from ..config import Settings, get_settings
from ..deps import ServicesDep
from ..rate_limit import limiter

logger = get_logger("gigboard.auth")
router = APIRouter(prefix="/auth", tags=["auth"])


class RegisterRequest(BaseModel):
    role: str
    name: str
    email: str
    phone: str
    password: str
    address: dict[str, Any] | str | None = None
    # Worker-only profile fields
    skills: list[str] | None = None
    experience: int | None = Field(None, ge=0)
    bio: str | None = None


class VerifyOTPRequest(BaseModel):
    email: str
    otp: str


class LoginRequest(BaseModel):
    email_or_phone: str
    password: str


@router.post("/register", status_code=201)
@limiter.limit("5/minute")
async def register(request: Request, body: RegisterRequest, services: ServicesDep):
    """Create a temporary account and email a verification code."""
    logger.info(f"POST /auth/register | role={body.role}")
    profile = {"address": body.address}
    if body.role == "worker":
        profile.update(skills=body.skills, experience=body.experience, bio=body.bio)

    user = await asyncio.to_thread(
        services.accounts.register,
        body.role, body.name, body.email, body.phone, body.password, **profile
    )
    return {
        "success": True,
        "message": "Registration started. Check your email for the verification code.",
        "user": {"id": user.id, "email": user.email, "role": user.role.value},
    }


@router.post("/verify-otp")
@limiter.limit("10/minute")
async def verify_otp(
    request: Request,
    response: Response,
    body: VerifyOTPRequest,
    services: ServicesDep,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Finish registration; logs the new account in."""
    user = services.accounts.verify_registration(body.email, body.otp)
    token = create_access_token(user.id, user.role, settings)
    set_auth_cookie(response, token, settings)
    return {
        "success": True,
        "message": "Email verified successfully",
        "token": token,
        "user": user.to_public_dict(),
    }


@router.post("/login")
@limiter.limit("10/minute")
async def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    services: ServicesDep,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Login with email or phone and password.

    Sets an httpOnly cookie and also returns the token for API clients.
    """
    user = await asyncio.to_thread(
        services.accounts.authenticate, body.email_or_phone, body.password
    )
    token = create_access_token(user.id, user.role, settings)
    set_auth_cookie(response, token, settings)
    return {
        "success": True,
        "message": "Login successful",
        "token": token,
        "user": user.to_public_dict(),
    }


@router.post("/logout")
async def logout(response: Response, settings: Annotated[Settings, Depends(get_settings)]):
    """Clear the auth cookie."""
    clear_auth_cookie(response, settings)
    return {"success": True, "message": "Logged out successfully"}


@router.get("/verify")
async def verify(user: CurrentUser):
    """Return the caller resolved from the token."""
    return {"success": True, "user": user.to_dict()}
