"""Service wiring for the API.

Routes depend on :func:`get_services`; tests swap the whole container through
``app.dependency_overrides[get_services]``.
"""

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends

from gigboard.geo import DistanceEstimator
from gigboard.identity.otp import InMemoryOTPStorage, OTPService, OTPStorage
from gigboard.identity.service import AccountService
from gigboard.identity.storage import IdentityStorage, InMemoryIdentityStorage
from gigboard.lifecycle.config import LifecycleConfig
from gigboard.lifecycle.reviews import ReviewService
from gigboard.lifecycle.service import JobService
from gigboard.lifecycle.storage import (
    InMemoryJobStorage,
    InMemoryReviewStorage,
    JobStorage,
    ReviewStorage,
)
from gigboard.logging_config import get_logger
from gigboard.media import InMemoryMediaStore, MediaStore, SupabaseMediaStore
from gigboard.notify import HttpNotifier, LoggingNotifier, Notifier

from .config import Settings, get_settings

logger = get_logger("gigboard.api")


@dataclass
class Services:
    """Everything a request handler may need."""

    job_storage: JobStorage
    review_storage: ReviewStorage
    identity: IdentityStorage
    jobs: JobService
    reviews: ReviewService
    accounts: AccountService
    media: MediaStore
    notifier: Notifier


def build_services(
    job_storage: JobStorage,
    review_storage: ReviewStorage,
    identity: IdentityStorage,
    otp_storage: OTPStorage,
    media: MediaStore,
    notifier: Notifier,
    distance: DistanceEstimator | None = None,
    config: LifecycleConfig | None = None,
) -> Services:
    """Assemble the services from storage backends and collaborators."""
    config = config or LifecycleConfig()
    return Services(
        job_storage=job_storage,
        review_storage=review_storage,
        identity=identity,
        jobs=JobService(
            storage=job_storage,
            identity=identity,
            reviews=review_storage,
            distance=distance,
            media=media,
            config=config,
        ),
        reviews=ReviewService(jobs=job_storage, reviews=review_storage, config=config),
        accounts=AccountService(
            storage=identity, otp=OTPService(otp_storage), notifier=notifier, media=media
        ),
        media=media,
        notifier=notifier,
    )


def build_in_memory_services(
    distance: DistanceEstimator | None = None, config: LifecycleConfig | None = None
) -> Services:
    """Process-local services for local development and tests."""
    return build_services(
        job_storage=InMemoryJobStorage(),
        review_storage=InMemoryReviewStorage(),
        identity=InMemoryIdentityStorage(),
        otp_storage=InMemoryOTPStorage(),
        media=InMemoryMediaStore(),
        notifier=LoggingNotifier(),
        distance=distance,
        config=config,
    )


def build_services_from_settings(settings: Settings) -> Services:
    distance = DistanceEstimator(
        api_key=settings.ors_api_key,
        timeout=settings.distance_timeout_seconds,
        cache_size=settings.distance_cache_size,
    )
    if settings.storage_backend == "memory":
        logger.warning("Using in-memory storage; data is lost on restart")
        return build_in_memory_services(distance=distance)

    from .database import (
        SupabaseIdentityStorage,
        SupabaseJobStorage,
        SupabaseOTPStorage,
        SupabaseReviewStorage,
        get_supabase_client,
    )

    db = get_supabase_client(settings)
    return build_services(
        job_storage=SupabaseJobStorage(db),
        review_storage=SupabaseReviewStorage(db),
        identity=SupabaseIdentityStorage(db),
        otp_storage=SupabaseOTPStorage(db),
        media=SupabaseMediaStore(db, settings.media_bucket),
        notifier=HttpNotifier(
            email_api_key=settings.email_api_key,
            email_from=settings.email_from,
            twilio_account_sid=settings.twilio_account_sid,
            twilio_auth_token=settings.twilio_auth_token,
            twilio_from_number=settings.twilio_from_number,
        ),
        distance=distance,
    )


_services: Services | None = None


def get_services(settings: Annotated[Settings, Depends(get_settings)]) -> Services:
    """FastAPI dependency for the service container (built once per process)."""
    global _services
    if _services is None:
        _services = build_services_from_settings(settings)
    return _services


# Type alias for dependency injection
ServicesDep = Annotated[Services, Depends(get_services)]
