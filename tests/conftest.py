"""
Pytest fixtures and test configuration for gigboard tests.
"""

import os
import secrets
import uuid

import pytest

# Generate a unique test secret for this test run to prevent token forgery
_TEST_JWT_SECRET = f"test-only-{secrets.token_urlsafe(32)}"

os.environ.setdefault("JWT_SECRET_KEY", _TEST_JWT_SECRET)
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("COOKIE_SECURE", "false")
os.environ.setdefault("ADMIN_PASSWORD", "test-admin-password")

from gigboard.geo import Address, DistanceEstimator, GeoPoint  # noqa: E402
from gigboard.identity.models import Client, Worker  # noqa: E402
from gigboard.identity.passwords import hash_password  # noqa: E402
from gigboard.identity.storage import InMemoryIdentityStorage  # noqa: E402
from gigboard.lifecycle.config import LifecycleConfig  # noqa: E402
from gigboard.lifecycle.reviews import ReviewService  # noqa: E402
from gigboard.lifecycle.service import JobService  # noqa: E402
from gigboard.lifecycle.storage import InMemoryJobStorage, InMemoryReviewStorage  # noqa: E402
from gigboard.media import InMemoryMediaStore  # noqa: E402

# Central Bengaluru and a point ~1.5 km away
BENGALURU = GeoPoint(lat=12.9716, lon=77.5946)
NEAR_BENGALURU = GeoPoint(lat=12.9816, lon=77.6046)

TEST_PASSWORD = "correct-horse-battery"
_TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)


@pytest.fixture
def password():
    """Plain-text password of every factory-made user."""
    return TEST_PASSWORD


@pytest.fixture
def identity():
    return InMemoryIdentityStorage()


@pytest.fixture
def job_storage():
    return InMemoryJobStorage()


@pytest.fixture
def review_storage():
    return InMemoryReviewStorage()


@pytest.fixture
def media():
    return InMemoryMediaStore()


@pytest.fixture
def config():
    return LifecycleConfig()


@pytest.fixture
def job_service(job_storage, identity, review_storage, media, config):
    # No API key: distances are great-circle, which keeps tests offline
    return JobService(
        storage=job_storage,
        identity=identity,
        reviews=review_storage,
        distance=DistanceEstimator(),
        media=media,
        config=config,
    )


@pytest.fixture
def review_service(job_storage, review_storage, config):
    return ReviewService(jobs=job_storage, reviews=review_storage, config=config)


def _contact():
    token = uuid.uuid4().hex
    return f"{token[:12]}@example.com", str(int(token[:12], 16))[:10].rjust(10, "9")


@pytest.fixture
def make_worker(identity):
    """Factory for verified workers stored in ``identity``."""

    def _make(skills=("plumber",), location=BENGALURU, city="Bengaluru", **fields):
        email, phone = _contact()
        values = {
            "id": str(uuid.uuid4()),
            "name": "Test Worker",
            "email": email,
            "phone": phone,
            "password_hash": _TEST_PASSWORD_HASH,
            "email_verified": True,
            "is_temporary": False,
            "address": Address(city=city, location=location),
            "skills": list(skills),
        }
        values.update(fields)
        return identity.insert_user(Worker(**values))

    return _make


@pytest.fixture
def make_client(identity):
    """Factory for verified clients stored in ``identity``."""

    def _make(**fields):
        email, phone = _contact()
        values = {
            "id": str(uuid.uuid4()),
            "name": "Test Client",
            "email": email,
            "phone": phone,
            "password_hash": _TEST_PASSWORD_HASH,
            "email_verified": True,
            "is_temporary": False,
            "address": Address(city="Bengaluru", location=BENGALURU),
        }
        values.update(fields)
        return identity.insert_user(Client(**values))

    return _make


@pytest.fixture
def post_job(job_service):
    """Post a job through the service."""

    def _post(client_id, skill="plumber", location=NEAR_BENGALURU, city="Bengaluru", **kwargs):
        kwargs.setdefault("title", "Fix kitchen tap")
        kwargs.setdefault("description", "Tap is leaking under the sink")
        return job_service.create_job(
            client_id=client_id,
            skill=skill,
            address=Address(city=city, location=location),
            **kwargs,
        )

    return _post
