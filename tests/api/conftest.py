"""Fixtures for the HTTP layer.

Every test gets a fresh in-memory service container wired into the app
through ``dependency_overrides``; rate limiting is switched off.
"""

import pytest
from fastapi.testclient import TestClient

from gigboard.api.auth import create_access_token
from gigboard.api.config import get_settings
from gigboard.api.deps import build_in_memory_services, get_services
from gigboard.api.main import app
from gigboard.api.rate_limit import limiter
from gigboard.api.routes.admin import _stats_cache
from gigboard.identity.models import Role


@pytest.fixture
def services():
    return build_in_memory_services()


@pytest.fixture
def identity(services):
    """Factory-made users land in the app's identity storage."""
    return services.identity


@pytest.fixture
def client(services):
    """Create a test client bound to ``services``."""
    app.dependency_overrides[get_services] = lambda: services
    limiter.enabled = False
    _stats_cache.clear()
    yield TestClient(app)
    app.dependency_overrides.clear()
    limiter.enabled = True


@pytest.fixture
def auth_headers():
    """Build bearer headers for a user (or ``"admin"``)."""
    settings = get_settings()

    def _headers(user) -> dict:
        if user == "admin":
            token = create_access_token("admin", Role.ADMIN, settings)
        else:
            token = create_access_token(user.id, user.role, settings)
        return {"Authorization": f"Bearer {token}"}

    return _headers
