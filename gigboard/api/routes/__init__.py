"""API routes."""

from .admin import router as admin_router
from .auth import router as auth_router
from .jobs import router as jobs_router
from .profiles import clients_router, workers_router

__all__ = [
    "admin_router",
    "auth_router",
    "jobs_router",
    "workers_router",
    "clients_router",
]
