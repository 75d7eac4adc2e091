"""gigboard API - FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from gigboard import __version__
from gigboard.errors import ServiceError
from gigboard.logging_config import get_logger, setup_logging

from .config import get_settings
from .rate_limit import limiter
from .routes import admin_router, auth_router, clients_router, jobs_router, workers_router

logger = get_logger("gigboard.api")

API_PREFIX = "/api"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = get_settings()
    setup_logging(settings.log_level)
    logger.info(f"Starting gigboard API (debug={settings.debug}, storage={settings.storage_backend})")
    yield
    logger.info("Shutting down gigboard API")


app = FastAPI(
    title="gigboard API",
    description="Local services marketplace: job posting, claiming and completion",
    version=__version__,
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} | code={exc.code} | {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in err.get("loc", ())), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "code": "VALIDATION_ERROR",
            "detail": "Invalid request",
            "errors": errors,
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "code": f"HTTP_{exc.status_code}", "detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error | {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "code": "INTERNAL_ERROR", "detail": "Internal server error"},
    )


# Include routers
app.include_router(auth_router, prefix=API_PREFIX)
app.include_router(jobs_router, prefix=API_PREFIX)
app.include_router(workers_router, prefix=API_PREFIX)
app.include_router(clients_router, prefix=API_PREFIX)
app.include_router(admin_router, prefix=API_PREFIX)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "service": "gigboard",
        "version": __version__,
        "status": "ok",
    }


@app.get("/health")
async def health():
    """Report whether the storage backend answers."""
    if settings.storage_backend == "memory":
        return {"status": "healthy", "database": "memory"}

    from .database import JOBS_TABLE, get_supabase_client

    db_status = "disconnected"
    try:
        db = get_supabase_client(settings)
        db.table(JOBS_TABLE).select("id").limit(1).execute()
        db_status = "connected"
    except Exception as e:
        db_status = f"error: {str(e)[:50]}"

    overall_status = "healthy" if db_status == "connected" else "degraded"
    return {"status": overall_status, "database": db_status}
