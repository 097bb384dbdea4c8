from datetime import datetime

from fastapi import FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from slowapi.errors import RateLimitExceeded

from app.database import check_database_health
from app.ghostscope.api import router as v1_router
from app.config import settings
from app.firebase_auth import initialize_firebase_admin
from app.logging_config import setup_logging, get_logger
from app.middleware import RequestIDMiddleware, PerformanceMiddleware
from app.monitoring import setup_sentry
from app.rate_limit import limiter, rate_limit_handler
from app.errors import (
    APIError,
    api_error_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler,
)

# Setup logging first
setup_logging(use_json=(settings.log_format.lower() == "json"))
logger = get_logger(__name__)

# Setup Sentry if configured
sentry = setup_sentry()

app = FastAPI(
    title="GhostScope API",
    version="0.1.0",
    description="""
    GhostScope API - Trust-gated memories and confirm-to-publish shared spaces.

    ## Features

    * **Ghost Mode**: Owners grant per-user trust and expose memories at graduated disclosure tiers
    * **Escalation**: Repeated insufficient-trust probes of a memory end in a block
    * **Two-Phase Publication**: publish, retract and revise return a token; nothing changes until it is confirmed
    * **Moderation**: Spaces and groups can require approval before copies become visible
    * **Audit Logging**: Access checks and publication changes written to audit_events

    ## Authentication

    `Authorization: Bearer <Firebase ID token>`

    ## Error Responses

    Errors follow a standard format:
    ```json
    {
      "error": {
        "code": "ERROR_CODE",
        "message": "Human-readable message",
        "request_id": "uuid",
        "timestamp": "ISO8601",
        "details": {},
        "hint": "Recovery suggestion"
      }
    }
    ```
    """,
    contact={
        "name": "API Support",
        "url": "https://yourdomain.com/contact",
    },
    license_info={
        "name": "Proprietary",
    },
)

# Rate limiting
app.state.limiter = limiter

# Add middleware (order matters - RequestID first)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(PerformanceMiddleware)

# Add error handlers
app.add_exception_handler(APIError, api_error_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.on_event("startup")
async def startup_event():
    """Initialize services on application startup."""
    logger.info("Starting application...")
    errors = settings.validate_required()
    if errors:
        critical = [e for e in errors if "DATABASE_URL" in e]
        if critical:
            raise ValueError(f"Configuration errors: {', '.join(critical)}")
        for e in errors:
            logger.warning(f"Config: {e}")
    initialize_firebase_admin()
    db_health = check_database_health()
    if db_health["status"] == "healthy":
        logger.info(f"Database healthy (response_time_ms: {db_health.get('response_time_ms', 0)})")
    else:
        logger.error(f"Database health check failed: {db_health.get('error')}")
    logger.info(
        "Application startup complete",
        extra={"supported_spaces": settings.get_supported_spaces()},
    )

# Include v1 API router
app.include_router(v1_router)

# Add CORS middleware with configuration from settings
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=settings.get_cors_headers(),
)


@app.get("/healthz", tags=["health"])
def healthcheck():
    """
    Health summary: database connectivity plus the publication settings
    this instance serves.
    """
    db_health = check_database_health()
    return {
        "status": "ok" if db_health["status"] == "healthy" else "degraded",
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "version": app.version,
        "environment": settings.environment,
        "auth_test_mode": settings.auth_test_mode,
        "supported_spaces": settings.get_supported_spaces(),
        "database": db_health,
    }


@app.get("/healthz/ready", tags=["health"])
def readiness_check():
    """Readiness probe: 503 until the database answers."""
    db_health = check_database_health()
    if db_health["status"] != "healthy":
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not available",
        )
    return {"status": "ready", "database_response_time_ms": db_health.get("response_time_ms")}


@app.get("/healthz/live", tags=["health"])
def liveness_check():
    return {"status": "alive"}
