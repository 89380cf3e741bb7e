"""
ProfessorPrep Mastery Service

FastAPI application entry point.
"""

import math
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from professorprep.api.deps import get_request_id
from professorprep.api.middleware.rate_limit import RateLimitMiddleware
from professorprep.api.middleware.request_id import RequestIdMiddleware
from professorprep.api.v1 import router as api_v1_router
from professorprep.config import get_settings
from professorprep.database import close_db, init_db
from professorprep.engines.mastery.rubric import MasteryInvariantError
from professorprep.engines.mastery.tracker import MasteryValidationError
from professorprep.engines.rate_limit.limiter import QuotaExceeded, UnknownFeatureError
from professorprep.engines.rate_limit.store import RateLimitStoreError
from professorprep.logging_config import configure_logging, get_logger
from professorprep.schemas.common import HealthResponse

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan handler.

    Runs startup and shutdown tasks.
    """
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )

    logger.info("Starting %s v%s", settings.project_name, settings.version)
    await init_db()
    logger.info("Database initialized")

    yield

    logger.info("Shutting down...")
    await close_db()
    logger.info("Database connections closed")


app = FastAPI(
    title=settings.project_name,
    description="""
    ProfessorPrep Mastery Service

    - **Objectives**: canonical, ordered learning objectives per course
    - **Mastery**: waterfall progression of per-objective mastery from graded answers
    - **Quota**: per-user, per-feature limits on AI-backed features
    """,
    version=settings.version,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


# add_middleware stacks innermost-first: the last added is outermost.
# CORS goes last so 429s from the rate limiter also carry CORS headers.
_cors_origins = [
    "http://localhost:3000",
    "http://localhost:5173",  # Vite default
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
]

app.add_middleware(RateLimitMiddleware)
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(request: Request, status_code: int, content: dict, headers: dict | None = None) -> JSONResponse:
    """JSON error response carrying the request ID."""
    headers = dict(headers or {})
    req_id = get_request_id(request)
    if req_id:
        headers["X-Request-ID"] = req_id
        content = {**content, "request_id": req_id}
    return JSONResponse(status_code=status_code, content=content, headers=headers)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return _error(request, exc.status_code, {"detail": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors."""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    return _error(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        {"detail": "Validation error", "errors": errors},
    )


@app.exception_handler(MasteryValidationError)
async def mastery_validation_handler(request: Request, exc: MasteryValidationError):
    """Evaluation does not fit the course; nothing was written."""
    return _error(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        {"detail": str(exc), "code": "invalid_objective"},
    )


@app.exception_handler(QuotaExceeded)
async def quota_exceeded_handler(request: Request, exc: QuotaExceeded):
    """Quota exhausted: a client-side condition with a retry hint, not a server fault."""
    retry_after = max(1, math.ceil(exc.retry_after_seconds))
    return _error(
        request,
        status.HTTP_429_TOO_MANY_REQUESTS,
        {
            "detail": exc.message,
            "code": "quota_exceeded",
            "feature_key": exc.feature_key,
            "retry_after_seconds": retry_after,
        },
        headers={"Retry-After": str(retry_after)},
    )


@app.exception_handler(UnknownFeatureError)
async def unknown_feature_handler(request: Request, exc: UnknownFeatureError):
    return _error(
        request,
        status.HTTP_404_NOT_FOUND,
        {"detail": f"Unknown feature: {exc.args[0]}", "code": "unknown_feature"},
    )


@app.exception_handler(RateLimitStoreError)
async def rate_limit_store_handler(request: Request, exc: RateLimitStoreError):
    """Counter store down: transient, reported differently from an exhausted quota."""
    return _error(
        request,
        status.HTTP_503_SERVICE_UNAVAILABLE,
        {
            "detail": "Usage limits cannot be checked right now. Please try again shortly.",
            "code": "rate_limit_unavailable",
        },
        headers={"Retry-After": "5"},
    )


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    """Concurrent insert of the same objective order or mastery row."""
    logger.warning("Integrity conflict: %s", exc.orig)
    return _error(
        request,
        status.HTTP_409_CONFLICT,
        {"detail": "Conflicting update, please retry", "code": "conflict"},
    )


@app.exception_handler(MasteryInvariantError)
async def mastery_invariant_handler(request: Request, exc: MasteryInvariantError):
    logger.exception("Mastery invariant violated: %s", exc)
    return _error(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        {"detail": "Internal server error", "code": "mastery_invariant"},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception("Unhandled exception: %s", exc)
    if settings.debug:
        content = {"detail": str(exc), "type": type(exc).__name__}
    else:
        content = {"detail": "Internal server error"}
    return _error(request, status.HTTP_500_INTERNAL_SERVER_ERROR, content)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Check application health."""
    return HealthResponse(
        status="ok",
        version=settings.version,
        database="connected",
        rate_limit_backend=settings.rate_limit_backend,
    )


app.include_router(api_v1_router, prefix=settings.api_v1_prefix)


# Main entry point for development
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "professorprep.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
