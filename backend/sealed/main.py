from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import inspect

from sealed.config import settings
from sealed.database import engine
from sealed.exceptions import TokenInvalid
from sealed.logging_config import setup_logging
from sealed.middleware.logging import LoggingMiddleware
from sealed.middleware.rate_limit import limiter
from sealed.routers import secrets, tokens
from sealed.scheduler import shutdown_scheduler, start_scheduler

# Database tables are managed by Alembic migrations
# Run: alembic upgrade head

REQUIRED_TABLES = {"secrets"}

logger = structlog.get_logger()


def check_database_tables() -> None:
    """Fail fast when migrations have not been applied."""
    existing = set(inspect(engine).get_table_names())
    missing = REQUIRED_TABLES - existing
    if missing:
        raise RuntimeError(
            f"Database tables missing: {', '.join(sorted(missing))}. "
            "Run `alembic upgrade head` before starting the service."
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - verify schema, start/stop scheduler."""
    setup_logging()
    check_database_tables()
    start_scheduler()
    yield
    shutdown_scheduler()


app = FastAPI(
    title="sealed",
    description="Zero-knowledge one-time secret exchange",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(TokenInvalid)
async def token_invalid_handler(request: Request, exc: TokenInvalid) -> JSONResponse:
    """Missing, malformed, forged and expired tokens all look the same."""
    return JSONResponse(status_code=401, content={"error": "invalid_token"})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Generic 500 that still carries the correlation id."""
    logger.error("unhandled_exception", error_type=type(exc).__name__, exc_info=exc)
    response = JSONResponse(status_code=500, content={"detail": "Internal Server Error"})
    correlation_id = getattr(request.state, "correlation_id", None)
    if correlation_id:
        response.headers["X-Correlation-ID"] = correlation_id
    return response


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Burn-Token"],
)
app.add_middleware(LoggingMiddleware)

# Routers
app.include_router(tokens.router, prefix="/api/v1", tags=["tokens"])
app.include_router(secrets.router, prefix="/api/v1", tags=["secrets"])


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
