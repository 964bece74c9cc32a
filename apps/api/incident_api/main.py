"""Incident Ledger API - Main FastAPI application."""

import logging
import os
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from sqlalchemy import text

from incident_api.ledger.errors import EncodingError, ImmutableRecordError, StorageError, SubmissionError
from incident_api.middleware.correlation import CorrelationIDMiddleware
from incident_api.middleware.tenant import TenantContextMiddleware
from incident_api.routes import incidents
from incident_api.settings import get_settings

# Configure logging
logging.basicConfig(
    level=get_settings().log_level,
    format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s", "module": "%(name)s"}',
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting Incident Ledger API...")
    try:
        settings.validate_production_settings()
    except Exception as e:
        logger.error(f"Configuration validation failed: {e}")
        raise ValueError(f"Invalid configuration: {e}") from e

    yield
    logger.info("Shutting down Incident Ledger API...")


app = FastAPI(
    title="Incident Ledger API",
    description="Tamper-evident, hash-chained incident log per family",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Custom middleware (order matters - last added is first executed)
app.add_middleware(TenantContextMiddleware)
app.add_middleware(CorrelationIDMiddleware)

# Prometheus metrics
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

app.include_router(incidents.router)


@app.exception_handler(SubmissionError)
async def submission_error_handler(request: Request, exc: SubmissionError):
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={
            "detail": "The incident log was busy and your incident was not recorded. Please submit it again.",
            "kind": exc.kind.value,
            "attempts": exc.attempts,
            "retryable": True,
        },
    )


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error(
        f"Storage failure: {exc}",
        extra={"correlation_id": getattr(request.state, "correlation_id", None)},
    )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Incident storage is unavailable.", "retryable": True},
    )


@app.exception_handler(EncodingError)
async def encoding_error_handler(request: Request, exc: EncodingError):
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc), "field": exc.field},
    )


@app.exception_handler(ImmutableRecordError)
async def immutable_record_handler(request: Request, exc: ImmutableRecordError):
    logger.error(f"Blocked mutation of incident record: {exc}")
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": "Incidents cannot be edited or deleted."},
    )


@app.get("/health")
async def health_check():
    """Health check endpoint (basic liveness)."""
    return {
        "status": "healthy",
        "service": "incident-ledger-api",
        "version": "0.1.0",
    }


@app.get("/ready")
def readiness_check():
    """Readiness check endpoint (verifies dependencies)."""
    from incident_api.db.session import SessionLocal

    checks = {
        "database": False,
        "migrations": None,  # None if not required
    }

    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as e:
        logger.error(f"Database check failed: {e}")
    finally:
        db.close()

    if settings.ready_check_migrations and checks["database"]:
        checks["migrations"] = _migrations_at_head()

    required = [name for name, value in checks.items() if value is not None]
    all_ready = all(checks[name] for name in required)

    return JSONResponse(
        content={
            "status": "ready" if all_ready else "not_ready",
            "checks": checks,
        },
        status_code=200 if all_ready else 503,
    )


def _migrations_at_head() -> bool:
    from alembic.config import Config
    from alembic.runtime.migration import MigrationContext
    from alembic.script import ScriptDirectory

    from incident_api.db.session import engine

    try:
        with engine.connect() as connection:
            current_rev = MigrationContext.configure(connection).get_current_revision()
        alembic_ini_path = os.path.join(os.path.dirname(__file__), "..", "alembic.ini")
        head_rev = ScriptDirectory.from_config(Config(alembic_ini_path)).get_current_head()
    except Exception as e:
        logger.error(f"Migration check failed: {e}")
        return False

    if current_rev != head_rev:
        logger.warning(f"Migrations not at head: current={current_rev}, head={head_rev}")
        return False
    return True


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Incident Ledger API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
    }
