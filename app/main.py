"""
Main FastAPI application entry point.
"""
import logging
import os
import uuid
from contextlib import asynccontextmanager
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy import text

from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.database import engine, Base, SessionLocal
from app.core.errors import Conflict, WorkflowError
from app.core.logging_config import setup_logging
from app.api.deps import shutdown_event_bus
from app.api.v1.router import api_router
from app.middleware.request_logging import RequestLoggingMiddleware

# Import all models to ensure they register with Base.metadata
# This ensures all tables are created when Base.metadata.create_all() is called
from app.models import (  # noqa: F401
    User,
    Entity,
    Audit,
    Observation,
    ObservationStatusHistory,
    SLARule,
    Evidence,
    ActivityLog,
    Notification,
)

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    # Startup
    logger.info(f"Starting up {settings.APP_NAME} API...")

    # Run Alembic migrations if DATABASE_URL is set (cloud deployment)
    if os.getenv("DATABASE_URL"):
        try:
            from alembic.config import Config
            from alembic import command

            logger.info("[MIGRATION] DATABASE_URL detected, running Alembic migrations...")
            alembic_cfg = Config("alembic.ini")
            command.upgrade(alembic_cfg, "head")
            logger.info("[MIGRATION] Alembic migrations completed successfully (or already up-to-date)")
        except Exception as e:
            trace_id = str(uuid.uuid4())
            logger.warning(
                f"[MIGRATION] [{trace_id}] Alembic migration check failed: {e}. "
                "This is OK if migrations already ran or database is not ready yet."
            )
            logger.debug(f"[MIGRATION] [{trace_id}] Migration error details:", exc_info=True)
    else:
        logger.info("[MIGRATION] DATABASE_URL not set, skipping migrations (local dev mode)")

    # Ensure database tables are created (fallback for local dev without Alembic)
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created/verified successfully")
    except Exception as e:
        logger.error(f"Failed to create database tables: {e}", exc_info=True)
        # Don't fail startup - let the health endpoint report the issue

    # Test database connectivity
    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
            db.commit()
            logger.info("Database connectivity verified")
        finally:
            db.close()
    except Exception as e:
        trace_id = str(uuid.uuid4())
        logger.error(f"[{trace_id}] Database connectivity test failed: {e}", exc_info=True)

    # Seed default SLA rules
    if settings.SEED_DEFAULT_SLA_RULES:
        try:
            from app.services.sla_rule_seeder import ensure_sla_rules_seeded
            db = SessionLocal()
            try:
                ensure_sla_rules_seeded(db)
            finally:
                db.close()
        except Exception as e:
            logger.warning(f"Failed to seed SLA rules: {e}. Continuing with the fallback SLA table.")

    yield
    # Shutdown
    shutdown_event_bus()
    logger.info(f"Shutting down {settings.APP_NAME} API...")


app = FastAPI(
    title=f"{settings.APP_NAME} API",
    description="Audit observation tracking - workflow state machines, SLA deadlines and evidence review",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    redirect_slashes=False,
)

# Request logging middleware (must be added before other middleware)
app.add_middleware(RequestLoggingMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router, prefix="/api/v1")


def _error_response(request: Request, exc: WorkflowError) -> JSONResponse:
    trace_id = getattr(request.state, "trace_id", str(uuid.uuid4()))
    content = exc.to_dict()
    content["trace_id"] = trace_id
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(WorkflowError)
async def workflow_exception_handler(request: Request, exc: WorkflowError):
    """Render engine errors with their status code, error code and details."""
    logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return _error_response(request, exc)


@app.exception_handler(IntegrityError)
async def integrity_exception_handler(request: Request, exc: IntegrityError):
    """Unique and foreign key violations that slipped past the services are conflicts."""
    logger.warning(f"Integrity error on {request.method} {request.url.path}: {exc.orig}")
    return _error_response(request, Conflict("Request conflicts with existing data", {"reason": str(exc.orig)}))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors with trace_id."""
    trace_id = getattr(request.state, "trace_id", str(uuid.uuid4()))

    logger.error(
        f"[{trace_id}] Unhandled exception: {type(exc).__name__}: {exc}",
        exc_info=True
    )

    if isinstance(exc, SQLAlchemyError):
        error_detail = "Database error: check DATABASE_URL / migrations"
        error_type = "DatabaseError"
    elif isinstance(exc, HTTPException):
        raise exc
    else:
        error_detail = str(exc) if settings.DEBUG else "Internal Server Error"
        error_type = type(exc).__name__

    return JSONResponse(
        status_code=500,
        content={
            "detail": error_detail,
            "trace_id": trace_id,
            "error": error_type,
            "message": str(exc) if settings.DEBUG else "An unexpected error occurred",
        },
    )


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": f"{settings.APP_NAME} API",
        "version": "1.0.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """
    Liveness check for the load balancer.

    Returns 200 without touching the database; use /api/v1/health for readiness.
    """
    return {"status": "ok"}
