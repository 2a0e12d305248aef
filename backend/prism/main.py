# ruff: noqa: I001

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from prism.api.router import api_router
from prism.config import settings
from prism.core.observability import (
    global_exception_handler,
    request_logging_middleware,
    uptime_seconds,
    utc_now_iso,
)
from prism.database import POOL_CONFIG, engine

api_prefix = (
    settings.api_prefix
    if settings.api_prefix.startswith("/")
    else f"/{settings.api_prefix}"
    if settings.api_prefix
    else ""
)

logger = logging.getLogger("prism")
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")


def _run_migrations_if_configured() -> None:
    if not settings.run_migrations_on_start:
        return

    # Avoid running migrations during tests.
    if (settings.environment or "").lower() == "test":
        return

    # Import lazily to keep import graph light for non-migration startups.
    from alembic import command
    from alembic.config import Config
    from sqlalchemy import create_engine, text
    from sqlalchemy.engine.url import make_url
    from sqlalchemy.exc import SQLAlchemyError

    backend_root = Path(__file__).resolve().parents[1]
    alembic_cfg = Config(str(backend_root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(backend_root / "alembic"))

    # Log the DB target without leaking credentials.
    url_obj = make_url(str(settings.database_url))
    logger.info(
        "migrations_db_target",
        extra={
            "driver": url_obj.drivername,
            "host": url_obj.host,
            "db": url_obj.database,
            "has_password": bool(url_obj.password),
        },
    )

    try:
        db_engine = create_engine(settings.database_url, future=True)
        with db_engine.connect() as connection:
            dialect = str(connection.dialect.name or "").lower()

            # Avoid concurrent migrations across multiple instances.
            if dialect == "postgresql":
                acquired = bool(
                    connection.execute(text("select pg_try_advisory_lock(:k)"), {"k": 70419311}).scalar()
                )
                if not acquired:
                    logger.info("migrations_skipped_lock_not_acquired")
                    return

            try:
                # Reuse this connection inside Alembic env.py (config.attributes['connection']).
                alembic_cfg.attributes["connection"] = connection
                command.upgrade(alembic_cfg, "head")
                logger.info("migrations_applied")
            finally:
                if dialect == "postgresql":
                    connection.execute(text("select pg_advisory_unlock(:k)"), {"k": 70419311})
                    connection.commit()
    except SQLAlchemyError as e:
        # Don't crash the API if migrations fail; endpoints that need the DB will error.
        logger.error("migrations_failed", extra={"error": str(e)})


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "runtime_config",
        extra={
            "pid": os.getpid(),
            "environment": settings.environment,
            "db_pool": POOL_CONFIG,
            "db_pool_status": engine.pool.status(),
            "prism_api_url": settings.prism_api_url,
        },
    )
    _run_migrations_if_configured()
    yield


app = FastAPI(
    title=settings.app_name,
    docs_url="/docs" if settings.enable_docs else None,
    redoc_url="/redoc" if settings.enable_docs else None,
    openapi_url=(f"{api_prefix}/openapi.json" if api_prefix else "/openapi.json")
    if settings.enable_docs
    else None,
    lifespan=lifespan,
)

# Expose logger for middleware without creating circular imports.
app.state.logger = logger

# Global exception handler - catches all unhandled exceptions and returns structured error
app.add_exception_handler(Exception, global_exception_handler)

# Request-level logging + request correlation id.
app.middleware("http")(request_logging_middleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix=api_prefix)


@app.get("/", tags=["meta"])
def root():
    docs_path = (
        (f"{api_prefix}/openapi.json" if api_prefix else "/openapi.json")
        if settings.enable_docs
        else None
    )
    return {"message": settings.app_name, "docs": docs_path}


@app.get("/health", tags=["meta"])
@app.get("/healthz", tags=["meta"])
def healthcheck():
    """Liveness check; keep payload stable for monitoring systems."""

    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.environment,
        "time": utc_now_iso(),
        "uptime_seconds": round(uptime_seconds(), 2),
        "version": settings.build_version,
    }
