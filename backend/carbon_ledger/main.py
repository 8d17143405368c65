# ruff: noqa: I001

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from carbon_ledger.api.router import api_router
from carbon_ledger.config import settings
from carbon_ledger.core.observability import (
    global_exception_handler,
    request_logging_middleware,
    uptime_seconds,
    utc_now_iso,
)
from carbon_ledger.database import POOL_CONFIG, engine
from carbon_ledger.services.scheduler import scheduler as sweep_scheduler

api_prefix = (
    settings.api_prefix
    if settings.api_prefix.startswith("/")
    else f"/{settings.api_prefix}"
    if settings.api_prefix
    else ""
)

logger = logging.getLogger("carbon_ledger")
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")


def _scheduler_should_run() -> bool:
    # Avoid running background threads in test context.
    if (settings.environment or "").lower() == "test":
        return False
    return bool(settings.scheduler_enabled)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        pool_status = engine.pool.status()
    except Exception:
        pool_status = None
    logger.info(
        "runtime_config",
        extra={
            "pid": os.getpid(),
            "web_concurrency": os.getenv("WEB_CONCURRENCY"),
            "db_pool": POOL_CONFIG,
            "db_pool_status": pool_status,
        },
    )

    started = False
    if _scheduler_should_run():
        sweep_scheduler.start()
        started = True
    try:
        yield
    finally:
        if started:
            sweep_scheduler.stop()


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
    """Liveness check; payload kept stable for monitoring systems."""

    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.environment,
        "time": utc_now_iso(),
        "uptime_seconds": round(uptime_seconds(), 2),
        "version": settings.build_version,
        "scheduler_running": sweep_scheduler.running,
    }
