"""FastAPI application for the ledgersync service.

Provides REST API endpoints for:
- Batch synchronization of offline mutations
- Conflict resolution
- Change feed for client catch-up
- Health checks
"""

from datetime import datetime, timezone

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ledgersync import __version__
from ledgersync.api.sync import get_sync_service
from ledgersync.api.sync import router as sync_router
from ledgersync.config import get_settings
from ledgersync.storage import PostgresRecordStore
from ledgersync.utils.logging import configure_logging

logger = structlog.get_logger()

app = FastAPI(
    title="ledgersync",
    description="Offline sync with optimistic concurrency for ledger records",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Clients sync from browsers and devices on other origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


app.include_router(sync_router)


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    timestamp: str


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


# ============================================================================
# Error Handlers
# ============================================================================

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.exception("Unhandled exception", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if get_settings().debug else "An error occurred",
        },
    )


# ============================================================================
# Startup/Shutdown Events
# ============================================================================

@app.on_event("startup")
async def startup():
    """Open the record store on startup."""
    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_json)

    service = get_sync_service()
    await service.start()
    if isinstance(service.store, PostgresRecordStore):
        await service.store.ensure_schema()

    logger.info(
        "ledgersync API starting",
        version=__version__,
        store_backend=settings.store_backend.value,
    )


@app.on_event("shutdown")
async def shutdown():
    """Release the record store and audit client on shutdown."""
    service = get_sync_service()
    await service.stop()
    if service.audit is not None and hasattr(service.audit, "close"):
        await service.audit.close()
    logger.info("ledgersync API shutting down")


# ============================================================================
# CLI Entry Point
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.server_host, port=settings.server_port)
