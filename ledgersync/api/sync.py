"""Sync API endpoints for offline clients."""

from datetime import datetime
from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ledgersync.config import get_settings
from ledgersync.services.audit_logger import get_audit_logger
from ledgersync.storage import create_record_store
from ledgersync.sync import (
    ExpectedSyncError,
    InvalidStrategyError,
    RecordNotFoundError,
    ResolutionConflictError,
    StoreFailureError,
    SyncConfig,
    SyncService,
    ValidationFailureError,
)
from ledgersync.utils.logging import LogContext

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/sync", tags=["Sync"])

# Process-wide service; the app starts and stops it
_sync_service: Optional[SyncService] = None


def get_sync_service() -> SyncService:
    """Get or create the sync service from settings."""
    global _sync_service
    if _sync_service is None:
        settings = get_settings()
        _sync_service = SyncService(
            create_record_store(settings),
            audit=get_audit_logger(),
            config=SyncConfig.from_settings(settings),
        )
    return _sync_service


async def get_current_actor(request: Request) -> Optional[str]:
    """Extract the acting user id from request state (set by auth middleware).

    Returns None for anonymous requests; the audit trail then records no actor.
    """
    user = getattr(request.state, "user", None)
    if not user:
        return None
    if hasattr(user, "user_id"):
        return str(user.user_id)
    if isinstance(user, dict) and user.get("user_id") is not None:
        return str(user["user_id"])
    return None


# =============================================================================
# Request/Response Models
# =============================================================================


class SyncRequest(BaseModel):
    """Batch of offline mutations."""
    entity_type: Optional[str] = Field(None, description="Entity type of every item (default: supplier)")
    items: list[Any] = Field(..., description="Items of the form {local_id, id, version, fields}")


class ResolveRequest(BaseModel):
    """Request to resolve a reported conflict."""
    entity_type: Optional[str] = Field(None, description="Entity type (default: supplier)")
    server_id: int = Field(..., description="Server id of the conflicting record")
    client_data: dict = Field(default_factory=dict, description="Client field values")
    strategy: str = Field(..., description="server_wins, client_wins or merge")


class ResolveResponse(BaseModel):
    """Outcome of a conflict resolution."""
    status: str
    strategy: str
    server_id: int
    version: int
    data: dict


class ChangeSetResponse(BaseModel):
    """Records changed since a watermark."""
    records: list[dict]
    as_of: str
    has_more: bool
    next_since: str
    next_after_id: Optional[int] = None


class SyncStatusResponse(BaseModel):
    """Server clock for skew checks."""
    server_time: str
    status: str


def _http_error(error: ExpectedSyncError) -> HTTPException:
    """Map an expected sync error to its HTTP status."""
    if isinstance(error, RecordNotFoundError):
        status_code = 404
    elif isinstance(error, ResolutionConflictError):
        status_code = 409
    elif isinstance(error, (ValidationFailureError, InvalidStrategyError)):
        status_code = 422
    else:
        status_code = 400
    return HTTPException(status_code=status_code, detail=error.message)


def _store_failure(error: StoreFailureError) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": "Sync failed", "error": str(error)},
    )


# =============================================================================
# Endpoints
# =============================================================================


@router.post("")
async def sync_batch(
    request: SyncRequest,
    actor: Optional[str] = Depends(get_current_actor),
    service: SyncService = Depends(get_sync_service),
):
    """
    Apply a batch of offline mutations.

    Items without an id are created; items with an id are updated if their
    version matches the server. Mismatches come back as conflicts, bad items
    as errors, and neither prevents the rest of the batch from committing.
    """
    with LogContext(actor=actor, entity_type=request.entity_type):
        try:
            result = await service.sync_batch(request.items, actor, request.entity_type)
        except ExpectedSyncError as e:
            raise _http_error(e)
        except StoreFailureError as e:
            logger.exception("Sync request failed", error=str(e))
            return _store_failure(e)

    return result.to_dict()


@router.post("/resolve", response_model=ResolveResponse)
async def resolve_conflict(
    request: ResolveRequest,
    actor: Optional[str] = Depends(get_current_actor),
    service: SyncService = Depends(get_sync_service),
):
    """
    Resolve a conflict reported by a previous sync.

    Strategies:
    - server_wins: Keep the server record unchanged
    - client_wins: Overwrite with every client value, nulls included
    - merge: Apply non-null client values over the server record
    """
    with LogContext(actor=actor, entity_type=request.entity_type, server_id=request.server_id):
        try:
            record = await service.resolve(
                request.server_id,
                request.client_data,
                request.strategy,
                actor,
                request.entity_type,
            )
        except ExpectedSyncError as e:
            raise _http_error(e)
        except StoreFailureError as e:
            logger.exception("Conflict resolution failed", error=str(e))
            return _store_failure(e)

    return ResolveResponse(
        status="resolved",
        strategy=request.strategy,
        server_id=record.server_id,
        version=record.version,
        data=record.to_dict(),
    )


@router.get("/changes", response_model=ChangeSetResponse)
async def get_changes(
    since: Optional[datetime] = Query(None, description="ISO-8601 watermark; omit for everything"),
    entity_type: Optional[str] = Query(None, description="Restrict to one entity type"),
    after_id: Optional[int] = Query(None, description="next_after_id from the previous page"),
    service: SyncService = Depends(get_sync_service),
):
    """
    Pull records changed after a watermark.

    Pass the returned next_since as the following call's since, and
    next_after_id (when not null) as after_id. While has_more is true,
    more records are waiting past that cursor.
    """
    try:
        change_set = await service.changes_since(since, entity_type, after_id)
    except ExpectedSyncError as e:
        raise _http_error(e)
    except StoreFailureError as e:
        logger.exception("Change feed failed", error=str(e))
        return _store_failure(e)

    return change_set.to_dict()


@router.get("/status", response_model=SyncStatusResponse)
async def get_sync_status(service: SyncService = Depends(get_sync_service)):
    """Report the server clock."""
    return service.status()
