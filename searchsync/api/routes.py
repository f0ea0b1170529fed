"""API routes for driving a full sync one tick per request."""

import threading
from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import BaseModel, Field

from ..sync.orchestrator import SyncArgs, SyncOrchestrator
from ..sync.progress import ProgressEvent

logger = structlog.get_logger("searchsync.api")

router = APIRouter()


class SyncRequest(BaseModel):
    """Request model for the sync tick endpoint."""
    put_mapping: bool = Field(False, description="Delete and remap every index (only used when a new run starts)")
    per_page: Optional[int] = Field(None, ge=1, description="Objects indexed in this tick; overrides the stored bulk_setting")
    options: Dict[str, Any] = Field(default_factory=dict, description="Options passed through to sync hooks")


class ProgressMessage(BaseModel):
    """One progress message emitted during a tick."""
    message: str = Field(..., description="Progress message")
    status: str = Field(..., description="``success`` or ``error``")


class SyncTickResponse(BaseModel):
    """Response model for the sync tick endpoint."""
    done: bool = Field(..., description="Whether the run finished during this tick")
    messages: List[ProgressMessage] = Field(..., description="Messages emitted during this tick")
    index_meta: Optional[Dict[str, Any]] = Field(None, description="Run state after the tick")


class SyncStatusResponse(BaseModel):
    """Response model for the sync status endpoint."""
    running: bool = Field(..., description="Whether a run is in progress")
    index_meta: Optional[Dict[str, Any]] = Field(None, description="Checkpointed run state")


class SyncCancelResponse(BaseModel):
    """Response model for the sync cancel endpoint."""
    cancelled: bool = Field(..., description="Whether a run was active and has been discarded")


def get_orchestrator(request: Request) -> SyncOrchestrator:
    """Get the orchestrator from application state."""
    return request.app.state.orchestrator


def get_sync_lock(request: Request) -> threading.Lock:
    """Get the lock serialising sync ticks within this process."""
    return request.app.state.sync_lock


@router.get("/sync", response_model=SyncStatusResponse)
def sync_status(orchestrator: SyncOrchestrator = Depends(get_orchestrator)) -> SyncStatusResponse:
    """Return the state of the current run, if any."""
    index_meta = orchestrator.status()
    return SyncStatusResponse(running=index_meta is not None, index_meta=index_meta)


@router.post("/sync", response_model=SyncTickResponse)
def sync_tick(
    request: SyncRequest,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
    lock: threading.Lock = Depends(get_sync_lock),
) -> SyncTickResponse:
    """Start a run if none is active, then perform one step of it."""
    if not lock.acquire(blocking=False):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A sync step is already in progress"
        )

    messages: List[ProgressMessage] = []

    def collect(event: ProgressEvent) -> None:
        messages.append(ProgressMessage(message=event.message, status=event.status))

    try:
        done = orchestrator.step(SyncArgs(
            put_mapping=request.put_mapping,
            per_page=request.per_page,
            output=collect,
            extra=request.options,
        ))
    except Exception as e:
        logger.error("Sync tick failed", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Sync step failed: {e}"
        )
    finally:
        lock.release()

    return SyncTickResponse(done=done, messages=messages, index_meta=orchestrator.status())


@router.delete("/sync", response_model=SyncCancelResponse)
def sync_cancel(
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
    lock: threading.Lock = Depends(get_sync_lock),
) -> SyncCancelResponse:
    """Discard the current run and its checkpoint."""
    with lock:
        cancelled = orchestrator.cancel()
    logger.info("Sync cancel requested", cancelled=cancelled)
    return SyncCancelResponse(cancelled=cancelled)


@router.get("/metrics")
def metrics(request: Request) -> Response:
    """Expose Prometheus metrics."""
    collector = request.app.state.metrics_collector
    return Response(content=collector.get_metrics(), media_type="text/plain; version=0.0.4")
