"""HTTP driver application.

Each ``POST /api/v1/sync`` advances the process' orchestrator by one step, so
a dashboard can drive a long full sync through many short requests.
"""

import threading
import time
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import structlog

from ..common.metrics import MetricsCollector, get_metrics_collector
from ..sync.orchestrator import SyncOrchestrator
from .routes import router as api_router

logger = structlog.get_logger("searchsync.api")


def create_app(
    orchestrator: SyncOrchestrator,
    metrics_collector: Optional[MetricsCollector] = None
) -> FastAPI:
    """Create the FastAPI application around one long-lived orchestrator."""
    app = FastAPI(
        title="searchsync",
        description="Resumable full sync of search indexes",
        version="0.1.0",
    )

    app.state.orchestrator = orchestrator
    app.state.sync_lock = threading.Lock()
    app.state.metrics_collector = metrics_collector or orchestrator.metrics or get_metrics_collector("searchsync")

    app.include_router(api_router, prefix="/api/v1")

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Collect metrics for HTTP requests."""
        start_time = time.time()

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception as e:
            logger.error("Unhandled error", path=request.url.path, error=str(e))
            status_code = 500
            response = JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "detail": str(e)}
            )

        duration = time.time() - start_time
        app.state.metrics_collector.record_http_request(
            method=request.method,
            endpoint=request.url.path,
            status=status_code,
            duration=duration
        )
        response.headers["X-Process-Time"] = str(duration)
        return response

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {"status": "healthy", "service": "searchsync"}

    logger.info("searchsync API created")
    return app
