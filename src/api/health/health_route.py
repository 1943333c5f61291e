from datetime import datetime, timezone

from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST

router = APIRouter(tags=["Health"])


@router.get("/health", summary="API Health Check")
async def get_health():
    """Basic health check endpoint."""

    return {
        "message": "Weather Advisor API is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": "1.0.0",
    }


@router.get("/metrics", summary="Prometheus Metrics", include_in_schema=False)
async def get_metrics(request: Request):
    """Expose the process metrics in the Prometheus text format."""
    return Response(content=request.app.state.metrics.export(), media_type=CONTENT_TYPE_LATEST)
