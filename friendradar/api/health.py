"""Health check endpoint."""

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
def health(request: Request) -> dict:
    """Liveness plus the number of open realtime channels."""
    broadcaster = request.app.state.broadcaster
    return {
        "status": "ok" if broadcaster.running else "degraded",
        "realtime_channels": broadcaster.total_channels,
    }
