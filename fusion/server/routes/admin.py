"""
Admin endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ..models import HealthResponse
from ..dependencies import get_gateway, get_uptime
from ..gateway import Gateway

router = APIRouter()

_version = "0.1.0"


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check if the server is healthy and running.",
)
async def health_check(
    gateway: Gateway = Depends(get_gateway),
    uptime: float = Depends(get_uptime),
):
    """Health check endpoint."""
    return HealthResponse(
        status="healthy" if gateway.metadata.running else "starting",
        version=_version,
        uptime_seconds=uptime,
        collection_count=len(gateway.metadata.list_collections()),
    )
