"""
Routes for the Fusion server.
"""

from fastapi import APIRouter
from .collections import router as collections_router
from .admin import router as admin_router
from .websocket import create_websocket_router


def create_api_router() -> APIRouter:
    """Create the REST API router with all sub-routers."""
    api_router = APIRouter()

    # Include sub-routers
    api_router.include_router(
        collections_router,
        prefix="/collections",
        tags=["Collections"],
    )
    api_router.include_router(
        admin_router,
        tags=["Admin"],
    )

    return api_router


__all__ = ["create_api_router", "create_websocket_router"]
