"""
Main FastAPI application for Fusion.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Optional

from .config import get_config, set_config, ServerConfig
from .gateway import Gateway
from .routes import create_api_router, create_websocket_router
from .middleware import RequestLoggingMiddleware
from ..storage.base import Backend
from ..storage.memory import MemoryBackend
from ..utils.logging import get_logger, setup_logger

logger = get_logger("fusion.server")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info("Starting Fusion server...")
    gateway: Gateway = app.state.gateway
    await gateway.start()
    logger.info(
        f"Serving {len(gateway.metadata.list_collections())} collections "
        f"at {app.state.config.path}"
    )

    yield

    # Shutdown
    logger.info("Shutting down Fusion server...")
    await gateway.stop()
    logger.info("Server shutdown complete")


def create_app(config: ServerConfig = None, backend: Optional[Backend] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        config: Optional server configuration
        backend: Backing database (an in-memory database if None)

    Returns:
        FastAPI application instance
    """
    if config:
        set_config(config)

    config = get_config()
    setup_logger(level=config.log_level)

    if backend is None:
        backend = MemoryBackend(index_build_delay=config.index_build_delay)

    app = FastAPI(
        title="Fusion API",
        description="""
# Fusion - Realtime Data Gateway

Clients connect over a WebSocket and send declarative queries that are
validated, planned against secondary indexes, and streamed back.

## Features

- **Queries**: single documents, unions of predicates, ordered ranges, limits
- **Subscriptions**: live changefeeds that can be cancelled at any time
- **Writes**: insert, replace, update, upsert and remove
- **Development mode**: collections and indexes are created on demand

The REST endpoints below manage collections and indexes.
        """,
        version="0.1.0",
        docs_url="/docs" if config.docs_enabled else None,
        redoc_url="/redoc" if config.docs_enabled else None,
        openapi_url="/openapi.json" if config.docs_enabled else None,
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.gateway = Gateway(backend, config)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add request logging middleware
    app.add_middleware(RequestLoggingMiddleware)

    # Add global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "Internal server error",
                "detail": str(exc) if config.log_level == "DEBUG" else None,
            }
        )

    # Include routes
    app.include_router(create_api_router(), prefix=config.api_prefix)
    app.include_router(create_websocket_router(config.path))

    # Root endpoint
    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "name": "Fusion",
            "version": "0.1.0",
            "docs": "/docs",
            "api": config.api_prefix,
            "websocket": config.path,
        }

    return app
