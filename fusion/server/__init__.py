"""
Fusion server.

A FastAPI application serving client requests over a WebSocket, with a
REST API for managing collections and indexes.

Quick Start:
    >>> from fusion.server import create_app, run_server
    >>>
    >>> app = create_app(ServerConfig(dev_mode=True))
    >>> run_server(app, host="127.0.0.1", port=8181)

Or using command line:
    $ python -m fusion.server --dev-mode --port 8181
"""

from .app import create_app
from .config import ServerConfig, get_config, set_config, load_config
from .gateway import Gateway
from .models import (
    # Protocol
    RequestType,
    ClientRequest,
    # Collections
    CreateCollectionRequest,
    CollectionResponse,
    CollectionListResponse,
    # Indexes
    CreateIndexRequest,
    IndexResponse,
    IndexListResponse,
    # Common
    HealthResponse,
    SuccessResponse,
    ErrorResponse,
)

__all__ = [
    # App
    "create_app",
    "run_server",
    "Gateway",
    # Config
    "ServerConfig",
    "get_config",
    "set_config",
    "load_config",
    # Models
    "RequestType",
    "ClientRequest",
    "CreateCollectionRequest",
    "CollectionResponse",
    "CollectionListResponse",
    "CreateIndexRequest",
    "IndexResponse",
    "IndexListResponse",
    "HealthResponse",
    "SuccessResponse",
    "ErrorResponse",
]


def run_server(
    app=None,
    host: str = "127.0.0.1",
    port: int = 8181,
    log_level: str = "info",
):
    """
    Run the Fusion server.

    A single worker process is used: collection metadata and live
    cursors live in process memory.

    Args:
        app: FastAPI application (creates default if None)
        host: Host to bind to
        port: Port to bind to
        log_level: Logging level
    """
    import uvicorn

    if app is None:
        app = create_app()

    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level=log_level,
    )
