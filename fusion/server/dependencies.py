"""
FastAPI dependencies for the Fusion server.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Header, Request
from typing import Optional, Annotated

from .config import ServerConfig
from .gateway import Gateway


# =============================================================================
# GATEWAY
# =============================================================================

def get_gateway(request: Request) -> Gateway:
    """Dependency to get the application's gateway."""
    return request.app.state.gateway


def get_server_config(request: Request) -> ServerConfig:
    """Dependency to get the application's configuration."""
    return request.app.state.config


def get_uptime(gateway: Gateway = Depends(get_gateway)) -> float:
    """Dependency to get server uptime."""
    return gateway.uptime


# =============================================================================
# API KEY AUTHENTICATION
# =============================================================================

def check_api_key(config: ServerConfig, key: Optional[str]) -> bool:
    """Check a presented key; any key is accepted when none is configured."""
    if config.api_key is None:
        return True
    return key == config.api_key


async def verify_api_key(
    x_api_key: Annotated[Optional[str], Header()] = None,
    config: ServerConfig = Depends(get_server_config),
) -> bool:
    """
    Verify API key if authentication is enabled.
    """
    if config.api_key is None:
        # No authentication required
        return True

    if x_api_key is None:
        raise HTTPException(
            status_code=401,
            detail="API key required",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if not check_api_key(config, x_api_key):
        raise HTTPException(
            status_code=403,
            detail="Invalid API key",
        )

    return True
