"""
Pydantic models for client messages and REST requests and responses.
"""

from __future__ import annotations

from pydantic import BaseModel, Field
from typing import List, Dict, Any, Optional, Union
from enum import Enum


# =============================================================================
# ENUMS
# =============================================================================

class RequestType(str, Enum):
    """Client request types."""
    QUERY = "query"
    SUBSCRIBE = "subscribe"
    END_SUBSCRIPTION = "end_subscription"
    INSERT = "insert"
    REPLACE = "replace"
    UPSERT = "upsert"
    UPDATE = "update"
    REMOVE = "remove"


# =============================================================================
# PROTOCOL MODELS
# =============================================================================

class ClientRequest(BaseModel):
    """
    One message received over the WebSocket.

    Every frame sent in reply carries the same ``request_id``.
    """
    request_id: Union[int, str]
    type: RequestType
    options: Dict[str, Any] = Field(default_factory=dict)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "request_id": 1,
                    "type": "subscribe",
                    "options": {
                        "collection": "posts",
                        "find_all": [{"owner": "ann"}],
                        "order": [["score"], "descending"],
                        "limit": 10
                    }
                }
            ]
        }
    }


# =============================================================================
# COMMON MODELS
# =============================================================================

class SuccessResponse(BaseModel):
    """Generic success response."""
    success: bool = True
    message: str = "Operation completed successfully"
    data: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """Error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


# =============================================================================
# COLLECTION MODELS
# =============================================================================

class CreateCollectionRequest(BaseModel):
    """Request to create a new collection."""
    name: str = Field(..., min_length=1, max_length=127, pattern=r'^[a-zA-Z0-9_]+$')

    model_config = {
        "json_schema_extra": {
            "examples": [{"name": "posts"}]
        }
    }


class IndexResponse(BaseModel):
    """Index information response."""
    name: str
    fields: List[str]
    primary: bool = False
    state: str


class CollectionResponse(BaseModel):
    """Collection information response."""
    name: str
    table: str
    state: str
    indexes: List[IndexResponse] = Field(default_factory=list)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "name": "posts",
                    "table": "posts",
                    "state": "ready",
                    "indexes": [
                        {"name": "id", "fields": ["id"], "primary": True, "state": "ready"},
                        {
                            "name": "fusion_[\"owner\",\"score\"]",
                            "fields": ["owner", "score"],
                            "primary": False,
                            "state": "ready"
                        }
                    ]
                }
            ]
        }
    }


class CollectionListResponse(BaseModel):
    """List of collections response."""
    collections: List[CollectionResponse]
    total: int


class CreateIndexRequest(BaseModel):
    """Request to create a secondary index."""
    fields: List[str] = Field(..., min_length=1, max_length=32)

    model_config = {
        "json_schema_extra": {
            "examples": [{"fields": ["owner", "score"]}]
        }
    }


class IndexListResponse(BaseModel):
    """Indexes of one collection."""
    collection: str
    indexes: List[IndexResponse]
    total: int


# =============================================================================
# ADMIN MODELS
# =============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    version: str
    uptime_seconds: float
    collection_count: int = 0
