"""
Collection and index management endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ..models import (
    CreateCollectionRequest,
    CollectionResponse,
    CollectionListResponse,
    CreateIndexRequest,
    IndexResponse,
    IndexListResponse,
    SuccessResponse,
    ErrorResponse,
)
from ..dependencies import get_gateway, verify_api_key
from ..gateway import Gateway
from ...core.exceptions import (
    CollectionExistsError,
    CollectionNotFoundError,
    CollectionNotReadyError,
    FusionError,
    IndexExists,
    ValidationError,
)
from ...core.table import Table

router = APIRouter()


def _collection_response(table: Table) -> CollectionResponse:
    info = table.to_dict()
    return CollectionResponse(
        name=info["name"],
        table=info["table"],
        state=info["state"],
        indexes=[IndexResponse(**index) for index in info["indexes"]],
    )


def _find_table(gateway: Gateway, collection_name: str) -> Table:
    table = gateway.metadata.find_table(collection_name)
    if table is None:
        raise HTTPException(
            status_code=404,
            detail=f"Collection '{collection_name}' not found"
        )
    return table


@router.post(
    "",
    response_model=CollectionResponse,
    status_code=201,
    responses={
        201: {"description": "Collection created successfully"},
        400: {"model": ErrorResponse, "description": "Invalid request"},
        409: {"model": ErrorResponse, "description": "Collection already exists"},
    },
    summary="Create a new collection",
    description="Create a collection and wait until its table is ready.",
)
async def create_collection(
    request: CreateCollectionRequest,
    gateway: Gateway = Depends(get_gateway),
    _auth: bool = Depends(verify_api_key),
):
    """Create a new collection."""
    try:
        table = await gateway.metadata.create_collection(request.name)
    except CollectionExistsError:
        raise HTTPException(
            status_code=409,
            detail=f"Collection '{request.name}' already exists"
        )
    except FusionError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return _collection_response(table)


@router.get(
    "",
    response_model=CollectionListResponse,
    summary="List all collections",
    description="Get every collection known to the server, in any state.",
)
async def list_collections(
    gateway: Gateway = Depends(get_gateway),
):
    """List all collections."""
    collections = []
    for name in gateway.metadata.list_collections():
        table = gateway.metadata.find_table(name)
        if table is not None:
            collections.append(_collection_response(table))

    return CollectionListResponse(
        collections=collections,
        total=len(collections),
    )


@router.get(
    "/{collection_name}",
    response_model=CollectionResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Collection not found"},
    },
    summary="Get collection info",
    description="Get the state and indexes of a collection.",
)
async def get_collection(
    collection_name: str,
    gateway: Gateway = Depends(get_gateway),
):
    """Get collection information."""
    return _collection_response(_find_table(gateway, collection_name))


@router.delete(
    "/{collection_name}",
    response_model=SuccessResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Collection not found"},
    },
    summary="Delete a collection",
    description="Delete a collection, its indexes and all its documents.",
)
async def delete_collection(
    collection_name: str,
    gateway: Gateway = Depends(get_gateway),
    _auth: bool = Depends(verify_api_key),
):
    """Delete a collection."""
    try:
        await gateway.metadata.drop_collection(collection_name)
    except CollectionNotFoundError:
        raise HTTPException(
            status_code=404,
            detail=f"Collection '{collection_name}' not found"
        )

    return SuccessResponse(
        message=f"Collection '{collection_name}' deleted successfully"
    )


@router.get(
    "/{collection_name}/indexes",
    response_model=IndexListResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Collection not found"},
    },
    summary="List indexes",
    description="Get the indexes of a collection and whether each is ready.",
)
async def list_indexes(
    collection_name: str,
    gateway: Gateway = Depends(get_gateway),
):
    """List the indexes of a collection."""
    table = _find_table(gateway, collection_name)
    indexes = [IndexResponse(**index.to_dict()) for index in table.indexes.values()]

    return IndexListResponse(
        collection=collection_name,
        indexes=indexes,
        total=len(indexes),
    )


@router.post(
    "/{collection_name}/indexes",
    response_model=IndexResponse,
    status_code=201,
    responses={
        201: {"description": "Index created and ready"},
        400: {"model": ErrorResponse, "description": "Invalid fields"},
        404: {"model": ErrorResponse, "description": "Collection not found"},
        409: {"model": ErrorResponse, "description": "Index already exists"},
    },
    summary="Create an index",
    description="Create a secondary index over an ordered list of fields and wait until it is built.",
)
async def create_index(
    collection_name: str,
    request: CreateIndexRequest,
    gateway: Gateway = Depends(get_gateway),
    _auth: bool = Depends(verify_api_key),
):
    """Create a secondary index."""
    try:
        table = gateway.metadata.get_table(collection_name)
        index = await table.create_index(request.fields)
    except CollectionNotFoundError:
        raise HTTPException(
            status_code=404,
            detail=f"Collection '{collection_name}' not found"
        )
    except (CollectionNotReadyError, IndexExists) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except FusionError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return IndexResponse(**index.to_dict())
