"""
Core components for Fusion.
"""

from .exceptions import (
    FusionError,
    ValidationError,
    InternalError,
    LifecycleError,
    ExecutionError,
    CollectionError,
    CollectionNotFoundError,
    CollectionExistsError,
    CollectionNotReadyError,
    IndexError,
    IndexExists,
    IndexMissing,
    IndexNotReady,
    StorageError,
    TableNotFoundError,
    TableExistsError,
    IndexAlreadyExistsError,
    IndexNotFoundError,
    DocumentMissingError,
    DocumentExistsError,
    SerializationError,
)
from .readiness import Readiness, ReadinessState
from .index import (
    Index,
    PRIMARY_INDEX_NAME,
    PRIMARY_INDEX_FIELDS,
    info_to_name,
    name_to_info,
)
from .table import Table
from .metadata import Metadata

__all__ = [
    # Readiness
    "Readiness",
    "ReadinessState",
    # Index
    "Index",
    "PRIMARY_INDEX_NAME",
    "PRIMARY_INDEX_FIELDS",
    "info_to_name",
    "name_to_info",
    # Table
    "Table",
    "Metadata",
    # Exceptions
    "FusionError",
    "ValidationError",
    "InternalError",
    "LifecycleError",
    "ExecutionError",
    "CollectionError",
    "CollectionNotFoundError",
    "CollectionExistsError",
    "CollectionNotReadyError",
    "IndexError",
    "IndexExists",
    "IndexMissing",
    "IndexNotReady",
    "StorageError",
    "TableNotFoundError",
    "TableExistsError",
    "IndexAlreadyExistsError",
    "IndexNotFoundError",
    "DocumentMissingError",
    "DocumentExistsError",
    "SerializationError",
]
