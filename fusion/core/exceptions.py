"""
Custom exceptions for Fusion.
"""


class FusionError(Exception):
    """Base exception for Fusion."""
    pass


class ValidationError(FusionError):
    """Malformed or mutually-exclusive request options."""
    pass


class InternalError(FusionError):
    """A condition the gateway itself should never produce."""
    pass


class LifecycleError(FusionError):
    """A collection or index was closed while a caller was waiting on it."""
    pass


class ExecutionError(FusionError):
    """The backing database rejected or failed a query at runtime."""
    pass


class CollectionError(FusionError):
    """Error related to collection metadata."""
    pass


class CollectionNotFoundError(CollectionError):
    """Collection does not exist."""

    def __init__(self, collection: str):
        super().__init__(f"Collection \"{collection}\" does not exist.")
        self.collection = collection


class CollectionExistsError(CollectionError):
    """Collection already exists."""

    def __init__(self, collection: str):
        super().__init__(f"Collection \"{collection}\" already exists.")
        self.collection = collection


class CollectionNotReadyError(CollectionError):
    """Collection exists but its replicas are not yet available."""

    def __init__(self, collection: str):
        super().__init__(f"Collection \"{collection}\" is not ready.")
        self.collection = collection


class IndexError(FusionError):
    """Error related to index operations."""
    pass


class IndexExists(IndexError):
    """An index with the same canonical name is already tracked."""

    def __init__(self, collection: str, fields):
        super().__init__(
            f"Index on collection \"{collection}\" for fields {list(fields)} already exists."
        )
        self.collection = collection
        self.fields = list(fields)


class IndexMissing(IndexError):
    """No index satisfies the requested predicate/order shape."""

    def __init__(self, collection: str, fields):
        super().__init__(
            f"Collection \"{collection}\" has no index matching {list(fields)}."
        )
        self.collection = collection
        self.fields = list(fields)


class IndexNotReady(IndexError):
    """A matching index exists but has not finished building."""

    def __init__(self, collection: str, index):
        super().__init__(
            f"Index on collection \"{collection}\" is not ready: {list(index.fields)}."
        )
        self.collection = collection
        self.index = index


# =============================================================================
# BACKING STORE ERRORS
# =============================================================================

class StorageError(FusionError):
    """Error reported by the backing database."""
    pass


class TableNotFoundError(StorageError):
    """Table does not exist in the backing database."""
    pass


class TableExistsError(StorageError):
    """Table already exists in the backing database."""
    pass


class IndexAlreadyExistsError(StorageError):
    """The backing database already has an index with this name."""
    pass


class IndexNotFoundError(StorageError):
    """The backing database has no index with this name."""
    pass


class DocumentMissingError(StorageError):
    """A write required a document that does not exist."""
    pass


class DocumentExistsError(StorageError):
    """An insert collided with an existing primary key."""
    pass


class SerializationError(StorageError):
    """Error during snapshot serialization/deserialization."""
    pass
