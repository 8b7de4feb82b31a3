"""
Input validation utilities.
"""

from typing import Any, Dict, List, Sequence
import re

from ..core.exceptions import ValidationError


# Collection and database names: alphanumerics and underscores
NAME_PATTERN = re.compile(r'^[a-zA-Z0-9_]+$')

# Maximum limits
MAX_NAME_LENGTH = 127
MAX_INDEX_FIELDS = 32


def validate_name(name: str, kind: str = "Collection") -> str:
    """
    Validate a collection or database name.

    Args:
        name: The name to validate
        kind: What is being named, used in error messages

    Returns:
        The validated name

    Raises:
        ValidationError: If the name is invalid
    """
    if not isinstance(name, str):
        raise ValidationError(f"{kind} name must be a string, got {type(name).__name__}")

    if not name:
        raise ValidationError(f"{kind} name cannot be empty")

    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(
            f"{kind} name too long: {len(name)} characters (max {MAX_NAME_LENGTH})"
        )

    if not NAME_PATTERN.match(name):
        raise ValidationError(
            f"Invalid {kind.lower()} name '{name}': must contain only "
            "alphanumeric characters or underscores"
        )

    return name


def validate_fields(fields: Sequence[str]) -> List[str]:
    """
    Validate an ordered list of index field names.

    Raises:
        ValidationError: If the list is empty, too long, repeats a field,
            or contains a non-string entry
    """
    if isinstance(fields, str) or not isinstance(fields, (list, tuple)):
        raise ValidationError("Index fields must be a list of field names")

    if not fields:
        raise ValidationError("Index fields cannot be empty")

    if len(fields) > MAX_INDEX_FIELDS:
        raise ValidationError(
            f"Too many index fields: {len(fields)} (max {MAX_INDEX_FIELDS})"
        )

    for f in fields:
        if not isinstance(f, str) or not f:
            raise ValidationError(f"Invalid index field: {f!r}")

    if len(set(fields)) != len(fields):
        raise ValidationError(f"Index fields must be unique: {list(fields)}")

    return list(fields)


def validate_document(document: Any, require_id: bool = False) -> Dict[str, Any]:
    """
    Validate a document submitted for writing.

    Args:
        document: The document to validate
        require_id: Whether the document must carry a primary key

    Returns:
        The validated document

    Raises:
        ValidationError: If the document is invalid
    """
    if not isinstance(document, dict):
        raise ValidationError(
            f"Document must be an object, got {type(document).__name__}"
        )

    if require_id and document.get("id") is None:
        raise ValidationError("Document must have an \"id\" field")

    for key in document:
        if not isinstance(key, str):
            raise ValidationError(
                f"Document key must be string, got {type(key).__name__}"
            )

    return document
