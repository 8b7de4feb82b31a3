"""
Utility functions for Fusion.
"""

from .validation import (
    validate_name,
    validate_fields,
    validate_document,
)
from .logging import setup_logger, get_logger

__all__ = [
    "validate_name",
    "validate_fields",
    "validate_document",
    "setup_logger",
    "get_logger",
]
