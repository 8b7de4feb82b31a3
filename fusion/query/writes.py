"""
Document write planning.

Writes are validated up front like queries: every document is checked
before the backing database sees any of them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Union

from .parser import WriteOptions, WriteType, parse_write
from ..core.exceptions import ValidationError
from ..utils.validation import validate_document


# Writes that address existing documents by primary key
_ID_REQUIRED = {WriteType.REPLACE, WriteType.UPDATE, WriteType.REMOVE}


@dataclass
class WritePlan:
    """A validated batch of document writes to one collection."""

    kind: WriteType
    collection: str
    documents: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def ids(self) -> List[Any]:
        return [doc.get("id") for doc in self.documents]


def make_write_plan(kind: Union[WriteType, str], options: Union[WriteOptions, Dict[str, Any]]) -> WritePlan:
    """
    Validate a write request.

    ``update`` merges into documents that must already exist; ``replace``
    and ``remove`` also address documents by id; ``insert`` and ``upsert``
    generate ids for documents that have none.

    Raises:
        ValidationError: On an unknown write type or an invalid document
    """
    try:
        kind = WriteType(kind)
    except ValueError:
        raise ValidationError(f"Unknown write type: \"{kind}\"")

    options = parse_write(options)
    require_id = kind in _ID_REQUIRED

    documents = [
        validate_document(doc, require_id=require_id)
        for doc in options.data
    ]

    return WritePlan(kind=kind, collection=options.collection, documents=documents)
