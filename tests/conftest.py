"""
Pytest fixtures for Fusion tests.
"""

import pytest
from typing import Any, Dict, List

from fusion.core.metadata import Metadata
from fusion.storage.memory import MemoryBackend


DB = "test"


@pytest.fixture
def db() -> str:
    """Database name used by tests."""
    return DB


@pytest.fixture
def backend() -> MemoryBackend:
    """An empty in-memory backing database."""
    return MemoryBackend()


@pytest.fixture
def posts() -> List[Dict[str, Any]]:
    """Sample documents."""
    return [
        {"id": 1, "owner": "ann", "score": 10, "tag": "a"},
        {"id": 2, "owner": "ann", "score": 30, "tag": "b"},
        {"id": 3, "owner": "bob", "score": 20, "tag": "a"},
        {"id": 4, "owner": "bob", "score": 40},
        {"id": 5, "owner": "cid", "score": 25, "tag": "c"},
    ]


@pytest.fixture
async def metadata(backend: MemoryBackend, db: str) -> Metadata:
    """A started collection registry."""
    metadata = Metadata(backend, db=db)
    await metadata.start()
    yield metadata
    await metadata.stop()


@pytest.fixture
async def posts_table(metadata: Metadata, backend: MemoryBackend, db: str, posts):
    """A ready "posts" collection holding the sample documents."""
    table = await metadata.create_collection("posts")
    await backend.insert(db, "posts", posts)
    return table
