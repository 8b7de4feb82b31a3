"""
Snapshot serialization for the in-memory backend.

Snapshots are msgpack maps:

    {
        "version": 1,
        "databases": {
            <db>: {
                <table>: {
                    "indexes": {<name>: [<field>, ...]},
                    "documents": [<doc>, ...],
                },
            },
        },
    }
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Union

import msgpack

from ..core.exceptions import SerializationError


SNAPSHOT_VERSION = 1


def pack_snapshot(data: Dict[str, Any]) -> bytes:
    """Serialize snapshot contents to bytes."""
    try:
        return msgpack.packb(
            {"version": SNAPSHOT_VERSION, "databases": data},
            use_bin_type=True,
        )
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Cannot serialize snapshot: {e}")


def unpack_snapshot(payload: bytes) -> Dict[str, Any]:
    """
    Deserialize snapshot bytes.

    Returns:
        The ``databases`` mapping

    Raises:
        SerializationError: On malformed data or an unknown version
    """
    try:
        snapshot = msgpack.unpackb(payload, raw=False, strict_map_key=False)
    except (msgpack.UnpackException, ValueError) as e:
        raise SerializationError(f"Cannot deserialize snapshot: {e}")

    if not isinstance(snapshot, dict) or "databases" not in snapshot:
        raise SerializationError("Snapshot is missing its databases section")

    version = snapshot.get("version")
    if version != SNAPSHOT_VERSION:
        raise SerializationError(f"Unsupported snapshot version: {version}")

    return snapshot["databases"]


def write_snapshot(path: Union[str, Path], data: Dict[str, Any]) -> None:
    """Atomically write a snapshot file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with open(tmp_path, "wb") as f:
        f.write(pack_snapshot(data))
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp_path, path)


def read_snapshot(path: Union[str, Path]) -> Dict[str, Any]:
    """Read a snapshot file written by write_snapshot()."""
    with open(path, "rb") as f:
        return unpack_snapshot(f.read())
