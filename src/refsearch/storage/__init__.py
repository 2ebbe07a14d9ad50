"""Snapshot storage helpers."""

from .snapshot import SNAPSHOT_VERSION, IndexSnapshot, read_snapshot, write_snapshot

__all__ = [
    "SNAPSHOT_VERSION",
    "IndexSnapshot",
    "read_snapshot",
    "write_snapshot",
]
