"""JSON snapshot persistence for the corpus index."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from refsearch.errors import (
    FORCE_REBUILD_HINT,
    REBUILD_HINT,
    SnapshotCorruptError,
    SnapshotNotFoundError,
    SnapshotVersionError,
)
from refsearch.models import Passage

SNAPSHOT_VERSION = 1


@dataclass
class IndexSnapshot:
    """Everything persisted for one corpus: index, passages and change-detection hashes."""

    index: dict[str, Any]
    passages: list[Passage]
    file_hashes: dict[str, str] = field(default_factory=dict)
    config_hash: str = ""
    created_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    version: int = SNAPSHOT_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "created_at": self.created_at,
            "index": self.index,
            "passages": [passage.to_dict() for passage in self.passages],
            "file_hashes": self.file_hashes,
            "config_hash": self.config_hash,
        }


def write_snapshot(path: Path, snapshot: IndexSnapshot) -> int:
    """Atomically write ``snapshot`` to ``path``; returns the byte count."""
    payload = json.dumps(snapshot.to_dict(), ensure_ascii=False).encode("utf-8")
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.name}.tmp")
    tmp_path.write_bytes(payload)
    os.replace(tmp_path, path)
    return len(payload)


def read_snapshot(path: Path) -> IndexSnapshot:
    if not path.exists():
        raise SnapshotNotFoundError(f"Index not found at {path}. {REBUILD_HINT}")
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise SnapshotCorruptError(
            f"Index at {path} could not be read. {FORCE_REBUILD_HINT}"
        ) from exc
    if not isinstance(raw, dict):
        raise SnapshotCorruptError(f"Index at {path} is malformed. {FORCE_REBUILD_HINT}")

    version = raw.get("version")
    if (
        not isinstance(version, int)
        or isinstance(version, bool)
        or version != SNAPSHOT_VERSION
    ):
        raise SnapshotVersionError(version, SNAPSHOT_VERSION)

    try:
        return IndexSnapshot(
            version=SNAPSHOT_VERSION,
            created_at=str(raw["created_at"]),
            index=dict(raw["index"]),
            passages=[Passage.from_dict(item) for item in raw["passages"]],
            file_hashes={
                str(name): str(digest)
                for name, digest in (raw.get("file_hashes") or {}).items()
            },
            config_hash=str(raw.get("config_hash") or ""),
        )
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise SnapshotCorruptError(
            f"Index at {path} is malformed. {FORCE_REBUILD_HINT}"
        ) from exc
