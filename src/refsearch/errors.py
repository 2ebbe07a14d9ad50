"""Error kinds surfaced by refsearch."""

from __future__ import annotations

REBUILD_HINT = "Run `python scripts/build_index.py` to build it."
FORCE_REBUILD_HINT = "Run `python scripts/build_index.py --force` to rebuild the index."


class RefsearchError(RuntimeError):
    """Base class for failures a caller can act on."""


class ConfigurationError(RefsearchError):
    """Size bounds, boosts or config file contents are invalid."""


class SnapshotNotFoundError(RefsearchError):
    """A query was attempted before any index was built."""


class SnapshotVersionError(RefsearchError):
    """The on-disk snapshot was written by an incompatible version."""

    def __init__(self, found: object, expected: int) -> None:
        super().__init__(
            f"Index version mismatch (found v{found}, expected v{expected}). "
            f"{FORCE_REBUILD_HINT}"
        )
        self.found = found
        self.expected = expected


class SnapshotCorruptError(RefsearchError):
    """The on-disk snapshot could not be parsed."""
