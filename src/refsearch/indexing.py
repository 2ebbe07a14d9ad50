"""Full and incremental index builds."""

from __future__ import annotations

import hashlib
import json
import logging
import time
from typing import Sequence

from refsearch.config import SearchConfig
from refsearch.errors import SnapshotCorruptError, SnapshotNotFoundError, SnapshotVersionError
from refsearch.ingestion.chunking import chunk_markdown
from refsearch.ingestion.pipeline import load_corpus
from refsearch.lexical import InvertedIndex
from refsearch.models import BuildSummary, Passage, SourceDocument
from refsearch.storage import IndexSnapshot, read_snapshot, write_snapshot
from refsearch.telemetry import configure_logging, log_event

_SNAPSHOT_ERRORS = (SnapshotNotFoundError, SnapshotVersionError, SnapshotCorruptError)


def hash_content(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def hash_config(config: SearchConfig) -> str:
    """Hash of the settings that change passages or scoring."""
    payload = {
        "chunk_max_size": config.chunk_max_size,
        "chunk_min_size": config.chunk_min_size,
        "boosts": config.boosts.to_dict(),
    }
    encoded = json.dumps(payload, sort_keys=True).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def _chunk(document: SourceDocument, config: SearchConfig) -> list[Passage]:
    return chunk_markdown(
        document.text,
        document.path,
        max_size=config.chunk_max_size,
        min_size=config.chunk_min_size,
    )


def _order_by_file(passages: list[Passage]) -> list[Passage]:
    # Stable: passages keep their sequence within a file.
    return sorted(passages, key=lambda passage: passage.file)


def _restore_index(snapshot: IndexSnapshot, config: SearchConfig) -> InvertedIndex:
    try:
        index = InvertedIndex.from_dict(snapshot.index, config.boosts)
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise SnapshotCorruptError("Stored index could not be restored") from exc
    if len(index) != len(snapshot.passages):
        raise SnapshotCorruptError("Stored index and passage list disagree")
    return index


def build_snapshot(
    documents: Sequence[SourceDocument],
    config: SearchConfig,
    *,
    previous: IndexSnapshot | None = None,
    force: bool = False,
) -> tuple[IndexSnapshot, BuildSummary]:
    """Build a snapshot, reusing ``previous`` for files whose content is unchanged.

    Raises SnapshotCorruptError when ``previous`` cannot be restored; callers
    recover by building again without it.
    """
    start = time.perf_counter()
    ordered = sorted(documents, key=lambda document: document.path)
    file_hashes = {document.path: hash_content(document.text) for document in ordered}
    config_hash = hash_config(config)

    if force or previous is None or previous.config_hash != config_hash:
        index = InvertedIndex(config.boosts)
        passages: list[Passage] = []
        for document in ordered:
            passages.extend(_chunk(document, config))
        index.add(passages)
        summary = BuildSummary(
            mode="full",
            files_indexed=len(ordered),
            passages_created=len(passages),
            elapsed_ms=0.0,
        )
    else:
        index = _restore_index(previous, config)
        by_file: dict[str, list[Passage]] = {}
        for passage in previous.passages:
            by_file.setdefault(passage.file, []).append(passage)
        previous_files = set(previous.file_hashes) | set(by_file)

        unchanged: list[str] = []
        changed: list[SourceDocument] = []
        added: list[SourceDocument] = []
        for document in ordered:
            if document.path not in previous_files:
                added.append(document)
            elif previous.file_hashes.get(document.path) == file_hashes[document.path]:
                unchanged.append(document.path)
            else:
                changed.append(document)
        removed = sorted(previous_files - set(file_hashes))

        for path in [document.path for document in changed] + removed:
            index.remove(by_file.get(path, []))

        passages = [p for path in unchanged for p in by_file.get(path, [])]
        fresh: list[Passage] = []
        for document in changed + added:
            fresh.extend(_chunk(document, config))
        index.add(fresh)
        passages = _order_by_file(passages + fresh)
        summary = BuildSummary(
            mode="incremental",
            files_indexed=len(ordered),
            passages_created=len(fresh),
            elapsed_ms=0.0,
            unchanged=len(unchanged),
            added=len(added),
            changed=len(changed),
            removed=len(removed),
        )

    snapshot = IndexSnapshot(
        index=index.to_dict(),
        passages=passages,
        file_hashes=file_hashes,
        config_hash=config_hash,
    )
    summary.elapsed_ms = (time.perf_counter() - start) * 1000
    return snapshot, summary


def build_and_persist_index(config: SearchConfig, *, force: bool = False) -> BuildSummary:
    """Load the corpus, build against the prior snapshot and write the result."""
    start = time.perf_counter()
    logger = configure_logging()
    log_event(
        logger,
        "build_start",
        corpus_root=str(config.corpus_root),
        paths=list(config.paths),
        force=force,
    )
    documents, skipped = load_corpus(config)

    previous: IndexSnapshot | None = None
    if not force:
        try:
            previous = read_snapshot(config.index_path)
        except _SNAPSHOT_ERRORS as exc:
            if not isinstance(exc, SnapshotNotFoundError):
                _log_fallback(logger, exc)

    try:
        snapshot, summary = build_snapshot(documents, config, previous=previous, force=force)
    except SnapshotCorruptError as exc:
        _log_fallback(logger, exc)
        snapshot, summary = build_snapshot(documents, config, force=True)

    summary.snapshot_bytes = write_snapshot(config.index_path, snapshot)
    summary.files_skipped = len(skipped)
    summary.skip_reasons = dict(skipped)
    summary.elapsed_ms = (time.perf_counter() - start) * 1000
    log_event(logger, "build_complete", index_path=str(config.index_path), **summary.to_dict())
    return summary


def _log_fallback(logger: logging.Logger, exc: Exception) -> None:
    log_event(
        logger,
        "snapshot_fallback",
        level=logging.WARNING,
        reason=type(exc).__name__,
        detail=str(exc),
    )
