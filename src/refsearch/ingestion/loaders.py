"""Corpus file discovery and loading."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from refsearch.models import SourceDocument
from refsearch.telemetry import log_event

SUPPORTED_SUFFIXES = {".md", ".mdx", ".txt"}

logger = logging.getLogger(__name__)


def collect_files(root: Path, paths: Iterable[str]) -> list[str]:
    """Root-relative POSIX paths of supported files under each configured path."""
    found: set[str] = set()
    for entry in paths:
        target = root / entry
        if target.is_file():
            candidates = [target]
        elif target.is_dir():
            candidates = [p for p in target.rglob("*") if p.is_file()]
        else:
            continue
        for candidate in candidates:
            if candidate.suffix.lower() not in SUPPORTED_SUFFIXES:
                continue
            try:
                found.add(candidate.relative_to(root).as_posix())
            except ValueError:
                found.add(candidate.as_posix())
    return sorted(found)


def load_document(root: Path, relative_path: str) -> SourceDocument:
    text = (root / relative_path).read_text(encoding="utf-8")
    return SourceDocument(path=relative_path, text=text)


def load_documents(
    root: Path, files: Iterable[str]
) -> tuple[list[SourceDocument], dict[str, str]]:
    """Read every file; unreadable ones are logged and reported, never fatal."""
    documents: list[SourceDocument] = []
    skipped: dict[str, str] = {}
    for relative_path in files:
        try:
            documents.append(load_document(root, relative_path))
        except UnicodeDecodeError:
            skipped[relative_path] = "decode_error"
        except OSError:
            skipped[relative_path] = "read_error"
        else:
            continue
        log_event(
            logger,
            "file_skipped",
            level=logging.WARNING,
            path=relative_path,
            reason=skipped[relative_path],
        )
    return documents, skipped
