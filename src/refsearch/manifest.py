"""Corpus catalog: one entry per file with headings, size and a short summary."""

from __future__ import annotations

import json
import re
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

from refsearch.config import SearchConfig
from refsearch.errors import RefsearchError
from refsearch.ingestion.normalization import (
    frontmatter_description,
    normalize_newlines,
    strip_frontmatter,
)
from refsearch.ingestion.pipeline import load_corpus
from refsearch.models import Manifest, ManifestEntry, SourceDocument
from refsearch.telemetry import configure_logging, log_event

SUMMARY_LIMIT = 200

_HEADING_RE = re.compile(r"^#{1,3}\s+(.+)")


def extract_headings(text: str) -> list[str]:
    body, _ = strip_frontmatter(normalize_newlines(text))
    headings: list[str] = []
    for line in body.split("\n"):
        match = _HEADING_RE.match(line)
        if match:
            headings.append(match.group(1).strip())
    return headings


def extract_summary(text: str) -> str:
    description = frontmatter_description(text)
    if description:
        return description
    body, _ = strip_frontmatter(normalize_newlines(text))
    for line in body.split("\n"):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if len(stripped) > SUMMARY_LIMIT:
            return stripped[:SUMMARY_LIMIT] + "..."
        return stripped
    return ""


def build_manifest_entry(document: SourceDocument) -> ManifestEntry:
    return ManifestEntry(
        file=document.path,
        headings=extract_headings(document.text),
        lines=len(normalize_newlines(document.text).split("\n")),
        summary=extract_summary(document.text),
    )


def build_manifest(documents: Sequence[SourceDocument]) -> Manifest:
    entries = [
        build_manifest_entry(document)
        for document in sorted(documents, key=lambda document: document.path)
    ]
    return Manifest(
        generated=datetime.now(timezone.utc).isoformat(),
        files=len(entries),
        entries=entries,
    )


def write_manifest(path: Path, manifest: Manifest) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(manifest), indent=2) + "\n", encoding="utf-8")


def load_manifest(path: Path) -> Manifest:
    if not path.exists():
        raise RefsearchError(
            f"Manifest not found at {path}. Run `python scripts/manifest.py` first."
        )
    raw = json.loads(path.read_text(encoding="utf-8"))
    return Manifest(
        generated=raw["generated"],
        files=int(raw["files"]),
        entries=[ManifestEntry(**entry) for entry in raw["entries"]],
    )


def build_and_persist_manifest(config: SearchConfig) -> Manifest:
    logger = configure_logging()
    documents, skipped = load_corpus(config)
    manifest = build_manifest(documents)
    write_manifest(config.manifest_path, manifest)
    log_event(
        logger,
        "manifest_written",
        path=str(config.manifest_path),
        files=manifest.files,
        files_skipped=len(skipped),
    )
    return manifest
