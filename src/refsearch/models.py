"""Shared data models for refsearch."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

HEADING_SEPARATOR = " > "


@dataclass(frozen=True)
class SourceDocument:
    """A corpus file handed to the core: root-relative path plus UTF-8 text."""

    path: str
    text: str


@dataclass(frozen=True)
class Passage:
    passage_id: str
    file: str
    title: str
    heading_path: str
    body: str
    start_line: int
    end_line: int
    size_estimate: int

    @property
    def headings(self) -> list[str]:
        return self.heading_path.split(HEADING_SEPARATOR) if self.heading_path else []

    @property
    def line_range(self) -> tuple[int, int]:
        return (self.start_line, self.end_line)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.passage_id,
            "file": self.file,
            "title": self.title,
            "heading_path": self.heading_path,
            "body": self.body,
            "start_line": self.start_line,
            "end_line": self.end_line,
            "size_estimate": self.size_estimate,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Passage":
        return cls(
            passage_id=str(raw["id"]),
            file=str(raw["file"]),
            title=str(raw["title"]),
            heading_path=str(raw["heading_path"]),
            body=str(raw["body"]),
            start_line=int(raw["start_line"]),
            end_line=int(raw["end_line"]),
            size_estimate=int(raw["size_estimate"]),
        )


@dataclass(frozen=True)
class SearchHit:
    """A raw retrieval hit joined with its passage, before reranking."""

    passage: Passage
    score: float


@dataclass(frozen=True)
class SearchResult:
    score: float
    file: str
    line_range: tuple[int, int]
    heading_path: list[str]
    body: str
    size_estimate: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "file": self.file,
            "line_range": list(self.line_range),
            "heading_path": list(self.heading_path),
            "body": self.body,
            "size_estimate": self.size_estimate,
        }


@dataclass(frozen=True)
class QuerySignals:
    facets: tuple[str, ...]
    symbols: tuple[str, ...]

    @property
    def empty(self) -> bool:
        return not self.facets and not self.symbols


@dataclass
class BuildSummary:
    mode: str
    files_indexed: int
    passages_created: int
    elapsed_ms: float
    snapshot_bytes: int = 0
    files_skipped: int = 0
    unchanged: int | None = None
    added: int | None = None
    changed: int | None = None
    removed: int | None = None
    skip_reasons: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "mode": self.mode,
            "files_indexed": self.files_indexed,
            "passages_created": self.passages_created,
            "snapshot_bytes": self.snapshot_bytes,
            "elapsed_ms": self.elapsed_ms,
            "files_skipped": self.files_skipped,
        }
        if self.mode == "incremental":
            payload.update(
                unchanged=self.unchanged,
                added=self.added,
                changed=self.changed,
                removed=self.removed,
            )
        return payload


@dataclass(frozen=True)
class ManifestEntry:
    file: str
    headings: list[str]
    lines: int
    summary: str


@dataclass
class Manifest:
    generated: str
    files: int
    entries: list[ManifestEntry]
