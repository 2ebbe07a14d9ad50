"""Query interface: baseline lexical retrieval, reranked search and multi-index merge."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Sequence

from wcmatch import glob

from refsearch.config import DEFAULT_MAX_RESULTS, FieldBoosts, SearchConfig
from refsearch.errors import (
    FORCE_REBUILD_HINT,
    REBUILD_HINT,
    SnapshotCorruptError,
    SnapshotNotFoundError,
)
from refsearch.lexical import InvertedIndex
from refsearch.models import Passage, SearchHit, SearchResult
from refsearch.rerank import rerank_hits, to_result
from refsearch.storage import IndexSnapshot, read_snapshot

_GLOB_FLAGS = glob.GLOBSTAR | glob.BRACE


@dataclass
class LoadedIndex:
    """A queryable index together with the passages it was built from."""

    index: InvertedIndex
    passages: list[Passage]
    file_hashes: dict[str, str] = field(default_factory=dict)
    config_hash: str = ""
    created_at: str = ""
    label: str = ""

    def __post_init__(self) -> None:
        self.passage_map = {passage.passage_id: passage for passage in self.passages}

    @classmethod
    def from_snapshot(
        cls, snapshot: IndexSnapshot, boosts: FieldBoosts | None = None
    ) -> "LoadedIndex":
        return cls(
            index=InvertedIndex.from_dict(snapshot.index, boosts),
            passages=list(snapshot.passages),
            file_hashes=dict(snapshot.file_hashes),
            config_hash=snapshot.config_hash,
            created_at=snapshot.created_at,
        )

    @classmethod
    def from_passages(
        cls, passages: Sequence[Passage], boosts: FieldBoosts | None = None
    ) -> "LoadedIndex":
        index = InvertedIndex(boosts)
        index.add(passages)
        return cls(index=index, passages=list(passages))


def load_index(
    path: Path, config: SearchConfig | None = None, *, label: str = ""
) -> LoadedIndex:
    """Load a snapshot for querying; failures surface as actionable errors."""
    snapshot = read_snapshot(path)
    boosts = config.boosts if config is not None else None
    try:
        loaded = LoadedIndex.from_snapshot(snapshot, boosts)
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise SnapshotCorruptError(
            f"Index at {path} is malformed. {FORCE_REBUILD_HINT}"
        ) from exc
    loaded.label = label
    return loaded


def _check_max_results(max_results: int) -> None:
    if max_results < 1:
        raise ValueError("max_results must be at least 1")


def raw_hits(
    loaded: LoadedIndex, query: str, file_filter: str | None = None
) -> list[SearchHit]:
    """All matching passages by descending score, glob-filtered on file path."""
    hits: list[SearchHit] = []
    for passage_id, score in loaded.index.search(query):
        passage = loaded.passage_map.get(passage_id)
        if passage is None:
            continue
        if file_filter and not glob.globmatch(passage.file, file_filter, flags=_GLOB_FLAGS):
            continue
        hits.append(SearchHit(passage=passage, score=score))
    return hits


def search_baseline(
    loaded: LoadedIndex,
    query: str,
    *,
    max_results: int = DEFAULT_MAX_RESULTS,
    file_filter: str | None = None,
) -> list[SearchResult]:
    """Raw retrieval order with no reranking."""
    _check_max_results(max_results)
    hits = raw_hits(loaded, query, file_filter)
    return [to_result(hit) for hit in hits[:max_results]]


def search(
    loaded: LoadedIndex,
    query: str,
    *,
    max_results: int = DEFAULT_MAX_RESULTS,
    file_filter: str | None = None,
) -> list[SearchResult]:
    _check_max_results(max_results)
    hits = raw_hits(loaded, query, file_filter)
    if not hits:
        return []
    return [to_result(hit) for hit in rerank_hits(hits, query, max_results)]


def search_all(
    sources: Sequence[LoadedIndex],
    query: str,
    *,
    max_results: int = DEFAULT_MAX_RESULTS,
    file_filter: str | None = None,
    rerank: bool = True,
) -> list[SearchResult]:
    """Query several indexes, prefix files with each source label and merge by score."""
    if not sources:
        raise SnapshotNotFoundError(f"Index not found. {REBUILD_HINT}")
    search_fn = search if rerank else search_baseline
    merged: list[SearchResult] = []
    for source in sources:
        results = search_fn(
            source, query, max_results=max_results, file_filter=file_filter
        )
        if source.label:
            results = [replace(r, file=f"{source.label}{r.file}") for r in results]
        merged.extend(results)
    merged.sort(key=lambda result: result.score, reverse=True)
    return merged[:max_results]
