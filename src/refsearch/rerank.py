"""Multi-facet diversification over raw retrieval hits.

The reranker over-fetches a pool of hits, scores each one for static
relevance, then greedily picks results by marginal value: facets and symbols
not yet covered by earlier picks, cheap coverage per token, and a penalty for
resembling what has already been selected.

Output scores are the selection-time marginal score, so they are only
comparable within a single ranked list.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Sequence

from refsearch.models import QuerySignals, SearchHit, SearchResult

POOL_MULTIPLIER = 6
POOL_MIN = 20
MAX_FACETS = 16
MAX_SYMBOLS = 12
MAX_SIGNATURE_TOKENS = 32
MIN_TOKEN_LENGTH = 3

STOP_WORDS = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "by", "for", "from",
        "how", "in", "is", "it", "of", "on", "or", "that", "the", "this",
        "to", "what", "when", "where", "which", "with",
    }
)

# Static relevance weights.
BASE_WEIGHT = 0.66
FACET_COVERAGE_WEIGHT = 0.20
SYMBOL_COVERAGE_WEIGHT = 0.14
SIZE_PENALTY_WEIGHT = 0.08
SIZE_PENALTY_SCALE = 500

# Marginal selection weights.
FACET_GAIN_WEIGHT = 0.5
SYMBOL_GAIN_WEIGHT = 0.35
EFFICIENCY_WEIGHT = 0.18
SYMBOL_HIT_FACTOR = 1.5
EFFICIENCY_SIZE_FLOOR = 80
OVERLAP_PENALTY_WEIGHT = 0.22
SAME_FILE_PENALTY = 0.08

_WORD_SPLIT_RE = re.compile(r"[^a-z0-9_./\[\]():-]+")
_SYMBOL_RE = re.compile(r"[A-Za-z0-9_./\[\]():-]{3,}")
_SEPARATOR_RE = re.compile(r"[._/:\[\]():-]")
_CAMEL_RE = re.compile(r"[a-z][A-Z]")


@dataclass
class Candidate:
    hit: SearchHit
    static_relevance: float
    matched_facets: frozenset[str]
    matched_symbols: frozenset[str]
    signature: frozenset[str]


def pool_size(max_results: int) -> int:
    return max(max_results * POOL_MULTIPLIER, POOL_MIN)


def tokenize_words(text: str) -> list[str]:
    return [token for token in _WORD_SPLIT_RE.split(text.lower()) if token]


def extract_symbols(query: str) -> list[str]:
    symbols: list[str] = []
    for token in _SYMBOL_RE.findall(query):
        if _SEPARATOR_RE.search(token) or _CAMEL_RE.search(token):
            symbols.append(token.lower())
    return list(dict.fromkeys(symbols))


def build_query_signals(query: str) -> QuerySignals:
    facets = [
        word
        for word in tokenize_words(query)
        if len(word) >= MIN_TOKEN_LENGTH and word not in STOP_WORDS
    ]
    return QuerySignals(
        facets=tuple(dict.fromkeys(facets))[:MAX_FACETS],
        symbols=tuple(extract_symbols(query))[:MAX_SYMBOLS],
    )


def signature_tokens(hit: SearchHit) -> frozenset[str]:
    passage = hit.passage
    tokens: set[str] = set()
    for token in tokenize_words(f"{passage.file} {passage.title} {passage.heading_path}"):
        if len(token) >= MIN_TOKEN_LENGTH and token not in STOP_WORDS:
            tokens.add(token)
        if len(tokens) >= MAX_SIGNATURE_TOKENS:
            break
    return frozenset(tokens)


def jaccard(left: frozenset[str], right: frozenset[str]) -> float:
    if not left or not right:
        return 0.0
    intersection = len(left & right)
    union = len(left) + len(right) - intersection
    return intersection / union if union else 0.0


def _ratio(count: int, total: int) -> float:
    return count / total if total else 0.0


def build_candidates(hits: Sequence[SearchHit], signals: QuerySignals) -> list[Candidate]:
    if not hits:
        return []
    # Scores below 1 are not stretched up to 1.
    max_base = max(max(hit.score for hit in hits), 1.0)
    candidates: list[Candidate] = []
    for hit in hits:
        passage = hit.passage
        haystack = (
            f"{passage.file}\n{passage.heading_path}\n{passage.title}\n{passage.body}"
        ).lower()
        facets = frozenset(facet for facet in signals.facets if facet in haystack)
        symbols = frozenset(symbol for symbol in signals.symbols if symbol in haystack)
        size_penalty = min(1.0, (passage.size_estimate or 0) / SIZE_PENALTY_SCALE)
        static_relevance = (
            BASE_WEIGHT * (hit.score / max_base)
            + FACET_COVERAGE_WEIGHT * _ratio(len(facets), len(signals.facets))
            + SYMBOL_COVERAGE_WEIGHT * _ratio(len(symbols), len(signals.symbols))
            - SIZE_PENALTY_WEIGHT * size_penalty
        )
        candidates.append(
            Candidate(
                hit=hit,
                static_relevance=static_relevance,
                matched_facets=facets,
                matched_symbols=symbols,
                signature=signature_tokens(hit),
            )
        )
    return candidates


def _marginal_score(
    candidate: Candidate,
    selected: list[Candidate],
    covered_facets: set[str],
    covered_symbols: set[str],
    signals: QuerySignals,
) -> float:
    new_facets = len(candidate.matched_facets - covered_facets)
    new_symbols = len(candidate.matched_symbols - covered_symbols)
    size = candidate.hit.passage.size_estimate or 1
    efficiency = min(
        1.0,
        (new_facets + SYMBOL_HIT_FACTOR * new_symbols)
        * EFFICIENCY_SIZE_FLOOR
        / max(EFFICIENCY_SIZE_FLOOR, size),
    )
    overlap = max(
        (jaccard(candidate.signature, prior.signature) for prior in selected),
        default=0.0,
    )
    same_file = any(
        prior.hit.passage.file == candidate.hit.passage.file for prior in selected
    )
    return (
        candidate.static_relevance
        + FACET_GAIN_WEIGHT * _ratio(new_facets, len(signals.facets))
        + SYMBOL_GAIN_WEIGHT * _ratio(new_symbols, len(signals.symbols))
        + EFFICIENCY_WEIGHT * efficiency
        - OVERLAP_PENALTY_WEIGHT * overlap
        - (SAME_FILE_PENALTY if same_file else 0.0)
    )


def select_diverse(
    candidates: list[Candidate], signals: QuerySignals, max_results: int
) -> list[SearchHit]:
    """Greedy marginal-relevance selection; each pick carries its selection score."""
    remaining = list(candidates)
    selected: list[Candidate] = []
    picked: list[SearchHit] = []
    covered_facets: set[str] = set()
    covered_symbols: set[str] = set()
    while remaining and len(selected) < max_results:
        best_index = 0
        best_score = float("-inf")
        for index, candidate in enumerate(remaining):
            score = _marginal_score(
                candidate, selected, covered_facets, covered_symbols, signals
            )
            if score > best_score:
                best_index, best_score = index, score
        best = remaining.pop(best_index)
        selected.append(best)
        picked.append(SearchHit(passage=best.hit.passage, score=best_score))
        covered_facets.update(best.matched_facets)
        covered_symbols.update(best.matched_symbols)
    return picked


def rerank_hits(
    hits: Sequence[SearchHit], query: str, max_results: int
) -> list[SearchHit]:
    if max_results < 1:
        raise ValueError("max_results must be at least 1")
    pool = list(hits[: pool_size(max_results)])
    signals = build_query_signals(query)
    if len(pool) <= 1 or signals.empty:
        return pool[:max_results]
    return select_diverse(build_candidates(pool, signals), signals, max_results)


def to_result(hit: SearchHit) -> SearchResult:
    passage = hit.passage
    return SearchResult(
        score=hit.score,
        file=passage.file,
        line_range=passage.line_range,
        heading_path=passage.headings,
        body=passage.body,
        size_estimate=passage.size_estimate,
    )
