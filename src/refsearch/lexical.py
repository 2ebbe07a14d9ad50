"""Field-weighted inverted index with prefix and fuzzy term matching.

Scores are BM25+ per field, multiplied by the field boost and by a match
weight (1.0 for exact terms, lower for prefix and fuzzy expansions), and
summed across fields and query terms.
"""

from __future__ import annotations

import math
import re
from typing import Any, Iterable

from refsearch.config import FieldBoosts
from refsearch.ingestion.normalization import fold_for_matching
from refsearch.models import Passage

FIELDS = ("title", "heading_path", "body")

BM25_K = 1.2
BM25_B = 0.7
BM25_DELTA = 0.5

PREFIX_WEIGHT = 0.375
FUZZY_WEIGHT = 0.45
DEFAULT_FUZZY = 0.2

_WORD_RE = re.compile(r"[^\W_]+")


def tokenize(text: str) -> list[str]:
    """Split text on Unicode word boundaries after case folding."""
    return _WORD_RE.findall(fold_for_matching(text))


def _field_values(passage: Passage) -> dict[str, str]:
    return {
        "title": passage.title,
        "heading_path": passage.heading_path,
        "body": passage.body,
    }


def _term_counts(text: str) -> dict[str, int]:
    counts: dict[str, int] = {}
    for token in tokenize(text):
        counts[token] = counts.get(token, 0) + 1
    return counts


def edit_distance(left: str, right: str, limit: int) -> int:
    """Levenshtein distance, giving up with ``limit + 1`` once it exceeds ``limit``."""
    if abs(len(left) - len(right)) > limit:
        return limit + 1
    previous = list(range(len(right) + 1))
    for i, left_char in enumerate(left, start=1):
        current = [i] + [0] * len(right)
        row_min = current[0]
        for j, right_char in enumerate(right, start=1):
            cost = 0 if left_char == right_char else 1
            current[j] = min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost)
            row_min = min(row_min, current[j])
        if row_min > limit:
            return limit + 1
        previous = current
    return previous[-1]


class InvertedIndex:
    """In-memory postings over the title, heading_path and body fields."""

    def __init__(self, boosts: FieldBoosts | None = None) -> None:
        self.boosts = boosts or FieldBoosts()
        # term -> field -> passage id -> term frequency
        self._postings: dict[str, dict[str, dict[str, int]]] = {}
        # passage id -> field -> token count
        self._lengths: dict[str, dict[str, int]] = {}
        self._length_totals: dict[str, int] = {name: 0 for name in FIELDS}

    def __len__(self) -> int:
        return len(self._lengths)

    def __contains__(self, passage_id: object) -> bool:
        return passage_id in self._lengths

    @property
    def vocabulary_size(self) -> int:
        return len(self._postings)

    def add(self, passages: Iterable[Passage]) -> None:
        for passage in passages:
            if passage.passage_id in self._lengths:
                raise ValueError(f"Duplicate passage id: {passage.passage_id}")
            lengths: dict[str, int] = {}
            for name, text in _field_values(passage).items():
                counts = _term_counts(text)
                lengths[name] = sum(counts.values())
                self._length_totals[name] += lengths[name]
                for term, count in counts.items():
                    self._postings.setdefault(term, {}).setdefault(name, {})[
                        passage.passage_id
                    ] = count
            self._lengths[passage.passage_id] = lengths

    def remove(self, passages: Iterable[Passage]) -> None:
        for passage in passages:
            lengths = self._lengths.pop(passage.passage_id, None)
            if lengths is None:
                continue
            for name, text in _field_values(passage).items():
                self._length_totals[name] -= lengths.get(name, 0)
                for term in _term_counts(text):
                    fields = self._postings.get(term)
                    if fields is None or name not in fields:
                        continue
                    fields[name].pop(passage.passage_id, None)
                    if not fields[name]:
                        del fields[name]
                    if not fields:
                        del self._postings[term]

    def _expand(self, term: str, *, prefix: bool, fuzzy: float) -> dict[str, float]:
        matches: dict[str, float] = {}
        if term in self._postings:
            matches[term] = 1.0
        max_distance = round(len(term) * fuzzy) if fuzzy > 0 else 0
        if not prefix and max_distance == 0:
            return matches
        for candidate in self._postings:
            if candidate == term:
                continue
            weight = 0.0
            if prefix and candidate.startswith(term):
                extra = len(candidate) - len(term)
                weight = PREFIX_WEIGHT * len(term) / (len(term) + 0.3 * extra)
            if max_distance:
                distance = edit_distance(term, candidate, max_distance)
                if distance <= max_distance:
                    weight = max(weight, FUZZY_WEIGHT * len(term) / (len(term) + distance))
            if weight > 0:
                matches[candidate] = weight
        return matches

    def _bm25(self, frequency: int, doc_frequency: int, length: int, average: float) -> float:
        total = len(self._lengths)
        idf = math.log(1 + (total - doc_frequency + 0.5) / (doc_frequency + 0.5))
        norm = 1 - BM25_B + BM25_B * (length / average if average else 0.0)
        return idf * (BM25_DELTA + frequency * (BM25_K + 1) / (frequency + BM25_K * norm))

    def search(
        self, query: str, *, prefix: bool = True, fuzzy: float = DEFAULT_FUZZY
    ) -> list[tuple[str, float]]:
        """Return ``(passage_id, score)`` pairs sorted by descending score."""
        if not self._lengths:
            return []
        boosts = self.boosts.to_dict()
        total = len(self._lengths)
        averages = {name: self._length_totals[name] / total for name in FIELDS}
        scores: dict[str, float] = {}
        for term in dict.fromkeys(tokenize(query)):
            for matched, weight in self._expand(term, prefix=prefix, fuzzy=fuzzy).items():
                for name, postings in self._postings[matched].items():
                    boost = boosts.get(name, 0.0)
                    if not boost:
                        continue
                    doc_frequency = len(postings)
                    for passage_id, frequency in postings.items():
                        length = self._lengths[passage_id].get(name, 0)
                        scores[passage_id] = scores.get(passage_id, 0.0) + (
                            weight
                            * boost
                            * self._bm25(frequency, doc_frequency, length, averages[name])
                        )
        return sorted(scores.items(), key=lambda item: (-item[1], item[0]))

    def to_dict(self) -> dict[str, Any]:
        return {
            "fields": list(FIELDS),
            "postings": self._postings,
            "lengths": self._lengths,
        }

    @classmethod
    def from_dict(
        cls, raw: dict[str, Any], boosts: FieldBoosts | None = None
    ) -> "InvertedIndex":
        if list(raw.get("fields", [])) != list(FIELDS):
            raise ValueError("Index fields do not match")
        index = cls(boosts)
        index._postings = {
            str(term): {
                str(name): {str(pid): int(freq) for pid, freq in docs.items()}
                for name, docs in fields.items()
            }
            for term, fields in raw["postings"].items()
        }
        index._lengths = {
            str(pid): {str(name): int(count) for name, count in lengths.items()}
            for pid, lengths in raw["lengths"].items()
        }
        for lengths in index._lengths.values():
            for name in FIELDS:
                index._length_totals[name] += lengths.get(name, 0)
        return index
