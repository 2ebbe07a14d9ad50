import pytest

from refsearch.models import Passage, SearchHit, SearchResult
from refsearch.rerank import (
    build_candidates,
    build_query_signals,
    jaccard,
    pool_size,
    rerank_hits,
)
from refsearch.retrieval import LoadedIndex, search, search_baseline

SEED_QUERY = (
    "src/content.config.ts schema tags z.array(z.string()) getCollection tags.includes"
)
SEED_FACETS = ["src/content.config.ts", "z.array(z.string())", "getcollection", "tags.includes"]


def _passage(passage_id: str, file: str, title: str, headings: str, body: str, size: int) -> Passage:
    return Passage(
        passage_id=passage_id,
        file=file,
        title=title,
        heading_path=headings,
        body=body,
        start_line=1,
        end_line=10,
        size_estimate=size,
    )


def seed_hits() -> list[SearchHit]:
    passages = [
        _passage(
            "schema-1",
            "docs/schema-a.mdx",
            "Schema setup",
            "Content Collections > Schema",
            "In src/content.config.ts define a schema for tags. "
            "Use z.array(z.string()) for tags in the schema. "
            "The schema in src/content.config.ts can include title and tags. "
            "z.array(z.string()) is used again in this schema example.",
            330,
        ),
        _passage(
            "schema-2",
            "docs/schema-b.mdx",
            "Schema defaults",
            "Content Collections > Schema Defaults",
            "Another src/content.config.ts schema example for tags. "
            "The tags field is z.array(z.string()) with defaults. "
            "This section focuses on schema definitions and tags.",
            310,
        ),
        _passage(
            "schema-3",
            "docs/schema-c.mdx",
            "Schema deep dive",
            "Content Collections > Schema Deep Dive",
            "Schema guidance in src/content.config.ts for tags. "
            "Use z.array(z.string()) and keep schema strict. "
            "More schema discussion for tags in frontmatter.",
            295,
        ),
        _passage(
            "filter-1",
            "docs/filtering.mdx",
            "Tag filtering",
            "Querying > Filtering",
            "Use getCollection('blog', ({ data }) => data.tags.includes(tag)). "
            "This shows filtering by tags at query time.",
            95,
        ),
        _passage(
            "snippet-1",
            "docs/snippet.mdx",
            "Minimal snippet",
            "Recipe > Tags Page",
            "Minimal implementation snippet with getCollection and tags.includes(tag). "
            "Include this in src/pages/blog/tags/[tag].astro.",
            110,
        ),
    ]
    scores = [10.0, 9.5, 9.0, 4.0, 3.5]
    return [SearchHit(passage=p, score=s) for p, s in zip(passages, scores)]


def _tokens_to_full_coverage(hits: list[SearchHit], facets: list[str]) -> int | None:
    covered: set[str] = set()
    tokens = 0
    for hit in hits:
        tokens += hit.passage.size_estimate
        haystack = f"{hit.passage.file}\n{hit.passage.heading_path}\n{hit.passage.body}".lower()
        covered.update(facet for facet in facets if facet in haystack)
        if len(covered) == len(facets):
            return tokens
    return None


def test_query_signals_extract_facets_and_symbols() -> None:
    signals = build_query_signals(SEED_QUERY)
    assert signals.facets == (
        "src/content.config.ts",
        "schema",
        "tags",
        "z.array(z.string())",
        "getcollection",
        "tags.includes",
    )
    assert signals.symbols == (
        "src/content.config.ts",
        "z.array(z.string())",
        "getcollection",
        "tags.includes",
    )


def test_query_signals_drop_stop_words_and_short_tokens() -> None:
    signals = build_query_signals("what is the id of a tag")
    assert signals.facets == ("tag",)
    assert signals.symbols == ()
    assert build_query_signals("the a of").empty


def test_signal_caps() -> None:
    words = " ".join(f"word{i:02d}" for i in range(30))
    assert len(build_query_signals(words).facets) == 16
    symbols = " ".join(f"mod{i:02d}.attr" for i in range(30))
    assert len(build_query_signals(symbols).symbols) == 12


def test_pool_size() -> None:
    assert pool_size(1) == 20
    assert pool_size(5) == 30


def test_jaccard() -> None:
    assert jaccard(frozenset({"a", "b"}), frozenset({"b", "c"})) == pytest.approx(1 / 3)
    assert jaccard(frozenset(), frozenset({"a"})) == 0.0


def test_static_relevance_weights() -> None:
    hits = seed_hits()
    signals = build_query_signals(SEED_QUERY)
    candidates = build_candidates(hits, signals)
    top = candidates[0]
    assert top.matched_facets == {"src/content.config.ts", "schema", "tags", "z.array(z.string())"}
    assert top.matched_symbols == {"src/content.config.ts", "z.array(z.string())"}
    expected = 0.66 * 1.0 + 0.20 * (4 / 6) + 0.14 * (2 / 4) - 0.08 * (330 / 500)
    assert top.static_relevance == pytest.approx(expected)


def test_low_scores_are_not_stretched() -> None:
    hits = [SearchHit(passage=h.passage, score=h.score / 100) for h in seed_hits()]
    candidates = build_candidates(hits, build_query_signals("schema"))
    # max raw score 0.1 is normalized against 1, not against itself
    assert candidates[0].static_relevance < 0.66


def test_stop_word_query_keeps_baseline_order() -> None:
    hits = seed_hits()
    reranked = rerank_hits(hits, "the a of", 3)
    assert reranked == hits[:3]


def test_seed_scenario_covers_every_facet_sooner() -> None:
    hits = seed_hits()
    baseline = hits[:4]
    reranked = rerank_hits(hits, SEED_QUERY, 4)

    assert len(reranked) == 4
    assert [h.passage.passage_id for h in reranked] == [
        "schema-1",
        "filter-1",
        "schema-2",
        "schema-3",
    ]
    baseline_tokens = _tokens_to_full_coverage(baseline, SEED_FACETS)
    reranked_tokens = _tokens_to_full_coverage(reranked, SEED_FACETS)
    assert baseline_tokens == 1030
    assert reranked_tokens == 425
    assert reranked_tokens < baseline_tokens


def test_output_scores_are_selection_time_scores() -> None:
    reranked = rerank_hits(seed_hits(), SEED_QUERY, 2)
    first = 0.66 + 0.20 * (4 / 6) + 0.14 * 0.5 - 0.08 * 0.66 + 0.5 * (4 / 6) + 0.35 * 0.5 + 0.18
    assert reranked[0].score == pytest.approx(first)
    assert reranked[0].score != seed_hits()[0].score


def test_rerank_rejects_non_positive_max_results() -> None:
    with pytest.raises(ValueError):
        rerank_hits(seed_hits(), SEED_QUERY, 0)


def test_single_hit_is_returned_unchanged() -> None:
    hits = seed_hits()[:1]
    assert rerank_hits(hits, SEED_QUERY, 3) == hits


def _facets_in(result: SearchResult) -> set[str]:
    haystack = f"{result.file}\n{' > '.join(result.heading_path)}\n{result.body}".lower()
    return {facet for facet in SEED_FACETS if facet in haystack}


def _result_tokens_to_full_coverage(results: list[SearchResult]) -> int | None:
    covered: set[str] = set()
    tokens = 0
    for result in results:
        tokens += result.size_estimate
        covered |= _facets_in(result)
        if len(covered) == len(SEED_FACETS):
            return tokens
    return None


def test_indexed_seed_scenario_reaches_every_facet_before_repeating() -> None:
    loaded = LoadedIndex.from_passages([hit.passage for hit in seed_hits()])
    baseline = search_baseline(loaded, SEED_QUERY, max_results=4)
    reranked = search(loaded, SEED_QUERY, max_results=4)

    assert len(reranked) == 4
    covered: set[str] = set()
    for result in reranked:
        if covered == set(SEED_FACETS):
            break
        new_facets = _facets_in(result) - covered
        assert new_facets, f"{result.file} repeats facets before all are covered"
        covered |= new_facets
    assert covered == set(SEED_FACETS)

    reranked_tokens = _result_tokens_to_full_coverage(reranked)
    baseline_tokens = _result_tokens_to_full_coverage(baseline)
    assert reranked_tokens is not None
    assert baseline_tokens is None or reranked_tokens < baseline_tokens
