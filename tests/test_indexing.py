import json
from pathlib import Path

import pytest

from refsearch.config import FieldBoosts, SearchConfig
from refsearch.errors import SnapshotCorruptError
from refsearch.indexing import build_and_persist_index, build_snapshot, hash_config, hash_content
from refsearch.models import SourceDocument
from refsearch.retrieval import load_index, search_baseline
from refsearch.storage import SNAPSHOT_VERSION, read_snapshot

ALPHA = "# Alpha\n\nThe alpha service handles login tokens.\n\n## Setup\n\nInstall alpha first.\n"
BETA = "# Beta\n\nBeta covers rate limits for the public gateway.\n"


def _config(root: Path, **overrides) -> SearchConfig:
    values = {
        "corpus_root": root,
        "paths": ("docs",),
        "index_path": root / ".refsearch-index.json",
        "manifest_path": root / ".refsearch-manifest.json",
        "chunk_max_size": 800,
        "chunk_min_size": 0,
    }
    values.update(overrides)
    return SearchConfig(**values)


def _write_corpus(root: Path) -> None:
    docs = root / "docs"
    docs.mkdir(parents=True, exist_ok=True)
    (docs / "alpha.md").write_text(ALPHA, encoding="utf-8")
    (docs / "beta.md").write_text(BETA, encoding="utf-8")


def test_hashes_are_stable() -> None:
    assert hash_content("abc") == hash_content("abc")
    assert hash_content("abc") != hash_content("abd")
    config = SearchConfig(chunk_max_size=800, chunk_min_size=100)
    assert hash_config(config) == hash_config(SearchConfig(chunk_max_size=800, chunk_min_size=100))
    assert hash_config(config) != hash_config(
        SearchConfig(chunk_max_size=800, chunk_min_size=100, boosts=FieldBoosts(title=3.0))
    )


def test_first_build_is_full(tmp_path: Path) -> None:
    _write_corpus(tmp_path)
    summary = build_and_persist_index(_config(tmp_path))
    assert summary.mode == "full"
    assert summary.files_indexed == 2
    assert summary.passages_created == 3
    assert summary.snapshot_bytes > 0
    assert summary.unchanged is None
    snapshot = read_snapshot(tmp_path / ".refsearch-index.json")
    assert [p.file for p in snapshot.passages] == ["docs/alpha.md", "docs/alpha.md", "docs/beta.md"]
    assert set(snapshot.file_hashes) == {"docs/alpha.md", "docs/beta.md"}


def test_unchanged_corpus_carries_passages_over(tmp_path: Path) -> None:
    _write_corpus(tmp_path)
    config = _config(tmp_path)
    build_and_persist_index(config)
    first = read_snapshot(config.index_path)

    summary = build_and_persist_index(config)
    second = read_snapshot(config.index_path)

    assert summary.mode == "incremental"
    assert (summary.unchanged, summary.changed, summary.added, summary.removed) == (2, 0, 0, 0)
    assert summary.passages_created == 0
    assert second.passages == first.passages
    assert second.index == first.index


def test_incremental_classifies_changes(tmp_path: Path) -> None:
    _write_corpus(tmp_path)
    config = _config(tmp_path)
    build_and_persist_index(config)

    docs = tmp_path / "docs"
    (docs / "alpha.md").write_text("# Alpha\n\nAlpha now documents refresh tokens.\n")
    (docs / "beta.md").unlink()
    (docs / "gamma.md").write_text("# Gamma\n\nGamma explains caching headers.\n")

    summary = build_and_persist_index(config)
    assert summary.mode == "incremental"
    assert (summary.unchanged, summary.changed, summary.added, summary.removed) == (0, 1, 1, 1)
    assert summary.to_dict()["removed"] == 1

    loaded = load_index(config.index_path, config)
    assert {p.file for p in loaded.passages} == {"docs/alpha.md", "docs/gamma.md"}
    assert search_baseline(loaded, "gateway", max_results=5) == []
    assert search_baseline(loaded, "refresh", max_results=5)[0].file == "docs/alpha.md"
    assert search_baseline(loaded, "caching", max_results=5)[0].file == "docs/gamma.md"


def test_config_change_forces_full_rebuild(tmp_path: Path) -> None:
    _write_corpus(tmp_path)
    build_and_persist_index(_config(tmp_path))
    summary = build_and_persist_index(_config(tmp_path, chunk_max_size=400))
    assert summary.mode == "full"


def test_force_flag_rebuilds_everything(tmp_path: Path) -> None:
    _write_corpus(tmp_path)
    config = _config(tmp_path)
    build_and_persist_index(config)
    assert build_and_persist_index(config, force=True).mode == "full"


@pytest.mark.parametrize("damage", ["corrupt", "version"])
def test_broken_snapshot_falls_back_to_full_rebuild(tmp_path: Path, damage: str) -> None:
    _write_corpus(tmp_path)
    config = _config(tmp_path)
    build_and_persist_index(config)
    if damage == "corrupt":
        config.index_path.write_text("{truncated")
    else:
        raw = json.loads(config.index_path.read_text())
        raw["version"] = SNAPSHOT_VERSION + 1
        config.index_path.write_text(json.dumps(raw))

    summary = build_and_persist_index(config)
    assert summary.mode == "full"
    assert read_snapshot(config.index_path).version == SNAPSHOT_VERSION


def test_unrestorable_index_payload_falls_back(tmp_path: Path) -> None:
    _write_corpus(tmp_path)
    config = _config(tmp_path)
    build_and_persist_index(config)
    raw = json.loads(config.index_path.read_text())
    raw["index"] = {"fields": ["body"]}
    config.index_path.write_text(json.dumps(raw))

    assert build_and_persist_index(config).mode == "full"


def test_build_snapshot_raises_on_unrestorable_previous(tmp_path: Path) -> None:
    config = _config(tmp_path)
    documents = [SourceDocument(path="docs/beta.md", text=BETA)]
    snapshot, _ = build_snapshot(documents, config)
    snapshot.index = {"fields": ["title", "heading_path", "body"]}
    with pytest.raises(SnapshotCorruptError):
        build_snapshot(documents, config, previous=snapshot)


def test_unreadable_file_is_skipped(tmp_path: Path) -> None:
    _write_corpus(tmp_path)
    (tmp_path / "docs" / "broken.md").write_bytes(b"\xff\xfe\x00bad")
    summary = build_and_persist_index(_config(tmp_path))
    assert summary.files_indexed == 2
    assert summary.files_skipped == 1
    assert summary.skip_reasons == {"docs/broken.md": "decode_error"}
