import json
from pathlib import Path

import pytest

from refsearch import config as config_module
from refsearch.config import FieldBoosts, SearchConfig, load_config, validate_config
from refsearch.errors import ConfigurationError


def _write(path: Path, payload) -> Path:
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_load_config_resolves_relative_to_file(tmp_path: Path) -> None:
    path = _write(
        tmp_path / "refsearch.json",
        {
            "paths": ["docs", "notes"],
            "index": "build/index.json",
            "chunk_max_size": 400,
            "chunk_min_size": 50,
            "boosts": {"title": 3},
        },
    )
    config = load_config(path)
    assert config.corpus_root == tmp_path.resolve()
    assert config.paths == ("docs", "notes")
    assert config.index_path == tmp_path.resolve() / "build" / "index.json"
    assert config.chunk_max_size == 400
    assert config.chunk_min_size == 50
    assert config.boosts.title == 3
    assert config.boosts.body == FieldBoosts().body


def test_load_config_reads_env_path(tmp_path: Path, monkeypatch) -> None:
    path = _write(tmp_path / "custom.json", {"paths": ["guides"]})
    monkeypatch.setenv("REFSEARCH_CONFIG", str(path))
    assert load_config().paths == ("guides",)


def test_load_config_without_file_uses_defaults(monkeypatch) -> None:
    monkeypatch.delenv("REFSEARCH_CONFIG", raising=False)
    config = load_config()
    assert config == SearchConfig()


def test_missing_and_malformed_files(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        load_config(tmp_path / "absent.json")
    broken = tmp_path / "broken.json"
    broken.write_text("{nope")
    with pytest.raises(ConfigurationError) as excinfo:
        load_config(broken)
    assert isinstance(excinfo.value.__cause__, json.JSONDecodeError)


def test_out_of_range_values_rejected(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        load_config(_write(tmp_path / "a.json", {"chunk_max_size": 100, "chunk_min_size": 200}))
    with pytest.raises(ConfigurationError):
        load_config(_write(tmp_path / "b.json", {"chunk_max_size": 0}))
    with pytest.raises(ConfigurationError):
        load_config(_write(tmp_path / "c.json", {"boosts": {"body": 0}}))
    with pytest.raises(ConfigurationError):
        SearchConfig(chunk_max_size=10, chunk_min_size=-1)


def test_validate_config_lists_problems() -> None:
    problems = validate_config(
        {"paths": "docs", "chunk_max_size": "big", "boosts": {"summary": 1}}
    )
    assert '"paths" must be an array of strings' in problems
    assert '"chunk_max_size" must be an integer' in problems
    assert 'unknown boost field "summary"' in problems
    assert validate_config([]) == ["config must be a JSON object"]
    assert validate_config({}) == []


def test_env_helpers_fall_back_on_bad_values(monkeypatch) -> None:
    monkeypatch.setenv("REFSEARCH_TEST_INT", "not-a-number")
    monkeypatch.setenv("REFSEARCH_TEST_LIST", "docs, notes ,,")
    assert config_module._env_int("REFSEARCH_TEST_INT", 7) == 7
    assert config_module._env_float("REFSEARCH_TEST_INT", 1.5) == 1.5
    assert config_module._env_list("REFSEARCH_TEST_LIST", []) == ["docs", "notes"]


@pytest.mark.parametrize("key", ["paths", "boosts", "index", "chunk_max_size"])
def test_null_values_are_configuration_errors(tmp_path: Path, key: str) -> None:
    path = _write(tmp_path / "refsearch.json", {key: None})
    assert validate_config({key: None})
    with pytest.raises(ConfigurationError) as excinfo:
        load_config(path)
    assert f'"{key}"' in str(excinfo.value)
