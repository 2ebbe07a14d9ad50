"""Configuration for refsearch (env-overridable)."""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from refsearch.errors import ConfigurationError


def _env_path(key: str, default: Path) -> Path:
    return Path(os.getenv(key, str(default))).expanduser()


def _env_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, default))
    except (TypeError, ValueError):
        return default


def _env_float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, default))
    except (TypeError, ValueError):
        return default


def _env_list(key: str, default: list[str]) -> list[str]:
    raw = os.getenv(key)
    if raw is None:
        return list(default)
    return [part.strip() for part in raw.split(",") if part.strip()]


CORPUS_ROOT = _env_path("REFSEARCH_CORPUS_ROOT", Path.cwd())
CORPUS_PATHS = _env_list("REFSEARCH_PATHS", ["docs"])
INDEX_PATH = _env_path("REFSEARCH_INDEX_PATH", CORPUS_ROOT / ".refsearch-index.json")
MANIFEST_PATH = _env_path(
    "REFSEARCH_MANIFEST_PATH", CORPUS_ROOT / ".refsearch-manifest.json"
)

CHUNK_MAX_SIZE = _env_int("REFSEARCH_CHUNK_MAX_SIZE", 800)
CHUNK_MIN_SIZE = _env_int("REFSEARCH_CHUNK_MIN_SIZE", 100)
DEFAULT_MAX_RESULTS = _env_int("REFSEARCH_MAX_RESULTS", 5)

BOOST_TITLE = _env_float("REFSEARCH_BOOST_TITLE", 2.0)
BOOST_HEADINGS = _env_float("REFSEARCH_BOOST_HEADINGS", 1.5)
BOOST_BODY = _env_float("REFSEARCH_BOOST_BODY", 1.0)


@dataclass(frozen=True)
class FieldBoosts:
    title: float = BOOST_TITLE
    heading_path: float = BOOST_HEADINGS
    body: float = BOOST_BODY

    def to_dict(self) -> dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class SearchConfig:
    """Resolved configuration threaded through indexing and querying."""

    corpus_root: Path = CORPUS_ROOT
    paths: tuple[str, ...] = tuple(CORPUS_PATHS)
    index_path: Path = INDEX_PATH
    manifest_path: Path = MANIFEST_PATH
    chunk_max_size: int = CHUNK_MAX_SIZE
    chunk_min_size: int = CHUNK_MIN_SIZE
    boosts: FieldBoosts = field(default_factory=FieldBoosts)

    def __post_init__(self) -> None:
        problems = _check_bounds(self.chunk_max_size, self.chunk_min_size)
        for name, value in self.boosts.to_dict().items():
            if value <= 0:
                problems.append(f'boost "{name}" must be positive')
        if problems:
            raise ConfigurationError(f"Invalid configuration: {'; '.join(problems)}")


def _check_bounds(max_size: int, min_size: int) -> list[str]:
    problems: list[str] = []
    if max_size <= 0:
        problems.append('"chunk_max_size" must be positive')
    if min_size < 0:
        problems.append('"chunk_min_size" must be non-negative')
    if max_size > 0 and min_size > max_size:
        problems.append('"chunk_min_size" must not exceed "chunk_max_size"')
    return problems


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_config(raw: Any) -> list[str]:
    """Return a list of problems found in a raw config mapping."""
    if not isinstance(raw, dict):
        return ["config must be a JSON object"]
    problems: list[str] = []
    paths = raw.get("paths")
    if "paths" in raw and (
        not isinstance(paths, list) or not all(isinstance(p, str) for p in paths)
    ):
        problems.append('"paths" must be an array of strings')
    for key in ("index", "manifest"):
        if key in raw and not isinstance(raw[key], str):
            problems.append(f'"{key}" must be a string')
    for key in ("chunk_max_size", "chunk_min_size"):
        if key in raw and (not isinstance(raw[key], int) or isinstance(raw[key], bool)):
            problems.append(f'"{key}" must be an integer')
    boosts = raw.get("boosts")
    if "boosts" in raw:
        if not isinstance(boosts, dict):
            problems.append('"boosts" must be an object')
        else:
            allowed = set(FieldBoosts.__dataclass_fields__)
            for name, value in boosts.items():
                if name not in allowed:
                    problems.append(f'unknown boost field "{name}"')
                elif not _is_number(value) or value <= 0:
                    problems.append(f'boost "{name}" must be a positive number')
    return problems


def load_config(path: Path | None = None) -> SearchConfig:
    """Resolve a SearchConfig from defaults and an optional JSON file."""
    if path is None:
        configured = os.getenv("REFSEARCH_CONFIG")
        path = Path(configured).expanduser() if configured else None
    if path is None:
        return SearchConfig()
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Config file {path} is not valid JSON: {exc}") from exc
    problems = validate_config(raw)
    if problems:
        raise ConfigurationError(f"Invalid {path.name}: {'; '.join(problems)}")

    base_dir = path.resolve().parent
    boosts = FieldBoosts(**{**FieldBoosts().to_dict(), **raw.get("boosts", {})})
    return SearchConfig(
        corpus_root=base_dir,
        paths=tuple(raw.get("paths", CORPUS_PATHS)),
        index_path=base_dir / raw.get("index", INDEX_PATH.name),
        manifest_path=base_dir / raw.get("manifest", MANIFEST_PATH.name),
        chunk_max_size=raw.get("chunk_max_size", CHUNK_MAX_SIZE),
        chunk_min_size=raw.get("chunk_min_size", CHUNK_MIN_SIZE),
        boosts=boosts,
    )
