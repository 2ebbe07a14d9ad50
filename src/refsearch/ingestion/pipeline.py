"""Corpus loading for a resolved configuration."""

from __future__ import annotations

from refsearch.config import SearchConfig
from refsearch.ingestion.loaders import collect_files, load_documents
from refsearch.models import SourceDocument


def load_corpus(config: SearchConfig) -> tuple[list[SourceDocument], dict[str, str]]:
    files = collect_files(config.corpus_root, config.paths)
    return load_documents(config.corpus_root, files)
