"""Text normalization helpers for ingestion.

Markdown sources arrive with mixed newline conventions and an optional
YAML front-matter block. Both are handled here, before chunking, so every
downstream line number refers to the original file.
"""

from __future__ import annotations

import re
import unicodedata

FRONTMATTER_RE = re.compile(r"\A---\n.*?\n---(?:\n|\Z)", re.DOTALL)
_DESCRIPTION_RE = re.compile(r"^description:\s*[\"']?(.+?)[\"']?\s*$", re.MULTILINE)


def normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def strip_frontmatter(text: str) -> tuple[str, int]:
    """Remove a leading front-matter block.

    Returns the remaining text and the number of lines removed, which callers
    add back to line numbers computed on the remainder.
    """
    match = FRONTMATTER_RE.match(text)
    if match is None:
        return text, 0
    remainder = text[match.end() :]
    return remainder, text.count("\n") - remainder.count("\n")


def frontmatter_description(text: str) -> str | None:
    match = FRONTMATTER_RE.match(normalize_newlines(text))
    if match is None:
        return None
    found = _DESCRIPTION_RE.search(match.group(0))
    return found.group(1).strip() if found else None


def fold_for_matching(text: str) -> str:
    """NFKC-normalize and lowercase text for lexical matching."""
    return unicodedata.normalize("NFKC", text).lower()
