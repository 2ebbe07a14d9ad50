"""Structure-aware markdown chunking.

Passages are produced in three passes over a document:

1. Section extraction: top-level h1-h3 headings are split points. A heading
   stack of ``(text, depth)`` pairs tracks the breadcrumb; h4+ headings stay
   in the body.
2. Small-section merge: a section below ``min_size`` is folded into the
   previous section, but only when both sit at the same heading depth. The
   absorbed heading is kept as an inline markdown heading line.
3. Oversized-section split: sections above ``max_size`` are re-packed at
   blank-line paragraph boundaries. A single paragraph is never cut.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, replace
from pathlib import PurePosixPath

from markdown_it import MarkdownIt
from markdown_it.token import Token

from refsearch.ingestion.normalization import normalize_newlines, strip_frontmatter
from refsearch.models import HEADING_SEPARATOR, Passage

DEFAULT_MAX_SIZE = 800
DEFAULT_MIN_SIZE = 100
SPLIT_DEPTH = 3

_PARAGRAPH_BREAK_RE = re.compile(r"\n(?:[ \t]*\n)+")
_INLINE_TEXT_TYPES = {"text", "code_inline", "html_inline"}

_PARSER = MarkdownIt("commonmark").enable(["table", "strikethrough"])


@dataclass
class _Section:
    headings: list[str]
    depth: int
    body: str
    start_line: int
    end_line: int
    # Source line holding the first line of ``body``.
    body_start: int


def estimate_size(text: str) -> int:
    """Token proxy: characters / 4, rounded up."""
    return math.ceil(len(text) / 4)


def file_title(file_path: str) -> str:
    path = PurePosixPath(file_path)
    return path.stem or path.name or file_path


def chunk_markdown(
    text: str,
    file_path: str,
    *,
    max_size: int = DEFAULT_MAX_SIZE,
    min_size: int = DEFAULT_MIN_SIZE,
) -> list[Passage]:
    if max_size <= 0:
        raise ValueError("max_size must be positive")
    if min_size < 0:
        raise ValueError("min_size must be non-negative")
    if not text.strip():
        return []

    stripped, line_offset = strip_frontmatter(normalize_newlines(text))
    if not stripped.strip():
        return []

    lines = stripped.split("\n")
    title = file_title(file_path)
    sections = _extract_sections(lines, line_offset, title)
    if sections:
        sections = _split_sections(_merge_sections(sections, min_size), max_size)
    else:
        # No split-point headings: the whole file is one passage.
        sections = [
            _Section(
                headings=[title],
                depth=0,
                body=stripped.strip(),
                start_line=line_offset + 1,
                end_line=line_offset + _last_content_line(lines, 0, len(lines)) + 1,
                body_start=line_offset + _first_content_line(lines, 0, len(lines)) + 1,
            )
        ]

    passages: list[Passage] = []
    for section in sections:
        body = section.body.strip()
        if not body:
            continue
        passages.append(
            Passage(
                passage_id=f"{file_path}:{len(passages)}",
                file=file_path,
                title=(section.headings[-1] if section.headings else "") or title,
                heading_path=HEADING_SEPARATOR.join(section.headings),
                body=body,
                start_line=section.start_line,
                end_line=section.end_line,
                size_estimate=estimate_size(body),
            )
        )
    return passages


def _inline_text(token: Token) -> str:
    parts: list[str] = []
    for child in token.children or []:
        if child.type in _INLINE_TEXT_TYPES:
            parts.append(child.content)
        elif child.type in {"softbreak", "hardbreak"}:
            parts.append(" ")
    return "".join(parts).strip()


def _split_headings(source: str) -> list[tuple[int, int, int, str]]:
    """Top-level h1-h3 headings as (start, end, depth, text), 0-based end-exclusive lines."""
    tokens = _PARSER.parse(source)
    headings: list[tuple[int, int, int, str]] = []
    for position, token in enumerate(tokens):
        if token.type != "heading_open" or token.level != 0 or token.map is None:
            continue
        depth = int(token.tag[1:])
        if depth > SPLIT_DEPTH:
            continue
        start, end = token.map
        headings.append((start, end, depth, _inline_text(tokens[position + 1])))
    return headings


def _first_content_line(lines: list[str], start: int, stop: int) -> int:
    for index in range(start, stop):
        if lines[index].strip():
            return index
    return start


def _last_content_line(lines: list[str], start: int, stop: int) -> int:
    for index in range(stop - 1, start - 1, -1):
        if lines[index].strip():
            return index
    return start


def _extract_sections(
    lines: list[str], line_offset: int, title: str
) -> list[_Section]:
    headings = _split_headings("\n".join(lines))
    if not headings:
        return []

    sections: list[_Section] = []
    first_heading = headings[0][0]
    preamble = "\n".join(lines[:first_heading]).strip()
    if preamble:
        sections.append(
            _Section(
                headings=[title],
                depth=0,
                body=preamble,
                start_line=line_offset + 1,
                end_line=line_offset + _last_content_line(lines, 0, first_heading) + 1,
                body_start=line_offset + _first_content_line(lines, 0, first_heading) + 1,
            )
        )

    stack: list[tuple[str, int]] = []
    for position, (start, end, depth, text) in enumerate(headings):
        stop = headings[position + 1][0] if position + 1 < len(headings) else len(lines)
        while stack and stack[-1][1] >= depth:
            stack.pop()
        stack.append((text, depth))
        sections.append(
            _Section(
                headings=[heading for heading, _ in stack],
                depth=depth,
                body="\n".join(lines[end:stop]).strip(),
                start_line=line_offset + start + 1,
                end_line=line_offset + _last_content_line(lines, start, stop) + 1,
                body_start=line_offset + _first_content_line(lines, end, stop) + 1,
            )
        )
    return sections


def _heading_line(section: _Section) -> str:
    return f"{'#' * (section.depth or 1)} {section.headings[-1]}"


def _merge_sections(sections: list[_Section], min_size: int) -> list[_Section]:
    if len(sections) <= 1:
        return sections

    merged = [replace(sections[0])]
    for current in sections[1:]:
        previous = merged[-1]
        if estimate_size(current.body) < min_size and previous.depth == current.depth:
            heading = _heading_line(current) if current.headings else ""
            addition = "\n\n".join(part for part in (heading, current.body) if part)
            previous.body = f"{previous.body}\n\n{addition}" if previous.body else addition
            previous.end_line = current.end_line
        else:
            merged.append(replace(current))
    return merged


def _paragraphs(body: str) -> list[tuple[str, int]]:
    """Blank-line-delimited blocks with their line offset inside ``body``."""
    blocks: list[tuple[str, int]] = []
    cursor = 0
    for match in _PARAGRAPH_BREAK_RE.finditer(body):
        blocks.append((body[cursor : match.start()], body.count("\n", 0, cursor)))
        cursor = match.end()
    blocks.append((body[cursor:], body.count("\n", 0, cursor)))
    return [(text, offset) for text, offset in blocks if text.strip()]


def _split_sections(sections: list[_Section], max_size: int) -> list[_Section]:
    result: list[_Section] = []
    for section in sections:
        if estimate_size(section.body) <= max_size:
            result.append(section)
        else:
            result.extend(_split_section(section, max_size))
    return result


def _split_section(section: _Section, max_size: int) -> list[_Section]:
    # (text, first line offset, last line offset) per flushed piece
    pieces: list[tuple[str, int, int]] = []
    buffer = ""
    buffer_first = buffer_last = 0
    for text, offset in _paragraphs(section.body):
        candidate = f"{buffer}\n\n{text}" if buffer else text
        if buffer and estimate_size(candidate) > max_size:
            pieces.append((buffer, buffer_first, buffer_last))
            buffer, buffer_first = text, offset
        else:
            if not buffer:
                buffer_first = offset
            buffer = candidate
        buffer_last = offset + text.count("\n")
    if buffer.strip():
        pieces.append((buffer, buffer_first, buffer_last))

    split: list[_Section] = []
    for position, (text, first, last) in enumerate(pieces):
        is_first = position == 0
        is_last = position == len(pieces) - 1
        start = section.start_line if is_first else section.body_start + first
        end = section.end_line if is_last else section.body_start + last
        start = min(start, section.end_line)
        split.append(
            replace(
                section,
                headings=list(section.headings),
                body=text,
                start_line=start,
                end_line=min(max(end, start), section.end_line),
            )
        )
    return split
