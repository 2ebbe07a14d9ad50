"""Script to query the corpus index."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
import sys
import time

try:
    from refsearch.config import DEFAULT_MAX_RESULTS, load_config
    from refsearch.errors import RefsearchError
    from refsearch.retrieval import load_index, search_all
    from refsearch.telemetry import configure_logging, log_event
except ModuleNotFoundError:
    repo_root = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(repo_root / "src"))
    from refsearch.config import (  # type: ignore[reportMissingImports]
        DEFAULT_MAX_RESULTS,
        load_config,
    )
    from refsearch.errors import RefsearchError  # type: ignore[reportMissingImports]
    from refsearch.retrieval import (  # type: ignore[reportMissingImports]
        load_index,
        search_all,
    )
    from refsearch.telemetry import (  # type: ignore[reportMissingImports]
        configure_logging,
        log_event,
    )


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Search the indexed markdown corpus")
    parser.add_argument("query", type=str, help="Query string")
    parser.add_argument(
        "-n",
        "--max-results",
        type=int,
        default=DEFAULT_MAX_RESULTS,
        help="Number of passages to return",
    )
    parser.add_argument(
        "-f", "--file", type=str, default=None, help="Glob filter on file paths"
    )
    parser.add_argument(
        "--baseline",
        action="store_true",
        help="Return raw retrieval order without reranking",
    )
    parser.add_argument("--json", action="store_true", help="Print results as JSON")
    parser.add_argument("--config", type=Path, default=None, help="JSON config file")
    parser.add_argument(
        "--extra-index",
        action="append",
        default=[],
        metavar="LABEL=PATH",
        help="Also search another index; results are prefixed with LABEL",
    )
    return parser.parse_args()


def _parse_extra(value: str) -> tuple[str, Path]:
    label, sep, path = value.partition("=")
    if not sep or not path:
        raise SystemExit(f"--extra-index expects LABEL=PATH, got {value!r}")
    return label, Path(path).expanduser()


def main() -> None:
    args = parse_args()
    if args.max_results < 1:
        raise SystemExit("--max-results must be at least 1")
    logger = configure_logging()
    start = time.perf_counter()
    try:
        config = load_config(args.config)
        sources = [load_index(config.index_path, config)]
        for value in args.extra_index:
            label, path = _parse_extra(value)
            sources.append(load_index(path, config, label=label))
        results = search_all(
            sources,
            args.query,
            max_results=args.max_results,
            file_filter=args.file,
            rerank=not args.baseline,
        )
    except RefsearchError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    log_event(
        logger,
        "query",
        query=args.query,
        mode="baseline" if args.baseline else "reranked",
        max_results=args.max_results,
        file_filter=args.file,
        sources=len(sources),
        hits=len(results),
        latency_ms=(time.perf_counter() - start) * 1000,
    )

    if args.json:
        print(json.dumps([result.to_dict() for result in results], indent=2))
        return
    if not results:
        print("No results found.")
        return
    for idx, result in enumerate(results, start=1):
        start_line, end_line = result.line_range
        print(
            f"#{idx} {result.file}:{start_line}-{end_line} "
            f"score={result.score:.4f} size={result.size_estimate}"
        )
        print(f"   {' > '.join(result.heading_path)}")
        print(result.body[:200].strip())


if __name__ == "__main__":
    main()
