"""Script to build or incrementally refresh the corpus index."""

from __future__ import annotations

import argparse
from pathlib import Path
import sys

try:
    from refsearch.config import load_config
    from refsearch.errors import RefsearchError
    from refsearch.indexing import build_and_persist_index
    from refsearch.telemetry import configure_logging
except ModuleNotFoundError:
    repo_root = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(repo_root / "src"))
    from refsearch.config import load_config  # type: ignore[reportMissingImports]
    from refsearch.errors import RefsearchError  # type: ignore[reportMissingImports]
    from refsearch.indexing import build_and_persist_index  # type: ignore[reportMissingImports]
    from refsearch.telemetry import configure_logging  # type: ignore[reportMissingImports]


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Index the markdown corpus")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="JSON config file (default: $REFSEARCH_CONFIG or built-in defaults)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Ignore the previous snapshot and rebuild every file",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    configure_logging()
    try:
        config = load_config(args.config)
        summary = build_and_persist_index(config, force=args.force)
    except RefsearchError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    if summary.files_indexed == 0:
        print(f"Warning: no markdown files found under {list(config.paths)}.")
    print("Index summary:", summary.to_dict())
    for path, reason in sorted(summary.skip_reasons.items()):
        print(f"Skipped {path}: {reason}")


if __name__ == "__main__":
    main()
