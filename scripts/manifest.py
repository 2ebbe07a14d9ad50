"""Script to write the corpus manifest."""

from __future__ import annotations

import argparse
from pathlib import Path
import sys

try:
    from refsearch.config import load_config
    from refsearch.errors import RefsearchError
    from refsearch.manifest import build_and_persist_manifest
    from refsearch.telemetry import configure_logging
except ModuleNotFoundError:
    repo_root = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(repo_root / "src"))
    from refsearch.config import load_config  # type: ignore[reportMissingImports]
    from refsearch.errors import RefsearchError  # type: ignore[reportMissingImports]
    from refsearch.manifest import (  # type: ignore[reportMissingImports]
        build_and_persist_manifest,
    )
    from refsearch.telemetry import configure_logging  # type: ignore[reportMissingImports]


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Write a catalog of the corpus files")
    parser.add_argument("--config", type=Path, default=None, help="JSON config file")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    configure_logging()
    try:
        config = load_config(args.config)
        manifest = build_and_persist_manifest(config)
    except RefsearchError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc
    print(f"Manifest written to {config.manifest_path} ({manifest.files} files)")


if __name__ == "__main__":
    main()
