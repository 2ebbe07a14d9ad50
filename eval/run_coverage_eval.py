"""Run facet-coverage evaluation for baseline and reranked retrieval."""

from __future__ import annotations

import argparse
import json
import statistics
import subprocess
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

from refsearch.config import DEFAULT_MAX_RESULTS, load_config
from refsearch.ingestion.chunking import estimate_size
from refsearch.models import SearchResult
from refsearch.retrieval import LoadedIndex, load_index, search_all
from refsearch.telemetry import configure_logging, log_event


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run facet-coverage evaluation")
    parser.add_argument(
        "--suite",
        type=Path,
        default=Path("eval/coverage_suite.json"),
        help="Path to the eval suite (JSON)",
    )
    parser.add_argument("--config", type=Path, default=None, help="JSON config file")
    parser.add_argument(
        "--max-results",
        type=int,
        default=None,
        help="Override the suite's default result count",
    )
    parser.add_argument(
        "--report-path",
        type=Path,
        default=Path("eval/reports/latest.json"),
        help="Path to write eval report artifact",
    )
    parser.add_argument(
        "--history-dir",
        type=Path,
        default=Path("eval/reports/history"),
        help="Directory for timestamped report history",
    )
    return parser.parse_args()


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _normalize_case(raw: Any, position: int, source: Path) -> dict[str, Any]:
    prefix = f"Invalid eval suite at {source}: case {position}"
    if not isinstance(raw, dict):
        raise ValueError(f"{prefix} must be an object.")
    query = raw.get("query")
    if not isinstance(query, str) or not query.strip():
        raise ValueError(f'{prefix} is missing a non-empty "query".')
    facets = raw.get("facets")
    if (
        not isinstance(facets, list)
        or not facets
        or not all(isinstance(f, str) and f.strip() for f in facets)
    ):
        raise ValueError(f'{prefix} requires a non-empty string array in "facets".')
    if "max_results" in raw and not _is_positive_int(raw["max_results"]):
        raise ValueError(f'{prefix} has invalid "max_results".')
    case_id = raw.get("id")
    return {
        "id": case_id if isinstance(case_id, str) and case_id.strip() else f"case-{position}",
        "query": query,
        "facets": [facet.lower() for facet in facets],
        "max_results": raw.get("max_results"),
    }


def load_suite(path: Path) -> dict[str, Any]:
    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"Invalid eval suite at {path}: expected a JSON object.")
    cases = raw.get("cases")
    if not isinstance(cases, list) or not cases:
        raise ValueError(f'Invalid eval suite at {path}: "cases" must be a non-empty array.')
    if "max_results" in raw and not _is_positive_int(raw["max_results"]):
        raise ValueError(
            f'Invalid eval suite at {path}: "max_results" must be a positive integer.'
        )
    return {
        "name": raw.get("name") if isinstance(raw.get("name"), str) else None,
        "description": (
            raw.get("description") if isinstance(raw.get("description"), str) else None
        ),
        "max_results": raw.get("max_results"),
        "cases": [
            _normalize_case(item, position, path)
            for position, item in enumerate(cases, start=1)
        ],
    }


def score_ranking(results: Sequence[SearchResult], facets: list[str]) -> dict[str, Any]:
    covered: set[str] = set()
    tokens_running = 0
    relevant = 0
    rank_first = rank_full = tokens_first = tokens_full = None
    for rank, result in enumerate(results, start=1):
        tokens_running += result.size_estimate or estimate_size(result.body)
        haystack = f"{result.file}\n{' '.join(result.heading_path)}\n{result.body}".lower()
        matched = [facet for facet in facets if facet in haystack]
        covered.update(matched)
        if matched:
            relevant += 1
            if rank_first is None:
                rank_first, tokens_first = rank, tokens_running
        if rank_full is None and len(covered) == len(facets):
            rank_full, tokens_full = rank, tokens_running
    return {
        "full_coverage": len(covered) == len(facets),
        "coverage_ratio": len(covered) / len(facets) if facets else 0.0,
        "covered_facets": sorted(covered),
        "rank_to_first_facet": rank_first,
        "rank_to_full_coverage": rank_full,
        "tokens_to_first_facet": tokens_first,
        "tokens_to_full_coverage": tokens_full,
        "tokens_inspected": tokens_running,
        "relevant_results": relevant,
    }


def _or_inf(value: float | int | None) -> float:
    return float("inf") if value is None else float(value)


def compare_rankings(baseline: dict[str, Any], reranked: dict[str, Any]) -> str:
    """Verdict for the reranked list: coverage first, then token cost."""
    if reranked["coverage_ratio"] != baseline["coverage_ratio"]:
        return "win" if reranked["coverage_ratio"] > baseline["coverage_ratio"] else "loss"
    for key in ("tokens_to_full_coverage", "tokens_to_first_facet"):
        ours, theirs = _or_inf(reranked[key]), _or_inf(baseline[key])
        if ours != theirs:
            return "win" if ours < theirs else "loss"
    return "tie"


def aggregate(metrics: list[dict[str, Any]]) -> dict[str, float | None]:
    total = len(metrics)
    first = [m["tokens_to_first_facet"] for m in metrics if m["tokens_to_first_facet"] is not None]
    full = [m["tokens_to_full_coverage"] for m in metrics if m["tokens_to_full_coverage"] is not None]
    return {
        "full_coverage_rate": (
            sum(1 for m in metrics if m["full_coverage"]) / total if total else 0.0
        ),
        "average_coverage_ratio": (
            sum(m["coverage_ratio"] for m in metrics) / total if total else 0.0
        ),
        "average_tokens_to_first_facet": statistics.fmean(first) if first else None,
        "average_tokens_to_full_coverage": statistics.fmean(full) if full else None,
        "median_tokens_to_full_coverage": statistics.median(full) if full else None,
    }


def summarize(case_results: list[dict[str, Any]]) -> dict[str, Any]:
    verdicts = [case["verdict"] for case in case_results]
    return {
        "total_cases": len(case_results),
        "wins": verdicts.count("win"),
        "ties": verdicts.count("tie"),
        "losses": verdicts.count("loss"),
        "baseline": aggregate([case["baseline"] for case in case_results]),
        "reranked": aggregate([case["reranked"] for case in case_results]),
    }


def run_suite(
    sources: Sequence[LoadedIndex], suite: dict[str, Any], max_results: int | None = None
) -> dict[str, Any]:
    default_max = max_results or suite.get("max_results") or DEFAULT_MAX_RESULTS
    case_results: list[dict[str, Any]] = []
    for case in suite["cases"]:
        per_case = case.get("max_results") or default_max
        baseline = score_ranking(
            search_all(sources, case["query"], max_results=per_case, rerank=False),
            case["facets"],
        )
        reranked = score_ranking(
            search_all(sources, case["query"], max_results=per_case),
            case["facets"],
        )
        case_results.append(
            {
                "id": case["id"],
                "query": case["query"],
                "facets": case["facets"],
                "baseline": baseline,
                "reranked": reranked,
                "verdict": compare_rankings(baseline, reranked),
            }
        )
    return {
        "suite": {"name": suite.get("name"), "description": suite.get("description")},
        "max_results": default_max,
        "cases": case_results,
        "summary": summarize(case_results),
    }


def _load_previous_report(path: Path) -> dict | None:
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text())
    except json.JSONDecodeError:
        return None


def compute_deltas(current: dict, previous: dict | None) -> dict | None:
    if not previous:
        return None
    current_summary = current.get("summary", {})
    previous_summary = previous.get("summary")
    if not isinstance(previous_summary, dict):
        return None
    deltas: dict[str, dict[str, float]] = {}
    for mode in ("baseline", "reranked"):
        now = current_summary.get(mode, {})
        before = previous_summary.get(mode, {})
        if not isinstance(before, dict):
            continue
        deltas[mode] = {
            metric: value - before[metric]
            for metric, value in now.items()
            if isinstance(value, (int, float)) and isinstance(before.get(metric), (int, float))
        }
    return deltas


def _get_git_commit() -> str | None:
    try:
        result = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            check=True,
            capture_output=True,
            text=True,
        )
    except (subprocess.CalledProcessError, FileNotFoundError):
        return None
    return result.stdout.strip() or None


def main() -> None:
    args = parse_args()
    logger = configure_logging()
    config = load_config(args.config)
    suite = load_suite(args.suite)
    sources = [load_index(config.index_path, config)]
    report = run_suite(sources, suite, args.max_results)
    report["generated_at"] = datetime.now(timezone.utc).isoformat()
    report["git_commit"] = _get_git_commit()
    report["summary_delta"] = compute_deltas(report, _load_previous_report(args.report_path))

    args.report_path.parent.mkdir(parents=True, exist_ok=True)
    args.history_dir.mkdir(parents=True, exist_ok=True)
    payload = json.dumps(report, indent=2)
    args.report_path.write_text(payload)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    (args.history_dir / f"coverage_{stamp}.json").write_text(payload)

    summary = report["summary"]
    log_event(
        logger,
        "eval_complete",
        suite=args.suite.name,
        cases=summary["total_cases"],
        wins=summary["wins"],
        ties=summary["ties"],
        losses=summary["losses"],
        report_path=str(args.report_path),
    )
    print(
        f"cases={summary['total_cases']} wins={summary['wins']} "
        f"ties={summary['ties']} losses={summary['losses']}"
    )


if __name__ == "__main__":
    main()
