"""Human-readable summary for coverage eval reports."""

from __future__ import annotations

import argparse
import json
from pathlib import Path

_METRICS = (
    ("full_coverage_rate", "full"),
    ("average_coverage_ratio", "cover"),
    ("average_tokens_to_first_facet", "tok1st"),
    ("average_tokens_to_full_coverage", "tokfull"),
    ("median_tokens_to_full_coverage", "medfull"),
)


def _format_value(value: float | int | None) -> str:
    if isinstance(value, (int, float)):
        return f"{value:.3f}"
    return "n/a"


def _format_delta(value: float | int | None) -> str:
    if isinstance(value, (int, float)):
        return f"{value:+.3f}"
    return "n/a"


def render_summary(report: dict) -> str:
    summary = report.get("summary", {})
    suite = report.get("suite") or {}
    lines: list[str] = []
    lines.append("Coverage evaluation summary")
    lines.append(
        f"suite: {suite.get('name') or 'n/a'} | cases: {summary.get('total_cases', 'n/a')}"
        f" | max_results: {report.get('max_results', 'n/a')}"
        f" | commit: {report.get('git_commit') or 'n/a'}"
    )
    lines.append(
        "verdicts: {wins} win / {ties} tie / {losses} loss".format(
            wins=summary.get("wins", 0),
            ties=summary.get("ties", 0),
            losses=summary.get("losses", 0),
        )
    )
    lines.append("")
    header = f"{'mode':<9}" + "".join(f" {label:>8}" for _, label in _METRICS)
    lines.append(header)
    deltas_by_mode = report.get("summary_delta") or {}
    for mode in ("baseline", "reranked"):
        metrics = summary.get(mode, {})
        lines.append(
            f"{mode:<9}"
            + "".join(f" {_format_value(metrics.get(key)):>8}" for key, _ in _METRICS)
        )
        deltas = deltas_by_mode.get(mode)
        if isinstance(deltas, dict) and deltas:
            lines.append(
                f"{'  delta':<9}"
                + "".join(f" {_format_delta(deltas.get(key)):>8}" for key, _ in _METRICS)
            )
    losses = [case["id"] for case in report.get("cases", []) if case.get("verdict") == "loss"]
    if losses:
        lines.append("")
        lines.append(f"losses: {', '.join(losses)}")
    return "\n".join(lines)


def _load_report(path: Path) -> dict:
    return json.loads(path.read_text())


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Summarize eval report JSON")
    parser.add_argument(
        "--report-path",
        type=Path,
        default=Path("eval/reports/latest.json"),
        help="Path to eval report JSON",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    report = _load_report(args.report_path)
    print(render_summary(report))


if __name__ == "__main__":
    main()
