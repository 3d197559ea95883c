"""Textual report and JSON summary of a benchmark run."""

import json
from pathlib import Path
from typing import Any, Optional

from httpbench.metrics.stats import Stats


def requests_per_sec(stats: Stats, duration_sec: float) -> float:
    """Successful requests per second; 0 for a zero-length run."""
    if duration_sec <= 0:
        return 0.0
    return stats.success_count / duration_sec


def format_report(uri: str, duration_sec: float, stats: Stats) -> str:
    """Render the ab-style report block."""
    lines = [
        f"Document URI:\t\t{uri}",
        f"Document Length:\t{stats.content_len} bytes",
        f"Concurrency level:\t{stats.concurrency}",
        f"Time taken for tests:\t{duration_sec:.3f} seconds",
        f"Complete requests:\t{stats.success_count}",
        f"Failed requests:\t{stats.failure_count}",
        f"Content transferred:\t{stats.total_content_len} bytes",
        f"Requests per second:\t{requests_per_sec(stats, duration_sec):.2f} [#/sec] (mean)",
    ]
    return "\n".join(lines)


def print_report(uri: str, duration_sec: float, stats: Stats) -> None:
    print(format_report(uri, duration_sec, stats))


def save_summary(
    output_dir: Path,
    summary: dict[str, Any],
    manifest: Optional[dict[str, Any]] = None,
) -> None:
    """Write summary.json (and run_manifest.json when given) to ``output_dir``."""
    output_dir.mkdir(parents=True, exist_ok=True)

    summary_file = output_dir / "summary.json"
    with open(summary_file, "w") as f:
        json.dump(summary, f, indent=2)
    print(f"Saved summary to {summary_file}")

    if manifest is not None:
        manifest_file = output_dir / "run_manifest.json"
        with open(manifest_file, "w") as f:
            json.dump(manifest, f, indent=2)
        print(f"Saved manifest to {manifest_file}")
