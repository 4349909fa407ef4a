"""Human-readable and JSON renderings of a run report."""

from __future__ import annotations

import json
import logging
import math
from pathlib import Path
from typing import List, Union

from harness.lib.orchestrator import RunReport

logger = logging.getLogger(__name__)

__all__ = ["render_text", "write_json_report"]

_RULE = "=" * 40
_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def _format_percent(value: float) -> str:
    return f"{value:+.2f}%" if math.isfinite(value) else "n/a"


def render_text(report: RunReport) -> str:
    """Render the report the way it is printed at the end of a run."""
    lines: List[str] = [
        "",
        f"{'=' * 10} Test results {'=' * 16}",
        f"Template:  {report.template_name}",
        f"Namespace: {report.namespace}",
        f"Table:     {report.table_name or '-'}",
        f"Data:      {report.reconcile_action or '-'}",
        f"Duration:  {report.duration:.3f}s",
        f"Started:   {report.started_at.strftime(_TIME_FORMAT)}",
        f"Ended:     {report.ended_at.strftime(_TIME_FORMAT) if report.ended_at else '-'}",
        "",
        "Assertions:",
    ]

    if not report.results:
        lines.append("  (none)")

    for index, result in enumerate(report.results, start=1):
        lines.append("")
        lines.append(f"  [{index}] {result.kind}")
        if result.error:
            lines.append(f"    Error:    {result.error}")
            continue
        lines.append(f"    Status:   {'PASS' if result.passed else 'FAIL'}")
        lines.append(f"    Expected: {result.expected} rows")
        lines.append(f"    Actual:   {result.actual} rows")
        if result.diff != 0:
            lines.append(f"    Diff:     {result.diff:+d} rows ({_format_percent(result.diff_percent)})")
        lines.append(f"    Message:  {result.message}")
        lines.append(f"    Duration: {result.duration:.3f}s")

    lines.append("")
    lines.append(_RULE)
    lines.append("Some assertions FAILED" if report.has_failure else "All assertions passed")
    return "\n".join(lines)


def write_json_report(report: RunReport, path: Union[str, Path]) -> Path:
    """Write the report as JSON for CI consumption. Returns the path."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(report.to_dict(), f, indent=2)
        f.write("\n")
    logger.info("Wrote JSON report to %s", path)
    return path
