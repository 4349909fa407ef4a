"""Tests for harness.lib.report module."""

import json
import math
from datetime import datetime, timedelta, timezone

from harness.lib.orchestrator import AssertionResult, RunReport
from harness.lib.report import render_text, write_json_report

START = datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc)


def _report():
    passed = AssertionResult(kind="read", expected=1000, actual=1000, passed=True, message="row count matches",
                             started_at=START, ended_at=START + timedelta(seconds=2))
    failed = AssertionResult(kind="write", expected=1000, actual=990, diff=-10, diff_percent=-1.0,
                             message="row count mismatch", started_at=START, ended_at=START)
    errored = AssertionResult(kind="delete", expected=1, error="unknown test type: delete", started_at=START)
    return RunReport(
        template_name="orders_read",
        namespace="test_orders_1_abc",
        started_at=START,
        ended_at=START + timedelta(seconds=5),
        results=[passed, failed, errored],
        table_name="test_orders_1_abc_test_table",
        reconcile_action="create",
        phase_timings={"connect": 0.1},
    )


class TestRenderText:
    def test_header(self):
        text = render_text(_report())

        assert "Template:  orders_read" in text
        assert "Namespace: test_orders_1_abc" in text
        assert "Started:   2025-01-15 10:30:00" in text
        assert "Duration:  5.000s" in text

    def test_assertion_sections(self):
        text = render_text(_report())

        assert "[1] read" in text
        assert "Status:   PASS" in text
        assert "Status:   FAIL" in text
        assert "Diff:     -10 rows (-1.00%)" in text
        assert "Error:    unknown test type: delete" in text

    def test_zero_diff_line_omitted(self):
        report = _report()
        report.results = report.results[:1]

        assert "Diff:" not in render_text(report)

    def test_infinite_percent(self):
        report = _report()
        report.results = [AssertionResult(kind="read", expected=0, actual=5, diff=5, diff_percent=math.inf)]

        assert "(n/a)" in render_text(report)

    def test_summary_line(self):
        report = _report()
        assert render_text(report).endswith("Some assertions FAILED")

        report.results = report.results[:1]
        assert render_text(report).endswith("All assertions passed")


class TestWriteJsonReport:
    def test_writes_parseable_json(self, tmp_path):
        path = write_json_report(_report(), tmp_path / "out" / "report.json")

        data = json.loads(path.read_text())
        assert data["template_name"] == "orders_read"
        assert data["has_failure"] is True
        assert data["duration_seconds"] == 5.0
        assert [r["type"] for r in data["results"]] == ["read", "write", "delete"]
        assert data["results"][0]["duration_seconds"] == 2.0
        assert data["phase_timings"] == {"connect": 0.1}
