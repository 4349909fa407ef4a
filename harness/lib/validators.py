"""Row-count validation with a relative tolerance.

The tolerance is a percentage of the expected count: with
``expected=1000`` and ``tolerance=0.1`` any count in [999, 1001] passes.

An expected count of zero is an exact-match check: zero rows pass, any
other count fails with an infinite percentage difference.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

from harness.lib.models import DEFAULT_TOLERANCE

if TYPE_CHECKING:
    from harness.lib.dialects.base import DialectStrategy

logger = logging.getLogger(__name__)

__all__ = ["RowCountValidator", "Verdict", "compare_counts", "within_tolerance"]


def compare_counts(actual: int, expected: int) -> Tuple[int, float]:
    """Return ``(diff, diff_percent)`` of ``actual`` against ``expected``."""
    diff = actual - expected
    if expected == 0:
        return diff, 0.0 if diff == 0 else math.inf
    # Multiply first so 1 row off 1000 is exactly 0.1
    return diff, diff * 100.0 / expected


def within_tolerance(actual: int, expected: int, tolerance: float = DEFAULT_TOLERANCE) -> bool:
    """True when ``actual`` is within ``tolerance`` percent of ``expected``."""
    _, diff_percent = compare_counts(actual, expected)
    return -tolerance <= diff_percent <= tolerance


@dataclass(frozen=True)
class Verdict:
    """Outcome of one row-count comparison."""

    passed: bool
    expected: int
    actual: int
    diff: int
    diff_percent: float
    tolerance: float
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "expected": self.expected,
            "actual": self.actual,
            "diff": self.diff,
            "diff_percent": self.diff_percent if math.isfinite(self.diff_percent) else None,
            "tolerance": self.tolerance,
            "message": self.message,
        }


class RowCountValidator:
    """Checks observed row counts against an expected value.

    Args:
        expected: Expected row count.
        tolerance: Allowed deviation in percent; None means the default 0.1.
    """

    def __init__(self, expected: int, tolerance: Optional[float] = None) -> None:
        self.expected = expected
        self.tolerance = DEFAULT_TOLERANCE if tolerance is None else tolerance

    def validate_read(self, actual: int) -> Verdict:
        """Validate a count the caller already observed."""
        return self._verdict(actual)

    def validate_write(self, dialect: "DialectStrategy", table: str) -> Verdict:
        """Re-count ``table`` and validate the result."""
        actual = dialect.row_count(table)
        logger.debug("Counted %d rows in %s", actual, table)
        return self._verdict(actual)

    def _verdict(self, actual: int) -> Verdict:
        diff, diff_percent = compare_counts(actual, self.expected)
        passed = -self.tolerance <= diff_percent <= self.tolerance

        if passed:
            message = f"row count matches: expected {self.expected}, actual {actual}"
        elif math.isinf(diff_percent):
            message = f"row count mismatch: expected {self.expected}, actual {actual}"
        else:
            message = (
                f"row count mismatch: expected {self.expected}, actual {actual} "
                f"(diff {diff:+d}, {diff_percent:+.4f}% exceeds tolerance {self.tolerance}%)"
            )

        return Verdict(
            passed=passed,
            expected=self.expected,
            actual=actual,
            diff=diff,
            diff_percent=diff_percent,
            tolerance=self.tolerance,
            message=message,
        )
