"""Retry and deadline utilities.

Retry is applied only where an operation is safe to repeat: opening a
database connection. Catalog registration is never retried because the
catalog does not deduplicate entries.

Implementation: Uses tenacity library internally for retry logic.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, TypeVar

import tenacity
from tenacity.wait import wait_base

from harness.lib.errors import RunTimeoutError

logger = logging.getLogger(__name__)

__all__ = [
    "Deadline",
    "RetryConfig",
    "is_retryable_db_error",
    "retry_operation",
]

T = TypeVar("T")


def is_retryable_db_error(exc: BaseException) -> bool:
    """Determine if a database error is transient.

    Retries on connection and timeout errors but not on query/data errors.
    Matches by name so the check works for every driver ibis may load
    (MySQLdb, pymysql, psycopg, psycopg2).
    """
    exc_type = type(exc).__name__
    exc_module = type(exc).__module__

    if any(driver in exc_module for driver in ("MySQLdb", "pymysql", "psycopg")):
        if "OperationalError" in exc_type or "InterfaceError" in exc_type:
            return True

    if exc_type in ("ConnectionError", "TimeoutError", "BrokenPipeError",
                    "ConnectionRefusedError", "ConnectionResetError"):
        return True

    return False


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        exponential: bool = True,
        jitter: bool = True,
        retry_if: Optional[Callable[[BaseException], bool]] = None,
    ):
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.exponential = exponential
        self.jitter = jitter
        self.retry_if = retry_if or is_retryable_db_error

    @classmethod
    def none(cls) -> "RetryConfig":
        """No retry - fail immediately."""
        return cls(max_attempts=1)

    @classmethod
    def default(cls) -> "RetryConfig":
        """Default retry: 3 attempts with exponential backoff."""
        return cls()


def retry_operation(
    operation: Callable[[], T],
    config: RetryConfig,
    operation_name: str = "operation",
) -> T:
    """Execute an operation with retry logic.

    Only exceptions accepted by ``config.retry_if`` are retried; anything
    else propagates on the first failure.

    Example:
        retry_operation(
            lambda: ibis.mysql.connect(**params),
            RetryConfig.default(),
            "mysql connect",
        )
    """
    wait_strategy: wait_base
    if config.exponential:
        wait_strategy = tenacity.wait_exponential(
            multiplier=config.backoff_seconds, min=config.backoff_seconds
        )
    else:
        wait_strategy = tenacity.wait_fixed(config.backoff_seconds)

    if config.jitter:
        wait_strategy = wait_strategy + tenacity.wait_random(0, config.backoff_seconds * 0.5)

    def before_sleep_handler(retry_state: tenacity.RetryCallState) -> None:
        exception = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "%s attempt %d/%d failed: %s. Retrying in %.1fs...",
            operation_name,
            retry_state.attempt_number,
            config.max_attempts,
            exception,
            retry_state.next_action.sleep if retry_state.next_action else 0,
        )

    retryer = tenacity.Retrying(
        stop=tenacity.stop_after_attempt(config.max_attempts),
        wait=wait_strategy,
        retry=tenacity.retry_if_exception(config.retry_if),
        before_sleep=before_sleep_handler,
        reraise=True,
    )

    try:
        return retryer(operation)
    except Exception:
        logger.error("%s failed", operation_name)
        raise


class Deadline:
    """Overall time budget for a run, checked between units of work.

    A deadline of ``None`` seconds never expires.
    """

    def __init__(self, seconds: Optional[float] = None, *, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.seconds = seconds
        self._expires_at = None if seconds is None else clock() + seconds

    @classmethod
    def unlimited(cls) -> "Deadline":
        return cls(None)

    def remaining(self) -> Optional[float]:
        """Seconds left, or None when unlimited."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and self._clock() >= self._expires_at

    def check(self, phase: str) -> None:
        """Raise RunTimeoutError when the budget is spent."""
        if self.expired:
            raise RunTimeoutError(
                f"Run deadline of {self.seconds}s exceeded during {phase}",
                phase=phase,
            )

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"Deadline(seconds={self.seconds!r}, remaining={self.remaining()!r})"

