"""Structured exception hierarchy for the harness.

Errors fall into three groups that drive how a run reacts:

- Fatal setup errors (configuration, unsupported dialect, connection,
  registration, setup, timeout) abort the run before any assertion runs.
- Assertion-local failures are never raised out of the orchestrator; they
  are captured as error strings on the assertion result.
- Cleanup failures are logged and swallowed.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

__all__ = [
    "HarnessError",
    "ConfigurationError",
    "UnsupportedDialectError",
    "DatabaseConnectionError",
    "RegistrationError",
    "SetupError",
    "RunTimeoutError",
]


class HarnessError(Exception):
    """Base exception for all harness errors.

    Provides structured error information for debugging.
    """

    def __init__(
        self,
        message: str,
        *,
        template: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        self.message = message
        self.template = template
        self.details = details or {}
        self.suggestion = suggestion

        parts = [message]

        if template:
            parts.insert(0, f"[{template}]")

        if self.details:
            detail_lines = [f"  {k}: {v}" for k, v in self.details.items()]
            parts.append("\nDetails:")
            parts.extend(detail_lines)

        if suggestion:
            parts.append(f"\nSuggestion: {suggestion}")

        if template and not self.details and not suggestion:
            full = " ".join(parts)
        else:
            full = "\n".join(parts) if len(parts) > 1 else message
        super().__init__(full)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "template": self.template,
            "details": self.details,
            "suggestion": self.suggestion,
        }


class ConfigurationError(HarnessError):
    """Invalid template or base configuration.

    Also raised when no database profile matches the template.
    """

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Any = None,
        **kwargs: Any,
    ) -> None:
        self.field = field
        self.value = value

        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)

        super().__init__(message, details=details, **kwargs)


class UnsupportedDialectError(ConfigurationError):
    """The dialect tag does not name a registered strategy."""

    def __init__(self, dialect: str, supported: Optional[list] = None, **kwargs: Any) -> None:
        self.dialect = dialect
        suggestion = kwargs.pop("suggestion", None)
        if not suggestion and supported:
            suggestion = f"Use one of: {', '.join(supported)}"
        super().__init__(
            f"unsupported database type: {dialect}",
            field="database.type",
            value=dialect,
            suggestion=suggestion,
            **kwargs,
        )


class DatabaseConnectionError(HarnessError):
    """Error connecting to the target database."""

    def __init__(
        self,
        message: str,
        *,
        dialect: Optional[str] = None,
        host: Optional[str] = None,
        port: Optional[int] = None,
        cause: Optional[BaseException] = None,
        **kwargs: Any,
    ) -> None:
        self.dialect = dialect
        self.host = host
        self.cause = cause

        details = kwargs.pop("details", {})
        if dialect:
            details["dialect"] = dialect
        if host:
            details["host"] = f"{host}:{port}" if port else host
        if cause:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = (
                "Check that the host is reachable and credentials are correct. "
                "Verify environment variables referenced by the config are set."
            )

        super().__init__(message, details=details, suggestion=suggestion, **kwargs)


class RegistrationError(HarnessError):
    """The asset catalog rejected or failed a registration call."""

    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        cause: Optional[BaseException] = None,
        **kwargs: Any,
    ) -> None:
        self.operation = operation
        self.cause = cause

        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation
        if cause:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        super().__init__(message, details=details, **kwargs)


class SetupError(HarnessError):
    """Reconciliation or data generation failed during setup."""

    def __init__(
        self,
        message: str,
        *,
        table: Optional[str] = None,
        cause: Optional[BaseException] = None,
        **kwargs: Any,
    ) -> None:
        self.table = table
        self.cause = cause

        details = kwargs.pop("details", {})
        if table:
            details["table"] = table
        if cause:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        super().__init__(message, details=details, **kwargs)


class RunTimeoutError(HarnessError):
    """The run deadline expired."""

    def __init__(self, message: str, *, phase: Optional[str] = None, **kwargs: Any) -> None:
        self.phase = phase
        details = kwargs.pop("details", {})
        if phase:
            details["phase"] = phase
        super().__init__(message, details=details, **kwargs)
