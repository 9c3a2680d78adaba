"""Custom exception hierarchy for lighthouse-pulse.

Maps store lookups, storage infrastructure failures and external auditor
failures (Lighthouse CLI, Chrome, PageSpeed Insights) to typed exceptions.
"""

from __future__ import annotations


class PulseError(Exception):
    """Base exception for all lighthouse-pulse errors."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.details = details or {}


class AuditNotFoundError(PulseError):
    """Raised when no stored audit has the requested id."""

    def __init__(self, audit_id: int, details: dict | None = None) -> None:
        super().__init__(f"Audit with id {audit_id} not found", details)
        self.audit_id = audit_id


class AuditStorageError(PulseError):
    """Raised when the audit database or result directory is unusable."""


class AuditorError(PulseError):
    """Raised when an external audit could not be completed."""

    def __init__(self, message: str, code: str | None = None, details: dict | None = None) -> None:
        super().__init__(message, details)
        self.code = code


class AuditorUnavailableError(AuditorError):
    """Raised when Lighthouse or Chrome cannot be started."""


class AuditorRuntimeError(AuditorError):
    """Raised when Lighthouse reports a runtimeError for the audited page."""


class AuditorConnectionError(AuditorError):
    """Raised when the PageSpeed Insights API is unreachable."""


class AuditorRateLimitError(AuditorError):
    """Raised when PageSpeed Insights returns a rate-limit response (429)."""

    def __init__(self, message: str, retry_after: int | None = None, details: dict | None = None) -> None:
        super().__init__(message, code="RATE_LIMITED", details=details)
        self.retry_after = retry_after


class AuditorAPIError(AuditorError):
    """Raised for unexpected PageSpeed Insights API errors (4xx/5xx, malformed response)."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
        details: dict | None = None,
    ) -> None:
        super().__init__(message, code=code, details=details)
        self.status_code = status_code
