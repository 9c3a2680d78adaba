"""lighthouse-pulse - MCP server that tracks Lighthouse performance audits per URL and git branch."""

__version__ = "0.1.0"

from lighthouse_pulse.config import PulseConfig, get_config
from lighthouse_pulse.exceptions import (
    AuditNotFoundError,
    AuditorAPIError,
    AuditorConnectionError,
    AuditorError,
    AuditorRateLimitError,
    AuditorRuntimeError,
    AuditorUnavailableError,
    AuditStorageError,
    PulseError,
)
from lighthouse_pulse.models import (
    AuditComparison,
    AuditDeltas,
    AuditMetrics,
    AuditOutcome,
    AuditRecord,
    AuditRun,
    AuditScores,
    GitContext,
    NewAudit,
    Trend,
)

__all__ = [
    "__version__",
    "PulseConfig",
    "get_config",
    "PulseError",
    "AuditNotFoundError",
    "AuditStorageError",
    "AuditorError",
    "AuditorUnavailableError",
    "AuditorRuntimeError",
    "AuditorConnectionError",
    "AuditorRateLimitError",
    "AuditorAPIError",
    "AuditScores",
    "AuditMetrics",
    "AuditRun",
    "GitContext",
    "NewAudit",
    "AuditRecord",
    "AuditDeltas",
    "AuditComparison",
    "Trend",
    "AuditOutcome",
]
