"""Audit-run MCP tool.

Runs a fresh Lighthouse audit through the AuditEngine and reports scores and
Core Web Vitals against the previous audit of the same URL.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from lighthouse_pulse.engine import AuditEngine
from lighthouse_pulse.formatting import failure_report, format_timestamp, metrics_table, score_table
from lighthouse_pulse.models import AuditCategory, AuditOutcome, Device

logger = logging.getLogger(__name__)


def format_audit_report(outcome: AuditOutcome) -> str:
    record, previous = outcome.record, outcome.previous
    lines = [
        f"## Pulse Audit: {record.url}",
        f"Branch: {record.git_branch or '-'}  |  Commit: {record.short_commit or '-'}  |  "
        f"{format_timestamp(record.timestamp)}",
        "",
        "### Scores",
        score_table(record, previous, mode="trend"),
        "",
        "### Core Web Vitals",
        metrics_table(record, previous),
    ]
    if previous is None:
        lines += ["", "_First audit for this URL: trends appear from the next run._"]
    else:
        lines += ["", f"_Trend compared with the audit from {format_timestamp(previous.timestamp)}._"]
    if record.artifact_path:
        lines += ["", f"Full report saved to: {record.artifact_path}"]
    return "\n".join(lines)


async def run_pulse_audit(
    engine: AuditEngine,
    url: str,
    device: Device = "mobile",
    categories: Sequence[AuditCategory] | None = None,
) -> dict:
    """Run an audit, persist it and report it.

    Every call creates a new audit record.

    Args:
        engine: The audit engine.
        url: The page to audit.
        device: mobile (default) or desktop emulation.
        categories: Lighthouse categories, all by default.

    Returns:
        Dict with status, the stored audit, the previous audit and a markdown report.
    """
    try:
        outcome = await engine.run(url, device=device, categories=categories)
        return {
            "status": "success",
            "audit": outcome.record.model_dump(mode="json"),
            "previous": outcome.previous.model_dump(mode="json") if outcome.previous else None,
            "report": format_audit_report(outcome),
        }
    except Exception as exc:
        logger.error("Audit of %s failed: %s", url, exc)
        return {
            "status": "error",
            "message": str(exc),
            "report": failure_report("Pulse Audit", str(exc)),
        }
