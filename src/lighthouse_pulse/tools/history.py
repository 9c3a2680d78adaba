"""Audit history MCP tool.

Shows the stored audits of a URL as a timeline with the window trend and
notable changes between the oldest and newest audit shown.
"""

from __future__ import annotations

import asyncio
import logging

from lighthouse_pulse.analysis import notable_changes, window_trend
from lighthouse_pulse.formatting import bullet_section, failure_report, timeline
from lighthouse_pulse.models import AuditRecord, Trend
from lighthouse_pulse.storage import AuditStore
from lighthouse_pulse.tools.status import no_audits_report

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 10
MAX_HISTORY_LIMIT = 50


def describe_trend(trend: Trend) -> str:
    if trend.direction == "stable":
        return "Performance is **stable**"
    if trend.direction == "improving":
        return f"Performance is **improving** (+{trend.delta} points over {trend.points} audits)"
    if trend.direction == "declining":
        return f"Performance is **declining** ({trend.delta} points over {trend.points} audits)"
    return ""


def format_history_report(url: str, audits: list[AuditRecord], branch: str | None, trend: Trend) -> str:
    branch_note = f" (branch: {branch})" if branch else ""
    summary = describe_trend(trend)
    plural = "" if len(audits) == 1 else "s"
    lines = [
        f"## Pulse History: {url}{branch_note}",
        f"Showing {len(audits)} audit{plural}{' · ' + summary if summary else ''}",
        "",
        "### Timeline",
        timeline(audits),
    ]
    lines += bullet_section("Notable Changes", notable_changes(audits))
    return "\n".join(lines)


async def get_pulse_history(
    store: AuditStore,
    url: str,
    limit: int = DEFAULT_HISTORY_LIMIT,
    branch: str | None = None,
) -> dict:
    """Retrieve the audit history of a URL.

    Args:
        store: Audit store instance.
        url: The audited URL.
        limit: Number of audits to show, 1 to 50.
        branch: Restrict to audits of this exact branch.

    Returns:
        Dict with status, the audits (newest first), the window trend and a markdown report.
    """
    if not 1 <= limit <= MAX_HISTORY_LIMIT:
        message = f"limit must be between 1 and {MAX_HISTORY_LIMIT}, got {limit}"
        return {"status": "error", "message": message, "report": failure_report("Pulse History", message)}

    try:
        audits = await asyncio.to_thread(store.history, url, limit, branch=branch)
        if not audits:
            return {
                "status": "no_data",
                "audits": [],
                "total_returned": 0,
                "filter": branch,
                "message": "No audits found. Run pulse_audit first.",
                "report": no_audits_report("Pulse History", url, branch),
            }

        trend = window_trend(audits)
        return {
            "status": "success",
            "audits": [audit.model_dump(mode="json") for audit in audits],
            "total_returned": len(audits),
            "filter": branch,
            "trend": {"direction": trend.direction, "delta": trend.delta, "label": trend.label},
            "report": format_history_report(url, audits, branch, trend),
        }
    except Exception as exc:
        logger.error("History for %s failed: %s", url, exc)
        return {
            "status": "error",
            "message": str(exc),
            "report": failure_report("Pulse History", str(exc)),
        }
