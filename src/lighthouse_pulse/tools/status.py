"""Status MCP tool.

Summarises the latest stored audit of a URL: scores, Core Web Vitals, the
last-step trend and recommendations. Does not run a new audit.
"""

from __future__ import annotations

import asyncio
import logging

from lighthouse_pulse.analysis import build_recommendations, step_trend
from lighthouse_pulse.formatting import (
    bullet_section,
    failure_report,
    format_timestamp,
    metrics_list,
    score_table,
    time_ago,
)
from lighthouse_pulse.models import AuditRecord, Trend
from lighthouse_pulse.repository import GitRepository
from lighthouse_pulse.storage import AuditStore

logger = logging.getLogger(__name__)

STATUS_WINDOW = 5

TREND_ICONS: dict[str, str] = {
    "insufficient_data": "⚪",
    "unknown": "⚪",
    "stable": "➡️",
    "improving": "⬆️",
    "declining": "⬇️",
}


def no_audits_report(title: str, url: str, branch: str | None) -> str:
    branch_note = f" on branch **{branch}**" if branch else ""
    return "\n".join([
        f"## {title}: {url}",
        "",
        f"No audits found for this URL{branch_note}.",
        "",
        "Run `pulse_audit` to start tracking performance.",
    ])


def format_status_report(
    url: str,
    latest: AuditRecord,
    trend: Trend,
    recommendations: list[str],
    current_branch: str | None,
) -> str:
    branch = latest.git_branch or current_branch or "-"
    lines = [
        f"## Pulse Status: {url}",
        f"Branch: **{branch}** · Last audit: **{time_ago(latest.timestamp)}** · "
        f"Trend: {TREND_ICONS[trend.direction]} {trend.label}",
        "",
        "### Latest Scores",
        score_table(latest, mode="grade"),
        "",
        "### Core Web Vitals",
        metrics_list(latest),
        "",
        f"_Audit from commit `{latest.short_commit or '-'}` on {format_timestamp(latest.timestamp)}_",
    ]
    lines += bullet_section("Recommendations", recommendations)
    return "\n".join(lines)


async def get_pulse_status(
    store: AuditStore,
    repository: GitRepository,
    url: str,
    branch: str | None = None,
) -> dict:
    """Report the current performance status of a URL from stored audits.

    Args:
        store: Audit store instance.
        repository: Git working tree, used to label audits without a branch.
        url: The audited URL.
        branch: Restrict to audits of this exact branch.

    Returns:
        Dict with status, the latest audit, trend, recommendations and a markdown report.
    """
    try:
        context, latest = await asyncio.gather(
            asyncio.to_thread(repository.get_context),
            asyncio.to_thread(store.latest, url, branch),
        )
        if latest is None:
            return {
                "status": "no_data",
                "message": "No audits found. Run pulse_audit first.",
                "report": no_audits_report("Pulse Status", url, branch),
            }

        history = await asyncio.to_thread(store.history, url, STATUS_WINDOW, branch=branch)
        trend = step_trend(history)
        recommendations = build_recommendations(latest)
        return {
            "status": "success",
            "audit": latest.model_dump(mode="json"),
            "trend": {"direction": trend.direction, "delta": trend.delta, "label": trend.label},
            "recommendations": recommendations,
            "report": format_status_report(
                url, latest, trend, recommendations, context.branch if context else None
            ),
        }
    except Exception as exc:
        logger.error("Status for %s failed: %s", url, exc)
        return {
            "status": "error",
            "message": str(exc),
            "report": failure_report("Pulse Status", str(exc)),
        }
