"""Branch comparison MCP tool.

Compares the latest audit of a URL on a baseline branch with the latest on
a current branch, highlighting regressions and improvements.
"""

from __future__ import annotations

import asyncio
import logging

from lighthouse_pulse.analysis import improvement_summary, regression_summary
from lighthouse_pulse.comparison import compare_audits
from lighthouse_pulse.formatting import bullet_section, comparison_tables, failure_report
from lighthouse_pulse.repository import GitRepository
from lighthouse_pulse.storage import AuditStore

logger = logging.getLogger(__name__)


def no_audit_report(url: str, branch: str, role: str) -> str:
    return (
        f"## Pulse Compare: No {role} audit found\n\n"
        f"No audit exists for **{url}** on branch **{branch}**.\n\n"
        "Run `pulse_audit` on that branch first, then compare."
    )


async def compare_branches(
    store: AuditStore,
    repository: GitRepository,
    url: str,
    baseline_branch: str | None = None,
    current_branch: str | None = None,
) -> dict:
    """Compare the latest audits of two branches.

    Args:
        store: Audit store instance.
        repository: Git working tree used to resolve default branches.
        url: The audited URL.
        baseline_branch: Reference branch, defaults to the detected base branch.
        current_branch: Branch under evaluation, defaults to the checked-out branch.

    Returns:
        Dict with status, resolved branches, deltas, regressions, improvements
        and a markdown report.
    """
    try:
        context = await asyncio.to_thread(repository.get_context)
        current = current_branch or (context.branch if context else None) or "unknown"
        if baseline_branch:
            baseline = baseline_branch
        elif context is not None:
            baseline = context.base_branch
        else:
            baseline = await asyncio.to_thread(repository.base_branch)

        baseline_audit = await asyncio.to_thread(store.latest, url, baseline)
        if baseline_audit is None:
            return {
                "status": "no_data",
                "message": f"No baseline audit for branch {baseline}",
                "report": no_audit_report(url, baseline, "baseline"),
            }
        current_audit = await asyncio.to_thread(store.latest, url, current)
        if current_audit is None:
            return {
                "status": "no_data",
                "message": f"No current audit for branch {current}",
                "report": no_audit_report(url, current, "current"),
            }

        comparison = await asyncio.to_thread(compare_audits, store, baseline_audit.id, current_audit.id)
        regressions = regression_summary(comparison.deltas)
        improvements = improvement_summary(comparison.deltas)

        lines = [
            f"## Pulse Compare: {url}",
            f"Comparing: **{current}** vs **{baseline}**",
            "",
            "### Scores",
            comparison_tables(comparison, baseline, current),
        ]
        lines += bullet_section("⚠️ Regressions", regressions)
        lines += bullet_section("✅ Improvements", improvements)

        return {
            "status": "success",
            "baseline_branch": baseline,
            "current_branch": current,
            "baseline_id": comparison.baseline.id,
            "current_id": comparison.current.id,
            "deltas": comparison.deltas.model_dump(),
            "regressions": regressions,
            "improvements": improvements,
            "report": "\n".join(lines),
        }
    except Exception as exc:
        logger.error("Compare for %s failed: %s", url, exc)
        return {
            "status": "error",
            "message": str(exc),
            "report": failure_report("Pulse Compare", str(exc)),
        }
