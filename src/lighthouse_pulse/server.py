"""FastMCP server entry point for lighthouse-pulse.

Builds the long-lived services (config, audit store, auditor, git repository,
engine) once per process, registers the MCP tools against them and closes the
store on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass

from fastmcp import FastMCP

from lighthouse_pulse.config import PulseConfig, get_config
from lighthouse_pulse.engine import AuditEngine
from lighthouse_pulse.models import AuditCategory, Device
from lighthouse_pulse.repository import GitRepository
from lighthouse_pulse.runner import Auditor, build_auditor
from lighthouse_pulse.storage import AuditStore
from lighthouse_pulse.tools.audit import run_pulse_audit
from lighthouse_pulse.tools.compare import compare_branches
from lighthouse_pulse.tools.history import get_pulse_history
from lighthouse_pulse.tools.status import get_pulse_status

logger = logging.getLogger(__name__)

SERVER_NAME = "lighthouse-pulse"


@dataclass
class PulseServices:
    """Everything the tools share for the lifetime of the process."""

    config: PulseConfig
    store: AuditStore
    auditor: Auditor
    repository: GitRepository
    engine: AuditEngine

    @classmethod
    def create(cls, config: PulseConfig) -> PulseServices:
        """Open the audit store and wire the engine. Call close() when done."""
        store = AuditStore(config.database_path, config.results_path).open()
        auditor = build_auditor(config)
        repository = GitRepository(config.repo_path)
        engine = AuditEngine(store, auditor, repository)
        return cls(config=config, store=store, auditor=auditor, repository=repository, engine=engine)

    def close(self) -> None:
        self.store.close()
        close_auditor = getattr(self.auditor, "close", None)
        if close_auditor is not None:
            close_auditor()


def build_server(services: PulseServices) -> FastMCP:
    """Create the MCP server with all tools bound to ``services``."""
    mcp = FastMCP(SERVER_NAME)

    @mcp.tool()
    async def pulse_audit(
        url: str,
        device: Device = "mobile",
        categories: list[AuditCategory] | None = None,
    ) -> dict:
        """Run a Lighthouse audit on a URL, save it with git context and report scores, Core Web Vitals and trends."""
        return await run_pulse_audit(services.engine, url, device=device, categories=categories)

    @mcp.tool()
    async def pulse_status(url: str, branch: str | None = None) -> dict:
        """Show the latest stored scores, Core Web Vitals, trend and recommendations for a URL."""
        return await get_pulse_status(services.store, services.repository, url, branch=branch)

    @mcp.tool()
    async def pulse_compare(
        url: str,
        baseline_branch: str | None = None,
        current_branch: str | None = None,
    ) -> dict:
        """Compare the latest audits of two branches for a URL, highlighting regressions and improvements."""
        return await compare_branches(
            services.store,
            services.repository,
            url,
            baseline_branch=baseline_branch,
            current_branch=current_branch,
        )

    @mcp.tool()
    async def pulse_history(url: str, limit: int = 10, branch: str | None = None) -> dict:
        """Show the stored audit timeline of a URL (limit 1-50, default 10) with trend and notable changes."""
        return await get_pulse_history(services.store, url, limit=limit, branch=branch)

    @mcp.tool()
    async def health_check() -> dict:
        """Verify the audit store is readable and the configured auditor is available."""
        return await asyncio.to_thread(check_health, services)

    return mcp


def check_health(services: PulseServices) -> dict:
    try:
        stored = services.store.count()
    except Exception as exc:
        return {"status": "unhealthy", "error": str(exc)}

    config = services.config
    result = {
        "status": "healthy",
        "backend": config.audit_backend,
        "database": config.database_path,
        "audits_stored": stored,
    }
    if config.audit_backend == "lighthouse" and shutil.which(config.lighthouse_path) is None:
        result["status"] = "degraded"
        result["error"] = f"Lighthouse CLI not found: {config.lighthouse_path}"
    return result


def main() -> None:
    """Entry point for the lighthouse-pulse MCP server."""
    config = get_config()
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    logger.info("Starting lighthouse-pulse MCP server (backend=%s)", config.audit_backend)
    services = PulseServices.create(config)
    try:
        build_server(services).run()
    finally:
        services.close()
