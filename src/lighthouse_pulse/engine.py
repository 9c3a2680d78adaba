"""Audit orchestration.

The AuditEngine ties one external audit run to its git context and the
store: look up the previous audit, run the auditor, then persist the record
together with its raw report in a single step.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence

from lighthouse_pulse.models import AuditCategory, AuditOutcome, Device, NewAudit
from lighthouse_pulse.repository import GitRepository
from lighthouse_pulse.runner import Auditor
from lighthouse_pulse.storage import AuditStore

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class AuditEngine:
    """Runs audits and records their results.

    Concurrent runs for the same URL are not coordinated: each one looks up
    its "previous" audit before inserting, so two overlapping runs may both
    see the same previous audit.
    """

    def __init__(
        self,
        store: AuditStore,
        auditor: Auditor,
        repository: GitRepository,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self.store = store
        self.auditor = auditor
        self.repository = repository
        self.clock = clock

    async def run(
        self,
        url: str,
        device: Device = "mobile",
        categories: Sequence[AuditCategory] | None = None,
    ) -> AuditOutcome:
        """Audit a URL and persist the result.

        Args:
            url: The page to audit.
            device: Device emulation, mobile or desktop.
            categories: Lighthouse categories to run, all when omitted.

        Returns:
            AuditOutcome with the stored record (artifact attached), the
            previous audit of the URL on any branch, and the git context.

        Raises:
            AuditorError: If the audit fails. Nothing is persisted in that case.
            AuditStorageError: If the result cannot be stored. Nothing is
                persisted in that case either.
        """
        context, previous = await asyncio.gather(
            asyncio.to_thread(self.repository.get_context),
            asyncio.to_thread(self.store.latest, url),
        )

        started = time.monotonic()
        run = await asyncio.to_thread(self.auditor.run, url, device, categories)
        logger.info("Audit of %s finished in %.1fs", url, time.monotonic() - started)

        audit = NewAudit.from_run(url, run, context, timestamp=self.clock())
        record = await asyncio.to_thread(self.store.insert_with_artifact, audit, run.raw_payload)

        return AuditOutcome(record=record, previous=previous, context=context)
