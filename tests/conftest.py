"""Shared test fixtures for the lighthouse-pulse test suite.

Unit tests use an on-disk SQLite store under tmp_path, a fake auditor and a
MagicMock git repository. Integration tests (tests/integration/) need a real
Lighthouse CLI and Chrome.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from lighthouse_pulse.config import PulseConfig
from lighthouse_pulse.engine import AuditEngine
from lighthouse_pulse.models import AuditMetrics, AuditRun, AuditScores, GitContext, NewAudit
from lighthouse_pulse.repository import GitRepository
from lighthouse_pulse.storage import AuditStore

URL = "https://example.com"

BASE_AUDIT: dict[str, Any] = {
    "url": URL,
    "timestamp": 1_700_000_000_000,
    "performance_score": 78,
    "accessibility_score": 95,
    "best_practices_score": 83,
    "seo_score": 92,
    "lcp": 2450.0,
    "fcp": 890.0,
    "tbt": 310.0,
    "cls": 0.08,
    "speed_index": 3100.0,
    "git_commit": "abc1234567890abcdef",
    "git_branch": "main",
}

IMPROVED_AUDIT: dict[str, Any] = {
    **BASE_AUDIT,
    "timestamp": 1_700_100_000_000,
    "performance_score": 88,
    "lcp": 1800.0,
    "tbt": 150.0,
    "cls": 0.03,
    "speed_index": 2400.0,
    "git_commit": "def5678901234abcde",
    "git_branch": "feature/perf",
}

MOCK_LHR: dict[str, Any] = {
    "requestedUrl": URL,
    "finalDisplayedUrl": URL + "/",
    "lighthouseVersion": "12.0.0",
    "categories": {
        "performance": {"score": 0.78},
        "accessibility": {"score": 0.95},
        "best-practices": {"score": 0.83},
        "seo": {"score": 0.92},
    },
    "audits": {
        "speed-index": {"numericValue": 3100},
        "total-blocking-time": {"numericValue": 310},
        "first-contentful-paint": {"numericValue": 890},
        "cumulative-layout-shift": {"numericValue": 0.08},
        "largest-contentful-paint": {"numericValue": 2450},
    },
}


def make_audit(**overrides: Any) -> NewAudit:
    """Return a NewAudit based on BASE_AUDIT with field overrides."""
    return NewAudit(**{**BASE_AUDIT, **overrides})


def make_run(**score_overrides: Any) -> AuditRun:
    scores = {"performance": 78, "accessibility": 95, "best_practices": 83, "seo": 92, **score_overrides}
    return AuditRun(
        scores=AuditScores(**scores),
        metrics=AuditMetrics(lcp=2450, fcp=890, tbt=310, cls=0.08, speed_index=3100),
        raw_payload=MOCK_LHR,
    )


class FakeAuditor:
    """Auditor double that returns a canned run or raises a given error."""

    def __init__(self, run: AuditRun | None = None, error: Exception | None = None) -> None:
        self.result = run or make_run()
        self.error = error
        self.calls: list[tuple[str, str, Sequence[str] | None]] = []

    def run(self, url: str, device: str = "mobile", categories: Sequence[str] | None = None) -> AuditRun:
        self.calls.append((url, device, categories))
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def pulse_config(tmp_path: Path) -> PulseConfig:
    """Return a PulseConfig pointing at a temp data directory."""
    return PulseConfig(
        PULSE_DATA_DIR=str(tmp_path / "pulse-data"),
        PULSE_REPO_PATH=str(tmp_path),
        LIGHTHOUSE_PATH="lighthouse",
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
def audit_store(tmp_path: Path) -> Iterator[AuditStore]:
    """Return an open AuditStore using a temp directory."""
    store = AuditStore(str(tmp_path / "pulse" / "audits.db"), str(tmp_path / "pulse" / "results"))
    store.open()
    yield store
    store.close()


@pytest.fixture
def memory_store() -> Iterator[AuditStore]:
    """Return an open in-memory AuditStore without a results directory."""
    with AuditStore(":memory:") as store:
        yield store


@pytest.fixture
def git_context() -> GitContext:
    return GitContext(
        branch="feature/perf",
        commit="0123456789abcdef0123456789abcdef01234567",
        base_branch="main",
        commit_message="Speed up hero image",
    )


@pytest.fixture
def repository(git_context: GitContext) -> MagicMock:
    """Return a MagicMock GitRepository inside a repo on feature/perf."""
    repo = MagicMock(spec=GitRepository)
    repo.get_context.return_value = git_context
    repo.base_branch.return_value = "main"
    return repo


@pytest.fixture
def fake_auditor() -> FakeAuditor:
    return FakeAuditor()


@pytest.fixture
def audit_engine(audit_store: AuditStore, fake_auditor: FakeAuditor, repository: MagicMock) -> AuditEngine:
    """Return an AuditEngine with a fake auditor and a fixed clock."""
    return AuditEngine(audit_store, fake_auditor, repository, clock=lambda: 1_700_500_000_000)
