"""Pydantic v2 data models for audit runs, stored audit records, comparisons and trends.

All core data structures used throughout lighthouse-pulse live here. Field
names of NewAudit/AuditRecord match the columns of the audits table.
"""

from __future__ import annotations

import time
from typing import Any, Literal

from pydantic import BaseModel, Field

Device = Literal["mobile", "desktop"]
AuditCategory = Literal["performance", "accessibility", "best-practices", "seo"]
Signal = Literal["regression", "improvement", "neutral"]
TrendDirection = Literal["insufficient_data", "unknown", "stable", "improving", "declining"]

DEVICES: tuple[Device, ...] = ("mobile", "desktop")
ALL_CATEGORIES: tuple[AuditCategory, ...] = ("performance", "accessibility", "best-practices", "seo")

SCORE_FIELDS: tuple[str, ...] = (
    "performance_score",
    "accessibility_score",
    "best_practices_score",
    "seo_score",
)
MS_METRIC_FIELDS: tuple[str, ...] = ("lcp", "fcp", "tbt", "speed_index")
METRIC_FIELDS: tuple[str, ...] = ("lcp", "fcp", "tbt", "cls", "speed_index")
NUMERIC_FIELDS: tuple[str, ...] = SCORE_FIELDS + METRIC_FIELDS

Score = int | None
Millis = float | None


class AuditScores(BaseModel):
    """Category scores on the 0-100 scale. None means Lighthouse could not compute it."""

    performance: Score = Field(None, ge=0, le=100)
    accessibility: Score = Field(None, ge=0, le=100)
    best_practices: Score = Field(None, ge=0, le=100)
    seo: Score = Field(None, ge=0, le=100)


class AuditMetrics(BaseModel):
    """Core Web Vitals style metrics. Timings are milliseconds, CLS is unitless."""

    lcp: Millis = Field(None, ge=0)
    fcp: Millis = Field(None, ge=0)
    tbt: Millis = Field(None, ge=0)
    cls: float | None = Field(None, ge=0)
    speed_index: Millis = Field(None, ge=0)


class AuditRun(BaseModel):
    """Result of one external auditor invocation."""

    scores: AuditScores = Field(default_factory=AuditScores)
    metrics: AuditMetrics = Field(default_factory=AuditMetrics)
    raw_payload: dict[str, Any] = Field(default_factory=dict, repr=False)
    final_url: str | None = None
    lighthouse_version: str | None = None


class GitContext(BaseModel):
    """Source-control context captured at audit time."""

    branch: str
    commit: str
    base_branch: str = "unknown"
    commit_message: str = "(unknown)"


class NewAudit(BaseModel):
    """An audit result that has not been stored yet."""

    url: str
    timestamp: int = Field(default_factory=lambda: int(time.time() * 1000))
    performance_score: Score = Field(None, ge=0, le=100)
    accessibility_score: Score = Field(None, ge=0, le=100)
    best_practices_score: Score = Field(None, ge=0, le=100)
    seo_score: Score = Field(None, ge=0, le=100)
    lcp: Millis = Field(None, ge=0)
    fcp: Millis = Field(None, ge=0)
    tbt: Millis = Field(None, ge=0)
    cls: float | None = Field(None, ge=0)
    speed_index: Millis = Field(None, ge=0)
    git_commit: str | None = None
    git_branch: str | None = None

    @classmethod
    def from_run(
        cls,
        url: str,
        run: AuditRun,
        context: GitContext | None = None,
        timestamp: int | None = None,
    ) -> NewAudit:
        """Flatten an auditor result and its git context into an insertable record."""
        fields: dict[str, Any] = {
            "url": url,
            "performance_score": run.scores.performance,
            "accessibility_score": run.scores.accessibility,
            "best_practices_score": run.scores.best_practices,
            "seo_score": run.scores.seo,
            **run.metrics.model_dump(),
            "git_commit": context.commit if context else None,
            "git_branch": context.branch if context else None,
        }
        if timestamp is not None:
            fields["timestamp"] = timestamp
        return cls(**fields)

    def scores(self) -> AuditScores:
        return AuditScores(
            performance=self.performance_score,
            accessibility=self.accessibility_score,
            best_practices=self.best_practices_score,
            seo=self.seo_score,
        )

    def metrics(self) -> AuditMetrics:
        return AuditMetrics(
            lcp=self.lcp,
            fcp=self.fcp,
            tbt=self.tbt,
            cls=self.cls,
            speed_index=self.speed_index,
        )


class AuditRecord(NewAudit):
    """A stored audit. The id is assigned by the store on insert."""

    id: int
    artifact_path: str | None = None

    @property
    def short_commit(self) -> str | None:
        return self.git_commit[:7] if self.git_commit else None


class AuditDeltas(BaseModel):
    """current - baseline per numeric field; None when either side is absent."""

    performance_score: Score = None
    accessibility_score: Score = None
    best_practices_score: Score = None
    seo_score: Score = None
    lcp: float | None = None
    fcp: float | None = None
    tbt: float | None = None
    cls: float | None = None
    speed_index: float | None = None


class AuditComparison(BaseModel):
    """Field-by-field comparison of two stored audits."""

    baseline: AuditRecord
    current: AuditRecord
    deltas: AuditDeltas


class Trend(BaseModel):
    """Direction of the performance score over a set of audits."""

    direction: TrendDirection
    delta: int | None = None
    points: int = 0

    @property
    def label(self) -> str:
        if self.direction == "insufficient_data":
            return "not enough data"
        if self.direction in ("improving", "declining") and self.delta is not None:
            sign = "+" if self.delta > 0 else ""
            return f"{self.direction} ({sign}{self.delta})"
        return self.direction


class AuditOutcome(BaseModel):
    """What a completed audit run hands back for presentation."""

    record: AuditRecord
    previous: AuditRecord | None = None
    context: GitContext | None = None
