"""Trend and signal analysis over stored audits.

Turns raw numeric audits into judgments: per-field regression/improvement
classification of deltas, performance trend direction over a history window
or a single step, notable changes across a window, and recommendations for
the latest audit. Every function here is pure.
"""

from __future__ import annotations

from collections.abc import Sequence

from lighthouse_pulse.models import (
    NUMERIC_FIELDS,
    SCORE_FIELDS,
    AuditDeltas,
    AuditRecord,
    Signal,
    Trend,
)

FIELD_LABELS: dict[str, str] = {
    "performance_score": "Performance",
    "accessibility_score": "Accessibility",
    "best_practices_score": "Best Practices",
    "seo_score": "SEO",
    "lcp": "LCP",
    "fcp": "FCP",
    "tbt": "TBT",
    "cls": "CLS",
    "speed_index": "Speed Index",
}

# Score deltas strictly between -5 and +5 are noise.
SCORE_SIGNAL_THRESHOLD = 5
MS_SIGNAL_THRESHOLDS: dict[str, float] = {
    "lcp": 200.0,
    "fcp": 200.0,
    "speed_index": 200.0,
    "tbt": 50.0,
}
CLS_SIGNAL_THRESHOLD = 0.01

# Window trends compare the oldest and newest audit of a history window;
# step trends compare the newest audit with the one right before it, where
# run-to-run noise is larger.
WINDOW_STABLE_THRESHOLD = 2
STEP_STABLE_THRESHOLD = 3

NOTABLE_SCORE_CHANGE = 10
NOTABLE_MS_CHANGES: dict[str, float] = {
    "lcp": 500.0,
    "tbt": 200.0,
    "speed_index": 500.0,
}

LCP_TARGET_MS = 2500
TBT_TARGET_MS = 200
CLS_TARGET = 0.1

_REGRESSION_HINTS: dict[str, str] = {
    "lcp": " (page loads slower)",
    "tbt": " (main thread more blocked)",
    "cls": " (more layout shift)",
}


def classify_delta(field: str, delta: float | None) -> Signal | None:
    """Classify a delta on one field as a regression, an improvement or noise.

    Args:
        field: A numeric AuditRecord field name.
        delta: current - baseline for that field.

    Returns:
        "regression", "improvement" or "neutral"; None when the delta is absent.
    """
    if delta is None:
        return None
    if field in SCORE_FIELDS:
        if delta <= -SCORE_SIGNAL_THRESHOLD:
            return "regression"
        if delta >= SCORE_SIGNAL_THRESHOLD:
            return "improvement"
        return "neutral"
    if field == "cls":
        if delta > CLS_SIGNAL_THRESHOLD:
            return "regression"
        if delta < -CLS_SIGNAL_THRESHOLD:
            return "improvement"
        return "neutral"
    if field in MS_SIGNAL_THRESHOLDS:
        threshold = MS_SIGNAL_THRESHOLDS[field]
        if delta >= threshold:
            return "regression"
        if delta <= -threshold:
            return "improvement"
        return "neutral"
    raise ValueError(f"Unknown audit field: {field}")


def classify_deltas(deltas: AuditDeltas) -> dict[str, Signal | None]:
    return {name: classify_delta(name, getattr(deltas, name)) for name in NUMERIC_FIELDS}


def _describe_change(field: str, delta: float, signal: Signal) -> str:
    label = FIELD_LABELS[field]
    if field in SCORE_FIELDS:
        verb = "dropped" if signal == "regression" else "improved"
        return f"{label} score {verb} by {abs(int(delta))} points"
    amount = f"{abs(delta):.3f}" if field == "cls" else f"{abs(round(delta))}ms"
    if signal == "regression":
        return f"{label} increased by {amount}{_REGRESSION_HINTS.get(field, '')}"
    return f"{label} improved by {amount}"


def _summarize(deltas: AuditDeltas, wanted: Signal) -> list[str]:
    items: list[str] = []
    for name in NUMERIC_FIELDS:
        delta = getattr(deltas, name)
        if classify_delta(name, delta) == wanted:
            items.append(_describe_change(name, delta, wanted))
    return items


def regression_summary(deltas: AuditDeltas) -> list[str]:
    """Human-readable lines for every field that regressed."""
    return _summarize(deltas, "regression")


def improvement_summary(deltas: AuditDeltas) -> list[str]:
    """Human-readable lines for every field that improved."""
    return _summarize(deltas, "improvement")


def _performance_trend(newest: AuditRecord, base: AuditRecord, points: int, stable_below: int) -> Trend:
    if newest.performance_score is None or base.performance_score is None:
        return Trend(direction="unknown", points=points)
    delta = newest.performance_score - base.performance_score
    if abs(delta) < stable_below:
        return Trend(direction="stable", delta=delta, points=points)
    return Trend(direction="improving" if delta > 0 else "declining", delta=delta, points=points)


def window_trend(history: Sequence[AuditRecord]) -> Trend:
    """Performance trend between the oldest and newest audit of a newest-first window.

    Intermediate audits are ignored.
    """
    if len(history) < 2:
        return Trend(direction="insufficient_data", points=len(history))
    return _performance_trend(history[0], history[-1], len(history), WINDOW_STABLE_THRESHOLD)


def step_trend(history: Sequence[AuditRecord]) -> Trend:
    """Performance trend between the newest audit and the one immediately before it."""
    if len(history) < 2:
        return Trend(direction="insufficient_data", points=len(history))
    return _performance_trend(history[0], history[1], 2, STEP_STABLE_THRESHOLD)


def notable_changes(history: Sequence[AuditRecord]) -> list[str]:
    """Large moves between the oldest and newest audit of a newest-first window."""
    if len(history) < 2:
        return []
    newest, oldest = history[0], history[-1]
    changes: list[str] = []

    for name in SCORE_FIELDS:
        current, base = getattr(newest, name), getattr(oldest, name)
        if current is None or base is None:
            continue
        delta = current - base
        if delta >= NOTABLE_SCORE_CHANGE:
            changes.append(f"{FIELD_LABELS[name]} improved by {delta} points")
        elif delta <= -NOTABLE_SCORE_CHANGE:
            changes.append(f"{FIELD_LABELS[name]} dropped by {abs(delta)} points")

    for name, threshold in NOTABLE_MS_CHANGES.items():
        current, base = getattr(newest, name), getattr(oldest, name)
        if current is None or base is None:
            continue
        delta = current - base
        if delta <= -threshold:
            changes.append(f"{FIELD_LABELS[name]} improved by {abs(round(delta))}ms")
        elif delta >= threshold:
            changes.append(f"{FIELD_LABELS[name]} regressed by {round(delta)}ms")

    return changes


def build_recommendations(record: AuditRecord) -> list[str]:
    """Actionable advice for a single audit.

    Rules are evaluated in a fixed order and fire independently. The positive
    message is only given when no other rule fired.
    """
    recs: list[str] = []
    perf = record.performance_score

    if perf is not None and perf < 50:
        recs.append("Performance is critical: run `pulse_audit` and investigate LCP and TBT")
    elif perf is not None and perf < 90:
        recs.append("Performance has room to improve: check LCP and Speed Index")

    if record.accessibility_score is not None and record.accessibility_score < 90:
        recs.append("Accessibility needs attention: review contrast, labels, and ARIA attributes")

    if record.lcp is not None and record.lcp > LCP_TARGET_MS:
        recs.append(
            f"LCP is {round(record.lcp)}ms (target: <{LCP_TARGET_MS:,}ms): "
            "optimize images and server response time"
        )

    if record.tbt is not None and record.tbt > TBT_TARGET_MS:
        recs.append(
            f"TBT is {round(record.tbt)}ms (target: <{TBT_TARGET_MS}ms): reduce JavaScript execution time"
        )

    if record.cls is not None and record.cls > CLS_TARGET:
        recs.append(
            f"CLS is {record.cls:.3f} (target: <{CLS_TARGET}): add size attributes to images and embeds"
        )

    if not recs and perf is not None and perf >= 90:
        recs.append("All scores look great: keep monitoring for regressions")

    return recs
