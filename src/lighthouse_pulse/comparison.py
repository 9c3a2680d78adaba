"""Field-by-field comparison of two stored audits."""

from __future__ import annotations

from lighthouse_pulse.models import NUMERIC_FIELDS, AuditComparison, AuditDeltas, AuditRecord
from lighthouse_pulse.storage import AuditStore


def compute_delta(baseline: float | None, current: float | None) -> float | None:
    """Return current - baseline, or None when either value is absent."""
    if baseline is None or current is None:
        return None
    return current - baseline


def compare_records(baseline: AuditRecord, current: AuditRecord) -> AuditComparison:
    """Compare two audit records without touching the store.

    Deltas are exact differences in each field's native unit: score points,
    milliseconds, or unitless CLS.
    """
    deltas = {
        name: compute_delta(getattr(baseline, name), getattr(current, name))
        for name in NUMERIC_FIELDS
    }
    return AuditComparison(baseline=baseline, current=current, deltas=AuditDeltas(**deltas))


def compare_audits(store: AuditStore, baseline_id: int, current_id: int) -> AuditComparison:
    """Load two audits by id and compare them.

    Args:
        store: Audit store instance.
        baseline_id: The reference audit.
        current_id: The audit being evaluated against the baseline.

    Returns:
        AuditComparison with per-field deltas.

    Raises:
        AuditNotFoundError: If either id is unknown.
    """
    baseline = store.get(baseline_id)
    current = store.get(current_id)
    return compare_records(baseline, current)
