"""Markdown rendering for audit reports.

A single set of value formatters and tables shared by all tools. Delta
arrows follow the regression/improvement classification in analysis, so a
change below the noise threshold shows no arrow.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime

from lighthouse_pulse.analysis import FIELD_LABELS, classify_delta
from lighthouse_pulse.comparison import compute_delta
from lighthouse_pulse.models import (
    SCORE_FIELDS,
    AuditComparison,
    AuditRecord,
    NewAudit,
)

MISSING = "-"
UP = "⬆️"
DOWN = "⬇️"

METRIC_ROWS: tuple[tuple[str, str], ...] = (
    ("lcp", "LCP        "),
    ("fcp", "FCP        "),
    ("tbt", "TBT        "),
    ("cls", "CLS        "),
    ("speed_index", "Speed Index"),
)
SCORE_ROWS: tuple[tuple[str, str], ...] = (
    ("performance_score", "Performance   "),
    ("accessibility_score", "Accessibility "),
    ("best_practices_score", "Best Practices"),
    ("seo_score", "SEO           "),
)


def format_ms(ms: float | None) -> str:
    if ms is None:
        return MISSING
    return f"{round(ms):,}ms"


def format_score(score: int | None) -> str:
    if score is None:
        return MISSING
    return str(score)


def format_cls(cls: float | None) -> str:
    if cls is None:
        return MISSING
    return f"{cls:.3f}"


def format_value(field: str, value: float | None) -> str:
    if field in SCORE_FIELDS:
        return format_score(value)  # type: ignore[arg-type]
    if field == "cls":
        return format_cls(value)
    return format_ms(value)


def format_timestamp(ts: int) -> str:
    """Render epoch milliseconds as 'YYYY-MM-DD HH:MM' in UTC."""
    return datetime.fromtimestamp(ts / 1000, tz=UTC).strftime("%Y-%m-%d %H:%M")


def time_ago(ts: int, now_ms: int | None = None) -> str:
    now = now_ms if now_ms is not None else int(datetime.now(UTC).timestamp() * 1000)
    minutes = max(now - ts, 0) // 60_000
    hours = minutes // 60
    days = hours // 24
    if days > 0:
        return f"{days} day{'' if days == 1 else 's'} ago"
    if hours > 0:
        return f"{hours} hour{'' if hours == 1 else 's'} ago"
    if minutes > 0:
        return f"{minutes} minute{'' if minutes == 1 else 's'} ago"
    return "just now"


def score_emoji(score: int | None) -> str:
    if score is None:
        return "⚪"
    if score >= 90:
        return "🟢"
    if score >= 50:
        return "🟡"
    return "🔴"


def signal_arrow(field: str, delta: float | None) -> str:
    """UP for an improvement, DOWN for a regression, empty otherwise."""
    signal = classify_delta(field, delta)
    if signal == "improvement":
        return UP
    if signal == "regression":
        return DOWN
    return ""


def delta_label(field: str, delta: float | None) -> str:
    """Signed delta in the field's unit, followed by an arrow when it is a real change."""
    if delta is None or delta == 0:
        return MISSING
    sign = "+" if delta > 0 else "-"
    if field in SCORE_FIELDS:
        text = f"{sign}{abs(int(delta))}"
    elif field == "cls":
        text = f"{sign}{abs(delta):.3f}"
    else:
        text = f"{sign}{abs(round(delta))}ms"
    arrow = signal_arrow(field, delta)
    return f"{text} {arrow}" if arrow else text


def score_table(record: NewAudit, previous: NewAudit | None = None, mode: str = "simple") -> str:
    """Scores of one audit, with a grade column ("grade") or a trend column ("trend")."""
    third = {"grade": "Grade", "trend": "Trend"}.get(mode)
    if third:
        lines = [f"| Category       | Score | {third} |", "|----------------|-------|-------|"]
    else:
        lines = ["| Category       | Score |", "|----------------|-------|"]

    for field, label in SCORE_ROWS:
        value = getattr(record, field)
        score = format_score(value).rjust(5)
        if mode == "grade":
            lines.append(f"| {label} | {score} | {score_emoji(value)} |")
        elif mode == "trend":
            prev = getattr(previous, field) if previous is not None else None
            lines.append(f"| {label} | {score} | {delta_label(field, compute_delta(prev, value))} |")
        else:
            lines.append(f"| {label} | {score} |")
    return "\n".join(lines)


def metrics_table(record: NewAudit, previous: NewAudit | None = None) -> str:
    """Core Web Vitals of one audit, with a trend column when a previous audit is given."""
    if previous is not None:
        lines = ["| Metric      | Value    | Trend       |", "|-------------|----------|-------------|"]
    else:
        lines = ["| Metric      | Value    |", "|-------------|----------|"]

    for field, label in METRIC_ROWS:
        value = getattr(record, field)
        cell = format_value(field, value).rjust(8)
        if previous is None:
            lines.append(f"| {label} | {cell} |")
        else:
            delta = compute_delta(getattr(previous, field), value)
            lines.append(f"| {label} | {cell} | {delta_label(field, delta).rjust(11)} |")
    return "\n".join(lines)


def metrics_list(record: NewAudit) -> str:
    """Bullet list of Core Web Vitals with pass/fail marks against the usual targets."""

    def mark(value: float | None, target: float) -> str:
        if value is None:
            return ""
        return " ✅" if value <= target else " ❌"

    return "\n".join([
        f"- **LCP** {format_ms(record.lcp)}{mark(record.lcp, 2500)}",
        f"- **FCP** {format_ms(record.fcp)}",
        f"- **TBT** {format_ms(record.tbt)}{mark(record.tbt, 200)}",
        f"- **CLS** {format_cls(record.cls)}{mark(record.cls, 0.1)}",
        f"- **Speed Index** {format_ms(record.speed_index)}",
    ])


def _source_line(role: str, record: AuditRecord) -> str:
    commit = f" (commit: {record.short_commit})" if record.short_commit else ""
    return f"{role} audit: {format_timestamp(record.timestamp)}{commit}"


def comparison_tables(comparison: AuditComparison, baseline_label: str, current_label: str) -> str:
    """Side-by-side score and metric tables for a comparison, plus the audit sources."""
    baseline, current, deltas = comparison.baseline, comparison.current, comparison.deltas

    lines = [
        f"| Category       | {baseline_label.rjust(16)} | {current_label.rjust(16)} | Delta          |",
        f"|----------------|{'-' * 18}|{'-' * 18}|----------------|",
    ]
    for field, label in SCORE_ROWS:
        lines.append(
            f"| {label} | {format_score(getattr(baseline, field)).rjust(16)} "
            f"| {format_score(getattr(current, field)).rjust(16)} "
            f"| {delta_label(field, getattr(deltas, field)).rjust(14)} |"
        )

    lines += [
        "",
        f"| Metric      | {baseline_label.rjust(10)} | {current_label.rjust(10)} | Delta       |",
        f"|-------------|{'-' * 12}|{'-' * 12}|-------------|",
    ]
    for field, label in METRIC_ROWS:
        lines.append(
            f"| {label} | {format_value(field, getattr(baseline, field)).rjust(10)} "
            f"| {format_value(field, getattr(current, field)).rjust(10)} "
            f"| {delta_label(field, getattr(deltas, field)).rjust(11)} |"
        )

    lines += [
        "",
        "### Audit Sources",
        _source_line("Baseline", baseline),
        _source_line("Current", current),
    ]
    return "\n".join(lines)


def timeline(history: Sequence[AuditRecord]) -> str:
    """History table, newest first, with arrows against the next older audit."""
    lines = [
        "| # | Date             | Branch          | Commit  | Perf | A11y | BP  | SEO | LCP      | TBT      | CLS   |",
        "|---|------------------|-----------------|---------|------|------|-----|-----|----------|----------|-------|",
    ]

    def with_arrow(field: str, audit: AuditRecord, prev: AuditRecord | None) -> str:
        value = getattr(audit, field)
        text = format_value(field, value)
        if prev is None:
            return text
        arrow = signal_arrow(field, compute_delta(getattr(prev, field), value))
        return f"{text} {arrow}" if arrow else text

    for i, audit in enumerate(history):
        prev = history[i + 1] if i + 1 < len(history) else None
        branch = (audit.git_branch or MISSING)[:15]
        lines.append(
            f"| {len(history) - i} "
            f"| {format_timestamp(audit.timestamp)} "
            f"| {branch.ljust(15)} "
            f"| {(audit.short_commit or MISSING).ljust(7)} "
            f"| {with_arrow('performance_score', audit, prev).ljust(4)} "
            f"| {format_score(audit.accessibility_score).ljust(4)} "
            f"| {format_score(audit.best_practices_score).ljust(3)} "
            f"| {format_score(audit.seo_score).ljust(3)} "
            f"| {with_arrow('lcp', audit, prev).ljust(8)} "
            f"| {with_arrow('tbt', audit, prev).ljust(8)} "
            f"| {format_cls(audit.cls).ljust(5)} |"
        )
    return "\n".join(lines)


def bullet_section(title: str, items: Sequence[str]) -> list[str]:
    """Markdown lines for a titled bullet list, or nothing when there are no items."""
    if not items:
        return []
    return ["", f"### {title}", *(f"- {item}" for item in items)]


def failure_report(title: str, message: str) -> str:
    return f"## {title} Failed\n\n**Error:** {message}"
