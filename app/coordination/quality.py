"""Nudge quality estimator: historical outcome rates and severity dampening."""

from __future__ import annotations

from dataclasses import dataclass

from app.coordination.constants import SEVERITY_RANK


@dataclass(frozen=True)
class NudgeQualityMetrics:
    resolved_rate: float
    dismissed_rate: float


def calculate_nudge_quality_metrics(
    resolved_count: int,
    dismissed_count: int,
) -> NudgeQualityMetrics:
    """Share of resolved vs dismissed outcomes. No history counts as a perfect record."""
    total = resolved_count + dismissed_count
    if total <= 0:
        return NudgeQualityMetrics(resolved_rate=1.0, dismissed_rate=0.0)
    return NudgeQualityMetrics(
        resolved_rate=resolved_count / total,
        dismissed_rate=dismissed_count / total,
    )


def reduce_severity(severity: str) -> str:
    """One step down HIGH → MEDIUM → LOW; LOW stays LOW."""
    if severity == "HIGH":
        return "MEDIUM"
    return "LOW"


def maybe_adjust_severity_for_dismissal_rate(
    severity: str,
    dismissed_rate: float,
    dismissal_rate_threshold: float,
) -> str:
    """Reduce severity one step when dismissed_rate exceeds the threshold."""
    if dismissed_rate <= dismissal_rate_threshold:
        return severity
    if SEVERITY_RANK.get(severity, 1) <= SEVERITY_RANK["LOW"]:
        return "LOW"
    return reduce_severity(severity)
