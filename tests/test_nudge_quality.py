"""Tests for the nudge quality estimator."""

from __future__ import annotations

import pytest

from app.coordination.quality import (
    calculate_nudge_quality_metrics,
    maybe_adjust_severity_for_dismissal_rate,
    reduce_severity,
)


def test_rates_from_counts() -> None:
    metrics = calculate_nudge_quality_metrics(6, 4)
    assert metrics.resolved_rate == pytest.approx(0.6)
    assert metrics.dismissed_rate == pytest.approx(0.4)


def test_no_history_is_a_perfect_record() -> None:
    metrics = calculate_nudge_quality_metrics(0, 0)
    assert metrics.resolved_rate == 1.0
    assert metrics.dismissed_rate == 0.0


@pytest.mark.parametrize(
    ("severity", "expected"),
    [("HIGH", "MEDIUM"), ("MEDIUM", "LOW"), ("LOW", "LOW")],
)
def test_reduce_severity(severity: str, expected: str) -> None:
    assert reduce_severity(severity) == expected


def test_adjust_only_above_threshold() -> None:
    """The threshold itself does not dampen."""
    assert maybe_adjust_severity_for_dismissal_rate("HIGH", 0.45, 0.45) == "HIGH"
    assert maybe_adjust_severity_for_dismissal_rate("HIGH", 0.46, 0.45) == "MEDIUM"
    assert maybe_adjust_severity_for_dismissal_rate("MEDIUM", 0.9, 0.45) == "LOW"
    assert maybe_adjust_severity_for_dismissal_rate("LOW", 0.9, 0.45) == "LOW"
