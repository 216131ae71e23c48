"""Deterministic nudge copy per rule and escalation level."""

from __future__ import annotations

from dataclasses import dataclass

from app.coordination.constants import (
    RULE_ACTION_OVERDUE,
    RULE_MISSING_STANDUP,
    RULE_QUESTION_UNANSWERED,
    RULE_SNOOZE_EXPIRED,
)


@dataclass(frozen=True)
class NudgeTemplateInput:
    rule_id: str
    escalation_level: int
    blocker_days: float | None = None
    missing_standup_days: float | None = None
    unanswered_hours: float | None = None
    overdue_days: float | None = None
    blocker_reason: str | None = None


@dataclass(frozen=True)
class NudgeCopy:
    title: str
    body: str


def _whole(value: float) -> int | float:
    """Render 2.0 as 2 but keep genuine fractions."""
    return int(value) if float(value).is_integer() else value


def _unanswered_days(hours: float | None) -> int:
    if not hours or hours <= 0:
        return 1
    return max(1, int(hours // 24))


def escalation_suffix(escalation_level: int) -> str:
    return f" Escalation level: L{escalation_level}." if escalation_level > 1 else ""


def build_nudge_template(data: NudgeTemplateInput) -> NudgeCopy:
    suffix = escalation_suffix(data.escalation_level)

    if data.rule_id == RULE_MISSING_STANDUP:
        days = _whole(data.missing_standup_days if data.missing_standup_days is not None else 2)
        return NudgeCopy(
            title="Missing standup follow-up",
            body=(
                f"You haven't submitted standup for {days} days. "
                f"Please update to keep sprint tracking accurate.{suffix}"
            ),
        )

    if data.rule_id == RULE_QUESTION_UNANSWERED:
        days = _unanswered_days(data.unanswered_hours)
        when = "yesterday" if days == 1 else f"{days} days ago"
        return NudgeCopy(
            title="Unanswered clarification reminder",
            body=f"There's an unanswered clarification request on your update from {when}.{suffix}",
        )

    if data.rule_id == RULE_ACTION_OVERDUE:
        if data.overdue_days:
            detail = f" by {_whole(data.overdue_days)} days"
        else:
            detail = ""
        return NudgeCopy(
            title="Action item overdue",
            body=(
                f"A committed action item is overdue{detail} "
                f"and needs owner follow-through.{suffix}"
            ),
        )

    if data.rule_id == RULE_SNOOZE_EXPIRED:
        return NudgeCopy(
            title="Snoozed reminder resumed",
            body=(
                "Your snoozed coordination reminder is active again. "
                f"Please review and take action.{suffix}"
            ),
        )

    days = _whole(data.blocker_days if data.blocker_days is not None else 2)
    reason = data.blocker_reason.strip() if data.blocker_reason and data.blocker_reason.strip() else ""
    reason = reason or "an unresolved dependency"
    return NudgeCopy(
        title="Persistent blocker requires action",
        body=f"Your task is blocked for {days} days due to {reason}. Do you still need assistance?{suffix}",
    )
