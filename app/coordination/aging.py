"""Synthetic "time has passed" events for the scheduled sweep.

A pending trigger is turned back into the event its rule listens to, with the
elapsed-time metric recomputed from the trigger's age. Feeding these through
the evaluator lets a stalled item climb escalation levels without any new
upstream signal. Synthetic events are never persisted.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime

from app.coordination.constants import (
    ACTION_OVERDUE,
    BLOCKER_PERSISTED,
    MISSING_STANDUP_DETECTED,
    QUESTION_UNANSWERED,
    RULE_ACTION_OVERDUE,
    RULE_BLOCKER_PERSISTED,
    RULE_MISSING_STANDUP,
    RULE_QUESTION_UNANSWERED,
)
from app.coordination.types import CoordinationEvent, CoordinationTrigger

SYNTHETIC_EVENT_PREFIX = "synthetic-"

_HINT_KEYS = ("poUserId", "projectOwnerUserId", "dependencyOwnerUserId", "managerUserId")

# rule id → (event type, metadata key, seconds per unit, value the rule needed at L1/L2/L3)
# Adding the level baseline keeps an aged trigger from evaluating below its own level.
_AGING_PLANS: dict[str, tuple[str, str, int, tuple[int, int, int]]] = {
    RULE_QUESTION_UNANSWERED: (QUESTION_UNANSWERED, "unansweredHours", 3600, (24, 48, 72)),
    RULE_BLOCKER_PERSISTED: (BLOCKER_PERSISTED, "blockerDays", 86400, (2, 3, 4)),
    RULE_MISSING_STANDUP: (MISSING_STANDUP_DETECTED, "missingDays", 86400, (2, 3, 4)),
    RULE_ACTION_OVERDUE: (ACTION_OVERDUE, "overdueDays", 86400, (1, 3, 5)),
}


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)


def aging_event_type(rule_id: str) -> str | None:
    """Event type the sweep re-synthesizes for a rule, or None if the rule does not age."""
    plan = _AGING_PLANS.get(rule_id)
    return plan[0] if plan else None


def aging_metric(trigger: CoordinationTrigger, now: datetime) -> tuple[str, int] | None:
    """Metadata key and aged value for a trigger: its level baseline plus elapsed units."""
    plan = _AGING_PLANS.get(trigger.rule_id)
    if plan is None:
        return None
    _, key, unit_seconds, baselines = plan
    level = max(1, min(3, trigger.escalation_level))
    elapsed = max(0.0, (_as_utc(now) - _as_utc(trigger.created_at)).total_seconds())
    return key, math.floor(elapsed / unit_seconds) + baselines[level - 1]


def synthesize_aging_event(
    trigger: CoordinationTrigger,
    now: datetime,
    source_event: CoordinationEvent | None = None,
) -> CoordinationEvent | None:
    """Aging event for an active trigger, or None when its rule does not age.

    source_event, when given, is the latest real event behind the trigger; its
    original target and escalation hints are carried over so the next level
    routes the same way a fresh upstream event would.
    """
    aged = aging_metric(trigger, now)
    if aged is None:
        return None
    key, value = aged
    metadata: dict = {key: value}

    target_user_id = trigger.target_user_id
    if source_event is not None:
        source_meta = source_event.metadata or {}
        for hint in _HINT_KEYS:
            if hint in source_meta:
                metadata[hint] = source_meta[hint]
        target_user_id = source_event.target_user_id or target_user_id

    return CoordinationEvent(
        id=f"{SYNTHETIC_EVENT_PREFIX}{trigger.id}",
        project_id=trigger.project_id,
        event_type=_AGING_PLANS[trigger.rule_id][0],
        target_user_id=target_user_id,
        related_entity_id=trigger.related_entity_id,
        severity=trigger.severity,
        metadata=metadata,
        occurred_at=now,
        processed_at=None,
        synthetic=True,
    )
