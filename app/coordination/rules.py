"""Coordination rule catalog and evaluator.

Each rule listens to exactly one event type. Evaluation is pure: it never
touches the store and never raises for missing or malformed metadata; a rule
that cannot resolve a target simply produces no draft.

Escalation target by level:
- L3: product owner → project owner → original target
- L2: dependency owner → manager → original target
- L1: original target
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from functools import cached_property

from app.coordination.constants import (
    ACTION_OVERDUE,
    BLOCKER_PERSISTED,
    MAX_ESCALATION_LEVEL,
    MIN_ESCALATION_LEVEL,
    MISSING_STANDUP_DETECTED,
    QUESTION_UNANSWERED,
    RULE_ACTION_OVERDUE,
    RULE_BLOCKER_PERSISTED,
    RULE_MISSING_STANDUP,
    RULE_QUESTION_UNANSWERED,
    RULE_SNOOZE_EXPIRED,
    SEVERITY_RANK,
    SNOOZE_EXPIRED,
)
from app.coordination.metadata import (
    ActionOverdueMeta,
    BlockerPersisted,
    EscalationHints,
    EventMetadata,
    MissingStandup,
    QuestionUnanswered,
    SnoozeExpired,
    parse_event_metadata,
)
from app.coordination.types import CoordinationEvent, CoordinationTriggerDraft


@dataclass
class CoordinationRuleContext:
    """Inputs to a rule's condition and action."""

    event: CoordinationEvent
    now: datetime

    @cached_property
    def meta(self) -> EventMetadata:
        return parse_event_metadata(self.event.event_type, self.event.metadata)


@dataclass(frozen=True)
class DraftFields:
    """What a rule action decides; the evaluator adds rule_id and dedup_key."""

    project_id: str
    target_user_id: str
    severity: str
    escalation_level: int
    related_entity_id: str | None = None


@dataclass(frozen=True)
class CoordinationRule:
    id: str
    trigger_event: str
    cooldown_minutes: int
    condition: Callable[[CoordinationRuleContext], bool] = field(repr=False)
    action: Callable[[CoordinationRuleContext], DraftFields | None] = field(repr=False)


def severity_at_least(actual: str | None, minimum: str) -> bool:
    """Missing or unknown severity ranks as LOW."""
    return SEVERITY_RANK.get(actual or "LOW", 1) >= SEVERITY_RANK[minimum]


def _level_from_thresholds(value: float | None, level2_at: float, level3_at: float) -> int:
    v = value or 0
    if v >= level3_at:
        return 3
    if v >= level2_at:
        return 2
    return 1


def blocker_escalation_level(blocker_days: float | None) -> int:
    return _level_from_thresholds(blocker_days, 3, 4)


def missing_standup_escalation_level(missing_days: float | None) -> int:
    return _level_from_thresholds(missing_days, 3, 4)


def question_escalation_level(unanswered_hours: float | None) -> int:
    return _level_from_thresholds(unanswered_hours, 48, 72)


def overdue_escalation_level(overdue_days: float | None) -> int:
    return _level_from_thresholds(overdue_days, 3, 5)


def resolve_escalation_target(
    hints: EscalationHints,
    escalation_level: int,
    fallback_target_user_id: str | None,
) -> str | None:
    """Pick who receives an escalation at the given level. None when nobody can."""
    fallback = fallback_target_user_id if fallback_target_user_id else None
    if escalation_level >= 3:
        return hints.po_user_id or hints.project_owner_user_id or fallback
    if escalation_level == 2:
        return hints.dependency_owner_user_id or hints.manager_user_id or fallback
    return fallback


def _draft_fields(
    ctx: CoordinationRuleContext,
    escalation_level: int,
    severity: str,
) -> DraftFields | None:
    target = resolve_escalation_target(ctx.meta.hints, escalation_level, ctx.event.target_user_id)
    if not target:
        return None
    return DraftFields(
        project_id=ctx.event.project_id,
        target_user_id=target,
        related_entity_id=ctx.event.related_entity_id,
        severity=severity,
        escalation_level=escalation_level,
    )


# ── Blocker ──────────────────────────────────────────────────────────────


def _blocker_condition(ctx: CoordinationRuleContext) -> bool:
    meta = ctx.meta
    if not isinstance(meta, BlockerPersisted) or meta.resolved:
        return False
    return (meta.blocker_days or 0) >= 2 and severity_at_least(ctx.event.severity, "HIGH")


def _blocker_action(ctx: CoordinationRuleContext) -> DraftFields | None:
    meta = ctx.meta
    if not isinstance(meta, BlockerPersisted):
        return None
    return _draft_fields(ctx, blocker_escalation_level(meta.blocker_days), "HIGH")


# ── Missing standup ──────────────────────────────────────────────────────


def _missing_standup_condition(ctx: CoordinationRuleContext) -> bool:
    meta = ctx.meta
    return isinstance(meta, MissingStandup) and (meta.missing_days or 0) >= 2


def _missing_standup_action(ctx: CoordinationRuleContext) -> DraftFields | None:
    meta = ctx.meta
    if not isinstance(meta, MissingStandup):
        return None
    return _draft_fields(
        ctx,
        missing_standup_escalation_level(meta.missing_days),
        ctx.event.severity or "MEDIUM",
    )


# ── Unanswered question ──────────────────────────────────────────────────


def _question_condition(ctx: CoordinationRuleContext) -> bool:
    meta = ctx.meta
    return isinstance(meta, QuestionUnanswered) and (meta.unanswered_hours or 0) >= 24


def _question_action(ctx: CoordinationRuleContext) -> DraftFields | None:
    meta = ctx.meta
    if not isinstance(meta, QuestionUnanswered):
        return None
    return _draft_fields(
        ctx,
        question_escalation_level(meta.unanswered_hours),
        ctx.event.severity or "MEDIUM",
    )


# ── Overdue action item ──────────────────────────────────────────────────


def _overdue_condition(ctx: CoordinationRuleContext) -> bool:
    meta = ctx.meta
    if not isinstance(meta, ActionOverdueMeta) or meta.resolved:
        return False
    return (meta.overdue_days or 0) >= 1


def _overdue_action(ctx: CoordinationRuleContext) -> DraftFields | None:
    meta = ctx.meta
    if not isinstance(meta, ActionOverdueMeta):
        return None
    return _draft_fields(
        ctx,
        overdue_escalation_level(meta.overdue_days),
        ctx.event.severity or "MEDIUM",
    )


# ── Snoozed reminder expired ─────────────────────────────────────────────


def _snooze_condition(ctx: CoordinationRuleContext) -> bool:
    meta = ctx.meta
    return isinstance(meta, SnoozeExpired) and meta.retrigger


def _snooze_action(ctx: CoordinationRuleContext) -> DraftFields | None:
    meta = ctx.meta
    if not isinstance(meta, SnoozeExpired):
        return None
    previous = int(meta.previous_escalation_level or MIN_ESCALATION_LEVEL)
    level = max(MIN_ESCALATION_LEVEL, min(MAX_ESCALATION_LEVEL, previous))
    return _draft_fields(ctx, level, ctx.event.severity or "MEDIUM")


COORDINATION_RULES: tuple[CoordinationRule, ...] = (
    CoordinationRule(
        id=RULE_BLOCKER_PERSISTED,
        trigger_event=BLOCKER_PERSISTED,
        cooldown_minutes=24 * 60,
        condition=_blocker_condition,
        action=_blocker_action,
    ),
    CoordinationRule(
        id=RULE_MISSING_STANDUP,
        trigger_event=MISSING_STANDUP_DETECTED,
        cooldown_minutes=24 * 60,
        condition=_missing_standup_condition,
        action=_missing_standup_action,
    ),
    CoordinationRule(
        id=RULE_QUESTION_UNANSWERED,
        trigger_event=QUESTION_UNANSWERED,
        cooldown_minutes=24 * 60,
        condition=_question_condition,
        action=_question_action,
    ),
    CoordinationRule(
        id=RULE_ACTION_OVERDUE,
        trigger_event=ACTION_OVERDUE,
        cooldown_minutes=24 * 60,
        condition=_overdue_condition,
        action=_overdue_action,
    ),
    CoordinationRule(
        id=RULE_SNOOZE_EXPIRED,
        trigger_event=SNOOZE_EXPIRED,
        cooldown_minutes=60,
        condition=_snooze_condition,
        action=_snooze_action,
    ),
)


def _index_rules(rules: tuple[CoordinationRule, ...]) -> dict[str, tuple[CoordinationRule, ...]]:
    index: dict[str, list[CoordinationRule]] = {}
    for rule in rules:
        index.setdefault(rule.trigger_event, []).append(rule)
    return {event_type: tuple(matching) for event_type, matching in index.items()}


# Catalog order preserved within each event type.
RULES_BY_EVENT: dict[str, tuple[CoordinationRule, ...]] = _index_rules(COORDINATION_RULES)
_RULES_BY_ID: dict[str, CoordinationRule] = {rule.id: rule for rule in COORDINATION_RULES}


def build_trigger_dedup_key(
    rule_id: str,
    target_user_id: str,
    related_entity_id: str | None = None,
    escalation_level: int | None = None,
) -> str:
    """Identity of one escalation: rule, recipient, entity and level."""
    return f"{rule_id}:{target_user_id}:{related_entity_id or 'none'}:L{escalation_level or 1}"


def get_rule_by_id(rule_id: str) -> CoordinationRule | None:
    return _RULES_BY_ID.get(rule_id)


def evaluate_coordination_rules(
    event: CoordinationEvent,
    now: datetime,
) -> list[CoordinationTriggerDraft]:
    """Run every rule listening to event.event_type; return drafts in catalog order."""
    ctx = CoordinationRuleContext(event=event, now=now)
    drafts: list[CoordinationTriggerDraft] = []
    for rule in RULES_BY_EVENT.get(event.event_type, ()):
        if not rule.condition(ctx):
            continue
        fields = rule.action(ctx)
        if fields is None:
            continue
        drafts.append(
            CoordinationTriggerDraft(
                project_id=fields.project_id,
                rule_id=rule.id,
                target_user_id=fields.target_user_id,
                related_entity_id=fields.related_entity_id,
                severity=fields.severity,
                escalation_level=fields.escalation_level,
                dedup_key=build_trigger_dedup_key(
                    rule.id,
                    fields.target_user_id,
                    fields.related_entity_id,
                    fields.escalation_level,
                ),
            )
        )
    return drafts
