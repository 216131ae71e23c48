"""Trigger lifecycle: turn coordination events into deduplicated, escalating triggers.

For each event, oldest first:
  1. resolve active triggers the event clears
  2. evaluate rules and create triggers, honoring per-rule cooldowns
  3. mark the event processed

The scheduled sweep feeds synthetic aging events through the same pipeline so
stalled items climb escalation levels without new upstream signals.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

from app.config import get_settings
from app.coordination.aging import SYNTHETIC_EVENT_PREFIX
from app.coordination.constants import (
    ACTION_INTERACTION,
    ACTION_OVERDUE,
    ACTIVE_TRIGGER_STATUSES,
    BLOCKER_PERSISTED,
    COORDINATION_EVENT_TYPES,
    QUESTION_EVENT,
    RULE_ACTION_OVERDUE,
    RULE_BLOCKER_PERSISTED,
    RULE_QUESTION_UNANSWERED,
    SEVERITY_RANK,
    TRIGGER_RESOLVED,
)
from app.coordination.metadata import (
    ActionInteractionMeta,
    ActionOverdueMeta,
    BlockerPersisted,
    QuestionActivity,
    parse_event_metadata,
)
from app.coordination.rules import evaluate_coordination_rules, get_rule_by_id
from app.coordination.store import CoordinationStore
from app.coordination.types import (
    CoordinationEvent,
    CoordinationLogEntry,
    CoordinationTriggerDraft,
    ProcessResult,
)

logger = logging.getLogger(__name__)


def rule_ids_to_resolve_for_event(event: CoordinationEvent) -> tuple[str, ...]:
    """Rule ids whose triggers an event explicitly clears. Empty when it clears none."""
    meta = parse_event_metadata(event.event_type, event.metadata)

    if event.event_type == ACTION_INTERACTION and isinstance(meta, ActionInteractionMeta):
        if meta.action_state == "DONE":
            return (RULE_BLOCKER_PERSISTED, RULE_ACTION_OVERDUE)
    if event.event_type == QUESTION_EVENT and isinstance(meta, QuestionActivity):
        if meta.question_status == "ANSWERED":
            return (RULE_QUESTION_UNANSWERED,)
    if event.event_type == BLOCKER_PERSISTED and isinstance(meta, BlockerPersisted):
        if meta.resolved:
            return (RULE_BLOCKER_PERSISTED,)
    if event.event_type == ACTION_OVERDUE and isinstance(meta, ActionOverdueMeta):
        if meta.resolved:
            return (RULE_BLOCKER_PERSISTED, RULE_ACTION_OVERDUE)
    return ()


def within_cooldown(created_at: datetime, cooldown_minutes: int, now: datetime) -> bool:
    return now - created_at < timedelta(minutes=cooldown_minutes)


def resolve_triggers_for_entity(
    store: CoordinationStore,
    *,
    project_id: str,
    related_entity_id: str | None,
    rule_ids: Sequence[str] | None = None,
    resolved_at: datetime | None = None,
) -> int:
    """Resolve active triggers for an entity (optionally limited to rule ids)."""
    return store.resolve_triggers(
        project_id=project_id,
        related_entity_id=related_entity_id,
        rule_ids=rule_ids,
        resolved_at=resolved_at or datetime.now(UTC),
    )


class _RunLog:
    """Collects diagnostics when the caller asked for them."""

    def __init__(self, enabled: bool) -> None:
        self.entries: list[CoordinationLogEntry] | None = [] if enabled else None

    def add(self, level: str, message: str, **fields: Any) -> None:
        if self.entries is not None:
            self.entries.append(CoordinationLogEntry(level=level, message=message, **fields))


def _resolve_for_event(
    store: CoordinationStore,
    event: CoordinationEvent,
    drafts: list[CoordinationTriggerDraft],
    now: datetime,
    run_log: _RunLog,
) -> int:
    # Synthetic aging events only ever supersede their own source trigger.
    if event.synthetic:
        return 0

    rule_ids = rule_ids_to_resolve_for_event(event)
    if rule_ids:
        resolved = store.resolve_triggers(
            project_id=event.project_id,
            related_entity_id=event.related_entity_id,
            rule_ids=rule_ids,
            resolved_at=now,
            created_before=event.processed_at,
        )
    elif event.related_entity_id:
        # Keys this event re-asserts stay active, and a replayed event never
        # touches triggers created after it was first processed.
        resolved = store.resolve_triggers(
            project_id=event.project_id,
            related_entity_id=event.related_entity_id,
            exclude_dedup_keys={draft.dedup_key for draft in drafts},
            resolved_at=now,
            created_before=event.processed_at,
        )
    else:
        resolved = 0

    if resolved:
        logger.info(
            "Resolved %d trigger(s): event_id=%s event_type=%s entity=%s",
            resolved,
            event.id,
            event.event_type,
            event.related_entity_id,
        )
        run_log.add(
            "info",
            f"Resolved {resolved} trigger(s)",
            event_id=event.id,
        )
    return resolved


def _supersede_source_trigger(
    store: CoordinationStore,
    event: CoordinationEvent,
    now: datetime,
    run_log: _RunLog,
) -> int:
    source_trigger_id = event.id.removeprefix(SYNTHETIC_EVENT_PREFIX)
    moved = store.transition_trigger(
        source_trigger_id,
        to_status=TRIGGER_RESOLVED,
        from_statuses=ACTIVE_TRIGGER_STATUSES,
        at=now,
    )
    if moved:
        run_log.add("info", "Superseded by escalation", event_id=event.id)
        return 1
    return 0


def _process_events(
    store: CoordinationStore,
    events: list[CoordinationEvent],
    now: datetime,
    run_log: _RunLog,
) -> ProcessResult:
    created = 0
    resolved = 0
    suppressed = 0

    for event in events:
        drafts = evaluate_coordination_rules(event, now)
        resolved += _resolve_for_event(store, event, drafts, now, run_log)

        for draft in drafts:
            rule = get_rule_by_id(draft.rule_id)
            cooldown_minutes = rule.cooldown_minutes if rule else 0
            latest = store.get_latest_trigger_by_dedup_key(
                dedup_key=draft.dedup_key,
                project_id=draft.project_id,
            )

            if draft.related_entity_id:
                higher = store.find_active_escalation(
                    project_id=draft.project_id,
                    rule_id=draft.rule_id,
                    related_entity_id=draft.related_entity_id,
                    min_level=draft.escalation_level,
                    exclude_dedup_key=draft.dedup_key,
                )
                if higher is not None:
                    suppressed += 1
                    logger.debug(
                        "Suppressed by active escalation: dedup_key=%s active=%s",
                        draft.dedup_key,
                        higher.dedup_key,
                    )
                    run_log.add(
                        "debug",
                        "Suppressed: entity already escalated",
                        event_id=event.id,
                        rule_id=draft.rule_id,
                        dedup_key=draft.dedup_key,
                    )
                    continue

            supersedes = None
            if latest is not None and latest.status != TRIGGER_RESOLVED:
                if within_cooldown(latest.created_at, cooldown_minutes, now):
                    suppressed += 1
                    logger.debug("Suppressed by cooldown: dedup_key=%s", draft.dedup_key)
                    run_log.add(
                        "debug",
                        "Suppressed by cooldown",
                        event_id=event.id,
                        rule_id=draft.rule_id,
                        dedup_key=draft.dedup_key,
                    )
                    continue
                supersedes = latest.id

            trigger = store.create_trigger(draft, now, supersedes_trigger_id=supersedes)
            if trigger is None:
                suppressed += 1
                run_log.add(
                    "debug",
                    "Suppressed: active trigger already exists",
                    event_id=event.id,
                    rule_id=draft.rule_id,
                    dedup_key=draft.dedup_key,
                )
                continue

            created += 1
            if supersedes:
                resolved += 1
            logger.info(
                "Trigger created: id=%s rule=%s target=%s level=%d",
                trigger.id,
                trigger.rule_id,
                trigger.target_user_id,
                trigger.escalation_level,
            )
            run_log.add(
                "info",
                "Trigger created",
                event_id=event.id,
                rule_id=trigger.rule_id,
                dedup_key=trigger.dedup_key,
            )
            if event.synthetic:
                resolved += _supersede_source_trigger(store, event, now, run_log)

        if not event.synthetic and event.processed_at is None:
            store.mark_event_processed(event.id, now)

    return ProcessResult(
        processed_events=len(events),
        created_triggers=created,
        resolved_triggers=resolved,
        suppressed_drafts=suppressed,
        diagnostics=run_log.entries,
    )


def process_coordination_events(
    store: CoordinationStore,
    *,
    event_ids: Sequence[str] | None = None,
    project_id: str | None = None,
    now: datetime | None = None,
    include_diagnostics: bool = False,
) -> ProcessResult:
    """Process explicit events, or every unprocessed event inside the lookback window.

    Safe to replay: an already-processed event only resolves triggers older than
    its first processing, and its drafts are suppressed by cooldown or by a
    higher escalation already active for the same entity.
    """
    now = now or datetime.now(UTC)
    since = now - timedelta(hours=get_settings().coordination_event_lookback_hours)
    events = store.get_events(since=since, event_ids=event_ids, project_id=project_id)

    result = _process_events(store, events, now, _RunLog(include_diagnostics))
    logger.info(
        "Coordination events processed: events=%d created=%d resolved=%d suppressed=%d",
        result.processed_events,
        result.created_triggers,
        result.resolved_triggers,
        result.suppressed_drafts,
    )
    return result


def run_scheduled_coordination_sweep(
    store: CoordinationStore,
    *,
    project_id: str | None = None,
    now: datetime | None = None,
) -> ProcessResult:
    """Age every active trigger and escalate the ones that crossed a threshold."""
    now = now or datetime.now(UTC)
    events = store.get_pending_trigger_ages(now=now, project_id=project_id)

    result = _process_events(store, events, now, _RunLog(True))
    logger.info(
        "Coordination sweep completed: aged=%d created=%d resolved=%d suppressed=%d",
        result.processed_events,
        result.created_triggers,
        result.resolved_triggers,
        result.suppressed_drafts,
    )
    return result


def record_coordination_event(
    store: CoordinationStore,
    *,
    project_id: str,
    event_type: str,
    target_user_id: str | None = None,
    related_entity_id: str | None = None,
    severity: str | None = None,
    metadata: dict[str, Any] | None = None,
    occurred_at: datetime | None = None,
    process_immediately: bool = True,
) -> tuple[CoordinationEvent, ProcessResult | None]:
    """Append one producer event and, by default, process just that event.

    Raises:
        ValueError: unknown event_type or severity.
    """
    if event_type not in COORDINATION_EVENT_TYPES:
        raise ValueError(f"Unknown coordination event type: {event_type}")
    if severity is not None and severity not in SEVERITY_RANK:
        raise ValueError(f"Unknown severity: {severity}")
    if not project_id:
        raise ValueError("project_id is required")

    event = store.create_event(
        project_id=project_id,
        event_type=event_type,
        target_user_id=target_user_id,
        related_entity_id=related_entity_id,
        severity=severity,
        metadata=metadata,
        occurred_at=occurred_at or datetime.now(UTC),
    )
    if not process_immediately:
        return event, None
    return event, process_coordination_events(store, event_ids=[event.id])
