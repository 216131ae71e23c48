"""Notification gate: decide whether a persisted trigger becomes an in-app nudge.

Filters run strictly in order and the first one that matches short-circuits
with a reason code. The reason string is the contract other systems log and
alert on; suppression never raises.

    suppressed-by-policy → channel-disabled → category-muted → quiet-hours →
    recent-activity → already-resolved → recently-dismissed →
    daily-limit-reached → quality-dampened

Delivery itself is a PENDING → SENT claim on the trigger, so a trigger is
delivered at most once (trigger-not-pending otherwise).
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from app.config import get_settings
from app.coordination.aging import aging_event_type, aging_metric
from app.coordination.constants import (
    AUDIT_NOTIFICATION_DISMISSED,
    AUDIT_NOTIFICATION_RESOLVED,
    AUDIT_NOTIFICATION_VIEWED,
    NOTIFICATION_DISMISSED,
    NOTIFICATION_INBOX_LIMIT,
    NOTIFICATION_READ,
    NOTIFICATION_STATUSES,
    NOTIFICATION_UNREAD,
    RULE_ACTION_OVERDUE,
    RULE_BLOCKER_PERSISTED,
    RULE_MISSING_STANDUP,
    RULE_QUESTION_UNANSWERED,
    RULE_SNOOZE_EXPIRED,
    TELEMETRY_ACTIONS,
    TRIGGER_DISMISSED,
    TRIGGER_PENDING,
    TRIGGER_SENT,
)
from app.coordination.lifecycle import rule_ids_to_resolve_for_event
from app.coordination.metadata import (
    ActionOverdueMeta,
    BlockerPersisted,
    MissingStandup,
    QuestionUnanswered,
    parse_event_metadata,
)
from app.coordination.preferences import (
    CHANNEL_IN_APP,
    is_within_quiet_hours,
    map_rule_to_category,
    start_of_local_day,
)
from app.coordination.quality import (
    calculate_nudge_quality_metrics,
    maybe_adjust_severity_for_dismissal_rate,
)
from app.coordination.store import NotificationDraft, NotificationRecord, NotificationStore
from app.coordination.templates import NudgeTemplateInput, build_nudge_template
from app.coordination.types import CoordinationTrigger, NotificationResult

logger = logging.getLogger(__name__)

REASON_SUPPRESSED_BY_POLICY = "suppressed-by-policy"
REASON_CHANNEL_DISABLED = "channel-disabled"
REASON_CATEGORY_MUTED = "category-muted"
REASON_QUIET_HOURS = "quiet-hours"
REASON_RECENT_ACTIVITY = "recent-activity"
REASON_ALREADY_RESOLVED = "already-resolved"
REASON_RECENTLY_DISMISSED = "recently-dismissed"
REASON_DAILY_LIMIT_REACHED = "daily-limit-reached"
REASON_QUALITY_DAMPENED = "quality-dampened"
REASON_TRIGGER_NOT_PENDING = "trigger-not-pending"

NOTIFIABLE_RULE_IDS: frozenset[str] = frozenset({
    RULE_BLOCKER_PERSISTED,
    RULE_MISSING_STANDUP,
    RULE_QUESTION_UNANSWERED,
    RULE_ACTION_OVERDUE,
    RULE_SNOOZE_EXPIRED,
})

_NOTIFICATION_TYPES: dict[str, str] = {
    RULE_BLOCKER_PERSISTED: "PERSISTENT_BLOCKER",
    RULE_MISSING_STANDUP: "MISSING_STANDUP",
    RULE_QUESTION_UNANSWERED: "UNANSWERED_QUESTION",
    RULE_ACTION_OVERDUE: "ACTION_OVERDUE",
    RULE_SNOOZE_EXPIRED: "ESCALATION",
}

_CONDITION_DESCRIPTIONS: dict[str, str] = {
    RULE_BLOCKER_PERSISTED: "A high-severity blocker has persisted for 2 or more days.",
    RULE_MISSING_STANDUP: "No standup has been submitted for 2 or more days.",
    RULE_QUESTION_UNANSWERED: "A clarification question has been unanswered for 24 hours or more.",
    RULE_ACTION_OVERDUE: "A committed action item is past its due date.",
    RULE_SNOOZE_EXPIRED: "A snoozed reminder expired without the underlying item being resolved.",
}

_ESCALATION_EXPLANATIONS: dict[int, str] = {
    1: "Sent to the person directly responsible.",
    2: "Escalated to the dependency owner or manager because the item is still open.",
    3: "Escalated to the product or project owner because earlier reminders did not resolve it.",
}


def notification_type_for_rule(rule_id: str) -> str:
    return _NOTIFICATION_TYPES.get(rule_id, "PERSISTENT_BLOCKER")


def _suppress(trigger: CoordinationTrigger, reason: str, quality: dict | None = None) -> NotificationResult:
    logger.info(
        "Notification suppressed: trigger_id=%s rule=%s user=%s reason=%s",
        trigger.id,
        trigger.rule_id,
        trigger.target_user_id,
        reason,
    )
    return NotificationResult(sent=False, reason=reason, quality=quality)


def _is_already_resolved(store: NotificationStore, trigger: CoordinationTrigger) -> bool:
    if not trigger.related_entity_id:
        return False
    events = store.get_entity_events(
        project_id=trigger.project_id,
        related_entity_id=trigger.related_entity_id,
        since=trigger.created_at,
    )
    return any(trigger.rule_id in rule_ids_to_resolve_for_event(event) for event in events)


_TEMPLATE_FIELDS = {
    "blockerDays": "blocker_days",
    "missingDays": "missing_standup_days",
    "unansweredHours": "unanswered_hours",
    "overdueDays": "overdue_days",
}


def _template_input(
    store: NotificationStore, trigger: CoordinationTrigger, now: datetime
) -> NudgeTemplateInput:
    """Numeric copy context for a trigger.

    Starts from the latest source event for the entity. A trigger the sweep
    escalated has outgrown that event, so each metric is at least the
    trigger's own aged value.
    """
    fields: dict[str, Any] = {}
    event_type = aging_event_type(trigger.rule_id)
    if trigger.related_entity_id and event_type:
        events = store.get_entity_events(
            project_id=trigger.project_id,
            related_entity_id=trigger.related_entity_id,
        )
        source = next((e for e in events if e.event_type == event_type), None)
        if source is not None:
            meta = parse_event_metadata(source.event_type, source.metadata)
            if isinstance(meta, BlockerPersisted):
                fields = {"blocker_days": meta.blocker_days, "blocker_reason": meta.blocker_reason}
            elif isinstance(meta, MissingStandup):
                fields = {"missing_standup_days": meta.missing_days}
            elif isinstance(meta, QuestionUnanswered):
                fields = {"unanswered_hours": meta.unanswered_hours}
            elif isinstance(meta, ActionOverdueMeta):
                fields = {"overdue_days": meta.overdue_days}

    aged = aging_metric(trigger, now)
    if aged is not None:
        key, value = aged
        field = _TEMPLATE_FIELDS[key]
        current = fields.get(field)
        fields[field] = value if current is None else max(current, value)

    return NudgeTemplateInput(
        rule_id=trigger.rule_id,
        escalation_level=trigger.escalation_level,
        **fields,
    )


def build_why_context(trigger: CoordinationTrigger) -> dict[str, Any]:
    """Explanation block attached to every delivered notification."""
    level = max(1, min(3, trigger.escalation_level))
    return {
        "category": map_rule_to_category(trigger.rule_id),
        "rule_id": trigger.rule_id,
        "condition": _CONDITION_DESCRIPTIONS.get(trigger.rule_id, "Coordination rule matched."),
        "escalation_level": trigger.escalation_level,
        "escalation": _ESCALATION_EXPLANATIONS[level],
        "evidence_link": (
            f"/entities/{trigger.related_entity_id}" if trigger.related_entity_id else None
        ),
    }


def create_notification_for_trigger(
    store: NotificationStore,
    trigger: CoordinationTrigger,
    *,
    now: datetime | None = None,
) -> NotificationResult:
    """Run the gate for one trigger and deliver it when nothing suppresses it."""
    now = now or datetime.now(UTC)
    settings = get_settings()
    user_id = trigger.target_user_id

    if trigger.rule_id not in NOTIFIABLE_RULE_IDS or trigger.severity == "LOW":
        return _suppress(trigger, REASON_SUPPRESSED_BY_POLICY)

    prefs = store.get_preferences(trigger.project_id, user_id)
    if CHANNEL_IN_APP not in prefs.channels:
        return _suppress(trigger, REASON_CHANNEL_DISABLED)

    category = map_rule_to_category(trigger.rule_id)
    if category in prefs.muted_categories:
        return _suppress(trigger, REASON_CATEGORY_MUTED)

    if is_within_quiet_hours(
        now, prefs.quiet_hours_start, prefs.quiet_hours_end, prefs.timezone_offset_minutes
    ):
        return _suppress(trigger, REASON_QUIET_HOURS)

    activity_since = now - timedelta(minutes=settings.nudge_activity_window_minutes)
    if store.has_recent_activity(project_id=trigger.project_id, user_id=user_id, since=activity_since):
        return _suppress(trigger, REASON_RECENT_ACTIVITY)

    if _is_already_resolved(store, trigger):
        return _suppress(trigger, REASON_ALREADY_RESOLVED)

    dismissal_since = now - timedelta(hours=settings.nudge_dismissal_cooldown_hours)
    if store.has_recent_dismissal(
        user_id=user_id,
        rule_id=trigger.rule_id,
        related_entity_id=trigger.related_entity_id,
        since=dismissal_since,
    ):
        return _suppress(trigger, REASON_RECENTLY_DISMISSED)

    # Escalations and HIGH severity bypass the daily cap.
    if trigger.escalation_level < 2 and trigger.severity != "HIGH":
        day_start = start_of_local_day(now, prefs.timezone_offset_minutes)
        sent_today = store.count_notifications_since(user_id=user_id, since=day_start)
        if sent_today >= prefs.max_nudges_per_day:
            return _suppress(trigger, REASON_DAILY_LIMIT_REACHED)

    resolved_count, dismissed_count = store.get_outcome_counts(
        user_id=user_id,
        rule_id=trigger.rule_id,
        since=now - timedelta(days=settings.nudge_quality_window_days),
    )
    metrics = calculate_nudge_quality_metrics(resolved_count, dismissed_count)
    sample_size = resolved_count + dismissed_count
    severity = trigger.severity
    if sample_size >= settings.nudge_quality_min_samples:
        severity = maybe_adjust_severity_for_dismissal_rate(
            severity, metrics.dismissed_rate, settings.nudge_dismissal_rate_threshold
        )
    quality = {
        "resolved_rate": metrics.resolved_rate,
        "dismissed_rate": metrics.dismissed_rate,
        "sample_size": sample_size,
        "original_severity": trigger.severity,
        "severity": severity,
    }
    if severity == "LOW":
        return _suppress(trigger, REASON_QUALITY_DAMPENED, quality)

    copy = build_nudge_template(_template_input(store, trigger, now))
    notification_type = notification_type_for_rule(trigger.rule_id)
    draft = NotificationDraft(
        user_id=user_id,
        trigger_id=trigger.id,
        type=notification_type,
        severity=severity,
        title=copy.title,
        body=copy.body,
        related_entity_id=trigger.related_entity_id,
        context={"why": build_why_context(trigger), "quality": quality},
    )
    notification_id = store.deliver_notification(
        draft,
        project_id=trigger.project_id,
        sent_at=now,
        audit_details={
            "triggerId": trigger.id,
            "userId": user_id,
            "type": notification_type,
            "quality": quality,
        },
    )
    if notification_id is None:
        return _suppress(trigger, REASON_TRIGGER_NOT_PENDING, quality)

    logger.info(
        "Notification sent: id=%s trigger_id=%s user=%s type=%s severity=%s",
        notification_id,
        trigger.id,
        user_id,
        notification_type,
        severity,
    )
    return NotificationResult(sent=True, notification_id=notification_id, quality=quality)


def emit_notification_telemetry(
    store: NotificationStore,
    *,
    action: str,
    project_id: str,
    notification_id: str,
    trigger_id: str,
    user_id: str,
    now: datetime | None = None,
) -> None:
    """Record a viewed/resolved/dismissed outcome for the quality estimator."""
    if action not in TELEMETRY_ACTIONS:
        raise ValueError(f"Unknown telemetry action: {action}")
    store.append_audit_log(
        project_id=project_id,
        action=action,
        entity_type="NOTIFICATION",
        entity_id=notification_id,
        summary=f"{action} for trigger {trigger_id}",
        details={
            "notificationId": notification_id,
            "triggerId": trigger_id,
            "userId": user_id,
        },
        created_at=now or datetime.now(UTC),
    )


def _require_notification(store: NotificationStore, notification_id: str):
    record = store.get_notification(notification_id)
    if record is None:
        raise LookupError(f"Notification not found: {notification_id}")
    return record


def mark_notification_read(
    store: NotificationStore, notification_id: str, *, now: datetime | None = None
) -> None:
    record = _require_notification(store, notification_id)
    store.set_notification_status(notification_id, NOTIFICATION_READ)
    emit_notification_telemetry(
        store,
        action=AUDIT_NOTIFICATION_VIEWED,
        project_id=record.project_id,
        notification_id=record.id,
        trigger_id=record.trigger_id,
        user_id=record.user_id,
        now=now,
    )


def resolve_notification(
    store: NotificationStore, notification_id: str, *, now: datetime | None = None
) -> None:
    """User reports the nudge helped; counts as a resolved outcome."""
    record = _require_notification(store, notification_id)
    store.set_notification_status(notification_id, NOTIFICATION_READ)
    emit_notification_telemetry(
        store,
        action=AUDIT_NOTIFICATION_RESOLVED,
        project_id=record.project_id,
        notification_id=record.id,
        trigger_id=record.trigger_id,
        user_id=record.user_id,
        now=now,
    )


def dismiss_notification(
    store: NotificationStore, notification_id: str, *, now: datetime | None = None
) -> None:
    """Dismiss the notification and its trigger, and count it as a dismissed outcome."""
    now = now or datetime.now(UTC)
    record = _require_notification(store, notification_id)
    store.set_notification_status(notification_id, NOTIFICATION_DISMISSED)
    store.transition_trigger(
        record.trigger_id,
        to_status=TRIGGER_DISMISSED,
        from_statuses=(TRIGGER_PENDING, TRIGGER_SENT),
        at=now,
    )
    emit_notification_telemetry(
        store,
        action=AUDIT_NOTIFICATION_DISMISSED,
        project_id=record.project_id,
        notification_id=record.id,
        trigger_id=record.trigger_id,
        user_id=record.user_id,
        now=now,
    )


def list_notifications_for_user(
    store: NotificationStore,
    *,
    user_id: str,
    status: str | None = None,
    project_id: str | None = None,
    now: datetime | None = None,
) -> list[NotificationRecord]:
    """The user's inbox, newest first, capped at the inbox limit.

    An unrecognized status filter is ignored. Every UNREAD notification
    returned counts as viewed for the quality estimator; its status is left
    for an explicit read to change.
    """
    wanted = status.upper() if status else None
    if wanted not in NOTIFICATION_STATUSES:
        wanted = None
    records = store.list_notifications(
        user_id=user_id,
        status=wanted,
        project_id=project_id,
        limit=NOTIFICATION_INBOX_LIMIT,
    )
    now = now or datetime.now(UTC)
    for record in records:
        if record.status == NOTIFICATION_UNREAD:
            emit_notification_telemetry(
                store,
                action=AUDIT_NOTIFICATION_VIEWED,
                project_id=record.project_id,
                notification_id=record.id,
                trigger_id=record.trigger_id,
                user_id=user_id,
                now=now,
            )
    return records
