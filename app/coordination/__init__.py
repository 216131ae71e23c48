"""Coordination engine: rules, trigger lifecycle, notification gate."""

from app.coordination.lifecycle import (
    process_coordination_events,
    record_coordination_event,
    resolve_triggers_for_entity,
    rule_ids_to_resolve_for_event,
    run_scheduled_coordination_sweep,
)
from app.coordination.notifications import (
    create_notification_for_trigger,
    dismiss_notification,
    emit_notification_telemetry,
    list_notifications_for_user,
    mark_notification_read,
    resolve_notification,
)
from app.coordination.rules import (
    COORDINATION_RULES,
    RULES_BY_EVENT,
    build_trigger_dedup_key,
    evaluate_coordination_rules,
    get_rule_by_id,
)
from app.coordination.store import (
    CoordinationStore,
    NotificationStore,
    SqlCoordinationStore,
)

__all__ = [
    "COORDINATION_RULES",
    "RULES_BY_EVENT",
    "CoordinationStore",
    "NotificationStore",
    "SqlCoordinationStore",
    "build_trigger_dedup_key",
    "create_notification_for_trigger",
    "dismiss_notification",
    "emit_notification_telemetry",
    "evaluate_coordination_rules",
    "get_rule_by_id",
    "list_notifications_for_user",
    "mark_notification_read",
    "process_coordination_events",
    "record_coordination_event",
    "resolve_notification",
    "resolve_triggers_for_entity",
    "rule_ids_to_resolve_for_event",
    "run_scheduled_coordination_sweep",
]
