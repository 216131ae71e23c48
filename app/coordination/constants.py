"""Coordination constants: event taxonomy, statuses, rule ids, severity ladder.

String constants rather than enums so values round-trip unchanged through the
database, JSON metadata and API payloads.
"""

from __future__ import annotations

from typing import Literal

# ── Event taxonomy ───────────────────────────────────────────────────────

SUMMARY_VIEWED = "SUMMARY_VIEWED"
EVIDENCE_CLICKED = "EVIDENCE_CLICKED"
FEEDBACK_SUBMITTED = "FEEDBACK_SUBMITTED"
DIGEST_COPIED = "DIGEST_COPIED"
ACTION_INTERACTION = "ACTION_INTERACTION"
QUESTION_EVENT = "QUESTION_EVENT"
BLOCKER_PERSISTED = "BLOCKER_PERSISTED"
MISSING_STANDUP_DETECTED = "MISSING_STANDUP_DETECTED"
STALE_WORK_DETECTED = "STALE_WORK_DETECTED"
LOW_CONFIDENCE_DETECTED = "LOW_CONFIDENCE_DETECTED"
ACTION_OVERDUE = "ACTION_OVERDUE"
QUESTION_UNANSWERED = "QUESTION_UNANSWERED"
SNOOZE_EXPIRED = "SNOOZE_EXPIRED"

COORDINATION_EVENT_TYPES: frozenset[str] = frozenset({
    SUMMARY_VIEWED,
    EVIDENCE_CLICKED,
    FEEDBACK_SUBMITTED,
    DIGEST_COPIED,
    ACTION_INTERACTION,
    QUESTION_EVENT,
    BLOCKER_PERSISTED,
    MISSING_STANDUP_DETECTED,
    STALE_WORK_DETECTED,
    LOW_CONFIDENCE_DETECTED,
    ACTION_OVERDUE,
    QUESTION_UNANSWERED,
    SNOOZE_EXPIRED,
})

# Engagement by the target user; a nudge right after one of these is nagging.
ACTIVITY_EVENT_TYPES: frozenset[str] = frozenset({
    SUMMARY_VIEWED,
    EVIDENCE_CLICKED,
    FEEDBACK_SUBMITTED,
    DIGEST_COPIED,
    ACTION_INTERACTION,
})

# ── Severity ─────────────────────────────────────────────────────────────

CoordinationSeverity = Literal["LOW", "MEDIUM", "HIGH"]

SEVERITY_RANK: dict[str, int] = {"LOW": 1, "MEDIUM": 2, "HIGH": 3}

# ── Trigger lifecycle ────────────────────────────────────────────────────

TRIGGER_PENDING = "PENDING"
TRIGGER_SENT = "SENT"
TRIGGER_DISMISSED = "DISMISSED"
TRIGGER_RESOLVED = "RESOLVED"

ACTIVE_TRIGGER_STATUSES: tuple[str, ...] = (TRIGGER_PENDING, TRIGGER_SENT)

MIN_ESCALATION_LEVEL = 1
MAX_ESCALATION_LEVEL = 3

# ── Rule ids ─────────────────────────────────────────────────────────────

RULE_BLOCKER_PERSISTED = "blocker-persisted-high-severity"
RULE_MISSING_STANDUP = "missing-standup-two-days"
RULE_QUESTION_UNANSWERED = "question-unanswered-24h"
RULE_ACTION_OVERDUE = "action-overdue"
RULE_SNOOZE_EXPIRED = "snooze-expired-retrigger"

# ── Notifications ────────────────────────────────────────────────────────

NOTIFICATION_UNREAD = "UNREAD"
NOTIFICATION_READ = "READ"
NOTIFICATION_DISMISSED = "DISMISSED"
NOTIFICATION_STATUSES: tuple[str, ...] = (NOTIFICATION_UNREAD, NOTIFICATION_READ, NOTIFICATION_DISMISSED)

NOTIFICATION_INBOX_LIMIT = 50

NotificationTelemetryAction = Literal[
    "NotificationViewed", "NotificationResolved", "NotificationDismissed"
]

AUDIT_NOTIFICATION_SENT = "NotificationSent"
AUDIT_NOTIFICATION_VIEWED = "NotificationViewed"
AUDIT_NOTIFICATION_RESOLVED = "NotificationResolved"
AUDIT_NOTIFICATION_DISMISSED = "NotificationDismissed"

TELEMETRY_ACTIONS: frozenset[str] = frozenset({
    AUDIT_NOTIFICATION_VIEWED,
    AUDIT_NOTIFICATION_RESOLVED,
    AUDIT_NOTIFICATION_DISMISSED,
})
