"""Storage seam for the coordination engine.

The engine only talks to the two protocols below; ``SqlCoordinationStore``
implements both on a SQLAlchemy session. Every method commits its own unit of
work and lets database errors propagate, so callers own retry policy.

Trigger creation is insert-if-absent: a partial unique index allows one
non-RESOLVED trigger per (project_id, dedup_key), and a conflicting insert
returns None instead of raising.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.coordination.aging import aging_event_type, synthesize_aging_event
from app.coordination.constants import (
    ACTIVE_TRIGGER_STATUSES,
    ACTIVITY_EVENT_TYPES,
    AUDIT_NOTIFICATION_DISMISSED,
    AUDIT_NOTIFICATION_RESOLVED,
    AUDIT_NOTIFICATION_SENT,
    TRIGGER_PENDING,
    TRIGGER_RESOLVED,
    TRIGGER_SENT,
)
from app.coordination.preferences import (
    DEFAULT_COORDINATION_PREFERENCES,
    CoordinationPreferences,
    normalize_preferences_input,
)
from app.coordination.types import (
    CoordinationEvent,
    CoordinationTrigger,
    CoordinationTriggerDraft,
)
from app.models import (
    AuditLog,
    CoordinationNotificationPreference,
    Notification,
)
from app.models import CoordinationEvent as CoordinationEventRow
from app.models import CoordinationTrigger as CoordinationTriggerRow

logger = logging.getLogger(__name__)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo) and convert aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


@dataclass
class NotificationRecord:
    id: str
    user_id: str
    trigger_id: str
    project_id: str
    rule_id: str
    type: str
    severity: str
    status: str
    title: str
    body: str
    related_entity_id: str | None
    context: dict | None
    created_at: datetime


@dataclass
class NotificationDraft:
    """Everything the gate decided; the store assigns id and created_at."""

    user_id: str
    trigger_id: str
    type: str
    severity: str
    title: str
    body: str
    related_entity_id: str | None
    context: dict


class CoordinationStore(Protocol):
    """Events and triggers."""

    def get_events(
        self,
        *,
        since: datetime,
        event_ids: Sequence[str] | None = None,
        project_id: str | None = None,
    ) -> list[CoordinationEvent]: ...

    def create_event(
        self,
        *,
        project_id: str,
        event_type: str,
        occurred_at: datetime,
        target_user_id: str | None = None,
        related_entity_id: str | None = None,
        severity: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> CoordinationEvent: ...

    def mark_event_processed(self, event_id: str, processed_at: datetime) -> None: ...

    def get_latest_trigger_by_dedup_key(
        self, *, dedup_key: str, project_id: str
    ) -> CoordinationTrigger | None: ...

    def create_trigger(
        self,
        draft: CoordinationTriggerDraft,
        created_at: datetime,
        *,
        supersedes_trigger_id: str | None = None,
    ) -> CoordinationTrigger | None: ...

    def resolve_triggers(
        self,
        *,
        project_id: str,
        resolved_at: datetime,
        related_entity_id: str | None = None,
        rule_ids: Sequence[str] | None = None,
        exclude_dedup_keys: Iterable[str] | None = None,
        created_before: datetime | None = None,
    ) -> int: ...

    def find_active_escalation(
        self,
        *,
        project_id: str,
        rule_id: str,
        related_entity_id: str,
        min_level: int,
        exclude_dedup_key: str,
    ) -> CoordinationTrigger | None: ...

    def get_pending_trigger_ages(
        self, *, now: datetime, project_id: str | None = None
    ) -> list[CoordinationEvent]: ...

    def transition_trigger(
        self,
        trigger_id: str,
        *,
        to_status: str,
        from_statuses: Sequence[str],
        at: datetime,
    ) -> bool: ...


class NotificationStore(Protocol):
    """Everything the notification gate reads and writes."""

    def get_preferences(self, project_id: str, user_id: str) -> CoordinationPreferences: ...

    def save_preferences(
        self, project_id: str, user_id: str, preferences: CoordinationPreferences
    ) -> CoordinationPreferences: ...

    def has_recent_activity(self, *, project_id: str, user_id: str, since: datetime) -> bool: ...

    def get_entity_events(
        self, *, project_id: str, related_entity_id: str, since: datetime | None = None
    ) -> list[CoordinationEvent]: ...

    def has_recent_dismissal(
        self,
        *,
        user_id: str,
        rule_id: str,
        related_entity_id: str | None,
        since: datetime,
    ) -> bool: ...

    def count_notifications_since(self, *, user_id: str, since: datetime) -> int: ...

    def get_outcome_counts(
        self, *, user_id: str, rule_id: str, since: datetime
    ) -> tuple[int, int]: ...

    def deliver_notification(
        self,
        draft: NotificationDraft,
        *,
        project_id: str,
        sent_at: datetime,
        audit_details: dict[str, Any],
    ) -> str | None: ...

    def append_audit_log(
        self,
        *,
        project_id: str,
        action: str,
        entity_type: str,
        entity_id: str,
        summary: str,
        details: dict[str, Any] | None = None,
        actor_type: str = "SYSTEM",
        created_at: datetime | None = None,
    ) -> None: ...

    def get_notification(self, notification_id: str) -> NotificationRecord | None: ...

    def list_notifications(
        self,
        *,
        user_id: str,
        status: str | None = None,
        project_id: str | None = None,
        limit: int = 50,
    ) -> list[NotificationRecord]: ...

    def set_notification_status(self, notification_id: str, status: str) -> None: ...

    def transition_trigger(
        self,
        trigger_id: str,
        *,
        to_status: str,
        from_statuses: Sequence[str],
        at: datetime,
    ) -> bool: ...


def _event_from_row(row: CoordinationEventRow) -> CoordinationEvent:
    return CoordinationEvent(
        id=row.id,
        project_id=row.project_id,
        event_type=row.event_type,
        target_user_id=row.target_user_id,
        related_entity_id=row.related_entity_id,
        severity=row.severity,
        metadata=row.event_metadata if isinstance(row.event_metadata, dict) else None,
        occurred_at=as_utc(row.occurred_at),
        processed_at=as_utc(row.processed_at),
    )


def _trigger_from_row(row: CoordinationTriggerRow) -> CoordinationTrigger:
    return CoordinationTrigger(
        id=row.id,
        project_id=row.project_id,
        rule_id=row.rule_id,
        target_user_id=row.target_user_id,
        related_entity_id=row.related_entity_id,
        severity=row.severity,
        escalation_level=row.escalation_level,
        dedup_key=row.dedup_key,
        created_at=as_utc(row.created_at),
        status=row.status,
        resolved_at=as_utc(row.resolved_at),
        sent_at=as_utc(row.sent_at),
    )


def _notification_record(row: Notification, project_id: str, rule_id: str) -> NotificationRecord:
    return NotificationRecord(
        id=row.id,
        user_id=row.user_id,
        trigger_id=row.trigger_id,
        project_id=project_id,
        rule_id=rule_id,
        type=row.type,
        severity=row.severity,
        status=row.status,
        title=row.title,
        body=row.body,
        related_entity_id=row.related_entity_id,
        context=row.context,
        created_at=as_utc(row.created_at),
    )


def _entity_clause(column, related_entity_id: str | None):
    if related_entity_id is None:
        return column.is_(None)
    return column == related_entity_id


class SqlCoordinationStore:
    """CoordinationStore + NotificationStore on a SQLAlchemy session."""

    def __init__(self, db: Session, sweep_batch_limit: int | None = None) -> None:
        self.db = db
        self.sweep_batch_limit = sweep_batch_limit or get_settings().coordination_sweep_batch_limit

    # ── Events ──────────────────────────────────────────────────────────

    def get_events(
        self,
        *,
        since: datetime,
        event_ids: Sequence[str] | None = None,
        project_id: str | None = None,
    ) -> list[CoordinationEvent]:
        stmt = select(CoordinationEventRow)
        if project_id:
            stmt = stmt.where(CoordinationEventRow.project_id == project_id)
        if event_ids:
            stmt = stmt.where(CoordinationEventRow.id.in_(list(event_ids)))
        else:
            stmt = stmt.where(
                CoordinationEventRow.occurred_at >= since,
                CoordinationEventRow.processed_at.is_(None),
            )
        stmt = stmt.order_by(CoordinationEventRow.occurred_at.asc(), CoordinationEventRow.id.asc())
        return [_event_from_row(row) for row in self.db.scalars(stmt)]

    def create_event(
        self,
        *,
        project_id: str,
        event_type: str,
        occurred_at: datetime,
        target_user_id: str | None = None,
        related_entity_id: str | None = None,
        severity: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> CoordinationEvent:
        row = CoordinationEventRow(
            project_id=project_id,
            event_type=event_type,
            target_user_id=target_user_id,
            related_entity_id=related_entity_id,
            severity=severity,
            event_metadata=metadata,
            occurred_at=as_utc(occurred_at),
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return _event_from_row(row)

    def mark_event_processed(self, event_id: str, processed_at: datetime) -> None:
        self.db.execute(
            update(CoordinationEventRow)
            .where(
                CoordinationEventRow.id == event_id,
                CoordinationEventRow.processed_at.is_(None),
            )
            .values(processed_at=processed_at)
        )
        self.db.commit()

    def get_entity_events(
        self, *, project_id: str, related_entity_id: str, since: datetime | None = None
    ) -> list[CoordinationEvent]:
        """Real events for one entity, newest first."""
        stmt = select(CoordinationEventRow).where(
            CoordinationEventRow.project_id == project_id,
            CoordinationEventRow.related_entity_id == related_entity_id,
        )
        if since is not None:
            stmt = stmt.where(CoordinationEventRow.occurred_at >= since)
        stmt = stmt.order_by(CoordinationEventRow.occurred_at.desc())
        return [_event_from_row(row) for row in self.db.scalars(stmt)]

    def has_recent_activity(self, *, project_id: str, user_id: str, since: datetime) -> bool:
        found = self.db.scalar(
            select(CoordinationEventRow.id)
            .where(
                CoordinationEventRow.project_id == project_id,
                CoordinationEventRow.target_user_id == user_id,
                CoordinationEventRow.event_type.in_(sorted(ACTIVITY_EVENT_TYPES)),
                CoordinationEventRow.occurred_at >= since,
            )
            .limit(1)
        )
        return found is not None

    # ── Triggers ────────────────────────────────────────────────────────

    def get_latest_trigger_by_dedup_key(
        self, *, dedup_key: str, project_id: str
    ) -> CoordinationTrigger | None:
        row = self.db.scalars(
            select(CoordinationTriggerRow)
            .where(
                CoordinationTriggerRow.dedup_key == dedup_key,
                CoordinationTriggerRow.project_id == project_id,
            )
            .order_by(CoordinationTriggerRow.created_at.desc())
            .limit(1)
        ).first()
        return _trigger_from_row(row) if row is not None else None

    def find_active_escalation(
        self,
        *,
        project_id: str,
        rule_id: str,
        related_entity_id: str,
        min_level: int,
        exclude_dedup_key: str,
    ) -> CoordinationTrigger | None:
        """Highest active trigger for the same rule and entity at ``min_level`` or above."""
        row = self.db.scalars(
            select(CoordinationTriggerRow)
            .where(
                CoordinationTriggerRow.project_id == project_id,
                CoordinationTriggerRow.rule_id == rule_id,
                CoordinationTriggerRow.related_entity_id == related_entity_id,
                CoordinationTriggerRow.status.in_(ACTIVE_TRIGGER_STATUSES),
                CoordinationTriggerRow.escalation_level >= min_level,
                CoordinationTriggerRow.dedup_key != exclude_dedup_key,
            )
            .order_by(
                CoordinationTriggerRow.escalation_level.desc(),
                CoordinationTriggerRow.created_at.desc(),
            )
            .limit(1)
        ).first()
        return _trigger_from_row(row) if row is not None else None

    def get_trigger(self, trigger_id: str) -> CoordinationTrigger | None:
        row = self.db.get(CoordinationTriggerRow, trigger_id)
        return _trigger_from_row(row) if row is not None else None

    def create_trigger(
        self,
        draft: CoordinationTriggerDraft,
        created_at: datetime,
        *,
        supersedes_trigger_id: str | None = None,
    ) -> CoordinationTrigger | None:
        """Insert a PENDING trigger unless an active one holds the dedup key.

        supersedes_trigger_id is an active trigger whose cooldown has passed; it
        is RESOLVED in the same transaction so the new row can take the key.
        """
        try:
            if supersedes_trigger_id:
                self.db.execute(
                    update(CoordinationTriggerRow)
                    .where(
                        CoordinationTriggerRow.id == supersedes_trigger_id,
                        CoordinationTriggerRow.status != TRIGGER_RESOLVED,
                    )
                    .values(status=TRIGGER_RESOLVED, resolved_at=created_at)
                )
            row = CoordinationTriggerRow(
                project_id=draft.project_id,
                rule_id=draft.rule_id,
                target_user_id=draft.target_user_id,
                related_entity_id=draft.related_entity_id,
                severity=draft.severity,
                escalation_level=draft.escalation_level,
                dedup_key=draft.dedup_key,
                status=TRIGGER_PENDING,
                created_at=created_at,
            )
            self.db.add(row)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info(
                "Trigger insert conflict, active trigger already holds dedup_key=%s",
                draft.dedup_key,
            )
            return None
        self.db.refresh(row)
        return _trigger_from_row(row)

    def resolve_triggers(
        self,
        *,
        project_id: str,
        resolved_at: datetime,
        related_entity_id: str | None = None,
        rule_ids: Sequence[str] | None = None,
        exclude_dedup_keys: Iterable[str] | None = None,
        created_before: datetime | None = None,
    ) -> int:
        """RESOLVE PENDING/SENT triggers matching entity and/or rule ids. Needs at least one filter.

        Triggers created at or after ``created_before`` are left alone.
        """
        if not related_entity_id and not rule_ids:
            return 0

        conditions = [
            CoordinationTriggerRow.project_id == project_id,
            CoordinationTriggerRow.status.in_(ACTIVE_TRIGGER_STATUSES),
        ]
        if related_entity_id:
            conditions.append(CoordinationTriggerRow.related_entity_id == related_entity_id)
        if rule_ids:
            conditions.append(CoordinationTriggerRow.rule_id.in_(list(rule_ids)))
        excluded = sorted(set(exclude_dedup_keys or ()))
        if excluded:
            conditions.append(CoordinationTriggerRow.dedup_key.not_in(excluded))
        if created_before is not None:
            conditions.append(CoordinationTriggerRow.created_at < created_before)

        result = self.db.execute(
            update(CoordinationTriggerRow)
            .where(*conditions)
            .values(status=TRIGGER_RESOLVED, resolved_at=resolved_at)
        )
        self.db.commit()
        return result.rowcount or 0

    def transition_trigger(
        self,
        trigger_id: str,
        *,
        to_status: str,
        from_statuses: Sequence[str],
        at: datetime,
    ) -> bool:
        values: dict[str, Any] = {"status": to_status}
        if to_status == TRIGGER_RESOLVED:
            values["resolved_at"] = at
        if to_status == TRIGGER_SENT:
            values["sent_at"] = at
        result = self.db.execute(
            update(CoordinationTriggerRow)
            .where(
                CoordinationTriggerRow.id == trigger_id,
                CoordinationTriggerRow.status.in_(list(from_statuses)),
            )
            .values(**values)
        )
        self.db.commit()
        return bool(result.rowcount)

    def get_pending_trigger_ages(
        self, *, now: datetime, project_id: str | None = None
    ) -> list[CoordinationEvent]:
        """Synthetic aging events for the oldest active triggers."""
        stmt = select(CoordinationTriggerRow).where(
            CoordinationTriggerRow.status.in_(ACTIVE_TRIGGER_STATUSES)
        )
        if project_id:
            stmt = stmt.where(CoordinationTriggerRow.project_id == project_id)
        stmt = stmt.order_by(CoordinationTriggerRow.created_at.asc()).limit(self.sweep_batch_limit)

        events: list[CoordinationEvent] = []
        for row in self.db.scalars(stmt).all():
            trigger = _trigger_from_row(row)
            source = self._latest_source_event(trigger)
            aged = synthesize_aging_event(trigger, now, source_event=source)
            if aged is not None:
                events.append(aged)
        return events

    def _latest_source_event(self, trigger: CoordinationTrigger) -> CoordinationEvent | None:
        event_type = aging_event_type(trigger.rule_id)
        if event_type is None or trigger.related_entity_id is None:
            return None
        row = self.db.scalars(
            select(CoordinationEventRow)
            .where(
                CoordinationEventRow.project_id == trigger.project_id,
                CoordinationEventRow.related_entity_id == trigger.related_entity_id,
                CoordinationEventRow.event_type == event_type,
            )
            .order_by(CoordinationEventRow.occurred_at.desc())
            .limit(1)
        ).first()
        return _event_from_row(row) if row is not None else None

    # ── Preferences ─────────────────────────────────────────────────────

    def _preference_row(self, project_id: str, user_id: str):
        return self.db.scalars(
            select(CoordinationNotificationPreference).where(
                CoordinationNotificationPreference.project_id == project_id,
                CoordinationNotificationPreference.user_id == user_id,
            )
        ).first()

    def get_preferences(self, project_id: str, user_id: str) -> CoordinationPreferences:
        row = self._preference_row(project_id, user_id)
        if row is None:
            return DEFAULT_COORDINATION_PREFERENCES
        return normalize_preferences_input(
            {
                "muted_categories": row.muted_categories,
                "quiet_hours_start": row.quiet_hours_start,
                "quiet_hours_end": row.quiet_hours_end,
                "timezone_offset_minutes": row.timezone_offset_minutes,
                "max_nudges_per_day": row.max_nudges_per_day,
                "channels": row.channels,
            }
        )

    def save_preferences(
        self, project_id: str, user_id: str, preferences: CoordinationPreferences
    ) -> CoordinationPreferences:
        row = self._preference_row(project_id, user_id)
        if row is None:
            row = CoordinationNotificationPreference(project_id=project_id, user_id=user_id)
            self.db.add(row)
        row.muted_categories = list(preferences.muted_categories)
        row.quiet_hours_start = preferences.quiet_hours_start
        row.quiet_hours_end = preferences.quiet_hours_end
        row.timezone_offset_minutes = preferences.timezone_offset_minutes
        row.max_nudges_per_day = preferences.max_nudges_per_day
        row.channels = list(preferences.channels)
        self.db.commit()
        return self.get_preferences(project_id, user_id)

    # ── Notifications and outcomes ──────────────────────────────────────

    def count_notifications_since(self, *, user_id: str, since: datetime) -> int:
        return (
            self.db.scalar(
                select(func.count(Notification.id)).where(
                    Notification.user_id == user_id,
                    Notification.created_at >= since,
                )
            )
            or 0
        )

    def _outcomes_query(self, action: str | Sequence[str], user_id: str, rule_id: str, since: datetime):
        actions = [action] if isinstance(action, str) else list(action)
        return (
            select(AuditLog.action, func.count(AuditLog.id))
            .join(Notification, Notification.id == AuditLog.entity_id)
            .join(CoordinationTriggerRow, CoordinationTriggerRow.id == Notification.trigger_id)
            .where(
                AuditLog.action.in_(actions),
                AuditLog.created_at >= since,
                Notification.user_id == user_id,
                CoordinationTriggerRow.rule_id == rule_id,
            )
        )

    def get_outcome_counts(
        self, *, user_id: str, rule_id: str, since: datetime
    ) -> tuple[int, int]:
        """(resolved, dismissed) notification outcomes for one user and rule."""
        stmt = self._outcomes_query(
            (AUDIT_NOTIFICATION_RESOLVED, AUDIT_NOTIFICATION_DISMISSED), user_id, rule_id, since
        ).group_by(AuditLog.action)
        counts = dict(self.db.execute(stmt).all())
        return (
            int(counts.get(AUDIT_NOTIFICATION_RESOLVED, 0)),
            int(counts.get(AUDIT_NOTIFICATION_DISMISSED, 0)),
        )

    def has_recent_dismissal(
        self,
        *,
        user_id: str,
        rule_id: str,
        related_entity_id: str | None,
        since: datetime,
    ) -> bool:
        stmt = (
            select(AuditLog.id)
            .join(Notification, Notification.id == AuditLog.entity_id)
            .join(CoordinationTriggerRow, CoordinationTriggerRow.id == Notification.trigger_id)
            .where(
                AuditLog.action == AUDIT_NOTIFICATION_DISMISSED,
                AuditLog.created_at >= since,
                Notification.user_id == user_id,
                CoordinationTriggerRow.rule_id == rule_id,
                _entity_clause(Notification.related_entity_id, related_entity_id),
            )
            .limit(1)
        )
        return self.db.scalar(stmt) is not None

    def deliver_notification(
        self,
        draft: NotificationDraft,
        *,
        project_id: str,
        sent_at: datetime,
        audit_details: dict[str, Any],
    ) -> str | None:
        """Claim the trigger PENDING → SENT, insert the notification and its audit entry.

        All three happen in one transaction. Returns None when the trigger was
        no longer PENDING (already delivered, dismissed or resolved).
        """
        claimed = self.db.execute(
            update(CoordinationTriggerRow)
            .where(
                CoordinationTriggerRow.id == draft.trigger_id,
                CoordinationTriggerRow.status == TRIGGER_PENDING,
            )
            .values(status=TRIGGER_SENT, sent_at=sent_at)
        )
        if not claimed.rowcount:
            self.db.rollback()
            return None

        notification = Notification(
            user_id=draft.user_id,
            trigger_id=draft.trigger_id,
            type=draft.type,
            severity=draft.severity,
            title=draft.title,
            body=draft.body,
            related_entity_id=draft.related_entity_id,
            context=draft.context,
            created_at=sent_at,
        )
        self.db.add(notification)
        self.db.flush()
        self.db.add(
            AuditLog(
                project_id=project_id,
                actor_type="SYSTEM",
                action=AUDIT_NOTIFICATION_SENT,
                entity_type="NOTIFICATION",
                entity_id=notification.id,
                summary=f"Notification sent for trigger {draft.trigger_id}",
                details={"notificationId": notification.id, **audit_details},
                created_at=sent_at,
            )
        )
        self.db.commit()
        return notification.id

    def append_audit_log(
        self,
        *,
        project_id: str,
        action: str,
        entity_type: str,
        entity_id: str,
        summary: str,
        details: dict[str, Any] | None = None,
        actor_type: str = "SYSTEM",
        created_at: datetime | None = None,
    ) -> None:
        self.db.add(
            AuditLog(
                project_id=project_id,
                actor_type=actor_type,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                summary=summary,
                details=details,
                created_at=created_at or datetime.now(UTC),
            )
        )
        self.db.commit()

    def _notification_query(self):
        return select(
            Notification, CoordinationTriggerRow.project_id, CoordinationTriggerRow.rule_id
        ).join(CoordinationTriggerRow, CoordinationTriggerRow.id == Notification.trigger_id)

    def get_notification(self, notification_id: str) -> NotificationRecord | None:
        row = self.db.execute(
            self._notification_query().where(Notification.id == notification_id)
        ).first()
        return _notification_record(*row) if row is not None else None

    def list_notifications(
        self,
        *,
        user_id: str,
        status: str | None = None,
        project_id: str | None = None,
        limit: int = 50,
    ) -> list[NotificationRecord]:
        """A user's notifications, newest first."""
        stmt = self._notification_query().where(Notification.user_id == user_id)
        if status:
            stmt = stmt.where(Notification.status == status)
        if project_id:
            stmt = stmt.where(CoordinationTriggerRow.project_id == project_id)
        stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
        return [_notification_record(*row) for row in self.db.execute(stmt).all()]

    def set_notification_status(self, notification_id: str, status: str) -> None:
        self.db.execute(
            update(Notification)
            .where(Notification.id == notification_id)
            .values(status=status)
        )
        self.db.commit()
