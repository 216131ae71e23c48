"""Tests for the trigger lifecycle: processing, resolution, cooldown and the sweep."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.coordination.lifecycle import (
    process_coordination_events,
    record_coordination_event,
    resolve_triggers_for_entity,
    rule_ids_to_resolve_for_event,
    run_scheduled_coordination_sweep,
)
from app.coordination.rules import build_trigger_dedup_key
from app.coordination.store import SqlCoordinationStore
from app.coordination.types import CoordinationEvent, CoordinationTriggerDraft
from app.models import CoordinationEvent as CoordinationEventRow
from app.models import CoordinationTrigger as CoordinationTriggerRow
from tests.test_constants import TEST_PROJECT_ID

T0 = datetime(2026, 2, 20, 9, 0, tzinfo=UTC)


def _record(store: SqlCoordinationStore, event_type: str, metadata: dict | None = None, **kwargs):
    kwargs.setdefault("target_user_id", "assignee")
    kwargs.setdefault("occurred_at", T0)
    event, _ = record_coordination_event(
        store,
        project_id=kwargs.pop("project_id", TEST_PROJECT_ID),
        event_type=event_type,
        metadata=metadata,
        process_immediately=False,
        **kwargs,
    )
    return event


def _triggers(db: Session, status: str | None = None) -> list[CoordinationTriggerRow]:
    stmt = select(CoordinationTriggerRow).order_by(CoordinationTriggerRow.created_at)
    if status:
        stmt = stmt.where(CoordinationTriggerRow.status == status)
    return list(db.scalars(stmt))


def _question_draft(level: int = 1, target: str = "assignee", entity: str = "question-1"):
    return CoordinationTriggerDraft(
        project_id=TEST_PROJECT_ID,
        rule_id="question-unanswered-24h",
        target_user_id=target,
        related_entity_id=entity,
        severity="MEDIUM",
        escalation_level=level,
        dedup_key=build_trigger_dedup_key("question-unanswered-24h", target, entity, level),
    )


class TestResolutionSignals:
    @pytest.mark.parametrize(
        ("event_type", "metadata", "expected"),
        [
            ("ACTION_INTERACTION", {"actionState": "DONE"}, ("blocker-persisted-high-severity", "action-overdue")),
            ("ACTION_INTERACTION", {"actionState": "OPEN"}, ()),
            ("QUESTION_EVENT", {"questionStatus": "ANSWERED"}, ("question-unanswered-24h",)),
            ("QUESTION_EVENT", {"questionStatus": "OPEN"}, ()),
            ("BLOCKER_PERSISTED", {"resolved": True}, ("blocker-persisted-high-severity",)),
            ("BLOCKER_PERSISTED", {"resolved": "true"}, ()),
            ("ACTION_OVERDUE", {"resolved": True}, ("blocker-persisted-high-severity", "action-overdue")),
            ("SUMMARY_VIEWED", {"actionState": "DONE"}, ()),
        ],
    )
    def test_rule_ids_to_resolve(self, event_type, metadata, expected) -> None:
        event = CoordinationEvent(
            id="e", project_id="p", event_type=event_type, occurred_at=T0, metadata=metadata
        )
        assert rule_ids_to_resolve_for_event(event) == expected


class TestProcessEvents:
    def test_creates_trigger_and_marks_event_processed(
        self, db: Session, store: SqlCoordinationStore
    ) -> None:
        event = _record(store, "QUESTION_UNANSWERED", {"unansweredHours": 30}, related_entity_id="q-1")

        result = process_coordination_events(store, now=T0 + timedelta(minutes=5))

        assert result.processed_events == 1
        assert result.created_triggers == 1
        assert result.diagnostics is None
        [trigger] = _triggers(db)
        assert trigger.status == "PENDING"
        assert trigger.dedup_key == "question-unanswered-24h:assignee:q-1:L1"
        row = db.get(CoordinationEventRow, event.id)
        assert row.processed_at is not None

    def test_processed_events_are_not_picked_up_again(self, store: SqlCoordinationStore) -> None:
        _record(store, "QUESTION_UNANSWERED", {"unansweredHours": 30}, related_entity_id="q-1")
        process_coordination_events(store, now=T0)

        again = process_coordination_events(store, now=T0 + timedelta(minutes=1))
        assert again.processed_events == 0

    def test_replaying_an_event_is_a_no_op(self, db: Session, store: SqlCoordinationStore) -> None:
        """Explicit replay of the same event resolves nothing and creates nothing."""
        event = _record(store, "QUESTION_UNANSWERED", {"unansweredHours": 30}, related_entity_id="q-1")
        process_coordination_events(store, now=T0)
        [before] = _triggers(db)

        replay = process_coordination_events(
            store, event_ids=[event.id], now=T0 + timedelta(hours=1), include_diagnostics=True
        )

        assert replay.created_triggers == 0
        assert replay.resolved_triggers == 0
        assert replay.suppressed_drafts == 1
        assert any(d.message == "Suppressed by cooldown" for d in replay.diagnostics)
        [after] = _triggers(db)
        assert after.id == before.id
        assert after.status == "PENDING"

    def test_replaying_an_escalating_event_set_creates_nothing(
        self, db: Session, store: SqlCoordinationStore
    ) -> None:
        """The older event must not undo the escalation the newer one produced."""
        first = _record(store, "QUESTION_UNANSWERED", {"unansweredHours": 30}, related_entity_id="q-1")
        second = _record(
            store,
            "QUESTION_UNANSWERED",
            {"unansweredHours": 50, "managerUserId": "mgr-1"},
            related_entity_id="q-1",
            occurred_at=T0 + timedelta(hours=20),
        )
        ids = [first.id, second.id]
        process_coordination_events(store, event_ids=ids, now=T0 + timedelta(hours=20))
        [escalated] = _triggers(db, "PENDING")

        replay = process_coordination_events(
            store, event_ids=ids, now=T0 + timedelta(hours=20, minutes=10), include_diagnostics=True
        )

        assert replay.processed_events == 2
        assert replay.created_triggers == 0
        assert replay.resolved_triggers == 0
        assert replay.suppressed_drafts == 2
        assert any(d.message == "Suppressed: entity already escalated" for d in replay.diagnostics)
        [active] = _triggers(db, "PENDING")
        assert active.id == escalated.id
        assert active.dedup_key == "question-unanswered-24h:mgr-1:q-1:L2"
        assert len(_triggers(db)) == 2

    def test_replayed_answer_leaves_newer_triggers_alone(
        self, db: Session, store: SqlCoordinationStore
    ) -> None:
        answer = _record(store, "QUESTION_EVENT", {"questionStatus": "ANSWERED"}, related_entity_id="q-1")
        process_coordination_events(store, now=T0)

        _record(
            store,
            "QUESTION_UNANSWERED",
            {"unansweredHours": 26},
            related_entity_id="q-1",
            occurred_at=T0 + timedelta(hours=1),
        )
        process_coordination_events(store, now=T0 + timedelta(hours=1))

        replay = process_coordination_events(
            store, event_ids=[answer.id], now=T0 + timedelta(hours=2)
        )

        assert replay.resolved_triggers == 0
        assert len(_triggers(db, "PENDING")) == 1

    def test_lower_level_report_on_an_escalated_entity_is_suppressed(
        self, db: Session, store: SqlCoordinationStore
    ) -> None:
        store.create_trigger(_question_draft(level=2, target="mgr-1", entity="q-1"), T0)
        event = _record(
            store,
            "QUESTION_UNANSWERED",
            {"unansweredHours": 30},
            related_entity_id="q-1",
        )
        db.get(CoordinationEventRow, event.id).processed_at = T0 - timedelta(hours=1)
        db.commit()

        result = process_coordination_events(store, event_ids=[event.id], now=T0 + timedelta(hours=1))

        assert result.created_triggers == 0
        assert result.suppressed_drafts == 1
        [active] = _triggers(db, "PENDING")
        assert active.escalation_level == 2

    def test_events_outside_lookback_are_ignored(self, store: SqlCoordinationStore) -> None:
        _record(
            store,
            "QUESTION_UNANSWERED",
            {"unansweredHours": 30},
            related_entity_id="q-1",
            occurred_at=T0 - timedelta(hours=80),
        )
        result = process_coordination_events(store, now=T0)
        assert result.processed_events == 0
        assert result.created_triggers == 0

    def test_project_scope(self, store: SqlCoordinationStore) -> None:
        _record(store, "MISSING_STANDUP_DETECTED", {"missingDays": 2}, project_id="project-a")
        _record(store, "MISSING_STANDUP_DETECTED", {"missingDays": 2}, project_id="project-b")

        result = process_coordination_events(store, project_id="project-a", now=T0)

        assert result.processed_events == 1
        assert result.created_triggers == 1

    def test_answered_question_resolves_trigger(self, db: Session, store: SqlCoordinationStore) -> None:
        _record(store, "QUESTION_UNANSWERED", {"unansweredHours": 30}, related_entity_id="q-1")
        process_coordination_events(store, now=T0)

        _record(
            store,
            "QUESTION_EVENT",
            {"questionStatus": "ANSWERED"},
            related_entity_id="q-1",
            occurred_at=T0 + timedelta(hours=2),
        )
        result = process_coordination_events(store, now=T0 + timedelta(hours=2))

        assert result.resolved_triggers == 1
        assert result.created_triggers == 0
        [trigger] = _triggers(db)
        assert trigger.status == "RESOLVED"
        assert trigger.resolved_at is not None

    def test_done_action_resolves_blocker(self, db: Session, store: SqlCoordinationStore) -> None:
        _record(
            store, "BLOCKER_PERSISTED", {"blockerDays": 2}, severity="HIGH", related_entity_id="task-1"
        )
        process_coordination_events(store, now=T0)
        assert len(_triggers(db, "PENDING")) == 1

        _record(
            store,
            "ACTION_INTERACTION",
            {"actionState": "DONE"},
            related_entity_id="task-1",
            occurred_at=T0 + timedelta(hours=1),
        )
        result = process_coordination_events(store, now=T0 + timedelta(hours=1))

        assert result.resolved_triggers == 1
        assert _triggers(db, "PENDING") == []

    def test_resolution_happens_before_creation(self, db: Session, store: SqlCoordinationStore) -> None:
        """An explicit resolved blocker event clears the trigger and creates nothing."""
        _record(
            store, "BLOCKER_PERSISTED", {"blockerDays": 2}, severity="HIGH", related_entity_id="task-1"
        )
        process_coordination_events(store, now=T0)

        _record(
            store,
            "BLOCKER_PERSISTED",
            {"blockerDays": 5, "resolved": True},
            severity="HIGH",
            related_entity_id="task-1",
            occurred_at=T0 + timedelta(hours=1),
        )
        result = process_coordination_events(store, now=T0 + timedelta(hours=1))

        assert result.resolved_triggers == 1
        assert result.created_triggers == 0
        assert _triggers(db, "PENDING") == []

    def test_higher_level_supersedes_lower_level(self, db: Session, store: SqlCoordinationStore) -> None:
        _record(
            store, "BLOCKER_PERSISTED", {"blockerDays": 2}, severity="HIGH", related_entity_id="task-1"
        )
        process_coordination_events(store, now=T0)

        _record(
            store,
            "BLOCKER_PERSISTED",
            {"blockerDays": 3, "managerUserId": "mgr-1"},
            severity="HIGH",
            related_entity_id="task-1",
            occurred_at=T0 + timedelta(days=1),
        )
        result = process_coordination_events(store, now=T0 + timedelta(days=1))

        assert result.resolved_triggers == 1
        assert result.created_triggers == 1
        [active] = _triggers(db, "PENDING")
        assert active.escalation_level == 2
        assert active.target_user_id == "mgr-1"

    def test_cooldown_then_supersede(self, db: Session, store: SqlCoordinationStore) -> None:
        """Same dedup key: suppressed inside 24h, renewed after."""
        _record(store, "MISSING_STANDUP_DETECTED", {"missingDays": 2})
        process_coordination_events(store, now=T0)

        _record(store, "MISSING_STANDUP_DETECTED", {"missingDays": 2}, occurred_at=T0 + timedelta(hours=3))
        inside = process_coordination_events(store, now=T0 + timedelta(hours=3))
        assert inside.created_triggers == 0
        assert inside.suppressed_drafts == 1

        later = T0 + timedelta(hours=25)
        _record(store, "MISSING_STANDUP_DETECTED", {"missingDays": 2}, occurred_at=later)
        outside = process_coordination_events(store, now=later)
        assert outside.created_triggers == 1
        assert outside.resolved_triggers == 1

        triggers = _triggers(db)
        assert [t.status for t in triggers] == ["RESOLVED", "PENDING"]

    def test_snooze_retrigger_keeps_previous_level(self, db: Session, store: SqlCoordinationStore) -> None:
        _record(
            store,
            "SNOOZE_EXPIRED",
            {"retrigger": True, "previousEscalationLevel": 2},
            related_entity_id="task-9",
        )
        result = process_coordination_events(store, now=T0)

        assert result.created_triggers == 1
        [trigger] = _triggers(db)
        assert trigger.rule_id == "snooze-expired-retrigger"
        assert trigger.escalation_level == 2
        assert trigger.dedup_key == "snooze-expired-retrigger:assignee:task-9:L2"


class TestRecordEvent:
    def test_processes_immediately_by_default(self, db: Session, store: SqlCoordinationStore) -> None:
        event, result = record_coordination_event(
            store,
            project_id=TEST_PROJECT_ID,
            event_type="MISSING_STANDUP_DETECTED",
            target_user_id="assignee",
            metadata={"missingDays": 3},
        )
        assert result is not None
        assert result.processed_events == 1
        assert result.created_triggers == 1
        assert event.event_type == "MISSING_STANDUP_DETECTED"

    def test_unknown_event_type_raises(self, store: SqlCoordinationStore) -> None:
        with pytest.raises(ValueError, match="Unknown coordination event type"):
            record_coordination_event(store, project_id=TEST_PROJECT_ID, event_type="NOPE")

    def test_unknown_severity_raises(self, store: SqlCoordinationStore) -> None:
        with pytest.raises(ValueError, match="Unknown severity"):
            record_coordination_event(
                store,
                project_id=TEST_PROJECT_ID,
                event_type="BLOCKER_PERSISTED",
                severity="CRITICAL",
            )


class TestStoreCreation:
    def test_conflicting_insert_returns_none(self, db: Session, store: SqlCoordinationStore) -> None:
        """Only one non-RESOLVED trigger may hold a dedup key."""
        first = store.create_trigger(_question_draft(), T0)
        second = store.create_trigger(_question_draft(), T0 + timedelta(minutes=1))

        assert first is not None
        assert second is None
        assert len(_triggers(db)) == 1

    def test_key_is_reusable_after_resolution(self, db: Session, store: SqlCoordinationStore) -> None:
        first = store.create_trigger(_question_draft(), T0)
        resolve_triggers_for_entity(
            store, project_id=TEST_PROJECT_ID, related_entity_id="question-1", resolved_at=T0
        )
        second = store.create_trigger(_question_draft(), T0 + timedelta(minutes=1))

        assert second is not None
        assert second.id != first.id

    def test_resolve_without_entity_or_rules_is_a_no_op(self, store: SqlCoordinationStore) -> None:
        store.create_trigger(_question_draft(), T0)
        assert store.resolve_triggers(project_id=TEST_PROJECT_ID, resolved_at=T0) == 0


class TestSweep:
    def test_stale_question_escalates_to_level_three(
        self, db: Session, store: SqlCoordinationStore
    ) -> None:
        source = store.create_trigger(_question_draft(), datetime(2026, 2, 19, 10, 0, tzinfo=UTC))

        result = run_scheduled_coordination_sweep(
            store, now=datetime(2026, 2, 22, 12, 0, tzinfo=UTC)
        )

        assert result.created_triggers == 1
        assert result.diagnostics
        active = _triggers(db, "PENDING")
        assert [t.dedup_key for t in active] == ["question-unanswered-24h:assignee:question-1:L3"]
        assert db.get(CoordinationTriggerRow, source.id).status == "RESOLVED"

    def test_fresh_trigger_is_not_re_created(self, db: Session, store: SqlCoordinationStore) -> None:
        store.create_trigger(_question_draft(), T0)

        result = run_scheduled_coordination_sweep(store, now=T0 + timedelta(hours=1))

        assert result.created_triggers == 0
        assert result.suppressed_drafts == 1
        assert len(_triggers(db, "PENDING")) == 1

    def test_escalation_routes_through_source_event_hints(
        self, db: Session, store: SqlCoordinationStore
    ) -> None:
        _record(
            store,
            "QUESTION_UNANSWERED",
            {"unansweredHours": 30, "managerUserId": "mgr-1"},
            related_entity_id="q-2",
        )
        process_coordination_events(store, now=T0)

        result = run_scheduled_coordination_sweep(store, now=T0 + timedelta(hours=25))

        assert result.created_triggers == 1
        [active] = _triggers(db, "PENDING")
        assert active.dedup_key == "question-unanswered-24h:mgr-1:q-2:L2"

    def test_sweep_only_supersedes_its_own_trigger(
        self, db: Session, store: SqlCoordinationStore
    ) -> None:
        """Snooze triggers are not aged, and escalating a question leaves them alone."""
        snooze = CoordinationTriggerDraft(
            project_id=TEST_PROJECT_ID,
            rule_id="snooze-expired-retrigger",
            target_user_id="assignee",
            related_entity_id="question-1",
            severity="MEDIUM",
            escalation_level=1,
            dedup_key=build_trigger_dedup_key("snooze-expired-retrigger", "assignee", "question-1", 1),
        )
        store.create_trigger(snooze, T0)
        store.create_trigger(_question_draft(), T0)

        result = run_scheduled_coordination_sweep(store, now=T0 + timedelta(hours=25))

        assert result.processed_events == 1
        assert result.created_triggers == 1
        active = sorted((t.rule_id, t.escalation_level) for t in _triggers(db, "PENDING"))
        assert active == [("question-unanswered-24h", 2), ("snooze-expired-retrigger", 1)]

    def test_project_scope(self, store: SqlCoordinationStore) -> None:
        store.create_trigger(_question_draft(), datetime(2026, 2, 19, 10, 0, tzinfo=UTC))

        result = run_scheduled_coordination_sweep(
            store, project_id="other-project", now=datetime(2026, 2, 22, 12, 0, tzinfo=UTC)
        )
        assert result.processed_events == 0
