"""Tests for the coordination HTTP surface: intake, preferences, telemetry, internal jobs."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import AuditLog, CoordinationTrigger, Notification
from tests.test_constants import TEST_INTERNAL_JOB_TOKEN, TEST_PROJECT_ID

HEADERS = {"X-Internal-Token": TEST_INTERNAL_JOB_TOKEN}


def _post_event(client: TestClient, **payload):
    body = {"project_id": TEST_PROJECT_ID, "target_user_id": "u1", **payload}
    return client.post("/api/coordination/events", json=body, headers=HEADERS)


class TestAuth:
    def test_missing_token_returns_422(self, client: TestClient) -> None:
        response = client.post("/internal/coordination/sweep")
        assert response.status_code == 422

    def test_wrong_token_returns_403(self, client: TestClient) -> None:
        response = client.post(
            "/internal/coordination/sweep", headers={"X-Internal-Token": "wrong"}
        )
        assert response.status_code == 403

    def test_public_routes_require_token(self, client: TestClient) -> None:
        response = client.get(
            f"/api/projects/{TEST_PROJECT_ID}/users/u1/coordination-preferences",
            headers={"X-Internal-Token": "wrong"},
        )
        assert response.status_code == 403


class TestEventIntake:
    def test_record_and_process(self, client: TestClient, db: Session) -> None:
        response = _post_event(
            client,
            event_type="BLOCKER_PERSISTED",
            severity="HIGH",
            related_entity_id="task-1",
            metadata={"blockerDays": 2},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["event"]["event_type"] == "BLOCKER_PERSISTED"
        assert data["result"]["created_triggers"] == 1
        [trigger] = db.scalars(select(CoordinationTrigger)).all()
        assert trigger.rule_id == "blocker-persisted-high-severity"

    def test_record_without_processing(self, client: TestClient, db: Session) -> None:
        response = _post_event(
            client,
            event_type="MISSING_STANDUP_DETECTED",
            metadata={"missingDays": 3},
            process_immediately=False,
        )
        assert response.status_code == 201
        assert response.json()["result"] is None
        assert db.scalars(select(CoordinationTrigger)).all() == []

    def test_unknown_event_type_is_422(self, client: TestClient) -> None:
        response = _post_event(client, event_type="NOT_A_TYPE")
        assert response.status_code == 422
        assert "Unknown coordination event type" in response.json()["detail"]

    def test_unknown_severity_is_422(self, client: TestClient) -> None:
        response = _post_event(client, event_type="BLOCKER_PERSISTED", severity="CRITICAL")
        assert response.status_code == 422


class TestPreferences:
    URL = f"/api/projects/{TEST_PROJECT_ID}/users/u1/coordination-preferences"

    def test_defaults(self, client: TestClient) -> None:
        response = client.get(self.URL, headers=HEADERS)
        assert response.status_code == 200
        assert response.json() == {
            "muted_categories": [],
            "quiet_hours_start": None,
            "quiet_hours_end": None,
            "timezone_offset_minutes": 0,
            "max_nudges_per_day": 5,
            "channels": ["IN_APP"],
        }

    def test_put_normalizes_and_merges(self, client: TestClient) -> None:
        response = client.put(
            self.URL,
            json={"muted_categories": ["QUESTIONS", "BOGUS"], "max_nudges_per_day": 50},
            headers=HEADERS,
        )
        assert response.status_code == 200
        assert response.json()["muted_categories"] == ["QUESTIONS"]
        assert response.json()["max_nudges_per_day"] == 20

        response = client.put(self.URL, json={"quiet_hours_start": 22, "quiet_hours_end": 6}, headers=HEADERS)
        data = response.json()
        assert data["muted_categories"] == ["QUESTIONS"]
        assert (data["quiet_hours_start"], data["quiet_hours_end"]) == (22, 6)

        assert client.get(self.URL, headers=HEADERS).json() == data


class TestInternalJobs:
    def test_process_job(self, client: TestClient) -> None:
        _post_event(
            client,
            event_type="QUESTION_UNANSWERED",
            related_entity_id="q-1",
            metadata={"unansweredHours": 30},
            process_immediately=False,
        )
        response = client.post(
            "/internal/coordination/process",
            json={"include_diagnostics": True},
            headers=HEADERS,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["processed_events"] == 1
        assert data["created_triggers"] == 1
        assert data["diagnostics"][0]["message"] == "Trigger created"

    def test_process_job_without_body(self, client: TestClient) -> None:
        response = client.post("/internal/coordination/process", headers=HEADERS)
        assert response.json()["status"] == "completed"
        assert response.json()["processed_events"] == 0

    def test_sweep_job(self, client: TestClient) -> None:
        response = client.post("/internal/coordination/sweep", headers=HEADERS)
        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert response.json()["diagnostics"] == []

    def test_sweep_failure_is_reported(self, client: TestClient) -> None:
        with patch(
            "app.api.internal.run_scheduled_coordination_sweep",
            side_effect=RuntimeError("db down"),
        ):
            response = client.post("/internal/coordination/sweep", headers=HEADERS)
        assert response.status_code == 200
        assert response.json() == {"status": "failed", "error": "db down"}

    def test_notify_unknown_trigger_is_404(self, client: TestClient) -> None:
        response = client.post("/internal/coordination/notify/missing", headers=HEADERS)
        assert response.status_code == 404

    def test_notify_and_telemetry(self, client: TestClient, db: Session) -> None:
        _post_event(
            client,
            event_type="BLOCKER_PERSISTED",
            severity="HIGH",
            related_entity_id="task-1",
            metadata={"blockerDays": 2},
            occurred_at=(datetime.now(UTC) - timedelta(hours=1)).isoformat(),
        )
        trigger = db.scalars(select(CoordinationTrigger)).one()

        response = client.post(f"/internal/coordination/notify/{trigger.id}", headers=HEADERS)
        data = response.json()
        assert data["sent"] is True
        notification_id = data["notification_id"]

        again = client.post(f"/internal/coordination/notify/{trigger.id}", headers=HEADERS)
        assert again.json()["reason"] == "trigger-not-pending"

        response = client.post(
            f"/api/notifications/{notification_id}/telemetry",
            json={"action": "dismiss"},
            headers=HEADERS,
        )
        assert response.status_code == 200
        db.expire_all()
        assert db.get(Notification, notification_id).status == "DISMISSED"


@pytest.mark.parametrize("action", ["read", "resolve", "dismiss"])
def test_telemetry_unknown_notification_is_404(client: TestClient, action: str) -> None:
    response = client.post(
        "/api/notifications/missing/telemetry", json={"action": action}, headers=HEADERS
    )
    assert response.status_code == 404


def test_telemetry_rejects_unknown_action(client: TestClient) -> None:
    response = client.post(
        "/api/notifications/n-1/telemetry", json={"action": "explode"}, headers=HEADERS
    )
    assert response.status_code == 422


class TestInbox:
    def _deliver(self, client: TestClient, db: Session) -> str:
        _post_event(
            client,
            event_type="BLOCKER_PERSISTED",
            severity="HIGH",
            related_entity_id="task-1",
            metadata={"blockerDays": 2},
            occurred_at=(datetime.now(UTC) - timedelta(hours=1)).isoformat(),
        )
        trigger = db.scalars(select(CoordinationTrigger)).one()
        response = client.post(f"/internal/coordination/notify/{trigger.id}", headers=HEADERS)
        return response.json()["notification_id"]

    def test_lists_user_notifications(self, client: TestClient, db: Session) -> None:
        notification_id = self._deliver(client, db)

        response = client.get("/api/notifications", params={"user_id": "u1"}, headers=HEADERS)

        assert response.status_code == 200
        [item] = response.json()["notifications"]
        assert item["id"] == notification_id
        assert item["project_id"] == TEST_PROJECT_ID
        assert item["status"] == "UNREAD"
        assert item["context"]["why"]["category"] == "BLOCKERS"
        viewed = db.scalars(
            select(AuditLog).where(AuditLog.action == "NotificationViewed")
        ).all()
        assert [row.entity_id for row in viewed] == [notification_id]

    def test_filters(self, client: TestClient, db: Session) -> None:
        self._deliver(client, db)

        def listed(**params) -> list:
            response = client.get(
                "/api/notifications", params={"user_id": "u1", **params}, headers=HEADERS
            )
            return response.json()["notifications"]

        assert listed(status="dismissed") == []
        assert listed(project_id="other-project") == []
        assert len(listed(project_id=TEST_PROJECT_ID)) == 1
        assert listed(user_id="u2") == []

    def test_user_id_is_required(self, client: TestClient) -> None:
        response = client.get("/api/notifications", headers=HEADERS)
        assert response.status_code == 422
