"""Plain value types passed between the evaluator, lifecycle engine, gate and store."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal


@dataclass
class CoordinationEvent:
    """Immutable fact from an upstream producer (or a synthetic aging event)."""

    id: str
    project_id: str
    event_type: str
    occurred_at: datetime
    target_user_id: str | None = None
    related_entity_id: str | None = None
    severity: str | None = None
    metadata: dict[str, Any] | None = None
    processed_at: datetime | None = None
    synthetic: bool = False


@dataclass(frozen=True)
class CoordinationTriggerDraft:
    """Output of rule evaluation, not yet persisted."""

    project_id: str
    rule_id: str
    target_user_id: str
    severity: str
    escalation_level: int
    dedup_key: str
    related_entity_id: str | None = None


@dataclass
class CoordinationTrigger:
    """Persisted escalation."""

    id: str
    project_id: str
    rule_id: str
    target_user_id: str
    severity: str
    escalation_level: int
    dedup_key: str
    created_at: datetime
    status: str
    related_entity_id: str | None = None
    resolved_at: datetime | None = None
    sent_at: datetime | None = None


@dataclass(frozen=True)
class CoordinationLogEntry:
    """Diagnostic line returned to callers that ask for it."""

    level: Literal["info", "debug"]
    message: str
    event_id: str | None = None
    rule_id: str | None = None
    dedup_key: str | None = None


@dataclass
class ProcessResult:
    """Summary of one process_coordination_events run."""

    processed_events: int
    created_triggers: int
    resolved_triggers: int
    suppressed_drafts: int = 0
    diagnostics: list[CoordinationLogEntry] | None = None

    def as_dict(self) -> dict:
        out: dict[str, Any] = {
            "processed_events": self.processed_events,
            "created_triggers": self.created_triggers,
            "resolved_triggers": self.resolved_triggers,
            "suppressed_drafts": self.suppressed_drafts,
        }
        if self.diagnostics is not None:
            out["diagnostics"] = [
                {
                    "level": d.level,
                    "message": d.message,
                    "event_id": d.event_id,
                    "rule_id": d.rule_id,
                    "dedup_key": d.dedup_key,
                }
                for d in self.diagnostics
            ]
        return out


@dataclass
class NotificationResult:
    """Outcome of the notification gate for one trigger."""

    sent: bool
    reason: str | None = None
    notification_id: str | None = None
    quality: dict[str, Any] | None = field(default=None)
