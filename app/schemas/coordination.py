"""Coordination schemas for request/response validation."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from app.coordination.constants import CoordinationSeverity


class CoordinationEventCreate(BaseModel):
    """Schema for recording an upstream coordination event."""

    project_id: str = Field(..., min_length=1, max_length=64)
    event_type: str = Field(..., min_length=1, max_length=64)
    target_user_id: str | None = Field(None, max_length=64)
    related_entity_id: str | None = Field(None, max_length=255)
    severity: CoordinationSeverity | None = None
    metadata: dict[str, Any] | None = None
    occurred_at: datetime | None = None
    process_immediately: bool = True


class CoordinationEventResponse(BaseModel):
    id: str
    project_id: str
    event_type: str
    target_user_id: str | None
    related_entity_id: str | None
    severity: str | None
    metadata: dict[str, Any] | None
    occurred_at: datetime
    processed_at: datetime | None


class CoordinationLogEntryResponse(BaseModel):
    level: Literal["info", "debug"]
    message: str
    event_id: str | None = None
    rule_id: str | None = None
    dedup_key: str | None = None


class ProcessResultResponse(BaseModel):
    processed_events: int
    created_triggers: int
    resolved_triggers: int
    suppressed_drafts: int = 0
    diagnostics: list[CoordinationLogEntryResponse] | None = None


class RecordEventResponse(BaseModel):
    event: CoordinationEventResponse
    result: ProcessResultResponse | None = None


class ProcessEventsRequest(BaseModel):
    """Optional body for the internal process job."""

    event_ids: list[str] | None = None
    include_diagnostics: bool = False


class CoordinationPreferencesPayload(BaseModel):
    """Preference update. Values are normalized, never rejected, so fields stay loose."""

    muted_categories: list[Any] | None = None
    quiet_hours_start: Any = None
    quiet_hours_end: Any = None
    timezone_offset_minutes: Any = None
    max_nudges_per_day: Any = None
    channels: list[Any] | None = None


class CoordinationPreferencesResponse(BaseModel):
    muted_categories: list[str]
    quiet_hours_start: int | None
    quiet_hours_end: int | None
    timezone_offset_minutes: int
    max_nudges_per_day: int
    channels: list[str]


class NotificationTelemetryRequest(BaseModel):
    action: Literal["read", "resolve", "dismiss"]


class NotificationResponse(BaseModel):
    id: str
    user_id: str
    project_id: str
    trigger_id: str
    rule_id: str
    type: str
    severity: str
    status: str
    title: str
    body: str
    related_entity_id: str | None
    context: dict[str, Any] | None
    created_at: datetime


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
