"""Pydantic schemas for request/response validation."""

from app.schemas.coordination import (
    CoordinationEventCreate,
    CoordinationEventResponse,
    CoordinationLogEntryResponse,
    CoordinationPreferencesPayload,
    CoordinationPreferencesResponse,
    NotificationListResponse,
    NotificationResponse,
    NotificationTelemetryRequest,
    ProcessEventsRequest,
    ProcessResultResponse,
    RecordEventResponse,
)

__all__ = [
    "CoordinationEventCreate",
    "CoordinationEventResponse",
    "CoordinationLogEntryResponse",
    "CoordinationPreferencesPayload",
    "CoordinationPreferencesResponse",
    "NotificationListResponse",
    "NotificationResponse",
    "NotificationTelemetryRequest",
    "ProcessEventsRequest",
    "ProcessResultResponse",
    "RecordEventResponse",
]
