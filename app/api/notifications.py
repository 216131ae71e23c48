"""Notification inbox and telemetry: list, read, resolve and dismiss."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query

from app.api.deps import get_store, require_internal_token
from app.coordination.notifications import (
    dismiss_notification,
    list_notifications_for_user,
    mark_notification_read,
    resolve_notification,
)
from app.coordination.store import SqlCoordinationStore
from app.schemas.coordination import (
    NotificationListResponse,
    NotificationResponse,
    NotificationTelemetryRequest,
)

router = APIRouter(dependencies=[Depends(require_internal_token)])

_HANDLERS = {
    "read": mark_notification_read,
    "resolve": resolve_notification,
    "dismiss": dismiss_notification,
}


@router.get("", response_model=NotificationListResponse)
def list_notifications(
    user_id: str = Query(..., min_length=1),
    status: str | None = Query(None, description="UNREAD, READ or DISMISSED"),
    project_id: str | None = Query(None),
    store: SqlCoordinationStore = Depends(get_store),
) -> NotificationListResponse:
    """The user's newest notifications. Listing unread ones records them as viewed."""
    records = list_notifications_for_user(
        store, user_id=user_id, status=status, project_id=project_id
    )
    return NotificationListResponse(
        notifications=[NotificationResponse(**asdict(record)) for record in records]
    )


@router.post("/{notification_id}/telemetry")
def record_telemetry(
    notification_id: str,
    data: NotificationTelemetryRequest,
    store: SqlCoordinationStore = Depends(get_store),
) -> dict:
    """Apply a user outcome to a notification and record it for quality estimation."""
    try:
        _HANDLERS[data.action](store, notification_id)
    except LookupError:
        raise HTTPException(status_code=404, detail="Notification not found") from None
    return {"status": "ok", "notification_id": notification_id, "action": data.action}
