"""Internal job endpoints for cron/scripts.

These endpoints are secured with a static token (X-Internal-Token header).
They are meant for automated triggers only. Job failures are reported in the
response body rather than as HTTP errors so schedulers can log them.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Body, Depends, HTTPException, Query

from app.api.deps import get_store, require_internal_token
from app.coordination.lifecycle import (
    process_coordination_events,
    run_scheduled_coordination_sweep,
)
from app.coordination.notifications import create_notification_for_trigger
from app.coordination.store import SqlCoordinationStore
from app.schemas.coordination import ProcessEventsRequest

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/internal",
    include_in_schema=False,
    dependencies=[Depends(require_internal_token)],
)


@router.post("/coordination/process")
async def run_coordination_process(
    body: ProcessEventsRequest | None = Body(None),
    project_id: str | None = Query(None, description="Limit to one project"),
    store: SqlCoordinationStore = Depends(get_store),
):
    """Process unprocessed coordination events (or the given event ids)."""
    body = body or ProcessEventsRequest()
    try:
        result = process_coordination_events(
            store,
            event_ids=body.event_ids,
            project_id=project_id,
            include_diagnostics=body.include_diagnostics,
        )
        return {"status": "completed", **result.as_dict()}
    except Exception as exc:
        logger.exception("Coordination event processing failed")
        return {"status": "failed", "error": str(exc)}


@router.post("/coordination/sweep")
async def run_coordination_sweep(
    project_id: str | None = Query(None, description="Limit to one project"),
    store: SqlCoordinationStore = Depends(get_store),
):
    """Age active triggers and escalate the ones past their next threshold."""
    try:
        result = run_scheduled_coordination_sweep(store, project_id=project_id)
        return {"status": "completed", **result.as_dict()}
    except Exception as exc:
        logger.exception("Coordination sweep failed")
        return {"status": "failed", "error": str(exc)}


@router.post("/coordination/notify/{trigger_id}")
async def run_coordination_notify(
    trigger_id: str,
    store: SqlCoordinationStore = Depends(get_store),
):
    """Run the notification gate for one trigger."""
    trigger = store.get_trigger(trigger_id)
    if trigger is None:
        raise HTTPException(status_code=404, detail="Trigger not found")
    try:
        result = create_notification_for_trigger(store, trigger)
    except Exception as exc:
        logger.exception("Notification delivery failed for trigger %s", trigger_id)
        return {"status": "failed", "error": str(exc)}
    return {
        "status": "completed",
        "sent": result.sent,
        "reason": result.reason,
        "notification_id": result.notification_id,
        "quality": result.quality,
    }
