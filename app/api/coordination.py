"""Coordination API: event intake and per-user notification preferences."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from app.api.deps import get_store, require_internal_token
from app.coordination.lifecycle import record_coordination_event
from app.coordination.preferences import normalize_preferences_input
from app.coordination.store import SqlCoordinationStore
from app.schemas.coordination import (
    CoordinationEventCreate,
    CoordinationEventResponse,
    CoordinationPreferencesPayload,
    CoordinationPreferencesResponse,
    RecordEventResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_internal_token)])


@router.post("/coordination/events", response_model=RecordEventResponse, status_code=201)
def record_event(
    data: CoordinationEventCreate,
    store: SqlCoordinationStore = Depends(get_store),
) -> RecordEventResponse:
    """Record one producer event and process it unless asked not to."""
    try:
        event, result = record_coordination_event(
            store,
            project_id=data.project_id,
            event_type=data.event_type,
            target_user_id=data.target_user_id,
            related_entity_id=data.related_entity_id,
            severity=data.severity,
            metadata=data.metadata,
            occurred_at=data.occurred_at,
            process_immediately=data.process_immediately,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from None

    return RecordEventResponse(
        event=CoordinationEventResponse(
            id=event.id,
            project_id=event.project_id,
            event_type=event.event_type,
            target_user_id=event.target_user_id,
            related_entity_id=event.related_entity_id,
            severity=event.severity,
            metadata=event.metadata,
            occurred_at=event.occurred_at,
            processed_at=event.processed_at,
        ),
        result=result.as_dict() if result is not None else None,
    )


@router.get(
    "/projects/{project_id}/users/{user_id}/coordination-preferences",
    response_model=CoordinationPreferencesResponse,
)
def get_preferences(
    project_id: str,
    user_id: str,
    store: SqlCoordinationStore = Depends(get_store),
) -> CoordinationPreferencesResponse:
    """Stored preferences, or defaults when the user has none."""
    prefs = store.get_preferences(project_id, user_id)
    return CoordinationPreferencesResponse(**prefs.as_dict())


@router.put(
    "/projects/{project_id}/users/{user_id}/coordination-preferences",
    response_model=CoordinationPreferencesResponse,
)
def update_preferences(
    project_id: str,
    user_id: str,
    data: CoordinationPreferencesPayload,
    store: SqlCoordinationStore = Depends(get_store),
) -> CoordinationPreferencesResponse:
    """Normalize and save preferences. Out-of-range values are clamped, not rejected."""
    current = store.get_preferences(project_id, user_id).as_dict()
    merged = {**current, **data.model_dump(exclude_unset=True)}
    prefs = store.save_preferences(project_id, user_id, normalize_preferences_input(merged))
    logger.info("Coordination preferences saved: project=%s user=%s", project_id, user_id)
    return CoordinationPreferencesResponse(**prefs.as_dict())
