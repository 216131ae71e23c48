"""Typed views over the free-form event metadata bag.

Events are stored with an opaque JSON ``metadata`` dict. Rules and resolvers
never index that dict directly; they go through ``parse_event_metadata``, which
returns one variant per event type carrying only the fields that type uses.
Any event may carry escalation-target hints.

Readers are lenient: a value of the wrong type is treated as absent.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from app.coordination.constants import (
    ACTION_INTERACTION,
    ACTION_OVERDUE,
    BLOCKER_PERSISTED,
    MISSING_STANDUP_DETECTED,
    QUESTION_EVENT,
    QUESTION_UNANSWERED,
    SNOOZE_EXPIRED,
)


def number_meta(raw: Mapping[str, Any] | None, key: str) -> float | None:
    """Finite int/float value at key, else None. bool is not a number here."""
    if not raw:
        return None
    value = raw.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def string_meta(raw: Mapping[str, Any] | None, key: str) -> str | None:
    """Non-blank string at key, else None."""
    if not raw:
        return None
    value = raw.get(key)
    if isinstance(value, str) and value.strip():
        return value
    return None


def flag_meta(raw: Mapping[str, Any] | None, key: str) -> bool:
    """True only when the stored value is the boolean True."""
    if not raw:
        return False
    return raw.get(key) is True


@dataclass(frozen=True)
class EscalationHints:
    """Optional escalation targets any producer may attach."""

    po_user_id: str | None = None
    project_owner_user_id: str | None = None
    dependency_owner_user_id: str | None = None
    manager_user_id: str | None = None


@dataclass(frozen=True)
class BlockerPersisted:
    hints: EscalationHints
    blocker_days: float | None = None
    blocker_reason: str | None = None
    resolved: bool = False


@dataclass(frozen=True)
class MissingStandup:
    hints: EscalationHints
    missing_days: float | None = None


@dataclass(frozen=True)
class QuestionUnanswered:
    hints: EscalationHints
    unanswered_hours: float | None = None


@dataclass(frozen=True)
class QuestionActivity:
    hints: EscalationHints
    question_status: str | None = None


@dataclass(frozen=True)
class ActionInteractionMeta:
    hints: EscalationHints
    action_state: str | None = None


@dataclass(frozen=True)
class ActionOverdueMeta:
    hints: EscalationHints
    overdue_days: float | None = None
    resolved: bool = False


@dataclass(frozen=True)
class SnoozeExpired:
    hints: EscalationHints
    retrigger: bool = False
    previous_escalation_level: float | None = None


@dataclass(frozen=True)
class GenericMetadata:
    hints: EscalationHints


EventMetadata = (
    BlockerPersisted
    | MissingStandup
    | QuestionUnanswered
    | QuestionActivity
    | ActionInteractionMeta
    | ActionOverdueMeta
    | SnoozeExpired
    | GenericMetadata
)


def parse_escalation_hints(raw: Mapping[str, Any] | None) -> EscalationHints:
    return EscalationHints(
        po_user_id=string_meta(raw, "poUserId"),
        project_owner_user_id=string_meta(raw, "projectOwnerUserId"),
        dependency_owner_user_id=string_meta(raw, "dependencyOwnerUserId"),
        manager_user_id=string_meta(raw, "managerUserId"),
    )


def parse_event_metadata(event_type: str, raw: Mapping[str, Any] | None) -> EventMetadata:
    """Return the typed metadata variant for event_type. Never raises."""
    if raw is not None and not isinstance(raw, Mapping):
        raw = None
    hints = parse_escalation_hints(raw)

    if event_type == BLOCKER_PERSISTED:
        return BlockerPersisted(
            hints=hints,
            blocker_days=number_meta(raw, "blockerDays"),
            blocker_reason=string_meta(raw, "blockerReason"),
            resolved=flag_meta(raw, "resolved"),
        )
    if event_type == MISSING_STANDUP_DETECTED:
        return MissingStandup(hints=hints, missing_days=number_meta(raw, "missingDays"))
    if event_type == QUESTION_UNANSWERED:
        return QuestionUnanswered(
            hints=hints, unanswered_hours=number_meta(raw, "unansweredHours")
        )
    if event_type == QUESTION_EVENT:
        return QuestionActivity(hints=hints, question_status=string_meta(raw, "questionStatus"))
    if event_type == ACTION_INTERACTION:
        return ActionInteractionMeta(hints=hints, action_state=string_meta(raw, "actionState"))
    if event_type == ACTION_OVERDUE:
        return ActionOverdueMeta(
            hints=hints,
            overdue_days=number_meta(raw, "overdueDays"),
            resolved=flag_meta(raw, "resolved"),
        )
    if event_type == SNOOZE_EXPIRED:
        return SnoozeExpired(
            hints=hints,
            retrigger=flag_meta(raw, "retrigger"),
            previous_escalation_level=number_meta(raw, "previousEscalationLevel"),
        )
    return GenericMetadata(hints=hints)
