"""Coordination notification preferences: normalization, categories, quiet hours.

Normalization never rejects input. Anything out of range is clamped, anything
malformed falls back to the default, so stored rows are always safe to apply.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from app.coordination.constants import (
    RULE_ACTION_OVERDUE,
    RULE_MISSING_STANDUP,
    RULE_QUESTION_UNANSWERED,
)

CATEGORY_BLOCKERS = "BLOCKERS"
CATEGORY_QUESTIONS = "QUESTIONS"
CATEGORY_STANDUPS = "STANDUPS"
CATEGORY_OVERDUE_ACTIONS = "OVERDUE_ACTIONS"

NUDGE_CATEGORIES: tuple[str, ...] = (
    CATEGORY_BLOCKERS,
    CATEGORY_QUESTIONS,
    CATEGORY_STANDUPS,
    CATEGORY_OVERDUE_ACTIONS,
)

CHANNEL_IN_APP = "IN_APP"

MIN_TIMEZONE_OFFSET_MINUTES = -720
MAX_TIMEZONE_OFFSET_MINUTES = 840
MIN_NUDGES_PER_DAY = 1
MAX_NUDGES_PER_DAY = 20


@dataclass(frozen=True)
class CoordinationPreferences:
    muted_categories: tuple[str, ...] = ()
    quiet_hours_start: int | None = None
    quiet_hours_end: int | None = None
    timezone_offset_minutes: int = 0
    max_nudges_per_day: int = 5
    channels: tuple[str, ...] = field(default=(CHANNEL_IN_APP,))

    def as_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["muted_categories"] = list(self.muted_categories)
        out["channels"] = list(self.channels)
        return out


DEFAULT_COORDINATION_PREFERENCES = CoordinationPreferences()


def map_rule_to_category(rule_id: str) -> str:
    """Category a rule's nudges belong to. Unknown rules count as blockers."""
    if rule_id == RULE_QUESTION_UNANSWERED:
        return CATEGORY_QUESTIONS
    if rule_id == RULE_MISSING_STANDUP:
        return CATEGORY_STANDUPS
    if rule_id == RULE_ACTION_OVERDUE:
        return CATEGORY_OVERDUE_ACTIONS
    return CATEGORY_BLOCKERS


def local_time(when: datetime, timezone_offset_minutes: int) -> datetime:
    """Shift an instant into the user's wall-clock time (naive result)."""
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    return (when.astimezone(UTC) + timedelta(minutes=timezone_offset_minutes)).replace(tzinfo=None)


def start_of_local_day(when: datetime, timezone_offset_minutes: int) -> datetime:
    """UTC instant at which the user's current local day began."""
    local = local_time(when, timezone_offset_minutes)
    local_midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return (local_midnight - timedelta(minutes=timezone_offset_minutes)).replace(tzinfo=UTC)


def is_within_quiet_hours(
    when: datetime,
    quiet_hours_start: int | None,
    quiet_hours_end: int | None,
    timezone_offset_minutes: int = 0,
) -> bool:
    """True when the user's local hour falls in [start, end), wrapping past midnight.

    A window with a missing bound, or start == end, is disabled.
    """
    if quiet_hours_start is None or quiet_hours_end is None:
        return False
    if quiet_hours_start == quiet_hours_end:
        return False

    local_hour = local_time(when, timezone_offset_minutes).hour
    if quiet_hours_start < quiet_hours_end:
        return quiet_hours_start <= local_hour < quiet_hours_end
    return local_hour >= quiet_hours_start or local_hour < quiet_hours_end


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _normalize_hour(value: Any) -> int | None:
    if not _is_number(value) or value != int(value):
        return None
    if 0 <= value <= 23:
        return int(value)
    return None


def _clamp_rounded(value: Any, low: int, high: int, default: int) -> int:
    if not _is_number(value):
        return default
    return max(low, min(high, round(value)))


def _normalize_muted(value: Any) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return DEFAULT_COORDINATION_PREFERENCES.muted_categories
    seen: list[str] = []
    for item in value:
        if item in NUDGE_CATEGORIES and item not in seen:
            seen.append(item)
    return tuple(seen)


def normalize_preferences_input(raw: Mapping[str, Any] | None) -> CoordinationPreferences:
    """Build a bounded preferences record from arbitrary input. Never raises."""
    if not isinstance(raw, Mapping):
        return DEFAULT_COORDINATION_PREFERENCES

    channels = raw.get("channels")
    if isinstance(channels, (list, tuple)) and CHANNEL_IN_APP in channels:
        normalized_channels: tuple[str, ...] = (CHANNEL_IN_APP,)
    else:
        normalized_channels = DEFAULT_COORDINATION_PREFERENCES.channels

    quiet_start = _normalize_hour(raw.get("quiet_hours_start"))
    quiet_end = _normalize_hour(raw.get("quiet_hours_end"))
    if quiet_start is not None and quiet_start == quiet_end:
        quiet_start = quiet_end = None

    return CoordinationPreferences(
        muted_categories=_normalize_muted(raw.get("muted_categories")),
        quiet_hours_start=quiet_start,
        quiet_hours_end=quiet_end,
        timezone_offset_minutes=_clamp_rounded(
            raw.get("timezone_offset_minutes"),
            MIN_TIMEZONE_OFFSET_MINUTES,
            MAX_TIMEZONE_OFFSET_MINUTES,
            DEFAULT_COORDINATION_PREFERENCES.timezone_offset_minutes,
        ),
        max_nudges_per_day=_clamp_rounded(
            raw.get("max_nudges_per_day"),
            MIN_NUDGES_PER_DAY,
            MAX_NUDGES_PER_DAY,
            DEFAULT_COORDINATION_PREFERENCES.max_nudges_per_day,
        ),
        channels=normalized_channels,
    )
