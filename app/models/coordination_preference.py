"""Per-user, per-project coordination notification preferences."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.session import Base
from app.db.types import JSONDict


class CoordinationNotificationPreference(Base):
    """User-owned settings row. Values are stored normalized; the engine never deletes rows."""

    __tablename__ = "coordination_notification_preferences"
    __table_args__ = (
        UniqueConstraint(
            "project_id", "user_id", name="uq_coordination_preferences_project_user"
        ),
    )

    id: Mapped[str] = mapped_column(
        String(64), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    project_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    muted_categories: Mapped[list] = mapped_column(JSONDict, nullable=False, default=list)
    quiet_hours_start: Mapped[int | None] = mapped_column(Integer, nullable=True)
    quiet_hours_end: Mapped[int | None] = mapped_column(Integer, nullable=True)
    timezone_offset_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_nudges_per_day: Mapped[int] = mapped_column(Integer, default=5, nullable=False)
    channels: Mapped[list] = mapped_column(JSONDict, nullable=False, default=lambda: ["IN_APP"])
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )
