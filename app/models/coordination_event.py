"""CoordinationEvent model — immutable lifecycle fact from upstream producers."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.session import Base
from app.db.types import JSONDict


class CoordinationEvent(Base):
    """Raw coordination event. Only processed_at is ever updated after insert."""

    __tablename__ = "coordination_events"
    __table_args__ = (
        Index("ix_coordination_events_project_occurred", "project_id", "occurred_at"),
        Index(
            "ix_coordination_events_project_type_occurred",
            "project_id",
            "event_type",
            "occurred_at",
        ),
        Index("ix_coordination_events_project_processed", "project_id", "processed_at"),
        Index("ix_coordination_events_target_user", "target_user_id"),
    )

    id: Mapped[str] = mapped_column(
        String(64), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    project_id: Mapped[str] = mapped_column(String(64), nullable=False)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    target_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    related_entity_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    severity: Mapped[str | None] = mapped_column(String(16), nullable=True)
    # "metadata" is reserved on declarative classes
    event_metadata: Mapped[dict | None] = mapped_column("metadata", JSONDict, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
