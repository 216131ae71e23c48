"""CoordinationTrigger model — persisted unit of escalation."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.session import Base

_ACTIVE_ROWS = text("status <> 'RESOLVED'")


class CoordinationTrigger(Base):
    """Escalation trigger. At most one non-RESOLVED row per (project_id, dedup_key)."""

    __tablename__ = "coordination_triggers"
    __table_args__ = (
        Index(
            "uq_coordination_triggers_active_dedup_key",
            "project_id",
            "dedup_key",
            unique=True,
            postgresql_where=_ACTIVE_ROWS,
            sqlite_where=_ACTIVE_ROWS,
        ),
        Index("ix_coordination_triggers_project_status", "project_id", "status"),
        Index(
            "ix_coordination_triggers_project_status_entity",
            "project_id",
            "status",
            "related_entity_id",
        ),
        Index("ix_coordination_triggers_dedup_created", "dedup_key", "created_at"),
    )

    id: Mapped[str] = mapped_column(
        String(64), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    project_id: Mapped[str] = mapped_column(String(64), nullable=False)
    rule_id: Mapped[str] = mapped_column(String(64), nullable=False)
    target_user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    related_entity_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    escalation_level: Mapped[int] = mapped_column(Integer, nullable=False)
    dedup_key: Mapped[str] = mapped_column(String(512), nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="PENDING", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
