"""add coordination events, triggers, preferences, notifications and audit logs

Revision ID: 20261001_coordination
Revises:
Create Date: 2026-10-01

Trigger dedup is enforced by a partial unique index: one non-RESOLVED trigger
per (project_id, dedup_key).
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20261001_coordination"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
_ACTIVE_ROWS = sa.text("status <> 'RESOLVED'")


def upgrade() -> None:
    op.create_table(
        "coordination_events",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("project_id", sa.String(length=64), nullable=False),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("target_user_id", sa.String(length=64), nullable=True),
        sa.Column("related_entity_id", sa.String(length=255), nullable=True),
        sa.Column("severity", sa.String(length=16), nullable=True),
        sa.Column("metadata", _JSON, nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_coordination_events_project_occurred",
        "coordination_events",
        ["project_id", "occurred_at"],
    )
    op.create_index(
        "ix_coordination_events_project_type_occurred",
        "coordination_events",
        ["project_id", "event_type", "occurred_at"],
    )
    op.create_index(
        "ix_coordination_events_project_processed",
        "coordination_events",
        ["project_id", "processed_at"],
    )
    op.create_index(
        "ix_coordination_events_target_user",
        "coordination_events",
        ["target_user_id"],
    )

    op.create_table(
        "coordination_triggers",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("project_id", sa.String(length=64), nullable=False),
        sa.Column("rule_id", sa.String(length=64), nullable=False),
        sa.Column("target_user_id", sa.String(length=64), nullable=False),
        sa.Column("related_entity_id", sa.String(length=255), nullable=True),
        sa.Column("severity", sa.String(length=16), nullable=False),
        sa.Column("escalation_level", sa.Integer(), nullable=False),
        sa.Column("dedup_key", sa.String(length=512), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="PENDING"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "uq_coordination_triggers_active_dedup_key",
        "coordination_triggers",
        ["project_id", "dedup_key"],
        unique=True,
        postgresql_where=_ACTIVE_ROWS,
        sqlite_where=_ACTIVE_ROWS,
    )
    op.create_index(
        "ix_coordination_triggers_project_status",
        "coordination_triggers",
        ["project_id", "status"],
    )
    op.create_index(
        "ix_coordination_triggers_project_status_entity",
        "coordination_triggers",
        ["project_id", "status", "related_entity_id"],
    )
    op.create_index(
        "ix_coordination_triggers_dedup_created",
        "coordination_triggers",
        ["dedup_key", "created_at"],
    )

    op.create_table(
        "coordination_notification_preferences",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("project_id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("muted_categories", _JSON, nullable=False),
        sa.Column("quiet_hours_start", sa.Integer(), nullable=True),
        sa.Column("quiet_hours_end", sa.Integer(), nullable=True),
        sa.Column("timezone_offset_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_nudges_per_day", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("channels", _JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "project_id", "user_id", name="uq_coordination_preferences_project_user"
        ),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("trigger_id", sa.String(length=64), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("severity", sa.String(length=16), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("related_entity_id", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="UNREAD"),
        sa.Column("context", _JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["trigger_id"], ["coordination_triggers.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notifications_user_created", "notifications", ["user_id", "created_at"])
    op.create_index(
        "ix_notifications_user_status_created",
        "notifications",
        ["user_id", "status", "created_at"],
    )
    op.create_index("ix_notifications_trigger", "notifications", ["trigger_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("project_id", sa.String(length=64), nullable=False),
        sa.Column("actor_type", sa.String(length=16), nullable=False, server_default="SYSTEM"),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=32), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("summary", sa.Text(), nullable=False),
        sa.Column("metadata", _JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_project_created", "audit_logs", ["project_id", "created_at"])
    op.create_index("ix_audit_logs_action_entity", "audit_logs", ["action", "entity_id"])


def downgrade() -> None:
    op.drop_table("audit_logs", if_exists=True)
    op.drop_table("notifications", if_exists=True)
    op.drop_table("coordination_notification_preferences", if_exists=True)
    op.drop_table("coordination_triggers", if_exists=True)
    op.drop_table("coordination_events", if_exists=True)
