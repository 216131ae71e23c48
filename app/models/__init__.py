"""SQLAlchemy models."""

from app.models.audit_log import AuditLog
from app.models.coordination_event import CoordinationEvent
from app.models.coordination_preference import CoordinationNotificationPreference
from app.models.coordination_trigger import CoordinationTrigger
from app.models.notification import Notification

__all__ = [
    "AuditLog",
    "CoordinationEvent",
    "CoordinationNotificationPreference",
    "CoordinationTrigger",
    "Notification",
]
