"""Shared FastAPI dependencies for API routes."""

from __future__ import annotations

import logging
import secrets

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from app.config import get_settings
from app.coordination.store import SqlCoordinationStore
from app.db.session import get_db  # re-export

__all__ = [
    "get_db",
    "get_store",
    "require_internal_token",
]

logger = logging.getLogger(__name__)


def require_internal_token(x_internal_token: str = Header(...)) -> None:
    """Validate the internal token from the X-Internal-Token header.

    Uses constant-time comparison. Raises 403 if the token is empty or does
    not match the configured value.
    """
    expected = get_settings().internal_job_token
    if not expected or not secrets.compare_digest(x_internal_token, expected):
        logger.warning("Internal endpoint auth failed: invalid or missing token")
        raise HTTPException(status_code=403, detail="Invalid internal token")


def get_store(db: Session = Depends(get_db)) -> SqlCoordinationStore:
    """Coordination store bound to the request's session."""
    return SqlCoordinationStore(db)
