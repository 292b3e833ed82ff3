"""
Structured Audit Logging Utility.

Every state change in the approval workflow, the family aggregate and the
invite ledger is logged as a structured JSON object and, when a database
connection is supplied, persisted to the ``audit_log`` table.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional, Union

from pydantic import BaseModel, Field

from familysafe.logger import StructuredLogger

if TYPE_CHECKING:
    from familysafe.repositories.audit_repository import AuditLogRepository

__all__ = ["AuditEvent", "log_audit_event", "persist_audit_event"]

# Flat scalars only; nested structures belong in their own records.
DetailValue = Union[str, int, float, bool, None]


class AuditEvent(BaseModel):
    """Schema-validated representation of a single audit trail entry."""

    timestamp: str
    action: str
    entity_type: str
    entity_id: str
    user_id: str
    details: dict[str, DetailValue] = Field(default_factory=dict)


def log_audit_event(
    logger: StructuredLogger,
    action: str,
    entity_type: str,
    entity_id: str,
    user_id: str,
    details: Optional[dict[str, DetailValue]] = None,
    store: Optional["AuditLogRepository"] = None,
) -> AuditEvent:
    """Log a structured JSON audit event, with optional SQLite persistence.

    Call this only after the state change has committed.  Persistence
    errors are logged and never propagated, so a failing audit write
    cannot undo or mask a successful operation.

    Args:
        logger: The logger instance to write to.
        action: What happened (e.g. ``"APPROVE_PARENT"``, ``"SUSPEND"``).
        entity_type: Type of entity affected (``"UserProfile"``,
            ``"Family"``, ``"Invite"``).
        entity_id: Key of the affected entity.
        user_id: ID of the account that performed the action.
        details: Optional additional context.
        store: Optional repository persisting to the ``audit_log`` table.

    Returns:
        The validated event.
    """
    event = AuditEvent(
        timestamp=datetime.now(timezone.utc).isoformat(),
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        details=details or {},
    )
    logger.info("AUDIT: %s", json.dumps(event.model_dump(), default=str))

    if store is not None:
        try:
            store.append(event)
        except (sqlite3.Error, ValueError) as db_err:
            logger.warning("Failed to persist audit event to SQLite: %s", db_err)

    return event


def persist_audit_event(conn: sqlite3.Connection, event: AuditEvent) -> None:
    """Write a validated audit event to the ``audit_log`` table."""
    conn.execute(
        """
        INSERT INTO audit_log (timestamp, action, entity_type, entity_id, user_id, details)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            event.timestamp,
            event.action,
            event.entity_type,
            event.entity_id,
            event.user_id,
            json.dumps(event.details, default=str),
        ),
    )
