"""
Audit Log Repository.

Append-only access to the ``audit_log`` table.  Rows are plain columns,
not JSON documents, so this class does not use the document helpers of
:class:`BaseRepository`.
"""

from __future__ import annotations

import json

from familysafe.database import DatabaseManager
from familysafe.logger import StructuredLogger
from familysafe.utils.audit import AuditEvent, persist_audit_event


class AuditLogRepository:
    """Persists and reads back audit events."""

    TABLE = "audit_log"

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        self._db = db
        self._logger = logger

    def append(self, event: AuditEvent) -> None:
        with self._db.transaction() as conn:
            persist_audit_event(conn, event)

    def list_for_entity(self, entity_id: str) -> list[AuditEvent]:
        """All events recorded against *entity_id*, oldest first."""
        with self._db.write_lock:
            rows = self._db.sqlite.execute(
                f"""
                SELECT timestamp, action, entity_type, entity_id, user_id, details
                FROM {self.TABLE} WHERE entity_id = ? ORDER BY id ASC
                """,
                (entity_id,),
            ).fetchall()
        return [
            AuditEvent(
                timestamp=row["timestamp"],
                action=row["action"],
                entity_type=row["entity_type"],
                entity_id=row["entity_id"],
                user_id=row["user_id"],
                details=json.loads(row["details"] or "{}"),
            )
            for row in rows
        ]
