"""
Base Service Class.

Minimal base class standardizing the logger, clock and audit-trail
pattern for all services.  Services extend this and add their own
repository dependencies via __init__.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional, TypeVar

from familysafe.database import DatabaseManager
from familysafe.errors import FamilySafeError
from familysafe.logger import StructuredLogger
from familysafe.repositories.audit_repository import AuditLogRepository
from familysafe.repositories.unit_of_work import DocumentTransaction, run_transaction
from familysafe.utils.audit import DetailValue, log_audit_event
from familysafe.utils.clock import Clock, utc_now

T = TypeVar("T")


class BaseService:
    """Base class for all service classes. Provides a logger, a clock and auditing."""

    def __init__(
        self,
        logger: StructuredLogger,
        clock: Optional[Clock] = None,
        audit_repo: Optional[AuditLogRepository] = None,
    ) -> None:
        self._logger: StructuredLogger = logger
        self._clock: Clock = clock or utc_now
        self._audit_repo: Optional[AuditLogRepository] = audit_repo

    def _now(self) -> datetime:
        return self._clock()

    def _audit(
        self,
        action: str,
        entity_type: str,
        entity_id: str,
        user_id: str,
        details: Optional[dict[str, DetailValue]] = None,
    ) -> None:
        """Emit an audit event for a committed state change."""
        log_audit_event(
            logger=self._logger,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            details=details,
            store=self._audit_repo,
        )


class TransactionalService(BaseService):
    """Base class for services that run multi-record units of work."""

    def __init__(
        self,
        db: DatabaseManager,
        logger: StructuredLogger,
        clock: Optional[Clock] = None,
        audit_repo: Optional[AuditLogRepository] = None,
        max_attempts: int = 5,
    ) -> None:
        super().__init__(logger, clock, audit_repo)
        self._db = db
        self._max_attempts = max_attempts

    def _transact(
        self, unit: Callable[[DocumentTransaction], T], operation_name: str
    ) -> T:
        """Run *unit* via :func:`run_transaction`, logging domain failures."""
        try:
            return run_transaction(
                self._db,
                unit,
                self._logger,
                max_attempts=self._max_attempts,
                operation_name=operation_name,
            )
        except FamilySafeError as exc:
            self._logger.warning("%s failed: %s", operation_name, exc.message)
            raise
