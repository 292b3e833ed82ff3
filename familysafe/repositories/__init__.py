"""
Repository Layer Package.

Provides data-access abstractions over the SQLite document tables.
All database operations flow through repositories; services never touch
``db.sqlite`` directly.  Multi-record writes go through
:func:`~familysafe.repositories.unit_of_work.run_transaction`.

Usage:
    from familysafe.repositories.profile_repository import ProfileRepository
    from familysafe.repositories.family_repository import FamilyRepository
"""

from familysafe.repositories.base_repository import BaseRepository
from familysafe.repositories.profile_repository import ProfileRepository
from familysafe.repositories.family_repository import FamilyRepository
from familysafe.repositories.invite_repository import InviteRepository
from familysafe.repositories.approval_request_repository import ApprovalRequestRepository
from familysafe.repositories.audit_repository import AuditLogRepository
from familysafe.repositories.unit_of_work import DocumentTransaction, run_transaction

__all__ = [
    "ApprovalRequestRepository",
    "AuditLogRepository",
    "BaseRepository",
    "DocumentTransaction",
    "FamilyRepository",
    "InviteRepository",
    "ProfileRepository",
    "run_transaction",
]
