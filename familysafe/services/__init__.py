"""
Business Logic Services Package.

Services depend on the Repository layer for data access and raise the
errors in :mod:`familysafe.errors` synchronously.

The ``create_services()`` factory wires every repository and service
together, returning a typed dict that the entry point and the gateway can
consume without knowing the internal dependency graph.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Optional, TypedDict

from familysafe.config import AppConfig
from familysafe.database import DatabaseManager
from familysafe.logger import StructuredLogger, get_logger
from familysafe.repositories.approval_request_repository import ApprovalRequestRepository
from familysafe.repositories.audit_repository import AuditLogRepository
from familysafe.repositories.family_repository import FamilyRepository
from familysafe.repositories.invite_repository import InviteRepository
from familysafe.repositories.profile_repository import ProfileRepository
from familysafe.services.approval_requests import ApprovalRequestService
from familysafe.services.approval_workflow import ApprovalWorkflowService
from familysafe.services.family_manager import FamilyService
from familysafe.services.invites import InviteService
from familysafe.services.users import UserService
from familysafe.utils.clock import Clock, utc_now


class ServiceContainer(TypedDict):
    """Typed container for all application services and shared repositories."""

    # --- Repositories shared with the gateway ---
    profile_repo: ProfileRepository
    audit_repo: AuditLogRepository

    # --- Services ---
    approval_request_service: ApprovalRequestService
    family_service: FamilyService
    invite_service: InviteService
    user_service: UserService
    approval_workflow_service: ApprovalWorkflowService


def create_services(
    db: DatabaseManager,
    config: AppConfig,
    logger: Optional[StructuredLogger] = None,
    clock: Clock = utc_now,
) -> ServiceContainer:
    """
    Wire all repositories and services together.

    This is the single composition root for the service layer.  The
    entry point calls this once at startup.

    Args:
        db: Initialised DatabaseManager with the schema applied.
        config: Application configuration.
        logger: Optional logger shared by every service.
        clock: Time source; tests pass a frozen clock.

    Returns:
        ServiceContainer mapping names to fully-wired instances.
    """
    logger = logger or get_logger("services")
    max_attempts = config.TRANSACTION_MAX_ATTEMPTS

    # ------------------------------------------------------------------
    # 1. Repositories (data-access layer)
    # ------------------------------------------------------------------
    profile_repo = ProfileRepository(db=db, logger=logger)
    family_repo = FamilyRepository(db=db, logger=logger)
    invite_repo = InviteRepository(db=db, logger=logger)
    request_repo = ApprovalRequestRepository(db=db, logger=logger)
    audit_repo = AuditLogRepository(db=db, logger=logger)

    # ------------------------------------------------------------------
    # 2. Leaf services (no service dependencies)
    # ------------------------------------------------------------------
    approval_request_service = ApprovalRequestService(
        request_repo=request_repo,
        logger=logger,
        clock=clock,
    )
    family_service = FamilyService(
        db=db,
        profile_repo=profile_repo,
        family_repo=family_repo,
        logger=logger,
        clock=clock,
        audit_repo=audit_repo,
        max_attempts=max_attempts,
    )
    invite_service = InviteService(
        invite_repo=invite_repo,
        family_repo=family_repo,
        logger=logger,
        clock=clock,
        audit_repo=audit_repo,
        code_length=config.INVITE_CODE_LENGTH,
        alphabet=config.INVITE_CODE_ALPHABET,
        ttl=timedelta(hours=config.INVITE_TTL_HOURS),
    )

    # ------------------------------------------------------------------
    # 3. Orchestration services (depend on other services)
    # ------------------------------------------------------------------
    user_service = UserService(
        profile_repo=profile_repo,
        family_service=family_service,
        invite_service=invite_service,
        approval_request_service=approval_request_service,
        logger=logger,
        clock=clock,
        audit_repo=audit_repo,
    )
    approval_workflow_service = ApprovalWorkflowService(
        db=db,
        profile_repo=profile_repo,
        family_repo=family_repo,
        family_service=family_service,
        logger=logger,
        clock=clock,
        audit_repo=audit_repo,
        approval_request_service=approval_request_service,
        max_attempts=max_attempts,
    )

    return ServiceContainer(
        profile_repo=profile_repo,
        audit_repo=audit_repo,
        approval_request_service=approval_request_service,
        family_service=family_service,
        invite_service=invite_service,
        user_service=user_service,
        approval_workflow_service=approval_workflow_service,
    )
