"""
Invite Issuer/Validator.

Issues short family invite codes and resolves them back to a Family.
Codes are drawn independently per character; there is no collision check
against existing codes, so two families can in principle share a code.
Lookups resolve to the most recently issued invite with the code.
"""

from __future__ import annotations

import secrets
from datetime import timedelta
from typing import Optional

from familysafe.errors import NotFoundError
from familysafe.logger import StructuredLogger
from familysafe.models.family import Family
from familysafe.models.invite import Invite
from familysafe.repositories.audit_repository import AuditLogRepository
from familysafe.repositories.family_repository import FamilyRepository
from familysafe.repositories.invite_repository import InviteRepository
from familysafe.services.base_service import BaseService
from familysafe.utils.clock import Clock

DEFAULT_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"


class InviteService(BaseService):
    """Generate and validate family invite codes."""

    def __init__(
        self,
        invite_repo: InviteRepository,
        family_repo: FamilyRepository,
        logger: StructuredLogger,
        clock: Optional[Clock] = None,
        audit_repo: Optional[AuditLogRepository] = None,
        code_length: int = 6,
        alphabet: str = DEFAULT_ALPHABET,
        ttl: timedelta = timedelta(hours=48),
    ) -> None:
        super().__init__(logger, clock, audit_repo)
        self._invites = invite_repo
        self._families = family_repo
        self._code_length = code_length
        self._alphabet = alphabet
        self._ttl = ttl

    def generate_invite_code(self, family_id: str) -> str:
        """Issue a new code for *family_id*, valid for the configured TTL.

        Raises:
            NotFoundError: If the family does not exist.
        """
        family = self._families.get_by_id(family_id)
        if family is None:
            raise NotFoundError(f"Family {family_id} not found")

        code = "".join(secrets.choice(self._alphabet) for _ in range(self._code_length))
        now = self._now()
        invite = Invite(code=code, family_id=family_id, created_at=now, expires_at=now + self._ttl)
        self._invites.append(invite)

        self._logger.info("Invite issued for family %s (expires %s)", family_id, invite.expires_at)
        self._audit(
            "CREATE_INVITE",
            "Invite",
            code,
            family.parent_uid,
            {"family_id": family_id, "expires_at": invite.expires_at.isoformat()},
        )
        return code

    def validate_invite_code(self, code: str) -> Optional[Family]:
        """Resolve *code* to its Family.

        Returns ``None`` when the code is unknown, expired
        (``now > expiresAt``) or points at a missing family; callers cannot
        tell these apart.
        """
        invite = self._invites.latest_by_code(code.strip())
        if invite is None:
            self._logger.info("Invite code %s not found", code)
            return None

        if not invite.is_valid_at(self._now()):
            self._logger.info("Invite code %s expired at %s", code, invite.expires_at)
            return None

        family = self._families.get_by_id(invite.family_id)
        if family is None:
            self._logger.warning("Invite code %s points at missing family %s", code, invite.family_id)
        return family
