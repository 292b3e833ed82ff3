"""
Pytest configuration and shared fixtures for FamilySafe.

Every test gets a fresh SQLite database on disk, a frozen clock and a
fully wired service container.  Nothing touches the network: gateway and
proxy-client tests inject an ``httpx.MockTransport``.
"""

import io
from datetime import datetime, timedelta, timezone
from typing import Generator, Optional

import jwt
import pytest

from familysafe.config import AppConfig
from familysafe.database import DatabaseManager
from familysafe.logger import StructuredLogger
from familysafe.models.enums import ApprovalStatus, FilterLevel, UserRole
from familysafe.models.user_profile import UserProfile
from familysafe.schema import initialize_schema
from familysafe.services import ServiceContainer, create_services

PROJECT_ID = "familysafe-test"
ISSUER = f"https://securetoken.google.com/{PROJECT_ID}"
SIGNING_KEY = "familysafe-test-signing-key-0123456789"
START = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_token(
    sub: Optional[str] = "user-1",
    *,
    exp: Optional[float] = None,
    iss: str = ISSUER,
    aud: str = PROJECT_ID,
    email: Optional[str] = "user@example.com",
    now: float = 1_700_000_000.0,
    key: str = SIGNING_KEY,
) -> str:
    """Mint an HS256 token with the given claims.  ``exp`` defaults to now + 1h."""
    claims: dict[str, object] = {"iss": iss, "aud": aud}
    if sub is not None:
        claims["sub"] = sub
    if email is not None:
        claims["email"] = email
    claims["exp"] = int(now + 3600) if exp is None else exp
    return jwt.encode(claims, key, algorithm="HS256")


def make_profile(
    uid: str,
    role: UserRole = UserRole.PARENT,
    status: ApprovalStatus = ApprovalStatus.APPROVED,
    **fields: object,
) -> UserProfile:
    """Build a profile record without going through registration."""
    return UserProfile(
        uid=uid,
        email=fields.pop("email", f"{uid}@example.com"),
        role=role,
        approval_status=status,
        filter_level=fields.pop("filter_level", FilterLevel.MODERATE),
        created_at=fields.pop("created_at", START),
        **fields,
    )


@pytest.fixture(scope="session")
def logger() -> StructuredLogger:
    """Console-only logger writing to an in-memory stream."""
    return StructuredLogger(name="familysafe.tests", stream=io.StringIO(), log_file="")


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(_env_file=None, PROJECT_ID=PROJECT_ID, LOG_FILE="")


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def db(tmp_path, logger) -> Generator[DatabaseManager, None, None]:
    manager = DatabaseManager(sqlite_path=tmp_path / "familysafe_test.db", logger=logger)
    initialize_schema(manager.sqlite, logger)
    yield manager
    manager.close()


@pytest.fixture
def services(db, config, logger, clock) -> ServiceContainer:
    return create_services(db=db, config=config, logger=logger, clock=clock)


@pytest.fixture
def approved_parent(services) -> UserProfile:
    """A registered parent approved by ``admin-1``, with its Family."""
    services["user_service"].create_user_profile(
        uid="parent-1", email="Parent@Example.com", role=UserRole.PENDING_PARENT
    )
    return services["approval_workflow_service"].approve_parent_request("admin-1", "parent-1")


def count_rows(db: DatabaseManager, table: str) -> int:
    return db.sqlite.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
