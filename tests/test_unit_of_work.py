"""Tests for the transactional writer and the single-record writer."""

import threading

import pytest

from conftest import count_rows, make_profile
from familysafe.errors import (
    InvalidStateError,
    NotFoundError,
    TransactionConflictError,
)
from familysafe.models.enums import ApprovalStatus, UserRole
from familysafe.repositories import DocumentTransaction, run_transaction
from familysafe.repositories.profile_repository import ProfileRepository
from familysafe.repositories.unit_of_work import merge_patch


@pytest.fixture
def profiles(db, logger) -> ProfileRepository:
    repo = ProfileRepository(db=db, logger=logger)
    repo.create(make_profile("a"))
    repo.create(make_profile("b"))
    return repo


def _version(db, table: str, doc_id: str) -> int:
    return db.sqlite.execute(
        f"SELECT version FROM {table} WHERE id = ?", (doc_id,)
    ).fetchone()[0]


class TestMergePatch:
    def test_none_removes_key(self):
        assert merge_patch({"a": 1, "b": 2}, {"b": None, "c": 3}) == {"a": 1, "c": 3}

    def test_does_not_mutate_input(self):
        current = {"a": 1}
        merge_patch(current, {"a": 2})
        assert current == {"a": 1}


class TestDocumentTransaction:
    def test_commit_applies_all_writes(self, db, profiles):
        txn = DocumentTransaction(db)
        profiles.get_in(txn, "a")
        profiles.get_in(txn, "b")
        profiles.stage_update(txn, "a", display_name="Alice")
        profiles.stage_update(txn, "b", display_name="Bob")
        txn.commit()

        assert profiles.get_by_id("a").display_name == "Alice"
        assert profiles.get_by_id("b").display_name == "Bob"
        assert _version(db, "profiles", "a") == 2

    def test_nothing_visible_before_commit(self, db, profiles):
        txn = DocumentTransaction(db)
        profiles.get_in(txn, "a")
        profiles.stage_update(txn, "a", display_name="Alice")
        assert profiles.get_by_id("a").display_name is None

    def test_changed_version_aborts_every_write(self, db, profiles):
        txn = DocumentTransaction(db)
        profiles.get_in(txn, "a")
        profiles.get_in(txn, "b")
        profiles.stage_update(txn, "a", display_name="Alice")
        profiles.stage_update(txn, "b", display_name="Bob")

        profiles.update_fields("b", display_name="Concurrent")

        with pytest.raises(TransactionConflictError):
            txn.commit()
        assert profiles.get_by_id("a").display_name is None
        assert profiles.get_by_id("b").display_name == "Concurrent"

    def test_create_conflicts_with_concurrent_insert(self, db, profiles):
        txn = DocumentTransaction(db)
        assert profiles.get_in(txn, "c") is None
        profiles.stage_create(txn, make_profile("c", display_name="Mine"))

        profiles.create(make_profile("c", display_name="Theirs"))

        with pytest.raises(TransactionConflictError):
            txn.commit()
        assert profiles.get_by_id("c").display_name == "Theirs"

    def test_read_after_write_is_rejected(self, db, profiles):
        txn = DocumentTransaction(db)
        profiles.get_in(txn, "a")
        profiles.stage_update(txn, "a", display_name="Alice")
        with pytest.raises(RuntimeError):
            profiles.get_in(txn, "b")

    def test_update_requires_prior_read(self, db, profiles):
        txn = DocumentTransaction(db)
        with pytest.raises(RuntimeError):
            profiles.stage_update(txn, "a", display_name="Alice")

    def test_commit_is_single_use(self, db, profiles):
        txn = DocumentTransaction(db)
        txn.commit()
        with pytest.raises(RuntimeError):
            txn.commit()


class TestRunTransaction:
    def test_retries_from_fresh_reads_after_conflict(self, db, logger, profiles):
        attempts = []

        def unit(txn: DocumentTransaction) -> str:
            profile = profiles.get_in(txn, "a")
            attempts.append(profile.display_name)
            if len(attempts) == 1:
                profiles.update_fields("a", display_name="Interloper")
            profiles.stage_update(txn, "a", filter_level="STRICT")
            return "done"

        assert run_transaction(db, unit, logger) == "done"
        assert attempts == [None, "Interloper"]
        stored = profiles.get_by_id("a")
        assert stored.display_name == "Interloper"
        assert stored.filter_level == "STRICT"

    def test_gives_up_after_max_attempts(self, db, logger, profiles):
        calls = []

        def unit(txn: DocumentTransaction) -> None:
            calls.append(1)
            profiles.get_in(txn, "a")
            profiles.update_fields("a", display_name=f"round {len(calls)}")
            profiles.stage_update(txn, "a", filter_level="STRICT")

        with pytest.raises(TransactionConflictError):
            run_transaction(db, unit, logger, max_attempts=3)
        assert len(calls) == 3
        assert profiles.get_by_id("a").filter_level == "MODERATE"

    def test_domain_errors_are_not_retried(self, db, logger, profiles):
        calls = []

        def unit(txn: DocumentTransaction) -> None:
            calls.append(1)
            profiles.get_in(txn, "a")
            profiles.stage_update(txn, "a", display_name="never")
            raise InvalidStateError("precondition failed")

        with pytest.raises(InvalidStateError):
            run_transaction(db, unit, logger)
        assert len(calls) == 1
        assert profiles.get_by_id("a").display_name is None


class TestSingleRecordWriter:
    def test_update_missing_record_raises(self, profiles):
        with pytest.raises(NotFoundError):
            profiles.update_fields("ghost", display_name="x")

    def test_none_removes_field(self, profiles):
        profiles.update_fields("a", rejected_reason="spam")
        assert profiles.get_by_id("a").rejected_reason == "spam"
        profiles.update_fields("a", rejected_reason=None)
        assert profiles.get_by_id("a").rejected_reason is None


def test_concurrent_parent_approvals_create_one_family(db, services):
    services["user_service"].create_user_profile(
        uid="parent-1", email="parent@example.com", role=UserRole.PENDING_PARENT
    )
    workflow = services["approval_workflow_service"]
    barrier = threading.Barrier(4)
    outcomes: list[object] = []
    outcomes_lock = threading.Lock()

    def approve(admin_id: str) -> None:
        barrier.wait()
        try:
            result: object = workflow.approve_parent_request(admin_id, "parent-1")
        except InvalidStateError as exc:
            result = exc
        with outcomes_lock:
            outcomes.append(result)

    threads = [threading.Thread(target=approve, args=(f"admin-{i}",)) for i in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    approved = [o for o in outcomes if not isinstance(o, InvalidStateError)]
    assert len(outcomes) == 4
    assert len(approved) == 1
    assert count_rows(db, "families") == 1

    parent = services["user_service"].get_user_profile("parent-1")
    assert parent.approval_status == ApprovalStatus.APPROVED
    family = services["family_service"].get_family_by_parent("parent-1")
    assert parent.family_id == family.id
