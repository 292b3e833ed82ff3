"""
Transactional Writer.

Multi-record state changes (approving a parent creates a Family and links
the parent; approving a child touches the child, the parent and the
Family) must become visible together or not at all.  This module provides
a read-then-conditional-write unit of work over the document tables:

1. The unit-of-work function reads every document it needs through a
   :class:`DocumentTransaction`.  Each read records the document's
   ``version`` (``None`` when absent).
2. It stages writes.  Reads are not allowed after the first staged write.
3. :meth:`DocumentTransaction.commit` opens ``BEGIN IMMEDIATE``, checks
   that every recorded version is unchanged and applies the writes.  A
   changed version raises :class:`TransactionConflictError` and the
   SQLite transaction is rolled back.

:func:`run_transaction` re-executes the whole function from fresh reads
on a conflict, up to ``max_attempts`` times.  Domain errors raised by the
function propagate immediately and are never retried.
"""

from __future__ import annotations

import json
import sqlite3
from typing import Callable, Optional, TypeVar

from familysafe.database import DatabaseManager
from familysafe.errors import TransactionConflictError
from familysafe.logger import StructuredLogger
from familysafe.models.base import DocumentData

T = TypeVar("T")

_CREATE = "create"
_SET = "set"
_UPDATE = "update"


def merge_patch(current: DocumentData, patch: DocumentData) -> DocumentData:
    """Shallow-merge *patch* into *current*; ``None`` values remove keys."""
    merged = dict(current)
    for key, value in patch.items():
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = value
    return merged


class DocumentTransaction:
    """One attempt of a unit of work.  Not reusable after :meth:`commit`."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db
        self._versions: dict[tuple[str, str], Optional[int]] = {}
        self._snapshots: dict[tuple[str, str], Optional[DocumentData]] = {}
        # Insertion-ordered: writes are applied in the order first staged.
        self._writes: dict[tuple[str, str], tuple[str, DocumentData]] = {}
        self._committed = False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, table: str, doc_id: str) -> Optional[DocumentData]:
        """Read a document and record its version for the commit check."""
        if self._writes:
            raise RuntimeError("All transactional reads must precede writes")

        key = (table, doc_id)
        if key in self._snapshots:
            snapshot = self._snapshots[key]
            return dict(snapshot) if snapshot is not None else None

        with self._db.write_lock:
            row = self._db.sqlite.execute(
                f"SELECT data, version FROM {table} WHERE id = ?", (doc_id,)
            ).fetchone()

        if row is None:
            self._versions[key] = None
            self._snapshots[key] = None
            return None

        data: DocumentData = json.loads(row["data"])
        self._versions[key] = int(row["version"])
        self._snapshots[key] = data
        return dict(data)

    # ------------------------------------------------------------------
    # Staged writes
    # ------------------------------------------------------------------

    def create(self, table: str, doc_id: str, data: DocumentData) -> None:
        """Stage the insertion of a new document."""
        key = (table, doc_id)
        if self._snapshots.get(key) is not None or key in self._writes:
            raise TransactionConflictError(f"{table}/{doc_id} already exists")
        self._writes[key] = (_CREATE, dict(data))
        self._snapshots[key] = dict(data)

    def set(self, table: str, doc_id: str, data: DocumentData) -> None:
        """Stage a full replacement (or insertion) of a document."""
        key = (table, doc_id)
        op = self._writes.get(key, (None, {}))[0]
        self._writes[key] = (_CREATE if op == _CREATE else _SET, dict(data))
        self._snapshots[key] = dict(data)

    def update(self, table: str, doc_id: str, patch: DocumentData) -> DocumentData:
        """Stage a merge-patch against a document read in this transaction.

        Returns:
            The merged document as it will be written.
        """
        key = (table, doc_id)
        if key not in self._snapshots:
            raise RuntimeError(f"{table}/{doc_id} must be read before it is updated")
        current = self._snapshots[key]
        if current is None:
            raise RuntimeError(f"{table}/{doc_id} does not exist")

        merged = merge_patch(current, patch)
        op = self._writes.get(key, (_UPDATE, {}))[0]
        self._writes[key] = (op, merged)
        self._snapshots[key] = merged
        return dict(merged)

    @property
    def has_writes(self) -> bool:
        return bool(self._writes)

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def commit(self) -> None:
        """Check recorded versions and apply the staged writes atomically.

        Raises:
            TransactionConflictError: If any document read by this
                transaction changed before the commit.
        """
        if self._committed:
            raise RuntimeError("Transaction already committed")
        self._committed = True
        if not self._writes:
            return

        with self._db.transaction() as conn:
            for (table, doc_id), expected in self._versions.items():
                row = conn.execute(
                    f"SELECT version FROM {table} WHERE id = ?", (doc_id,)
                ).fetchone()
                actual = int(row["version"]) if row is not None else None
                if actual != expected:
                    raise TransactionConflictError(
                        f"{table}/{doc_id} changed during transaction "
                        f"(expected version {expected}, found {actual})"
                    )

            for (table, doc_id), (op, data) in self._writes.items():
                body = json.dumps(data, default=str)
                if op == _CREATE:
                    try:
                        conn.execute(
                            f"INSERT INTO {table} (id, data, version) VALUES (?, ?, 1)",
                            (doc_id, body),
                        )
                    except sqlite3.IntegrityError as exc:
                        raise TransactionConflictError(
                            f"{table}/{doc_id} was created concurrently",
                            original_error=exc,
                        ) from exc
                else:
                    conn.execute(
                        f"""
                        INSERT INTO {table} (id, data, version) VALUES (?, ?, 1)
                        ON CONFLICT(id) DO UPDATE SET data = excluded.data,
                                                      version = {table}.version + 1,
                                                      updated_at = CURRENT_TIMESTAMP
                        """,
                        (doc_id, body),
                    )


def run_transaction(
    db: DatabaseManager,
    fn: Callable[[DocumentTransaction], T],
    logger: StructuredLogger,
    *,
    max_attempts: int = 5,
    operation_name: str = "transaction",
) -> T:
    """Run *fn* as an all-or-nothing unit of work, retrying on conflicts.

    Args:
        db: The database holding the document tables.
        fn: Reads and stages writes through the supplied transaction and
            returns the operation's result.  Must be safe to re-execute.
        logger: Logger for conflict diagnostics.
        max_attempts: Upper bound on executions of *fn*.
        operation_name: Label used in log messages.

    Raises:
        TransactionConflictError: If every attempt hit a conflict.
    """
    last_conflict: Optional[TransactionConflictError] = None
    for attempt in range(1, max_attempts + 1):
        txn = DocumentTransaction(db)
        result = fn(txn)
        try:
            txn.commit()
        except TransactionConflictError as exc:
            last_conflict = exc
            logger.warning(
                "Conflict in %s (attempt %d/%d): %s",
                operation_name,
                attempt,
                max_attempts,
                exc.message,
            )
            continue
        return result

    raise TransactionConflictError(
        f"{operation_name} did not commit after {max_attempts} attempts",
        original_error=last_conflict,
    )
