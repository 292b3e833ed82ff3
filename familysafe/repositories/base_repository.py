"""
Base Repository.

Provides shared infrastructure for all document repositories:
- DatabaseManager reference
- Logger reference
- Typed reads and filtered queries over a JSON document table
- Single-record read-merge-write updates
- Typed helpers for staging reads and writes inside a unit of work
"""

from __future__ import annotations

import json
import sqlite3
from enum import Enum
from typing import Any, Generic, Mapping, Optional, TypeVar

from familysafe.database import DatabaseManager
from familysafe.errors import NotFoundError
from familysafe.logger import StructuredLogger
from familysafe.models.base import Document, DocumentData
from familysafe.repositories.unit_of_work import DocumentTransaction, merge_patch

M = TypeVar("M", bound=Document)


class BaseRepository(Generic[M]):
    """Base class for all repositories. Receives dependencies via __init__.

    Subclasses set ``TABLE`` (the collection) and ``MODEL`` (the typed
    record).  Every document leaving this class has passed through
    ``MODEL.from_document`` so malformed rows fail closed.
    """

    TABLE: str = ""
    MODEL: type[Document] = Document
    KEY_FIELD: str = "id"

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        self._db = db
        self._logger = logger

    @property
    def sqlite(self) -> sqlite3.Connection:
        """Returns the shared SQLite connection."""
        return self._db.sqlite

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _to_model(self, row: sqlite3.Row) -> M:
        return self.MODEL.from_document(json.loads(row["data"]))  # type: ignore[return-value]

    def _get(self, doc_id: str) -> Optional[M]:
        with self._db.write_lock:
            row = self.sqlite.execute(
                f"SELECT data FROM {self.TABLE} WHERE id = ?", (doc_id,)
            ).fetchone()
        return self._to_model(row) if row else None

    def _query(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[M]:
        """Equality query on top-level document fields.

        Args:
            filters: camelCase document key -> required value.
            order_by: Optional camelCase document key to sort on.
            descending: Sort direction for ``order_by``.
            limit: Optional maximum number of results.
        """
        clauses: list[str] = []
        params: list[Any] = []
        for key, value in (filters or {}).items():
            clauses.append(f"json_extract(data, '$.{key}') = ?")
            params.append(value.value if isinstance(value, Enum) else value)

        sql = f"SELECT data FROM {self.TABLE}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        if order_by:
            direction = "DESC" if descending else "ASC"
            sql += f" ORDER BY json_extract(data, '$.{order_by}') {direction}, rowid {direction}"
        else:
            sql += " ORDER BY rowid ASC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        with self._db.write_lock:
            rows = self.sqlite.execute(sql, params).fetchall()
        return [self._to_model(row) for row in rows]

    # ------------------------------------------------------------------
    # Single-record writes
    # ------------------------------------------------------------------

    def _insert(self, record: M, doc_id: Optional[str] = None) -> M:
        """Insert a new document; the key must not already exist."""
        doc_id = doc_id or str(getattr(record, self.KEY_FIELD))
        with self._db.transaction() as conn:
            conn.execute(
                f"INSERT INTO {self.TABLE} (id, data, version) VALUES (?, ?, 1)",
                (doc_id, json.dumps(record.to_document())),
            )
        self._logger.info("Inserted %s/%s", self.TABLE, doc_id)
        return record

    def _update_fields(self, doc_id: str, patch: DocumentData) -> M:
        """Read-merge-write one document and bump its version.

        Only this document is touched; concurrent writers to the same
        document resolve last-write-wins.

        Raises:
            NotFoundError: If the document does not exist.
            DocumentFormatError: If the merged document is invalid.
        """
        with self._db.transaction() as conn:
            row = conn.execute(
                f"SELECT data FROM {self.TABLE} WHERE id = ?", (doc_id,)
            ).fetchone()
            if row is None:
                raise NotFoundError(f"{self.MODEL.__name__} {doc_id} not found")

            merged = merge_patch(json.loads(row["data"]), patch)
            record = self.MODEL.from_document(merged)
            conn.execute(
                f"""
                UPDATE {self.TABLE}
                SET data = ?, version = version + 1, updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
                """,
                (json.dumps(record.to_document()), doc_id),
            )
        return record  # type: ignore[return-value]

    # ------------------------------------------------------------------
    # Unit-of-work helpers
    # ------------------------------------------------------------------

    def get_in(self, txn: DocumentTransaction, doc_id: str) -> Optional[M]:
        """Transactional read of one record."""
        data = txn.get(self.TABLE, doc_id)
        return self.MODEL.from_document(data) if data is not None else None  # type: ignore[return-value]

    def stage_create(self, txn: DocumentTransaction, record: M) -> None:
        """Stage the insertion of *record* in *txn*."""
        txn.create(self.TABLE, str(getattr(record, self.KEY_FIELD)), record.to_document())

    def stage_update(self, txn: DocumentTransaction, doc_id: str, **fields: Any) -> M:
        """Stage a field update in *txn* and return the resulting record."""
        merged = txn.update(self.TABLE, doc_id, self.MODEL.document_patch(**fields))
        return self.MODEL.from_document(merged)  # type: ignore[return-value]
