"""
Database Abstraction Layer.

Owns the single SQLite connection that backs the Profile Store, Family
Store, Invite Ledger and approval-request log.  Each collection is a table
of JSON documents keyed by id and carrying a store-managed ``version``
counter for optimistic concurrency (see
:mod:`familysafe.repositories.unit_of_work`).

The connection runs in autocommit mode (``isolation_level=None``); every
multi-statement write goes through :meth:`DatabaseManager.transaction`,
which issues an explicit ``BEGIN IMMEDIATE`` so that the write lock is
taken before any version check is made.

Data access is performed through the Repository pattern.  This module only
manages the raw database *connection*; it contains no query logic.

Usage (dependency injection at app startup)::

    from familysafe.database import DatabaseManager
    from familysafe.logger import StructuredLogger

    db = DatabaseManager(
        sqlite_path=Path(config.SQLITE_PATH),
        logger=StructuredLogger(name="database"),
    )
    # Inject `db` into repositories / services that need it.
"""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Union

from familysafe.logger import StructuredLogger


class DatabaseManager:
    """Manages the connection to the local SQLite document database.

    Fully configured at construction time via dependency injection.

    Parameters
    ----------
    sqlite_path:
        Filesystem path for the SQLite database file, or ``":memory:"``.
        Parent directories must already exist.
    logger:
        A ``StructuredLogger`` instance for structured JSON log output.
    """

    def __init__(
        self,
        sqlite_path: Union[Path, str],
        logger: StructuredLogger,
    ) -> None:
        self._logger: StructuredLogger = logger
        self._write_lock: threading.RLock = threading.RLock()
        self._in_transaction: bool = False
        self._sqlite_conn: sqlite3.Connection = self._connect_sqlite(sqlite_path)

    # ------------------------------------------------------------------
    # Public properties
    # ------------------------------------------------------------------

    @property
    def sqlite(self) -> sqlite3.Connection:
        """Return the initialised SQLite connection."""
        return self._sqlite_conn

    @property
    def write_lock(self) -> threading.RLock:
        """Return the lock serialising writes on the shared connection.

        :meth:`transaction` acquires it for the whole ``BEGIN``/``COMMIT``
        span, so code inside a transaction must not take it from another
        thread.
        """
        return self._write_lock

    @property
    def in_transaction(self) -> bool:
        """``True`` while a :meth:`transaction` block is active."""
        return self._in_transaction

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """Run the enclosed statements as one SQLite transaction.

        Issues ``BEGIN IMMEDIATE`` on entry, ``COMMIT`` on normal exit and
        ``ROLLBACK`` when the block raises; the exception is re-raised.
        Re-entrant: a nested call joins the outer transaction.

        Example::

            with db.transaction() as conn:
                conn.execute("UPDATE profiles ...")
                conn.execute("INSERT INTO families ...")
        """
        with self._write_lock:
            if self._in_transaction:
                yield self._sqlite_conn
                return

            self._sqlite_conn.execute("BEGIN IMMEDIATE")
            self._in_transaction = True
            try:
                yield self._sqlite_conn
                self._sqlite_conn.execute("COMMIT")
            except BaseException:
                self._sqlite_conn.execute("ROLLBACK")
                self._logger.debug("SQLite transaction rolled back.")
                raise
            finally:
                self._in_transaction = False

    # ------------------------------------------------------------------
    # Lifecycle helpers
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the SQLite connection.

        Safe to call multiple times; subsequent calls are no-ops.
        """
        with self._write_lock:
            try:
                self._sqlite_conn.close()
                self._logger.info("SQLite connection closed.")
            except sqlite3.ProgrammingError:
                # Connection was already closed; nothing to do.
                pass

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _connect_sqlite(self, path: Union[Path, str]) -> sqlite3.Connection:
        """Open (or create) a SQLite database.

        Raises
        ------
        PermissionError
            If the OS denies access to the database file or its directory.
        """
        try:
            conn = sqlite3.connect(
                str(path),
                check_same_thread=False,
                isolation_level=None,
            )
            conn.row_factory = sqlite3.Row
            if str(path) != ":memory:":
                conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA foreign_keys = ON;")
            self._logger.info("SQLite database opened at %s", path)
            return conn
        except PermissionError as exc:
            msg = (
                f"Cannot open the local database at '{path}'. "
                "The file or its directory may be read-only or locked by "
                "another process.  Please check file permissions and try again."
            )
            self._logger.error(msg)
            raise PermissionError(msg) from exc
