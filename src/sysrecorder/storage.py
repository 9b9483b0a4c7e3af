"""
SQLite storage handle shared by the sampling engine and the query path.

The recorder keeps one SQLite connection for the lifetime of the process.
Statements run on executor threads, so the connection is opened with
`check_same_thread=False` and every use of it goes through `connection()`,
which holds a lock for the whole scope. At most one statement is in flight on
the connection at any time.

Each insert commits on its own; no transaction spans several rows.
"""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from collections.abc import Callable, Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, TypeVar

from sysrecorder.errors import StorageError
from sysrecorder.logging import get_logger
from sysrecorder.records import (
    RECORD_SPECS,
    Record,
    RecordKind,
    SysRecord,
    from_row,
    query_all,
    query_by_range,
    spec_for,
    write_to_store,
)

logger = get_logger(__name__)

T = TypeVar("T")

MEMORY_DB = ":memory:"


class StorageHandle:
    """
    Lock-guarded access to the recorder's SQLite database.

    Example:
        >>> storage = StorageHandle("~/.local/share/sysrecorder/sysinfo.db")
        >>> storage.open()
        >>> storage.ensure_schema()
        >>> await storage.insert(RamRecord("2024-01-01 10:00:00", 8, 4, 2, 0))
        >>> rows = await storage.fetch_all(RecordKind.RAM)
    """

    def __init__(self, db_path: str | Path) -> None:
        """
        Initialize the StorageHandle. No connection is opened yet.

        Args:
            db_path: Path to the SQLite database file, or ":memory:".
        """
        self.db_path = db_path if db_path == MEMORY_DB else Path(db_path).expanduser()
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> None:
        """
        Open the database connection, creating parent directories if needed.

        Raises:
            StorageError: If the database cannot be opened.
        """
        with self._lock:
            if self._conn is not None:
                return
            try:
                if isinstance(self.db_path, Path):
                    self.db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(
                    str(self.db_path), timeout=30.0, check_same_thread=False
                )
                conn.execute("PRAGMA journal_mode=WAL")
            except (sqlite3.Error, OSError) as e:
                logger.error(
                    "Failed to open database",
                    extra={"db_path": str(self.db_path), "error": str(e)},
                )
                raise StorageError(
                    f"Failed to open database: {e}",
                    details={"db_path": str(self.db_path)},
                ) from e
            self._conn = conn
        logger.info("Database opened", extra={"db_path": str(self.db_path)})

    def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        with self._lock:
            if self._conn is None:
                return
            self._conn.close()
            self._conn = None
        logger.debug("Database closed", extra={"db_path": str(self.db_path)})

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Exclusive, scoped access to the underlying connection.

        Raises:
            StorageError: If the handle is not open.
        """
        with self._lock:
            if self._conn is None:
                raise StorageError(
                    "Database is not open",
                    details={"db_path": str(self.db_path)},
                )
            yield self._conn

    def with_connection(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        """
        Run `fn` with exclusive use of the connection.

        sqlite3 errors raised by `fn` are wrapped in StorageError, as are
        parameter binding errors (an integer outside the signed 64-bit range
        raises OverflowError, an unsupported value ValueError).
        """
        try:
            with self.connection() as conn:
                return fn(conn)
        except (sqlite3.Error, OverflowError, ValueError) as e:
            raise StorageError(
                f"Database operation failed: {e}",
                details={"db_path": str(self.db_path)},
            ) from e

    async def run(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        """Run `with_connection(fn)` on an executor thread."""
        return await asyncio.get_event_loop().run_in_executor(
            None, self.with_connection, fn
        )

    # -------------------------------------------------------------------------
    # Schema
    # -------------------------------------------------------------------------

    def ensure_schema(self) -> list[str]:
        """
        Create the record tables that do not exist yet.

        Each table is created independently: a failure is logged and the
        remaining tables are still attempted. Safe to call repeatedly.

        Returns:
            Names of the tables that could not be created.
        """
        failed: list[str] = []
        for spec in RECORD_SPECS.values():
            try:
                self.with_connection(lambda conn, sql=spec.create_sql: conn.execute(sql))
            except StorageError as e:
                failed.append(spec.table)
                logger.error(
                    "Failed to create table",
                    extra={"table": spec.table, "error": e.message},
                )
        if not failed:
            logger.debug("Database schema ready", extra={"db_path": str(self.db_path)})
        return failed

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def insert(self, record: Record) -> int:
        """
        Insert one record.

        Returns:
            The row id assigned by SQLite.

        Raises:
            StorageError: If the store rejects the insert.
        """
        try:
            return await self.run(lambda conn: write_to_store(record, conn))
        except StorageError as e:
            logger.debug(
                "Insert rejected",
                extra={"table": spec_for(record.kind).table, "error": e.message},
            )
            raise

    async def has_host(self, hostname: str) -> bool:
        """Return whether a sys row already exists for `hostname`."""

        def _exists(conn: sqlite3.Connection) -> bool:
            cursor = conn.execute(
                "SELECT 1 FROM sys WHERE hostname = ? LIMIT 1", (hostname,)
            )
            return cursor.fetchone() is not None

        return await self.run(_exists)

    async def write_identity(self, record: SysRecord) -> bool:
        """
        Store the host identity unless the hostname is already recorded.

        The existence check and the insert are separate statements; two
        processes starting at once may both insert.

        Returns:
            True if a row was inserted.
        """
        if await self.has_host(record.hostname):
            logger.debug(
                "Host identity already recorded",
                extra={"hostname": record.hostname},
            )
            return False
        await self.insert(record)
        logger.info("Host identity recorded", extra={"hostname": record.hostname})
        return True

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def _select(
        self, kind: RecordKind, sql: str, params: tuple[Any, ...] = ()
    ) -> list[Record]:
        rows = await self.run(lambda conn: conn.execute(sql, params).fetchall())
        return [from_row(kind, row) for row in rows]

    async def fetch_all(self, kind: RecordKind) -> list[Record]:
        """
        Fetch every record of a kind in insertion order.

        Raises:
            StorageError: If the select fails.
            DecodeError: If a row does not match the kind's columns.
        """
        return await self._select(kind, query_all(kind))

    async def fetch_range(self, kind: RecordKind, start: str, end: str) -> list[Record]:
        """
        Fetch the records of a kind whose timestamp lies in [start, end].

        Raises:
            InputError: If the kind carries no timestamp.
            StorageError: If the select fails.
            DecodeError: If a row does not match the kind's columns.
        """
        sql, params = query_by_range(kind, start, end)
        return await self._select(kind, sql, params)

    async def count(self, kind: RecordKind) -> int:
        """Return the number of stored rows of a kind."""
        table = spec_for(kind).table
        return await self.run(
            lambda conn: conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
        )
