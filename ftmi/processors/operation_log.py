"""SQLite-backed store of executed rename operations."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from ftmi.config import DEFAULT_LIST_LIMIT, STORE_RETRY_ATTEMPTS, STORE_TIMEOUT_SECONDS
from ftmi.errors import OperationNotFound, StoreError
from ftmi.models.operation import FailureReason, FileStatus, OperationFile, RenameOperation


logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS operations (
    id TEXT PRIMARY KEY,
    directory TEXT NOT NULL,
    prefix TEXT NOT NULL,
    timestamp INTEGER NOT NULL,
    undone_at INTEGER NULL
);

CREATE TABLE IF NOT EXISTS operation_files (
    operation_id TEXT NOT NULL REFERENCES operations(id),
    position INTEGER NOT NULL,
    old_path TEXT NOT NULL,
    new_path TEXT NOT NULL,
    status TEXT NOT NULL CHECK (status IN ('succeeded', 'failed')),
    reason TEXT NULL,
    PRIMARY KEY (operation_id, position)
);

CREATE INDEX IF NOT EXISTS idx_operations_timestamp ON operations(timestamp);
CREATE INDEX IF NOT EXISTS idx_operation_files_operation ON operation_files(operation_id);
"""


def _is_locked(error: BaseException) -> bool:
    return isinstance(error, sqlite3.OperationalError) and "locked" in str(error).lower()


def _log_retry(retry_state) -> None:
    """Log a retried store write."""
    wait_time = getattr(retry_state.next_action, "sleep", 0) if retry_state.next_action else 0
    logger.warning(
        "Operation store is locked. Retrying in %.1fs (attempt %d/%d)...",
        wait_time,
        retry_state.attempt_number,
        STORE_RETRY_ATTEMPTS,
    )


class OperationLog:
    """Durable, append-only log of rename operations.

    The connection is opened on first use and kept for the lifetime of the log.
    A single process is assumed to own the store.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    def open(self) -> OperationLog:
        """Open the store, creating the file and schema if needed.

        Raises:
            StoreError: If the store cannot be created or is not a valid database.
        """
        if self._conn is not None:
            return self

        conn = None
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path), timeout=STORE_TIMEOUT_SECONDS)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            conn.executescript(SCHEMA)
        except (OSError, sqlite3.Error) as e:
            if conn is not None:
                conn.close()
            raise StoreError(f"Cannot open operation store {self.db_path}: {e}") from e

        self._conn = conn
        logger.debug("Opened operation store %s", self.db_path)
        return self

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> OperationLog:
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def connection(self) -> sqlite3.Connection:
        return self.open()._conn

    def append(self, operation: RenameOperation) -> None:
        """Persist an operation and its files in a single transaction.

        Args:
            operation: The operation to record.

        Raises:
            StoreError: If the store is unreachable, corrupt, or the write keeps failing.
        """
        try:
            self._insert(operation)
        except sqlite3.Error as e:
            raise StoreError(f"Cannot record operation {operation.id}: {e}") from e
        logger.info("Recorded operation %s (%d file(s))", operation.id, len(operation.files))

    @retry(
        retry=retry_if_exception(_is_locked),
        stop=stop_after_attempt(STORE_RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
        before_sleep=_log_retry,
        reraise=True,
    )
    def _insert(self, operation: RenameOperation) -> None:
        conn = self.connection
        with conn:
            conn.execute(
                "INSERT INTO operations (id, directory, prefix, timestamp, undone_at) VALUES (?, ?, ?, ?, ?)",
                (operation.id, str(operation.directory), operation.prefix, operation.timestamp, operation.undone_at),
            )
            conn.executemany(
                "INSERT INTO operation_files (operation_id, position, old_path, new_path, status, reason) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                [
                    (
                        operation.id,
                        position,
                        str(file.old_path),
                        str(file.new_path),
                        file.status.value,
                        file.reason.value if file.reason is not None else None,
                    )
                    for position, file in enumerate(operation.files)
                ],
            )

    def list(self, limit: int = DEFAULT_LIST_LIMIT) -> list[RenameOperation]:
        """Return the `limit` most recent operations, newest first."""
        rows = self._query(
            "SELECT * FROM operations ORDER BY timestamp DESC, id DESC LIMIT ?",
            (limit,),
        )
        return [self._load(row) for row in rows]

    def get(self, operation_id: str) -> RenameOperation:
        """Look up an operation by id.

        Raises:
            OperationNotFound: If no operation has this id.
        """
        rows = self._query("SELECT * FROM operations WHERE id = ?", (operation_id,))
        if not rows:
            raise OperationNotFound(operation_id)
        return self._load(rows[0])

    def most_recent(self) -> RenameOperation:
        """Return the newest operation.

        Raises:
            OperationNotFound: If the store is empty.
        """
        operations = self.list(limit=1)
        if not operations:
            raise OperationNotFound()
        return operations[0]

    def mark_undone(self, operation_id: str, at: int) -> None:
        """Record when an operation was undone. The first recorded time is kept.

        Raises:
            OperationNotFound: If no operation has this id.
        """
        try:
            with self.connection as conn:
                cursor = conn.execute(
                    "UPDATE operations SET undone_at = ? WHERE id = ? AND undone_at IS NULL",
                    (at, operation_id),
                )
        except sqlite3.Error as e:
            raise StoreError(f"Cannot update operation {operation_id}: {e}") from e

        if cursor.rowcount == 0:
            # Either already undone or unknown
            self.get(operation_id)

    def _query(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        try:
            return self.connection.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Cannot read operation store {self.db_path}: {e}") from e

    def _load(self, row: sqlite3.Row) -> RenameOperation:
        file_rows = self._query(
            "SELECT * FROM operation_files WHERE operation_id = ? ORDER BY position",
            (row["id"],),
        )
        try:
            files = [
                OperationFile(
                    old_path=Path(file_row["old_path"]),
                    new_path=Path(file_row["new_path"]),
                    status=FileStatus(file_row["status"]),
                    reason=FailureReason(file_row["reason"]) if file_row["reason"] else None,
                )
                for file_row in file_rows
            ]
            return RenameOperation(
                id=row["id"],
                timestamp=row["timestamp"],
                directory=Path(row["directory"]),
                prefix=row["prefix"],
                files=files,
                undone_at=row["undone_at"],
            )
        except ValueError as e:
            raise StoreError(f"Corrupt operation {row['id']} in {self.db_path}: {e}") from e
