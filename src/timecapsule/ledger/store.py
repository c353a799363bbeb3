"""
SQLite storage for the capsule ledger.

This module persists the capsule store: one keyed record per owner holding
the next-id counter, and the ordered capsule rows beneath it.

Design Principles:
    - Append-only: Capsule rows are never updated or deleted
    - Atomic: A capsule row and its counter bump commit together or not at all
    - Serialized writers: BEGIN IMMEDIATE plus a process lock around appends
    - Self-contained: Single .db file holds the whole ledger

Tables:
    - stores: One row per owner (next_id, created_at)
    - capsules: Capsule records keyed by (owner, id)
"""

import hashlib
import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Generator

from timecapsule.errors import (
    AlreadyInitializedError,
    NotInitializedError,
    StorageConnectionError,
    StorageIntegrityError,
    StorageReadError,
    StorageWriteError,
)
from timecapsule.schema import HEX_PATTERN, Capsule, CapsuleMeta, StoreState

logger = logging.getLogger(__name__)

# Schema version for migrations
SCHEMA_VERSION = 1

# SQL for creating tables
CREATE_TABLES_SQL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);

-- Stores table: the singleton record per owner
CREATE TABLE IF NOT EXISTS stores (
    owner TEXT PRIMARY KEY,
    next_id INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

-- Capsules table: append-only capsule records
CREATE TABLE IF NOT EXISTS capsules (
    owner TEXT NOT NULL,
    id INTEGER NOT NULL,
    sender TEXT NOT NULL,
    receiver TEXT NOT NULL,
    unlock_time INTEGER NOT NULL,
    encrypted_hex TEXT NOT NULL,
    content_type TEXT NOT NULL,
    created_at INTEGER NOT NULL,
    PRIMARY KEY (owner, id),
    FOREIGN KEY (owner) REFERENCES stores(owner)
);

-- Indexes for per-address lookups
CREATE INDEX IF NOT EXISTS idx_capsules_sender ON capsules(owner, sender);
CREATE INDEX IF NOT EXISTS idx_capsules_receiver ON capsules(owner, receiver);
"""


def compute_hash(data: Any) -> str:
    """Compute SHA256 hash of data."""
    if data is None:
        return ""
    if isinstance(data, str):
        content = data.encode("utf-8")
    elif isinstance(data, bytes):
        content = data
    else:
        content = json.dumps(data, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def now_iso() -> str:
    """Get current UTC time in ISO format."""
    return datetime.now(UTC).isoformat()


def _row_to_capsule(row: sqlite3.Row) -> Capsule:
    return Capsule(
        id=row["id"],
        sender=row["sender"],
        receiver=row["receiver"],
        unlock_time=row["unlock_time"],
        encrypted_hex=row["encrypted_hex"],
        content_type=row["content_type"],
        created_at=row["created_at"],
    )


def _row_to_meta(row: sqlite3.Row) -> CapsuleMeta:
    return CapsuleMeta(
        id=row["id"],
        sender=row["sender"],
        receiver=row["receiver"],
        unlock_time=row["unlock_time"],
        content_type=row["content_type"],
    )


class CapsuleStore:
    """
    SQLite-backed capsule store.

    Usage:
        store = CapsuleStore("timecapsule.db")
        store.initialize("0x1")
        capsule = store.append("0x1", sender, receiver, unlock, hex, "text", now)
        store.close()

    Or use as context manager:
        with CapsuleStore(":memory:") as store:
            ...
    """

    def __init__(self, db_path: str | Path = ":memory:") -> None:
        """
        Open (and create if needed) the database.

        Args:
            db_path: Path to the SQLite database file, or ":memory:"
        """
        self.db_path = str(db_path)
        self._conn: sqlite3.Connection | None = None
        # One connection is shared across threads; readers must not see a
        # half-applied append running on the same connection.
        self._lock = threading.RLock()
        self._connect()
        self._init_schema()

    def _connect(self) -> None:
        """Establish database connection."""
        try:
            self._conn = sqlite3.connect(
                self.db_path,
                check_same_thread=False,
                isolation_level=None,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as e:
            raise StorageConnectionError(
                db_path=self.db_path,
                operation="connect",
                message=f"Failed to connect to database: {e}",
            ) from e

    def _init_schema(self) -> None:
        """Initialize database schema if needed."""
        try:
            with self.transaction():
                for statement in CREATE_TABLES_SQL.split(";"):
                    if statement.strip():
                        self._conn.execute(statement)
                row = self._conn.execute(
                    "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
                ).fetchone()
                if row is None:
                    self._conn.execute(
                        "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                        (SCHEMA_VERSION, now_iso()),
                    )
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="init_schema",
                underlying_error=str(e),
            ) from e

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        """Run the enclosed statements in one IMMEDIATE transaction."""
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                yield
                self._conn.execute("COMMIT")
            except Exception:
                self._conn.execute("ROLLBACK")
                raise

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "CapsuleStore":
        """Enter context manager."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Exit context manager."""
        self.close()

    # =========================================================================
    # Store Lifecycle
    # =========================================================================

    def state(self, owner: str) -> StoreState:
        """Return whether the store for owner exists."""
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT 1 FROM stores WHERE owner = ?",
                    (owner,),
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageReadError(operation="state", underlying_error=str(e)) from e
        return StoreState.INITIALIZED if row else StoreState.UNINITIALIZED

    def initialize(self, owner: str) -> None:
        """
        Create the empty store record for owner.

        Raises:
            AlreadyInitializedError: If the record already exists
        """
        try:
            with self.transaction():
                self._conn.execute(
                    "INSERT INTO stores (owner, next_id, created_at) VALUES (?, 0, ?)",
                    (owner, now_iso()),
                )
        except sqlite3.IntegrityError as e:
            raise AlreadyInitializedError(operation="init_storage", owner=owner) from e
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="init_storage",
                underlying_error=str(e),
            ) from e
        logger.info("Initialized capsule store for %s", owner)

    # =========================================================================
    # Capsule Operations
    # =========================================================================

    def append(
        self,
        owner: str,
        sender: str,
        receiver: str,
        unlock_time: int,
        encrypted_hex: str,
        content_type: str,
        created_at: int,
    ) -> Capsule:
        """
        Append a capsule and bump the counter in one transaction.

        Returns:
            The stored Capsule with its assigned id

        Raises:
            NotInitializedError: If no store exists for owner
        """
        try:
            with self.transaction():
                row = self._conn.execute(
                    "SELECT next_id FROM stores WHERE owner = ?",
                    (owner,),
                ).fetchone()
                if row is None:
                    raise NotInitializedError(operation="create_capsule")
                capsule = Capsule(
                    id=row["next_id"],
                    sender=sender,
                    receiver=receiver,
                    unlock_time=unlock_time,
                    encrypted_hex=encrypted_hex,
                    content_type=content_type,
                    created_at=created_at,
                )
                self._conn.execute(
                    """
                    INSERT INTO capsules (
                        owner, id, sender, receiver, unlock_time,
                        encrypted_hex, content_type, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        owner,
                        capsule.id,
                        capsule.sender,
                        capsule.receiver,
                        capsule.unlock_time,
                        capsule.encrypted_hex,
                        capsule.content_type,
                        capsule.created_at,
                    ),
                )
                self._conn.execute(
                    "UPDATE stores SET next_id = next_id + 1 WHERE owner = ?",
                    (owner,),
                )
            return capsule
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="create_capsule",
                underlying_error=str(e),
            ) from e

    def count(self, owner: str) -> int | None:
        """Number of capsules for owner, or None if the store does not exist."""
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT next_id FROM stores WHERE owner = ?",
                    (owner,),
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageReadError(operation="count", underlying_error=str(e)) from e
        return None if row is None else row["next_id"]

    def get(self, owner: str, capsule_id: int) -> Capsule | None:
        """Get a capsule by id, or None if absent."""
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT * FROM capsules WHERE owner = ? AND id = ?",
                    (owner, capsule_id),
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageReadError(operation="get", underlying_error=str(e)) from e
        return None if row is None else _row_to_capsule(row)

    def list_meta(self, owner: str, offset: int = 0, limit: int = 100) -> list[CapsuleMeta]:
        """List capsule metadata in id order."""
        try:
            with self._lock:
                rows = self._conn.execute(
                    """
                    SELECT id, sender, receiver, unlock_time, content_type
                    FROM capsules WHERE owner = ?
                    ORDER BY id LIMIT ? OFFSET ?
                    """,
                    (owner, limit, offset),
                ).fetchall()
        except sqlite3.Error as e:
            raise StorageReadError(operation="list_meta", underlying_error=str(e)) from e
        return [_row_to_meta(row) for row in rows]

    def list_meta_for(self, owner: str, address: str) -> list[CapsuleMeta]:
        """List metadata of capsules where address is sender or receiver."""
        try:
            with self._lock:
                rows = self._conn.execute(
                    """
                    SELECT id, sender, receiver, unlock_time, content_type
                    FROM capsules
                    WHERE owner = ? AND (sender = ? OR receiver = ?)
                    ORDER BY id
                    """,
                    (owner, address, address),
                ).fetchall()
        except sqlite3.Error as e:
            raise StorageReadError(operation="list_meta_for", underlying_error=str(e)) from e
        return [_row_to_meta(row) for row in rows]

    # =========================================================================
    # Integrity
    # =========================================================================

    def verify(self, owner: str) -> dict[str, Any]:
        """
        Check the ledger invariants for owner.

        Verifies that ids form 0..n-1 with no gaps, that the counter equals
        the row count, and that every ciphertext is even-length lowercase hex.

        Returns:
            Dictionary with "valid" flag, "errors" list and "count"
        """
        errors: list[str] = []
        try:
            with self._lock:
                store_row = self._conn.execute(
                    "SELECT next_id FROM stores WHERE owner = ?",
                    (owner,),
                ).fetchone()
                rows = self._conn.execute(
                    "SELECT id, encrypted_hex FROM capsules WHERE owner = ? ORDER BY id",
                    (owner,),
                ).fetchall()
        except sqlite3.Error as e:
            raise StorageReadError(operation="verify", underlying_error=str(e)) from e

        if store_row is None:
            return {"valid": not rows, "errors": ["store not initialized"] if rows else [], "count": 0}

        for expected, row in enumerate(rows):
            if row["id"] != expected:
                errors.append(f"id gap: expected {expected}, found {row['id']}")
                break
        for row in rows:
            if not HEX_PATTERN.match(row["encrypted_hex"]):
                errors.append(f"capsule {row['id']}: ciphertext is not lowercase hex")
        if store_row["next_id"] != len(rows):
            errors.append(
                f"counter mismatch: next_id={store_row['next_id']}, rows={len(rows)}"
            )

        return {"valid": not errors, "errors": errors, "count": len(rows)}

    def ensure_integrity(self, owner: str) -> dict[str, Any]:
        """
        Raise if verify() reports any problem.

        Returns:
            The verify() result when the store is healthy

        Raises:
            StorageIntegrityError: If any invariant is violated
        """
        result = self.verify(owner)
        if not result["valid"]:
            raise StorageIntegrityError(
                operation="verify",
                message="Capsule store integrity check failed: " + "; ".join(result["errors"]),
                context={"errors": result["errors"]},
            )
        return result
