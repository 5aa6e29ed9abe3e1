"""
Storage Backend Module

Provides the persistence port used by the ledger engine, with in-memory
(testing) and SQLite (persistence) implementations. Records are JSON
documents; all monetary values stored as Decimal strings.

Every engine operation runs inside ``atomic()``: the unit of work is
serialized against other units of work on the same store and its writes are
committed or rolled back together.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Union
from decimal import Decimal
from datetime import datetime, timezone
from enum import Enum
import sqlite3
import json
import threading
from dataclasses import dataclass, fields, is_dataclass
from pathlib import Path
from contextlib import contextmanager

from .currency import Currency, Money


def to_storage_value(value: Any) -> Any:
    """Convert a domain value to its JSON-compatible storage form"""
    if isinstance(value, Currency):
        return value.code
    if isinstance(value, Money):
        return value.to_plain()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: to_storage_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_storage_value(v) for v in value]
    if is_dataclass(value):
        return {f.name: to_storage_value(getattr(value, f.name)) for f in fields(value)}
    return value


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        return {f.name: to_storage_value(getattr(self, f.name)) for f in fields(self)}


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert or replace a record"""
        pass

    @abstractmethod
    def save_if_absent(self, table: str, record_id: str, data: Dict[str, Any]) -> bool:
        """Insert a record only if its id is unused. Returns True if inserted."""
        pass

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from storage"""
        pass

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table in insertion order"""
        pass

    @abstractmethod
    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        pass

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters, in insertion order"""
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        """Count records in table"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

    @abstractmethod
    def begin_transaction(self) -> None:
        """Start (or join) a unit of work"""
        pass

    @abstractmethod
    def commit(self) -> None:
        """Commit the current unit of work"""
        pass

    @abstractmethod
    def rollback(self) -> None:
        """Discard the current unit of work"""
        pass

    @contextmanager
    def atomic(self):
        """Context manager for atomic operations"""
        self.begin_transaction()
        try:
            yield
        except BaseException:
            self.rollback()
            raise
        else:
            self.commit()


class InMemoryStorage(StorageInterface):
    """In-memory storage implementation for testing"""

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()
        self._depth = 0
        self._snapshot: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None

    @staticmethod
    def _copy(data: Any) -> Any:
        # Deep copy to prevent external mutation
        return json.loads(json.dumps(data, default=str))

    def _table(self, table: str) -> Dict[str, Dict[str, Any]]:
        if table not in self._data:
            self._data[table] = {}
        return self._data[table]

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._table(table)[record_id] = self._copy(data)

    def save_if_absent(self, table: str, record_id: str, data: Dict[str, Any]) -> bool:
        with self._lock:
            rows = self._table(table)
            if record_id in rows:
                return False
            rows[record_id] = self._copy(data)
            return True

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._table(table).get(record_id)
            return self._copy(record) if record is not None else None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [self._copy(record) for record in self._table(table).values()]

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            return record_id in self._table(table)

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        with self._lock:
            results = []
            for record in self._table(table).values():
                if all(key in record and record[key] == value for key, value in filters.items()):
                    results.append(self._copy(record))
            return results

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._table(table))

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass

    def begin_transaction(self) -> None:
        self._lock.acquire()
        if self._depth == 0:
            self._snapshot = self._copy(self._data)
        self._depth += 1

    def commit(self) -> None:
        try:
            self._depth -= 1
            if self._depth == 0:
                self._snapshot = None
        finally:
            self._lock.release()

    def rollback(self) -> None:
        try:
            self._depth -= 1
            if self._depth == 0:
                self._data = self._snapshot if self._snapshot is not None else {}
                self._snapshot = None
        finally:
            self._lock.release()


class SQLiteStorage(StorageInterface):
    """SQLite storage implementation for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:", timeout: float = 30.0):
        self.db_path = str(db_path)
        # Autocommit mode; units of work issue BEGIN IMMEDIATE explicitly
        self._connection = sqlite3.connect(
            self.db_path, check_same_thread=False, isolation_level=None, timeout=timeout
        )
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0
        self._known_tables = set()

        # Enable WAL mode for better concurrent access
        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists with proper schema"""
        if table in self._known_tables:
            return
        self._connection.execute(f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        self._connection.execute(f"""
            CREATE INDEX IF NOT EXISTS idx_{table}_created_at
            ON {table}(created_at)
        """)
        self._known_tables.add(table)

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._ensure_table(table)
            now = self._now()
            self._connection.execute(f"""
                INSERT INTO {table} (id, data, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    data = excluded.data,
                    updated_at = excluded.updated_at
            """, (record_id, json.dumps(data, default=str), now, now))

    def save_if_absent(self, table: str, record_id: str, data: Dict[str, Any]) -> bool:
        with self._lock:
            self._ensure_table(table)
            now = self._now()
            cursor = self._connection.execute(f"""
                INSERT OR IGNORE INTO {table} (id, data, created_at, updated_at)
                VALUES (?, ?, ?, ?)
            """, (record_id, json.dumps(data, default=str), now, now))
            return cursor.rowcount == 1

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            row = self._connection.execute(
                f"SELECT data FROM {table} WHERE id = ?", (record_id,)
            ).fetchone()
            return json.loads(row['data']) if row else None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(
                f"SELECT data FROM {table} ORDER BY created_at, rowid"
            )
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(
                f"SELECT 1 FROM {table} WHERE id = ? LIMIT 1", (record_id,)
            )
            return cursor.fetchone() is not None

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters (simple JSON key matching)"""
        return [
            record for record in self.load_all(table)
            if all(key in record and record[key] == value for key, value in filters.items())
        ]

    def count(self, table: str) -> int:
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"SELECT COUNT(*) AS count FROM {table}")
            return cursor.fetchone()['count']

    def begin_transaction(self) -> None:
        self._lock.acquire()
        try:
            if self._depth == 0:
                # Take the write lock up front so read-modify-write cannot interleave
                self._connection.execute("BEGIN IMMEDIATE")
            self._depth += 1
        except Exception:
            self._lock.release()
            raise

    def commit(self) -> None:
        try:
            self._depth -= 1
            if self._depth == 0:
                try:
                    self._connection.execute("COMMIT")
                except Exception:
                    self._connection.execute("ROLLBACK")
                    self._known_tables.clear()
                    raise
        finally:
            self._lock.release()

    def rollback(self) -> None:
        try:
            self._depth -= 1
            if self._depth == 0:
                self._connection.execute("ROLLBACK")
                # Tables created inside the transaction are gone too
                self._known_tables.clear()
        finally:
            self._lock.release()

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_storage(backend: str, database_path: Union[str, Path] = ":memory:") -> StorageInterface:
    """Build the configured storage backend"""
    if backend == "memory":
        return InMemoryStorage()
    if backend == "sqlite":
        return SQLiteStorage(database_path)
    raise ValueError(f"Unknown storage backend: {backend}")
