"""
Storage Backend Module

Provides the record store the ledger runs on: an abstract table/record-id
interface plus in-memory (testing) and SQLite (persistence) implementations.
All monetary values are stored as Decimal strings and records are returned
in insertion order.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Union
from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import asdict
from enum import Enum
from pathlib import Path
from contextlib import contextmanager
import copy
import sqlite3
import json
import threading


Record = Dict[str, Any]
Mutator = Callable[[Record], None]


class StorageRecord:
    """Mixin for dataclasses persisted through a StorageInterface"""

    @property
    def record_id(self) -> str:
        raise NotImplementedError

    def to_dict(self) -> Record:
        """Convert to dictionary for storage"""
        result = asdict(self)
        for key, value in result.items():
            if isinstance(value, datetime):
                result[key] = value.isoformat()
            elif isinstance(value, Decimal):
                result[key] = str(value)
            elif isinstance(value, Enum):
                result[key] = value.value
        return result


def _copy(record: Record) -> Record:
    # Round-trip through JSON so callers never share state with the store
    return json.loads(json.dumps(record, default=str))


def _matches(record: Record, filters: Dict[str, Any]) -> bool:
    for key, value in filters.items():
        if key not in record or record[key] != value:
            return False
    return True


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    @abstractmethod
    def save(self, table: str, record_id: str, data: Record) -> None:
        """Save a record to storage"""
        pass

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Record]:
        """Load a record from storage"""
        pass

    @abstractmethod
    def load_all(self, table: str) -> List[Record]:
        """Load all records from a table in insertion order"""
        pass

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any]) -> List[Record]:
        """Find records matching filters in insertion order"""
        pass

    @abstractmethod
    def update(self, table: str, record_id: str, mutator: Mutator) -> Optional[Record]:
        """
        Apply ``mutator`` to a stored record in place and persist the result.

        The read-modify-write is atomic with respect to that record. Returns
        the updated record, or None if it does not exist.
        """
        pass

    @abstractmethod
    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        """Count records in table"""
        pass

    @abstractmethod
    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

    def find_one(self, table: str, filters: Dict[str, Any]) -> Optional[Record]:
        """Return the first record matching filters, or None"""
        results = self.find(table, filters)
        return results[0] if results else None

    def begin_transaction(self) -> None:
        """Start a transaction (default no-op)"""
        pass

    def commit(self) -> None:
        """Commit current transaction (default no-op)"""
        pass

    def rollback(self) -> None:
        """Rollback current transaction (default no-op)"""
        pass

    @contextmanager
    def atomic(self):
        """Context manager for atomic operations"""
        self.begin_transaction()
        try:
            yield
            self.commit()
        except Exception:
            self.rollback()
            raise


class InMemoryStorage(StorageInterface):
    """In-memory storage implementation for testing"""

    def __init__(self):
        self._data: Dict[str, Dict[str, Record]] = {}
        self._lock = threading.RLock()
        self._depth = 0
        self._snapshot: Optional[Dict[str, Dict[str, Record]]] = None

    def _ensure_table(self, table: str) -> None:
        if table not in self._data:
            self._data[table] = {}

    def save(self, table: str, record_id: str, data: Record) -> None:
        with self._lock:
            self._ensure_table(table)
            self._data[table][record_id] = _copy(data)

    def load(self, table: str, record_id: str) -> Optional[Record]:
        with self._lock:
            self._ensure_table(table)
            record = self._data[table].get(record_id)
            if record is not None:
                return _copy(record)
            return None

    def load_all(self, table: str) -> List[Record]:
        with self._lock:
            self._ensure_table(table)
            return [_copy(record) for record in self._data[table].values()]

    def find(self, table: str, filters: Dict[str, Any]) -> List[Record]:
        with self._lock:
            self._ensure_table(table)
            return [
                _copy(record) for record in self._data[table].values()
                if _matches(record, filters)
            ]

    def update(self, table: str, record_id: str, mutator: Mutator) -> Optional[Record]:
        with self._lock:
            record = self.load(table, record_id)
            if record is None:
                return None
            mutator(record)
            # Dict assignment to an existing key keeps its insertion position
            self._data[table][record_id] = _copy(record)
            return _copy(record)

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            self._ensure_table(table)
            return record_id in self._data[table]

    def count(self, table: str) -> int:
        with self._lock:
            self._ensure_table(table)
            return len(self._data[table])

    def clear_table(self, table: str) -> None:
        with self._lock:
            self._data[table] = {}

    def begin_transaction(self) -> None:
        """Hold the store lock and snapshot the data until commit/rollback"""
        self._lock.acquire()
        if self._depth == 0:
            self._snapshot = copy.deepcopy(self._data)
        self._depth += 1

    def commit(self) -> None:
        self._depth -= 1
        if self._depth == 0:
            self._snapshot = None
        self._lock.release()

    def rollback(self) -> None:
        self._depth -= 1
        if self._depth == 0 and self._snapshot is not None:
            self._data = self._snapshot
            self._snapshot = None
        self._lock.release()

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass


class SQLiteStorage(StorageInterface):
    """SQLite storage implementation for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level='DEFERRED')
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0
        self._tables = set()

        # WAL mode for better concurrent readers
        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
                self._connection.commit()

    @property
    def _in_transaction(self) -> bool:
        return self._depth > 0

    def _commit_unless_in_transaction(self) -> None:
        if not self._in_transaction:
            self._connection.commit()

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists with proper schema"""
        if table in self._tables:
            return
        self._connection.execute(f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        self._commit_unless_in_transaction()
        self._tables.add(table)

    def save(self, table: str, record_id: str, data: Record) -> None:
        with self._lock:
            self._ensure_table(table)

            now = datetime.now(timezone.utc).isoformat()
            data_json = json.dumps(data, default=str)

            # Upsert keeps the rowid, so an updated record keeps its position
            self._connection.execute(f"""
                INSERT INTO {table} (id, data, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    data = excluded.data,
                    updated_at = excluded.updated_at
            """, (record_id, data_json, now, now))
            self._commit_unless_in_transaction()

    def load(self, table: str, record_id: str) -> Optional[Record]:
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} WHERE id = ?
            """, (record_id,))
            row = cursor.fetchone()
            if row:
                return json.loads(row['data'])
            return None

    def load_all(self, table: str) -> List[Record]:
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} ORDER BY rowid
            """)
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def find(self, table: str, filters: Dict[str, Any]) -> List[Record]:
        """Find records matching filters (simple JSON key matching)"""
        return [record for record in self.load_all(table) if _matches(record, filters)]

    def update(self, table: str, record_id: str, mutator: Mutator) -> Optional[Record]:
        with self._lock:
            record = self.load(table, record_id)
            if record is None:
                return None
            mutator(record)
            self.save(table, record_id, record)
            return record

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT 1 FROM {table} WHERE id = ? LIMIT 1
            """, (record_id,))
            return cursor.fetchone() is not None

    def count(self, table: str) -> int:
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT COUNT(*) as count FROM {table}
            """)
            return cursor.fetchone()['count']

    def clear_table(self, table: str) -> None:
        with self._lock:
            self._ensure_table(table)
            self._connection.execute(f"DELETE FROM {table}")
            self._commit_unless_in_transaction()

    def begin_transaction(self) -> None:
        """Start a database transaction"""
        # SQLite with isolation_level='DEFERRED' opens the transaction on the
        # first write; we only hold the lock and track nesting
        self._lock.acquire()
        self._depth += 1

    def commit(self) -> None:
        self._depth -= 1
        if self._depth == 0:
            self._connection.commit()
        self._lock.release()

    def rollback(self) -> None:
        self._depth -= 1
        if self._depth == 0:
            self._connection.rollback()
            # Tables created inside the transaction are gone too
            self._tables.clear()
        self._lock.release()

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None
