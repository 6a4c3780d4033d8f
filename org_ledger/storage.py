"""
Storage Backend Module

Provides abstract storage interface and implementations for in-memory (testing),
SQLite and PostgreSQL persistence. All monetary values are stored as Decimal
strings and adjusted in place through ``increment``.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Union
from decimal import Decimal
from datetime import datetime, timezone
import sqlite3
import json
import threading
from dataclasses import dataclass, asdict
from pathlib import Path
from contextlib import contextmanager


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        result = asdict(self)
        # Convert datetime objects to ISO strings
        result['created_at'] = self.created_at.isoformat()
        result['updated_at'] = self.updated_at.isoformat()
        # Convert Decimal objects to strings
        for key, value in result.items():
            if isinstance(value, Decimal):
                result[key] = str(value)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StorageRecord':
        """Create instance from dictionary"""
        # Convert ISO strings back to datetime objects
        if 'created_at' in data and isinstance(data['created_at'], str):
            data['created_at'] = datetime.fromisoformat(data['created_at'])
        if 'updated_at' in data and isinstance(data['updated_at'], str):
            data['updated_at'] = datetime.fromisoformat(data['updated_at'])

        return cls(**data)


def _matches(record: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    for key, value in filters.items():
        if key not in record or record[key] != value:
            return False
    return True


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to storage"""
        pass

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from storage"""
        pass

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        pass

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from storage"""
        pass

    @abstractmethod
    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        pass

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters"""
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        """Count records in table"""
        pass

    @abstractmethod
    def increment(self, table: str, record_id: str, field: str, delta: Decimal) -> Decimal:
        """
        Atomically add a signed decimal delta to one numeric field.

        The stored value is read and written by the backend itself, so callers
        never hold a balance across two round trips.

        Returns:
            The new value of the field

        Raises:
            KeyError: If the record does not exist
        """
        pass

    @abstractmethod
    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

    def begin_transaction(self) -> None:
        """Start a database transaction (default no-op)"""
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
    """
    In-memory storage implementation for testing

    Units of work snapshot the whole dataset on entry and restore it on
    rollback. The lock is held for the duration of the outermost unit, so
    concurrent units of work are serialized.
    """

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()
        self._depth = 0
        self._snapshot: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists"""
        if table not in self._data:
            self._data[table] = {}

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to memory"""
        with self._lock:
            self._ensure_table(table)
            # Deep copy to prevent external mutation
            self._data[table][record_id] = json.loads(json.dumps(data, default=str))

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from memory"""
        with self._lock:
            self._ensure_table(table)
            record = self._data[table].get(record_id)
            if record:
                # Deep copy to prevent external mutation
                return json.loads(json.dumps(record))
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        with self._lock:
            self._ensure_table(table)
            return [json.loads(json.dumps(record)) for record in self._data[table].values()]

    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from memory"""
        with self._lock:
            self._ensure_table(table)
            if record_id in self._data[table]:
                del self._data[table][record_id]
                return True
            return False

    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        with self._lock:
            self._ensure_table(table)
            return record_id in self._data[table]

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters"""
        with self._lock:
            self._ensure_table(table)
            return [
                json.loads(json.dumps(record))
                for record in self._data[table].values()
                if _matches(record, filters)
            ]

    def count(self, table: str) -> int:
        """Count records in table"""
        with self._lock:
            self._ensure_table(table)
            return len(self._data[table])

    def increment(self, table: str, record_id: str, field: str, delta: Decimal) -> Decimal:
        """Add delta to a decimal field under the storage lock"""
        with self._lock:
            self._ensure_table(table)
            record = self._data[table].get(record_id)
            if record is None:
                raise KeyError(f"{table}/{record_id}")
            new_value = Decimal(str(record.get(field, '0'))) + Decimal(delta)
            record[field] = str(new_value)
            return new_value

    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        with self._lock:
            self._data[table] = {}

    def begin_transaction(self) -> None:
        """Open (or join) a unit of work"""
        self._lock.acquire()
        if self._depth == 0:
            self._snapshot = json.loads(json.dumps(self._data))
        self._depth += 1

    def commit(self) -> None:
        """Close the current unit of work, keeping its writes"""
        if self._depth == 0:
            return
        self._depth -= 1
        if self._depth == 0:
            self._snapshot = None
        self._lock.release()

    def rollback(self) -> None:
        """Discard every write made since the outermost unit of work began"""
        if self._depth == 0:
            return
        self._depth -= 1
        if self._snapshot is not None:
            # An inner failure discards the whole unit of work
            self._data = self._snapshot
            self._snapshot = json.loads(json.dumps(self._data)) if self._depth else None
        self._lock.release()

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass

    def get_all_data(self) -> Dict[str, Dict[str, Dict[str, Any]]]:
        """Get all data for debugging/inspection"""
        with self._lock:
            return json.loads(json.dumps(self._data, default=str))


class _SQLStorage(StorageInterface):
    """
    Shared plumbing for the SQL backends

    Each table holds one JSON document per row. One connection is shared and
    guarded by a re-entrant lock; a unit of work keeps the lock from begin to
    commit or rollback, and statements issued outside a unit commit at once.
    """

    placeholder = "?"

    def __init__(self):
        self._lock = threading.RLock()
        self._depth = 0
        self._tables = set()
        self._connection = self._connect()

    @abstractmethod
    def _connect(self):
        """Open the driver connection"""

    @abstractmethod
    def _schema(self, table: str) -> List[str]:
        """DDL statements creating a table and its indexes"""

    def _begin(self) -> None:
        """Start the database transaction for an outermost unit of work"""
        pass

    @staticmethod
    def _decode(value: Any) -> Dict[str, Any]:
        return json.loads(value) if isinstance(value, str) else dict(value)

    def _execute(self, table: str, sql: str, params: tuple = ()):
        self._ensure_table(table)
        cursor = self._connection.cursor()
        cursor.execute(sql.format(table=table).replace("?", self.placeholder), params)
        return cursor

    def _ensure_table(self, table: str) -> None:
        if table in self._tables:
            return
        cursor = self._connection.cursor()
        try:
            for statement in self._schema(table):
                cursor.execute(statement)
        finally:
            cursor.close()
        self._commit_unless_in_transaction()
        self._tables.add(table)

    def _commit_unless_in_transaction(self) -> None:
        if self._depth == 0:
            self._connection.commit()

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert or replace a record, keeping its first created_at"""
        now = datetime.now(timezone.utc).isoformat()
        with self._lock:
            self._execute(table, """
                INSERT INTO {table} (id, data, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (id) DO UPDATE SET
                    data = excluded.data,
                    updated_at = excluded.updated_at
            """, (record_id, json.dumps(data, default=str), now, now)).close()
            self._commit_unless_in_transaction()

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._execute(table, "SELECT data FROM {table} WHERE id = ?", (record_id,)).fetchone()
            return self._decode(row['data']) if row else None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            rows = self._execute(table, "SELECT data FROM {table} ORDER BY created_at").fetchall()
            return [self._decode(row['data']) for row in rows]

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            cursor = self._execute(table, "DELETE FROM {table} WHERE id = ?", (record_id,))
            self._commit_unless_in_transaction()
            return cursor.rowcount > 0

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            cursor = self._execute(table, "SELECT 1 FROM {table} WHERE id = ? LIMIT 1", (record_id,))
            return cursor.fetchone() is not None

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Records whose top-level keys equal every filter value"""
        return [record for record in self.load_all(table) if _matches(record, filters)]

    def count(self, table: str) -> int:
        with self._lock:
            return self._execute(table, "SELECT COUNT(*) AS count FROM {table}").fetchone()['count']

    def increment(self, table: str, record_id: str, field: str, delta: Decimal) -> Decimal:
        """
        Read, add and write back inside one unit of work

        The read and the write run in the same database transaction, so a
        failure in between leaves the stored value untouched. Backends whose
        units take the write lock on BEGIN also keep other connections from
        reading the old value in between.
        """
        with self.atomic():
            record = self.load(table, record_id)
            if record is None:
                raise KeyError(f"{table}/{record_id}")
            new_value = Decimal(str(record.get(field, '0'))) + Decimal(delta)
            record[field] = str(new_value)
            self._execute(table, "UPDATE {table} SET data = ?, updated_at = ? WHERE id = ?", (
                json.dumps(record, default=str), datetime.now(timezone.utc).isoformat(), record_id
            )).close()
            return new_value

    def clear_table(self, table: str) -> None:
        with self._lock:
            self._execute(table, "DELETE FROM {table}").close()
            self._commit_unless_in_transaction()

    def begin_transaction(self) -> None:
        """Open (or join) a unit of work"""
        self._lock.acquire()
        if self._depth == 0:
            try:
                self._begin()
            except Exception:
                self._lock.release()
                raise
        self._depth += 1

    def commit(self) -> None:
        """
        Close one level of the unit of work

        A failed outermost commit rolls the unit back before the error
        propagates, so nothing it wrote can be persisted by a later statement.
        """
        if self._depth == 0:
            return
        try:
            if self._depth == 1:
                try:
                    self._connection.commit()
                except Exception:
                    self._discard()
                    raise
        finally:
            self._depth -= 1
            self._lock.release()

    def rollback(self) -> None:
        """Discard the whole unit of work, even from a nested level"""
        if self._depth == 0:
            return
        try:
            self._discard()
        finally:
            self._depth -= 1
            self._lock.release()

    def _discard(self) -> None:
        # Tables created inside the unit are rolled back as well
        self._tables.clear()
        self._connection.rollback()

    def close(self) -> None:
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


class SQLiteStorage(_SQLStorage):
    """SQLite storage implementation for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        super().__init__()

    def _connect(self):
        # Autocommit driver mode: units of work issue their own BEGIN
        connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
        connection.row_factory = sqlite3.Row
        if self.db_path != ":memory:":
            connection.execute("PRAGMA journal_mode = WAL")
            connection.execute("PRAGMA synchronous = NORMAL")
        return connection

    def _begin(self) -> None:
        # Take the write lock up front so reads inside the unit cannot go stale
        # against another connection to the same file
        self._connection.execute("BEGIN IMMEDIATE")

    def _schema(self, table: str) -> List[str]:
        return [
            f"""CREATE TABLE IF NOT EXISTS {table} (
                id TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )""",
            f"CREATE INDEX IF NOT EXISTS idx_{table}_created_at ON {table}(created_at)",
        ]


class PostgreSQLStorage(_SQLStorage):
    """
    PostgreSQL storage backend with ACID transaction support

    Filters use JSONB containment and ``increment`` is a single UPDATE with
    NUMERIC arithmetic, so concurrent processes cannot lose a delta.
    """

    placeholder = "%s"

    def __init__(self, connection_string: str):
        try:
            import psycopg2
            import psycopg2.extras
        except ImportError:
            raise ImportError("psycopg2 is required for PostgreSQL storage. Install with: pip install psycopg2-binary")
        self.psycopg2 = psycopg2
        self.connection_string = connection_string
        super().__init__()

    def _connect(self):
        connection = self.psycopg2.connect(
            self.connection_string,
            cursor_factory=self.psycopg2.extras.RealDictCursor
        )
        connection.autocommit = False
        return connection

    def _schema(self, table: str) -> List[str]:
        return [
            f"""CREATE TABLE IF NOT EXISTS {table} (
                id TEXT PRIMARY KEY,
                data JSONB NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )""",
            f"CREATE INDEX IF NOT EXISTS idx_{table}_data ON {table} USING gin(data)",
            f"CREATE INDEX IF NOT EXISTS idx_{table}_created_at ON {table}(created_at)",
        ]

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        with self._lock:
            rows = self._execute(
                table,
                "SELECT data FROM {table} WHERE data @> ?::jsonb ORDER BY created_at",
                (json.dumps(filters, default=str),)
            ).fetchall()
            return [self._decode(row['data']) for row in rows]

    def increment(self, table: str, record_id: str, field: str, delta: Decimal) -> Decimal:
        with self._lock:
            row = self._execute(table, """
                UPDATE {table}
                SET data = jsonb_set(
                        data, ?,
                        to_jsonb((COALESCE((data ->> ?)::numeric, 0) + ?::numeric)::text)
                    ),
                    updated_at = NOW()
                WHERE id = ?
                RETURNING data ->> ? AS value
            """, ([field], field, str(delta), record_id, field)).fetchone()
            self._commit_unless_in_transaction()
            if row is None:
                raise KeyError(f"{table}/{record_id}")
            return Decimal(row['value'])


def create_storage(database_url: str) -> StorageInterface:
    """
    Build a storage backend from a URL

    Supported schemes: ``memory://``, ``sqlite:///<path>`` and
    ``postgresql://...`` (or ``postgres://...``).
    """
    if database_url.startswith("memory://"):
        return InMemoryStorage()
    if database_url.startswith("sqlite:///"):
        return SQLiteStorage(database_url[len("sqlite:///"):] or ":memory:")
    if database_url.startswith(("postgresql://", "postgres://")):
        return PostgreSQLStorage(database_url)
    raise ValueError(f"Unsupported database URL: {database_url}")
