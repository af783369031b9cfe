"""Key/value persistence backends for engine state.

The integration logger, retry queue, sales store and client config store
all persist through this small interface, so the backing database can be
swapped without touching business logic:

- InMemoryStateStore: For tests and throwaway runs
- SQLiteStateStore: Durable storage shared by every process that opens the
  same database file (API server and Temporal worker)

Two shapes of data are supported:

- keyed values (``load``/``save``/``update``), one JSON document per key;
  ``update`` is an atomic read-modify-write
- append-only streams (``append``/``read_stream``), one row per item, so
  concurrent writers never overwrite each other's items
"""

import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

# Receives the current value (None if absent); returning None deletes the key
Updater = Callable[[Any], Any]


class StateStore(ABC):
    """Abstract base class for JSON state persistence."""

    @abstractmethod
    def load(self, key: str, default: Any = None) -> Any:
        """Load the JSON value stored under ``key``."""
        pass

    @abstractmethod
    def save(self, key: str, value: Any) -> None:
        """Persist a JSON-serializable value under ``key``."""
        pass

    @abstractmethod
    def update(self, key: str, fn: Updater) -> Any:
        """Atomically replace the value under ``key`` with ``fn(current)``.

        ``fn`` runs while the store is locked and must not call back into it.

        Returns:
            The value written (None if the key was deleted)
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete ``key``. Returns True if it existed."""
        pass

    @abstractmethod
    def keys(self, prefix: str = "") -> List[str]:
        """List stored keys starting with ``prefix``."""
        pass

    @abstractmethod
    def load_prefix(self, prefix: str) -> Dict[str, Any]:
        """Load every value whose key starts with ``prefix``, ordered by key."""
        pass

    @abstractmethod
    def append(self, stream: str, value: Any, tag: Optional[str] = None, max_items: Optional[int] = None) -> None:
        """Append an item to ``stream``, keeping at most the newest ``max_items``."""
        pass

    @abstractmethod
    def read_stream(self, stream: str, tag: Optional[str] = None, limit: Optional[int] = None) -> List[Any]:
        """Items of ``stream`` oldest first, optionally only the newest ``limit``."""
        pass

    @abstractmethod
    def clear_stream(self, stream: str, tag: Optional[str] = None) -> int:
        """Delete items of ``stream`` (only those with ``tag`` if given). Returns the count."""
        pass


class InMemoryStateStore(StateStore):
    """In-memory state store.

    Values are round-tripped through JSON so callers never share mutable
    state with the store, same as with the SQLite backend.
    """

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._streams: Dict[str, List[Tuple[Optional[str], str]]] = {}
        self._lock = threading.Lock()

    def load(self, key: str, default: Any = None) -> Any:
        with self._lock:
            raw = self._data.get(key)
        if raw is None:
            return default
        return json.loads(raw)

    def save(self, key: str, value: Any) -> None:
        raw = json.dumps(value, default=str)
        with self._lock:
            self._data[key] = raw

    def update(self, key: str, fn: Updater) -> Any:
        with self._lock:
            raw = self._data.get(key)
            value = fn(json.loads(raw) if raw is not None else None)
            if value is None:
                self._data.pop(key, None)
                return None
            raw = json.dumps(value, default=str)
            self._data[key] = raw
        return json.loads(raw)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def keys(self, prefix: str = "") -> List[str]:
        with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))

    def load_prefix(self, prefix: str) -> Dict[str, Any]:
        with self._lock:
            items = sorted((k, v) for k, v in self._data.items() if k.startswith(prefix))
        return {k: json.loads(v) for k, v in items}

    def append(self, stream: str, value: Any, tag: Optional[str] = None, max_items: Optional[int] = None) -> None:
        raw = json.dumps(value, default=str)
        with self._lock:
            items = self._streams.setdefault(stream, [])
            items.append((tag, raw))
            if max_items is not None and len(items) > max_items:
                del items[: len(items) - max_items]

    def read_stream(self, stream: str, tag: Optional[str] = None, limit: Optional[int] = None) -> List[Any]:
        with self._lock:
            items = [raw for item_tag, raw in self._streams.get(stream, []) if tag is None or item_tag == tag]
        if limit:
            items = items[-limit:]
        return [json.loads(raw) for raw in items]

    def clear_stream(self, stream: str, tag: Optional[str] = None) -> int:
        with self._lock:
            items = self._streams.get(stream, [])
            kept = [] if tag is None else [item for item in items if item[0] != tag]
            self._streams[stream] = kept
            return len(items) - len(kept)


class SQLiteStateStore(StateStore):
    """SQLite-backed state store.

    Opens a connection per operation; writes are committed immediately so
    state survives a process restart and is visible to other processes on
    the same file. ``update`` and ``append`` run inside ``BEGIN IMMEDIATE``
    transactions, which serialize writers across processes.
    """

    BUSY_TIMEOUT_SECONDS = 30

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path), timeout=self.BUSY_TIMEOUT_SECONDS)

    def _init_db(self) -> None:
        conn = self._connect()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_state (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_stream (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    stream TEXT NOT NULL,
                    tag TEXT,
                    value TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_kv_stream_tag ON kv_stream (stream, tag, seq)")
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _like_prefix(prefix: str) -> str:
        return prefix.replace("\\", "\\\\").replace("%", r"\%").replace("_", r"\_") + "%"

    def load(self, key: str, default: Any = None) -> Any:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT value FROM kv_state WHERE key = ?", (key,)
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return default
        return json.loads(row[0])

    def save(self, key: str, value: Any) -> None:
        now = datetime.now(timezone.utc).isoformat()
        conn = self._connect()
        try:
            conn.execute(
                "INSERT OR REPLACE INTO kv_state (key, value, updated_at) VALUES (?, ?, ?)",
                (key, json.dumps(value, default=str), now),
            )
            conn.commit()
        finally:
            conn.close()

    def update(self, key: str, fn: Updater) -> Any:
        conn = self._connect()
        conn.isolation_level = None
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute("SELECT value FROM kv_state WHERE key = ?", (key,)).fetchone()
                value = fn(json.loads(row[0]) if row is not None else None)
                if value is None:
                    conn.execute("DELETE FROM kv_state WHERE key = ?", (key,))
                    raw = None
                else:
                    raw = json.dumps(value, default=str)
                    conn.execute(
                        "INSERT OR REPLACE INTO kv_state (key, value, updated_at) VALUES (?, ?, ?)",
                        (key, raw, datetime.now(timezone.utc).isoformat()),
                    )
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()
        return json.loads(raw) if raw is not None else None

    def delete(self, key: str) -> bool:
        conn = self._connect()
        try:
            cursor = conn.execute("DELETE FROM kv_state WHERE key = ?", (key,))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def keys(self, prefix: str = "") -> List[str]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT key FROM kv_state WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
                (self._like_prefix(prefix),),
            ).fetchall()
        finally:
            conn.close()
        return [row[0] for row in rows]

    def load_prefix(self, prefix: str) -> Dict[str, Any]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT key, value FROM kv_state WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
                (self._like_prefix(prefix),),
            ).fetchall()
        finally:
            conn.close()
        return {key: json.loads(value) for key, value in rows}

    def append(self, stream: str, value: Any, tag: Optional[str] = None, max_items: Optional[int] = None) -> None:
        now = datetime.now(timezone.utc).isoformat()
        conn = self._connect()
        conn.isolation_level = None
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                conn.execute(
                    "INSERT INTO kv_stream (stream, tag, value, created_at) VALUES (?, ?, ?, ?)",
                    (stream, tag, json.dumps(value, default=str), now),
                )
                if max_items is not None:
                    # Everything at or below the first seq past the newest max_items goes
                    conn.execute(
                        """
                        DELETE FROM kv_stream WHERE stream = ? AND seq <= (
                            SELECT seq FROM kv_stream WHERE stream = ?
                            ORDER BY seq DESC LIMIT 1 OFFSET ?
                        )
                        """,
                        (stream, stream, max_items),
                    )
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    def read_stream(self, stream: str, tag: Optional[str] = None, limit: Optional[int] = None) -> List[Any]:
        query = "SELECT value FROM kv_stream WHERE stream = ?"
        params: List[Any] = [stream]
        if tag is not None:
            query += " AND tag = ?"
            params.append(tag)
        query += " ORDER BY seq DESC LIMIT ?"
        params.append(limit if limit else -1)

        conn = self._connect()
        try:
            rows = conn.execute(query, params).fetchall()
        finally:
            conn.close()
        return [json.loads(row[0]) for row in reversed(rows)]

    def clear_stream(self, stream: str, tag: Optional[str] = None) -> int:
        conn = self._connect()
        try:
            if tag is None:
                cursor = conn.execute("DELETE FROM kv_stream WHERE stream = ?", (stream,))
            else:
                cursor = conn.execute("DELETE FROM kv_stream WHERE stream = ? AND tag = ?", (stream, tag))
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()


def create_state_store(db_path: Optional[Union[str, Path]] = None) -> StateStore:
    """Create a SQLite store for ``db_path``, or an in-memory one if None."""
    if db_path is None or str(db_path) == ":memory:":
        return InMemoryStateStore()
    return SQLiteStateStore(db_path)
