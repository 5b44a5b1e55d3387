"""
Durable key-value stores backing the offline mutation queue.

The queue only needs get / list / put / delete / clear over string keys and
JSON string values. Two backends are provided:

- SqliteKeyValueStore: one sqlite file per user. A connection is opened per
  operation (no long-lived handle) and every operation commits on its own,
  in a worker thread so a busy file never blocks the event loop.
  If the file is corrupted or the table is missing, the file is deleted and
  recreated once. Any other failure (locked or busy database, I/O error,
  unopenable path) leaves the file alone and raises StorageDegraded; the
  queue decides how to degrade.
- MemoryKeyValueStore: process memory only, for tests and ephemeral sessions.
"""

import asyncio
import logging
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, Tuple, TypeVar

from quickentry.utils.errors import StorageDegraded

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TABLE = "mutation_queue"
_SCHEMA = f"""
CREATE TABLE IF NOT EXISTS {_TABLE} (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    inserted_at INTEGER NOT NULL DEFAULT (CAST(strftime('%s', 'now') AS INTEGER))
)
"""

# Messages sqlite uses for a damaged file; only these justify deleting it
_CORRUPTION_MESSAGES = (
    "file is not a database",
    "database disk image is malformed",
    "no such table",
)


def is_corruption(error: Exception) -> bool:
    """True when `error` means the file itself is unusable (not locked, not busy)."""
    if not isinstance(error, sqlite3.DatabaseError):
        return False
    message = str(error).lower()
    return any(marker in message for marker in _CORRUPTION_MESSAGES)


class KeyValueStore(Protocol):
    """Durable key-value store contract used by OfflineMutationQueue."""

    async def get(self, key: str) -> Optional[str]: ...

    async def list(self) -> List[Tuple[str, str]]: ...

    async def put(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def clear(self) -> None: ...


class SqliteKeyValueStore:
    """sqlite-backed store, opened per operation."""

    def __init__(self, path: str | Path, timeout: float = 5.0) -> None:
        self.path = Path(path)
        self.timeout = timeout

    def _connect(self) -> sqlite3.Connection:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.path, timeout=self.timeout)
        try:
            conn.execute(f"PRAGMA busy_timeout={int(self.timeout * 1000)}")
            conn.execute(_SCHEMA)
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    def _recreate(self) -> None:
        for suffix in ("", "-wal", "-shm", "-journal"):
            candidate = Path(f"{self.path}{suffix}")
            if candidate.exists():
                candidate.unlink()

    def _execute(self, operation: Callable[[sqlite3.Connection], T]) -> T:
        with closing(self._connect()) as conn:
            with conn:
                return operation(conn)

    def _run(self, operation: Callable[[sqlite3.Connection], T]) -> T:
        """
        Run one operation in its own connection and transaction.

        Raises:
            StorageDegraded: If the store is locked, busy or otherwise
                unavailable, or still unusable after recreating a corrupted file.
        """
        try:
            return self._execute(operation)
        except (sqlite3.DatabaseError, OSError) as e:
            if not is_corruption(e):
                logger.warning(f"Queue store at {self.path} unavailable, leaving it intact: {e}")
                raise StorageDegraded(str(e)) from e
            logger.warning(f"Queue store at {self.path} is corrupted ({e}), recreating it")

        try:
            self._recreate()
            return self._execute(operation)
        except (sqlite3.DatabaseError, OSError) as e:
            logger.error(f"Queue store at {self.path} unusable after recreate: {e}")
            raise StorageDegraded(str(e)) from e

    async def _call(self, operation: Callable[[sqlite3.Connection], T]) -> T:
        return await asyncio.to_thread(self._run, operation)

    async def get(self, key: str) -> Optional[str]:
        def op(conn: sqlite3.Connection) -> Optional[str]:
            row = conn.execute(
                f"SELECT value FROM {_TABLE} WHERE key = ?", (key,)
            ).fetchone()
            return row[0] if row else None

        return await self._call(op)

    async def list(self) -> List[Tuple[str, str]]:
        def op(conn: sqlite3.Connection) -> List[Tuple[str, str]]:
            rows = conn.execute(
                f"SELECT key, value FROM {_TABLE} ORDER BY inserted_at, rowid"
            ).fetchall()
            return [(row[0], row[1]) for row in rows]

        return await self._call(op)

    async def put(self, key: str, value: str) -> None:
        def op(conn: sqlite3.Connection) -> None:
            conn.execute(
                f"INSERT INTO {_TABLE} (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )

        await self._call(op)

    async def delete(self, key: str) -> None:
        await self._call(lambda conn: conn.execute(f"DELETE FROM {_TABLE} WHERE key = ?", (key,)))

    async def clear(self) -> None:
        await self._call(lambda conn: conn.execute(f"DELETE FROM {_TABLE}"))


class MemoryKeyValueStore:
    """In-memory store; insertion order is preserved."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def list(self) -> List[Tuple[str, str]]:
        return list(self._data.items())

    async def put(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def clear(self) -> None:
        self._data.clear()
