"""Key-value stores for persisting cache entries and rate-limit state."""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import aiosqlite

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Minimal async key-value interface.

    Values must be JSON-serializable.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the stored value or None."""

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store a value under key."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove key. Returns True if it existed."""

    @abstractmethod
    async def keys(self) -> List[str]:
        """List stored keys."""

    async def clear(self) -> int:
        """Remove every key. Returns the number removed."""
        removed = 0
        for key in await self.keys():
            if await self.delete(key):
                removed += 1
        return removed


class MemoryStore(KeyValueStore):
    """Process-local store. Values are JSON round-tripped like the durable stores."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def keys(self) -> List[str]:
        return list(self._data.keys())


class JsonFileStore(KeyValueStore):
    """Store backed by a single JSON document on disk."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring corrupt store file {self.path}: {e}")
            return {}

    def _write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + '.tmp')
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f)
        tmp_path.replace(self.path)

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            return self._read().get(key)

    async def set(self, key: str, value: Any) -> None:
        async with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            data = self._read()
            if key not in data:
                return False
            del data[key]
            self._write(data)
            return True

    async def keys(self) -> List[str]:
        async with self._lock:
            return list(self._read().keys())


class SqliteStore(KeyValueStore):
    """Store backed by a ``kv_entries`` table in an SQLite database."""

    def __init__(self, db_path: Union[str, Path] = "pi_dashboard.db"):
        self.db_path = Path(db_path)
        self._initialized = False

    async def initialize(self):
        """Create the database file and table."""
        if self._initialized:
            return

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS kv_entries (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            await db.commit()

        self._initialized = True
        logger.info(f"Key-value store initialized at {self.db_path}")

    async def get(self, key: str) -> Optional[Any]:
        await self.initialize()
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute("SELECT value FROM kv_entries WHERE key = ?", (key,)) as cursor:
                row = await cursor.fetchone()
        return json.loads(row[0]) if row else None

    async def set(self, key: str, value: Any) -> None:
        await self.initialize()
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("""
                INSERT INTO kv_entries (key, value, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                               updated_at = CURRENT_TIMESTAMP
            """, (key, json.dumps(value)))
            await db.commit()

    async def delete(self, key: str) -> bool:
        await self.initialize()
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("DELETE FROM kv_entries WHERE key = ?", (key,))
            await db.commit()
            return cursor.rowcount > 0

    async def keys(self) -> List[str]:
        await self.initialize()
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute("SELECT key FROM kv_entries ORDER BY key") as cursor:
                rows = await cursor.fetchall()
        return [row[0] for row in rows]


def create_store(config: Optional[Dict[str, Any]] = None) -> KeyValueStore:
    """Build a store from the ``storage`` configuration section."""
    config = config or {}
    backend = config.get('backend', 'memory')

    if backend == 'memory':
        return MemoryStore()
    if backend == 'json':
        return JsonFileStore(config.get('path', '.pi_dashboard/state.json'))
    if backend == 'sqlite':
        return SqliteStore(config.get('path', '.pi_dashboard/state.db'))

    raise ValueError(f"Unknown storage backend: {backend}")
