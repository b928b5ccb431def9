"""
Durable key-value storage used by the complaint store.

The store only needs two operations, `get(key)` and `set(key, text)`, so any
backend providing them can hold the serialized complaint collection. The SQL
backend keeps one row per key in the `kv_entries` table; the in-memory backend
is used for tests and as a fallback when the database cannot be initialized.
"""

from typing import Dict, Optional, Protocol
import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from .config import Settings
from .database import build_engine, build_session_factory, init_db
from .models import StorageEntry, utcnow

logger = logging.getLogger("water_tracker.storage")


class KeyValueStorage(Protocol):
    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str) -> None:
        ...


class MemoryKeyValueStorage:
    """Process-local storage; contents vanish with the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value


class SQLKeyValueStorage:
    """Key-value storage backed by the `kv_entries` table."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._session_factory = build_session_factory(engine)

    async def initialize(self) -> None:
        await init_db(self.engine)

    async def get(self, key: str) -> Optional[str]:
        async with self._session_factory() as session:
            entry = await session.get(StorageEntry, key)
            return entry.value if entry else None

    async def set(self, key: str, value: str) -> None:
        async with self._session_factory() as session:
            entry = await session.get(StorageEntry, key)
            if entry is None:
                entry = StorageEntry(key=key, value=value)
            else:
                entry.value = value
                entry.updated_at = utcnow()
            session.add(entry)
            await session.commit()

    async def close(self) -> None:
        await self.engine.dispose()


async def build_storage(settings: Settings) -> KeyValueStorage:
    """Create the configured backend, falling back to memory if it cannot start."""
    if settings.storage_backend == "memory":
        logger.info("Storage initialized (backend=memory)")
        return MemoryKeyValueStorage()

    if settings.storage_backend != "sql":
        logger.warning(
            "Unknown STORAGE_BACKEND %r; using the SQL backend", settings.storage_backend
        )

    storage = SQLKeyValueStorage(build_engine(settings.database_url))
    try:
        await storage.initialize()
    except Exception as exc:  # pragma: no cover - initialization failure
        logger.error(
            "Failed to initialize SQL storage, falling back to in-memory storage: %s", exc
        )
        await storage.close()
        return MemoryKeyValueStorage()

    logger.info("Storage initialized (backend=sql)")
    return storage


__all__ = [
    "KeyValueStorage",
    "MemoryKeyValueStorage",
    "SQLKeyValueStorage",
    "build_storage",
]
