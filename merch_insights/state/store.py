"""
Key-Value Store

Persistence for JSON documents keyed by name. The database implementation
backs production; the in-memory one backs tests and single-process use.
"""

import copy
from abc import ABC, abstractmethod
from typing import Any, AsyncContextManager, Callable, Dict, Optional

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from merch_insights.database.models import AppStateEntry

logger = structlog.get_logger(__name__)


class KeyValueStore(ABC):
    """Async JSON document store"""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        ...


class MemoryKeyValueStore(KeyValueStore):
    """Process-local store; values are deep-copied in and out"""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = copy.deepcopy(initial or {})

    async def get(self, key: str) -> Optional[Any]:
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None


class DatabaseKeyValueStore(KeyValueStore):
    """
    Store backed by the ``app_state`` table.

    Example:
        store = DatabaseKeyValueStore(get_db)
        await store.set("settings", {"targetStockDays": 30})
    """

    def __init__(self, session_scope: Callable[[], AsyncContextManager[AsyncSession]]):
        self._session_scope = session_scope

    async def get(self, key: str) -> Optional[Any]:
        async with self._session_scope() as db:
            entry = await db.get(AppStateEntry, key)
            return entry.value if entry is not None else None

    async def set(self, key: str, value: Any) -> None:
        async with self._session_scope() as db:
            entry = await db.get(AppStateEntry, key)
            if entry is None:
                db.add(AppStateEntry(key=key, value=value))
            else:
                entry.value = value
        logger.debug("State entry saved", key=key)

    async def delete(self, key: str) -> bool:
        async with self._session_scope() as db:
            result = await db.execute(delete(AppStateEntry).where(AppStateEntry.key == key))
            return result.rowcount > 0
