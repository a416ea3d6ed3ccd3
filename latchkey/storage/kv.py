"""Key-value backends for user records.

Backends expose exactly ``get`` and ``put``. Neither offers transactions
or compare-and-swap: a read followed by a write is not atomic, and the
last ``put`` for a key wins.
"""

from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from latchkey.exceptions import StoreError
from latchkey.storage.models import KVEntry

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Minimal async key-value contract."""

    async def get(self, key: str) -> str | None: ...

    async def put(self, key: str, value: str) -> None: ...


class MemoryKeyValueStore:
    """Process-local dict store.

    Suitable for development and single-worker deployments; contents are
    lost on restart and invisible to other processes.
    """

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def put(self, key: str, value: str) -> None:
        self._data[key] = value

    def __len__(self) -> int:
        return len(self._data)


class SqlKeyValueStore:
    """Store backed by the ``kv_entry`` table.

    Args:
        session_factory: Async session factory bound to the database engine
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, key: str) -> str | None:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(KVEntry.value).where(KVEntry.key == key))
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Failed to read key %s: %s", key, e)
            raise StoreError(f"Failed to read key {key!r}", key=key) from e

    async def put(self, key: str, value: str) -> None:
        try:
            async with self._session_factory() as session:
                await session.merge(KVEntry(key=key, value=value))
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to write key %s: %s", key, e)
            raise StoreError(f"Failed to write key {key!r}", key=key) from e
