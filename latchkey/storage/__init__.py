"""Record store wiring.

Provides the async SQLAlchemy engine and session factory for the
database backend, and builds the configured ``UserRecordStore``.

Thread-safety: singleton access is protected by threading.RLock.
RLock (reentrant) is required because get_session_factory() calls
get_engine() while holding the lock.
"""

import threading

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from latchkey.settings import Settings, get_settings
from latchkey.storage.kv import KeyValueStore, MemoryKeyValueStore, SqlKeyValueStore
from latchkey.storage.models import Base
from latchkey.storage.user_records import UserRecordStore

# Module-level engine and session factory (initialized lazily)
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None
_init_lock = threading.RLock()


def get_engine(settings: Settings | None = None) -> AsyncEngine:
    """Get or create the async database engine.

    Args:
        settings: Optional settings override. Uses get_settings() if not provided.

    Returns:
        Configured AsyncEngine instance.
    """
    global _engine

    if _engine is None:
        with _init_lock:
            if _engine is None:
                settings = settings or get_settings()
                _engine = create_async_engine(
                    settings.database_url,
                    pool_size=settings.database_pool_size,
                    max_overflow=settings.database_max_overflow,
                    pool_timeout=settings.database_pool_timeout,
                    pool_recycle=settings.database_pool_recycle,
                    pool_pre_ping=True,
                    echo=settings.debug,
                )

    return _engine


def get_session_factory(settings: Settings | None = None) -> async_sessionmaker[AsyncSession]:
    """Get or create the async session factory.

    Args:
        settings: Optional settings override. Uses get_settings() if not provided.

    Returns:
        Configured async_sessionmaker instance.
    """
    global _session_factory

    if _session_factory is None:
        with _init_lock:
            if _session_factory is None:
                engine = get_engine(settings)
                _session_factory = async_sessionmaker(
                    bind=engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                    autoflush=False,
                )

    return _session_factory


def build_kv_store(settings: Settings) -> KeyValueStore:
    """Create the key-value backend selected by ``store_backend``."""
    if settings.store_backend == "database":
        return SqlKeyValueStore(get_session_factory(settings))
    return MemoryKeyValueStore()


def build_record_store(settings: Settings) -> UserRecordStore:
    """Create the user record store for the configured backend."""
    return UserRecordStore(build_kv_store(settings), key_prefix=settings.store_key_prefix)


async def init_db(settings: Settings | None = None) -> None:
    """Create the ``kv_entry`` table if it does not exist.

    Call this at application startup when the database backend is selected.
    """
    engine = get_engine(settings)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections.

    Thread-safe: Acquires lock before modifying singletons.
    """
    global _engine, _session_factory

    with _init_lock:
        if _engine is not None:
            await _engine.dispose()
            _engine = None
            _session_factory = None


# Public API
__all__ = [
    "build_kv_store",
    "build_record_store",
    "close_db",
    "get_engine",
    "get_session_factory",
    "init_db",
]
