from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from config import database_settings
from errors import PersistenceError
from logger_config import logger


class DatabaseSessionManager:
    def __init__(self, host: str, engine_kwargs: Optional[dict[str, Any]] = None):
        self._engine = create_async_engine(host, **(engine_kwargs or {}))
        self._sessionmaker = async_sessionmaker(autocommit=False, expire_on_commit=False, bind=self._engine)

    async def close(self):
        if self._engine is None:
            raise PersistenceError("Database session manager is closed")
        await self._engine.dispose()

        self._engine = None
        self._sessionmaker = None

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[AsyncConnection]:
        if self._engine is None:
            raise PersistenceError("Database session manager is closed")

        async with self._engine.begin() as connection:
            try:
                yield connection
            except Exception:
                await connection.rollback()
                raise

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        if self._sessionmaker is None:
            raise PersistenceError("Database session manager is closed")

        session = self._sessionmaker()
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def create_tables(self, Base):
        async with self.connect() as conn:
            await conn.run_sync(Base.metadata.create_all)


def get_database_url() -> str:
    return database_settings.DATABASE_URL


_session_manager: Optional[DatabaseSessionManager] = None


def get_session_manager() -> DatabaseSessionManager:
    global _session_manager
    if _session_manager is None:
        logger.info("Creating database session manager")
        _session_manager = DatabaseSessionManager(get_database_url(), {"echo": database_settings.ECHO})
    return _session_manager


def set_session_manager(manager: Optional[DatabaseSessionManager]):
    global _session_manager
    _session_manager = manager


async def get_db_session():
    async with get_session_manager().session() as session:
        yield session
