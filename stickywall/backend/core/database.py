"""
Database Configuration.

SQLAlchemy async engine and session management.
Uses lazy initialization to prevent import-time failures when .env is not configured.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from stickywall.backend.core.logging import get_logger

logger = get_logger(__name__)

_engine: Any = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def _create_engine() -> Any:
    """Create async SQLAlchemy engine."""
    from stickywall.backend.core.config import get_app_config, get_database_url

    db_config = get_app_config().database
    url = get_database_url()

    engine_kwargs: dict[str, Any] = {"echo": db_config.echo}
    if not url.startswith("sqlite"):
        engine_kwargs.update(
            pool_size=db_config.pool_size,
            max_overflow=db_config.max_overflow,
            pool_timeout=db_config.pool_timeout,
            pool_recycle=db_config.pool_recycle,
            echo_pool=db_config.echo_pool,
        )

    engine = create_async_engine(url, **engine_kwargs)
    if url.startswith("sqlite"):
        enable_sqlite_savepoints(engine)
    logger.debug("Database engine created", extra={"dialect": engine.dialect.name})
    return engine


def enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """
    Let SQLite honour SAVEPOINT (session.begin_nested).

    The sqlite driver issues its own BEGIN lazily, which breaks nested
    transactions. Disable that and emit BEGIN when SQLAlchemy starts one.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def get_engine() -> Any:
    """Get the database engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = _create_engine()
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the session factory, creating it on first use."""
    global _async_session_factory
    if _async_session_factory is None:
        _async_session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _async_session_factory


async def create_tables() -> None:
    """Create all tables that do not exist yet."""
    from stickywall.backend.models import Base

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")


async def dispose_engine() -> None:
    """Dispose of the engine and reset lazy state."""
    global _engine, _async_session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("Database engine disposed")
    _engine = None
    _async_session_factory = None


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides a database session.

    Usage in endpoints:
        @router.get("/notes")
        async def list_notes(db: AsyncSession = Depends(get_db_session)):
            ...
    """
    session_factory = get_session_factory()
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
