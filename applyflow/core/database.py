"""Database engine, session factory and declarative base"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from applyflow.core.config import settings


class Base(DeclarativeBase):
    """Declarative base for all ORM models"""


def _use_immediate_transactions(engine: AsyncEngine) -> None:
    """
    Make SQLite take the write lock when a transaction begins.

    pysqlite defers BEGIN until the first write, so two sessions that both read
    before updating can deadlock on lock promotion. With BEGIN IMMEDIATE the
    second writer waits on the busy timeout instead.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine(database_url: str = None, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for the given URL

    Args:
        database_url: SQLAlchemy URL (defaults to settings.DATABASE_URL)
        echo: Log emitted SQL

    Returns:
        Configured AsyncEngine
    """
    url = database_url or settings.DATABASE_URL

    if url.startswith("sqlite"):
        engine = create_async_engine(url, echo=echo, connect_args={"timeout": 30})
        _use_immediate_transactions(engine)
        return engine

    return create_async_engine(
        url,
        echo=echo,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to an engine"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = create_engine(echo=settings.DEBUG)
AsyncSessionLocal = create_session_factory(engine)
