"""
Async SQLAlchemy engine and session factory.

Uses ``asyncpg`` as the PostgreSQL driver for non-blocking I/O.  SQLite
(``aiosqlite``, used by the test-suite and local runs) gets ``BEGIN
IMMEDIATE`` transactions so concurrent writers queue on the database lock
instead of failing mid-transaction.
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from campusride.config import settings


def configure_sqlite(engine: AsyncEngine) -> None:
    """Let SQLAlchemy own transaction start and take the write lock up front."""

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str, **kwargs) -> AsyncEngine:
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"timeout": 30})
        engine = create_async_engine(url, echo=False, **kwargs)
        configure_sqlite(engine)
        return engine
    return create_async_engine(
        url,
        echo=False,
        pool_size=20,
        max_overflow=10,
        **kwargs,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.database_url)

async_session_factory = build_session_factory(engine)


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""
