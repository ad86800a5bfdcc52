"""Async SQLAlchemy engine, session factory, and declarative base."""

import uuid
from datetime import datetime

from sqlalchemy import event, func
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from studio_ledger import clock
from studio_ledger.config import settings


def _enable_sqlite_transactions(engine: AsyncEngine) -> None:
    """Let SQLite honour BEGIN/SAVEPOINT the way the unit of work expects.

    The sqlite3 driver manages transactions on its own and breaks SAVEPOINT
    semantics; we switch that off and emit BEGIN ourselves. WAL keeps a
    reader from blocking the writer that holds an entity lock.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # noqa: ARG001
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(url: str, **kwargs) -> AsyncEngine:
    """Create an async engine for ``url`` with backend-appropriate pooling."""
    if url.startswith("sqlite"):
        engine = create_async_engine(url, echo=settings.debug, **kwargs)
        _enable_sqlite_transactions(engine)
        return engine

    return create_async_engine(
        url,
        echo=settings.debug,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        **kwargs,
    )


engine = build_engine(settings.async_database_url)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def utc_timestamp() -> datetime:
    return clock.utcnow()


class TimestampMixin:
    """Mixin that adds created_at and updated_at columns.

    Values are stamped client-side so they are readable right after a flush
    without a round trip, and sort with sub-second precision on every backend.
    """

    created_at: Mapped[datetime] = mapped_column(default=utc_timestamp, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_timestamp,
        server_default=func.now(),
        onupdate=utc_timestamp,
    )


class UUIDPrimaryKeyMixin:
    """Mixin that adds a UUID primary key column."""

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async database session for FastAPI dependency injection.

    Engine services commit their own units of work; the final commit here
    flushes anything a read-only endpoint left pending.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
