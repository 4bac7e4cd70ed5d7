"""SQLite storage bootstrap for the league bot.

One engine serves every guild. Callers open a unit of work with::

    async with get_session(engine) as session:
        repo = Repository(session)
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from weakref import WeakKeyDictionary

from sqlalchemy import Column, event, inspect, text
from sqlalchemy.engine import Connection, Dialect
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from dynasty.db.models import Base

logger = logging.getLogger(__name__)

BUSY_TIMEOUT_SECONDS = 15

_CONNECT_PRAGMAS = (
    "journal_mode=WAL",
    "synchronous=NORMAL",
    f"busy_timeout={BUSY_TIMEOUT_SECONDS * 1000}",
    "foreign_keys=ON",
)


def create_engine(database_url: str) -> AsyncEngine:
    """Build the async engine and apply connection pragmas on every new connection.

    Slash commands and the offer-expiry sweep write to the same file, so each
    connection runs in WAL mode and waits on a busy database instead of failing.
    """
    engine = create_async_engine(
        database_url, echo=False, connect_args={"timeout": BUSY_TIMEOUT_SECONDS}
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_conn: object, _record: object) -> None:
        cursor = dbapi_conn.cursor()  # type: ignore[attr-defined]
        try:
            for pragma in _CONNECT_PRAGMAS:
                cursor.execute(f"PRAGMA {pragma}")
        finally:
            cursor.close()

    return engine


_factories: WeakKeyDictionary[object, async_sessionmaker[AsyncSession]] = WeakKeyDictionary()


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory for *engine*, built on first use and reused afterwards."""
    factory = _factories.get(engine.sync_engine)
    if factory is None:
        factory = async_sessionmaker(engine, expire_on_commit=False)
        _factories[engine.sync_engine] = factory
    return factory


@asynccontextmanager
async def get_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """One unit of work: committed when the block exits cleanly, rolled back otherwise."""
    async with create_session_factory(engine)() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        await session.commit()


async def create_tables(engine: AsyncEngine) -> int:
    """Create any missing tables and backfill missing columns.

    Returns how many columns were added to tables that already existed.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        return await conn.run_sync(_add_missing_columns)


def _default_literal(column: Column) -> str | None:
    """SQL literal for a plain Python default, or None for callables and no default."""
    default = column.default
    if default is None or not default.is_scalar:
        return None
    value = default.arg
    if isinstance(value, bool):
        return str(int(value))
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        return "'" + value.replace("'", "''") + "'"
    return None


def _column_ddl(column: Column, dialect: Dialect) -> str | None:
    """ADD COLUMN clause for *column*, or None when existing rows could not satisfy it."""
    ddl = f"{column.name} {column.type.compile(dialect=dialect)}"
    literal = _default_literal(column)
    if literal is not None:
        return f"{ddl} DEFAULT {literal}"
    return ddl if column.nullable else None


def _add_missing_columns(conn: Connection) -> int:
    """Add model columns absent from tables created by an older release."""
    inspector = inspect(conn)
    present_tables = set(inspector.get_table_names())
    added = 0
    for table in Base.metadata.sorted_tables:
        if table.name not in present_tables:
            continue
        live = {col["name"] for col in inspector.get_columns(table.name)}
        for column in table.columns:
            if column.name in live:
                continue
            ddl = _column_ddl(column, conn.dialect)
            if ddl is None:
                logger.warning(
                    "schema_column_skipped table=%s column=%s reason=not_null_without_default",
                    table.name,
                    column.name,
                )
                continue
            conn.execute(text(f"ALTER TABLE {table.name} ADD COLUMN {ddl}"))
            logger.info("schema_column_added table=%s column=%s", table.name, column.name)
            added += 1
    return added
