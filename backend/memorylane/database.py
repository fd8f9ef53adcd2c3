"""
Memory Lane Backend — Database Engine & Session Management
===========================================================

What:  Async SQLAlchemy engine, session factory, transaction helper and the
       FastAPI session dependency.
How:   A `Database` object owns one engine (and its connection pool). It is
       constructed in the application lifespan, stored on `app.state`, and
       disposed at shutdown. Request handlers receive sessions through
       `get_db_session`, which reads the `Database` from the running app.
Who:   main.py (lifecycle), routes (dependency), services (unit_of_work).

Connection Pooling (PostgreSQL):
    pool_size / max_overflow come from settings.
    pool_pre_ping validates a pooled connection before handing it out.
    pool_recycle=3600 retires connections older than one hour.
    SQLite URLs use SQLAlchemy's default pool for the driver.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Shares one metadata object between the models, the Alembic environment
    and the test fixtures that build a schema with create_all().
    """
    pass


class Database:
    """
    Owns the async engine and the session factory.

    Lifecycle:
        db = Database(url, ...)      # at startup
        async with db.session() as s # per request
        await db.dispose()           # at shutdown
    """

    def __init__(
        self,
        url: str,
        *,
        pool_size: int = 10,
        max_overflow: int = 5,
        pool_pre_ping: bool = True,
        ssl: bool = False,
        echo: bool = False,
    ):
        self.url = make_url(url)
        engine_kwargs: Dict[str, Any] = {"echo": echo}

        self.dialect = self.url.get_backend_name()
        if self.dialect != "sqlite":
            engine_kwargs.update(
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_pre_ping=pool_pre_ping,
                pool_recycle=3600,
            )
            if ssl:
                # asyncpg takes the ssl flag as a connect() keyword
                engine_kwargs["connect_args"] = {"ssl": True}

        self.engine: AsyncEngine = create_async_engine(self.url, **engine_kwargs)

        # expire_on_commit=False: response models are built from ORM objects
        # after the transaction commits.
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        logger.info(
            "Database engine created (%s on %s)",
            self.dialect,
            self.url.render_as_string(hide_password=True),
        )

    @classmethod
    def from_settings(cls, settings) -> "Database":
        return cls(
            settings.database_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping,
            ssl=settings.database_ssl,
            echo=settings.log_level == "DEBUG",
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Yield a session and always close it.

        Closing returns the connection to the pool on every exit path,
        including exceptions raised by the caller. Anything left uncommitted
        is rolled back by close().
        """
        session = self.session_factory()
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def ping(self) -> None:
        """Execute SELECT 1; raises if the database is unreachable."""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def create_all(self) -> None:
        """Create every mapped table directly (tests and throwaway databases)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        """Close all pooled connections."""
        await self.engine.dispose()
        logger.info("Database engine disposed")


@asynccontextmanager
async def unit_of_work(session: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """
    Run a block of writes as one transaction.

    Commits after the block finishes without error; rolls back and re-raises
    on any exception, so a partially applied write is never visible.

    Example:
        async with unit_of_work(session):
            session.add(memory)
            await image_store.save(session, memory.id, data, mime)
    """
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise


# ── Request Dependency ────────────────────────────────────────────────────
async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    Reads the `Database` created by the lifespan from `request.app.state`.
    Services decide when to commit (see unit_of_work); this dependency only
    guarantees the session is closed and its connection returned to the pool.
    """
    database: Database = request.app.state.database
    async with database.session() as session:
        yield session
