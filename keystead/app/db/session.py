"""
Async database session management for SQLAlchemy.

Production considerations:
- Uses asyncpg for PostgreSQL
- Uses aiosqlite for SQLite (local development and tests)
- Pool settings differ for SQLite (no pooling) vs PostgreSQL

Every write in the protocol goes through `commit_or_raise`, which bounds the
commit with DB_OPERATION_TIMEOUT_SECONDS and turns driver failures into
domain errors after rolling back, so a cancelled or failed request never
leaves half-applied state behind.
"""
import asyncio
import logging
from typing import AsyncGenerator, Optional

from fastapi import Request
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, AsyncAdaptedQueuePool

from keystead.app.core.config import Settings, settings
from keystead.app.core.exceptions import ConflictError, TransientFailureError

logger = logging.getLogger(__name__)

# Key in AsyncSession.info holding the commit timeout of that session
OPERATION_TIMEOUT_KEY = "operation_timeout"


def create_engine_for(config: Settings) -> AsyncEngine:
    """
    Create and configure the async SQLAlchemy engine.

    SQLite (local development):
    - NullPool, new connection per checkout
    - check_same_thread=False for async compatibility

    PostgreSQL (production):
    - AsyncAdaptedQueuePool with pre-ping and periodic recycling
    """
    if config.is_sqlite:
        return create_async_engine(
            config.DATABASE_URL,
            echo=config.DATABASE_ECHO,
            poolclass=NullPool,
            connect_args={"check_same_thread": False},
        )

    return create_async_engine(
        config.DATABASE_URL,
        echo=config.DATABASE_ECHO,
        poolclass=AsyncAdaptedQueuePool,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_recycle=300,
        # asyncpg: fail a statement instead of waiting forever on a lock
        connect_args={"command_timeout": config.DB_OPERATION_TIMEOUT_SECONDS},
    )


def create_session_factory(
    bind: AsyncEngine,
    config: Settings,
) -> async_sessionmaker[AsyncSession]:
    """
    expire_on_commit=False: attributes stay readable after commit
    autoflush=False: explicit flush control

    Sessions carry their commit timeout in `info` so `commit_or_raise`
    honours the settings the factory was built from.
    """
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
        info={OPERATION_TIMEOUT_KEY: config.DB_OPERATION_TIMEOUT_SECONDS},
    )


# ─────────────────────────────────────────────────────────────────────────────
# Default engine and session factory, built from the environment settings.
# create_app() builds its own pair when handed a different Settings object.
# ─────────────────────────────────────────────────────────────────────────────
engine: AsyncEngine = create_engine_for(settings)

AsyncSessionLocal: async_sessionmaker[AsyncSession] = create_session_factory(engine, settings)


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency generator for database sessions.

    Usage in FastAPI endpoints:
        @router.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db)):
            ...

    Sessions come from the factory on `app.state`, falling back to the
    module default. This does NOT auto-commit; services commit through
    `commit_or_raise`. Anything left uncommitted is rolled back when the
    session closes.
    """
    factory = getattr(request.app.state, "session_factory", AsyncSessionLocal)
    async with factory() as session:
        yield session


async def commit_or_raise(
    db: AsyncSession,
    timeout: Optional[float] = None,
) -> None:
    """
    Commit the current transaction as one unit.

    The timeout defaults to the one stored on the session by its factory.

    Raises:
        ConflictError: a unique/foreign-key constraint rejected the write
        TransientFailureError: the store timed out or refused the write
    """
    if timeout is None:
        timeout = db.info.get(OPERATION_TIMEOUT_KEY, settings.DB_OPERATION_TIMEOUT_SECONDS)

    try:
        await asyncio.wait_for(db.commit(), timeout=timeout)
    except IntegrityError as exc:
        await db.rollback()
        logger.warning("Write rejected by constraint: %s", exc.orig)
        raise ConflictError("Conflicting write, resource already exists") from exc
    except asyncio.TimeoutError as exc:
        await db.rollback()
        logger.error("Commit exceeded %.1fs", timeout)
        raise TransientFailureError() from exc
    except (OperationalError, DBAPIError) as exc:
        await db.rollback()
        logger.error("Commit failed: %s", exc.orig)
        raise TransientFailureError() from exc
