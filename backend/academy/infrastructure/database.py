"""Database Session Manager — async engine, per-request sessions, error translation.

Invariants:
    - A session that raises is rolled back before the error leaves the block;
      row locks taken with FOR UPDATE never outlive a failed command
    - Domain errors (AcademyError) pass through unchanged
    - Every other SQLAlchemy failure becomes DatabaseError; only connection loss,
      serialization failures, deadlocks and pool checkout timeouts are flagged
      transient

Design Decisions:
    - Module-level db_manager set by init_db() from the lifespan; tests swap it
    - Pool sizing only for server databases; SQLite uses SQLAlchemy's default pool
    - expire_on_commit=False: services return ORM rows after commit without reloads
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import (
    DBAPIError, IntegrityError, OperationalError, SQLAlchemyError,
    TimeoutError as PoolTimeoutError,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from academy.core.errors import AcademyError, DatabaseError

logger = logging.getLogger(__name__)

# serialization_failure, deadlock_detected: two workers raced on FOR UPDATE rows
_TRANSIENT_SQLSTATES = frozenset({"40001", "40P01"})


def translate_db_error(exc: SQLAlchemyError) -> DatabaseError:
    """Map a SQLAlchemy failure onto the storage error the retry layer understands."""
    if isinstance(exc, IntegrityError):
        return DatabaseError("integrity constraint violated", "commit")
    if isinstance(exc, PoolTimeoutError):
        return DatabaseError("connection pool exhausted", "checkout", transient=True)
    if isinstance(exc, OperationalError):
        return DatabaseError("connection or operational error", "execute", transient=True)
    if isinstance(exc, DBAPIError):
        sqlstate = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
        if sqlstate in _TRANSIENT_SQLSTATES:
            return DatabaseError("concurrent update conflict", "commit", transient=True)
        return DatabaseError("database driver error", "query")
    return DatabaseError("database operation failed", "unknown")


class DatabaseSessionManager:
    """Owns the engine; hands out sessions that roll back on failure."""

    def __init__(
        self, database_url: str, pool_size: int = 20, max_overflow: int = 10,
    ):
        options = {"pool_pre_ping": True}
        if not database_url.startswith("sqlite"):
            options.update(pool_size=pool_size, max_overflow=max_overflow, pool_recycle=3600)
        self.engine = create_async_engine(database_url, **options)
        self._session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        session = self._session_factory()
        try:
            yield session
        except AcademyError:
            await session.rollback()
            raise
        except SQLAlchemyError as e:
            await session.rollback()
            error = translate_db_error(e)
            logger.error(
                f"Storage failure ({type(e).__name__}): {error.message}",
                extra={"operation": error.operation},
            )
            raise error from e
        finally:
            await session.close()

    async def health_check(self) -> bool:
        """SELECT 1 through a pooled connection (readiness check)."""
        try:
            async with self.session() as db:
                await db.execute(text("SELECT 1"))
        except (DatabaseError, OSError) as e:
            logger.error(f"Database health check failed: {e}")
            return False
        return True

    async def dispose(self) -> None:
        await self.engine.dispose()


db_manager: DatabaseSessionManager | None = None


def init_db(database_url: str, **kwargs) -> DatabaseSessionManager:
    global db_manager
    db_manager = DatabaseSessionManager(database_url, **kwargs)
    return db_manager


def get_db_manager() -> DatabaseSessionManager:
    if not db_manager:
        raise RuntimeError("Database not initialized")
    return db_manager


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request."""
    async with get_db_manager().session() as session:
        yield session
