"""
Database connection and session management.

PostgreSQL through asyncpg in production; SQLite through aiosqlite for local
development and the test suite.  Request handlers get a session from
``get_db``; background work (WebSocket writes, startup seeding) uses
``session_scope``.
"""
from contextlib import asynccontextmanager
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.engine import make_url
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
from typing import Any, AsyncGenerator, Dict
import logging

from lawmint.config import settings

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": False, "poolclass": NullPool}
    if make_url(url).get_backend_name() != "sqlite":
        options["pool_pre_ping"] = True
    return options


engine = create_async_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

# Base class for ORM models
Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency: one session per request, committed when the handler
    returns and rolled back when it raises (HTTPException included).

    Example:
        @router.get("/templates/global")
        async def list_global(db: AsyncSession = Depends(get_db)):
            result = await db.execute(select(Template))
            return result.scalars().all()
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.debug(f"Request session rolled back: {e}")
            raise


@asynccontextmanager
async def session_scope() -> AsyncGenerator[AsyncSession, None]:
    """Session for work outside a request; commits on exit, rolls back on error."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create any missing tables.  Alembic migrations own schema changes."""
    from lawmint.models import database_models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created/verified (%s)", make_url(settings.DATABASE_URL).get_backend_name())


async def close_db() -> None:
    await engine.dispose()
    logger.info("Database connections closed")
