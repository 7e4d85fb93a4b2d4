"""Async engine and session factory"""
import logging

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from infrastructure.config import Settings
from infrastructure.orm import Base

logger = logging.getLogger(__name__)


def create_engine(settings: Settings) -> AsyncEngine:
    """Create async database engine for ``DATABASE_URL``"""
    engine_kwargs = {'echo': settings.DATABASE_ECHO}
    if settings.DATABASE_URL.startswith('sqlite'):
        # a single shared connection keeps in-memory SQLite databases alive
        engine_kwargs.update({
            'poolclass': StaticPool,
            'connect_args': {"check_same_thread": False},
        })
    else:
        engine_kwargs['pool_pre_ping'] = True

    engine = create_async_engine(settings.DATABASE_URL, **engine_kwargs)
    logger.info("Created async database engine: %s", engine.url.drivername)
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    # flushes happen only at commit, where failures are translated
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


async def init_db(engine: AsyncEngine) -> None:
    """Create any missing tables"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ready")
