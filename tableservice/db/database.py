"""
Table Service — SQLAlchemy engine and session factory

The engine is built on first use so that memory-backed deployments and tests
never open a database connection.
"""
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from tableservice.core.config import get_settings

settings = get_settings()


class Base(DeclarativeBase):
    pass


_engine: AsyncEngine | None = None


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = create_async_engine(
            settings.database_url,
            echo=settings.DEBUG,
            pool_pre_ping=True,
            pool_size=10,
            max_overflow=20,
        )
    return _engine


def session_factory(engine: AsyncEngine | None = None) -> async_sessionmaker:
    return async_sessionmaker(engine or get_engine(), expire_on_commit=False)


async def create_tables(engine: AsyncEngine | None = None):
    # Registers DocumentRow on Base.metadata
    from tableservice.models import document  # noqa: F401

    async with (engine or get_engine()).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine():
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None
