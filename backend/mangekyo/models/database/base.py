"""Database engine, session factory and declarative base."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from mangekyo.config import settings


class Base(DeclarativeBase):
    """Declarative base for all tables."""
    pass


def create_session_maker(database_url: str) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Create an engine and session factory for a database URL."""
    db_engine = create_async_engine(database_url, echo=False)
    return db_engine, async_sessionmaker(db_engine, expire_on_commit=False)


engine, async_session_maker = create_session_maker(settings.database_url)


async def init_db(db_engine: AsyncEngine = engine) -> None:
    """Create all tables."""
    # Import models so they register with Base.metadata
    from mangekyo.models.database import cache_entry, context_snapshot  # noqa: F401

    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
