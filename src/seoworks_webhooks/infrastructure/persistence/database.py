from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from seoworks_webhooks.infrastructure.persistence.orm import metadata


def get_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create the async SQLAlchemy engine for ``database_url``.

    SQLite URLs need the aiosqlite driver, e.g. ``sqlite+aiosqlite:///app.db``.
    """
    kwargs = {}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        # an in-memory database lives on a single connection
        if ":memory:" in database_url or database_url.rstrip("/").endswith(":"):
            kwargs["poolclass"] = StaticPool
    return create_async_engine(database_url, echo=echo, **kwargs)


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory used by the unit of work."""
    return async_sessionmaker(
        engine, class_=AsyncSession, autoflush=False, expire_on_commit=False
    )


async def create_tables(engine: AsyncEngine):
    """Create every table defined in the metadata."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
