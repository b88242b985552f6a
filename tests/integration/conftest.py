import pytest_asyncio

from seoworks_webhooks.infrastructure.persistence.database import (
    create_tables,
    get_engine,
    get_session_factory,
)
from seoworks_webhooks.infrastructure.persistence.orm import start_mappers
from seoworks_webhooks.infrastructure.uow import SqlAlchemyUnitOfWork


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite engine with the full schema."""
    engine = get_engine("sqlite+aiosqlite:///:memory:")
    start_mappers()
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return get_session_factory(engine)


@pytest_asyncio.fixture
async def sqlalchemy_uow(session_factory):
    return SqlAlchemyUnitOfWork(session_factory)
