from __future__ import annotations

from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from types import TracebackType
from typing import Iterator, Type

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from seoworks_webhooks.domain.events import Event
from seoworks_webhooks.domain.uow import UnitOfWork
from seoworks_webhooks.infrastructure.exceptions import PersistenceError
from seoworks_webhooks.infrastructure.persistence.repositories import (
    SqlAlchemyOrphanedTaskRepository,
    SqlAlchemyProcessedEventRepository,
    SqlAlchemySeoRequestRepository,
    SqlAlchemyUsageRepository,
    SqlAlchemyUserRepository,
)


@dataclass
class _Scope:
    session: AsyncSession
    requests: SqlAlchemySeoRequestRepository
    users: SqlAlchemyUserRepository
    usage: SqlAlchemyUsageRepository
    orphaned_tasks: SqlAlchemyOrphanedTaskRepository
    processed_events: SqlAlchemyProcessedEventRepository
    token: Token | None = field(default=None, repr=False)

    @classmethod
    def open(cls, session: AsyncSession) -> _Scope:
        return cls(
            session=session,
            requests=SqlAlchemySeoRequestRepository(session),
            users=SqlAlchemyUserRepository(session),
            usage=SqlAlchemyUsageRepository(session),
            orphaned_tasks=SqlAlchemyOrphanedTaskRepository(session),
            processed_events=SqlAlchemyProcessedEventRepository(session),
        )


class SqlAlchemyUnitOfWork(UnitOfWork):
    """Unit of Work backed by SQLAlchemy sessions.

    One instance is shared by every handler, so the open session lives in a
    context variable: concurrent webhook requests each run in their own task
    and never see each other's session.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self._current: ContextVar[_Scope | None] = ContextVar(
            f"uow_scope_{id(self)}", default=None
        )

    def _scope(self) -> _Scope:
        scope = self._current.get()
        if scope is None:
            raise RuntimeError("Unit of work used outside of 'async with'.")
        return scope

    @property
    def session(self) -> AsyncSession:
        return self._scope().session

    @property
    def requests(self) -> SqlAlchemySeoRequestRepository:  # pyright: ignore[reportIncompatibleVariableOverride]
        return self._scope().requests

    @property
    def users(self) -> SqlAlchemyUserRepository:  # pyright: ignore[reportIncompatibleVariableOverride]
        return self._scope().users

    @property
    def usage(self) -> SqlAlchemyUsageRepository:  # pyright: ignore[reportIncompatibleVariableOverride]
        return self._scope().usage

    @property
    def orphaned_tasks(self) -> SqlAlchemyOrphanedTaskRepository:  # pyright: ignore[reportIncompatibleVariableOverride]
        return self._scope().orphaned_tasks

    @property
    def processed_events(self) -> SqlAlchemyProcessedEventRepository:  # pyright: ignore[reportIncompatibleVariableOverride]
        return self._scope().processed_events

    async def __aenter__(self) -> SqlAlchemyUnitOfWork:
        scope = _Scope.open(self.session_factory())
        scope.token = self._current.set(scope)
        return self

    async def __aexit__(
        self,
        exc_type: Type[BaseException] | None,
        exc_val: BaseException | None,
        traceback: TracebackType | None,
    ):
        scope = self._scope()
        try:
            if exc_type:
                await self.rollback()
            await scope.session.close()
        finally:
            if scope.token is not None:
                self._current.reset(scope.token)

    async def commit(self):
        """Commit the session. Domain events stay on the aggregates until collected."""
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Commit failed: {e.__class__.__name__}: {e}")
            await self.rollback()
            raise PersistenceError("Failed to commit unit of work") from e

    async def rollback(self):
        await self.session.rollback()

    def collect_new_events(self) -> Iterator[Event]:
        for request in self.requests.seen:
            yield from request.pull_events()
