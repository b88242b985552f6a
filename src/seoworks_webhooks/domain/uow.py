from __future__ import annotations

from typing import Iterator, Protocol

from seoworks_webhooks.domain.events import Event
from seoworks_webhooks.domain.repositories import (
    OrphanedTaskRepository,
    ProcessedEventRepository,
    SeoRequestRepository,
    UsageRepository,
    UserRepository,
)


class UnitOfWork(Protocol):
    """Abstract interface of the Unit of Work pattern."""

    requests: SeoRequestRepository
    users: UserRepository
    usage: UsageRepository
    orphaned_tasks: OrphanedTaskRepository
    processed_events: ProcessedEventRepository

    async def __aenter__(self) -> UnitOfWork:
        ...

    async def __aexit__(self, exc_type, exc_val, traceback):
        ...

    async def commit(self):
        ...

    async def rollback(self):
        ...

    def collect_new_events(self) -> Iterator[Event]:
        ...
