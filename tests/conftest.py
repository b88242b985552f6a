from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterator

from typing_extensions import override

import pytest

from seoworks_webhooks.application.commands import TaskEventData, WebhookEvent
from seoworks_webhooks.domain.events import Event
from seoworks_webhooks.domain.model import (
    OrphanedTask,
    RequestStatus,
    SeoRequest,
    UsageKey,
    UsageScope,
    User,
)
from seoworks_webhooks.domain.notifications import EmailMessage, NotificationKind
from seoworks_webhooks.domain.repositories import (
    OrphanedTaskRepository,
    ProcessedEventRepository,
    SeoRequestRepository,
    UsageRepository,
    UserRepository,
)
from seoworks_webhooks.domain.uow import UnitOfWork

FIXED_NOW = datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)


# Fakes


class InMemorySeoRequestRepository(SeoRequestRepository):
    def __init__(self) -> None:
        super().__init__()
        self._requests: dict[str, SeoRequest] = {}
        self.saves = 0

    @override
    async def _add(self, request: SeoRequest) -> None:
        self._requests[request.request_id] = request

    @override
    async def _get(self, request_id: str) -> SeoRequest | None:
        return self._requests.get(request_id)

    @override
    async def _get_by_external_id(self, external_id: str) -> SeoRequest | None:
        if external_id in self._requests:
            return self._requests[external_id]
        return next(
            (r for r in self._requests.values() if r.seoworks_task_id == external_id),
            None,
        )

    @override
    async def _save(self, request: SeoRequest) -> None:
        self._requests[request.request_id] = request
        self.saves += 1


class InMemoryUserRepository(UserRepository):
    def __init__(self) -> None:
        self._users: dict[str, User] = {}

    def put(self, user: User) -> None:
        self._users[user.user_id] = user

    @override
    async def get(self, user_id: str) -> User | None:
        return self._users.get(user_id)


class InMemoryUsageRepository(UsageRepository):
    def __init__(self) -> None:
        self.counters: dict[tuple[UsageScope, UsageKey], int] = {}
        self.error: Exception | None = None

    @override
    async def increment(self, scope: UsageScope, key: UsageKey, now: datetime) -> None:
        if self.error:
            raise self.error
        self.counters[(scope, key)] = self.counters.get((scope, key), 0) + 1


class InMemoryOrphanedTaskRepository(OrphanedTaskRepository):
    def __init__(self) -> None:
        self.tasks: list[OrphanedTask] = []

    @override
    async def add(self, task: OrphanedTask) -> None:
        task.id = len(self.tasks) + 1
        self.tasks.append(task)

    @override
    async def list_unprocessed(
        self, client_id: str | None, client_email: str | None
    ) -> list[OrphanedTask]:
        return [
            t
            for t in self.tasks
            if not t.processed
            and (
                (client_id and t.client_id == client_id)
                or (client_email and t.client_email == client_email)
            )
        ]


class InMemoryProcessedEventRepository(ProcessedEventRepository):
    """Keys become visible to other transactions only on commit."""

    def __init__(self) -> None:
        self.committed: set[str] = set()
        self.pending: set[str] = set()

    @override
    async def exists(self, event_key: str) -> bool:
        return event_key in self.committed or event_key in self.pending

    @override
    async def add(self, event_key: str, external_id: str, event_type: str) -> None:
        self.pending.add(event_key)


class FakeUnitOfWork(UnitOfWork):
    def __init__(self) -> None:
        self.requests: InMemorySeoRequestRepository = InMemorySeoRequestRepository()  # pyright: ignore[reportIncompatibleVariableOverride]
        self.users: InMemoryUserRepository = InMemoryUserRepository()  # pyright: ignore[reportIncompatibleVariableOverride]
        self.usage: InMemoryUsageRepository = InMemoryUsageRepository()  # pyright: ignore[reportIncompatibleVariableOverride]
        self.orphaned_tasks: InMemoryOrphanedTaskRepository = InMemoryOrphanedTaskRepository()  # pyright: ignore[reportIncompatibleVariableOverride]
        self.processed_events: InMemoryProcessedEventRepository = InMemoryProcessedEventRepository()  # pyright: ignore[reportIncompatibleVariableOverride]
        self.commits = 0
        self.rolled_back = False
        self.commit_error: Exception | None = None

    @override
    async def __aenter__(self) -> FakeUnitOfWork:
        return self

    @override
    async def __aexit__(self, exc_type, exc_val, traceback):  # pyright: ignore[reportUnknownParameterType, reportMissingParameterType]
        if exc_type:
            await self.rollback()

    @override
    async def commit(self):
        if self.commit_error:
            raise self.commit_error
        self.processed_events.committed |= self.processed_events.pending
        self.processed_events.pending.clear()
        self.commits += 1

    @override
    async def rollback(self):
        self.processed_events.pending.clear()
        self.rolled_back = True

    @override
    def collect_new_events(self) -> Iterator[Event]:
        for request in self.requests.seen:
            yield from request.pull_events()


class FakeDispatcher:
    def __init__(self) -> None:
        self.sent: list[tuple[str, NotificationKind, EmailMessage]] = []

    async def enqueue(
        self, user_id: str, kind: NotificationKind, message: EmailMessage
    ) -> bool:
        self.sent.append((user_id, kind, message))
        return True

    def kinds(self) -> list[NotificationKind]:
        return [kind for _, kind, _ in self.sent]


# Fixtures


@pytest.fixture
def uow() -> FakeUnitOfWork:
    return FakeUnitOfWork()


@pytest.fixture
def dispatcher() -> FakeDispatcher:
    return FakeDispatcher()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def owner() -> User:
    return User(user_id="user-1", email="owner@dealer.example", name="Dana")


@pytest.fixture
def make_request():
    def _make(**overrides) -> SeoRequest:
        values = {
            "request_id": "req-1",
            "user_id": "user-1",
            "title": "Spring campaign",
            "status": RequestStatus.IN_PROGRESS,
            "dealership_id": "dealer-1",
        }
        values.update(overrides)
        return SeoRequest(**values)

    return _make


@pytest.fixture
def make_event():
    def _make(
        event_type: str = "task.completed",
        external_id: str = "req-1",
        task_type: str = "blog",
        status: str = "completed",
        completion_date: str | None = None,
        deliverables=None,
        event_id: str | None = None,
        client_id: str | None = None,
        client_email: str | None = None,
    ) -> WebhookEvent:
        return WebhookEvent(
            event_type=event_type,
            event_id=event_id,
            data=TaskEventData(
                external_id=external_id,
                task_type=task_type,
                status=status,
                client_id=client_id,
                client_email=client_email,
                completion_date=completion_date,
                deliverables=deliverables,
            ),
        )

    return _make
