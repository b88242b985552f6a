from abc import ABC, abstractmethod
from datetime import datetime
from typing import Set

from seoworks_webhooks.domain.model import (
    OrphanedTask,
    SeoRequest,
    UsageKey,
    UsageScope,
    User,
)


class SeoRequestRepository(ABC):
    seen: Set[SeoRequest]

    def __init__(self):
        self.seen = set()

    async def add(self, request: SeoRequest) -> None:
        await self._add(request)
        self.seen.add(request)

    async def get(self, request_id: str) -> SeoRequest | None:
        request = await self._get(request_id)
        if request:
            self.seen.add(request)
        return request

    async def get_by_external_id(self, external_id: str) -> SeoRequest | None:
        """Find a request by its own id or by the vendor task id mapped onto it."""
        request = await self._get_by_external_id(external_id)
        if request:
            self.seen.add(request)
        return request

    async def save(self, request: SeoRequest) -> None:
        await self._save(request)
        self.seen.add(request)

    @abstractmethod
    async def _add(self, request: SeoRequest) -> None:
        raise NotImplementedError

    @abstractmethod
    async def _get(self, request_id: str) -> SeoRequest | None:
        raise NotImplementedError

    @abstractmethod
    async def _get_by_external_id(self, external_id: str) -> SeoRequest | None:
        raise NotImplementedError

    @abstractmethod
    async def _save(self, request: SeoRequest) -> None:
        raise NotImplementedError


class UserRepository(ABC):
    @abstractmethod
    async def get(self, user_id: str) -> User | None:
        raise NotImplementedError


class UsageRepository(ABC):
    @abstractmethod
    async def increment(self, scope: UsageScope, key: UsageKey, now: datetime) -> None:
        """Add one to the scope's counter, rolling the billing period if needed."""
        raise NotImplementedError


class OrphanedTaskRepository(ABC):
    @abstractmethod
    async def add(self, task: OrphanedTask) -> None:
        raise NotImplementedError

    @abstractmethod
    async def list_unprocessed(
        self, client_id: str | None, client_email: str | None
    ) -> list[OrphanedTask]:
        """Unprocessed orphans matching either client id or email, oldest first."""
        raise NotImplementedError


class ProcessedEventRepository(ABC):
    @abstractmethod
    async def exists(self, event_key: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def add(self, event_key: str, external_id: str, event_type: str) -> None:
        raise NotImplementedError
