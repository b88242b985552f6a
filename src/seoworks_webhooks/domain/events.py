from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from seoworks_webhooks.domain.model import (
        CompletedTaskRecord,
        RequestStatus,
        UsageKey,
    )


class Event:
    """Base class for all domain events (marker interface)."""

    pass


@dataclass(frozen=True)
class TaskCompleted(Event):
    """Raised when a vendor task has been recorded against a request."""

    request_id: str
    user_id: str | None
    dealership_id: str | None
    task: CompletedTaskRecord
    usage_key: UsageKey | None


@dataclass(frozen=True)
class RequestStatusChanged(Event):
    """Raised when a request moves from one status to another."""

    request_id: str
    user_id: str | None
    old_status: RequestStatus
    new_status: RequestStatus
