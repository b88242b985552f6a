from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from typing_extensions import override

from seoworks_webhooks.domain.events import Event, RequestStatusChanged, TaskCompleted

# --- Enums ---


class RequestStatus(Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PackageType(Enum):
    SILVER = "SILVER"
    GOLD = "GOLD"
    PLATINUM = "PLATINUM"


class UsageKey(Enum):
    """Package quota counter a completed task is charged against."""

    PAGES = "pages"
    BLOGS = "blogs"
    GBP_POSTS = "gbpPosts"
    IMPROVEMENTS = "improvements"


OPEN_STATUSES = frozenset({RequestStatus.PENDING, RequestStatus.IN_PROGRESS})

# request attribute holding the counter for each usage key
COUNTER_ATTRIBUTES: dict[UsageKey, str] = {
    UsageKey.PAGES: "pages_completed",
    UsageKey.BLOGS: "blogs_completed",
    UsageKey.GBP_POSTS: "gbp_posts_completed",
    UsageKey.IMPROVEMENTS: "improvements_completed",
}


# --- Value Objects ---


@dataclass(frozen=True)
class Deliverable:
    """A vendor-reported artifact that already passed validation."""

    type: str
    title: str
    url: str | None = None


@dataclass(frozen=True)
class CompletedTaskRecord:
    """One completed vendor task as embedded in Request.completed_tasks."""

    title: str
    type: str
    completed_at: str
    url: str | None = None

    @staticmethod
    def from_deliverables(
        task_type: str, deliverables: list[Deliverable], completed_at: str
    ) -> "CompletedTaskRecord":
        first = deliverables[0] if deliverables else None
        return CompletedTaskRecord(
            title=(first.title if first else "") or task_type,
            type=task_type,
            url=first.url if first else None,
            completed_at=completed_at,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "title": self.title,
            "type": self.type,
            "completedAt": self.completed_at,
        }
        if self.url is not None:
            data["url"] = self.url
        return data

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "CompletedTaskRecord":
        return CompletedTaskRecord(
            title=str(data.get("title") or data.get("type") or ""),
            type=str(data.get("type") or ""),
            url=data.get("url"),
            completed_at=str(data.get("completedAt") or ""),
        )


@dataclass(frozen=True)
class UsageScope:
    """Where package usage is charged: a dealership, or a user as fallback."""

    kind: str  # "dealership" | "user"
    scope_id: str

    @staticmethod
    def dealership(dealership_id: str) -> "UsageScope":
        return UsageScope(kind="dealership", scope_id=dealership_id)

    @staticmethod
    def user(user_id: str) -> "UsageScope":
        return UsageScope(kind="user", scope_id=user_id)

    @staticmethod
    def resolve(dealership_id: str | None, user_id: str | None) -> "UsageScope | None":
        """Prefer the dealership; fall back to the user; None if neither is known."""
        if dealership_id:
            return UsageScope.dealership(dealership_id)
        if user_id:
            return UsageScope.user(user_id)
        return None


# --- Entities & Aggregate Root ---


@dataclass(eq=False)
class User:
    """Owner of requests and recipient of their notifications."""

    user_id: str
    email: str | None = None
    name: str | None = None
    agency_id: str | None = None
    dealership_id: str | None = None
    email_notifications: bool = True
    notify_task_completed: bool = True
    notify_status_changed: bool = True

    @override
    def __eq__(self, other: object):
        if not isinstance(other, User):
            return NotImplemented
        return self.user_id == other.user_id

    @override
    def __hash__(self):
        return hash(self.user_id)


@dataclass(eq=False)
class SeoRequest:
    """One SEO work order. Aggregate root mutated by vendor webhook events."""

    request_id: str
    user_id: str | None
    title: str = ""
    status: RequestStatus = RequestStatus.PENDING
    package_type: PackageType | None = None
    dealership_id: str | None = None
    agency_id: str | None = None
    seoworks_task_id: str | None = None
    pages_completed: int = 0
    blogs_completed: int = 0
    gbp_posts_completed: int = 0
    improvements_completed: int = 0
    completed_tasks: list[CompletedTaskRecord] = field(default_factory=list)
    completed_at: datetime | None = None
    events: list[Event] = field(default_factory=list)

    def pull_events(self) -> list[Event]:
        """Return recorded events and clear the internal list."""
        pulled_events = self.events[:]
        self.events.clear()
        return pulled_events

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    def counter(self, key: UsageKey) -> int:
        return getattr(self, COUNTER_ATTRIBUTES[key])

    def record_completed_task(
        self, task: CompletedTaskRecord, usage_key: UsageKey | None
    ) -> None:
        """Append the task, bump its counter and record a TaskCompleted event."""
        if usage_key is not None:
            attribute = COUNTER_ATTRIBUTES[usage_key]
            setattr(self, attribute, getattr(self, attribute) + 1)
        # reassigned, not appended: the store persists the full sequence
        self.completed_tasks = [*self.completed_tasks, task]
        self.events.append(
            TaskCompleted(
                request_id=self.request_id,
                user_id=self.user_id,
                dealership_id=self.dealership_id,
                task=task,
                usage_key=usage_key,
            )
        )

    def complete(self, completed_at: datetime) -> None:
        if not self.is_open:
            raise ValueError(
                f"Request {self.request_id} cannot complete from {self.status.value}."
            )
        old_status = self.status
        self.status = RequestStatus.COMPLETED
        self.completed_at = completed_at
        self._status_changed(old_status)

    def cancel(self) -> bool:
        """Cancel an open request. COMPLETED and CANCELLED are absorbing."""
        if not self.is_open:
            return False
        old_status = self.status
        self.status = RequestStatus.CANCELLED
        self._status_changed(old_status)
        return True

    def _status_changed(self, old_status: RequestStatus) -> None:
        self.events.append(
            RequestStatusChanged(
                request_id=self.request_id,
                user_id=self.user_id,
                old_status=old_status,
                new_status=self.status,
            )
        )

    @override
    def __eq__(self, other: object):
        if not isinstance(other, SeoRequest):
            return NotImplemented
        return self.request_id == other.request_id

    @override
    def __hash__(self):
        return hash(self.request_id)


@dataclass(eq=False)
class OrphanedTask:
    """A vendor event that arrived for an external id with no matching request."""

    external_id: str
    event_type: str
    task_type: str
    status: str
    client_id: str | None = None
    client_email: str | None = None
    completion_date: str | None = None
    deliverables: list[Any] | None = None
    processed: bool = False
    linked_request_id: str | None = None
    notes: str = ""
    created_at: datetime | None = None
    id: int | None = None

    def mark_processed(self, note: str, linked_request_id: str | None = None) -> None:
        self.processed = True
        self.linked_request_id = linked_request_id
        self.notes = f"{self.notes}\n\n{note}" if self.notes else note
