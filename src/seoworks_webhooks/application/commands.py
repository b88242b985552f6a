import hashlib
from dataclasses import dataclass
from enum import Enum
from typing import Any


class Command:
    """Base class for all commands (marker)."""

    pass


class WebhookEventType(Enum):
    TASK_COMPLETED = "task.completed"
    TASK_UPDATED = "task.updated"
    TASK_CANCELLED = "task.cancelled"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: str) -> "WebhookEventType":
        """Exact-match lookup; anything unrecognised becomes UNKNOWN."""
        try:
            return cls(raw)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class TaskEventData:
    """The ``data`` object of a vendor webhook. ``deliverables`` is untrusted."""

    external_id: str
    task_type: str
    status: str
    client_id: str | None = None
    client_email: str | None = None
    completion_date: str | None = None
    deliverables: Any = None


@dataclass(frozen=True)
class WebhookEvent(Command):
    """One inbound vendor webhook delivery."""

    event_type: str
    data: TaskEventData
    event_id: str | None = None

    def idempotency_key(self, request_id: str | None = None) -> str | None:
        """Key identifying this delivery, or None when it cannot be told apart.

        Without a vendor event id the key is derived from the delivery itself.
        Pass the resolved ``request_id`` so a request addressed by its own id
        and by its vendor task id yields the same key.
        """
        if self.event_id:
            return f"event:{self.event_id}"
        if not self.data.completion_date:
            return None
        raw = "|".join(
            [
                request_id or self.data.external_id,
                self.event_type,
                self.data.task_type,
                self.data.completion_date,
            ]
        )
        return "sha256:" + hashlib.sha256(raw.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class ReprocessOrphanedTasks(Command):
    """Attach orphaned vendor tasks to a user now that the user is known."""

    user_id: str
    user_email: str | None = None
