from dataclasses import dataclass
from enum import Enum
from typing import Protocol


class NotificationKind(Enum):
    TASK_COMPLETED = "taskCompleted"
    STATUS_CHANGED = "statusChanged"


@dataclass(frozen=True)
class EmailMessage:
    subject: str
    html: str
    text: str
    to: str | None = None


class NotificationDispatcher(Protocol):
    """Email queue abstraction the pipeline hands finished messages to."""

    async def enqueue(
        self, user_id: str, kind: NotificationKind, message: EmailMessage
    ) -> bool:
        ...
