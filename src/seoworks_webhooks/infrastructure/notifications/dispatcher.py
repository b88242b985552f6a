from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, Final

from loguru import logger

from seoworks_webhooks.domain.model import User
from seoworks_webhooks.domain.notifications import EmailMessage, NotificationKind

if TYPE_CHECKING:
    from seoworks_webhooks.domain.uow import UnitOfWork
    from seoworks_webhooks.infrastructure.notifications.queue import EmailQueue


def _kind_enabled(user: User, kind: NotificationKind) -> bool:
    if kind is NotificationKind.TASK_COMPLETED:
        return user.notify_task_completed
    return user.notify_status_changed


class PreferenceAwareDispatcher:
    """Queues an email only if the user exists, has an address and opted in."""

    def __init__(self, uow: UnitOfWork, queue: EmailQueue):
        self.uow: Final = uow
        self.queue: Final = queue

    async def enqueue(
        self, user_id: str, kind: NotificationKind, message: EmailMessage
    ) -> bool:
        with logger.contextualize(user_id=user_id, email_kind=kind.value):
            try:
                async with self.uow:
                    user = await self.uow.users.get(user_id)

                if user is None or not user.email:
                    logger.warning("User not found or has no email. Not queued.")
                    return False
                if not user.email_notifications:
                    logger.info("User has disabled email notifications.")
                    return False
                if not _kind_enabled(user, kind):
                    logger.info("User has disabled this email type.")
                    return False

                await self.queue.add(replace(message, to=user.email))
            except Exception:
                logger.exception("Error queuing email with preferences.")
                return False
            return True
