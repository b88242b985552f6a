from __future__ import annotations

from typing import TYPE_CHECKING, Mapping

from loguru import logger

from seoworks_webhooks.application import handlers
from seoworks_webhooks.application.commands import ReprocessOrphanedTasks, WebhookEventType
from seoworks_webhooks.application.router import WebhookRouter
from seoworks_webhooks.domain.completion import PACKAGE_REQUIREMENTS, PackageRequirements
from seoworks_webhooks.domain.events import RequestStatusChanged, TaskCompleted
from seoworks_webhooks.domain.model import PackageType
from seoworks_webhooks.infrastructure.message_bus import InMemoryMessageBus

if TYPE_CHECKING:
    from seoworks_webhooks.application.handlers import Clock
    from seoworks_webhooks.domain.message_bus import MessageBus
    from seoworks_webhooks.domain.notifications import NotificationDispatcher
    from seoworks_webhooks.domain.uow import UnitOfWork


class Application:
    """Holds the wired components of the webhook pipeline."""

    def __init__(self, bus: MessageBus, uow: UnitOfWork, router: WebhookRouter):
        self.bus = bus
        self.uow = uow
        self.router = router


def bootstrap(
    uow: UnitOfWork,
    dispatcher: NotificationDispatcher,
    app_url: str,
    bus: MessageBus | None = None,
    requirements: Mapping[PackageType, PackageRequirements] = PACKAGE_REQUIREMENTS,
    clock: Clock = handlers.utcnow,
) -> Application:
    """Register every handler on the bus and build the webhook router.

    Args:
        uow: unit of work shared by all handlers
        dispatcher: where finished notification emails are handed off
        app_url: base URL used for links inside emails
        bus: message bus to register on; a new in-memory bus by default
        requirements: per-package completion thresholds
        clock: source of "now" for completion and usage timestamps

    Returns:
        the wired Application
    """
    logger.info("Bootstrapping webhook pipeline")

    # 1. message bus
    bus = bus or InMemoryMessageBus()

    # 2. command handlers
    bus.register_command(
        ReprocessOrphanedTasks,
        handlers.ReprocessOrphanedTasksHandler(uow=uow, clock=clock),
    )
    logger.debug("Command handlers registered")

    # 3. event handlers, usage before notifications
    bus.subscribe_to_event(
        TaskCompleted,
        handlers.IncrementUsageHandler(uow=uow, clock=clock),
    )
    bus.subscribe_to_event(
        TaskCompleted,
        handlers.TaskCompletedNotificationHandler(
            uow=uow, dispatcher=dispatcher, app_url=app_url
        ),
    )
    bus.subscribe_to_event(
        RequestStatusChanged,
        handlers.RequestStatusChangedNotificationHandler(
            uow=uow, dispatcher=dispatcher, app_url=app_url
        ),
    )
    logger.debug("Event handlers registered")

    # 4. webhook dispatch table
    router = WebhookRouter(
        uow=uow,
        bus=bus,
        handlers={
            WebhookEventType.TASK_COMPLETED: handlers.TaskCompletedHandler(
                uow=uow, requirements=requirements, clock=clock
            ),
            WebhookEventType.TASK_UPDATED: handlers.TaskUpdatedHandler(),
            WebhookEventType.TASK_CANCELLED: handlers.TaskCancelledHandler(uow=uow),
        },
    )

    logger.info("Webhook pipeline bootstrapped")
    return Application(bus=bus, uow=uow, router=router)
