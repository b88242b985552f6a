from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Final, Mapping

from loguru import logger

from seoworks_webhooks.application.commands import WebhookEvent, WebhookEventType
from seoworks_webhooks.application.locks import KeyedLock
from seoworks_webhooks.domain.events import Event
from seoworks_webhooks.domain.model import OrphanedTask
from seoworks_webhooks.infrastructure.exceptions import PersistenceError
from seoworks_webhooks.infrastructure.logging_utils import log_step

if TYPE_CHECKING:
    from seoworks_webhooks.application.handlers import WebhookHandler
    from seoworks_webhooks.domain.message_bus import MessageBus
    from seoworks_webhooks.domain.uow import UnitOfWork


class RouteOutcome(Enum):
    PROCESSED = "processed"
    IGNORED = "ignored"
    ORPHANED = "orphaned"
    DUPLICATE = "duplicate"


class WebhookRouter:
    """Entry point of the webhook pipeline.

    Resolves the request for ``data.externalId`` and hands it to exactly one
    handler chosen by event type. Unknown event types, orphaned events and
    duplicate deliveries are acknowledged without error. Domain events are
    published on the bus only after the handler's write has committed.
    """

    def __init__(
        self,
        uow: UnitOfWork,
        bus: MessageBus,
        handlers: Mapping[WebhookEventType, WebhookHandler],
    ):
        self.uow: Final = uow
        self.bus: Final = bus
        self.handlers: Final = dict(handlers)
        self.locks: Final = KeyedLock()

    async def route(self, event: WebhookEvent) -> RouteOutcome:
        event_type = WebhookEventType.parse(event.event_type)
        external_id = event.data.external_id
        with logger.contextualize(event_type=event.event_type, external_id=external_id):
            handler = self.handlers.get(event_type)
            if handler is None:
                logger.info(f"Unhandled webhook event type '{event.event_type}'. Ignoring.")
                return RouteOutcome.IGNORED

            request_id = await self._resolve(external_id)
            # serialize per request, whichever alias the vendor used
            async with self.locks.hold(request_id or external_id):
                with log_step("Processing webhook"):
                    outcome, new_events = await self._dispatch(
                        event, event_type, handler, request_id
                    )

            for domain_event in new_events:
                await self.bus.handle(domain_event)
            return outcome

    async def _resolve(self, external_id: str) -> str | None:
        """Map an externalId, request id or vendor task id, to the request id."""
        async with self.uow:
            request = await self.uow.requests.get_by_external_id(external_id)
            return request.request_id if request else None

    async def _dispatch(
        self,
        event: WebhookEvent,
        event_type: WebhookEventType,
        handler: WebhookHandler,
        request_id: str | None,
    ) -> tuple[RouteOutcome, list[Event]]:
        async with self.uow:
            request = await self.uow.requests.get(request_id) if request_id else None
            if request is None:
                logger.warning("Request not found for webhook. Recording orphaned task.")
                await self._record_orphan(event)
                return RouteOutcome.ORPHANED, []

            # only completions are not naturally idempotent
            key = (
                event.idempotency_key(request.request_id)
                if event_type is WebhookEventType.TASK_COMPLETED
                else None
            )
            if key is not None:
                if await self.uow.processed_events.exists(key):
                    logger.warning(f"Duplicate delivery {key}. Already processed.")
                    return RouteOutcome.DUPLICATE, []
                await self.uow.processed_events.add(
                    key, event.data.external_id, event.event_type
                )

            await handler.handle(request, event.data)
            new_events = list(self.uow.collect_new_events())
        return RouteOutcome.PROCESSED, new_events

    async def _record_orphan(self, event: WebhookEvent) -> None:
        data = event.data
        orphan = OrphanedTask(
            external_id=data.external_id,
            event_type=event.event_type,
            task_type=data.task_type,
            status=data.status,
            client_id=data.client_id,
            client_email=data.client_email,
            completion_date=data.completion_date,
            deliverables=data.deliverables if isinstance(data.deliverables, list) else None,
        )
        try:
            await self.uow.orphaned_tasks.add(orphan)
            await self.uow.commit()
        except PersistenceError:
            logger.exception("Failed to record orphaned task. Acknowledging anyway.")
