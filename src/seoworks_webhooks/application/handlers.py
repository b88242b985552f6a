from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Final, Mapping, Protocol

from loguru import logger

from seoworks_webhooks.application.commands import (
    ReprocessOrphanedTasks,
    TaskEventData,
    WebhookEventType,
)
from seoworks_webhooks.application.templates import (
    content_added_template,
    is_content_task,
    status_changed_template,
    task_completed_template,
)
from seoworks_webhooks.domain.completion import (
    PACKAGE_REQUIREMENTS,
    PackageRequirements,
    should_complete,
)
from seoworks_webhooks.domain.deliverables import parse_deliverables, validate_deliverables
from seoworks_webhooks.domain.events import RequestStatusChanged, TaskCompleted
from seoworks_webhooks.domain.model import (
    COUNTER_ATTRIBUTES,
    CompletedTaskRecord,
    OrphanedTask,
    PackageType,
    RequestStatus,
    SeoRequest,
    UsageScope,
)
from seoworks_webhooks.domain.notifications import NotificationKind
from seoworks_webhooks.domain.usage import task_type_to_usage_key

if TYPE_CHECKING:
    from seoworks_webhooks.domain.notifications import NotificationDispatcher
    from seoworks_webhooks.domain.uow import UnitOfWork

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WebhookHandler(Protocol):
    """Handler for one webhook event type, given the already-resolved request."""

    async def handle(self, request: SeoRequest, data: TaskEventData) -> None:
        ...


# --- Webhook handlers ---


class TaskCompletedHandler:
    """Records a completed vendor task and decides whether the request is done.

    Runs inside the unit of work opened by the router. Everything up to the
    commit is strict: failures are logged and re-raised so the vendor retries.
    Usage accounting and emails happen afterwards as event handlers.
    """

    def __init__(
        self,
        uow: UnitOfWork,
        requirements: Mapping[PackageType, PackageRequirements] = PACKAGE_REQUIREMENTS,
        clock: Clock = utcnow,
    ):
        self.uow: Final = uow
        self.requirements: Final = requirements
        self.clock: Final = clock

    async def handle(self, request: SeoRequest, data: TaskEventData) -> None:
        with logger.contextualize(request_id=request.request_id, task_type=data.task_type):
            try:
                if not validate_deliverables(data.deliverables):
                    logger.warning(
                        f"Invalid deliverables format, using empty list: {data.deliverables!r}"
                    )
                deliverables = parse_deliverables(data.deliverables)

                usage_key = task_type_to_usage_key(data.task_type)
                if usage_key is None:
                    logger.warning(
                        f"Unknown task type '{data.task_type}'. No counter incremented."
                    )

                now = self.clock()
                task = CompletedTaskRecord.from_deliverables(
                    data.task_type, deliverables, data.completion_date or now.isoformat()
                )
                request.record_completed_task(task, usage_key)

                if request.is_open and self._should_complete(request):
                    request.complete(now)

                await self.uow.requests.save(request)
                await self.uow.commit()
            except Exception:
                logger.exception("Error handling task completed.")
                raise

            logger.info(
                f"Task completed webhook processed. status={request.status.value}, "
                f"completed_tasks={len(request.completed_tasks)}"
            )

    def _should_complete(self, request: SeoRequest) -> bool:
        if request.package_type is not None and request.package_type not in self.requirements:
            logger.warning(
                f"No requirements for package {request.package_type.value}. "
                "Request will not auto-complete."
            )
        return should_complete(request, self.requirements)


class TaskUpdatedHandler:
    async def handle(self, request: SeoRequest, data: TaskEventData) -> None:
        # extension point: no state transition yet
        logger.info(
            f"Task updated webhook received for request {request.request_id}: "
            f"task_type={data.task_type}, status={data.status}"
        )


class TaskCancelledHandler:
    """Moves an open request to CANCELLED. COMPLETED requests are left alone."""

    def __init__(self, uow: UnitOfWork):
        self.uow: Final = uow

    async def handle(self, request: SeoRequest, data: TaskEventData) -> None:
        with logger.contextualize(request_id=request.request_id, task_type=data.task_type):
            if not request.is_open:
                logger.info(
                    f"Request already {request.status.value}. Ignoring cancellation."
                )
                return
            try:
                request.cancel()
                await self.uow.requests.save(request)
                await self.uow.commit()
            except Exception:
                logger.exception("Error handling task cancelled.")
                raise
            logger.info("Task cancelled webhook processed.")


# --- Domain event handlers (best effort, run after the request write) ---


class IncrementUsageHandler:
    def __init__(self, uow: UnitOfWork, clock: Clock = utcnow):
        self.uow: Final = uow
        self.clock: Final = clock

    async def handle(self, event: TaskCompleted):
        with logger.contextualize(request_id=event.request_id):
            if event.usage_key is None:
                return
            scope = UsageScope.resolve(event.dealership_id, event.user_id)
            if scope is None:
                logger.warning("No dealership or user to charge usage against. Skipping.")
                return
            async with self.uow:
                await self.uow.usage.increment(scope, event.usage_key, self.clock())
                await self.uow.commit()
            logger.info(
                f"Incremented {event.usage_key.value} usage for {scope.kind} {scope.scope_id}."
            )


class TaskCompletedNotificationHandler:
    def __init__(self, uow: UnitOfWork, dispatcher: NotificationDispatcher, app_url: str):
        self.uow: Final = uow
        self.dispatcher: Final = dispatcher
        self.app_url: Final = app_url

    async def handle(self, event: TaskCompleted):
        with logger.contextualize(request_id=event.request_id):
            if not event.user_id:
                logger.warning("Request has no owner. Task completed email skipped.")
                return
            async with self.uow:
                request = await self.uow.requests.get(event.request_id)
                user = await self.uow.users.get(event.user_id)
            if request is None or user is None:
                logger.warning(
                    f"Request or user {event.user_id} not found. Task completed email skipped."
                )
                return

            template = (
                content_added_template
                if is_content_task(event.task.type)
                else task_completed_template
            )
            message = template(request, user, event.task, self.app_url)
            await self.dispatcher.enqueue(
                user.user_id, NotificationKind.TASK_COMPLETED, replace(message, to=user.email)
            )


class RequestStatusChangedNotificationHandler:
    def __init__(self, uow: UnitOfWork, dispatcher: NotificationDispatcher, app_url: str):
        self.uow: Final = uow
        self.dispatcher: Final = dispatcher
        self.app_url: Final = app_url

    async def handle(self, event: RequestStatusChanged):
        with logger.contextualize(request_id=event.request_id):
            if not event.user_id:
                logger.warning("Request has no owner. Status changed email skipped.")
                return
            async with self.uow:
                request = await self.uow.requests.get(event.request_id)
                user = await self.uow.users.get(event.user_id)
            if request is None or user is None:
                logger.warning(
                    f"Request or user {event.user_id} not found. Status changed email skipped."
                )
                return

            message = status_changed_template(
                request, user, event.old_status, event.new_status, self.app_url
            )
            await self.dispatcher.enqueue(
                user.user_id, NotificationKind.STATUS_CHANGED, replace(message, to=user.email)
            )


# --- Commands ---


@dataclass(frozen=True)
class ReprocessResult:
    processed: int
    created: int


class ReprocessOrphanedTasksHandler:
    """Turns orphaned vendor events for a now-known user into requests."""

    def __init__(self, uow: UnitOfWork, clock: Clock = utcnow):
        self.uow: Final = uow
        self.clock: Final = clock

    async def handle(self, command: ReprocessOrphanedTasks) -> ReprocessResult:
        with logger.contextualize(user_id=command.user_id):
            processed = created = 0
            async with self.uow:
                orphans = await self.uow.orphaned_tasks.list_unprocessed(
                    command.user_id, command.user_email
                )
                # requests added in this batch are not flushed yet
                created_here: dict[str, SeoRequest] = {}
                for orphan in orphans:
                    if orphan.event_type == WebhookEventType.TASK_COMPLETED.value:
                        request = created_here.get(
                            orphan.external_id
                        ) or await self.uow.requests.get_by_external_id(orphan.external_id)
                        if request is None:
                            request = self._request_from_orphan(orphan, command.user_id)
                            await self.uow.requests.add(request)
                            created_here[orphan.external_id] = request
                            created += 1
                        else:
                            logger.info(
                                f"Orphan {orphan.id} for {orphan.external_id} already has "
                                f"request {request.request_id}. Linking only."
                            )
                        orphan.mark_processed(
                            f"Processed and linked to request {request.request_id} "
                            f"for user {command.user_id}",
                            linked_request_id=request.request_id,
                        )
                    else:
                        orphan.mark_processed(
                            f"Processed manually for user {command.user_id} - "
                            f"event type {orphan.event_type}"
                        )
                    processed += 1
                await self.uow.commit()

            logger.info(f"Reprocessed {processed} orphaned tasks, created {created} requests.")
            return ReprocessResult(processed=processed, created=created)

    def _request_from_orphan(self, orphan: OrphanedTask, user_id: str) -> SeoRequest:
        now = self.clock()
        deliverables = parse_deliverables(orphan.deliverables)
        task = CompletedTaskRecord.from_deliverables(
            orphan.task_type, deliverables, orphan.completion_date or now.isoformat()
        )
        title = (
            deliverables[0].title
            if deliverables and deliverables[0].title
            else f"SEOWorks {orphan.task_type.lower()} Task"
        )
        request = SeoRequest(
            request_id=str(uuid.uuid4()),
            user_id=user_id,
            title=title,
            status=RequestStatus.COMPLETED,
            seoworks_task_id=orphan.external_id,
            completed_tasks=[task],
            completed_at=_parse_timestamp(orphan.completion_date) or now,
        )
        usage_key = task_type_to_usage_key(orphan.task_type)
        if usage_key is not None:
            setattr(request, COUNTER_ATTRIBUTES[usage_key], 1)
        return request


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        logger.warning(f"Unparseable completion date '{value}'.")
        return None
