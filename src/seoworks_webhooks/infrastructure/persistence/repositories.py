from datetime import datetime, timezone
from typing_extensions import override

from sqlalchemy import insert, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from seoworks_webhooks.domain.model import (
    CompletedTaskRecord,
    OrphanedTask,
    SeoRequest,
    UsageKey,
    UsageScope,
    User,
)
from seoworks_webhooks.domain.repositories import (
    OrphanedTaskRepository,
    ProcessedEventRepository,
    SeoRequestRepository,
    UsageRepository,
    UserRepository,
)
from seoworks_webhooks.domain.usage import billing_period
from seoworks_webhooks.infrastructure.exceptions import PersistenceError
from seoworks_webhooks.infrastructure.persistence.orm import (
    monthly_usage_table,
    orphaned_tasks_table,
    processed_events_table,
    requests_table,
    usage_counters_table,
)

USAGE_COLUMNS: dict[UsageKey, str] = {
    UsageKey.PAGES: "pages_used",
    UsageKey.BLOGS: "blogs_used",
    UsageKey.GBP_POSTS: "gbp_posts_used",
    UsageKey.IMPROVEMENTS: "improvements_used",
}


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class SqlAlchemySeoRequestRepository(SeoRequestRepository):
    """SQLAlchemy implementation of SeoRequestRepository."""

    def __init__(self, session: AsyncSession):
        super().__init__()
        self.session = session

    @override
    async def _add(self, request: SeoRequest) -> None:
        self._prepare_for_persistence(request)
        self.session.add(request)

    @override
    async def _get(self, request_id: str) -> SeoRequest | None:
        request = await self.session.get(SeoRequest, request_id)
        if request:
            self._reconstitute_from_persistence(request)
        return request

    @override
    async def _get_by_external_id(self, external_id: str) -> SeoRequest | None:
        request = await self.session.get(SeoRequest, external_id)
        if request is None:
            request = (
                await self.session.scalars(
                    select(SeoRequest).where(requests_table.c.seoworks_task_id == external_id)
                )
            ).first()
        if request:
            self._reconstitute_from_persistence(request)
        return request

    @override
    async def _save(self, request: SeoRequest) -> None:
        self._prepare_for_persistence(request)
        self.session.add(request)

    def _prepare_for_persistence(self, request: SeoRequest):
        """Serialize value objects into their column representation."""
        # a new list so the JSON column is flagged as changed
        setattr(
            request,
            "completed_tasks_json",
            [task.to_dict() for task in request.completed_tasks],
        )

    def _reconstitute_from_persistence(self, request: SeoRequest):
        """Rebuild the domain-only attributes of an ORM-loaded request."""
        if "events" in request.__dict__:
            # already a live aggregate in this session
            return
        request.events = []
        request.completed_tasks = [
            CompletedTaskRecord.from_dict(data)
            for data in (getattr(request, "completed_tasks_json", None) or [])
            if isinstance(data, dict)
        ]


class SqlAlchemyUserRepository(UserRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    @override
    async def get(self, user_id: str) -> User | None:
        return await self.session.get(User, user_id)


class SqlAlchemyUsageRepository(UsageRepository):
    """Per-scope usage counters with monthly rollover into monthly_usage."""

    def __init__(self, session: AsyncSession):
        self.session = session

    @override
    async def increment(self, scope: UsageScope, key: UsageKey, now: datetime) -> None:
        table = usage_counters_table
        scope_filter = (table.c.scope_type == scope.kind) & (table.c.scope_id == scope.scope_id)
        period_start, period_end = billing_period(now)

        row = (await self.session.execute(select(table).where(scope_filter))).first()
        if row is None:
            await self.session.execute(
                insert(table).values(
                    scope_type=scope.kind,
                    scope_id=scope.scope_id,
                    pages_used=0,
                    blogs_used=0,
                    gbp_posts_used=0,
                    improvements_used=0,
                    period_start=period_start,
                    period_end=period_end,
                )
            )
        elif _as_utc(row.period_end) < _as_utc(now):
            await self._roll_over(scope, row, period_start, period_end)

        column = table.c[USAGE_COLUMNS[key]]
        await self.session.execute(
            update(table).where(scope_filter).values({column: column + 1})
        )

    async def _roll_over(self, scope: UsageScope, row, period_start: datetime, period_end: datetime):
        archived_start = _as_utc(row.period_start)
        await self.session.execute(
            insert(monthly_usage_table).values(
                scope_type=scope.kind,
                scope_id=scope.scope_id,
                year=archived_start.year,
                month=archived_start.month,
                pages_used=row.pages_used,
                blogs_used=row.blogs_used,
                gbp_posts_used=row.gbp_posts_used,
                improvements_used=row.improvements_used,
            )
        )
        await self.session.execute(
            update(usage_counters_table)
            .where(usage_counters_table.c.id == row.id)
            .values(
                pages_used=0,
                blogs_used=0,
                gbp_posts_used=0,
                improvements_used=0,
                period_start=period_start,
                period_end=period_end,
            )
        )


class SqlAlchemyOrphanedTaskRepository(OrphanedTaskRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    @override
    async def add(self, task: OrphanedTask) -> None:
        self.session.add(task)

    @override
    async def list_unprocessed(
        self, client_id: str | None, client_email: str | None
    ) -> list[OrphanedTask]:
        table = orphaned_tasks_table
        matches = []
        if client_id:
            matches.append(table.c.client_id == client_id)
        if client_email:
            matches.append(table.c.client_email == client_email)
        if not matches:
            return []
        statement = (
            select(OrphanedTask)
            .where(table.c.processed.is_(False), or_(*matches))
            .order_by(table.c.created_at, table.c.id)
        )
        return list(await self.session.scalars(statement))


class SqlAlchemyProcessedEventRepository(ProcessedEventRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    @override
    async def exists(self, event_key: str) -> bool:
        table = processed_events_table
        statement = select(table.c.event_key).where(table.c.event_key == event_key)
        return (await self.session.execute(statement)).first() is not None

    @override
    async def add(self, event_key: str, external_id: str, event_type: str) -> None:
        try:
            await self.session.execute(
                insert(processed_events_table).values(
                    event_key=event_key, external_id=external_id, event_type=event_type
                )
            )
        except IntegrityError as e:
            raise PersistenceError(f"Delivery {event_key} is already being processed") from e
