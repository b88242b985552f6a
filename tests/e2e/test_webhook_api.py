"""Drives the FastAPI app over HTTP against an in-memory SQLite database."""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from seoworks_webhooks.bootstrap import bootstrap
from seoworks_webhooks.config import Settings
from seoworks_webhooks.domain.model import PackageType, RequestStatus, SeoRequest, User
from seoworks_webhooks.entrypoints.api import create_app
from seoworks_webhooks.infrastructure.exceptions import PersistenceError
from seoworks_webhooks.infrastructure.notifications.dispatcher import PreferenceAwareDispatcher
from seoworks_webhooks.infrastructure.notifications.queue import EmailQueue
from seoworks_webhooks.infrastructure.persistence.database import (
    create_tables,
    get_engine,
    get_session_factory,
)
from seoworks_webhooks.infrastructure.persistence.orm import (
    orphaned_tasks_table,
    start_mappers,
    usage_counters_table,
)
from seoworks_webhooks.infrastructure.uow import SqlAlchemyUnitOfWork

SECRET = "webhook-secret"
ADMIN_KEY = "admin-secret"
HEADERS = {"x-api-key": SECRET}


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        seoworks_webhook_secret=SECRET,
        admin_api_key=ADMIN_KEY,
        app_url="https://hub.example",
    )


@pytest_asyncio.fixture
async def uow(settings):
    engine = get_engine(settings.database_url)
    start_mappers()
    await create_tables(engine)
    yield SqlAlchemyUnitOfWork(get_session_factory(engine))
    await engine.dispose()


@pytest.fixture
def email_queue(mocker):
    sender = mocker.Mock()
    sender.send = mocker.AsyncMock(return_value=True)
    return EmailQueue(sender)


@pytest.fixture
def application(uow, email_queue, settings):
    return bootstrap(
        uow=uow,
        dispatcher=PreferenceAwareDispatcher(uow, email_queue),
        app_url=settings.app_url,
    )


@pytest_asyncio.fixture
async def client(settings, application) -> AsyncGenerator[AsyncClient, None]:
    app = create_app(settings=settings, application=application)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def seed(uow, *requests: SeoRequest):
    async with uow:
        uow.session.add(User(user_id="user-1", email="owner@dealer.example", name="Dana"))
        for request in requests:
            await uow.requests.add(request)
        await uow.commit()


def payload(event_type="task.completed", external_id="req-1", task_type="page", **data):
    return {
        "eventType": event_type,
        "data": {"externalId": external_id, "taskType": task_type, "status": "completed", **data},
    }


async def subjects(email_queue) -> list[str]:
    await email_queue.process_pending()
    return [call.args[0].subject for call in email_queue.sender.send.await_args_list]


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


async def test_connectivity_check_requires_key(client):
    assert (await client.get("/seoworks/webhook")).status_code == 401

    response = await client.get("/seoworks/webhook", headers=HEADERS)

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.parametrize("headers", [{}, {"x-api-key": "wrong"}])
async def test_webhook_rejects_bad_keys(client, headers):
    response = await client.post("/seoworks/webhook", json=payload(), headers=headers)

    assert response.status_code == 401


async def test_webhook_rejected_when_no_secret_is_configured(settings, application):
    app = create_app(settings=settings.model_copy(update={"seoworks_webhook_secret": None}), application=application)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        response = await c.post("/seoworks/webhook", json=payload(), headers=HEADERS)

    assert response.status_code == 401


@pytest.mark.parametrize(
    "body",
    [
        {"data": {"externalId": "req-1", "taskType": "page", "status": "completed"}},
        {"eventType": "task.completed", "data": {"taskType": "page", "status": "completed"}},
        {"eventType": "task.completed", "data": {"externalId": 7, "taskType": "page", "status": "completed"}},
    ],
)
async def test_schema_violations_are_bad_requests(client, body):
    response = await client.post("/seoworks/webhook", json=body, headers=HEADERS)

    assert response.status_code == 400


async def test_completed_event_updates_request_and_queues_emails(client, uow, email_queue):
    await seed(uow, SeoRequest(request_id="req-1", user_id="user-1", title="Oak Motors", dealership_id="dealer-1"))

    response = await client.post(
        "/seoworks/webhook",
        json=payload(
            task_type="page",
            completionDate="2026-10-01T10:00:00Z",
            deliverables=[{"type": "page", "title": "About Us", "url": "https://oak.example/about"}],
        ),
        headers=HEADERS,
    )

    assert response.status_code == 200
    assert response.json() == {
        "message": "Webhook processed successfully",
        "eventType": "task.completed",
        "outcome": "processed",
    }
    async with uow:
        request = await uow.requests.get("req-1")
        usage = (await uow.session.execute(select(usage_counters_table))).one()
    assert request.status is RequestStatus.COMPLETED
    assert request.pages_completed == 1
    assert request.completed_tasks[0].url == "https://oak.example/about"
    assert (usage.scope_id, usage.pages_used) == ("dealer-1", 1)
    assert await subjects(email_queue) == [
        'New Page Added: "About Us"',
        "Request Completed: Oak Motors",
    ]


async def test_redelivered_event_is_applied_once(client, uow, email_queue):
    await seed(uow, SeoRequest(request_id="req-1", user_id="user-1", package_type=PackageType.GOLD))
    body = payload(task_type="blog", completionDate="2026-10-01T10:00:00Z")

    first = await client.post("/seoworks/webhook", json=body, headers=HEADERS)
    second = await client.post("/seoworks/webhook", json=body, headers=HEADERS)

    assert first.json()["outcome"] == "processed"
    assert second.status_code == 200
    assert second.json()["outcome"] == "duplicate"
    async with uow:
        request = await uow.requests.get("req-1")
    assert request.blogs_completed == 1
    assert len(request.completed_tasks) == 1
    assert len(await subjects(email_queue)) == 1


async def test_malformed_deliverables_do_not_reject_the_delivery(client, uow):
    await seed(uow, SeoRequest(request_id="req-1", user_id="user-1", package_type=PackageType.GOLD))

    response = await client.post(
        "/seoworks/webhook", json=payload(task_type="blog", deliverables=[{"title": 123}]), headers=HEADERS
    )

    assert response.status_code == 200
    async with uow:
        request = await uow.requests.get("req-1")
    assert request.completed_tasks[0].title == "blog"


async def test_unknown_event_type_is_acknowledged(client, uow, email_queue):
    await seed(uow, SeoRequest(request_id="req-1", user_id="user-1"))

    response = await client.post("/seoworks/webhook", json=payload(event_type="task.reopened"), headers=HEADERS)

    assert response.status_code == 200
    assert response.json()["outcome"] == "ignored"
    assert await subjects(email_queue) == []


async def test_cancel_sends_status_email(client, uow, email_queue):
    await seed(uow, SeoRequest(request_id="req-1", user_id="user-1", title="Oak Motors", status=RequestStatus.IN_PROGRESS))

    response = await client.post("/seoworks/webhook", json=payload(event_type="task.cancelled"), headers=HEADERS)

    assert response.status_code == 200
    async with uow:
        request = await uow.requests.get("req-1")
    assert request.status is RequestStatus.CANCELLED
    assert await subjects(email_queue) == ["Request Updated: Oak Motors"]


async def test_orphan_is_acknowledged_then_reprocessed(client, uow):
    await seed(uow)
    orphan_body = payload(
        external_id="sw-500",
        task_type="blog",
        clientId="user-1",
        deliverables=[{"type": "blog_post", "title": "Fall Service Tips"}],
    )

    response = await client.post("/seoworks/webhook", json=orphan_body, headers=HEADERS)

    assert response.status_code == 200
    assert response.json()["outcome"] == "orphaned"
    async with uow:
        assert len((await uow.session.execute(select(orphaned_tasks_table))).all()) == 1

    unauthorized = await client.post("/seoworks/orphaned-tasks/process", json={"userId": "user-1"}, headers=HEADERS)
    assert unauthorized.status_code == 401

    result = await client.post(
        "/seoworks/orphaned-tasks/process", json={"userId": "user-1"}, headers={"x-api-key": ADMIN_KEY}
    )

    assert result.status_code == 200
    assert result.json() == {"processed": 1, "created": 1}
    async with uow:
        request = await uow.requests.get_by_external_id("sw-500")
    assert request is not None
    assert request.title == "Fall Service Tips"
    assert request.status is RequestStatus.COMPLETED


async def test_processing_failure_returns_500(client, application, mocker):
    mocker.patch.object(application.router, "route", side_effect=PersistenceError("database is down"))

    response = await client.post("/seoworks/webhook", json=payload(), headers=HEADERS)

    assert response.status_code == 500
    assert response.json() == {"detail": "Failed to process webhook"}
