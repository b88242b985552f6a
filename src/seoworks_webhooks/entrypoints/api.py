"""FastAPI application receiving SEOWorks webhooks.

Run with:
    uvicorn --factory seoworks_webhooks.entrypoints.api:create_app

The lifespan builds the pipeline:
1. Configure logging
2. Create the engine, map the ORM and create tables
3. Bootstrap the message bus, handlers and webhook router
4. Start the email queue worker
"""

from __future__ import annotations

import hmac
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from seoworks_webhooks.application.commands import ReprocessOrphanedTasks
from seoworks_webhooks.bootstrap import Application, bootstrap
from seoworks_webhooks.config import Settings, get_settings
from seoworks_webhooks.entrypoints.schemas import (
    ReprocessOrphanedTasksRequest,
    ReprocessOrphanedTasksResponse,
    SeoworksWebhookRequest,
    WebhookAck,
)
from seoworks_webhooks.infrastructure.logging_utils import configure_logging
from seoworks_webhooks.infrastructure.notifications.dispatcher import (
    PreferenceAwareDispatcher,
)
from seoworks_webhooks.infrastructure.notifications.queue import (
    EmailQueue,
    LoggingEmailSender,
)
from seoworks_webhooks.infrastructure.persistence.database import (
    create_tables,
    get_engine,
    get_session_factory,
)
from seoworks_webhooks.infrastructure.persistence.orm import start_mappers
from seoworks_webhooks.infrastructure.uow import SqlAlchemyUnitOfWork


def _keys_match(provided: str | None, expected: str | None) -> bool:
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def get_application(request: Request) -> Application:
    return request.app.state.application


def require_webhook_key(
    request: Request, x_api_key: str | None = Header(default=None)
) -> None:
    settings: Settings = request.app.state.settings
    if not _keys_match(x_api_key, settings.seoworks_webhook_secret):
        logger.warning(f"Webhook {request.method} request with invalid auth.")
        raise HTTPException(status_code=401, detail="Unauthorized")


def require_admin_key(
    request: Request, x_api_key: str | None = Header(default=None)
) -> None:
    settings: Settings = request.app.state.settings
    if not _keys_match(x_api_key, settings.admin_api_key):
        logger.warning("Admin request with invalid auth.")
        raise HTTPException(status_code=401, detail="Unauthorized")


def create_app(
    settings: Settings | None = None, application: Application | None = None
) -> FastAPI:
    """Build the FastAPI app.

    When ``application`` is given it is used as is and the lifespan does not
    build anything (tests wire their own pipeline).
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        if application is not None:
            yield
            return

        configure_logging(settings)
        engine = get_engine(settings.database_url)
        start_mappers()
        await create_tables(engine)
        uow = SqlAlchemyUnitOfWork(get_session_factory(engine))

        queue = EmailQueue(
            LoggingEmailSender(settings.email_from),
            max_retries=settings.email_max_retries,
            retry_delay=settings.email_retry_delay,
        )
        app.state.application = bootstrap(
            uow=uow,
            dispatcher=PreferenceAwareDispatcher(uow, queue),
            app_url=settings.app_url,
        )
        queue.start()
        logger.info("SEOWorks webhook service started")

        yield

        await queue.stop()
        await engine.dispose()
        logger.info("SEOWorks webhook service stopped")

    app = FastAPI(
        title="SEOWorks Webhooks",
        description="Receives SEOWorks task events and reconciles package usage.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    if application is not None:
        app.state.application = application

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.warning(f"Invalid payload for {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=400,
            content={"detail": "Invalid request", "errors": jsonable_encoder(exc.errors())},
        )

    @app.get("/health")
    async def health_check() -> dict:
        return {"status": "healthy"}

    @app.get("/seoworks/webhook", dependencies=[Depends(require_webhook_key)])
    async def webhook_connectivity() -> dict:
        return {"status": "ok", "message": "SEOWorks webhook endpoint is active"}

    @app.post(
        "/seoworks/webhook",
        response_model=WebhookAck,
        response_model_by_alias=True,
        dependencies=[Depends(require_webhook_key)],
    )
    async def receive_webhook(
        payload: SeoworksWebhookRequest,
        app_components: Application = Depends(get_application),
    ) -> WebhookAck:
        event = payload.to_event()
        try:
            outcome = await app_components.router.route(event)
        except Exception:
            logger.exception(
                f"Error processing webhook {event.event_type} for {event.data.external_id}."
            )
            raise HTTPException(status_code=500, detail="Failed to process webhook")
        return WebhookAck(
            message="Webhook processed successfully",
            event_type=payload.event_type,
            outcome=outcome.value,
        )

    @app.post(
        "/seoworks/orphaned-tasks/process",
        response_model=ReprocessOrphanedTasksResponse,
        dependencies=[Depends(require_admin_key)],
    )
    async def process_orphaned_tasks(
        payload: ReprocessOrphanedTasksRequest,
        app_components: Application = Depends(get_application),
    ) -> ReprocessOrphanedTasksResponse:
        result = await app_components.bus.handle(
            ReprocessOrphanedTasks(user_id=payload.user_id, user_email=payload.user_email)
        )
        return ReprocessOrphanedTasksResponse(
            processed=result.processed, created=result.created
        )

    return app
