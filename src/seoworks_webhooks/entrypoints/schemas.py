"""Pydantic v2 request/response schemas for the webhook API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from seoworks_webhooks.application.commands import TaskEventData, WebhookEvent


class SeoworksTaskData(BaseModel):
    """The ``data`` object of a vendor delivery.

    ``deliverables`` is accepted as arbitrary JSON; its shape is checked by the
    deliverable validator so a malformed list never rejects the delivery.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    external_id: str = Field(..., alias="externalId")
    task_type: str = Field(..., alias="taskType")
    status: str
    client_id: str | None = Field(default=None, alias="clientId")
    client_email: str | None = Field(default=None, alias="clientEmail")
    completion_date: str | None = Field(default=None, alias="completionDate")
    deliverables: Any = None


class SeoworksWebhookRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    event_type: str = Field(..., alias="eventType")
    event_id: str | None = Field(default=None, alias="eventId")
    data: SeoworksTaskData

    def to_event(self) -> WebhookEvent:
        return WebhookEvent(
            event_type=self.event_type,
            event_id=self.event_id,
            data=TaskEventData(
                external_id=self.data.external_id,
                task_type=self.data.task_type,
                status=self.data.status,
                client_id=self.data.client_id,
                client_email=self.data.client_email,
                completion_date=self.data.completion_date,
                deliverables=self.data.deliverables,
            ),
        )


class WebhookAck(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    event_type: str = Field(..., alias="eventType")
    outcome: str


class ReprocessOrphanedTasksRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId", min_length=1)
    user_email: str | None = Field(default=None, alias="userEmail")


class ReprocessOrphanedTasksResponse(BaseModel):
    processed: int
    created: int
